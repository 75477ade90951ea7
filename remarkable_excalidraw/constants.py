"""
Shared pen and color tables for the Excalidraw converter.

Both lookups are total: unknown pens and colors resolve to defaults.
"""

from __future__ import annotations

from dataclasses import dataclass

from .parser import Pen, PenColor

# Color mapping - RGB tuples (0-255)
COLOR_MAP_RGB = {
    PenColor.BLACK: (0, 0, 0),
    PenColor.GRAY: (128, 128, 128),
    PenColor.WHITE: (255, 255, 255),
    PenColor.YELLOW: (255, 235, 59),
    PenColor.GREEN: (76, 175, 80),
    PenColor.PINK: (233, 30, 99),
    PenColor.BLUE: (33, 150, 243),
    PenColor.RED: (244, 67, 54),
    PenColor.GRAY_OVERLAP: (160, 160, 160),
    PenColor.HIGHLIGHT: (255, 235, 59),
    PenColor.GREEN_2: (139, 195, 74),
    PenColor.CYAN: (0, 188, 212),
    PenColor.MAGENTA: (156, 39, 176),
    PenColor.YELLOW_2: (255, 193, 7),
}

# Color mapping - hex strings (for Excalidraw)
COLOR_MAP_HEX = {
    color: f"#{r:02x}{g:02x}{b:02x}"
    for color, (r, g, b) in COLOR_MAP_RGB.items()
}

DEFAULT_COLOR_HEX = COLOR_MAP_HEX[PenColor.BLACK]


@dataclass(frozen=True)
class PenStyle:
    """How a pen type is drawn in Excalidraw."""
    base_multiplier: float
    pressure_sensitive: bool
    opacity: int
    roughness: int
    stroke_style: str = "solid"
    simulate_pressure: bool = False


# Multipliers are calibrated for thickness values of roughly 1.0-3.0;
# with the default stroke width scale of 0.5 they land near device widths.
_BALLPOINT = PenStyle(1.0, True, 100, 0)
_MARKER = PenStyle(1.8, True, 100, 1)
_FINELINER = PenStyle(0.6, False, 100, 0, simulate_pressure=True)
_HIGHLIGHTER = PenStyle(8.0, False, 40, 1, simulate_pressure=True)
_ERASER = PenStyle(2.0, True, 100, 0)
_MECHANICAL_PENCIL = PenStyle(0.5, True, 90, 1)
_PAINTBRUSH = PenStyle(2.5, True, 100, 2)
_CALIGRAPHY = PenStyle(1.5, True, 100, 0)
_PENCIL = PenStyle(1.0, True, 85, 2)

PEN_STYLES = {
    Pen.BALLPOINT: _BALLPOINT,
    Pen.BALLPOINT_2: _BALLPOINT,
    Pen.MARKER: _MARKER,
    Pen.MARKER_2: _MARKER,
    Pen.FINELINER: _FINELINER,
    Pen.FINELINER_2: _FINELINER,
    Pen.HIGHLIGHTER: _HIGHLIGHTER,
    Pen.HIGHLIGHTER_2: _HIGHLIGHTER,
    Pen.SHADER: _HIGHLIGHTER,
    Pen.ERASER: _ERASER,
    Pen.ERASER_AREA: _ERASER,
    Pen.MECHANICAL_PENCIL: _MECHANICAL_PENCIL,
    Pen.MECHANICAL_PENCIL_2: _MECHANICAL_PENCIL,
    Pen.PAINTBRUSH: _PAINTBRUSH,
    Pen.PAINTBRUSH_2: _PAINTBRUSH,
    Pen.CALIGRAPHY: _CALIGRAPHY,
    Pen.PENCIL: _PENCIL,
    Pen.PENCIL_2: _PENCIL,
}

DEFAULT_PEN_STYLE = PenStyle(1.0, True, 100, 1)

# Eraser pens
ERASER_PENS = {Pen.ERASER, Pen.ERASER_AREA}

# Output document defaults
EXCALIDRAW_SOURCE = "remarkable-excalidraw"
VIEW_BACKGROUND_COLOR = "#ffffff"
DEFAULT_FONT_FAMILY = 1

# Excalidraw renders strokes degenerately outside this range
MIN_STROKE_WIDTH = 1.0
MAX_STROKE_WIDTH = 16.0

UNIFORM_PRESSURE = 0.5


def get_pen_style(pen: Pen | int) -> PenStyle:
    """Pen style with fallback to default."""
    return PEN_STYLES.get(pen, DEFAULT_PEN_STYLE)


def get_hex_color(color: PenColor | int) -> str:
    """Hex color with fallback to black."""
    return COLOR_MAP_HEX.get(color, DEFAULT_COLOR_HEX)


def is_eraser(pen: Pen | int) -> bool:
    return pen in ERASER_PENS
