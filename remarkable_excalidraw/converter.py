"""
Excalidraw converter for reMarkable annotations.

Converts parsed strokes to an Excalidraw document (a JSON-serializable dict).
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import fitz  # PyMuPDF

from .constants import (
    DEFAULT_FONT_FAMILY,
    EXCALIDRAW_SOURCE,
    UNIFORM_PRESSURE,
    VIEW_BACKGROUND_COLOR,
    PenStyle,
    get_hex_color,
    get_pen_style,
    is_eraser,
)
from .parser import Document, Point, Stroke
from .utils import (
    calculate_stroke_width,
    generate_id,
    generate_seed,
    normalize_pressure,
    now_ms,
    to_data_url,
)

IdFactory = Callable[[], str]
SeedFactory = Callable[[], int]
Clock = Callable[[], int]


# =============================================================================
# Options
# =============================================================================

@dataclass(frozen=True)
class ConversionOptions:
    """User-tunable conversion settings."""
    preserve_layers: bool = True
    include_eraser: bool = False
    stroke_width_scale: float = 0.5


_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_mime_type(data: bytes) -> str:
    """Guess an image mime type from its signature, defaulting to PNG."""
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


@dataclass(frozen=True)
class BackgroundImage:
    """A raster placed underneath the strokes."""
    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        width: Optional[int] = None,
        height: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> BackgroundImage:
        """
        Build a background from encoded image bytes.

        Missing dimensions are read from the image itself.
        """
        if width is None or height is None:
            pix = fitz.Pixmap(data)
            width = pix.width if width is None else width
            height = pix.height if height is None else height
        return cls(
            data=bytes(data),
            width=int(width),
            height=int(height),
            mime_type=mime_type or sniff_mime_type(data),
        )

    @classmethod
    def from_file(cls, path: Path) -> BackgroundImage:
        return cls.from_bytes(Path(path).read_bytes())

    @property
    def data_url(self) -> str:
        return to_data_url(self.data, self.mime_type)


# =============================================================================
# Stroke Helpers
# =============================================================================

def get_stroke_color(stroke: Stroke) -> str:
    """Get the hex color for a stroke."""
    return get_hex_color(stroke.color)


def get_stroke_width(stroke: Stroke, style: PenStyle, scale: float) -> float:
    """Stroke width in Excalidraw units."""
    width = stroke.width if math.isfinite(stroke.width) else 1.0
    return calculate_stroke_width(width, style.base_multiplier, scale)


def finite_points(stroke: Stroke) -> list[Point]:
    """Points whose coordinates are finite; corrupt files can carry NaN."""
    return [p for p in stroke.points if math.isfinite(p.x) and math.isfinite(p.y)]


def get_pressures(points: list[Point], style: PenStyle) -> list[float]:
    """Per-point pressures; uniform for pens that ignore pressure."""
    if not style.pressure_sensitive:
        return [UNIFORM_PRESSURE] * len(points)
    return [
        normalize_pressure(p.pressure) if math.isfinite(p.pressure) else UNIFORM_PRESSURE
        for p in points
    ]


def bounding_box(points: list[Point]) -> tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y) over the raw points."""
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return min(xs), min(ys), max(xs), max(ys)


# =============================================================================
# Converter
# =============================================================================

class ExcalidrawConverter:
    """
    Builds Excalidraw documents from parsed .rm documents.

    The id, seed and clock functions are injectable so output can be made
    fully deterministic in tests.
    """

    def __init__(
        self,
        options: Optional[ConversionOptions] = None,
        id_factory: IdFactory = generate_id,
        seed_factory: SeedFactory = generate_seed,
        clock: Clock = now_ms,
    ):
        self.options = options or ConversionOptions()
        self.id_factory = id_factory
        self.seed_factory = seed_factory
        self.clock = clock
        self.background: Optional[BackgroundImage] = None

    def set_background_image(
        self,
        data: bytes,
        width: Optional[int] = None,
        height: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> None:
        """Attach a raster (e.g. a rendered page) to draw beneath the strokes."""
        self.background = BackgroundImage.from_bytes(data, width, height, mime_type)

    def convert(self, document: Document) -> dict[str, Any]:
        """Convert a parsed document to an Excalidraw document."""
        elements: list[dict[str, Any]] = []
        files: dict[str, dict[str, Any]] = {}

        if self.background is not None:
            file_id = self.id_factory()
            elements.append(self._image_element(file_id, self.background))
            files[file_id] = {
                "mimeType": self.background.mime_type,
                "id": file_id,
                "dataURL": self.background.data_url,
                "created": self.clock(),
            }

        # Scoped to this call only
        layer_group_ids: dict[int, str] = {}

        for stroke in document.all_strokes():
            if not self.options.include_eraser and is_eraser(stroke.pen):
                continue
            points = finite_points(stroke)
            if not points:
                continue

            group_ids = []
            if self.options.preserve_layers:
                if stroke.layer_index not in layer_group_ids:
                    layer_group_ids[stroke.layer_index] = self.id_factory()
                group_ids.append(layer_group_ids[stroke.layer_index])

            elements.append(self._freedraw_element(stroke, points, group_ids))

        return {
            "type": "excalidraw",
            "version": 2,
            "source": EXCALIDRAW_SOURCE,
            "elements": elements,
            "appState": {
                "viewBackgroundColor": VIEW_BACKGROUND_COLOR,
                "currentItemFontFamily": DEFAULT_FONT_FAMILY,
            },
            "files": files,
        }

    def _freedraw_element(
        self, stroke: Stroke, points: list[Point], group_ids: list[str]
    ) -> dict[str, Any]:
        style = get_pen_style(stroke.pen)
        min_x, min_y, max_x, max_y = bounding_box(points)

        return {
            "type": "freedraw",
            "version": 1,
            "versionNonce": self.seed_factory(),
            "isDeleted": False,
            "id": self.id_factory(),
            "fillStyle": "solid",
            "strokeWidth": get_stroke_width(stroke, style, self.options.stroke_width_scale),
            "strokeStyle": style.stroke_style,
            "roughness": style.roughness,
            "opacity": style.opacity,
            "angle": 0,
            "x": min_x,
            "y": min_y,
            "strokeColor": get_stroke_color(stroke),
            "backgroundColor": "transparent",
            "width": max_x - min_x,
            "height": max_y - min_y,
            "seed": self.seed_factory(),
            "groupIds": group_ids,
            "frameId": None,
            "roundness": None,
            "boundElements": None,
            "updated": self.clock(),
            "link": None,
            "locked": False,
            "points": [[p.x - min_x, p.y - min_y] for p in points],
            "pressures": get_pressures(points, style),
            "simulatePressure": style.simulate_pressure,
            "lastCommittedPoint": None,
        }

    def _image_element(self, file_id: str, image: BackgroundImage) -> dict[str, Any]:
        return {
            "type": "image",
            "version": 1,
            "versionNonce": self.seed_factory(),
            "isDeleted": False,
            "id": self.id_factory(),
            "fillStyle": "solid",
            "strokeWidth": 1,
            "strokeStyle": "solid",
            "roughness": 0,
            "opacity": 100,
            "angle": 0,
            "x": 0,
            "y": 0,
            "strokeColor": "transparent",
            "backgroundColor": "transparent",
            "width": image.width,
            "height": image.height,
            "seed": self.seed_factory(),
            "groupIds": [],
            "frameId": None,
            "roundness": None,
            "boundElements": None,
            "updated": self.clock(),
            "link": None,
            "locked": True,
            "status": "saved",
            "fileId": file_id,
            "scale": [1, 1],
        }


def convert(
    document: Document,
    options: Optional[ConversionOptions] = None,
    *,
    background: Optional[BackgroundImage] = None,
    id_factory: IdFactory = generate_id,
    seed_factory: SeedFactory = generate_seed,
    clock: Clock = now_ms,
) -> dict[str, Any]:
    """Convert a parsed document to an Excalidraw document dict."""
    converter = ExcalidrawConverter(options, id_factory, seed_factory, clock)
    converter.background = background
    return converter.convert(document)


# =============================================================================
# Serialization
# =============================================================================

def dumps(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2, allow_nan=False)


def write_excalidraw(document: dict[str, Any], path: Path) -> None:
    """Write an Excalidraw document to a file."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(document))
