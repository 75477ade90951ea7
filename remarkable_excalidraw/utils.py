"""
Numeric helpers and the default id/seed/clock generators.
"""

from __future__ import annotations

import base64
import secrets
import time
import uuid

from .constants import MAX_STROKE_WIDTH, MIN_STROKE_WIDTH


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_pressure(pressure: float) -> float:
    """Clamp a pressure value to the 0-1 range."""
    return clamp(pressure, 0.0, 1.0)


def calculate_stroke_width(base_width: float, multiplier: float, scale: float = 0.5) -> float:
    """
    Effective Excalidraw stroke width.

    Applies the pen multiplier and user scale, then clamps to 1-16.
    """
    return clamp(base_width * multiplier * scale, MIN_STROKE_WIDTH, MAX_STROKE_WIDTH)


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_seed() -> int:
    """Random 31-bit seed, as Excalidraw uses for its rough.js rendering."""
    return secrets.randbelow(2**31 - 1) + 1


def now_ms() -> int:
    return int(time.time() * 1000)


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
