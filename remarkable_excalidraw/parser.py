"""
reMarkable .rm file decoder

Clean-room implementation based on reverse engineering.
Handles the three on-disk revisions of the .lines format:

- v3 / v5: fixed layout. Layer count, then per layer a stroke count, then
  per stroke a small header and a run of 24-byte float points.
- v6: a stream of length-prefixed blocks. Line blocks hold "tagged" values
  where each value is prefixed with a varuint tag: index = tag >> 4,
  type = tag & 0xF. Points are 14 bytes each
  (x, y, speed, width, direction, pressure).

decode() never raises on malformed input. It returns DecodeSuccess or
DecodeFailure.
"""

from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

HEADER_PREFIX = "reMarkable .lines file, version="
HEADER_V3 = HEADER_PREFIX + "3"
HEADER_V5 = HEADER_PREFIX + "5"
HEADER_V6 = HEADER_PREFIX + "6"

MIN_HEADER_SIZE = 33
MAX_HEADER_SIZE = 43

# Sanity ceilings against corrupt counts, not format limits
MAX_LAYERS = 100
MAX_STROKES = 100_000
MAX_POINTS = 100_000
MAX_V6_BLOCK_LENGTH = 10_000_000

V5_POINT_SIZE = 24  # 6 x float32
V6_POINT_SIZE = 14


class Version(IntEnum):
    """Format revisions."""
    V3 = 3
    V5 = 5
    V6 = 6
    UNKNOWN = -1


HEADER_SIZES = {
    Version.V3: 33,
    Version.V5: 43,
    Version.V6: 43,
}


class TagType(IntEnum):
    """Tag types indicate what kind of data follows."""
    Byte1 = 0x1     # 1-byte value (bool, u8)
    Byte4 = 0x4     # 4-byte value (float32, u32)
    Byte8 = 0x8     # 8-byte value (float64)
    Length4 = 0xC   # Length-prefixed subblock
    ID = 0xF        # CRDT ID (two varuints)


class BlockType(IntEnum):
    """
    Top-level v6 block flags.

    The flag is the 4 bytes after the block length read as one little-endian
    uint32: (unknown, min_version, current_version, block_type).
    """
    LAYER_DEF = 0x01010100
    LAYER_NAMES = 0x02020100
    LAYER_INFO = 0x04010100
    LINE_DEF = 0x05020200
    TEXT_DEF = 0x07010100


class Pen(IntEnum):
    """Pen/tool types."""
    PAINTBRUSH = 0
    PENCIL = 1
    BALLPOINT = 2
    MARKER = 3
    FINELINER = 4
    HIGHLIGHTER = 5
    ERASER = 6
    MECHANICAL_PENCIL = 7
    ERASER_AREA = 8
    PAINTBRUSH_2 = 12
    MECHANICAL_PENCIL_2 = 13
    PENCIL_2 = 14
    BALLPOINT_2 = 15
    MARKER_2 = 16
    FINELINER_2 = 17
    HIGHLIGHTER_2 = 18
    CALIGRAPHY = 21
    SHADER = 23


class PenColor(IntEnum):
    """Pen colors."""
    BLACK = 0
    GRAY = 1
    WHITE = 2
    YELLOW = 3
    GREEN = 4
    PINK = 5
    BLUE = 6
    RED = 7
    GRAY_OVERLAP = 8
    HIGHLIGHT = 9
    GREEN_2 = 10
    CYAN = 11
    MAGENTA = 12
    YELLOW_2 = 13


# Line-definition field indices (v6)
FIELD_PEN = 1
FIELD_COLOR = 2
FIELD_THICKNESS = 3
FIELD_STARTING_LENGTH = 4
FIELD_POINTS = 5
FIELD_TIMESTAMP = 6
FIELD_MOVE_ID = 7

# Scene-item envelope around line data on device files
FIELD_DELETED_LENGTH = 5
FIELD_ITEM_VALUE = 6


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class Point:
    """A single sampled point, all attributes normalized."""
    x: float
    y: float
    speed: float
    direction: float
    width: float
    pressure: float


@dataclass
class Stroke:
    """A stroke (line) with pen settings and points."""
    pen: Pen | int  # Unknown pen types returned as int
    color: PenColor | int  # Unknown colors returned as int
    width: float
    points: list[Point] = field(default_factory=list)
    layer_index: int = 0


@dataclass
class Layer:
    """A layer containing strokes."""
    name: str = ""
    strokes: list[Stroke] = field(default_factory=list)


@dataclass
class Document:
    """Parsed .rm document."""
    version: Version = Version.UNKNOWN
    layers: list[Layer] = field(default_factory=list)

    def all_strokes(self) -> Iterator[Stroke]:
        """Iterate over all strokes in all layers."""
        for layer in self.layers:
            yield from layer.strokes

    @property
    def stroke_count(self) -> int:
        return sum(len(layer.strokes) for layer in self.layers)

    @property
    def point_count(self) -> int:
        return sum(len(stroke.points) for stroke in self.all_strokes())


@dataclass(frozen=True)
class DecodeError:
    """Why a buffer could not be decoded."""
    message: str
    offset: Optional[int] = None
    details: Optional[str] = None

    def __str__(self) -> str:
        if self.offset is None:
            return self.message
        return f"{self.message} (at byte {self.offset})"


@dataclass(frozen=True)
class DecodeSuccess:
    document: Document
    ok = True


@dataclass(frozen=True)
class DecodeFailure:
    error: DecodeError
    ok = False


DecodeResult = Union[DecodeSuccess, DecodeFailure]


class DecodeException(ValueError):
    """Raised by decode_or_raise() and parse_file()."""

    def __init__(self, error: DecodeError):
        super().__init__(str(error))
        self.error = error


class _StructureError(Exception):
    """Internal: a bounds or count check failed at a known offset."""

    def __init__(self, message: str, offset: int):
        super().__init__(message)
        self.message = message
        self.offset = offset


def _pen(value: int) -> Pen | int:
    try:
        return Pen(value)
    except ValueError:
        return value


def _color(value: int) -> PenColor | int:
    try:
        return PenColor(value)
    except ValueError:
        return value


# =============================================================================
# Binary Reader
# =============================================================================

class BinaryReader:
    """
    Bounds-checked little-endian reader over an immutable byte window.

    Positions are absolute offsets into the original buffer so errors can
    report where they happened, even from a sub_reader().
    """

    def __init__(self, data: bytes | memoryview, start: int = 0, end: Optional[int] = None):
        self.data = memoryview(data)
        self.pos = start
        self.end = len(self.data) if end is None else end

    def tell(self) -> int:
        return self.pos

    def seek(self, pos: int) -> None:
        self.pos = pos

    def remaining(self) -> int:
        return max(0, self.end - self.pos)

    def at_end(self) -> bool:
        return self.pos >= self.end

    def read_bytes(self, n: int) -> bytes:
        """Read exactly n bytes, raise EOFError if not enough."""
        if n < 0 or self.pos + n > self.end:
            raise EOFError(f"Expected {n} bytes at {self.pos}, got {self.remaining()}")
        result = bytes(self.data[self.pos:self.pos + n])
        self.pos += n
        return result

    def skip(self, n: int) -> None:
        if n < 0 or self.pos + n > self.end:
            raise EOFError(f"Cannot skip {n} bytes at {self.pos}, {self.remaining()} left")
        self.pos += n

    def sub_reader(self, n: int) -> BinaryReader:
        """Return a reader limited to the next n bytes and move past them."""
        start = self.pos
        self.skip(n)
        return BinaryReader(self.data, start, start + n)

    def _unpack(self, fmt: str, size: int):
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_uint8(self) -> int:
        return self._unpack("<B", 1)

    def read_uint16(self) -> int:
        return self._unpack("<H", 2)

    def read_int32(self) -> int:
        return self._unpack("<i", 4)

    def read_uint32(self) -> int:
        return self._unpack("<I", 4)

    def read_float32(self) -> float:
        return self._unpack("<f", 4)

    def read_float64(self) -> float:
        return self._unpack("<d", 8)

    def read_varuint(self) -> int:
        """
        Read a variable-length unsigned integer.

        Stops when the continuation bit is clear or the window runs out.
        """
        result = 0
        shift = 0
        while self.pos < self.end:
            byte = self.data[self.pos]
            self.pos += 1
            result |= (byte & 0x7F) << shift
            if not (byte & 0x80):
                break
            shift += 7
        return result

    def skip_crdt_id(self) -> None:
        self.read_varuint()
        self.read_varuint()


# =============================================================================
# Header
# =============================================================================

def detect_version(data: bytes) -> tuple[Version, Optional[DecodeError]]:
    """
    Work out which revision produced a buffer.

    Returns (version, None) for supported files, (UNKNOWN, error) otherwise.
    An unsupported but well-formed header gets its own message naming the
    version number.
    """
    if len(data) < MIN_HEADER_SIZE:
        return Version.UNKNOWN, DecodeError(
            f"File too small: {len(data)} bytes, minimum {MIN_HEADER_SIZE} required",
            offset=0,
        )

    header = bytes(data[:MAX_HEADER_SIZE]).decode("utf-8", errors="replace")

    if header.startswith(HEADER_V6):
        return Version.V6, None
    if header.startswith(HEADER_V5):
        return Version.V5, None
    if header.startswith(HEADER_V3):
        return Version.V3, None

    if header.startswith(HEADER_PREFIX):
        match = re.match(r"\d+", header[len(HEADER_PREFIX):])
        if match:
            number = int(match.group(0))
            return Version.UNKNOWN, DecodeError(
                f"Unsupported version: {number}. Supported versions: 3, 5, 6",
                offset=0,
            )

    return Version.UNKNOWN, DecodeError(
        "Invalid file format: missing reMarkable header magic string",
        offset=0,
    )


# =============================================================================
# v3 / v5
# =============================================================================

def _read_v5_stroke(reader: BinaryReader, version: Version, layer_index: int) -> Stroke:
    header_size = 20 if version == Version.V3 else 24
    if reader.remaining() < header_size:
        raise _StructureError("Cannot read stroke header", reader.tell())

    pen = reader.read_int32()
    color = reader.read_int32()
    reader.read_int32()  # unused / selection flag
    base_width = reader.read_float32()
    if version != Version.V3:
        reader.read_int32()  # unused v5 field

    num_points = reader.read_int32()
    if num_points < 0 or num_points > MAX_POINTS:
        raise _StructureError(f"Invalid point count: {num_points}", reader.tell() - 4)
    if num_points * V5_POINT_SIZE > reader.remaining():
        raise _StructureError(f"Not enough bytes for {num_points} points", reader.tell())

    points = []
    for _ in range(num_points):
        x, y, speed, direction, width, pressure = struct.unpack(
            "<6f", reader.read_bytes(V5_POINT_SIZE)
        )
        points.append(Point(x, y, speed, direction, width, pressure))

    return Stroke(
        pen=_pen(pen),
        color=_color(color),
        width=base_width,
        points=points,
        layer_index=layer_index,
    )


def _read_v5_layer(reader: BinaryReader, version: Version, layer_index: int) -> Layer:
    if reader.remaining() < 4:
        raise _StructureError("Cannot read stroke count", reader.tell())

    num_strokes = reader.read_int32()
    if num_strokes < 0 or num_strokes > MAX_STROKES:
        raise _StructureError(f"Invalid stroke count: {num_strokes}", reader.tell() - 4)

    layer = Layer(name=f"Layer {layer_index + 1}")
    for stroke_index in range(num_strokes):
        try:
            layer.strokes.append(_read_v5_stroke(reader, version, layer_index))
        except _StructureError as e:
            raise _StructureError(f"Stroke {stroke_index}: {e.message}", e.offset) from e
    return layer


def _decode_v5(reader: BinaryReader, version: Version) -> DecodeResult:
    reader.seek(HEADER_SIZES[version])

    if reader.remaining() < 4:
        return DecodeFailure(DecodeError(
            "Unexpected end of file: cannot read layer count", offset=reader.tell()
        ))

    num_layers = reader.read_int32()
    if num_layers < 0 or num_layers > MAX_LAYERS:
        return DecodeFailure(DecodeError(
            f"Invalid layer count: {num_layers}. Expected 0-{MAX_LAYERS}.",
            offset=reader.tell() - 4,
        ))

    doc = Document(version=version)
    for layer_index in range(num_layers):
        try:
            doc.layers.append(_read_v5_layer(reader, version, layer_index))
        except _StructureError as e:
            return DecodeFailure(DecodeError(
                f"Failed to parse layer {layer_index}: {e.message}", offset=e.offset
            ))

    return DecodeSuccess(doc)


# =============================================================================
# v6
# =============================================================================

def _read_tag(reader: BinaryReader) -> tuple[int, int]:
    """Read a tag and return (index, type)."""
    tag = reader.read_varuint()
    return tag >> 4, tag & 0xF


def skip_value(reader: BinaryReader, tag_type: int) -> None:
    """
    Consume a value of the given wire type without interpreting it.

    Unknown wire types carry no payload we know how to size, so nothing
    is consumed for them.
    """
    if tag_type == TagType.Byte1:
        reader.skip(1)
    elif tag_type == TagType.Byte4:
        reader.skip(4)
    elif tag_type == TagType.Byte8:
        reader.skip(8)
    elif tag_type == TagType.Length4:
        reader.skip(reader.read_uint32())
    elif tag_type == TagType.ID:
        reader.skip_crdt_id()


def read_v6_point(reader: BinaryReader) -> Point:
    """Read a single 14-byte point and normalize it."""
    x = reader.read_float32()
    y = reader.read_float32()
    speed = reader.read_uint16()
    width = reader.read_uint16()
    direction = reader.read_uint8()
    pressure = reader.read_uint8()
    return Point(
        x=x,
        y=y,
        speed=speed / 65535,
        direction=direction / 255 * 360,
        width=width / 65535,
        pressure=pressure / 255,
    )


def read_line_block(reader: BinaryReader) -> Optional[Stroke]:
    """
    Read stroke data from a line-definition block body.

    Returns None for tombstoned (deleted) items. Raises EOFError if the
    block is truncated.
    """
    pen: Pen | int = Pen.BALLPOINT
    color: PenColor | int = PenColor.BLACK
    thickness = 1.0
    points: list[Point] = []
    deleted = False
    in_value = False

    while not reader.at_end():
        index, tag_type = _read_tag(reader)

        if index == FIELD_PEN and tag_type == TagType.Byte4:
            pen = _pen(reader.read_uint32())
        elif index == FIELD_COLOR and tag_type == TagType.Byte4:
            color = _color(reader.read_uint32())
        elif index == FIELD_THICKNESS and tag_type == TagType.Byte8:
            thickness = reader.read_float64()
        elif index == FIELD_STARTING_LENGTH and tag_type == TagType.Byte4:
            reader.read_float32()  # unused
        elif index == FIELD_DELETED_LENGTH and tag_type == TagType.Byte4 and not in_value:
            deleted = reader.read_uint32() > 0
        elif index == FIELD_POINTS and tag_type == TagType.Length4:
            # Keep whatever points fit when the length overruns the block
            points_length = min(reader.read_uint32(), reader.remaining())
            num_points = points_length // V6_POINT_SIZE
            points_reader = reader.sub_reader(points_length)
            points = [read_v6_point(points_reader) for _ in range(num_points)]
        elif index == FIELD_ITEM_VALUE and tag_type == TagType.Length4 and not in_value:
            # Device files wrap the line in a scene item; step inside
            value_length = reader.read_uint32()
            if value_length > 0:
                reader.read_uint8()  # item type
                in_value = True
        else:
            skip_value(reader, tag_type)

    if deleted:
        return None
    return Stroke(pen=pen, color=color, width=thickness, points=points, layer_index=0)


def _decode_v6(reader: BinaryReader) -> DecodeResult:
    reader.seek(HEADER_SIZES[Version.V6])
    layer = Layer(name="Layer 1")
    resyncs = 0

    while reader.remaining() >= 8:
        block_start = reader.tell()
        length = reader.read_uint32()
        flag = reader.read_uint32()

        if length == 0 or length > reader.remaining() or length > MAX_V6_BLOCK_LENGTH:
            reader.seek(block_start + 1)
            resyncs += 1
            continue

        body = reader.sub_reader(length)
        if flag != BlockType.LINE_DEF:
            continue

        try:
            stroke = read_line_block(body)
        except (EOFError, struct.error) as e:
            logger.debug("Dropping line block at %d: %s", block_start, e)
            continue

        if stroke is not None and stroke.points:
            layer.strokes.append(stroke)

    if resyncs:
        logger.debug("Resynchronized %d times while scanning v6 blocks", resyncs)

    return DecodeSuccess(Document(version=Version.V6, layers=[layer]))


# =============================================================================
# Public API
# =============================================================================

def decode(data: bytes) -> DecodeResult:
    """
    Decode one page of .rm data.

    Never raises on malformed input.
    """
    version, error = detect_version(data)
    if error is not None:
        return DecodeFailure(error)

    reader = BinaryReader(data)
    try:
        if version == Version.V6:
            return _decode_v6(reader)
        return _decode_v5(reader, version)
    except (EOFError, struct.error, ValueError, OverflowError) as e:
        return DecodeFailure(DecodeError(
            f"Parse error: {e}", offset=reader.tell(), details=repr(e)
        ))


def decode_or_raise(data: bytes) -> Document:
    """Decode data, raising DecodeException on failure."""
    result = decode(data)
    if isinstance(result, DecodeFailure):
        raise DecodeException(result.error)
    return result.document


def parse_file(path: Path) -> Document:
    """Read and decode a .rm file."""
    with open(path, "rb") as f:
        data = f.read()
    return decode_or_raise(data)


# =============================================================================
# CLI
# =============================================================================

def _enum_name(value, enum_type) -> str:
    if isinstance(value, enum_type):
        return value.name
    return f"Unknown({value})"


def analyze_file(path: Path) -> None:
    """Analyze a .rm file and print summary."""
    path = Path(path)
    print(f"File: {path.name}")
    print(f"Size: {path.stat().st_size} bytes")

    result = decode(path.read_bytes())
    if isinstance(result, DecodeFailure):
        print(f"Error: {result.error}")
        return

    doc = result.document
    print(f"Version: {doc.version.value}")
    print()
    print(f"Layers: {len(doc.layers)}")
    print(f"Strokes: {doc.stroke_count}")
    print(f"Points: {doc.point_count}")

    if doc.stroke_count > 0:
        print("\nPen types used:")
        pens = {stroke.pen for stroke in doc.all_strokes()}
        for pen in sorted(pens, key=int):
            print(f"  - {_enum_name(pen, Pen)}")

        print("\nColors used:")
        colors = {stroke.color for stroke in doc.all_strokes()}
        for color in sorted(colors, key=int):
            print(f"  - {_enum_name(color, PenColor)}")


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m remarkable_excalidraw.parser <file.rm>")
        sys.exit(1)

    path = Path(sys.argv[1])
    if not path.exists():
        print(f"File not found: {path}")
        sys.exit(1)

    analyze_file(path)
