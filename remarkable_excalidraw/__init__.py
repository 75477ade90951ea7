"""
reMarkable to Excalidraw

Decode reMarkable .rm files (v3, v5, v6) and convert them to Excalidraw.

Usage:
    from remarkable_excalidraw import decode, convert, write_excalidraw

    result = decode(Path("page.rm").read_bytes())
    if result.ok:
        write_excalidraw(convert(result.document), "page.excalidraw")

CLI:
    python -m remarkable_excalidraw <input.rm> -o <output.excalidraw>
    python -m remarkable_excalidraw.sync -c remarkable-sync.toml
"""

from .parser import (
    Document,
    Layer,
    Stroke,
    Point,
    Pen,
    PenColor,
    Version,
    DecodeError,
    DecodeSuccess,
    DecodeFailure,
    DecodeException,
    decode,
    decode_or_raise,
    parse_file,
)
from .converter import (
    BackgroundImage,
    ConversionOptions,
    ExcalidrawConverter,
    convert,
    dumps,
    write_excalidraw,
)
from .sync import (
    SyncResult,
    sync_backup,
)

__all__ = [
    "Document",
    "Layer",
    "Stroke",
    "Point",
    "Pen",
    "PenColor",
    "Version",
    "DecodeError",
    "DecodeSuccess",
    "DecodeFailure",
    "DecodeException",
    "decode",
    "decode_or_raise",
    "parse_file",
    "BackgroundImage",
    "ConversionOptions",
    "ExcalidrawConverter",
    "convert",
    "dumps",
    "write_excalidraw",
    "SyncResult",
    "sync_backup",
]

__version__ = "0.1.0"
