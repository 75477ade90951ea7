"""
Sync settings, read from remarkable-sync.toml.

Example:

    [source]
    path = "~/remarkable/xochitl"

    [destination]
    folder = "ReMarkSync"

    [sync]
    notebooks = true
    pdf_annotations = true

    [import]
    preserve_layers = true
    include_eraser = false
    stroke_width_scale = 0.5
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import tomli

from .converter import ConversionOptions

DEFAULT_CONFIG_NAME = "remarkable-sync.toml"
DEFAULT_SYNC_FOLDER = "ReMarkSync"

MIN_STROKE_WIDTH_SCALE = 0.25
MAX_STROKE_WIDTH_SCALE = 2.0

# reMarkable desktop app data folders on macOS
_DESKTOP_DATA_DIRS = (
    "Library/Containers/com.remarkable.desktop/Data/Library/Application Support/remarkable/desktop",
    "Library/Application Support/remarkable/desktop",
)


class ConfigError(ValueError):
    """Settings file could not be read or is invalid."""


@dataclass
class SyncSettings:
    remarkable_path: Optional[Path] = None
    sync_folder: Path = Path(DEFAULT_SYNC_FOLDER)
    sync_notebooks: bool = True
    sync_pdf_annotations: bool = True
    preserve_layers: bool = True
    include_eraser: bool = False
    stroke_width_scale: float = 0.5

    def conversion_options(self) -> ConversionOptions:
        return ConversionOptions(
            preserve_layers=self.preserve_layers,
            include_eraser=self.include_eraser,
            stroke_width_scale=self.stroke_width_scale,
        )

    def source_path(self) -> Optional[Path]:
        """Configured source folder, or an auto-detected one."""
        if self.remarkable_path:
            return self.remarkable_path
        return detect_remarkable_path()


def detect_remarkable_path(home: Optional[Path] = None) -> Optional[Path]:
    """Look for the reMarkable desktop app data folder."""
    home = Path(home) if home else Path(os.path.expanduser("~"))
    for candidate in _DESKTOP_DATA_DIRS:
        path = home / candidate
        if path.is_dir():
            return path
    return None


def _section(data: dict, name: str) -> dict:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _bool(section: dict, key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def parse_settings(data: dict) -> SyncSettings:
    """Build SyncSettings from parsed TOML data."""
    source = _section(data, "source")
    destination = _section(data, "destination")
    sync = _section(data, "sync")
    options = _section(data, "import")

    scale = options.get("stroke_width_scale", 0.5)
    if isinstance(scale, bool) or not isinstance(scale, (int, float)):
        raise ConfigError(f"stroke_width_scale must be a number, got {scale!r}")
    if not MIN_STROKE_WIDTH_SCALE <= scale <= MAX_STROKE_WIDTH_SCALE:
        raise ConfigError(
            f"stroke_width_scale must be between {MIN_STROKE_WIDTH_SCALE} "
            f"and {MAX_STROKE_WIDTH_SCALE}, got {scale}"
        )

    source_path = source.get("path")
    return SyncSettings(
        remarkable_path=Path(source_path).expanduser() if source_path else None,
        sync_folder=Path(destination.get("folder") or DEFAULT_SYNC_FOLDER).expanduser(),
        sync_notebooks=_bool(sync, "notebooks", True),
        sync_pdf_annotations=_bool(sync, "pdf_annotations", True),
        preserve_layers=_bool(options, "preserve_layers", True),
        include_eraser=_bool(options, "include_eraser", False),
        stroke_width_scale=float(scale),
    )


def load_settings(config_path: Path) -> SyncSettings:
    """Parse a settings file. A missing file gives the defaults."""
    config_path = Path(config_path)
    if not config_path.exists():
        return SyncSettings()
    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"{config_path}: {e}") from e
    return parse_settings(data)
