"""User settings: update interval, auto-attach pid and scan block size."""

from __future__ import annotations

import configparser
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

__all__ = [
    "Settings",
    "parse_block_size",
    "load_settings",
    "save_settings",
    "default_settings_path",
]

PathLike = Union[str, Path]

_SECTION = "%General"
_LEGACY_SECTION = "General"
_INT_MAX = 2**31 - 1
_U64_MAX = 2**64 - 1
_BLOCK_SIZE_RE = re.compile(r"0[xX][0-9a-fA-F]+|\d+")


@dataclass
class Settings:
    """The settings of the scanner; invalid values raise ValueError."""

    update_interval: int = 100
    auto_attach: int = -1
    scan_block_size: int = 0x1000000

    def __post_init__(self) -> None:
        if not 1 <= self.update_interval <= 60000:
            raise ValueError("update_interval must be between 1 and 60000 ms")
        if not -1 <= self.auto_attach <= _INT_MAX:
            raise ValueError("auto_attach must be -1 or a pid")
        if not 0 <= self.scan_block_size <= _U64_MAX:
            raise ValueError("scan_block_size out of range")


def parse_block_size(text: str) -> int:
    """Parse a size written as C does: ``0x`` hex, leading ``0`` octal, else decimal."""
    if not _BLOCK_SIZE_RE.fullmatch(text):
        raise ValueError(f"invalid block size: {text!r}")
    if text[:2].lower() == "0x":
        value = int(text[2:], 16)
    elif len(text) > 1 and text.startswith("0"):
        value = int(text[1:], 8)
    else:
        value = int(text, 10)
    if value > _U64_MAX:
        raise ValueError(f"block size out of range: {text!r}")
    return value


def default_settings_path() -> Path:
    """Where the settings file lives for the current user."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "Memory Scanner" / "Memsc.conf"


def _read_int(section, key: str, default: int) -> int:
    raw = section.get(key)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def load_settings(path: Optional[PathLike] = None) -> Settings:
    """Load the settings, using defaults for anything missing or invalid."""
    path = Path(path) if path is not None else default_settings_path()
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error:
        return Settings()
    for name in (_SECTION, _LEGACY_SECTION):
        if parser.has_section(name):
            section = parser[name]
            break
    else:
        return Settings()

    defaults = Settings()
    interval = _read_int(section, "update-interval", defaults.update_interval)
    if not 1 <= interval <= 60000:
        interval = defaults.update_interval
    auto_attach = _read_int(section, "auto-attach", defaults.auto_attach)
    if not -1 <= auto_attach <= _INT_MAX:
        auto_attach = defaults.auto_attach
    raw_size = section.get("scan-block-size")
    try:
        block_size = (
            parse_block_size(raw_size.strip())
            if raw_size is not None
            else defaults.scan_block_size
        )
    except ValueError:
        block_size = defaults.scan_block_size
    return Settings(interval, auto_attach, block_size)


def save_settings(settings: Settings, path: Optional[PathLike] = None) -> None:
    """Write the settings, creating the directory if needed."""
    path = Path(path) if path is not None else default_settings_path()
    parser = configparser.ConfigParser(interpolation=None)
    parser[_SECTION] = {
        "update-interval": str(settings.update_interval),
        "auto-attach": str(settings.auto_attach),
        "scan-block-size": str(settings.scan_block_size),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        parser.write(handle)