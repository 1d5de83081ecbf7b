"""Presentation helpers for the memory map of a process."""

from __future__ import annotations

import re
from typing import Optional, Sequence

from memsc.maps import AddressRange, Perm

__all__ = [
    "perms_to_string",
    "format_range",
    "find_range_index",
    "parse_hex_address",
]

_POINTER_DIGITS = 16
_MAX_ADDRESS = (1 << 64) - 1
_HEX_RE = re.compile(r"(?:0[xX])?[0-9a-fA-F]+")

COLUMNS = ("Start", "End", "Length", "Perms", "Offset", "Device", "Inode", "Name")


def perms_to_string(perms: Perm) -> str:
    """Render permission bits the way the maps file does, e.g. ``rw-p``."""
    if perms & Perm.SHARED:
        kind = "s"
    elif perms & Perm.PRIVATE:
        kind = "p"
    else:
        kind = "-"
    return (
        ("r" if perms & Perm.READ else "-")
        + ("w" if perms & Perm.WRITE else "-")
        + ("x" if perms & Perm.EXECUTE else "-")
        + kind
    )


def _split_device(device: int) -> tuple[int, int]:
    major = (device >> 8) & 0xFF
    minor = (device & 0xFF) | ((device >> 12) & 0xFFF00)
    return major, minor


def format_range(range_: AddressRange) -> tuple[str, ...]:
    """The table cells for one range, in the order of ``COLUMNS``."""
    major, minor = _split_device(range_.device)
    return (
        f"0x{range_.start:0{_POINTER_DIGITS}x}",
        f"0x{range_.end():0{_POINTER_DIGITS}x}",
        str(range_.length),
        perms_to_string(range_.perms),
        f"0x{range_.offset:x}",
        f"{major}:{minor}",
        str(range_.inode) if range_.inode else "",
        range_.name,
    )


def find_range_index(
    ranges: Sequence[AddressRange], address: int
) -> Optional[int]:
    """Index of the first range containing ``address``, or None."""
    return next(
        (i for i, r in enumerate(ranges) if r.start <= address < r.end()),
        None,
    )


def parse_hex_address(text: str) -> int:
    """Parse a hexadecimal address, with or without ``0x``; raise ValueError."""
    stripped = text.strip()
    if not stripped:
        raise ValueError("empty address")
    if not _HEX_RE.fullmatch(stripped):
        raise ValueError(f"could not parse address: {text!r}")
    value = int(stripped, 16)
    if value > _MAX_ADDRESS:
        raise ValueError(f"address out of range: {text!r}")
    return value