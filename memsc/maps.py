"""Parsing of the memory layout listed in ``/proc/<pid>/maps``."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

__all__ = [
    "Perm",
    "AddressRange",
    "parse_maps_line",
    "parse_maps",
    "get_memory_ranges",
    "readable_size",
]


class Perm(enum.IntFlag):
    """Permission bits of a mapped memory range."""

    NONE = 0
    READ = 1 << 0
    WRITE = 1 << 1
    EXECUTE = 1 << 2
    SHARED = 1 << 3
    PRIVATE = 1 << 4


_PERM_CHARS = {
    "r": Perm.READ,
    "w": Perm.WRITE,
    "p": Perm.PRIVATE,
    "s": Perm.SHARED,
    "x": Perm.EXECUTE,
}

_EXCLUDED_NAMES = frozenset({"[vvar]", "[vvar_vclock]"})

_LINE_RE = re.compile(
    r"[ \t]*(?P<start>[0-9a-fA-F]+)-(?P<end>[0-9a-fA-F]+)"
    r"[ \t]+(?P<perms>\S{1,4})"
    r"[ \t]+(?P<offset>[0-9a-fA-F]+)"
    r"[ \t]+(?P<major>[0-9a-fA-F]+):(?P<minor>[0-9a-fA-F]+)"
    r"[ \t]+(?P<inode>\d+)"
    r"[ \t]*(?P<name>[^\n]*)"
)


def _makedev(major: int, minor: int) -> int:
    """Combine a major and minor device number the way the C library does."""
    return (
        ((major & 0xFFFFF000) << 32)
        | ((major & 0x00000FFF) << 8)
        | ((minor & 0xFFFFFF00) << 12)
        | (minor & 0x000000FF)
    )


@dataclass(frozen=True)
class AddressRange:
    """One mapped region of a process's address space."""

    start: int
    length: int
    perms: Perm = Perm.NONE
    offset: int = 0
    device: int = 0
    inode: int = 0
    name: str = ""

    def end(self) -> int:
        """Return the first address past the range."""
        return self.start + self.length


def parse_maps_line(line: str) -> AddressRange:
    """Parse a single line of a maps file; raise ValueError if it is malformed."""
    match = _LINE_RE.match(line)
    if match is None:
        raise ValueError(f"malformed maps line: {line!r}")
    start = int(match["start"], 16)
    end = int(match["end"], 16)
    perms = Perm.NONE
    for char in match["perms"]:
        perms |= _PERM_CHARS.get(char, Perm.NONE)
    return AddressRange(
        start=start,
        length=end - start,
        perms=perms,
        offset=int(match["offset"], 16),
        device=_makedev(int(match["major"], 16), int(match["minor"], 16)),
        inode=int(match["inode"]),
        name=match["name"],
    )


def parse_maps(text: str, include_exec: bool = False) -> list[AddressRange]:
    """Parse the text of a maps file, stopping at the first malformed line.

    Executable ranges are left out unless ``include_exec`` is true, and the
    ``[vvar]`` and ``[vvar_vclock]`` ranges are always left out.
    """
    ranges: list[AddressRange] = []
    for line in text.splitlines():
        try:
            current = parse_maps_line(line)
        except ValueError:
            break
        if not include_exec and current.perms & Perm.EXECUTE:
            continue
        if current.name in _EXCLUDED_NAMES:
            continue
        ranges.append(current)
    return ranges


def get_memory_ranges(pid: int, include_exec: bool = False) -> list[AddressRange]:
    """Read and parse the memory map of process ``pid``.

    Raises OSError if the maps file cannot be read.
    """
    text = Path(f"/proc/{pid}/maps").read_text(
        encoding="utf-8", errors="surrogateescape"
    )
    return parse_maps(text, include_exec)


def readable_size(ranges: Iterable[AddressRange], include_exec: bool = False) -> int:
    """Total length of the readable ranges, executable ones only if asked for."""
    return sum(
        r.length
        for r in ranges
        if (include_exec or not r.perms & Perm.EXECUTE) and r.perms & Perm.READ
    )