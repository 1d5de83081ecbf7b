"""Listing and filtering of the running processes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

__all__ = [
    "ProcessEntry",
    "process_name",
    "list_processes",
    "format_entries",
    "filter_entries",
]

PathLike = Union[str, Path]
UNKNOWN_NAME = "<unknown>"


@dataclass(frozen=True)
class ProcessEntry:
    """A running process: its pid and command name."""

    pid: int
    name: str


def process_name(pid: int, proc_root: PathLike = "/proc") -> str:
    """The command name of ``pid``, or ``<unknown>`` if it cannot be read."""
    try:
        with open(Path(proc_root) / str(pid) / "comm", encoding="utf-8",
                  errors="replace") as comm:
            return comm.readline().strip()
    except OSError:
        return UNKNOWN_NAME


def list_processes(proc_root: PathLike = "/proc") -> list[ProcessEntry]:
    """Every process under ``proc_root``, ordered by directory name."""
    root = Path(proc_root)
    entries = []
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if not (child.name.isascii() and child.name.isdigit()):
            continue
        if not child.is_dir():
            continue
        pid = int(child.name)
        entries.append(ProcessEntry(pid, process_name(pid, root)))
    return entries


def format_entries(entries: Iterable[ProcessEntry]) -> list[str]:
    """Labels ``pid: name`` with the pids padded to a common width."""
    entries = list(entries)
    width = max((len(str(e.pid)) for e in entries), default=0)
    return [f"{e.pid:<{width}}: {e.name}" for e in entries]


def filter_entries(labels: Iterable[str], text: str) -> list[str]:
    """The labels containing ``text``, ignoring case."""
    needle = text.casefold()
    return [label for label in labels if needle in label.casefold()]