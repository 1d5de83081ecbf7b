"""Reading, writing and value scanning of another process's memory."""

from __future__ import annotations

import enum
import logging
import os
import struct
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from memsc.maps import AddressRange, Perm, get_memory_ranges, readable_size

__all__ = [
    "ScanType",
    "ProcessMemoryError",
    "ProcessMemory",
    "find_matches",
]

logger = logging.getLogger(__name__)

DEFAULT_MAX_READ_SIZE = 0x10000000


class ScanType(enum.Enum):
    """Unsigned integer types a scan can look for."""

    U8 = "B"
    U16 = "H"
    U32 = "I"
    U64 = "Q"

    @property
    def size(self) -> int:
        """Width of the type in bytes."""
        return struct.calcsize("=" + self.value)


class ProcessMemoryError(OSError):
    """Raised when a process cannot be attached to or its memory accessed."""


def _pack(value: int, scan_type: ScanType) -> bytes:
    limit = 1 << (8 * scan_type.size)
    if not 0 <= value < limit:
        raise ValueError(f"{value} does not fit in {scan_type.name}")
    return struct.pack("=" + scan_type.value, value)


def _unpack(data: bytes, scan_type: ScanType) -> int:
    return struct.unpack("=" + scan_type.value, data)[0]


def find_matches(
    buffer: bytes | bytearray | memoryview,
    value: int,
    scan_type: ScanType,
    base: int = 0,
) -> list[int]:
    """Addresses of the elements of ``buffer`` equal to ``value``.

    The buffer is read as consecutive elements of ``scan_type`` starting at
    ``base``; only whole, aligned elements are compared.
    """
    needle = _pack(value, scan_type)
    data = buffer if isinstance(buffer, (bytes, bytearray)) else bytes(buffer)
    size = scan_type.size
    limit = len(data) - len(data) % size
    found: list[int] = []
    pos = data.find(needle, 0, limit)
    while pos != -1:
        misalignment = pos % size
        if misalignment == 0:
            found.append(base + pos)
            pos = data.find(needle, pos + size, limit)
        else:
            pos = data.find(needle, pos - misalignment + size, limit)
    return found


def _read_at(fd: int, address: int, size: int) -> bytes:
    chunks: list[bytes] = []
    remaining = size
    offset = address
    while remaining > 0:
        try:
            data = os.pread(fd, remaining, offset)
        except OSError as exc:
            if chunks:
                break
            raise ProcessMemoryError(
                exc.errno,
                f"read error {address:#x} - {address + size:#x}: {exc.strerror}",
            ) from exc
        if not data:
            break
        chunks.append(data)
        remaining -= len(data)
        offset += len(data)
    return b"".join(chunks)


class ProcessMemory:
    """Access to the memory of one attached process, with value scanning.

    ``matches`` holds the addresses found by the last scan, all of type
    ``scan_type``. ``on_progress``, if set, is called during a first scan
    with the bytes scanned so far and the total to scan.
    """

    def __init__(self, max_read_size: int = DEFAULT_MAX_READ_SIZE) -> None:
        self.max_read_size = max_read_size
        self._pid = -1
        self.matches: list[int] = []
        self.scan_type: Optional[ScanType] = None
        self.on_progress: Optional[Callable[[int, int], None]] = None
        self._scanning = threading.Event()

    @property
    def max_read_size(self) -> int:
        """Largest block read from the process in one go during a scan."""
        return self._max_read_size

    @max_read_size.setter
    def max_read_size(self, size: int) -> None:
        if size <= 0:
            raise ValueError("max_read_size must be positive")
        self._max_read_size = size

    @property
    def pid(self) -> int:
        """Pid of the attached process, or -1 when none is attached."""
        return self._pid

    @property
    def scanning(self) -> bool:
        """Whether a scan is in progress."""
        return self._scanning.is_set()

    def attach(self, pid: int) -> None:
        """Attach to process ``pid`` and forget earlier matches."""
        if pid < 0 or not Path(f"/proc/{pid}").exists():
            raise ProcessMemoryError(f"could not attach to {pid}")
        self._pid = pid
        self.reset()

    def reset(self) -> None:
        """Forget the matches so the next scan starts from scratch."""
        self.matches = []
        self.scan_type = None

    @contextmanager
    def _memory(self, flags: int) -> Iterator[int]:
        if self._pid < 0:
            raise ProcessMemoryError("not attached to a process")
        path = f"/proc/{self._pid}/mem"
        try:
            fd = os.open(path, flags)
        except OSError as exc:
            raise ProcessMemoryError(
                exc.errno, f"cannot open memory of {self._pid}: {exc.strerror}"
            ) from exc
        try:
            yield fd
        finally:
            os.close(fd)

    def read(self, address: int, size: int) -> bytes:
        """Read up to ``size`` bytes at ``address``; the result may be short."""
        if size < 0:
            raise ValueError("size must not be negative")
        with self._memory(os.O_RDONLY) as fd:
            return _read_at(fd, address, size)

    def write(self, address: int, data: bytes) -> int:
        """Write ``data`` at ``address`` and return the number of bytes written."""
        with self._memory(os.O_WRONLY) as fd:
            try:
                return os.pwrite(fd, data, address)
            except OSError as exc:
                raise ProcessMemoryError(
                    exc.errno,
                    f"write error {address:#x} - {address + len(data):#x}: "
                    f"{exc.strerror}",
                ) from exc

    def read_value(self, address: int, scan_type: ScanType) -> int:
        """Read one value of ``scan_type`` at ``address``."""
        data = self.read(address, scan_type.size)
        if len(data) != scan_type.size:
            raise ProcessMemoryError(f"partial read at {address:#x}")
        return _unpack(data, scan_type)

    def scan(self, value: int, scan_type: ScanType = ScanType.U32) -> list[int]:
        """Look for ``value`` and return the addresses holding it.

        With no earlier matches the readable, non-executable memory is
        searched; otherwise only the earlier matches are checked again.
        """
        _pack(value, scan_type)
        with self._memory(os.O_RDONLY) as fd:
            self._scanning.set()
            try:
                started = time.perf_counter()
                if not self.matches:
                    self.matches = self._initial_scan(fd, value, scan_type)
                else:
                    self.matches = self._rescan(fd, value, scan_type)
                self.scan_type = scan_type
                logger.info(
                    "total scan time: %.3f s, matches: %d",
                    time.perf_counter() - started,
                    len(self.matches),
                )
            finally:
                self._scanning.clear()
        return list(self.matches)

    def _initial_scan(self, fd: int, value: int, scan_type: ScanType) -> list[int]:
        ranges = get_memory_ranges(self._pid, False)
        total = readable_size(ranges, False)
        scanned = 0
        found: list[int] = []
        for current in ranges:
            if current.perms & Perm.EXECUTE or not current.perms & Perm.READ:
                continue
            found.extend(self._scan_range(fd, current, value, scan_type))
            scanned += current.length
            if self.on_progress is not None:
                self.on_progress(scanned, total)
        logger.info("scanned %d bytes (%.2f GB)", total, total / 1e9)
        return found

    def _scan_range(
        self, fd: int, current: AddressRange, value: int, scan_type: ScanType
    ) -> Iterator[int]:
        end = current.end()
        for start in range(current.start, end, self._max_read_size):
            size = min(self._max_read_size, end - start)
            try:
                data = _read_at(fd, start, size)
            except ProcessMemoryError as exc:
                logger.warning("error reading at %#x: %s", start, exc)
                return
            if len(data) != size:
                logger.warning("partial read at %#x", start)
                return
            yield from find_matches(data, value, scan_type, start)

    def _rescan(self, fd: int, value: int, scan_type: ScanType) -> list[int]:
        kept: list[int] = []
        for address in self.matches:
            try:
                data = _read_at(fd, address, scan_type.size)
            except ProcessMemoryError:
                continue
            if len(data) == scan_type.size and _unpack(data, scan_type) == value:
                kept.append(address)
        return kept