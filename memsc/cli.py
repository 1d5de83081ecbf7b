"""Command line front end: list processes, show maps, scan and edit memory."""

from __future__ import annotations

import argparse
import enum
import re
import shlex
import sys
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from memsc.maps import AddressRange, get_memory_ranges
from memsc.maps_view import (
    COLUMNS,
    find_range_index,
    format_range,
    parse_hex_address,
)
from memsc.process_memory import (
    DEFAULT_MAX_READ_SIZE,
    ProcessMemory,
    ProcessMemoryError,
    ScanType,
)
from memsc.processes import filter_entries, format_entries, list_processes
from memsc.settings import Settings, load_settings

__all__ = [
    "ValueType",
    "parse_search_value",
    "parse_saved_value",
    "format_match",
    "main",
]

MAX_ROWS = 10000
_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1
_I64_MAX = 2**63 - 1
_I64_MIN = -(2**63)
_UNSIGNED_RE = re.compile(r"\+?[0-9]+", re.ASCII)
_LEADING_INT_RE = re.compile(r"\s*([+-]?[0-9]+)", re.ASCII)


class ValueType(enum.Enum):
    """The kinds of value a search or a saved address can hold."""

    BINARY = "Binary"
    BYTE = "Byte"
    BYTES_2 = "2 Bytes"
    BYTES_4 = "4 Bytes"
    BYTES_8 = "8 Bytes"
    FLOAT = "Float"
    DOUBLE = "Double"
    STRING = "String"
    BYTE_ARRAY = "Array of Bytes"

    @property
    def scan_type(self) -> Optional[ScanType]:
        """The integer type scanned for, or None if scanning is unsupported."""
        return _SCAN_TYPES.get(self)

    @property
    def cli_name(self) -> str:
        """The name used for this type on the command line."""
        return _CLI_NAMES_BY_TYPE[self]

    @classmethod
    def from_name(cls, name: str) -> "ValueType":
        """Look up a type by its command line name; raise ValueError if unknown."""
        try:
            return _TYPES_BY_CLI_NAME[name.strip().lower()]
        except KeyError:
            choices = ", ".join(_TYPES_BY_CLI_NAME)
            raise ValueError(f"unknown value type {name!r} (choose from {choices})") from None


_SCAN_TYPES = {
    ValueType.BYTE: ScanType.U8,
    ValueType.BYTES_2: ScanType.U16,
    ValueType.BYTES_4: ScanType.U32,
    ValueType.BYTES_8: ScanType.U64,
}

_TYPES_BY_CLI_NAME = {
    "binary": ValueType.BINARY,
    "byte": ValueType.BYTE,
    "2bytes": ValueType.BYTES_2,
    "4bytes": ValueType.BYTES_4,
    "8bytes": ValueType.BYTES_8,
    "float": ValueType.FLOAT,
    "double": ValueType.DOUBLE,
    "string": ValueType.STRING,
    "bytes": ValueType.BYTE_ARRAY,
}
_CLI_NAMES_BY_TYPE = {vt: name for name, vt in _TYPES_BY_CLI_NAME.items()}

_SESSION_HELP = {
    "type": "type NAME - choose the value type for the next scan",
    "scan": "scan VALUE - scan for VALUE, narrowing earlier matches",
    "new": "new - forget all matches and start over",
    "list": "list - show the matches with their current values",
    "save": "save INDEX - remember the match at INDEX",
    "saved": "saved - show remembered addresses",
    "set": "set ADDRESS VALUE - write VALUE at ADDRESS",
    "maps": "maps [ADDRESS] - show the memory map, or the region holding ADDRESS",
    "help": "help [COMMAND...] - describe commands",
    "quit": "quit - leave the session",
}


def _require_scan_type(value_type: ValueType) -> ScanType:
    scan_type = value_type.scan_type
    if scan_type is None:
        raise ValueError(f"values of type {value_type.value} are not supported")
    return scan_type


def parse_search_value(text: str, value_type: ValueType) -> int:
    """Parse the value to search for.

    The text must be an unsigned decimal number that fits in 32 bits (64 bits
    for ``8 Bytes``); narrower types keep only their low bits.
    """
    scan_type = _require_scan_type(value_type)
    stripped = text.strip()
    if not _UNSIGNED_RE.fullmatch(stripped):
        raise ValueError(f"not an unsigned number: {text!r}")
    value = int(stripped)
    limit = _U64_MAX if scan_type is ScanType.U64 else _U32_MAX
    if value > limit:
        raise ValueError(f"value out of range: {text!r}")
    return value & ((1 << (8 * scan_type.size)) - 1)


def parse_saved_value(text: str, value_type: ValueType) -> bytes:
    """Encode the value shown for a saved address as bytes in native order.

    The leading integer of ``text`` is used, 0 if there is none; it is
    clamped to a signed 64-bit range and cut down to the type's width.
    """
    scan_type = _require_scan_type(value_type)
    match = _LEADING_INT_RE.match(text)
    number = int(match.group(1)) if match else 0
    number = max(min(number, _I64_MAX), _I64_MIN)
    size = scan_type.size
    return (number & ((1 << (8 * size)) - 1)).to_bytes(size, sys.byteorder)


def format_match(address: int) -> str:
    """Render an address the way the table shows it."""
    return "(nil)" if address == 0 else f"{address:#x}"


def _print_ranges(ranges: Iterable[AddressRange]) -> None:
    rows = [COLUMNS, *(format_range(r) for r in ranges)]
    widths = [max(map(len, column)) for column in zip(*rows)]
    for row in rows:
        print("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())


def _print_matches(scanner: ProcessMemory, value_type: ValueType) -> None:
    scan_type = _require_scan_type(value_type)
    for index, address in enumerate(scanner.matches[:MAX_ROWS]):
        try:
            current = str(scanner.read_value(address, scan_type))
        except ProcessMemoryError:
            current = "??"
        print(f"{index}  {format_match(address)}  {current}")
    print(f"Found: {len(scanner.matches)}")


def _progress_printer() -> Optional[Callable[[int, int], None]]:
    if not sys.stderr.isatty():
        return None

    def report(current: int, total: int) -> None:
        percent = int(current / total * 100) if total else 100
        print(f"\r{percent:3d}%", end="", file=sys.stderr, flush=True)

    return report


def _open_scanner(pid: int, settings: Settings) -> ProcessMemory:
    scanner = ProcessMemory(settings.scan_block_size or DEFAULT_MAX_READ_SIZE)
    scanner.attach(pid)
    scanner.on_progress = _progress_printer()
    return scanner


def _cmd_ps(args: argparse.Namespace) -> int:
    labels = format_entries(list_processes(args.proc_root))
    if args.filter:
        labels = filter_entries(labels, args.filter)
    for label in labels:
        print(label)
    return 0


def _find_range(ranges: Sequence[AddressRange], address: int) -> AddressRange:
    index = find_range_index(ranges, address)
    if index is None:
        raise ValueError(
            f"address {address:x} is not contained in any mapped region"
        )
    return ranges[index]


def _cmd_maps(args: argparse.Namespace) -> int:
    ranges = get_memory_ranges(args.pid, True)
    if args.find is not None:
        ranges = [_find_range(ranges, parse_hex_address(args.find))]
    _print_ranges(ranges)
    return 0


def _cmd_read(args: argparse.Namespace) -> int:
    value_type = ValueType.from_name(args.type)
    scan_type = _require_scan_type(value_type)
    address = parse_hex_address(args.address)
    scanner = ProcessMemory()
    scanner.attach(args.pid)
    print(f"{format_match(address)}: {scanner.read_value(address, scan_type)}")
    return 0


def _cmd_write(args: argparse.Namespace) -> int:
    value_type = ValueType.from_name(args.type)
    scan_type = _require_scan_type(value_type)
    value = parse_search_value(args.value, value_type)
    address = parse_hex_address(args.address)
    scanner = ProcessMemory()
    scanner.attach(args.pid)
    written = scanner.write(address, value.to_bytes(scan_type.size, sys.byteorder))
    print(f"wrote {written} bytes at {format_match(address)}")
    return 0


def _cmd_scan(args: argparse.Namespace) -> int:
    value_type = ValueType.from_name(args.type)
    values = [parse_search_value(text, value_type) for text in args.values]
    scanner = _open_scanner(args.pid, load_settings())
    for value in values:
        scanner.scan(value, _require_scan_type(value_type))
    _print_matches(scanner, value_type)
    return 0


def _cmd_watch(args: argparse.Namespace) -> int:
    value_type = ValueType.from_name(args.type)
    scan_type = _require_scan_type(value_type)
    address = parse_hex_address(args.address)
    interval = args.interval if args.interval is not None else load_settings().update_interval
    scanner = ProcessMemory()
    scanner.attach(args.pid)
    for tick in range(args.count):
        if tick:
            time.sleep(interval / 1000)
        print(f"{format_match(address)}: {scanner.read_value(address, scan_type)}",
              flush=True)
    return 0


@dataclass
class _SavedAddress:
    value_type: ValueType
    stored: bytes


class _Session:
    """An interactive scanning session on one process."""

    def __init__(self, scanner: ProcessMemory) -> None:
        self.scanner = scanner
        self.value_type = ValueType.BYTES_4
        self.search_text = ""
        self.saved: dict[int, _SavedAddress] = {}
        self.commands: dict[str, Callable[[list[str]], None]] = {
            "type": self.set_type,
            "scan": self.scan,
            "new": self.new_scan,
            "list": self.list_matches,
            "save": self.save,
            "saved": self.list_saved,
            "set": self.set_value,
            "maps": self.maps,
            "help": self.help,
        }

    def run(self, lines: Iterable[str]) -> None:
        interactive = sys.stdin.isatty()
        if interactive:
            print("> ", end="", flush=True)
        for line in lines:
            words = shlex.split(line)
            if words and words[0] in ("quit", "exit"):
                return
            if words:
                self.dispatch(words)
            if interactive:
                print("> ", end="", flush=True)

    def dispatch(self, words: list[str]) -> None:
        handler = self.commands.get(words[0])
        try:
            if handler is None:
                raise ValueError(f"unknown command {words[0]!r}, try 'help'")
            handler(words[1:])
        except (ValueError, IndexError, OSError) as exc:
            print(f"error: {exc}", file=sys.stderr)

    def help(self, args: list[str]) -> None:
        names = args or [*sorted(self.commands), "quit"]
        unknown = [name for name in names if name not in _SESSION_HELP]
        if unknown:
            raise ValueError(f"no such command: {', '.join(unknown)}")
        for name in names:
            print(_SESSION_HELP[name])

    def set_type(self, args: list[str]) -> None:
        if self.scanner.matches:
            raise ValueError("start a new scan before changing the type")
        self.value_type = ValueType.from_name(args[0])
        print(f"type: {self.value_type.value}")

    def scan(self, args: list[str]) -> None:
        if not args:
            raise ValueError("scan needs a value")
        value = parse_search_value(args[0], self.value_type)
        self.search_text = args[0]
        self.scanner.scan(value, _require_scan_type(self.value_type))
        print(f"Found: {len(self.scanner.matches)}")

    def new_scan(self, _args: list[str]) -> None:
        self.scanner.reset()
        print("Found: 0")

    def list_matches(self, _args: list[str]) -> None:
        if self.scanner.matches:
            _print_matches(self.scanner, self.value_type)
        else:
            print("Found: 0")

    def save(self, args: list[str]) -> None:
        index = int(args[0])
        if not 0 <= index < len(self.scanner.matches):
            raise ValueError(f"no match at index {index}")
        address = self.scanner.matches[index]
        if address not in self.saved:
            self.saved[address] = _SavedAddress(
                self.value_type, parse_saved_value(self.search_text, self.value_type)
            )
            print(f"saving: {format_match(address)}")

    def list_saved(self, _args: list[str]) -> None:
        for address, entry in self.saved.items():
            scan_type = _require_scan_type(entry.value_type)
            stored = int.from_bytes(entry.stored, sys.byteorder)
            try:
                current = str(self.scanner.read_value(address, scan_type))
            except ProcessMemoryError:
                current = "??"
            print(f"{format_match(address)}  {entry.value_type.value}  "
                  f"{stored}  {current}")

    def set_value(self, args: list[str]) -> None:
        address = parse_hex_address(args[0])
        entry = self.saved.get(address)
        value_type = entry.value_type if entry else self.value_type
        scan_type = _require_scan_type(value_type)
        value = parse_search_value(args[1], value_type)
        written = self.scanner.write(
            address, value.to_bytes(scan_type.size, sys.byteorder)
        )
        print(f"wrote {written} bytes at {format_match(address)}")

    def maps(self, args: list[str]) -> None:
        ranges = get_memory_ranges(self.scanner.pid, True)
        if args:
            ranges = [_find_range(ranges, parse_hex_address(args[0]))]
        _print_ranges(ranges)


def _cmd_session(args: argparse.Namespace) -> int:
    settings = load_settings()
    pid = args.pid if args.pid is not None else settings.auto_attach
    if pid < 0:
        raise ValueError("no pid given and no auto-attach pid configured")
    scanner = _open_scanner(pid, settings)
    print(f"attached to {pid}")
    _Session(scanner).run(sys.stdin)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="memsc", description="Memory scanner.")
    commands = parser.add_subparsers(dest="command", required=True)
    type_names = list(_TYPES_BY_CLI_NAME)

    ps = commands.add_parser("ps", help="list running processes")
    ps.add_argument("filter", nargs="?", default="")
    ps.add_argument("--proc-root", default="/proc")
    ps.set_defaults(handler=_cmd_ps)

    maps = commands.add_parser("maps", help="show the memory map of a process")
    maps.add_argument("pid", type=int)
    maps.add_argument("--find", metavar="ADDRESS")
    maps.set_defaults(handler=_cmd_maps)

    read = commands.add_parser("read", help="read a value")
    read.add_argument("pid", type=int)
    read.add_argument("address")
    read.add_argument("--type", default="4bytes", choices=type_names)
    read.set_defaults(handler=_cmd_read)

    write = commands.add_parser("write", help="write a value")
    write.add_argument("pid", type=int)
    write.add_argument("address")
    write.add_argument("value")
    write.add_argument("--type", default="4bytes", choices=type_names)
    write.set_defaults(handler=_cmd_write)

    scan = commands.add_parser("scan", help="scan for a value, narrowing with each further value")
    scan.add_argument("pid", type=int)
    scan.add_argument("values", nargs="+")
    scan.add_argument("--type", default="4bytes", choices=type_names)
    scan.set_defaults(handler=_cmd_scan)

    watch = commands.add_parser("watch", help="print a value repeatedly")
    watch.add_argument("pid", type=int)
    watch.add_argument("address")
    watch.add_argument("--type", default="4bytes", choices=type_names)
    watch.add_argument("--count", type=int, default=10)
    watch.add_argument("--interval", type=int, help="milliseconds between reads")
    watch.set_defaults(handler=_cmd_watch)

    session = commands.add_parser("session", help="interactive scanning session")
    session.add_argument("pid", type=int, nargs="?")
    session.set_defaults(handler=_cmd_session)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line tool and return its exit status."""
    args = _build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except (ValueError, OSError) as exc:
        print(f"memsc: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())