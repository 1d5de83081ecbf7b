# memsc

memsc is a memory scanner for Linux processes. It reads a process's mappings
from `/proc/<pid>/maps` and searches the readable, non-executable regions for
an unsigned integer. Later scans narrow those results down. It can also read,
watch and write values at given addresses.

## Requirements

- Linux. Memory is read and written through `/proc/<pid>/mem`.
- Permission to access the target process's memory. That usually means the
  same user with a relaxed `ptrace_scope`, or root.
- Python 3.10 or newer. There are no third-party dependencies.

## Installation

```
pip install .
```

## Command line

Installing the package adds a `memsc` command with these subcommands:

- `memsc ps [FILTER] [--proc-root DIR]` lists running processes as
  `pid: name`. With a filter it keeps only the lines that contain the text,
  ignoring case.
- `memsc maps PID [--find ADDRESS]` prints the memory map of a process,
  executable regions included. With `--find` it prints only the region that
  holds the hexadecimal address.
- `memsc read PID ADDRESS [--type TYPE]` reads one value.
- `memsc write PID ADDRESS VALUE [--type TYPE]` writes one value.
- `memsc scan PID VALUE [VALUE ...] [--type TYPE]` scans for the first value,
  narrows the matches with each further value, and then lists them.
- `memsc watch PID ADDRESS [--type TYPE] [--count N] [--interval MS]` prints
  a value N times (10 by default), waiting MS milliseconds between reads.
- `memsc session [PID]` starts an interactive session. Without a PID it uses
  the auto-attach PID from the settings.

Addresses are hexadecimal and may carry a `0x` prefix. Values are unsigned
decimal numbers. `TYPE` is one of `byte`, `2bytes`, `4bytes` (the default) or
`8bytes`. The names `binary`, `float`, `double`, `string` and `bytes` are
accepted, but any command that reads, writes or scans with them fails with an
error. The command exits with status 1 and a message on standard error when
something goes wrong.

Inside a session, these commands are available:

```
type NAME          choose the value type for the next scan
scan VALUE         scan for VALUE, narrowing earlier matches
new                forget all matches and start over
list               show the matches with their current values
save INDEX         remember the match at INDEX
saved              show remembered addresses
set ADDRESS VALUE  write VALUE at ADDRESS
maps [ADDRESS]     show the memory map, or the region holding ADDRESS
help [COMMAND...]  describe commands
quit               leave the session (exit works too)
```

At most 10000 matches are listed, but the count shown covers all of them.

## Settings

Settings live in `$XDG_CONFIG_HOME/Memory Scanner/Memsc.conf`, or
`~/.config/Memory Scanner/Memsc.conf` if that variable is not set. The file
has three settings:

- `update-interval`: milliseconds between reads for `watch`. The default is
  100.
- `auto-attach`: the PID a session attaches to when none is given. The default
  is -1, meaning none.
- `scan-block-size`: the largest block read in one go during a scan. The
  default is `0x1000000`.

Missing or invalid entries fall back to their defaults. The command line only
reads this file. Use `memsc.settings.load_settings` and `save_settings` to
change it.

## Library use

```python
from memsc.process_memory import ProcessMemory, ScanType

memory = ProcessMemory()
memory.attach(1234)
matches = memory.scan(100, ScanType.U32)   # first scan: every readable region
matches = memory.scan(101, ScanType.U32)   # later scans: narrow the previous matches
value = memory.read_value(matches[0], ScanType.U32)
memory.write(matches[0], (5).to_bytes(4, "little"))
memory.reset()                             # start a new search
```

To get progress reports during a first scan, set `memory.on_progress` to a
callable that takes the number of bytes scanned so far and the total to scan.
Failures to attach or to access memory raise `ProcessMemoryError`.

Other modules:

- `memsc.maps` parses memory mappings into `AddressRange` objects with
  `parse_maps_line`, `parse_maps` and `get_memory_ranges`, and totals the
  readable ones with `readable_size`.
- `memsc.maps_view` formats ranges with `perms_to_string` and
  `format_range`, finds the range that holds an address with
  `find_range_index`, and parses addresses with `parse_hex_address`.
- `memsc.processes` lists processes with `list_processes`, labels them with
  `format_entries`, and filters the labels with `filter_entries`.
- `memsc.settings` provides `Settings`, `load_settings`, `save_settings`,
  `default_settings_path` and `parse_block_size`.

## What it does not do

- There is no graphical interface. Everything runs from the command line or
  the library.
- Only unsigned 8-, 16-, 32- and 64-bit integers can be scanned for, read or
  written. Floating-point, string, byte-array and binary values are not
  supported.
- Saved addresses last only for the session. They cannot be frozen, and they
  are not written to disk.