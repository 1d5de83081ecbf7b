import io
import os
import sys

import pytest

from memsc.cli import (
    ValueType,
    format_match,
    main,
    parse_saved_value,
    parse_search_value,
)
from memsc.maps import Perm, get_memory_ranges
from memsc.maps_view import format_range
from memsc.process_memory import ScanType
from memsc.processes import format_entries, list_processes

MISSING_PID = 99999999


def _elf_range():
    ranges = get_memory_ranges(os.getpid(), True)
    return next(
        r
        for r in ranges
        if r.offset == 0 and r.perms & Perm.READ and ".so" in r.name
    )


@pytest.mark.parametrize(
    "value_type, scan_type",
    [
        (ValueType.BYTE, ScanType.U8),
        (ValueType.BYTES_2, ScanType.U16),
        (ValueType.BYTES_4, ScanType.U32),
        (ValueType.BYTES_8, ScanType.U64),
        (ValueType.FLOAT, None),
        (ValueType.BINARY, None),
    ],
)
def test_value_type_scan_type(value_type, scan_type):
    assert value_type.scan_type is scan_type


def test_value_type_from_name_round_trip():
    for value_type in ValueType:
        assert ValueType.from_name(value_type.cli_name) is value_type


def test_value_type_from_unknown_name():
    with pytest.raises(ValueError):
        ValueType.from_name("quad")


def test_parse_search_value_plain():
    assert parse_search_value("12", ValueType.BYTES_8) == 12
    assert parse_search_value(" 7 ", ValueType.BYTES_4) == 7


def test_parse_search_value_u32_limit():
    assert parse_search_value("4294967295", ValueType.BYTES_4) == 4294967295
    with pytest.raises(ValueError):
        parse_search_value("4294967296", ValueType.BYTES_4)
    with pytest.raises(ValueError):
        parse_search_value("4294967296", ValueType.BYTE)


def test_parse_search_value_truncates_narrow_types():
    assert parse_search_value("256", ValueType.BYTE) == 0
    assert parse_search_value("65535", ValueType.BYTES_2) == 65535
    assert parse_search_value("300", ValueType.BYTE) < 256


def test_parse_search_value_u64_accepts_large():
    assert parse_search_value("18446744073709551615", ValueType.BYTES_8) == 2**64 - 1


@pytest.mark.parametrize("text", ["", "-1", "abc", "1.5", "0x10"])
def test_parse_search_value_rejects(text):
    with pytest.raises(ValueError):
        parse_search_value(text, ValueType.BYTES_4)


def test_parse_search_value_unsupported_type():
    with pytest.raises(ValueError):
        parse_search_value("5", ValueType.FLOAT)


def test_parse_saved_value_encodes_native_order():
    assert parse_saved_value("258", ValueType.BYTES_2) == (258).to_bytes(2, sys.byteorder)


def test_parse_saved_value_masks_negative():
    assert parse_saved_value("-1", ValueType.BYTE) == b"\xff"


def test_parse_saved_value_leading_integer():
    data = parse_saved_value("12xyz", ValueType.BYTES_4)
    assert int.from_bytes(data, sys.byteorder) == 12


def test_parse_saved_value_no_number_is_zero():
    assert parse_saved_value("abc", ValueType.BYTES_8) == bytes(8)


@pytest.mark.parametrize(
    "value_type", [ValueType.BYTE, ValueType.BYTES_2, ValueType.BYTES_4, ValueType.BYTES_8]
)
def test_parse_saved_value_length(value_type):
    assert len(parse_saved_value("99", value_type)) == value_type.scan_type.size


def test_parse_saved_value_unsupported():
    with pytest.raises(ValueError):
        parse_saved_value("1", ValueType.BINARY)


def test_format_match():
    assert format_match(0) == "(nil)"
    assert format_match(0x7F00) == "0x7f00"


@pytest.fixture
def fake_proc(tmp_path):
    for pid, name in [(1, "init"), (42, "worker")]:
        directory = tmp_path / str(pid)
        directory.mkdir()
        (directory / "comm").write_text(name + "\n")
    (tmp_path / "self").mkdir()
    return tmp_path


def test_main_ps_lists_processes(fake_proc, capsys):
    assert main(["ps", "--proc-root", str(fake_proc)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == format_entries(list_processes(fake_proc))
    assert "42: worker" in lines


def test_main_ps_filter(fake_proc, capsys):
    assert main(["ps", "WORK", "--proc-root", str(fake_proc)]) == 0
    assert capsys.readouterr().out.splitlines() == ["42: worker"]


def test_main_maps_find(capsys):
    target = _elf_range()
    assert main(["maps", str(os.getpid()), "--find", f"{target.start:x}"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("Start")
    assert lines[1].startswith(format_range(target)[0])


def test_main_maps_invalid_address(capsys):
    assert main(["maps", str(os.getpid()), "--find", "zz"]) == 1
    assert "memsc:" in capsys.readouterr().err


def test_main_read_elf_header(capsys):
    target = _elf_range()
    assert main(["read", str(os.getpid()), f"{target.start:x}"]) == 0
    expected = int.from_bytes(b"\x7fELF", sys.byteorder)
    assert capsys.readouterr().out.strip() == f"{format_match(target.start)}: {expected}"


def test_main_watch_reads_repeatedly(capsys):
    target = _elf_range()
    argv = ["watch", str(os.getpid()), f"{target.start:x}", "--type", "byte",
            "--count", "3", "--interval", "1"]
    assert main(argv) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [f"{format_match(target.start)}: {0x7F}"] * 3


def test_main_read_missing_process(capsys):
    assert main(["read", str(MISSING_PID), "1000"]) == 1
    assert "memsc:" in capsys.readouterr().err


def test_main_write_rejects_bad_value(capsys):
    assert main(["write", str(os.getpid()), "1000", "-5", "--type", "byte"]) == 1
    assert "memsc:" in capsys.readouterr().err


def test_main_scan_rejects_bad_value(capsys):
    assert main(["scan", str(os.getpid()), "abc"]) == 1
    assert "memsc:" in capsys.readouterr().err


def test_main_scan_unsupported_type(capsys):
    assert main(["scan", str(os.getpid()), "1", "--type", "float"]) == 1
    assert "not supported" in capsys.readouterr().err


def test_main_requires_command():
    with pytest.raises(SystemExit) as info:
        main([])
    assert info.value.code == 2


def test_session_without_pid_or_auto_attach(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert main(["session"]) == 1
    assert "auto-attach" in capsys.readouterr().err


def test_session_commands(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    target = _elf_range()
    script = (
        "list\n"
        "save 3\n"
        "type float\n"
        "scan 5\n"
        f"maps {target.start:x}\n"
        "bogus\n"
        "quit\n"
        "list\n"
    )
    monkeypatch.setattr(sys, "stdin", io.StringIO(script))
    assert main(["session", str(os.getpid())]) == 0
    captured = capsys.readouterr()
    out_lines = captured.out.splitlines()
    assert out_lines[0] == f"attached to {os.getpid()}"
    assert out_lines.count("Found: 0") == 1
    assert "type: Float" in out_lines
    assert any(line.startswith(format_range(target)[0]) for line in out_lines)
    errors = captured.err.splitlines()
    assert len(errors) == 3
    assert all(line.startswith("error:") for line in errors)