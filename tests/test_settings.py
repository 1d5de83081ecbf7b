from pathlib import Path

import pytest

from memsc.settings import (
    Settings,
    default_settings_path,
    load_settings,
    parse_block_size,
    save_settings,
)


def test_defaults():
    settings = Settings()
    assert settings.update_interval == 100
    assert settings.auto_attach == -1
    assert settings.scan_block_size == 0x1000000


@pytest.mark.parametrize(
    "kwargs",
    [
        {"update_interval": 0},
        {"update_interval": 60001},
        {"auto_attach": -2},
        {"scan_block_size": -1},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_parse_block_size_bases():
    assert parse_block_size("0x1000000") == 0x1000000
    assert parse_block_size("0XfF") == 0xFF
    assert parse_block_size("010") == 0o10
    assert parse_block_size("4096") == 4096
    assert parse_block_size("0") == 0


@pytest.mark.parametrize(
    "text", ["", "0x", "08", "-1", "abc", "0b101", " 10", str(2**64)]
)
def test_parse_block_size_rejects(text):
    with pytest.raises(ValueError):
        parse_block_size(text)


def test_round_trip(tmp_path: Path):
    path = tmp_path / "nested" / "Memsc.conf"
    original = Settings(update_interval=250, auto_attach=1234, scan_block_size=0x10000)
    save_settings(original, path)
    assert path.exists()
    assert load_settings(path) == original


def test_load_missing_file_gives_defaults(tmp_path: Path):
    assert load_settings(tmp_path / "absent.conf") == Settings()


def test_load_invalid_values_fall_back(tmp_path: Path):
    path = tmp_path / "Memsc.conf"
    path.write_text(
        "[%General]\nupdate-interval=abc\nauto-attach=-7\nscan-block-size=0x40\n"
    )
    settings = load_settings(path)
    assert settings.update_interval == Settings().update_interval
    assert settings.auto_attach == Settings().auto_attach
    assert settings.scan_block_size == 0x40


def test_load_plain_general_section(tmp_path: Path):
    path = tmp_path / "Memsc.conf"
    path.write_text("[General]\nupdate-interval=500\n")
    settings = load_settings(path)
    assert settings.update_interval == 500
    assert settings.scan_block_size == Settings().scan_block_size


def test_default_settings_path(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert default_settings_path() == tmp_path / "Memory Scanner" / "Memsc.conf"


def test_default_path_used_for_save_and_load(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    original = Settings(update_interval=42)
    save_settings(original)
    assert default_settings_path().exists()
    assert load_settings() == original