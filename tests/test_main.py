"""
Tests for the command-line entry point (offline commands only).
"""

import hashlib

import pytest

from cheevos.config import KEY_TOKEN, KEY_USERNAME, SETTINGS_SECTION
from cheevos.exceptions import CheevosError
from cheevos.main import load_runtime_factory, main
from cheevos.runtime.mock_runtime import MockRuntime
from cheevos.settings import SettingsStore


@pytest.fixture
def settings_path(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    store.set_string(SETTINGS_SECTION, KEY_USERNAME, "player")
    store.set_string(SETTINGS_SECTION, KEY_TOKEN, "session-token")
    store.commit()
    return path


def test_hash_prints_identity(tmp_path, settings_path, capsys):
    rom = tmp_path / "emerald.gba"
    rom.write_bytes(b"ROMDATA" * 10)
    assert main(["--settings", str(settings_path), "hash", str(rom)]) == 0
    expected = hashlib.md5(b"emerald.gba" + b"ROMDATA" * 10).hexdigest()
    assert capsys.readouterr().out.strip() == expected


def test_hash_of_missing_file_fails(tmp_path, settings_path):
    assert main(["--settings", str(settings_path), "hash", str(tmp_path / "missing.gba")]) == 1


def test_status_shows_user(settings_path, capsys):
    assert main(["--settings", str(settings_path), "status"]) == 0
    out = capsys.readouterr().out
    assert "player" in out
    assert "Hardcore:        False" in out


def test_logout_forgets_session(settings_path):
    assert main(["--settings", str(settings_path), "logout"]) == 0
    store = SettingsStore(settings_path)
    assert store.get_string(SETTINGS_SECTION, KEY_USERNAME) == ""
    assert store.get_string(SETTINGS_SECTION, KEY_TOKEN) == ""


def test_load_runtime_factory():
    assert load_runtime_factory("cheevos.runtime.mock_runtime:MockRuntime") is MockRuntime
    with pytest.raises(CheevosError):
        load_runtime_factory("cheevos.runtime.mock_runtime")
