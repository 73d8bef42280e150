from __future__ import annotations

from pathlib import Path

import pytest

from relayctl.core.command_loader import load_command_tables
from relayctl.core.errors import CommandTableValidationError


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def _write_table(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_load_packaged_table() -> None:
    loaded = load_command_tables()
    table = loaded.tables["relay_board_4ch"]
    assert list(table.commands) == ["Relay 1", "Relay 2", "Relay 3", "Relay 4"]
    assert table.commands["Relay 1"].payload(True) == b"A"
    assert table.commands["Relay 1"].payload(False) == b"a"
    assert table.commands["Relay 4"].payload(True) == b"D"
    assert loaded.warnings == ()


def test_multi_character_byte_rejected(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "relayctl" / "commands" / "bad.yaml",
        """
id: bad_bytes
name: Bad Bytes
commands:
  Pump:
    on: "ON"
    off: "o"
""",
    )

    with pytest.raises(CommandTableValidationError):
        load_command_tables()


def test_non_latin1_byte_rejected(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "relayctl" / "commands" / "wide.yaml",
        """
id: wide
name: Wide
commands:
  Lamp:
    on: "\\u20ac"
    off: "l"
""",
    )

    with pytest.raises(CommandTableValidationError) as exc:
        load_command_tables()
    assert "single byte" in str(exc.value)


def test_same_on_and_off_rejected(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "data" / "relayctl" / "commands" / "same.yaml",
        """
id: same
name: Same
commands:
  Lamp:
    on: "L"
    off: "L"
""",
    )

    with pytest.raises(CommandTableValidationError):
        load_command_tables()


def test_missing_commands_rejected(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "relayctl" / "commands" / "missing.yaml",
        """
id: missing
name: Missing
""",
    )

    with pytest.raises(CommandTableValidationError):
        load_command_tables()


def test_user_table_overrides_packaged(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "relayctl" / "commands" / "override.yaml",
        """
id: relay_board_4ch
name: Inverted Board
commands:
  Relay 1:
    on: "a"
    off: "A"
""",
    )

    loaded = load_command_tables()
    table = loaded.tables["relay_board_4ch"]
    assert table.name == "Inverted Board"
    assert table.commands["Relay 1"].payload(True) == b"a"
    assert any("overrides" in warning for warning in loaded.warnings)


def test_duplicate_yaml_keys_rejected(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "relayctl" / "commands" / "dup.yaml",
        """
id: dup
name: Duplicate
commands:
  Relay 1:
    on: "A"
    on: "B"
    off: "a"
""",
    )

    with pytest.raises(CommandTableValidationError):
        load_command_tables()


def test_unquoted_on_off_keys_stay_strings(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "relayctl" / "commands" / "garage.yml",
        """
id: garage
name: Garage Door
commands:
  Door:
    on: O
    off: C
""",
    )

    table = load_command_tables().tables["garage"]
    assert table.commands["Door"].on_byte == "O"
    assert table.commands["Door"].off_byte == "C"
