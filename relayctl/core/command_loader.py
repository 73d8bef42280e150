"""Command table loading and validation for YAML-based relay command tables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError

from relayctl.core.errors import CommandTableLoadError, CommandTableValidationError
from relayctl.core.model import Command, CommandTable
from relayctl.core.yaml_io import load_schema_validator, load_yaml_mapping, read_text

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedCommandTables:
    tables: dict[str, CommandTable]
    warnings: tuple[str, ...]


def _table_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "relayctl/commands", xdg_data / "relayctl/commands"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = read_text(path)
    except OSError as exc:
        raise CommandTableLoadError(f"Could not read command table {path}: {exc}") from exc

    try:
        loaded = load_yaml_mapping(content)
    except yaml.YAMLError as exc:
        raise CommandTableValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise CommandTableValidationError(f"Command table {path} must contain a mapping at root")
    return loaded


def _normalize_byte(value: str, *, context: str) -> str:
    if len(value) != 1:
        raise CommandTableValidationError(f"{context} must be exactly one character")
    if ord(value) > 0xFF:
        raise CommandTableValidationError(f"{context} must fit in a single byte (latin-1)")
    return value


def build_command_table(doc: dict[str, Any], source: Path | Traversable | str) -> CommandTable:
    validator = load_schema_validator("command_table.schema.json")
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise CommandTableValidationError(
            f"Schema validation failed for {source}{where}: {exc.message}"
        ) from exc

    commands: dict[str, Command] = {}
    for label, spec in doc["commands"].items():
        label = str(label)
        context = f"{doc['id']}.{label}"
        on_byte = _normalize_byte(spec["on"], context=f"{context}.on")
        off_byte = _normalize_byte(spec["off"], context=f"{context}.off")
        if on_byte == off_byte:
            raise CommandTableValidationError(f"{context} uses the same byte for on and off")
        commands[label] = Command(label=label, on_byte=on_byte, off_byte=off_byte)

    return CommandTable(id=doc["id"], name=doc["name"], commands=commands)


def _iter_packaged_table_paths() -> list[Traversable]:
    table_root = resources.files("relayctl.commands")
    return [item for item in table_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_table_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _table_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_command_tables() -> LoadedCommandTables:
    tables: dict[str, CommandTable] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_table_paths(), key=lambda p: p.name):
        table = build_command_table(_read_yaml(path), path)
        tables[table.id] = table

    for path in _iter_user_table_paths():
        table = build_command_table(_read_yaml(path), path)
        if table.id in tables:
            warning = f"User command table '{table.id}' overrides packaged table"
            LOGGER.warning(warning)
            warnings.append(warning)
        tables[table.id] = table

    return LoadedCommandTables(tables=tables, warnings=tuple(warnings))
