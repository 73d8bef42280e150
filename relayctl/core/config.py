"""Settings loading: optional YAML file under XDG_CONFIG_HOME plus environment overrides."""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError

from relayctl.core.errors import ConfigError
from relayctl.core.model import Settings
from relayctl.core.yaml_io import load_schema_validator, load_yaml_mapping

_ENV_OVERRIDES = {
    "RELAYCTL_TRANSPORT": "transport",
    "RELAYCTL_CONNECT_TIMEOUT": "connect_timeout_s",
    "RELAYCTL_COMMAND_TABLE": "command_table",
}
LOGGER = logging.getLogger(__name__)


def config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "relayctl/config.yaml"


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False
    raise ConfigError(f"{context} must be boolean true/false")


def _read_file(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = load_yaml_mapping(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping at root")
    return loaded


def _env_values() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_name, key in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw.strip() == "":
            continue
        if key == "connect_timeout_s":
            try:
                values[key] = float(raw)
            except ValueError as exc:
                raise ConfigError(f"{env_name} must be a number of seconds, got '{raw}'") from exc
        else:
            values[key] = raw.strip()
    return values


def load_settings(path: Path | None = None) -> Settings:
    source = path or config_path()
    doc: dict[str, Any] = {}
    if source.exists():
        doc = _read_file(source)
        LOGGER.debug("Loaded settings from %s", source)

    doc.update(_env_values())

    validator = load_schema_validator("config.schema.json")
    try:
        validator.validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise ConfigError(f"Invalid settings{where}: {exc.message}") from exc

    if "ble_write_with_response" in doc:
        doc["ble_write_with_response"] = _normalize_bool(
            doc["ble_write_with_response"],
            context="ble_write_with_response",
        )
    if "connect_timeout_s" in doc:
        doc["connect_timeout_s"] = float(doc["connect_timeout_s"])
    if "radio_poll_interval_s" in doc:
        doc["radio_poll_interval_s"] = float(doc["radio_poll_interval_s"])
    for key in ("ble_service_uuid", "ble_write_char_uuid", "ble_notify_char_uuid"):
        if isinstance(doc.get(key), str):
            doc[key] = doc[key].strip().lower()

    return dataclasses.replace(Settings(), **doc)
