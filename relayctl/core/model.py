"""Core data models used across registry, session, dispatcher, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class SessionStatus(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class RadioState(str, enum.Enum):
    ON = "on"
    OFF = "off"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Peripheral:
    address: str
    name: str | None = field(default=None, compare=False)

    @property
    def display_name(self) -> str:
        return self.name or self.address


@dataclass(frozen=True)
class Command:
    label: str
    on_byte: str
    off_byte: str

    def payload(self, turn_on: bool) -> bytes:
        return (self.on_byte if turn_on else self.off_byte).encode("latin-1")


@dataclass(frozen=True)
class CommandTable:
    id: str
    name: str
    commands: dict[str, Command]


@dataclass(frozen=True)
class StatusEvent:
    previous: SessionStatus
    current: SessionStatus
    target: Peripheral | None
    reason: str | None = None


@dataclass(frozen=True)
class DataEvent:
    target: Peripheral
    payload: bytes


@dataclass(frozen=True)
class Settings:
    transport: str = "rfcomm"
    rfcomm_channel: int = 1
    ble_service_uuid: str = "0000ffe0-0000-1000-8000-00805f9b34fb"
    ble_write_char_uuid: str = "0000ffe1-0000-1000-8000-00805f9b34fb"
    ble_notify_char_uuid: str | None = "0000ffe1-0000-1000-8000-00805f9b34fb"
    ble_write_with_response: bool = False
    connect_timeout_s: float = 10.0
    event_buffer_size: int = 64
    radio_poll_interval_s: float = 2.0
    command_table: str = "relay_board_4ch"
