"""Service layer wiring registry, session, dispatcher and radio monitor together."""

from __future__ import annotations

import asyncio
import logging

from relayctl.core.command_loader import load_command_tables
from relayctl.core.config import load_settings
from relayctl.core.dispatcher import CommandDispatcher
from relayctl.core.errors import CommandTableLoadError, ConfigError, ConnectError, PeripheralSelectionError
from relayctl.core.model import CommandTable, Peripheral, RadioState, SessionStatus, Settings
from relayctl.core.radio import BluetoothctlRadio, RadioMonitor, RadioStack
from relayctl.core.registry import PeripheralRegistry
from relayctl.core.session import SessionManager
from relayctl.transports.base import Transport
from relayctl.transports.ble_gatt import BLEGATTTransport
from relayctl.transports.rfcomm import RFCOMMTransport

LOGGER = logging.getLogger(__name__)


def build_transport(settings: Settings) -> Transport:
    if settings.transport == "rfcomm":
        return RFCOMMTransport(channel=settings.rfcomm_channel)
    if settings.transport == "ble":
        return BLEGATTTransport(
            service_uuid=settings.ble_service_uuid,
            write_char_uuid=settings.ble_write_char_uuid,
            notify_char_uuid=settings.ble_notify_char_uuid,
            write_with_response=settings.ble_write_with_response,
        )
    raise ConfigError(f"Unsupported transport type '{settings.transport}'")


class RelayService:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        radio: RadioStack | None = None,
        transport: Transport | None = None,
        table: CommandTable | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.load_warnings: tuple[str, ...] = ()
        if table is None:
            loaded = load_command_tables()
            self.load_warnings = loaded.warnings
            table = loaded.tables.get(self.settings.command_table)
            if table is None:
                available = ", ".join(sorted(loaded.tables))
                raise CommandTableLoadError(
                    f"Unknown command table '{self.settings.command_table}'. Available: {available}"
                )

        self.radio = radio or BluetoothctlRadio()
        self.registry = PeripheralRegistry(self.radio)
        self.session = SessionManager(
            transport or build_transport(self.settings),
            connect_timeout_s=self.settings.connect_timeout_s,
            buffer_size=self.settings.event_buffer_size,
        )
        self.dispatcher = CommandDispatcher(self.session, table)
        self.monitor = RadioMonitor(
            self.radio,
            interval_s=self.settings.radio_poll_interval_s,
            on_change=self.session.on_radio_state,
        )

    async def start(self) -> None:
        self.monitor.start()

    async def list_bonded(self) -> list[Peripheral]:
        return await asyncio.to_thread(self.registry.list_bonded)

    async def resolve(self, device: str) -> Peripheral:
        try:
            return self.registry.lookup(device)
        except PeripheralSelectionError:
            return await asyncio.to_thread(self.registry.resolve, device)

    async def connect(self, device: str) -> Peripheral:
        target = await self.resolve(device)
        if self.monitor.current is not None and self.monitor.current != RadioState.ON:
            raise ConnectError(f"Bluetooth radio is {self.monitor.current.value}")
        return await self.session.connect(target)

    async def send_command(self, label: str, turn_on: bool) -> bytes:
        return await self.dispatcher.send(label, turn_on)

    async def send(self, payload: bytes) -> None:
        await self.session.send(payload)

    async def disconnect(self) -> None:
        await self.session.disconnect()

    async def radio_state(self) -> RadioState:
        return await self.monitor.poll_once()

    async def set_radio(self, enabled: bool) -> RadioState:
        if enabled:
            await asyncio.to_thread(self.radio.request_enable)
        else:
            await asyncio.to_thread(self.radio.request_disable)
        return await self.monitor.poll_once()

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    async def close(self) -> None:
        await self.monitor.stop()
        await self.session.close()
