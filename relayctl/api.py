"""Stable public API for building presentation layers on top of relayctl.

This module is the supported integration surface for GUIs, TUIs and scripts.
Every operation returns a ``concurrent.futures.Future`` resolved on the
client's own event-loop thread, so callers on a UI thread never block unless
they choose to wait on ``.result()``.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from relayctl.core.errors import (
    CommandTableLoadError,
    CommandTableValidationError,
    ConfigError,
    ConnectError,
    NotConnectedError,
    PeripheralSelectionError,
    RelayctlError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportUnavailableError,
    TransportWriteError,
    UnknownCommandError,
)
from relayctl.core.events import EventChannel
from relayctl.core.model import (
    Command,
    CommandTable,
    DataEvent,
    Peripheral,
    RadioState,
    SessionStatus,
    Settings,
    StatusEvent,
)
from relayctl.core.radio import RadioStack
from relayctl.core.service import RelayService
from relayctl.transports.base import Link, Transport

__all__ = [
    "RelayctlError",
    "CommandTableLoadError",
    "CommandTableValidationError",
    "ConfigError",
    "ConnectError",
    "NotConnectedError",
    "PeripheralSelectionError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportUnavailableError",
    "TransportWriteError",
    "UnknownCommandError",
    "Command",
    "CommandTable",
    "DataEvent",
    "Peripheral",
    "RadioState",
    "SessionStatus",
    "Settings",
    "StatusEvent",
    "Link",
    "RadioStack",
    "Transport",
    "Client",
]

T = TypeVar("T")
LOGGER = logging.getLogger(__name__)


class Client:
    """Public client for the relay session core.

    A `Client` owns one background event loop that runs the session manager,
    the radio monitor and every transport operation. Status and data callbacks
    registered with `on_status` / `on_data` are invoked on that loop thread and
    must hand work off to the UI thread themselves.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        radio: RadioStack | None = None,
        transport: Transport | None = None,
        table: CommandTable | None = None,
    ) -> None:
        self._service = RelayService(settings=settings, radio=radio, transport=transport, table=table)
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="relayctl-loop", daemon=True)
        self._thread.start()
        self._closed = False
        self._submit(self._service.start()).result()

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def status(self) -> SessionStatus:
        return self._service.status

    @property
    def target(self) -> Peripheral | None:
        return self._service.session.target

    @property
    def command_table(self) -> CommandTable:
        return self._service.dispatcher.table

    def commands(self) -> list[str]:
        return self._service.dispatcher.labels()

    def list_bonded(self) -> concurrent.futures.Future[list[Peripheral]]:
        return self._submit(self._service.list_bonded())

    def connect(self, device: str) -> concurrent.futures.Future[Peripheral]:
        """Connect to a bonded device by address, or by a unique address/name fragment."""
        return self._submit(self._service.connect(device))

    def send_command(self, label: str, turn_on: bool) -> concurrent.futures.Future[bytes]:
        return self._submit(self._service.send_command(label, turn_on))

    def send(self, payload: bytes) -> concurrent.futures.Future[None]:
        return self._submit(self._service.send(payload))

    def disconnect(self) -> concurrent.futures.Future[None]:
        return self._submit(self._service.disconnect())

    def radio_state(self) -> concurrent.futures.Future[RadioState]:
        return self._submit(self._service.radio_state())

    def set_radio(self, enabled: bool) -> concurrent.futures.Future[RadioState]:
        return self._submit(self._service.set_radio(enabled))

    def on_status(self, callback: Callable[[StatusEvent], None]) -> Callable[[], None]:
        """Register a status callback. Returns a function that unregisters it."""
        return self._watch(self._service.session.status_events, callback)

    def on_data(self, callback: Callable[[DataEvent], None]) -> Callable[[], None]:
        """Register an inbound data callback. Returns a function that unregisters it."""
        return self._watch(self._service.session.data_events, callback)

    def on_radio(self, callback: Callable[[RadioState], None]) -> Callable[[], None]:
        return self._watch(self._service.monitor.states, callback)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._submit(self._shutdown()).result()
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        if self._loop.is_closed():
            coro.close()
            raise RuntimeError("Client is closed")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    async def _shutdown(self) -> None:
        await self._service.close()
        current = asyncio.current_task()
        pending = [task for task in asyncio.all_tasks() if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def _watch(self, channel: EventChannel[Any], callback: Callable[[Any], None]) -> Callable[[], None]:
        async def _start() -> asyncio.Task[None]:
            subscription = channel.subscribe()

            async def _pump() -> None:
                try:
                    async for event in subscription:
                        try:
                            callback(event)
                        except Exception:
                            LOGGER.exception("%s callback raised", channel.name)
                finally:
                    subscription.unsubscribe()

            return asyncio.get_running_loop().create_task(_pump())

        task = self._submit(_start()).result()

        def _cancel() -> None:
            if not self._loop.is_closed():
                self._loop.call_soon_threadsafe(task.cancel)

        return _cancel
