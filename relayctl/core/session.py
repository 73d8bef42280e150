"""Session manager owning the single byte-stream link to a peripheral.

Status transitions::

    IDLE -> CONNECTING -> CONNECTED | FAILED
    CONNECTING | CONNECTED | FAILED -> DISCONNECTED
    DISCONNECTED | FAILED -> CONNECTING

Every transition is published on ``status_events``; every inbound chunk is
published on ``data_events``. Involuntary disconnects (peer closed the stream,
radio switched off) surface only as status events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from relayctl.core.errors import (
    ConnectError,
    NotConnectedError,
    TransportError,
    TransportWriteError,
)
from relayctl.core.events import DEFAULT_BUFFER_SIZE, EventChannel, Subscription
from relayctl.core.model import DataEvent, Peripheral, RadioState, SessionStatus, StatusEvent
from relayctl.transports.base import Link, Transport

T = TypeVar("T")

_ACTIVE = (SessionStatus.CONNECTING, SessionStatus.CONNECTED)
LOGGER = logging.getLogger(__name__)


class _Aborted(Exception):
    """An in-flight operation was cancelled by a session teardown."""


class SessionManager:
    def __init__(
        self,
        transport: Transport,
        *,
        connect_timeout_s: float = 10.0,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        if connect_timeout_s <= 0:
            raise ValueError("connect_timeout_s must be positive")
        self._transport = transport
        self._connect_timeout_s = connect_timeout_s
        self._status = SessionStatus.IDLE
        self._target: Peripheral | None = None
        self._link: Link | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Future[object]] = set()
        self._generation = 0
        self._write_lock = asyncio.Lock()
        self.status_events: EventChannel[StatusEvent] = EventChannel("status", buffer_size=buffer_size)
        self.data_events: EventChannel[DataEvent] = EventChannel("data", buffer_size=buffer_size)

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def target(self) -> Peripheral | None:
        return self._target

    @property
    def is_connected(self) -> bool:
        return self._status == SessionStatus.CONNECTED

    def subscribe_status(self, maxsize: int | None = None) -> Subscription[StatusEvent]:
        return self.status_events.subscribe(maxsize)

    def subscribe_data(self, maxsize: int | None = None) -> Subscription[DataEvent]:
        return self.data_events.subscribe(maxsize)

    async def connect(self, target: Peripheral) -> Peripheral:
        previous: tuple[asyncio.Task[None] | None, Link | None] | None = None
        if self._status in _ACTIVE:
            previous = self._detach(f"replaced by connect to {target.address}")

        self._generation += 1
        generation = self._generation
        self._target = target
        self._set_status(SessionStatus.CONNECTING)

        if previous is not None:
            await self._release(*previous)
            if generation != self._generation:
                raise ConnectError(f"Connect to {target.address} was aborted by disconnect")

        opening = self._transport.open(target.address, timeout_s=self._connect_timeout_s)
        try:
            link = await asyncio.wait_for(self._abortable(opening, generation), self._connect_timeout_s)
        except _Aborted:
            raise ConnectError(f"Connect to {target.address} was aborted by disconnect") from None
        except asyncio.TimeoutError:
            reason = f"Timed out after {self._connect_timeout_s:g}s connecting to {target.address}"
            self._fail(generation, reason)
            raise ConnectError(reason) from None
        except (TransportError, OSError) as exc:
            reason = str(exc) or exc.__class__.__name__
            self._fail(generation, reason)
            raise ConnectError(reason) from exc
        except asyncio.CancelledError:
            self._fail(generation, "connect cancelled by caller")
            raise

        if generation != self._generation:
            await self._close_link(link)
            raise ConnectError(f"Connect to {target.address} was aborted by disconnect")

        self._link = link
        self._set_status(SessionStatus.CONNECTED)
        self._reader_task = asyncio.get_running_loop().create_task(
            self._read_loop(link, target, generation)
        )
        return target

    async def send(self, payload: bytes) -> None:
        if self._status != SessionStatus.CONNECTED or self._link is None:
            raise NotConnectedError("Not connected to any device")

        generation = self._generation
        async with self._write_lock:
            link = self._link
            if self._status != SessionStatus.CONNECTED or link is None or generation != self._generation:
                raise NotConnectedError("Session ended before the write could start")
            try:
                await self._abortable(link.write(payload), generation)
            except _Aborted:
                raise TransportWriteError("Session closed while the write was in flight") from None
            except (TransportError, OSError) as exc:
                raise TransportWriteError(f"Write failed: {exc}") from exc
        LOGGER.debug("Sent %r to %s", payload, self._target.address if self._target else "?")

    async def disconnect(self) -> None:
        if self._status == SessionStatus.FAILED:
            self._set_status(SessionStatus.DISCONNECTED, "disconnect requested")
            return
        if self._status not in _ACTIVE:
            LOGGER.debug("disconnect() ignored while %s", self._status.value)
            return
        await self._teardown("disconnect requested")

    async def on_radio_state(self, state: RadioState) -> None:
        if state == RadioState.ON or self._status not in _ACTIVE:
            return
        LOGGER.warning("Radio went %s, dropping session", state.value)
        await self._teardown(f"radio {state.value}")

    async def close(self) -> None:
        await self.disconnect()
        self.status_events.close()
        self.data_events.close()

    async def _abortable(self, awaitable: Awaitable[T], generation: int) -> T:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and generation != self._generation:
                raise _Aborted() from None
            raise
        finally:
            self._pending.discard(task)

    async def _read_loop(self, link: Link, target: Peripheral, generation: int) -> None:
        while True:
            try:
                chunk = await link.read()
            except (TransportError, OSError) as exc:
                LOGGER.debug("Read from %s failed: %s", target.address, exc)
                break
            if not chunk:
                break
            if generation != self._generation:
                return
            self.data_events.publish(DataEvent(target=target, payload=chunk))

        if generation == self._generation:
            LOGGER.warning("Stream from %s closed", target.address)
            await self._teardown("stream closed")

    async def _teardown(self, reason: str) -> None:
        await self._release(*self._detach(reason))

    def _detach(self, reason: str) -> tuple[asyncio.Task[None] | None, Link | None]:
        self._generation += 1
        link, self._link = self._link, None
        reader, self._reader_task = self._reader_task, None
        for task in tuple(self._pending):
            task.cancel()
        self._set_status(SessionStatus.DISCONNECTED, reason)
        return reader, link

    async def _release(self, reader: asyncio.Task[None] | None, link: Link | None) -> None:
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        if link is not None:
            await self._close_link(link)

    async def _close_link(self, link: Link) -> None:
        try:
            await link.close()
        except (TransportError, OSError) as exc:
            LOGGER.debug("Closing link reported: %s", exc)

    def _fail(self, generation: int, reason: str) -> None:
        if generation == self._generation:
            self._set_status(SessionStatus.FAILED, reason)

    def _set_status(self, status: SessionStatus, reason: str | None = None) -> None:
        previous = self._status
        if previous == status:
            return
        self._status = status
        where = self._target.address if self._target else "-"
        if reason:
            LOGGER.info("Session %s: %s -> %s (%s)", where, previous.value, status.value, reason)
        else:
            LOGGER.info("Session %s: %s -> %s", where, previous.value, status.value)
        self.status_events.publish(
            StatusEvent(previous=previous, current=status, target=self._target, reason=reason)
        )
