"""Radio stack boundary backed by BlueZ's bluetoothctl, plus a state monitor."""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from relayctl.core.errors import RelayctlError, TransportUnavailableError
from relayctl.core.events import EventChannel
from relayctl.core.model import Peripheral, RadioState

_DEVICE_LINE_RE = re.compile(r"^Device\s+([0-9A-F:]{17})(?:\s+(.+))?$", re.IGNORECASE)
_POWERED_RE = re.compile(r"^\s*Powered:\s*(yes|no)\s*$", re.IGNORECASE | re.MULTILINE)
LOGGER = logging.getLogger(__name__)


class RadioStack(Protocol):
    def state(self) -> RadioState: ...

    def bonded_devices(self) -> list[Peripheral]: ...

    def request_enable(self) -> None: ...

    def request_disable(self) -> None: ...


class BluetoothctlRadio:
    def state(self) -> RadioState:
        result = _run_bluetoothctl(["bluetoothctl", "show"])
        if result is None or result.returncode != 0:
            return RadioState.UNAVAILABLE
        match = _POWERED_RE.search(result.stdout)
        if match is None:
            return RadioState.UNAVAILABLE
        return RadioState.ON if match.group(1).lower() == "yes" else RadioState.OFF

    def bonded_devices(self) -> list[Peripheral]:
        commands = [
            ["bluetoothctl", "devices", "Paired"],
            ["bluetoothctl", "paired-devices"],
        ]

        command_errors: list[str] = []
        for cmd in commands:
            result = _run_bluetoothctl(cmd)
            if result is None:
                raise TransportUnavailableError("bluetoothctl not found. Install BlueZ utilities.")
            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                if stderr:
                    command_errors.append(f"{' '.join(cmd)} -> {stderr}")
                continue
            return _parse_device_lines(result.stdout)

        joined = " | ".join(command_errors) or "no output"
        raise TransportUnavailableError(
            f"Could not list bonded devices. Ensure a working D-Bus/BlueZ session. Details: {joined}"
        )

    def request_enable(self) -> None:
        self._power("on")

    def request_disable(self) -> None:
        self._power("off")

    def _power(self, value: str) -> None:
        cmd = ["bluetoothctl", "power", value]
        result = _run_bluetoothctl(cmd)
        if result is None:
            raise TransportUnavailableError("bluetoothctl not found. Install BlueZ utilities.")
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise TransportUnavailableError(f"Could not power {value} the radio: {detail}")
        LOGGER.info("Radio power %s requested", value)


class RadioMonitor:
    """Polls a radio stack and publishes state changes.

    The optional ``on_change`` coroutine is awaited for every change, before the
    change is published to subscribers. ``current`` only advances once the
    callback returns, so a failed callback is retried on the next poll.
    """

    def __init__(
        self,
        radio: RadioStack,
        *,
        interval_s: float = 2.0,
        on_change: Callable[[RadioState], Awaitable[None]] | None = None,
        buffer_size: int = 16,
    ) -> None:
        self._radio = radio
        self._interval_s = interval_s
        self._on_change = on_change
        self.states: EventChannel[RadioState] = EventChannel("radio", buffer_size=buffer_size)
        self.current: RadioState | None = None
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self.states.close()

    async def poll_once(self) -> RadioState:
        state = await asyncio.to_thread(self._radio.state)
        if state != self.current:
            if self._on_change is not None:
                await self._on_change(state)
            previous, self.current = self.current, state
            LOGGER.info("Radio state %s -> %s", previous.value if previous else "unknown", state.value)
            self.states.publish(state)
        return state

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except (RelayctlError, OSError) as exc:
                LOGGER.warning("Radio poll failed, retrying in %gs: %s", self._interval_s, exc)
            await asyncio.sleep(self._interval_s)


def _parse_device_lines(output: str) -> list[Peripheral]:
    seen: set[str] = set()
    devices: list[Peripheral] = []
    for line in output.splitlines():
        match = _DEVICE_LINE_RE.match(line.strip())
        if not match:
            continue
        address = match.group(1).upper()
        if address in seen:
            continue
        seen.add(address)
        name = (match.group(2) or "").strip() or None
        devices.append(Peripheral(address=address, name=name))
    return devices


def _run_bluetoothctl(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None
