from __future__ import annotations

import asyncio
import subprocess

import pytest

from relayctl.core.errors import TransportUnavailableError
from relayctl.core.model import RadioState
from relayctl.core.radio import BluetoothctlRadio, RadioMonitor


def _cp(cmd: list[str], rc: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(cmd, rc, stdout=stdout, stderr=stderr)


_SHOW_ON = """Controller 00:1A:7D:DA:71:13 (public)
\tName: host
\tPowered: yes
\tDiscoverable: no
"""


def test_state_reads_powered_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    outputs = {"yes": _SHOW_ON, "no": _SHOW_ON.replace("Powered: yes", "Powered: no")}
    current = {"value": "yes"}

    def fake_run(cmd, check, capture_output, text):
        assert cmd == ["bluetoothctl", "show"]
        return _cp(cmd, 0, stdout=outputs[current["value"]])

    monkeypatch.setattr(subprocess, "run", fake_run)

    radio = BluetoothctlRadio()
    assert radio.state() == RadioState.ON
    current["value"] = "no"
    assert radio.state() == RadioState.OFF


def test_state_unavailable_without_bluetoothctl(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert BluetoothctlRadio().state() == RadioState.UNAVAILABLE


def test_state_unavailable_without_controller(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text):
        return _cp(cmd, 1, stderr="No default controller available")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert BluetoothctlRadio().state() == RadioState.UNAVAILABLE


def test_bonded_devices_falls_back_to_paired_devices(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text):
        if cmd == ["bluetoothctl", "devices", "Paired"]:
            return _cp(cmd, 1, stderr="Invalid argument Paired")
        if cmd == ["bluetoothctl", "paired-devices"]:
            return _cp(
                cmd,
                0,
                stdout=(
                    "Device 98:d3:31:f5:12:34 HC-05\n"
                    "Device 98:D3:31:F5:12:34 HC-05\n"
                    "Device 00:11:22:33:44:55\n"
                ),
            )
        raise AssertionError(f"Unexpected cmd: {cmd}")

    monkeypatch.setattr(subprocess, "run", fake_run)

    devices = BluetoothctlRadio().bonded_devices()
    assert [d.address for d in devices] == ["98:D3:31:F5:12:34", "00:11:22:33:44:55"]
    assert devices[0].name == "HC-05"
    assert devices[1].name is None


def test_bonded_devices_raises_when_all_commands_fail(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text):
        return _cp(cmd, -6, stderr="dbus crashed")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransportUnavailableError) as exc:
        BluetoothctlRadio().bonded_devices()
    assert "dbus crashed" in str(exc.value)


def test_power_requests(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd, check, capture_output, text):
        calls.append(cmd)
        if cmd[-1] == "off":
            return _cp(cmd, 1, stdout="Failed to set power off: org.bluez.Error.Blocked")
        return _cp(cmd, 0, stdout="Changing power on succeeded")

    monkeypatch.setattr(subprocess, "run", fake_run)

    radio = BluetoothctlRadio()
    radio.request_enable()
    with pytest.raises(TransportUnavailableError) as exc:
        radio.request_disable()
    assert "Blocked" in str(exc.value)
    assert calls == [["bluetoothctl", "power", "on"], ["bluetoothctl", "power", "off"]]


class ScriptedRadio:
    def __init__(self, states: list[RadioState]) -> None:
        self.states = states

    def state(self) -> RadioState:
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    def bonded_devices(self):
        return []

    def request_enable(self) -> None:
        pass

    def request_disable(self) -> None:
        pass


def test_monitor_publishes_only_changes_and_notifies_callback() -> None:
    seen: list[RadioState] = []

    async def on_change(state: RadioState) -> None:
        seen.append(state)

    async def scenario() -> None:
        monitor = RadioMonitor(
            ScriptedRadio([RadioState.ON, RadioState.ON, RadioState.OFF, RadioState.ON]),
            on_change=on_change,
        )
        states = monitor.states.subscribe()
        for _ in range(4):
            await monitor.poll_once()

        assert states.pending() == [RadioState.ON, RadioState.OFF, RadioState.ON]
        assert monitor.current == RadioState.ON
        await monitor.stop()

    asyncio.run(scenario())
    assert seen == [RadioState.ON, RadioState.OFF, RadioState.ON]


def test_monitor_background_polling() -> None:
    async def scenario() -> None:
        monitor = RadioMonitor(ScriptedRadio([RadioState.ON, RadioState.OFF]), interval_s=0.01)
        states = monitor.states.subscribe()
        monitor.start()
        first = await asyncio.wait_for(states.get(), 1.0)
        second = await asyncio.wait_for(states.get(), 1.0)
        await monitor.stop()
        assert (first, second) == (RadioState.ON, RadioState.OFF)
        assert monitor.states.closed

    asyncio.run(scenario())


class FlakyRadio(ScriptedRadio):
    def __init__(self, script: list[RadioState | Exception]) -> None:
        super().__init__([])
        self.script = script

    def state(self) -> RadioState:
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step


def test_monitor_keeps_polling_after_radio_error() -> None:
    async def scenario() -> None:
        radio = FlakyRadio([RadioState.ON, PermissionError(13, "Permission denied"), RadioState.OFF])
        monitor = RadioMonitor(radio, interval_s=0.01)
        states = monitor.states.subscribe()
        monitor.start()
        first = await asyncio.wait_for(states.get(), 1.0)
        second = await asyncio.wait_for(states.get(), 1.0)
        await monitor.stop()
        assert (first, second) == (RadioState.ON, RadioState.OFF)

    asyncio.run(scenario())


def test_monitor_retries_change_when_callback_fails() -> None:
    calls: list[RadioState] = []

    async def on_change(state: RadioState) -> None:
        calls.append(state)
        if len(calls) == 1:
            raise TransportUnavailableError("link still closing")

    async def scenario() -> None:
        monitor = RadioMonitor(ScriptedRadio([RadioState.OFF]), interval_s=0.01, on_change=on_change)
        states = monitor.states.subscribe()

        with pytest.raises(TransportUnavailableError):
            await monitor.poll_once()
        assert monitor.current is None
        assert states.pending() == []

        monitor.start()
        assert await asyncio.wait_for(states.get(), 1.0) == RadioState.OFF
        await monitor.stop()
        assert monitor.current == RadioState.OFF

    asyncio.run(scenario())
    assert calls == [RadioState.OFF, RadioState.OFF]
