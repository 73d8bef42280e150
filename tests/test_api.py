from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import pytest

from relayctl.api import Client, NotConnectedError, SessionStatus, UnknownCommandError
from relayctl.core.model import Peripheral, RadioState, Settings


class FakeRadio:
    def __init__(self) -> None:
        self.current = RadioState.ON

    def state(self) -> RadioState:
        return self.current

    def bonded_devices(self) -> list[Peripheral]:
        return [Peripheral(address="AA:BB", name="Relay-Board")]

    def request_enable(self) -> None:
        self.current = RadioState.ON

    def request_disable(self) -> None:
        self.current = RadioState.OFF


class FakeLink:
    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.inbound: asyncio.Queue[bytes] = asyncio.Queue()

    async def write(self, payload: bytes) -> None:
        self.writes.append(payload)

    async def read(self) -> bytes:
        return await self.inbound.get()

    async def close(self) -> None:
        self.inbound.put_nowait(b"")


class FakeTransport:
    def __init__(self) -> None:
        self.links: list[FakeLink] = []

    async def open(self, address: str, *, timeout_s: float = 10.0) -> FakeLink:
        link = FakeLink()
        self.links.append(link)
        return link


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    transport = FakeTransport()
    radio = FakeRadio()
    instance = Client(settings=Settings(radio_poll_interval_s=0.01), radio=radio, transport=transport)
    instance.fake_transport = transport  # type: ignore[attr-defined]
    instance.fake_radio = radio  # type: ignore[attr-defined]
    yield instance
    instance.close()


def test_public_client_relay_round(client) -> None:
    devices = client.list_bonded().result(timeout=5)
    assert [d.address for d in devices] == ["AA:BB"]

    target = client.connect("AA:BB").result(timeout=5)
    assert target.name == "Relay-Board"
    assert client.status == SessionStatus.CONNECTED

    assert client.send_command("Relay 1", True).result(timeout=5) == b"A"
    assert client.send_command("Relay 1", False).result(timeout=5) == b"a"
    assert client.fake_transport.links[0].writes == [b"A", b"a"]

    client.disconnect().result(timeout=5)
    with pytest.raises(NotConnectedError):
        client.send_command("Relay 1", True).result(timeout=5)


def test_public_client_connect_by_name_hint(client) -> None:
    target = client.connect("relay-board").result(timeout=5)
    assert target.address == "AA:BB"


def test_public_client_unknown_command(client) -> None:
    client.connect("AA:BB").result(timeout=5)
    with pytest.raises(UnknownCommandError):
        client.send_command("Relay 9", True).result(timeout=5)
    assert client.fake_transport.links[0].writes == []


def test_public_client_status_callbacks(client) -> None:
    seen: list[SessionStatus] = []
    disconnected = threading.Event()

    def on_status(event) -> None:
        seen.append(event.current)
        if event.current == SessionStatus.DISCONNECTED:
            disconnected.set()

    client.on_status(on_status)
    client.connect("AA:BB").result(timeout=5)
    client.disconnect().result(timeout=5)

    assert disconnected.wait(timeout=5)
    assert seen == [SessionStatus.CONNECTING, SessionStatus.CONNECTED, SessionStatus.DISCONNECTED]


def test_public_client_radio_off_drops_session(client) -> None:
    client.connect("AA:BB").result(timeout=5)
    assert client.set_radio(False).result(timeout=5) == RadioState.OFF
    assert client.status == SessionStatus.DISCONNECTED
    assert client.commands() == ["Relay 1", "Relay 2", "Relay 3", "Relay 4"]
