"""RFCOMM transport implementation using asyncio streams over Bluetooth sockets."""

from __future__ import annotations

import asyncio
import logging
import socket

from relayctl.core.errors import TransportConnectError, TransportSendError

_READ_CHUNK = 1024
LOGGER = logging.getLogger(__name__)


class RFCOMMLink:
    def __init__(self, address: str, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.address = address
        self._reader = reader
        self._writer = writer

    async def write(self, payload: bytes) -> None:
        if self._writer.is_closing():
            raise TransportSendError(f"RFCOMM stream to {self.address} is closed")
        try:
            self._writer.write(payload)
            await self._writer.drain()
        except (OSError, RuntimeError) as exc:
            raise TransportSendError(f"RFCOMM send failed: {exc}") from exc

    async def read(self) -> bytes:
        try:
            return await self._reader.read(_READ_CHUNK)
        except OSError as exc:
            LOGGER.debug("RFCOMM read from %s ended with error: %s", self.address, exc)
            return b""

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as exc:
            LOGGER.debug("RFCOMM close for %s reported: %s", self.address, exc)


class RFCOMMTransport:
    def __init__(self, *, channel: int = 1) -> None:
        self.channel = channel

    async def open(self, address: str, *, timeout_s: float = 10.0) -> RFCOMMLink:
        try:
            af_bluetooth = socket.AF_BLUETOOTH
            btproto_rfcomm = socket.BTPROTO_RFCOMM
        except AttributeError as exc:
            raise TransportConnectError(
                "This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)."
            ) from exc

        try:
            bt_socket = socket.socket(af_bluetooth, socket.SOCK_STREAM, btproto_rfcomm)
        except OSError as exc:
            raise TransportConnectError(f"Could not create RFCOMM socket: {exc}") from exc
        bt_socket.setblocking(False)

        loop = asyncio.get_running_loop()
        try:
            try:
                await asyncio.wait_for(loop.sock_connect(bt_socket, (address, self.channel)), timeout_s)
            except asyncio.TimeoutError as exc:
                raise TransportConnectError(
                    f"RFCOMM connect timed out for {address} on channel {self.channel}"
                ) from exc
            except OSError as exc:
                raise TransportConnectError(
                    f"RFCOMM connect failed for {address} on channel {self.channel}: {exc}"
                ) from exc
            reader, writer = await asyncio.open_connection(sock=bt_socket)
        except BaseException:
            bt_socket.close()
            raise

        LOGGER.debug("RFCOMM stream open to %s on channel %d", address, self.channel)
        return RFCOMMLink(address, reader, writer)
