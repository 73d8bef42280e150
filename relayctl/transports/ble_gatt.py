"""BLE serial transport (HM-10 / Nordic UART style modules) built on bleak."""

from __future__ import annotations

import asyncio
import logging

from bleak import BleakClient
from bleak.exc import BleakError

from relayctl.core.errors import TransportConnectError, TransportSendError

LOGGER = logging.getLogger(__name__)


class BLEGATTLink:
    def __init__(
        self,
        client: BleakClient,
        inbound: asyncio.Queue[bytes],
        *,
        write_char_uuid: str,
        notify_char_uuid: str | None,
        write_with_response: bool,
    ) -> None:
        self._client = client
        self._inbound = inbound
        self._write_char_uuid = write_char_uuid
        self._notify_char_uuid = notify_char_uuid
        self._write_with_response = write_with_response
        self._closed = False

    async def write(self, payload: bytes) -> None:
        if self._closed or not self._client.is_connected:
            raise TransportSendError(f"BLE link to {self._client.address} is not connected")
        try:
            await self._client.write_gatt_char(
                self._write_char_uuid,
                payload,
                response=self._write_with_response,
            )
        except (BleakError, OSError) as exc:
            raise TransportSendError(f"BLE GATT send failed: {exc}") from exc

    async def read(self) -> bytes:
        return await self._inbound.get()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbound.put_nowait(b"")
        if self._notify_char_uuid and self._client.is_connected:
            try:
                await self._client.stop_notify(self._notify_char_uuid)
            except (BleakError, OSError) as exc:
                LOGGER.debug("BLE stop_notify failed: %s", exc)
        try:
            await self._client.disconnect()
        except (BleakError, OSError) as exc:
            LOGGER.debug("BLE disconnect failed: %s", exc)


class BLEGATTTransport:
    def __init__(
        self,
        *,
        service_uuid: str,
        write_char_uuid: str,
        notify_char_uuid: str | None = None,
        write_with_response: bool = False,
    ) -> None:
        self.service_uuid = service_uuid
        self.write_char_uuid = write_char_uuid
        self.notify_char_uuid = notify_char_uuid
        self.write_with_response = write_with_response

    async def open(self, address: str, *, timeout_s: float = 10.0) -> BLEGATTLink:
        inbound: asyncio.Queue[bytes] = asyncio.Queue()

        def _notify_handler(_: object, data: bytearray) -> None:
            if data:
                inbound.put_nowait(bytes(data))

        def _disconnected(_: BleakClient) -> None:
            LOGGER.debug("BLE peripheral %s dropped the connection", address)
            inbound.put_nowait(b"")

        client = BleakClient(address, disconnected_callback=_disconnected, timeout=timeout_s)
        try:
            await client.connect()
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise TransportConnectError(f"BLE connect failed for {address}: {exc}") from exc

        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {address}")

        try:
            if client.services.get_service(self.service_uuid) is None:
                raise TransportConnectError(
                    f"BLE peripheral {address} does not expose service {self.service_uuid}"
                )
            if self.notify_char_uuid:
                await client.start_notify(self.notify_char_uuid, _notify_handler)
        except (BleakError, OSError) as exc:
            await client.disconnect()
            raise TransportConnectError(f"BLE notify setup failed for {address}: {exc}") from exc
        except BaseException:
            await client.disconnect()
            raise

        return BLEGATTLink(
            client,
            inbound,
            write_char_uuid=self.write_char_uuid,
            notify_char_uuid=self.notify_char_uuid,
            write_with_response=self.write_with_response,
        )
