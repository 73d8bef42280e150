"""Registry of peripherals already bonded with the host."""

from __future__ import annotations

import logging

from relayctl.core.errors import PeripheralSelectionError, TransportUnavailableError
from relayctl.core.model import Peripheral, RadioState
from relayctl.core.radio import RadioStack

LOGGER = logging.getLogger(__name__)


class PeripheralRegistry:
    def __init__(self, radio: RadioStack) -> None:
        self._radio = radio
        self._last_listing: tuple[Peripheral, ...] = ()

    @property
    def last_listing(self) -> tuple[Peripheral, ...]:
        return self._last_listing

    def list_bonded(self) -> list[Peripheral]:
        state = self._radio.state()
        if state == RadioState.UNAVAILABLE:
            raise TransportUnavailableError("Bluetooth radio stack is not accessible.")
        if state == RadioState.OFF:
            raise TransportUnavailableError("Bluetooth is turned off. Enable the radio and retry.")

        devices = self._radio.bonded_devices()
        self._last_listing = tuple(devices)
        LOGGER.debug("Found %d bonded peripherals", len(devices))
        return list(devices)

    def lookup(self, address: str) -> Peripheral:
        wanted = address.strip().lower()
        for peripheral in self._last_listing:
            if peripheral.address.lower() == wanted:
                return peripheral
        raise PeripheralSelectionError(
            f"Peripheral '{address}' is not in the last bonded listing. Refresh the device list first."
        )

    def resolve(self, hint: str) -> Peripheral:
        devices = self.list_bonded()
        if not devices:
            raise PeripheralSelectionError("No bonded Bluetooth devices found. Pair the relay board first.")

        lowered = hint.strip().lower()
        exact = [d for d in devices if d.address.lower() == lowered]
        if exact:
            return exact[0]

        hinted = [
            d
            for d in devices
            if lowered in d.address.lower() or (d.name is not None and lowered in d.name.lower())
        ]
        if not hinted:
            raise PeripheralSelectionError(f"No bonded device found matching '{hint}'")
        if len(hinted) > 1:
            candidate_desc = ", ".join(f"{d.address} ({d.display_name})" for d in hinted)
            raise PeripheralSelectionError(
                f"Multiple bonded devices match '{hint}': {candidate_desc}. Use the full address."
            )
        return hinted[0]
