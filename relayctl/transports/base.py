"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Link(Protocol):
    async def write(self, payload: bytes) -> None:
        """Write payload and return once the transport has flushed it."""

    async def read(self) -> bytes:
        """Return the next inbound chunk, or b"" once the stream has ended."""

    async def close(self) -> None:
        """Release the underlying connection. Safe to call more than once."""


class Transport(Protocol):
    async def open(self, address: str, *, timeout_s: float = 10.0) -> Link:
        """Open a byte stream to a peripheral."""
