"""Publish/subscribe channels for session notifications.

Each subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full its oldest pending event is discarded to make room
for the new one. Within one subscription events are delivered in publish order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_BUFFER_SIZE = 64
LOGGER = logging.getLogger(__name__)

_CLOSED = object()


class Subscription(Generic[T]):
    def __init__(self, channel: EventChannel[T], maxsize: int) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self.dropped = 0

    def _offer(self, item: object) -> None:
        if self._closed:
            return
        # One slot is reserved so the close marker always fits.
        if item is not _CLOSED and self._queue.qsize() >= self._maxsize:
            self._queue.get_nowait()
            self.dropped += 1
            LOGGER.debug("Subscriber on %s full, dropped oldest event", self._channel.name)
        self._queue.put_nowait(item)
        if item is _CLOSED:
            self._closed = True

    async def get(self) -> T:
        """Wait for the next event. Raises EOFError once the channel is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise EOFError(f"channel {self._channel.name} closed")
        return item  # type: ignore[return-value]

    def pending(self) -> list[T]:
        """Return and remove every event queued so far without waiting."""
        items: list[T] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            items.append(item)  # type: ignore[arg-type]
        return items

    def unsubscribe(self) -> None:
        self._channel._remove(self)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except EOFError:
            raise StopAsyncIteration from None


class EventChannel(Generic[T]):
    def __init__(self, name: str, *, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.name = name
        self.buffer_size = buffer_size
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    def subscribe(self, maxsize: int | None = None) -> Subscription[T]:
        subscription: Subscription[T] = Subscription(self, maxsize or self.buffer_size)
        if self._closed:
            subscription._offer(_CLOSED)
        else:
            self._subscribers.append(subscription)
        return subscription

    def publish(self, event: T) -> None:
        if self._closed:
            LOGGER.debug("Publish on closed channel %s ignored", self.name)
            return
        for subscription in tuple(self._subscribers):
            subscription._offer(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription._offer(_CLOSED)
        self._subscribers.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def _remove(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
