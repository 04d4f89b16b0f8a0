"""
Subscription streams.

A ``SubscriptionStream`` is what a backend hands out for each
``eth_subscribe``: an async iterator of items that terminates once the
stream is closed. Producers call :meth:`publish`; the facade's forwarder
task iterates with ``async for``.

Producers may run on another thread. The stream remembers the event loop
it was created on and hands off-loop calls to it with
``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

_CLOSED = object()


def _current_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class SubscriptionStream(Generic[T]):
    """
    Closeable async-iterable queue.

    ``maxsize`` bounds the backlog per subscriber; when the queue is full the
    oldest undelivered item is dropped so a slow client cannot stall the
    producer.
    """

    def __init__(self, maxsize: int = 256, on_close: Optional[Callable[["SubscriptionStream[T]"], None]] = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self._on_close = on_close
        self._loop = _current_loop()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _off_loop(self) -> bool:
        return self._loop is not None and _current_loop() is not self._loop

    def _put(self, item) -> None:
        if self._queue.qsize() >= self._maxsize:
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    def publish(self, item: T) -> bool:
        """Queue an item for the subscriber. Returns False if the stream is closed."""
        if self._closed:
            return False
        if self._off_loop():
            self._loop.call_soon_threadsafe(self._put, item)
        else:
            self._put(item)
        return True

    def close(self) -> None:
        """Close the stream; iteration ends after already-queued items."""
        if self._closed:
            return
        self._closed = True
        if self._off_loop():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        else:
            self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> "SubscriptionStream[T]":
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item
