"""Closable async channels used to hand work from one stage to the next."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Generic, TypeVar

from .errors import ChannelClosed

T = TypeVar("T")

_CLOSED = object()


class Channel(Generic[T]):
    """An ``asyncio.Queue`` that a producer can close.

    ``capacity`` of 0 means unbounded. Once closed and drained, every
    receiver gets ``StopAsyncIteration`` from ``async for``, so any number of
    consumers can share one channel.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = False

    async def send(self, item: T) -> None:
        """Put ``item`` on the channel, waiting while a bounded channel is full."""
        if self._closed:
            raise ChannelClosed("send on closed channel")
        await self._queue.put(item)

    async def close(self) -> None:
        """Mark the end of the stream. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    async def recv(self) -> T:
        """Wait for the next item; raise ``ChannelClosed`` once drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for the other receivers.
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed("channel closed")
        return item

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                item = await self.recv()
            except ChannelClosed:
                return
            yield item
