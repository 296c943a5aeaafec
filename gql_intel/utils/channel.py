"""
Bounded, closable async channel

asyncio.Queue plus an explicit closed state. Senders block while the buffer
is full; receivers get None once the channel is closed and drained.
"""

import asyncio
from collections import deque
from typing import Any, Optional


class ChannelClosed(Exception):
    """Raised when sending on a closed channel."""


class Channel:
    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()
        # items taken off the queue by a receiver that was cancelled before returning
        self._stash: deque = deque()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize() + len(self._stash)

    async def send(self, item: Any) -> None:
        if item is None:
            raise ValueError("None is reserved as the end-of-channel marker")
        if self._closed.is_set():
            raise ChannelClosed()
        await self._queue.put(item)

    def close(self) -> None:
        """Mark the channel closed. Items already buffered can still be received."""
        self._closed.set()

    async def recv(self) -> Optional[Any]:
        """Next item, or None once the channel is closed and empty."""
        while True:
            if self._stash:
                return self._stash.popleft()
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._closed.is_set():
                return None

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                if getter.done() and not getter.cancelled():
                    self._stash.append(getter.result())
                raise
            finally:
                for fut in (getter, closer):
                    if not fut.done():
                        fut.cancel()

            if getter in done and not getter.cancelled():
                return getter.result()
            # closed while waiting: loop to drain whatever is left

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.recv()
        if item is None:
            raise StopAsyncIteration
        return item
