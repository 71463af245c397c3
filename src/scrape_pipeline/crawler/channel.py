"""
Closable async output channel.

Many producers, one consumer. The channel is unbounded until closed;
after close() the consumer drains what is buffered and then iteration
ends. Sends after close are refused.
"""

import asyncio
from typing import AsyncIterator, Generic, TypeVar

T = TypeVar("T")

_CLOSED = object()


class ChannelClosed(Exception):
    """Raised by receive() once a closed channel has been drained."""


class Channel(Generic[T]):
    """
    Example:
        >>> channel: Channel[RawPage] = Channel("pages")
        >>> channel.send(page)
        >>> channel.close()
        >>> async for item in channel:
        ...     handle(item)
    """

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sent_count(self) -> int:
        """Items accepted by send() so far."""
        return self._sent

    def send(self, item: T) -> bool:
        """
        Buffer ``item`` for the consumer.

        Returns:
            False if the channel is already closed and the item was dropped
        """
        if self._closed:
            return False
        self._queue.put_nowait(item)
        self._sent += 1
        return True

    def close(self) -> None:
        """Close the channel. Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def receive(self) -> T:
        """
        Wait for the next item.

        Raises:
            ChannelClosed: When the channel is closed and drained
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any later receive() call
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed(self.name)
        return item

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.receive()
            except ChannelClosed:
                return
