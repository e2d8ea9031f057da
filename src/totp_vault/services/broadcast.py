"""Snapshot broadcast — fan a value out to every active subscriber.

There is no replay: a subscriber only sees values published after it
subscribed.  Owners expose the latest value through their own accessor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


class Subscription(Generic[T]):
    """Async iterator over the values published on one channel.

    Iteration ends when the channel is closed and raises the channel's
    error if it failed.
    """

    def __init__(self, channel: SnapshotChannel[T]) -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.error
        return item

    async def next(self) -> T:
        """Wait for the next value (``StopAsyncIteration`` once closed)."""
        return await self.__anext__()

    def close(self) -> None:
        """Stop receiving values."""
        self._channel._detach(self)
        self._queue.put_nowait(_CLOSED)

    def _deliver(self, item: object) -> None:
        self._queue.put_nowait(item)


class SnapshotChannel(Generic[T]):
    """One logical stream of snapshots.

    A channel ends either by :meth:`close` or by :meth:`fail`; after that
    it accepts neither subscribers nor values, and its owner is expected
    to swap in a fresh channel.
    """

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        if self._closed:
            raise RuntimeError(f"{self.name} is closed")
        sub: Subscription[T] = Subscription(self)
        self._subscribers.append(sub)
        return sub

    def publish(self, value: T) -> None:
        if self._closed:
            raise RuntimeError(f"{self.name} is closed")
        for sub in list(self._subscribers):
            sub._deliver(value)

    def fail(self, error: BaseException) -> None:
        """Terminate every subscription with *error*."""
        logger.debug("%s failed: %s", self.name, error)
        self._end(_Failure(error))

    def close(self) -> None:
        self._end(_CLOSED)

    def _end(self, item: object) -> None:
        if self._closed:
            return
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub._deliver(item)

    def _detach(self, sub: Subscription[T]) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
