from __future__ import annotations

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """One subscriber's view of a :class:`ValueStream`.

    Usage::

        async with stream.subscribe() as values:
            async for value in values:
                ...
    """

    def __init__(self, stream: ValueStream[T]) -> None:
        self._stream = stream
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def _deliver(self, value: object) -> None:
        if not self._closed:
            self._queue.put_nowait(value)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        self._stream._unsubscribe(self)
        self._end()

    async def get(self) -> T:
        """Wait for the next value; raises ``StopAsyncIteration`` once closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so later calls also stop.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()


class ValueStream(Generic[T]):
    """Multicast channel that replays its latest value to new subscribers."""

    def __init__(self, name: str = "stream") -> None:
        self._name = name
        self._subscribers: list[Subscription[T]] = []
        self._latest: object = _CLOSED
        self._closed = False

    @property
    def has_value(self) -> bool:
        return self._latest is not _CLOSED

    @property
    def latest(self) -> T | None:
        return None if self._latest is _CLOSED else self._latest  # type: ignore[return-value]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, value: T) -> None:
        if self._closed:
            logger.debug("Dropping value published to closed stream %s", self._name)
            return
        self._latest = value
        for subscription in list(self._subscribers):
            subscription._deliver(value)

    def reset(self) -> None:
        """Forget the replay value without notifying subscribers."""
        self._latest = _CLOSED

    def subscribe(self) -> Subscription[T]:
        subscription: Subscription[T] = Subscription(self)
        if self._closed:
            subscription._end()
            return subscription
        if self.has_value:
            subscription._deliver(self._latest)
        self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def close(self) -> None:
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription._end()
