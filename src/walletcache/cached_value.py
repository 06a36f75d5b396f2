from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from walletcache.broadcast import Subscription, ValueStream
from walletcache.clock import Clock, SystemClock
from walletcache.errors import CacheError, FetchFailed, FetchNotConfigured, NullOwner
from walletcache.observability.logging import current_cache_id
from walletcache.observability.metrics import CacheMetrics, create_cache_metrics
from walletcache.observability.tracing import traced_cache_operation
from walletcache.policy import CacheState, RefreshPolicy
from walletcache.signals import LifecycleEvent, LifecycleSignals

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetch = Callable[[], Awaitable[T]]


class CachedValue(Generic[T]):
    """Last successfully fetched value of an API-backed resource.

    The owner injects the fetch function; the cache decides when to call it.
    Concurrent reads that miss share a single in-flight fetch, a failed fetch
    never replaces the stored value, and nothing is retried behind the
    caller's back: the next ``read()`` is the retry.

    All state changes happen on the event loop between awaits, so the loop
    is the only serialization point needed.
    """

    def __init__(
        self,
        policy: RefreshPolicy,
        fetch: Fetch[T] | None = None,
        *,
        identifier: str = "cached-value",
        clock: Clock | None = None,
        signals: LifecycleSignals | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self._policy = policy
        self._fetch = fetch
        self._identifier = identifier
        self._clock: Clock = clock or SystemClock()
        self._metrics = metrics or create_cache_metrics()
        self._stream: ValueStream[T] = ValueStream(identifier)

        self._value: T | None = None
        self._has_value = False
        self._last_fetch_time: float | None = None
        self._state = CacheState.IDLE

        # Shared handle for the attempt in flight; cleared when it settles.
        self._inflight: asyncio.Future[T] | None = None
        # Every running attempt, including detached ones, for close().
        self._attempts: dict[asyncio.Task[None], asyncio.Future[T]] = {}
        # Bumped by flush/invalidate/close so a detached attempt cannot store.
        self._generation = 0

        self._disconnects: list[Callable[[], None]] = []
        self._refresh_task: asyncio.Task[None] | None = None
        self._closed = False

        if signals is not None:
            self.bind(signals)

    # --- Introspection -----------------------------------------------------

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def policy(self) -> RefreshPolicy:
        return self._policy

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def last_fetch_time(self) -> float | None:
        return self._last_fetch_time

    @property
    def has_value(self) -> bool:
        return self._has_value

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_usable(self) -> bool:
        if self._state is not CacheState.VALID:
            return False
        return not self._policy.is_expired(self._last_fetch_time, self._clock.now())

    def peek(self) -> T | None:
        """Last good value without triggering a fetch, even if expired."""
        return self._value

    def age(self) -> float | None:
        if self._last_fetch_time is None:
            return None
        return self._clock.now() - self._last_fetch_time

    # --- Wiring ------------------------------------------------------------

    def set_fetch(self, fetch: Fetch[T]) -> None:
        self._fetch = fetch

    def bind(self, signals: LifecycleSignals) -> None:
        """Subscribe to the login/logout signals this cache's policy reacts to."""
        if self._policy.fetches_on_login:
            self._disconnects.append(signals.connect(LifecycleEvent.LOGIN, self._on_login))
        if self._policy.flushes_on_logout or self._policy.marks_stale_on_logout:
            self._disconnects.append(signals.connect(LifecycleEvent.LOGOUT, self._on_logout))

    # --- Reads -------------------------------------------------------------

    async def read(self) -> T:
        """Return the cached value, fetching first when it is absent or expired."""
        self._ensure_open()
        if self.is_usable:
            self._record_read("hit")
            return self._value  # type: ignore[return-value]
        return await self._await(self._join_or_start("miss"))

    async def force_refresh(self) -> T:
        """Fetch regardless of TTL, or join the fetch already in flight."""
        self._ensure_open()
        return await self._await(self._join_or_start("forced"))

    def observe(self) -> Subscription[T]:
        """Subscribe to every successfully fetched value.

        The latest known value, if any, is delivered first. A background fetch
        is started when nothing usable is cached; its failure is only logged.
        """
        self._ensure_open()
        subscription = self._stream.subscribe()
        if not self.is_usable and self._inflight is None and self._fetch is not None:
            self._start_fetch()
        return subscription

    # --- Invalidation ------------------------------------------------------

    def invalidate(self) -> None:
        """Keep the value but force the next read to fetch."""
        self._detach()
        self._state = CacheState.STALE if self._has_value else CacheState.IDLE
        logger.info("Cache %s invalidated", self._identifier)

    def flush(self) -> None:
        """Drop the value; the next read fetches and new subscribers get nothing replayed."""
        self._detach()
        self._value = None
        self._has_value = False
        self._last_fetch_time = None
        self._state = CacheState.IDLE
        self._stream.reset()
        logger.info("Cache %s flushed", self._identifier)

    # --- Background refresh ------------------------------------------------

    def start_auto_refresh(self) -> None:
        """Refresh in the background once per policy interval."""
        self._ensure_open()
        interval = self._policy.interval
        if interval is None:
            raise ValueError(
                f"Auto refresh needs a time-bound policy, '{self._identifier}' uses "
                f"{self._policy.describe()}"
            )
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(
                self._refresh_loop(interval),
                name=f"walletcache-refresh-{self._identifier}",
            )

    async def stop_auto_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _refresh_loop(self, interval: float) -> None:
        while True:
            await self._clock.sleep(interval)
            try:
                await self.force_refresh()
            except NullOwner:
                return
            except CacheError:
                logger.warning(
                    "Auto refresh of %s failed; serving previous value", self._identifier
                )

    # --- Teardown ----------------------------------------------------------

    async def close(self) -> None:
        """Tear down: pending callers get ``NullOwner`` and later reads fail."""
        if self._closed:
            return
        self._closed = True
        for disconnect in self._disconnects:
            disconnect()
        self._disconnects.clear()
        await self.stop_auto_refresh()

        self._detach()
        attempts, self._attempts = self._attempts, {}
        for task, future in attempts.items():
            if not future.done():
                future.set_exception(NullOwner(self._identifier))
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._state = CacheState.IDLE
        self._stream.close()
        logger.debug("Cache %s closed", self._identifier)

    # --- Lifecycle signals -------------------------------------------------

    def _on_login(self) -> None:
        if self._closed:
            return
        self._metrics.signals_total.add(1, {"cache.id": self._identifier, "signal": "login"})
        logger.info("Login: refreshing %s", self._identifier)
        # Installs the in-flight handle now so reads issued after the signal join it.
        self._join_or_start("login")

    def _on_logout(self) -> None:
        if self._closed:
            return
        self._metrics.signals_total.add(1, {"cache.id": self._identifier, "signal": "logout"})
        if self._policy.flushes_on_logout:
            self.flush()
        elif self._policy.marks_stale_on_logout:
            self.invalidate()

    # --- Internals ---------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise NullOwner(self._identifier)

    def _join_or_start(self, outcome: str) -> asyncio.Future[T]:
        if self._inflight is not None:
            self._record_read("coalesced")
            return self._inflight
        self._record_read(outcome)
        return self._start_fetch()

    async def _await(self, future: asyncio.Future[T]) -> T:
        # A caller that gives up must not cancel the attempt others share.
        return await asyncio.shield(future)

    def _start_fetch(self) -> asyncio.Future[T]:
        if self._fetch is None:
            raise FetchNotConfigured(self._identifier)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        future.add_done_callback(self._log_outcome)
        self._inflight = future
        self._state = CacheState.FETCHING
        task = loop.create_task(
            self._run_fetch(self._fetch, future, self._generation),
            name=f"walletcache-fetch-{self._identifier}",
        )
        self._attempts[task] = future
        task.add_done_callback(lambda t: self._attempts.pop(t, None))
        logger.debug("Cache %s fetch started", self._identifier)
        return future

    async def _run_fetch(
        self, fetch: Fetch[T], future: asyncio.Future[T], generation: int
    ) -> None:
        current_cache_id.set(self._identifier)
        attributes = {"cache.id": self._identifier}
        operation = traced_cache_operation(
            "fetch", key=self._identifier, policy=self._policy.describe()
        )
        try:
            async with operation as span:
                span.set_attribute("cache.generation", generation)
                value = await fetch()
        except Exception as exc:
            self._metrics.fetch_duration.record(operation.elapsed, attributes)
            self._metrics.fetch_errors.add(1, attributes)
            self._settle_failure(future, generation, exc)
            return
        self._metrics.fetch_duration.record(operation.elapsed, attributes)
        self._settle_success(future, generation, value)

    def _settle_success(self, future: asyncio.Future[T], generation: int, value: T) -> None:
        if generation != self._generation:
            logger.info("Discarding result of detached fetch for %s", self._identifier)
            if not future.done():
                future.set_result(value)
            return

        self._value = value
        self._has_value = True
        self._last_fetch_time = self._clock.now()
        self._state = CacheState.VALID
        self._inflight = None

        if not future.done():
            future.set_result(value)
        self._stream.publish(value)
        logger.debug("Cache %s refreshed", self._identifier)

    def _settle_failure(
        self, future: asyncio.Future[T], generation: int, exc: Exception
    ) -> None:
        error: CacheError
        if isinstance(exc, NullOwner):
            error = exc
        else:
            error = FetchFailed(self._identifier, exc)
            error.__cause__ = exc
        if generation == self._generation:
            self._state = CacheState.IDLE
            self._inflight = None
        if not future.done():
            future.set_exception(error)

    def _detach(self) -> None:
        self._generation += 1
        self._inflight = None

    def _log_outcome(self, future: asyncio.Future[T]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if isinstance(exc, FetchFailed):
            logger.warning("Fetch for %s failed: %r", self._identifier, exc.underlying)

    def _record_read(self, outcome: str) -> None:
        attributes = {"cache.id": self._identifier, "cache.outcome": outcome}
        self._metrics.reads_total.add(1, attributes)
        age = self.age()
        if age is not None:
            self._metrics.value_age_seconds.set(age, {"cache.id": self._identifier})


def weak_fetch(owner: object, method: str) -> Fetch[Any]:
    """Fetch function calling ``owner.<method>()`` without keeping ``owner`` alive.

    Raises ``NullOwner`` once the owner has been garbage collected.
    """
    ref = weakref.ref(owner)
    owner_name = type(owner).__name__

    async def fetch() -> Any:
        target = ref()
        if target is None:
            raise NullOwner(owner_name)
        return await getattr(target, method)()

    return fetch
