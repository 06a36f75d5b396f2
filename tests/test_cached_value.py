"""Tests for CachedValue: single-flight fetches, TTL, signals and teardown."""

import asyncio
import gc

import pytest

from walletcache import (
    CachedValue,
    CacheState,
    FetchFailed,
    FetchNotConfigured,
    LifecycleEvent,
    LifecycleSignals,
    NullOwner,
    RefreshPolicy,
    weak_fetch,
)

from conftest import FakeFetch


async def _next(subscription, timeout=1.0):
    return await asyncio.wait_for(subscription.get(), timeout)


async def _until_sleeping(clock, sleepers=1):
    while clock.sleepers < sleepers:
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_reads_share_one_fetch(clock):
    fetch = FakeFetch(42)
    fetch.gate = asyncio.Event()
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    readers = [asyncio.create_task(cache.read()) for _ in range(5)]
    await asyncio.sleep(0)
    assert cache.state is CacheState.FETCHING

    fetch.gate.set()
    results = await asyncio.gather(*readers)

    assert results == [42] * 5
    assert fetch.calls == 1
    assert cache.state is CacheState.VALID


@pytest.mark.asyncio
async def test_concurrent_reads_share_the_same_error(clock):
    boom = RuntimeError("node unreachable")
    fetch = FakeFetch(boom)
    fetch.gate = asyncio.Event()
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    readers = [asyncio.create_task(cache.read()) for _ in range(3)]
    await asyncio.sleep(0)
    fetch.gate.set()
    results = await asyncio.gather(*readers, return_exceptions=True)

    assert fetch.calls == 1
    assert all(isinstance(r, FetchFailed) for r in results)
    assert results[0] is results[1] is results[2]
    assert results[0].underlying is boom


@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_value_and_is_retryable(clock):
    fetch = FakeFetch(1, RuntimeError("down"))
    cache = CachedValue(RefreshPolicy.periodic(10), fetch, clock=clock)

    assert await cache.read() == 1
    clock.advance(11)

    with pytest.raises(FetchFailed):
        await cache.read()

    assert cache.peek() == 1
    assert cache.state is CacheState.IDLE
    assert not cache.is_fetching

    fetch.results = [2]
    assert await cache.read() == 2
    assert fetch.calls == 3


@pytest.mark.asyncio
async def test_failed_fetch_is_not_retried_automatically(clock):
    fetch = FakeFetch(RuntimeError("down"))
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    with pytest.raises(FetchFailed):
        await cache.read()
    await asyncio.sleep(0)

    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_periodic_policy_respects_ttl(clock):
    fetch = FakeFetch("a", "b")
    cache = CachedValue(RefreshPolicy.periodic(10), fetch, clock=clock)

    clock.set(0)
    assert await cache.read() == "a"
    assert fetch.calls == 1

    clock.set(5)
    assert await cache.read() == "a"
    assert fetch.calls == 1

    clock.set(11)
    assert await cache.read() == "b"
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_value_exactly_at_ttl_is_still_usable(clock):
    fetch = FakeFetch("a", "b")
    cache = CachedValue(RefreshPolicy.periodic(10), fetch, clock=clock)

    await cache.read()
    clock.advance(10)

    assert cache.is_usable
    assert await cache.read() == "a"


@pytest.mark.asyncio
async def test_force_refresh_ignores_ttl(clock):
    fetch = FakeFetch(1, 2)
    cache = CachedValue(RefreshPolicy.periodic(60), fetch, clock=clock)

    await cache.read()
    assert await cache.force_refresh() == 2
    assert await cache.read() == 2
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_force_refresh_joins_fetch_in_flight(clock):
    fetch = FakeFetch(7)
    fetch.gate = asyncio.Event()
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    reader = asyncio.create_task(cache.read())
    await asyncio.sleep(0)
    refresher = asyncio.create_task(cache.force_refresh())
    await asyncio.sleep(0)
    fetch.gate.set()

    assert await reader == 7
    assert await refresher == 7
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_fetch(clock):
    fetch = FakeFetch("utxo")
    fetch.gate = asyncio.Event()
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    impatient = asyncio.create_task(cache.read())
    patient = asyncio.create_task(cache.read())
    await asyncio.sleep(0)
    impatient.cancel()
    fetch.gate.set()

    assert await patient == "utxo"
    with pytest.raises(asyncio.CancelledError):
        await impatient
    assert fetch.calls == 1
    assert cache.peek() == "utxo"


@pytest.mark.asyncio
async def test_manual_policy_never_expires(clock):
    fetch = FakeFetch(1, 2)
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    await cache.read()
    clock.advance(10_000)

    assert await cache.read() == 1
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_read_without_fetch_function_raises(clock):
    cache = CachedValue(RefreshPolicy.manual(), clock=clock)

    with pytest.raises(FetchNotConfigured):
        await cache.read()
    assert cache.state is CacheState.IDLE


@pytest.mark.asyncio
async def test_set_fetch_after_construction(clock):
    cache = CachedValue(RefreshPolicy.manual(), clock=clock)
    cache.set_fetch(FakeFetch("late"))

    assert await cache.read() == "late"


# --- observe() ---


@pytest.mark.asyncio
async def test_observe_replays_latest_and_streams_refreshes(clock):
    fetch = FakeFetch(1, 2)
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    early = cache.observe()
    assert await _next(early) == 1

    late = cache.observe()
    assert await _next(late) == 1
    assert fetch.calls == 1

    await cache.force_refresh()
    assert await _next(early) == 2
    assert await _next(late) == 2


@pytest.mark.asyncio
async def test_observe_does_not_emit_on_failure(clock):
    fetch = FakeFetch(1, RuntimeError("down"))
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)

    subscription = cache.observe()
    assert await _next(subscription) == 1

    with pytest.raises(FetchFailed):
        await cache.force_refresh()

    assert subscription.pending() == 0
    assert cache.peek() == 1


@pytest.mark.asyncio
async def test_observe_background_failure_is_not_raised(clock, caplog):
    fetch = FakeFetch(RuntimeError("down"))
    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock, identifier="balances")

    subscription = cache.observe()
    for _ in range(3):
        await asyncio.sleep(0)

    assert fetch.calls == 1
    assert subscription.pending() == 0
    assert cache.state is CacheState.IDLE
    assert "Fetch for balances failed" in caplog.text


# --- lifecycle signals ---


@pytest.mark.asyncio
async def test_logout_flushes_on_login_logout_policy(clock):
    signals = LifecycleSignals()
    fetch = FakeFetch(1, 2)
    cache = CachedValue(RefreshPolicy.on_login_logout(), fetch, clock=clock, signals=signals)

    assert await cache.read() == 1
    signals.logout()

    assert cache.peek() is None
    assert not cache.has_value
    assert cache.state is CacheState.IDLE

    assert await cache.read() == 2
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_logout_clears_replay_for_new_subscribers(clock):
    signals = LifecycleSignals()
    fetch = FakeFetch(1, 2)
    fetch.gate = asyncio.Event()
    fetch.gate.set()
    cache = CachedValue(RefreshPolicy.on_login_logout(), fetch, clock=clock, signals=signals)

    await cache.read()
    signals.logout()
    fetch.gate.clear()

    subscription = cache.observe()
    await asyncio.sleep(0)
    assert subscription.pending() == 0

    fetch.gate.set()
    assert await _next(subscription) == 2


@pytest.mark.asyncio
async def test_logout_marks_stale_on_periodic_and_login_policy(clock):
    signals = LifecycleSignals()
    fetch = FakeFetch(1, 2)
    cache = CachedValue(
        RefreshPolicy.periodic_and_login(10), fetch, clock=clock, signals=signals
    )

    await cache.read()
    signals.logout()

    assert cache.state is CacheState.STALE
    assert cache.peek() == 1

    late = cache.observe()
    assert await _next(late) == 1
    assert await _next(late) == 2
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_login_triggers_fetch_regardless_of_ttl(clock):
    signals = LifecycleSignals()
    fetch = FakeFetch(1, 2)
    cache = CachedValue(
        RefreshPolicy.periodic_and_login(10), fetch, clock=clock, signals=signals
    )

    await cache.read()
    clock.advance(1)
    signals.login()

    assert cache.is_fetching
    assert await cache.read() == 2
    assert fetch.calls == 2


@pytest.mark.asyncio
async def test_login_ignored_by_periodic_policy(clock):
    signals = LifecycleSignals()
    fetch = FakeFetch(1)
    CachedValue(RefreshPolicy.periodic(10), fetch, clock=clock, signals=signals)

    signals.login()
    await asyncio.sleep(0)

    assert fetch.calls == 0


@pytest.mark.asyncio
async def test_logout_during_fetch_detaches_the_attempt(clock):
    signals = LifecycleSignals()
    fetch = FakeFetch("old-session", "new-session")
    fetch.gate = asyncio.Event()
    cache = CachedValue(RefreshPolicy.on_login_logout(), fetch, clock=clock, signals=signals)

    reader = asyncio.create_task(cache.read())
    await asyncio.sleep(0)
    signals.logout()
    fetch.gate.set()

    assert await reader == "old-session"
    assert cache.peek() is None
    assert cache.state is CacheState.IDLE
    assert await cache.read() == "new-session"


@pytest.mark.asyncio
async def test_detached_attempt_finishing_last_never_publishes(clock):
    gates = [asyncio.Event(), asyncio.Event()]
    results = ["detached", "stored"]
    calls = 0

    async def fetch():
        nonlocal calls
        call = calls
        calls += 1
        await gates[call].wait()
        return results[call]

    cache = CachedValue(RefreshPolicy.manual(), fetch, clock=clock)
    subscription = cache.observe()
    first = asyncio.create_task(cache.read())
    await asyncio.sleep(0)

    cache.invalidate()
    second = asyncio.create_task(cache.read())
    for _ in range(3):
        await asyncio.sleep(0)
    assert calls == 2

    gates[1].set()
    assert await second == "stored"
    gates[0].set()
    assert await first == "detached"

    assert cache.peek() == "stored"
    assert cache.state is CacheState.VALID
    assert await _next(subscription) == "stored"
    assert subscription.pending() == 0
    await cache.close()


# --- teardown ---


@pytest.mark.asyncio
async def test_close_fails_pending_readers_with_null_owner(clock):
    fetch = FakeFetch(1)
    fetch.gate = asyncio.Event()
    signals = LifecycleSignals()
    cache = CachedValue(RefreshPolicy.on_login_logout(), fetch, clock=clock, signals=signals)

    reader = asyncio.create_task(cache.read())
    await asyncio.sleep(0)
    await cache.close()

    with pytest.raises(NullOwner):
        await reader
    with pytest.raises(NullOwner):
        await cache.read()
    assert cache.closed
    assert signals.handler_count(LifecycleEvent.LOGIN) == 0
    assert signals.handler_count(LifecycleEvent.LOGOUT) == 0


@pytest.mark.asyncio
async def test_close_ends_subscriptions(clock):
    cache = CachedValue(RefreshPolicy.manual(), FakeFetch(1), clock=clock)
    subscription = cache.observe()
    assert await _next(subscription) == 1

    await cache.close()

    with pytest.raises(StopAsyncIteration):
        await subscription.get()


@pytest.mark.asyncio
async def test_weak_fetch_raises_null_owner_once_owner_is_gone(clock):
    class Owner:
        async def load(self):
            return "value"

    owner = Owner()
    cache = CachedValue(RefreshPolicy.manual(), weak_fetch(owner, "load"), clock=clock)
    assert await cache.read() == "value"

    del owner
    gc.collect()
    cache.invalidate()

    with pytest.raises(NullOwner):
        await cache.read()
    assert cache.peek() == "value"


# --- background refresh ---


@pytest.mark.asyncio
async def test_auto_refresh_refetches_every_interval(clock):
    fetch = FakeFetch(1, 2, 3)
    cache = CachedValue(RefreshPolicy.periodic(5), fetch, clock=clock)

    subscription = cache.observe()
    assert await _next(subscription) == 1

    cache.start_auto_refresh()
    await _until_sleeping(clock)
    assert subscription.pending() == 0

    clock.advance(5)
    assert await _next(subscription) == 2
    await _until_sleeping(clock)
    clock.advance(5)
    assert await _next(subscription) == 3

    await cache.stop_auto_refresh()
    assert clock.sleepers == 0
    await cache.close()


@pytest.mark.asyncio
async def test_auto_refresh_requires_time_bound_policy(clock):
    cache = CachedValue(RefreshPolicy.on_login_logout(), FakeFetch(1), clock=clock)

    with pytest.raises(ValueError):
        cache.start_auto_refresh()
