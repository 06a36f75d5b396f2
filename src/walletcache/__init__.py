from __future__ import annotations

from walletcache.broadcast import Subscription, ValueStream
from walletcache.cached_value import CachedValue, weak_fetch
from walletcache.clock import Clock, SystemClock, VirtualClock
from walletcache.errors import CacheError, FetchFailed, FetchNotConfigured, NullOwner
from walletcache.policy import CacheState, RefreshKind, RefreshPolicy
from walletcache.signals import LifecycleEvent, LifecycleSignals

__all__ = [
    "CachedValue",
    "weak_fetch",
    "RefreshPolicy",
    "RefreshKind",
    "CacheState",
    "ValueStream",
    "Subscription",
    "Clock",
    "SystemClock",
    "VirtualClock",
    "LifecycleEvent",
    "LifecycleSignals",
    "CacheError",
    "FetchFailed",
    "FetchNotConfigured",
    "NullOwner",
]
