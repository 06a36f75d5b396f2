from __future__ import annotations

from dataclasses import dataclass, field

from opentelemetry import metrics

_METER_NAME = "walletcache.observability"


@dataclass(frozen=True)
class CacheMetrics:
    """Container for cached-value metric instruments.

    Every instrument is recorded with a ``cache.id`` attribute so values of
    different owners (balances, unspent outputs, trading pairs) can be told
    apart.
    """

    # --- Fetch lifecycle ---
    fetch_duration: metrics.Histogram = field(repr=False)
    fetch_errors: metrics.Counter = field(repr=False)

    # --- Reads ---
    reads_total: metrics.Counter = field(repr=False)

    # --- Freshness ---
    value_age_seconds: metrics.Gauge = field(repr=False)

    # --- Lifecycle signals ---
    signals_total: metrics.Counter = field(repr=False)


def create_cache_metrics(meter_name: str | None = None) -> CacheMetrics:
    """Create the cache metric instruments.

    Safe to call once per cache: OTel de-duplicates instruments by name.
    """
    meter = metrics.get_meter(meter_name or _METER_NAME)

    return CacheMetrics(
        fetch_duration=meter.create_histogram(
            name="walletcache.fetch.duration",
            description="Duration of fetches issued by a cached value",
            unit="s",
        ),
        fetch_errors=meter.create_counter(
            name="walletcache.fetch.errors",
            description="Count of failed fetch attempts",
        ),
        reads_total=meter.create_counter(
            name="walletcache.reads.total",
            description="Reads by outcome: hit, miss or coalesced",
        ),
        value_age_seconds=meter.create_gauge(
            name="walletcache.value.age_seconds",
            description="Seconds since the last successful fetch, sampled on read",
            unit="s",
        ),
        signals_total=meter.create_counter(
            name="walletcache.signals.total",
            description="Login/logout signals handled by cached values",
        ),
    )
