from __future__ import annotations

from walletcache.observability.config import TelemetryConfig
from walletcache.observability.setup import configure_telemetry
from walletcache.observability.tracing import (
    get_tracer,
    traced_tool,
    traced_cache_operation,
)
from walletcache.observability.logging import (
    configure_logging,
    current_cache_id,
    CacheContextFilter,
    TraceContextFilter,
)
from walletcache.observability.metrics import create_cache_metrics, CacheMetrics

__all__ = [
    "TelemetryConfig",
    "configure_telemetry",
    "configure_logging",
    "current_cache_id",
    "CacheContextFilter",
    "TraceContextFilter",
    "get_tracer",
    "traced_tool",
    "traced_cache_operation",
    "create_cache_metrics",
    "CacheMetrics",
]
