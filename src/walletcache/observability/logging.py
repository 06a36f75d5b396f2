from __future__ import annotations

import contextvars
import logging
import sys

from opentelemetry import trace

# Identifier of the cached value whose fetch is running in the current task.
current_cache_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "walletcache_current_cache_id", default="-"
)


class TraceContextFilter(logging.Filter):
    """Logging filter that injects OTel trace/span IDs into log records.

    Adds ``trace_id`` and ``span_id`` attributes to every log record so that
    log lines can be correlated with ``cache.fetch`` spans.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        ctx = span.get_span_context()
        if ctx and ctx.trace_id:
            record.trace_id = format(ctx.trace_id, "032x")  # type: ignore[attr-defined]
            record.span_id = format(ctx.span_id, "016x")  # type: ignore[attr-defined]
        else:
            record.trace_id = ""  # type: ignore[attr-defined]
            record.span_id = ""  # type: ignore[attr-defined]
        return True


class CacheContextFilter(logging.Filter):
    """Adds ``cache_id``: the cached value a log line was emitted on behalf of."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.cache_id = current_cache_id.get()  # type: ignore[attr-defined]
        return True


def configure_logging(
    level: str = "INFO",
    *,
    include_trace_context: bool = True,
    stream: object | None = None,
) -> None:
    """Configure Python logging for the wallet cache.

    Every line carries the ``cache_id`` of the fetch it belongs to, and
    optionally the active OTel trace/span IDs.

    Args:
        level: Logging level name (e.g. ``"INFO"``, ``"DEBUG"``).
        include_trace_context: Whether to add trace/span IDs to log records.
        stream: Output stream (defaults to ``sys.stderr``).
    """
    if stream is None:
        stream = sys.stderr

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if include_trace_context:
        fmt = (
            "%(asctime)s [%(trace_id)s/%(span_id)s] [%(cache_id)s] "
            "%(name)s %(levelname)s %(message)s"
        )
    else:
        fmt = "%(asctime)s [%(cache_id)s] %(name)s %(levelname)s %(message)s"

    handler = logging.StreamHandler(stream)  # type: ignore[arg-type]
    handler.setFormatter(logging.Formatter(fmt))
    handler.addFilter(CacheContextFilter())

    if include_trace_context:
        handler.addFilter(TraceContextFilter())

    root.handlers.clear()
    root.addHandler(handler)
