from __future__ import annotations

import json
import time
from collections.abc import Callable, Coroutine
from contextlib import AbstractContextManager
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.trace import StatusCode

P = ParamSpec("P")
R = TypeVar("R")

_TRACER_NAME = "walletcache.observability"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return an OTel tracer scoped to the given name (or the default)."""
    return trace.get_tracer(name or _TRACER_NAME)


# ---------------------------------------------------------------------------
# Tool tracing decorator
# ---------------------------------------------------------------------------


def traced_tool(
    *,
    name: str | None = None,
    capture_io: bool | None = None,
) -> Callable[
    [Callable[P, Coroutine[Any, Any, R]]],
    Callable[P, Coroutine[Any, Any, R]],
]:
    """Decorator that wraps an MCP tool handler with an OTel span.

    Usage::

        @mcp.tool()
        @traced_tool()
        async def get_balance(ctx: Context) -> str:
            ...

    Args:
        name: Override the tool name (defaults to the function name).
        capture_io: Record the tool result on the span.  When ``None``,
            defers to the ``WALLET_OTEL_CAPTURE_IO`` environment variable.
    """

    def decorator(
        fn: Callable[P, Coroutine[Any, Any, R]],
    ) -> Callable[P, Coroutine[Any, Any, R]]:
        tool_name = name or fn.__name__
        tracer = get_tracer()

        @wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with tracer.start_as_current_span(f"tools/call {tool_name}") as span:
                span.set_attribute("mcp.method.name", "tools/call")
                span.set_attribute("gen_ai.tool.name", tool_name)

                try:
                    result = await fn(*args, **kwargs)
                except Exception as exc:
                    span.set_status(StatusCode.ERROR, str(exc))
                    span.record_exception(exc)
                    raise

                if _should_capture_io(capture_io) and result is not None:
                    span.set_attribute("output.value", _safe_serialize(result))

                return result

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Cache operation tracing (context manager)
# ---------------------------------------------------------------------------


class traced_cache_operation:
    """Context manager that creates an OTel span for cache operations.

    Usage::

        async with traced_cache_operation("fetch", key="unspent-outputs") as span:
            value = await fetch()
            span.set_attribute("cache.outcome", "success")
    """

    def __init__(
        self,
        operation: str,
        *,
        key: str | None = None,
        policy: str | None = None,
    ) -> None:
        self._operation = operation
        self._key = key
        self._policy = policy
        self._tracer = get_tracer()
        self._span: trace.Span | None = None
        self._scope: AbstractContextManager[Any] | None = None
        self._start: float = 0.0

    async def __aenter__(self) -> trace.Span:
        self._start = time.monotonic()
        self._span = self._tracer.start_span(f"cache.{self._operation}")
        self._scope = trace.use_span(
            self._span,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        )
        self._scope.__enter__()

        self._span.set_attribute("cache.operation", self._operation)
        if self._key is not None:
            self._span.set_attribute("cache.key", self._key)
        if self._policy is not None:
            self._span.set_attribute("cache.policy", self._policy)

        return self._span

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        assert self._span is not None

        elapsed = time.monotonic() - self._start
        self._span.set_attribute("cache.duration_ms", round(elapsed * 1000, 2))

        if exc_val is not None:
            self._span.set_status(StatusCode.ERROR, str(exc_val))
            self._span.record_exception(exc_val)

        self._span.end()
        if self._scope is not None:
            self._scope.__exit__(exc_type, exc_val, exc_tb)
            self._scope = None

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _should_capture_io(explicit: bool | None) -> bool:
    if explicit is not None:
        return explicit
    import os

    return os.getenv("WALLET_OTEL_CAPTURE_IO", "false").lower() in (
        "true",
        "1",
        "yes",
    )


def _safe_serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)
