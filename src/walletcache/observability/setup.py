from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry import metrics, trace

from walletcache.observability.config import TelemetryConfig

if TYPE_CHECKING:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)


def configure_telemetry(
    config: TelemetryConfig | None = None,
) -> TracerProvider | None:
    """Set up the OpenTelemetry pipelines for the wallet cache.

    Traces carry the ``cache.fetch`` spans; when ``export_metrics`` is on,
    the ``cache.*`` instruments (fetch duration, reads, value age) are
    pushed to the same collector.

    Returns the configured ``TracerProvider``, or ``None`` if telemetry is
    disabled, no endpoint is configured, or setup fails (in which case the
    spans and instruments degrade to no-ops).
    """
    if config is None:
        config = TelemetryConfig()
    config = config.resolve()

    if not config.enabled:
        logger.info("Wallet telemetry disabled (WALLET_OTEL_ENABLED=false)")
        return None

    endpoint = config.otlp_endpoint
    if endpoint is None:
        logger.info("No OTLP endpoint configured; cache telemetry will be no-op")
        return None

    try:
        resource = build_resource(config)
        provider = _tracer_provider(config, endpoint, resource)
        trace.set_tracer_provider(provider)
        if config.export_metrics:
            metrics.set_meter_provider(_meter_provider(config, endpoint, resource))
        _auto_instrument(config, provider)
    except Exception:
        logger.exception("Failed to configure OTel telemetry; cache telemetry will be no-op")
        return None

    logger.info(
        "Cache telemetry exporting to %s (protocol=%s, metrics=%s)",
        endpoint,
        config.otlp_protocol,
        config.export_metrics,
    )
    return provider


def build_resource(config: TelemetryConfig) -> Resource:
    """Resource shared by the cache's trace and metric pipelines."""
    from opentelemetry.sdk.resources import Resource

    return Resource.create(
        {
            "service.name": config.service_name,
            "service.namespace": config.service_namespace,
            "walletcache.metrics_exported": config.export_metrics,
        }
    )


def _tracer_provider(
    config: TelemetryConfig, endpoint: str, resource: Resource
) -> TracerProvider:
    from opentelemetry.sdk.trace import TracerProvider as _TracerProvider
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        SimpleSpanProcessor,
    )

    provider = _TracerProvider(resource=resource)
    exporter = _span_exporter(config, endpoint)
    if config.batch:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider


def _span_exporter(config: TelemetryConfig, endpoint: str):
    headers = dict(config.otlp_headers) or None

    if config.otlp_protocol == "http/protobuf":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )

        return OTLPSpanExporter(endpoint=endpoint, headers=headers)

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )

    return OTLPSpanExporter(endpoint=endpoint, headers=headers)


def _meter_provider(config: TelemetryConfig, endpoint: str, resource: Resource):
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

    headers = dict(config.otlp_headers) or None
    if config.otlp_protocol == "http/protobuf":
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
            OTLPMetricExporter,
        )
    else:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (  # type: ignore[assignment]
            OTLPMetricExporter,
        )
    exporter = OTLPMetricExporter(endpoint=endpoint, headers=headers)

    reader = PeriodicExportingMetricReader(
        exporter,
        export_interval_millis=config.metrics_export_interval_seconds * 1000,
    )
    return MeterProvider(resource=resource, metric_readers=[reader])


def _auto_instrument(config: TelemetryConfig, provider: TracerProvider) -> None:
    if not config.instrument_httpx:
        return
    try:
        from opentelemetry.instrumentation.httpx import (  # type: ignore[import-untyped]
            HTTPXClientInstrumentor,
        )
    except ImportError:
        logger.debug("opentelemetry-instrumentation-httpx not installed; skipping")
        return

    HTTPXClientInstrumentor().instrument(tracer_provider=provider)
    logger.debug("httpx auto-instrumentation enabled")
