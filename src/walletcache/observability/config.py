from __future__ import annotations

import os

from pydantic import BaseModel, Field


class TelemetryConfig(BaseModel):
    """Configuration for wallet cache telemetry and logging."""

    service_name: str = Field(
        default="wallet-cache",
        description="OTel service name; used as the primary identifier in traces.",
    )
    service_namespace: str = Field(
        default="wallet",
        description=(
            "service.namespace resource attribute shared by the wallet services. "
            "Falls back to WALLET_OTEL_NAMESPACE."
        ),
    )
    enabled: bool = Field(
        default=True,
        description="Master switch for OTel instrumentation. Falls back to WALLET_OTEL_ENABLED.",
    )
    otlp_endpoint: str | None = Field(
        default=None,
        description=(
            "OTLP endpoint (e.g. http://localhost:4317). Tracing is a no-op when "
            "unset. Falls back to OTEL_EXPORTER_OTLP_ENDPOINT env var."
        ),
    )
    otlp_protocol: str = Field(
        default="grpc",
        description="OTLP protocol: 'grpc' or 'http/protobuf'.",
    )
    otlp_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers for the OTLP exporter (e.g. auth tokens).",
    )
    log_level: str = Field(
        default="INFO",
        description="Python logging level. Falls back to WALLET_LOG_LEVEL env var.",
    )
    batch: bool = Field(
        default=True,
        description="Use BatchSpanProcessor (True) or SimpleSpanProcessor (False).",
    )
    instrument_httpx: bool = Field(
        default=True,
        description="Auto-instrument the wallet API client's httpx.AsyncClient calls.",
    )
    export_metrics: bool = Field(
        default=True,
        description=(
            "Export the cache.* instruments (fetch duration, reads, value age) over "
            "OTLP. Falls back to WALLET_OTEL_METRICS env var."
        ),
    )
    metrics_export_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How often cache metrics are pushed to the collector.",
    )

    def resolve(self) -> TelemetryConfig:
        """Return a copy with env-var fallbacks applied."""
        return self.model_copy(
            update={
                "enabled": env_bool("WALLET_OTEL_ENABLED", self.enabled),
                "otlp_endpoint": self.otlp_endpoint
                or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
                "otlp_protocol": os.getenv(
                    "OTEL_EXPORTER_OTLP_PROTOCOL", self.otlp_protocol
                ),
                "log_level": os.getenv("WALLET_LOG_LEVEL", self.log_level),
                "service_name": os.getenv(
                    "WALLET_OTEL_SERVICE_NAME", self.service_name
                ),
                "service_namespace": os.getenv(
                    "WALLET_OTEL_NAMESPACE", self.service_namespace
                ),
                "export_metrics": env_bool("WALLET_OTEL_METRICS", self.export_metrics),
            }
        )


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")
