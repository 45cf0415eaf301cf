"""Telemetry configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict

from pydantic import BaseModel, Field

from .logger import init_logging
from .metrics import init_metrics
from .tracer import init_tracing

_TRUTHY = {"1", "true", "yes", "on"}

_SIGNALS = {
    "tracing": ("traces", "BATTLEODDS_ENABLE_TRACING", "OTEL_TRACES_ENABLED"),
    "metrics": ("metrics", "BATTLEODDS_ENABLE_METRICS", "OTEL_METRICS_ENABLED"),
    "logging": ("logs", "BATTLEODDS_ENABLE_LOGGING", "OTEL_LOGS_ENABLED"),
}


class TelemetryConfig(BaseModel):
    """Runtime configuration for the OpenTelemetry exporters."""

    enable_tracing: bool = False
    enable_metrics: bool = False
    enable_logging: bool = False
    otlp_traces_endpoint: str | None = None
    otlp_metrics_endpoint: str | None = None
    otlp_logs_endpoint: str | None = None
    service_name: str = "battleodds"
    service_namespace: str = "analysis"
    resource_attributes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls, **overrides: Any) -> "TelemetryConfig":
        """Construct config from env vars (`BATTLEODDS_*` + `OTEL_*`)."""

        data: Dict[str, Any] = cls().model_dump()
        data.update(overrides)
        base_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

        for signal, (suffix, *flag_names) in _SIGNALS.items():
            for name in flag_names:
                value = os.getenv(name)
                if value is not None:
                    data[f"enable_{signal}"] = value.strip().lower() in _TRUTHY
                    break

            endpoint_key = f"otlp_{suffix}_endpoint"
            if data.get(endpoint_key) is None:
                explicit = os.getenv(f"OTEL_EXPORTER_OTLP_{suffix.upper()}_ENDPOINT")
                if explicit:
                    data[endpoint_key] = explicit
                elif base_endpoint:
                    data[endpoint_key] = f"{base_endpoint.rstrip('/')}/v1/{suffix}"

            # A configured endpoint switches its signal on.
            if data.get(endpoint_key):
                data[f"enable_{signal}"] = True

        service_name = os.getenv("OTEL_SERVICE_NAME")
        if service_name:
            data["service_name"] = service_name
        service_namespace = os.getenv("OTEL_SERVICE_NAMESPACE")
        if service_namespace:
            data["service_namespace"] = service_namespace

        resource_env = os.getenv("OTEL_RESOURCE_ATTRIBUTES")
        if resource_env:
            attrs = dict(data.get("resource_attributes") or {})
            for part in resource_env.split(","):
                key, sep, value = part.partition("=")
                if sep:
                    attrs[key.strip()] = value.strip()
            data["resource_attributes"] = attrs

        return cls(**data)

    def resource_dict(self) -> dict[str, str]:
        """Resource attributes shared by every provider."""
        attributes = {
            "service.name": self.service_name,
            "service.namespace": self.service_namespace,
        }
        attributes.update(self.resource_attributes)
        return attributes


@lru_cache(maxsize=1)
def load_telemetry_config() -> TelemetryConfig:
    """Load and cache telemetry config from the environment."""

    return TelemetryConfig.from_env()


def init_telemetry(config: TelemetryConfig | None = None) -> TelemetryConfig:
    """Initialise the enabled telemetry signals."""

    resolved = config or load_telemetry_config()

    if resolved.enable_tracing:
        init_tracing(resolved)
    if resolved.enable_metrics:
        init_metrics(resolved)
    if resolved.enable_logging:
        init_logging(resolved)
    return resolved
