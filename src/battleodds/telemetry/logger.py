"""Logging helpers with OpenTelemetry log export."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import TelemetryConfig

PACKAGE_LOGGER = "battleodds"
LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s "
    "| trace_id=%(otelTraceID)s span_id=%(otelSpanID)s"
)

_LOGGER: logging.Logger | None = None
_HANDLER_INSTALLED = False


class _OtelContextFilter(logging.Filter):
    """Fills trace/span placeholders when no span context is active."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        for attr in ("otelTraceID", "otelSpanID"):
            if not hasattr(record, attr):
                setattr(record, attr, "-")
        return True


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Return the shared package logger, creating it on first use."""
    global _LOGGER
    if _LOGGER is None:
        _LOGGER = logging.getLogger(name)
        _LOGGER.setLevel(logging.INFO)
    return _LOGGER


def init_logging(config: TelemetryConfig) -> logging.Logger:
    logger = get_logger()
    try:
        from opentelemetry._logs import set_logger_provider
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
        from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
        from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
        from opentelemetry.sdk.resources import Resource
    except ImportError:  # pragma: no cover - log signal is optional in older SDKs
        return logger

    provider = LoggerProvider(resource=Resource.create(config.resource_dict()))
    if config.otlp_logs_endpoint:
        exporter = OTLPLogExporter(endpoint=config.otlp_logs_endpoint, insecure=True)
        provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    set_logger_provider(provider)

    _install_handler(LoggingHandler(level=logging.INFO, logger_provider=provider))
    return logger


def _install_handler(handler: logging.Handler) -> None:
    """Attach the OTLP handler to the package logger exactly once."""
    global _HANDLER_INSTALLED
    if _HANDLER_INSTALLED:
        return

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        for existing in root_logger.handlers:
            existing.addFilter(_OtelContextFilter())

    handler.addFilter(_OtelContextFilter())
    logging.getLogger(PACKAGE_LOGGER).addHandler(handler)
    _HANDLER_INSTALLED = True
