"""Telemetry instrumentation unit tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from battleodds.engine.board import CellState
from battleodds.engine.errors import OutOfBoundsError
from battleodds.engine.instrumented import InstrumentedIndependentBoard
from battleodds.engine.piece import Piece
from battleodds.telemetry import config as telemetry_config_module
from battleodds.telemetry import logger as logger_module
from battleodds.telemetry import metrics as metrics_module
from battleodds.telemetry import tracer as tracer_module
from battleodds.telemetry.config import TelemetryConfig


class DummySpan:
    def __init__(self, names: list[str], span_name: str) -> None:
        self._names = names
        self._names.append(span_name)
        self.attributes: dict[str, object] = {}
        self.exceptions: list[BaseException] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key, value):
        self.attributes[key] = value

    def record_exception(self, exc):
        self.exceptions.append(exc)


class DummyTracer:
    def __init__(self) -> None:
        self.span_names: list[str] = []
        self.spans: list[DummySpan] = []

    def start_as_current_span(self, name: str):
        span = DummySpan(self.span_names, name)
        self.spans.append(span)
        return span


def reset_singletons() -> None:
    tracer_module._TRACER = None
    tracer_module._TRACER_PROVIDER = None
    metrics_module._METER = None
    metrics_module._METER_PROVIDER = None
    metrics_module._COUNTERS = {}
    metrics_module._HISTOGRAMS = {}
    logger_module._LOGGER = None


@pytest.fixture
def instrumented(monkeypatch: pytest.MonkeyPatch):
    tracer = DummyTracer()
    metric_calls: list[tuple[str, float, dict | None]] = []
    logger = MagicMock()

    monkeypatch.setattr("battleodds.engine.instrumented.get_tracer", lambda *_: tracer)
    monkeypatch.setattr("battleodds.engine.instrumented.get_logger", lambda *_: logger)
    monkeypatch.setattr(
        "battleodds.engine.instrumented.record_index_metric",
        lambda name, value, attrs=None: metric_calls.append((name, value, attrs)),
    )
    monkeypatch.setattr(
        "battleodds.engine.instrumented.record_index_duration",
        lambda name, value, attrs=None: metric_calls.append((name, value, attrs)),
    )
    return tracer, metric_calls, logger


def test_lazy_init_tracer_and_meter(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_singletons()
    assert tracer_module.get_tracer() is tracer_module.get_tracer()

    provider_instance = MagicMock()
    provider_instance.get_tracer.return_value = MagicMock()
    monkeypatch.setattr(tracer_module, "trace", MagicMock())
    monkeypatch.setattr(tracer_module, "TracerProvider", MagicMock(return_value=provider_instance))
    monkeypatch.setattr(tracer_module, "OTLPSpanExporter", MagicMock(return_value=MagicMock()))
    tracer_module.init_tracing(
        TelemetryConfig(enable_tracing=True, otlp_traces_endpoint="http://example")
    )
    assert tracer_module._TRACER is provider_instance.get_tracer.return_value

    meter_provider = MagicMock()
    meter_provider.get_meter.return_value = MagicMock()
    monkeypatch.setattr(metrics_module, "otel_metrics", MagicMock())
    monkeypatch.setattr(metrics_module, "MeterProvider", MagicMock(return_value=meter_provider))
    monkeypatch.setattr(metrics_module, "OTLPMetricExporter", MagicMock(return_value=MagicMock()))
    metrics_module.init_metrics(
        TelemetryConfig(enable_metrics=True, otlp_metrics_endpoint="http://example")
    )
    assert metrics_module._METER is meter_provider.get_meter.return_value
    reset_singletons()


def test_record_index_metric_caches_instruments() -> None:
    reset_singletons()
    meter = MagicMock()
    metrics_module._METER = meter

    metrics_module.record_index_metric("battleodds_test_total", 1, {"piece": "L"})
    metrics_module.record_index_metric("battleodds_test_total", 2)
    metrics_module.record_index_duration("battleodds_test_ms", 1.5)

    meter.create_counter.assert_called_once_with("battleodds_test_total", unit="1")
    counter = meter.create_counter.return_value
    assert counter.add.call_count == 2
    counter.add.assert_called_with(2, attributes={})
    meter.create_histogram.return_value.record.assert_called_once_with(1.5, attributes={})
    reset_singletons()


def test_logging_init_noop() -> None:
    reset_singletons()
    logger = logger_module.get_logger()
    assert logger.name == "battleodds"
    assert logger_module.get_logger() is logger


def test_init_telemetry_noop(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    monkeypatch.setattr(telemetry_config_module, "init_tracing", lambda cfg: calls.append("tr"))
    monkeypatch.setattr(telemetry_config_module, "init_metrics", lambda cfg: calls.append("me"))
    monkeypatch.setattr(telemetry_config_module, "init_logging", lambda cfg: calls.append("lo"))

    telemetry_config_module.init_telemetry(TelemetryConfig())
    assert calls == []


def test_init_telemetry_respects_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    monkeypatch.setattr(telemetry_config_module, "init_tracing", lambda cfg: calls.append("tr"))
    monkeypatch.setattr(telemetry_config_module, "init_metrics", lambda cfg: calls.append("me"))
    monkeypatch.setattr(telemetry_config_module, "init_logging", lambda cfg: calls.append("lo"))

    telemetry_config_module.init_telemetry(TelemetryConfig(enable_tracing=True, enable_logging=True))
    assert calls == ["tr", "lo"]


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "OTEL_TRACES_ENABLED",
        "OTEL_METRICS_ENABLED",
        "OTEL_LOGS_ENABLED",
        "BATTLEODDS_ENABLE_METRICS",
        "BATTLEODDS_ENABLE_LOGGING",
        "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
        "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT",
        "OTEL_EXPORTER_OTLP_LOGS_ENDPOINT",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "OTEL_SERVICE_NAME",
        "OTEL_SERVICE_NAMESPACE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BATTLEODDS_ENABLE_TRACING", "yes")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT", "http://collector:4317/")
    monkeypatch.setenv("OTEL_RESOURCE_ATTRIBUTES", "deployment.environment=test,broken")

    config = TelemetryConfig.from_env()
    assert config.enable_tracing is True
    assert config.otlp_traces_endpoint is None
    assert config.enable_metrics is True
    assert config.otlp_metrics_endpoint == "http://collector:4317/"
    assert config.enable_logging is False
    assert config.resource_attributes == {"deployment.environment": "test"}
    assert config.resource_dict()["service.name"] == "battleodds"

    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317/")
    config = TelemetryConfig.from_env()
    assert config.otlp_logs_endpoint == "http://collector:4317/v1/logs"
    assert config.enable_logging is True


def test_load_telemetry_config_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    telemetry_config_module.load_telemetry_config.cache_clear()
    calls = {"count": 0}

    def fake_from_env(cls, **overrides):
        calls["count"] += 1
        return TelemetryConfig(enable_tracing=True)

    monkeypatch.setattr(TelemetryConfig, "from_env", classmethod(fake_from_env))

    first = telemetry_config_module.load_telemetry_config()
    second = telemetry_config_module.load_telemetry_config()
    assert first is second
    assert calls["count"] == 1
    telemetry_config_module.load_telemetry_config.cache_clear()


def test_instrumented_board_emits_spans(instrumented) -> None:
    tracer, metric_calls, logger = instrumented
    board = InstrumentedIndependentBoard(3, 3)
    piece = Piece.from_cells([(0, 0), (0, 1), (1, 0)], name="L")

    board.add_piece(piece)
    board.set_state(1, 1, CellState.MISS)
    board.set_state(0, 0, CellState.HIT)
    board.set_state(0, 1, CellState.HIT)
    board.set_state(1, 0, CellState.HIT)
    assert board.sink(piece, 0, 0, 0) is True
    board.raise_piece(piece)

    assert tracer.span_names == [
        "battleodds.engine.add_piece",
        "battleodds.engine.set_state",
        "battleodds.engine.set_state",
        "battleodds.engine.set_state",
        "battleodds.engine.set_state",
        "battleodds.engine.sink",
        "battleodds.engine.raise_piece",
    ]
    assert tracer.spans[0].attributes["piece"] == "L"
    names = [name for name, _, _ in metric_calls]
    assert "battleodds_pieces_registered_total" in names
    assert names.count("battleodds_state_changes_total") == 4
    assert ("battleodds_sinks_total", 1, {"piece": "L", "result": "sunk"}) in metric_calls
    assert "battleodds_raises_total" in names
    assert "battleodds_update_latency_ms" in names
    assert board.total_configurations(piece) == 4


def test_instrumented_board_records_rejections(instrumented) -> None:
    tracer, metric_calls, logger = instrumented
    board = InstrumentedIndependentBoard(3, 3)

    with pytest.raises(OutOfBoundsError):
        board.set_state(5, 5, CellState.MISS)

    span = tracer.spans[-1]
    assert span.attributes["error"] is True
    assert isinstance(span.exceptions[0], OutOfBoundsError)
    assert (
        "battleodds_invalid_operations_total",
        1,
        {"operation": "set_state", "reason": "OutOfBoundsError"},
    ) in metric_calls
    assert "battleodds_state_changes_total" not in [name for name, _, _ in metric_calls]
    logger.error.assert_called_once()
