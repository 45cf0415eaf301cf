"""Placement index with tracing, metrics and logging hooks."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from battleodds.telemetry import get_logger, get_tracer, record_index_duration, record_index_metric

from .board import CellState
from .errors import BoardError
from .independent import IndependentBoard
from .piece import Piece

R = TypeVar("R")


class InstrumentedIndependentBoard(IndependentBoard):
    """Wraps IndependentBoard mutations with spans, metrics and logs."""

    def __init__(self, width: int, height: int) -> None:
        super().__init__(width, height)
        self._logger = get_logger("battleodds.engine")
        self._tracer = get_tracer("battleodds.engine")

    def add_piece(self, piece: Piece) -> None:
        self._observe(
            "add_piece",
            {"piece": piece.name},
            lambda: super(InstrumentedIndependentBoard, self).add_piece(piece),
        )
        record_index_metric("battleodds_pieces_registered_total", 1, {"piece": piece.name})
        self._logger.info(
            "Registered %s with %d active configurations", piece.name, self.total_configurations(piece)
        )

    def set_state(self, x: int, y: int, state: CellState) -> None:
        self._observe(
            "set_state",
            {"cell.x": x, "cell.y": y, "state": state.value},
            lambda: super(InstrumentedIndependentBoard, self).set_state(x, y, state),
        )
        record_index_metric("battleodds_state_changes_total", 1, {"state": state.name})

    def sink(self, piece: Piece, rotation: int, anchor_x: int, anchor_y: int) -> bool:
        sunk = self._observe(
            "sink",
            {"piece": piece.name, "rotation": rotation, "x": anchor_x, "y": anchor_y},
            lambda: super(InstrumentedIndependentBoard, self).sink(piece, rotation, anchor_x, anchor_y),
        )
        record_index_metric(
            "battleodds_sinks_total", 1, {"piece": piece.name, "result": "sunk" if sunk else "rejected"}
        )
        self._logger.info(
            "sink piece=%s rotation=%d anchor=(%d,%d) sunk=%s", piece.name, rotation, anchor_x, anchor_y, sunk
        )
        return sunk

    def raise_piece(self, piece: Piece) -> None:
        self._observe(
            "raise_piece",
            {"piece": piece.name},
            lambda: super(InstrumentedIndependentBoard, self).raise_piece(piece),
        )
        record_index_metric("battleodds_raises_total", 1, {"piece": piece.name})
        self._logger.info("Raised %s", piece.name)

    def _observe(self, operation: str, attributes: dict[str, str | int], call: Callable[[], R]) -> R:
        with self._tracer.start_as_current_span(f"battleodds.engine.{operation}") as span:
            for key, value in attributes.items():
                span.set_attribute(key, value)
            start = time.perf_counter()
            try:
                result = call()
            except BoardError as exc:
                record_index_metric(
                    "battleodds_invalid_operations_total",
                    1,
                    {"operation": operation, "reason": type(exc).__name__},
                )
                span.record_exception(exc)
                span.set_attribute("error", True)
                self._logger.error("Rejected %s %s: %s", operation, attributes, exc)
                raise
            elapsed_ms = (time.perf_counter() - start) * 1000
            span.set_attribute("duration_ms", elapsed_ms)
            record_index_duration("battleodds_update_latency_ms", elapsed_ms, {"operation": operation})
            return result
