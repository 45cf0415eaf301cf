"""Placement index that scores each piece independently.

Every geometrically possible placement ("configuration") of every registered
piece is enumerated once, given a permanent id and indexed by the cells it
covers. Cell updates then only touch the configurations covering that cell,
and per-piece counter matrices are kept equal to the number of active
configurations covering each cell.

The combined probability treats pieces as independent events,

    P(A or B) = P(A) + P(B) - P(A) * P(B)

which ignores that placing one piece removes positions of another. The
combined count from :meth:`IndependentBoard.ships_matrix` is exact and is
usually the better signal.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import reduce
from typing import TypeVar

import numpy as np

from battleodds.telemetry import get_meter, get_tracer

from .board import CellState, CountMatrix, ProbabilityMatrix
from .cell import Cell
from .errors import (
    DuplicatePieceError,
    EmptyPieceError,
    IllegalTargetStateError,
    InvalidDimensionsError,
    OutOfBoundsError,
    UnknownPieceError,
    UnknownSunkPieceError,
)
from .piece import Piece

logger = logging.getLogger(__name__)
tracer = get_tracer("battleodds.engine.independent")
meter = get_meter("battleodds.engine.independent")

CONFIGURATION_COUNTER = meter.create_counter(
    "battleodds_engine_configurations",
    unit="1",
    description="Configurations enumerated by registered pieces",
)

STATE_CHANGE_COUNTER = meter.create_counter(
    "battleodds_engine_state_changes",
    unit="1",
    description="Cell state changes applied to a board",
)

ROTATIONS = 4

T = TypeVar("T")


@dataclass(frozen=True)
class Configuration:
    """One rotation of one piece anchored at one position."""

    config_id: int
    owner: int
    cells: tuple[Cell, ...]


def combine_matrices(
    matrices: Iterable[T],
    fold: Callable[[T, T], T],
    initial: T,
) -> T:
    """Fold per-piece matrices into one, starting from ``initial``."""
    return reduce(fold, matrices, initial)


def _union_of_independent(acc: ProbabilityMatrix, p: ProbabilityMatrix) -> ProbabilityMatrix:
    return acc + p - acc * p


class IndependentBoard:
    """Board computing placement counts and probabilities per piece."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            logger.error("board_invalid_dimensions", extra={"width": width, "height": height})
            raise InvalidDimensionsError("Board width/height must be bigger than 0.")
        self._width = width
        self._height = height
        self._states: list[list[CellState]] = [
            [CellState.OPEN for _ in range(height)] for _ in range(width)
        ]

        self._pieces: list[Piece] = []
        self._slots: dict[Piece, int] = {}
        self._counts: list[CountMatrix] = []
        self._totals: list[int] = []
        self._owned: list[list[int]] = []
        self._sunk: dict[int, frozenset[Cell]] = {}

        self._configs: list[Configuration] = []
        self._active: list[bool] = []
        self._covering: list[list[list[int]]] = [
            [[] for _ in range(height)] for _ in range(width)
        ]

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def pieces(self) -> Sequence[Piece]:
        """Registered pieces in registration order."""
        return tuple(self._pieces)

    def add_piece(self, piece: Piece) -> None:
        """Register ``piece`` and enumerate all of its configurations.

        Every in-bounds rotation and anchor is recorded, including ones that
        the current board state already rules out; those start inactive.
        """
        if piece in self._slots:
            logger.error("piece_already_registered", extra={"piece": piece.name})
            raise DuplicatePieceError(f"Piece {piece.name!r} is already registered.")
        if piece.num_squares() == 0:
            logger.error("piece_empty", extra={"piece": piece.name})
            raise EmptyPieceError(f"Piece {piece.name!r} has no squares.")

        with tracer.start_as_current_span("board.add_piece") as span:
            span.set_attribute("piece.name", piece.name)
            span.set_attribute("piece.squares", piece.num_squares())

            slot = len(self._pieces)
            self._pieces.append(piece)
            self._slots[piece] = slot
            self._counts.append(np.zeros((self._width, self._height), dtype=np.int64))
            self._totals.append(0)
            self._owned.append([])

            first_id = len(self._configs)
            for rotation in range(ROTATIONS):
                rotated = piece.rotate_clockwise(rotation)
                corner = rotated.max_corner
                shape = rotated.squares()
                for x in range(self._width - corner.x):
                    for y in range(self._height - corner.y):
                        self._add_config(slot, tuple(cell.offset(x, y) for cell in shape))

            created = len(self._configs) - first_id
            span.set_attribute("piece.configurations", created)
            span.set_attribute("piece.active", self._totals[slot])
            CONFIGURATION_COUNTER.add(created, attributes={"piece": piece.name})
            logger.info(
                "piece_registered",
                extra={
                    "piece": piece.name,
                    "squares": piece.num_squares(),
                    "configurations": created,
                    "active": self._totals[slot],
                },
            )

    def _add_config(self, slot: int, cells: tuple[Cell, ...]) -> None:
        config = Configuration(len(self._configs), slot, cells)
        self._configs.append(config)
        self._active.append(False)
        self._owned[slot].append(config.config_id)
        for cell in cells:
            self._covering[cell.x][cell.y].append(config.config_id)
        if self.check_config(cells):
            self._enable(config)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self._width and 0 <= y < self._height

    def check_config(self, cells: Iterable[Cell]) -> bool:
        """True iff every cell is on the board and may hold a ship."""
        return all(
            self.in_bounds(cell.x, cell.y) and self._states[cell.x][cell.y].allows_ship
            for cell in cells
        )

    def check_placement(self, piece: Piece, anchor_x: int, anchor_y: int) -> bool:
        """Check ``piece`` translated by the anchor, without rotating it."""
        return self.check_config(cell.offset(anchor_x, anchor_y) for cell in piece)

    def cell_state(self, x: int, y: int) -> CellState:
        self._require_in_bounds(x, y)
        return self._states[x][y]

    def states_matrix(self) -> list[list[CellState]]:
        """Snapshot of every cell state, indexed ``[x][y]``."""
        return [list(column) for column in self._states]

    def set_state(self, x: int, y: int, state: CellState) -> None:
        """Apply an observed state to one cell and update the counters.

        ``MISS`` only ever retires configurations covering the cell; ``OPEN``
        and ``HIT`` only ever restore them. ``SUNK`` cells are managed by
        :meth:`sink` and :meth:`raise_piece`.
        """
        self._require_in_bounds(x, y)
        current = self._states[x][y]
        if state is CellState.SUNK:
            logger.error("state_sunk_rejected", extra={"x": x, "y": y})
            raise IllegalTargetStateError("Cells can only become sunk through sink().")
        if current is CellState.SUNK:
            logger.error("state_change_on_sunk_cell", extra={"x": x, "y": y, "target": state.value})
            raise IllegalTargetStateError("Sunk cells can only change through raise_piece().")
        if state is current:
            return

        with tracer.start_as_current_span("board.set_state") as span:
            span.set_attribute("cell.x", x)
            span.set_attribute("cell.y", y)
            span.set_attribute("state.from", current.value)
            span.set_attribute("state.to", state.value)
            if state is CellState.MISS:
                self._states[x][y] = CellState.MISS
                changed = self._disable_covering(x, y)
            else:
                # Candidates must see the cell as open, not the target state.
                self._states[x][y] = CellState.OPEN
                changed = self._enable_covering(x, y)
                self._states[x][y] = state
            span.set_attribute("configurations.changed", changed)

        STATE_CHANGE_COUNTER.add(1, attributes={"from": current.value, "to": state.value})
        logger.info(
            "cell_state_changed",
            extra={"x": x, "y": y, "from": current.value, "to": state.value, "changed": changed},
        )

    def sink(self, piece: Piece, rotation: int, anchor_x: int, anchor_y: int) -> bool:
        """Mark ``piece`` as sunk at the given rotation and anchor.

        Returns False, changing nothing, unless every cell of the footprint
        is on the board and currently ``HIT``. A sunk piece contributes no
        configurations until it is raised again.
        """
        slot = self._slot(piece)
        footprint = [cell.offset(anchor_x, anchor_y) for cell in piece.rotate_clockwise(rotation)]

        with tracer.start_as_current_span("board.sink") as span:
            span.set_attribute("piece.name", piece.name)
            span.set_attribute("sink.rotation", rotation)
            span.set_attribute("sink.x", anchor_x)
            span.set_attribute("sink.y", anchor_y)

            reason = None
            if slot in self._sunk:
                reason = "already_sunk"
            elif not all(
                self.in_bounds(cell.x, cell.y) and self._states[cell.x][cell.y] is CellState.HIT
                for cell in footprint
            ):
                reason = "footprint_not_hit"
            if reason is not None:
                span.set_attribute("sink.result", reason)
                logger.warning(
                    "sink_rejected",
                    extra={
                        "piece": piece.name,
                        "rotation": rotation,
                        "x": anchor_x,
                        "y": anchor_y,
                        "reason": reason,
                    },
                )
                return False

            for cell in footprint:
                self._states[cell.x][cell.y] = CellState.SUNK
                self._disable_covering(cell.x, cell.y)
            self._sunk[slot] = frozenset(footprint)

            for config_id in self._owned[slot]:
                self._active[config_id] = False
            self._counts[slot].fill(0)
            self._totals[slot] = 0

            span.set_attribute("sink.result", "sunk")
            logger.info(
                "piece_sunk",
                extra={"piece": piece.name, "rotation": rotation, "x": anchor_x, "y": anchor_y},
            )
            return True

    def raise_piece(self, piece: Piece) -> None:
        """Undo :meth:`sink`: footprint cells go back to ``HIT``.

        Only this piece's configurations are re-evaluated. Configurations of
        other pieces retired by the sink stay inactive until a later
        :meth:`set_state` touches their cells.
        """
        slot = self._slot(piece)
        footprint = self._sunk.get(slot)
        if footprint is None:
            logger.error("raise_unknown_sunk_piece", extra={"piece": piece.name})
            raise UnknownSunkPieceError(f"Piece {piece.name!r} is not sunk.")

        with tracer.start_as_current_span("board.raise_piece") as span:
            span.set_attribute("piece.name", piece.name)
            for cell in footprint:
                self._states[cell.x][cell.y] = CellState.HIT
            del self._sunk[slot]

            for config_id in self._owned[slot]:
                config = self._configs[config_id]
                if self.check_config(config.cells):
                    self._enable(config)

            span.set_attribute("piece.active", self._totals[slot])
            logger.info(
                "piece_raised",
                extra={"piece": piece.name, "active": self._totals[slot]},
            )

    def is_sunk(self, piece: Piece) -> bool:
        return self._slot(piece) in self._sunk

    def sunk_footprint(self, piece: Piece) -> frozenset[Cell] | None:
        """Cells the piece was sunk on, or None while it is afloat."""
        return self._sunk.get(self._slot(piece))

    def total_configurations(self, piece: Piece) -> int:
        """Number of active configurations of ``piece``."""
        return self._totals[self._slot(piece)]

    def ships_matrix(self, piece: Piece | None = None) -> CountMatrix:
        """Active configuration counts per cell, for one piece or summed."""
        if piece is not None:
            return self._counts[self._slot(piece)].copy()
        return combine_matrices(
            self._counts,
            lambda acc, counts: acc + counts,
            np.zeros((self._width, self._height), dtype=np.int64),
        )

    def probability_matrix(self, piece: Piece | None = None) -> ProbabilityMatrix:
        """Per-cell probability of holding ``piece``, or any piece.

        The all-pieces matrix combines pieces as independent events and is
        an approximation.
        """
        if piece is not None:
            return self._piece_probability(self._slot(piece))
        return combine_matrices(
            (self._piece_probability(slot) for slot in range(len(self._pieces))),
            _union_of_independent,
            np.zeros((self._width, self._height), dtype=np.float64),
        )

    def _piece_probability(self, slot: int) -> ProbabilityMatrix:
        total = self._totals[slot]
        if total == 0:
            return np.zeros((self._width, self._height), dtype=np.float64)
        return self._counts[slot] / total

    def _slot(self, piece: Piece) -> int:
        slot = self._slots.get(piece)
        if slot is None:
            logger.error("piece_unknown", extra={"piece": piece.name})
            raise UnknownPieceError(f"Piece {piece.name!r} is not registered.")
        return slot

    def _require_in_bounds(self, x: int, y: int) -> None:
        if not self.in_bounds(x, y):
            logger.error(
                "cell_out_of_bounds",
                extra={"x": x, "y": y, "width": self._width, "height": self._height},
            )
            raise OutOfBoundsError(f"Cell ({x}, {y}) is outside the {self._width}x{self._height} board.")

    def _enable(self, config: Configuration) -> None:
        self._active[config.config_id] = True
        counts = self._counts[config.owner]
        for cell in config.cells:
            counts[cell.x, cell.y] += 1
        self._totals[config.owner] += 1

    def _disable(self, config: Configuration) -> None:
        self._active[config.config_id] = False
        counts = self._counts[config.owner]
        for cell in config.cells:
            counts[cell.x, cell.y] -= 1
        self._totals[config.owner] -= 1

    def _disable_covering(self, x: int, y: int) -> int:
        changed = 0
        for config_id in self._covering[x][y]:
            if self._active[config_id]:
                self._disable(self._configs[config_id])
                changed += 1
        return changed

    def _enable_covering(self, x: int, y: int) -> int:
        changed = 0
        for config_id in self._covering[x][y]:
            config = self._configs[config_id]
            if (
                not self._active[config_id]
                and config.owner not in self._sunk
                and self.check_config(config.cells)
            ):
                self._enable(config)
                changed += 1
        return changed
