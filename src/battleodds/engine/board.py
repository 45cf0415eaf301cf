"""Cell states and the board interface consumed by front ends."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Protocol

import numpy as np
import numpy.typing as npt

from .piece import Piece

CountMatrix = npt.NDArray[np.int64]
ProbabilityMatrix = npt.NDArray[np.float64]


class CellState(Enum):
    """Observed state of a board cell."""

    OPEN = "open"
    MISS = "miss"
    HIT = "hit"
    SUNK = "sunk"

    @property
    def allows_ship(self) -> bool:
        """Whether a live ship may still occupy a cell in this state."""
        return self is CellState.OPEN or self is CellState.HIT


class Board(Protocol):
    """Board that tracks every placement of its pieces against observed cells."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def pieces(self) -> Sequence[Piece]: ...

    def add_piece(self, piece: Piece) -> None: ...

    def in_bounds(self, x: int, y: int) -> bool: ...

    def cell_state(self, x: int, y: int) -> CellState: ...

    def states_matrix(self) -> list[list[CellState]]: ...

    def set_state(self, x: int, y: int, state: CellState) -> None: ...

    def sink(self, piece: Piece, rotation: int, anchor_x: int, anchor_y: int) -> bool: ...

    def raise_piece(self, piece: Piece) -> None: ...

    def is_sunk(self, piece: Piece) -> bool: ...

    def total_configurations(self, piece: Piece) -> int: ...

    def ships_matrix(self, piece: Piece | None = None) -> CountMatrix: ...

    def probability_matrix(self, piece: Piece | None = None) -> ProbabilityMatrix: ...
