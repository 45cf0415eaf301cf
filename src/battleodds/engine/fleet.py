"""Fleet definitions: which pieces are played on which board."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, Field, field_validator, model_validator

from .independent import IndependentBoard
from .piece import Piece


class ShipSpec(BaseModel):
    """A named ship, either a straight line or an explicit shape."""

    name: str = Field(min_length=1)
    length: int | None = None
    cells: list[tuple[int, int]] | None = None

    @model_validator(mode="after")
    def _one_shape(self) -> "ShipSpec":
        if (self.length is None) == (self.cells is None):
            raise ValueError(f"ship {self.name!r} must define exactly one of length or cells")
        if self.length is not None and self.length <= 0:
            raise ValueError(f"ship {self.name!r} must have length > 0")
        if self.cells is not None and not self.cells:
            raise ValueError(f"ship {self.name!r} must define cells")
        return self

    def build(self) -> Piece:
        if self.length is not None:
            return Piece.line(self.length, name=self.name)
        return Piece.from_cells(self.cells or [], name=self.name)


class FleetConfig(BaseModel):
    """Board dimensions plus the ships that may be hidden on it."""

    width: int = Field(default=10, gt=0)
    height: int = Field(default=10, gt=0)
    ships: list[ShipSpec] = Field(min_length=1)

    @field_validator("ships")
    @classmethod
    def _unique_names(cls, ships: list[ShipSpec]) -> list[ShipSpec]:
        seen: set[str] = set()
        for ship in ships:
            if ship.name in seen:
                raise ValueError(f"duplicate ship name: {ship.name}")
            seen.add(ship.name)
        return ships

    def build_pieces(self) -> list[Piece]:
        return [ship.build() for ship in self.ships]


def standard_fleet() -> FleetConfig:
    """Classic 10x10 game with five straight ships."""
    return FleetConfig(
        width=10,
        height=10,
        ships=[
            ShipSpec(name="Aircraft carrier", length=5),
            ShipSpec(name="Battleship", length=4),
            ShipSpec(name="Submarine", length=3),
            ShipSpec(name="Cruiser", length=3),
            ShipSpec(name="Destroyer", length=2),
        ],
    )


def load_fleet(path: str | Path) -> FleetConfig:
    """Read a fleet from a JSON file."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return FleetConfig.model_validate(data)


def build_board(
    fleet: FleetConfig,
    board_cls: Callable[[int, int], IndependentBoard] = IndependentBoard,
) -> tuple[IndependentBoard, list[Piece]]:
    """Create a board with every ship of ``fleet`` registered, in order."""
    board = board_cls(fleet.width, fleet.height)
    pieces = fleet.build_pieces()
    for piece in pieces:
        board.add_piece(piece)
    return board, pieces
