"""Piece (ship) geometry for the placement engine."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .cell import Cell


@dataclass(eq=False)
class Piece:
    """A ship shape made of a set of cells.

    Pieces compare and hash by identity, so two pieces with the same squares
    are still registered and tracked separately by a board.
    """

    name: str = "piece"
    _squares: set[Cell] = field(default_factory=set, init=False, repr=False)
    _max_corner: Cell | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_cells(cls, cells: Iterable[tuple[int, int] | Cell], name: str = "piece") -> Piece:
        """Build a piece from ``(x, y)`` pairs or cells."""
        piece = cls(name=name)
        for cell in cells:
            if isinstance(cell, Cell):
                piece.add_square(cell.x, cell.y)
            else:
                x, y = cell
                piece.add_square(x, y)
        return piece

    @classmethod
    def line(cls, length: int, name: str = "piece") -> Piece:
        """Straight ship of ``length`` cells running along y."""
        return cls.from_cells(((0, offset) for offset in range(length)), name=name)

    @property
    def max_corner(self) -> Cell:
        """Component-wise maximum over all squares.

        After :meth:`normalize` this is the extent of the piece minus one in
        each direction.
        """
        return self._max_corner if self._max_corner is not None else Cell(0, 0)

    def add_square(self, x: int, y: int) -> None:
        """Add a square; re-adding an existing square changes nothing."""
        square = Cell(x, y)
        if square in self._squares:
            return
        self._squares.add(square)
        if self._max_corner is None:
            self._max_corner = square
        else:
            self._max_corner = Cell(max(self._max_corner.x, x), max(self._max_corner.y, y))

    def num_squares(self) -> int:
        return len(self._squares)

    def squares(self) -> list[Cell]:
        """Return the squares in sorted order."""
        return sorted(self._squares)

    def move(self, dx: int, dy: int) -> None:
        """Translate every square and the max corner by the same offset."""
        self._squares = {square.offset(dx, dy) for square in self._squares}
        if self._max_corner is not None:
            self._max_corner = self._max_corner.offset(dx, dy)

    def normalize(self) -> None:
        """Shift the piece so its minimum x and minimum y are both 0."""
        if not self._squares:
            return
        min_x = min(square.x for square in self._squares)
        min_y = min(square.y for square in self._squares)
        self.move(-min_x, -min_y)

    def rotate_clockwise(self, times: int = 1) -> Piece:
        """Return a normalised copy rotated by ``times`` quarter turns.

        Each quarter turn maps ``(x, y)`` to ``(y, -x)``. The piece itself is
        left untouched.
        """
        cells = list(self._squares)
        for _ in range(times % 4):
            cells = [Cell(cell.y, -cell.x) for cell in cells]
        rotated = Piece.from_cells(cells, name=self.name)
        rotated.normalize()
        return rotated

    def __iter__(self) -> Iterator[Cell]:
        return iter(self.squares())

    def __len__(self) -> int:
        return len(self._squares)
