"""Board cell coordinate."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Cell:
    """Immutable board coordinate, ordered by ``x`` then ``y``."""

    x: int
    y: int

    def offset(self, dx: int, dy: int) -> Cell:
        """Return this cell shifted by ``(dx, dy)``."""
        return Cell(self.x + dx, self.y + dy)
