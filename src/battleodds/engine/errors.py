"""Errors raised by the placement engine.

Every error is a ``ValueError``: they all describe a caller mistake, and the
board is left unchanged whenever one is raised.
"""

from __future__ import annotations


class BoardError(ValueError):
    """Base class for placement engine errors."""


class InvalidDimensionsError(BoardError):
    """Board width or height is not positive."""


class OutOfBoundsError(BoardError):
    """Coordinate lies outside the board."""


class IllegalTargetStateError(BoardError):
    """Requested cell transition is not allowed through ``set_state``."""


class UnknownPieceError(BoardError):
    """Piece was never registered with the board."""


class UnknownSunkPieceError(BoardError):
    """Piece has no recorded sunk footprint."""


class DuplicatePieceError(BoardError):
    """Piece instance is already registered."""


class EmptyPieceError(BoardError):
    """Piece has no squares to place."""
