"""Command-line driver for tracking an opponent's board and its ship odds."""

from __future__ import annotations

import argparse
import logging
import string
import sys
from typing import Callable, Sequence, TextIO

import numpy as np
from pydantic import ValidationError

from battleodds.engine.board import Board, CellState
from battleodds.engine.cell import Cell
from battleodds.engine.errors import BoardError
from battleodds.engine.fleet import FleetConfig, build_board, load_fleet, standard_fleet
from battleodds.engine.instrumented import InstrumentedIndependentBoard
from battleodds.engine.piece import Piece
from battleodds.telemetry import init_telemetry

logger = logging.getLogger(__name__)

ROW_LABELS = string.ascii_uppercase
STATE_SYMBOLS = {
    CellState.MISS: "o",
    CellState.HIT: "X",
    CellState.SUNK: "#",
}
CYCLE = {
    CellState.OPEN: CellState.MISS,
    CellState.MISS: CellState.HIT,
    CellState.HIT: CellState.OPEN,
}
HELP_TEXT = """Commands:
  miss A5 | hit A5 | open A5   set the state of a cell
  cycle A5                     open -> miss -> hit -> open
  sink <ship#> <rot> A5        sink a ship (rotation 0-3, anchored at A5)
  raise <ship#>                undo a sink
  ships                        list ships and their remaining placements
  show                         print the board
  help                         print this help
  quit                         leave"""


def parse_cell(text: str, board: Board) -> Cell:
    """Parse ``A5`` (row letter, 1-based column) or ``x y`` into a cell.

    Rows map to ``y`` and columns to ``x``.
    """
    cleaned = text.strip().upper()
    if not cleaned:
        raise ValueError("Empty coordinate.")
    if cleaned[0].isalpha():
        row = ROW_LABELS.index(cleaned[0]) if cleaned[0] in ROW_LABELS else -1
        try:
            col = int(cleaned[1:]) - 1
        except ValueError as exc:
            raise ValueError(f"Column must be a number between 1 and {board.width}.") from exc
        x, y = col, row
    else:
        parts = cleaned.split()
        if len(parts) != 2:
            raise ValueError("Use formats like A5 or '3 7'.")
        x, y = map(int, parts)
    if not board.in_bounds(x, y):
        raise ValueError(f"Coordinates must be within the {board.width}x{board.height} board.")
    return Cell(x, y)


def format_board(board: Board, show_probability: bool = False) -> str:
    """Render cell states, and a 0-9 heat digit on open cells."""
    if show_probability:
        data = board.probability_matrix()
    else:
        data = board.ships_matrix().astype(np.float64)
    peak = float(data.max()) if data.size else 0.0
    states = board.states_matrix()

    header = "    " + " ".join(f"{x + 1:>2}" for x in range(board.width))
    rows = [header]
    for y in range(board.height):
        symbols = []
        for x in range(board.width):
            state = states[x][y]
            if state in STATE_SYMBOLS:
                symbol = STATE_SYMBOLS[state]
            elif peak > 0:
                symbol = str(min(9, int(data[x, y] / peak * 9)))
            else:
                symbol = "."
            symbols.append(f"{symbol:>2}")
        label = ROW_LABELS[y] if y < len(ROW_LABELS) else str(y + 1)
        rows.append(f"{label:>2} |" + " ".join(symbols))
    return "\n".join(rows)


def format_ships(board: Board, pieces: Sequence[Piece]) -> str:
    lines = []
    for number, piece in enumerate(pieces, start=1):
        status = "sunk" if board.is_sunk(piece) else f"{board.total_configurations(piece)} placements"
        lines.append(f"{number}. {piece.name} ({piece.num_squares()} cells): {status}")
    return "\n".join(lines)


def _piece_from_arg(text: str, pieces: Sequence[Piece]) -> Piece:
    try:
        number = int(text)
    except ValueError as exc:
        raise ValueError("Ship must be given by its number (see 'ships').") from exc
    if not 1 <= number <= len(pieces):
        raise ValueError(f"Ship number must be between 1 and {len(pieces)}.")
    return pieces[number - 1]


def run_command(
    line: str,
    board: Board,
    pieces: Sequence[Piece],
    show_probability: bool = False,
) -> str | None:
    """Execute one command and return the text to print; None means quit."""
    words = line.split()
    if not words:
        return ""
    command, args = words[0].lower(), words[1:]

    if command in {"q", "quit", "exit"}:
        return None
    if command == "help":
        return HELP_TEXT
    if command == "show":
        return format_board(board, show_probability)
    if command == "ships":
        return format_ships(board, pieces)
    if command in {"miss", "hit", "open"}:
        cell = parse_cell(" ".join(args), board)
        board.set_state(cell.x, cell.y, CellState(command))
        return format_board(board, show_probability)
    if command == "cycle":
        cell = parse_cell(" ".join(args), board)
        current = board.cell_state(cell.x, cell.y)
        if current in CYCLE:
            board.set_state(cell.x, cell.y, CYCLE[current])
        return format_board(board, show_probability)
    if command == "sink":
        if len(args) < 3:
            raise ValueError("Usage: sink <ship#> <rotation> <coordinate>")
        piece = _piece_from_arg(args[0], pieces)
        try:
            rotation = int(args[1])
        except ValueError as exc:
            raise ValueError("Rotation must be a number of quarter turns.") from exc
        cell = parse_cell(" ".join(args[2:]), board)
        if not board.sink(piece, rotation, cell.x, cell.y):
            return f"Cannot sink {piece.name} there: every cell must be a hit."
        return format_board(board, show_probability)
    if command == "raise":
        if len(args) != 1:
            raise ValueError("Usage: raise <ship#>")
        board.raise_piece(_piece_from_arg(args[0], pieces))
        return format_board(board, show_probability)
    raise ValueError(f"Unknown command {command!r}; type 'help'.")


def command_loop(
    board: Board,
    pieces: Sequence[Piece],
    read_line: Callable[[], str],
    out: TextIO,
    show_probability: bool = False,
) -> None:
    print(format_board(board, show_probability), file=out)
    while True:
        try:
            line = read_line()
        except EOFError:
            return
        try:
            reply = run_command(line, board, pieces, show_probability)
        except (BoardError, ValueError) as exc:
            print(f"Invalid input: {exc}", file=out)
            continue
        if reply is None:
            return
        if reply:
            print(reply, file=out)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Track ship placement odds on a Battleship board.")
    parser.add_argument("--fleet", default=None, help="JSON fleet file (default: classic 10x10 fleet).")
    parser.add_argument(
        "--probability",
        action="store_true",
        help="Shade cells by combined probability instead of placement counts.",
    )
    args = parser.parse_args(argv)

    init_telemetry()
    try:
        fleet: FleetConfig = load_fleet(args.fleet) if args.fleet else standard_fleet()
    except (OSError, ValueError, ValidationError) as exc:
        print(f"Could not load fleet: {exc}", file=sys.stderr)
        return 2

    board, pieces = build_board(fleet, board_cls=InstrumentedIndependentBoard)
    logger.info("fleet_loaded", extra={"ships": len(pieces), "width": board.width, "height": board.height})
    print(format_ships(board, pieces))
    command_loop(board, pieces, lambda: input("> "), sys.stdout, args.probability)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
