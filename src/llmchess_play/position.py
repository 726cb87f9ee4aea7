from __future__ import annotations
"""Immutable position snapshot handed to the move acquirer."""
from dataclasses import dataclass
from typing import Tuple

import chess
import chess.pgn


def movetext_from_board(board: chess.Board) -> str:
    """Return the game so far as bare PGN movetext (no headers), e.g. '1. e4 e5 *'."""
    game = chess.pgn.Game.from_board(board)
    exporter = chess.pgn.StringExporter(headers=False, variations=False, comments=False)
    return game.accept(exporter)


def legal_moves_san(board: chess.Board) -> list[str]:
    """Legal moves in SAN, in python-chess generation order (stable for a given position)."""
    return [board.san(mv) for mv in board.legal_moves]


@dataclass(frozen=True)
class PositionSnapshot:
    pgn: str
    fen: str
    legal_moves: Tuple[str, ...]

    def __post_init__(self):
        # accept any sequence; store a tuple so the snapshot stays immutable
        object.__setattr__(self, "legal_moves", tuple(self.legal_moves))

    @classmethod
    def from_board(cls, board: chess.Board) -> "PositionSnapshot":
        return cls(pgn=movetext_from_board(board), fen=board.fen(), legal_moves=legal_moves_san(board))

    @property
    def is_terminal(self) -> bool:
        return not self.legal_moves
