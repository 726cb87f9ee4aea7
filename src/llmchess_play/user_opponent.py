from __future__ import annotations
"""Interactive terminal player that only submits legal moves."""
import chess


class UserOpponent:
    name = "Human"

    def choose(self, board: chess.Board) -> chess.Move:
        """Prompt the user for a legal move; repeat until valid."""
        while True:
            print("\nYour turn. Board FEN:", board.fen())
            print(board)
            raw = input("Enter your move in SAN or UCI (e.g., e4 or e2e4): ").strip()
            if not raw:
                continue
            try:
                mv = board.parse_san(raw)
            except ValueError:
                try:
                    mv = chess.Move.from_uci(raw)
                except ValueError:
                    mv = None
            if mv and mv in board.legal_moves:
                return mv
            print("Illegal move. Please try again with a legal move.")
