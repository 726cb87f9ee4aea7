"""
Referee: game state and chess-rules queries around a python-chess Board.

- Builds the board from the start position, a FEN, or a PGN.
- Lists legal moves per square in verbose form ({from, to, san, flags}).
- Applies moves by squares (with optional promotion) or by SAN, rejecting illegal input.
- Reports game-over state with the titles shown to the player, and emits PGN.

Used by GameSession (server) and play_one.py (terminal).
"""
from __future__ import annotations
import datetime
import io
from typing import Optional

import chess
import chess.pgn

from .position import PositionSnapshot, legal_moves_san, movetext_from_board

PROMOTION_PIECES = {"q": chess.QUEEN, "r": chess.ROOK, "b": chess.BISHOP, "n": chess.KNIGHT}


def move_flags(board: chess.Board, mv: chess.Move) -> str:
    """chess.js-style flag letters: n b e c p k q."""
    flags = ""
    piece = board.piece_at(mv.from_square)
    if board.is_en_passant(mv):
        flags += "e"
    elif board.is_capture(mv):
        flags += "c"
    if piece is not None and piece.piece_type == chess.PAWN and abs(mv.to_square - mv.from_square) == 16:
        flags += "b"
    if mv.promotion:
        flags += "p"
    if board.is_kingside_castling(mv):
        flags += "k"
    elif board.is_queenside_castling(mv):
        flags += "q"
    return flags or "n"


class Referee:
    """Plain chess referee around python-chess Board and PGN export."""

    def __init__(self, starting_fen: str | None = None):
        self.board = chess.Board(fen=starting_fen) if starting_fen else chess.Board()
        self._headers: dict[str, str] = {}

    @classmethod
    def from_pgn(cls, pgn: str) -> "Referee":
        """Replay a PGN (e.g. a shared game link). Raises ValueError when it does not parse."""
        game = chess.pgn.read_game(io.StringIO(pgn or ""))
        if game is None or game.errors:
            raise ValueError("Invalid PGN")
        ref = cls(starting_fen=game.board().fen())
        for mv in game.mainline_moves():
            ref.board.push(mv)
        for key in ("Event", "Site", "Date", "Round", "White", "Black"):
            if key in game.headers:
                ref._headers[key] = game.headers[key]
        return ref

    # ---------------- Header Management -----------------
    def set_headers(self, event: str = "LLM Chess", site: str = "?", date: Optional[str] = None,
                    white: str = "?", black: str = "?") -> None:
        date = date or datetime.date.today().strftime("%Y.%m.%d")
        self._headers.update({
            "Event": event,
            "Site": site,
            "Date": date,
            "White": white,
            "Black": black,
        })

    # ---------------- Queries -----------------
    def turn(self) -> str:
        return "w" if self.board.turn == chess.WHITE else "b"

    def snapshot(self) -> PositionSnapshot:
        return PositionSnapshot.from_board(self.board)

    def legal_moves(self) -> list[str]:
        return legal_moves_san(self.board)

    def moves_from(self, square: Optional[str] = None) -> list[dict]:
        """Verbose legal moves, optionally limited to one origin square."""
        origin = chess.parse_square(square) if square else None
        out = []
        for mv in self.board.legal_moves:
            if origin is not None and mv.from_square != origin:
                continue
            entry = {
                "from": chess.square_name(mv.from_square),
                "to": chess.square_name(mv.to_square),
                "san": self.board.san(mv),
                "flags": move_flags(self.board, mv),
            }
            if mv.promotion:
                entry["promotion"] = chess.piece_symbol(mv.promotion)
            out.append(entry)
        return out

    def history(self) -> list[str]:
        replay = self.board.root()
        sans = []
        for mv in self.board.move_stack:
            sans.append(replay.san(mv))
            replay.push(mv)
        return sans

    def last_move(self) -> Optional[dict]:
        if not self.board.move_stack:
            return None
        mv = self.board.peek()
        return {"from": chess.square_name(mv.from_square), "to": chess.square_name(mv.to_square)}

    # ---------------- Move Application -----------------
    def _push(self, mv: chess.Move) -> dict:
        san = self.board.san(mv)
        self.board.push(mv)
        return {"from": chess.square_name(mv.from_square), "to": chess.square_name(mv.to_square), "san": san}

    def apply_squares(self, from_sq: str, to_sq: str, promotion: Optional[str] = None) -> Optional[dict]:
        """Apply {from, to[, promotion]}; returns {from, to, san} or None when illegal."""
        try:
            origin = chess.parse_square(from_sq)
            target = chess.parse_square(to_sq)
        except (ValueError, TypeError):
            return None
        promo = PROMOTION_PIECES.get((promotion or "").lower()) if promotion else None
        if promotion and promo is None:
            return None
        mv = chess.Move(origin, target, promotion=promo)
        if mv not in self.board.legal_moves:
            return None
        return self._push(mv)

    def apply_san(self, san: str) -> Optional[dict]:
        """Apply a SAN (or UCI) move; returns {from, to, san} or None when illegal."""
        raw = (san or "").strip()
        if not raw:
            return None
        try:
            mv = self.board.parse_san(raw)
        except ValueError:
            try:
                mv = chess.Move.from_uci(raw)
            except ValueError:
                return None
        if mv not in self.board.legal_moves:
            return None
        return self._push(mv)

    # ---------------- PGN / Status -----------------
    def is_game_over(self) -> bool:
        return self.board.is_game_over()

    def game_over(self) -> Optional[dict]:
        """{title, message} for a finished game, else None. Stalemate is reported before other draws."""
        if not self.board.is_game_over():
            return None
        if self.board.is_checkmate():
            winner = "Black" if self.board.turn == chess.WHITE else "White"
            return {"title": "Checkmate!", "message": f"{winner} wins."}
        if self.board.is_stalemate():
            return {"title": "Stalemate!", "message": "The game is a stalemate."}
        return {"title": "Draw!", "message": "The game is a draw."}

    def status_text(self) -> str:
        over = self.game_over()
        if over is None:
            return "White's turn" if self.board.turn == chess.WHITE else "Black's turn"
        if over["title"] == "Checkmate!":
            return f"Checkmate! {over['message']}"
        return over["title"]

    def status(self) -> str:
        if self.board.is_game_over():
            return self.board.result()
        return "*"

    def movetext(self) -> str:
        return movetext_from_board(self.board)

    def pgn(self) -> str:
        game = chess.pgn.Game.from_board(self.board)
        for k, v in self._headers.items():
            game.headers[k] = v
        game.headers["Result"] = self.status()
        exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=False)
        return game.accept(exporter)
