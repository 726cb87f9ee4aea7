"""
Game sessions: one player against the model ("ai") or two players on one board ("friend").

The session is the caller of MoveAcquirer. It snapshots the position, waits for
the acquirer, re-validates that the board has not moved on, and only then applies
the move. A propagated acquisition failure ends the round: the session enters the
error state and accepts no further moves until a new game is started.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Dict, Optional

from .acquisition import MoveAcquirer, MoveResult
from .errors import MoveAcquisitionError
from .position import PositionSnapshot
from .prompting import Difficulty
from .referee import Referee

log = logging.getLogger("session")

MODE_AI = "ai"
MODE_FRIEND = "friend"

STATE_PLAYING = "playing"
STATE_GAME_OVER = "game_over"
STATE_ERROR = "error"


class SessionError(Exception):
    """A request the session cannot honor in its current state."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class GameSession:
    def __init__(
        self,
        acquirer: Optional[MoveAcquirer],
        mode: str = MODE_AI,
        player_color: str = "w",
        difficulty: Difficulty | str = Difficulty.EASY,
        referee: Optional[Referee] = None,
        session_id: Optional[str] = None,
    ):
        if mode not in (MODE_AI, MODE_FRIEND):
            raise ValueError(f"Unknown game mode '{mode}'")
        if player_color not in ("w", "b"):
            raise ValueError(f"Unknown player color '{player_color}'")
        if mode == MODE_AI and acquirer is None:
            raise ValueError("AI mode requires a move acquirer")
        self.id = session_id or f"game_{int(time.time())}_{uuid.uuid4().hex[:6]}"
        self.acquirer = acquirer
        self.mode = mode
        self.player_color = player_color
        self.difficulty = Difficulty(difficulty)
        self.referee = referee or Referee()
        self.state = STATE_PLAYING
        self.game_over: Optional[dict] = None
        self.last_ai_move: Optional[dict] = None
        self.lock = threading.Lock()
        self.created_at = time.time()
        self.updated_at = self.created_at
        self._refresh_game_over()

    # ---------------- Turn helpers -----------------
    def ai_to_move(self) -> bool:
        return self.mode == MODE_AI and self.state == STATE_PLAYING and self.referee.turn() != self.player_color

    def human_to_move(self) -> bool:
        if self.state != STATE_PLAYING:
            return False
        return self.mode == MODE_FRIEND or self.referee.turn() == self.player_color

    def _touch(self) -> None:
        self.updated_at = time.time()

    def _refresh_game_over(self) -> None:
        over = self.referee.game_over()
        if over is not None:
            self.state = STATE_GAME_OVER
            self.game_over = over

    def _fail(self, message: str) -> None:
        self.state = STATE_ERROR
        self.game_over = {"title": "AI Error", "message": message}
        self._touch()

    # ---------------- Moves -----------------
    def apply_human_move(self, from_sq: Optional[str] = None, to_sq: Optional[str] = None,
                         promotion: Optional[str] = None, san: Optional[str] = None) -> dict:
        """Apply the player's move; raises SessionError when it is not allowed."""
        if self.state != STATE_PLAYING:
            raise SessionError("game_over", "The game is over. Start a new game.")
        if not self.human_to_move():
            raise SessionError("not_your_turn", "It is not your turn.")
        if san:
            applied = self.referee.apply_san(san)
        elif from_sq and to_sq:
            applied = self.referee.apply_squares(from_sq, to_sq, promotion)
        else:
            raise SessionError("missing_move", "Provide either 'san' or 'from' and 'to'.")
        if applied is None:
            raise SessionError("illegal_move", "That move is not legal in this position.")
        self._touch()
        self._refresh_game_over()
        return applied

    def play_ai_turn(self) -> Optional[dict]:
        """Ask the model for a move and apply it. Returns the applied move or None."""
        if not self.ai_to_move():
            return None
        snapshot = self.referee.snapshot()
        if snapshot.is_terminal:
            self._refresh_game_over()
            return None
        try:
            result = self.acquirer.acquire(snapshot, self.difficulty)
        except MoveAcquisitionError as exc:
            log.error("AI move failed for game %s: %s", self.id, exc)
            self._fail(str(exc))
            return None
        return self.apply_ai_result(snapshot, result)

    def apply_ai_result(self, snapshot: PositionSnapshot, result: MoveResult) -> Optional[dict]:
        """Apply an acquired move if the board is still at the snapshot's position."""
        if self.state != STATE_PLAYING or self.referee.board.fen() != snapshot.fen:
            log.info("Discarding late AI move %s for game %s; position has changed", result.move, self.id)
            return None
        applied = self.referee.apply_san(result.move)
        if applied is None:
            log.error("AI move %s rejected by the board (FEN %s)", result.move, snapshot.fen)
            self._fail(f"The AI made an invalid move ({result.move}).")
            return None
        applied["source"] = result.source
        self.last_ai_move = applied
        self._touch()
        self._refresh_game_over()
        return applied

    # ---------------- Serialization -----------------
    def to_dict(self) -> dict:
        ref = self.referee
        status = ref.status_text()
        if self.state == STATE_ERROR and self.game_over:
            status = self.game_over["title"]
        return {
            "id": self.id,
            "mode": self.mode,
            "playerColor": self.player_color,
            "difficulty": self.difficulty.value,
            "state": self.state,
            "fen": ref.board.fen(),
            "pgn": ref.movetext(),
            "history": ref.history(),
            "turn": ref.turn(),
            "status": status,
            "lastMove": ref.last_move(),
            "lastAiMove": self.last_ai_move,
            "gameOver": self.game_over,
            "isPlayerTurn": self.human_to_move(),
        }


class SessionStore:
    """In-memory registry of sessions; inactive ones expire after ttl_s."""

    def __init__(self, ttl_s: int = 3600):
        self.ttl_s = ttl_s
        self._sessions: Dict[str, GameSession] = {}
        self._lock = threading.Lock()

    def add(self, session: GameSession) -> None:
        with self._lock:
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Optional[GameSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def cleanup(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        with self._lock:
            expired = [sid for sid, sess in self._sessions.items() if now - sess.updated_at > self.ttl_s]
            for sid in expired:
                self._sessions.pop(sid, None)
        if expired:
            log.info("Dropped %d inactive game(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
