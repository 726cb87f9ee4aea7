"""
AI move acquisition: prompt → transport → extract → legality gate, with retries.

States: Attempting(n) for n = 1..max_retries, then Succeeded or exhausted.
- NoLegalMoves short-circuits before any network call.
- Any AttemptFailed (network, rate limit, server, empty reply) waits
  2**n * base + jitter and moves to the next attempt, or gives up at the cap.
- A reply that fails the legality gate is not a failure; the gate substitutes.

The acquirer holds no per-game state and never touches a board.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Optional

from .config import Settings
from .errors import AttemptFailed, NoLegalMoves, RetriesExhausted
from .llm_client import create_transport
from .move_validator import SOURCE_FALLBACK, extract_move_text, gate_move
from .position import PositionSnapshot
from .prompting import Difficulty, build_move_prompt
from .retry import BackoffPolicy

log = logging.getLogger("acquisition")


@dataclass(frozen=True)
class MoveResult:
    move: str
    source: str  # "model" | "salvaged" | "fallback"
    raw: Optional[str]
    attempts: int
    latency_ms: int = 0

    @property
    def is_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK

    def to_dict(self) -> dict:
        return {
            "move": self.move,
            "source": self.source,
            "raw": self.raw,
            "attempts": self.attempts,
            "latency_ms": self.latency_ms,
        }


@dataclass
class Attempt:
    number: int
    started_at: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class MoveAcquirer:
    """Turns a position snapshot into a legal move supplied by the model."""

    def __init__(self, transport, policy: Optional[BackoffPolicy] = None, rng: Optional[random.Random] = None):
        self.transport = transport
        self.policy = policy or BackoffPolicy()
        self.rng = rng or random.Random()

    @property
    def endpoint(self) -> str:
        return getattr(self.transport, "endpoint", "")

    def acquire(self, snapshot: PositionSnapshot, difficulty: Difficulty | str) -> MoveResult:
        """Return a move from snapshot.legal_moves or raise NoLegalMoves / RetriesExhausted."""
        if not snapshot.legal_moves:
            raise NoLegalMoves(snapshot.fen)
        prompt = build_move_prompt(snapshot.pgn, snapshot.fen, snapshot.legal_moves, difficulty)
        t0 = time.monotonic()
        last_error: Optional[AttemptFailed] = None

        for number in range(1, self.policy.max_retries + 1):
            attempt = Attempt(number)
            try:
                payload = self.transport.complete(prompt.system, prompt.user)
                raw = extract_move_text(payload)
            except AttemptFailed as err:
                last_error = err
                log.debug("Attempt %d failed after %d ms", attempt.number, attempt.elapsed_ms())
                if self.policy.should_retry(attempt.number):
                    self.policy.wait(attempt.number, err)
                continue

            decision = gate_move(raw, snapshot.legal_moves, self.rng)
            result = MoveResult(
                move=decision.move,
                source=decision.source,
                raw=raw,
                attempts=attempt.number,
                latency_ms=int((time.monotonic() - t0) * 1000),
            )
            log.info(
                "Accepted move %s (source=%s, attempts=%d, latency_ms=%d)",
                result.move,
                result.source,
                result.attempts,
                result.latency_ms,
            )
            return result

        exhausted = RetriesExhausted(self.policy.max_retries, last_error, endpoint=self.endpoint)
        log.error("All %d attempts failed for %s: %s", self.policy.max_retries, self.endpoint, exhausted)
        raise exhausted


def build_acquirer(settings: Settings, transport=None, rng: Optional[random.Random] = None, sleep=None) -> MoveAcquirer:
    """Wire an acquirer from validated settings."""
    rng = rng or random.Random()
    policy = BackoffPolicy.from_settings(settings, rng=rng, sleep=sleep)
    return MoveAcquirer(transport or create_transport(settings), policy, rng=rng)
