"""
Error taxonomy for AI move acquisition.

- AttemptFailed subclasses end one attempt and are retried by the backoff policy.
- NoLegalMoves and RetriesExhausted propagate to the caller.
- ConfigError is raised (or returned) by settings validation at startup.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    EMPTY_RESPONSE = "empty_response"
    NO_LEGAL_MOVES = "no_legal_moves"


class MoveAcquisitionError(Exception):
    """Base class for every failure the acquisition path can surface."""

    kind: ErrorKind = ErrorKind.SERVER


class AttemptFailed(MoveAcquisitionError):
    """A single attempt failed; the retry loop decides what happens next."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(AttemptFailed):
    kind = ErrorKind.NETWORK


class RateLimited(AttemptFailed):
    kind = ErrorKind.RATE_LIMITED


class ServerError(AttemptFailed):
    kind = ErrorKind.SERVER


class EmptyResponse(AttemptFailed):
    kind = ErrorKind.EMPTY_RESPONSE


class NoLegalMoves(MoveAcquisitionError):
    """Acquisition was requested for a position with no legal moves."""

    kind = ErrorKind.NO_LEGAL_MOVES

    def __init__(self, fen: str = ""):
        msg = "No legal moves available; the game is already over."
        if fen:
            msg = f"{msg} (FEN: {fen})"
        super().__init__(msg)
        self.fen = fen


class RetriesExhausted(MoveAcquisitionError):
    """Every attempt failed. `kind` mirrors the last failure."""

    def __init__(self, attempts: int, last_error: Optional[AttemptFailed], endpoint: str = ""):
        self.attempts = attempts
        self.last_error = last_error
        self.endpoint = endpoint
        self.kind = last_error.kind if last_error is not None else ErrorKind.SERVER
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.kind == ErrorKind.NETWORK:
            where = f" at {self.endpoint}" if self.endpoint else ""
            return (
                f"Failed to connect to AI server{where}. "
                "Please check that the inference server is running and reachable."
            )
        if self.kind == ErrorKind.RATE_LIMITED:
            return "AI service is currently rate limited. Please try again in a few minutes."
        detail = self.last_error.message if self.last_error is not None else "Unknown error"
        return f"Failed to get move from AI API after {self.attempts} attempts: {detail}"


class ConfigError(Exception):
    """Invalid startup configuration; `problems` lists every violation found."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid configuration: " + "; ".join(self.problems))
