"""
Move extraction and legality gating for LLM replies.

- extract_move_text(): pull the first choice's message content out of a
  chat-completion payload; raise EmptyResponse when there is nothing usable.
- gate_move(): accept the reply only if it is in the legal-move list. On a
  miss, try a light salvage (code fences, zero-castling, check suffixes), then
  fall back to a uniformly random legal move from the injected generator.

The gate never returns a move outside the supplied list.
"""
from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .errors import EmptyResponse, NoLegalMoves

log = logging.getLogger("move_validator")

CASTLE_ZERO = {"0-0": "O-O", "0-0-0": "O-O-O", "o-o": "O-O", "o-o-o": "O-O-O"}
_SUFFIX_RE = re.compile(r"[+#!?.,;]+$")

SOURCE_MODEL = "model"
SOURCE_SALVAGED = "salvaged"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class GateDecision:
    move: str
    source: str  # "model" | "salvaged" | "fallback"

    @property
    def from_model(self) -> bool:
        return self.source != SOURCE_FALLBACK


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for c in content:
            if isinstance(c, dict) and c.get("type") == "text" and isinstance(c.get("text"), str):
                parts.append(c["text"])
        return "\n".join(parts)
    return ""


def extract_move_text(payload: Any) -> str:
    """Return the trimmed content of the first choice, or raise EmptyResponse."""
    content = None
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            msg = first.get("message")
            if isinstance(msg, dict):
                content = msg.get("content")
    text = _content_text(content).strip()
    if not text:
        raise EmptyResponse("No move returned from the inference server")
    return text


def _strip_code_fence(text: str) -> str:
    """Remove simple ``` fences if present."""
    text = text.strip()
    if text.startswith("```") and text.endswith("```"):
        inner = text.split("\n", 1)
        if len(inner) == 2:
            return inner[1].rsplit("\n", 1)[0].strip()
        return text.strip("`").strip()
    return text


def _primary_token(text: str) -> str:
    tokens = _strip_code_fence(text).strip("`").replace("\n", " ").split()
    return tokens[0] if tokens else ""


def _bare(move: str) -> str:
    return _SUFFIX_RE.sub("", move)


def salvage_move(raw: str, legal_moves: Sequence[str]) -> Optional[str]:
    """Map a near-miss reply onto exactly one legal move, or return None."""
    token = _primary_token(raw)
    if not token:
        return None
    token = CASTLE_ZERO.get(_bare(token).lower(), token)
    if token in legal_moves:
        return token
    wanted = _bare(token)
    matches = [mv for mv in legal_moves if _bare(mv) == wanted]
    return matches[0] if len(matches) == 1 else None


def gate_move(candidate: str, legal_moves: Sequence[str], rng: Optional[random.Random] = None) -> GateDecision:
    """Check a candidate against the legal list; salvage or substitute on a miss."""
    if not legal_moves:
        raise NoLegalMoves()
    if candidate in legal_moves:
        return GateDecision(move=candidate, source=SOURCE_MODEL)

    salvaged = salvage_move(candidate, legal_moves)
    if salvaged is not None:
        log.info("Salvaged model reply %r as %s", candidate, salvaged)
        return GateDecision(move=salvaged, source=SOURCE_SALVAGED)

    fallback = (rng or random).choice(list(legal_moves))
    log.warning(
        "Model reply %r is not among %d legal moves; falling back to random legal move %s",
        candidate,
        len(legal_moves),
        fallback,
    )
    return GateDecision(move=fallback, source=SOURCE_FALLBACK)


__all__ = [
    "GateDecision",
    "extract_move_text",
    "gate_move",
    "salvage_move",
    "SOURCE_MODEL",
    "SOURCE_SALVAGED",
    "SOURCE_FALLBACK",
]
