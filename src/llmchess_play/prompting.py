"""
Prompt builders for LLM move requests.

A difficulty tier picks a persona line; the system instructions and user
message are rendered from fixed templates with placeholders substituted per move.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


DIFFICULTY_PERSONAS: Dict[Difficulty, str] = {
    Difficulty.EASY: "You are a beginner chess player. Pick a reasonable but not optimal move. Sometimes make a mistake.",
    Difficulty.MEDIUM: "You are an intermediate chess player. Analyze the position and pick a strong move. Avoid obvious blunders.",
    Difficulty.HARD: "You are a world-class chess grandmaster. Analyze the position deeply and pick the absolute best move.",
}

SYSTEM_TEMPLATE = """You are a chess engine. Your task is to analyze the given chess game and determine the best next move for the current player.
The game history is provided in PGN format, and the current board state in FEN format.

{PERSONA}

From the list of legal moves provided, choose the single best move.
You must respond with only the move from the list, no other text, explanation, or commentary."""

USER_TEMPLATE = """Game history (PGN):
{PGN}

Current position (FEN):
{FEN}

Legal moves:
[{LEGAL_MOVES}]"""


@dataclass(frozen=True)
class MovePrompt:
    """System instruction plus user message for one move request."""

    system: str
    user: str

    def to_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def render_custom_prompt(template: str, values: Dict[str, str]) -> str:
    """Replace known placeholders in the template. Unknown tokens are left intact."""
    rendered = template or ""
    for key, val in values.items():
        rendered = rendered.replace(f"{{{key}}}", val)
    return rendered


def build_move_prompt(pgn: str, fen: str, legal_moves: Sequence[str], difficulty: Difficulty | str) -> MovePrompt:
    """Build the prompt pair for a position. Raises ValueError for an unknown tier."""
    tier = Difficulty(difficulty)
    system = render_custom_prompt(SYSTEM_TEMPLATE, {"PERSONA": DIFFICULTY_PERSONAS[tier]})
    user = render_custom_prompt(
        USER_TEMPLATE,
        {
            "PGN": pgn,
            "FEN": fen,
            "LEGAL_MOVES": ", ".join(legal_moves),
        },
    )
    return MovePrompt(system=system, user=user)
