"""
Play one game in the terminal against the model.

Settings (endpoint, model, retries) come from settings.yml / environment; the
JSON --config only supplies per-game defaults (difficulty, side, start FEN).
"""
import argparse
import json
import logging
import sys

from llmchess_play.acquisition import build_acquirer
from llmchess_play.config import load_settings, validate_settings
from llmchess_play.errors import MoveAcquisitionError
from llmchess_play.prompting import Difficulty
from llmchess_play.referee import Referee
from llmchess_play.user_opponent import UserOpponent


def load_json_config(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logging.getLogger("play_one").error("Failed to read config %s: %s", path, e)
        return {}


def play(ref: Referee, acquirer, human_color: str, difficulty: Difficulty, human=None, log=None) -> str:
    """Alternate human and model moves until the game ends. Returns the result string."""
    log = log or logging.getLogger("play_one")
    human = human or UserOpponent()
    while not ref.is_game_over():
        if ref.turn() == human_color:
            mv = human.choose(ref.board)
            ref.apply_san(mv.uci())
            continue
        snapshot = ref.snapshot()
        try:
            result = acquirer.acquire(snapshot, difficulty)
        except MoveAcquisitionError as exc:
            # a failed AI turn ends the session; board is unchanged
            print(f"AI Error: {exc}")
            return "*"
        applied = ref.apply_san(result.move)
        if applied is None:
            print(f"AI Error: The AI made an invalid move ({result.move}).")
            return "*"
        note = " (random fallback)" if result.is_fallback else ""
        print(f"AI plays {applied['san']}{note}")
        log.info("AI move %s source=%s attempts=%d", applied["san"], result.source, result.attempts)
    over = ref.game_over() or {}
    print(f"{over.get('title', 'Game over')} {over.get('message', '')}".strip())
    return ref.status()


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=None, help="Optional JSON config file to load defaults from.")
    ap.add_argument("--difficulty", choices=[d.value for d in Difficulty], default=None)
    ap.add_argument("--human-plays", choices=["white", "black"], default=None, help="Which side you play")
    ap.add_argument("--fen", default=None, help="Start from this FEN instead of the initial position")
    ap.add_argument("--pgn-out", default=None, help="Optional path to write PGN at end")
    ap.add_argument("--log-level", default=None, help="Python logging level (e.g., INFO, DEBUG)")
    args = ap.parse_args()

    cfg_dict = load_json_config(args.config) if args.config else {}

    # CLI arg if provided -> config -> default
    def pick(key, default=None):
        v = getattr(args, key, None)
        if v is not None:
            return v
        if cfg_dict.get(key) is not None:
            return cfg_dict[key]
        return default

    log_level = str(pick("log_level", default="WARNING")).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.WARNING), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log = logging.getLogger("play_one")

    settings = load_settings()
    problem = validate_settings(settings)
    if problem is not None:
        for item in problem.problems:
            log.error("Configuration problem: %s", item)
        sys.exit(2)

    human_color = "w" if pick("human_plays", default="white") == "white" else "b"
    difficulty = Difficulty(pick("difficulty", default="easy"))
    ref = Referee(starting_fen=pick("fen"))
    white, black = ("Human", settings.model) if human_color == "w" else (settings.model, "Human")
    ref.set_headers(white=white, black=black)

    acquirer = build_acquirer(settings)
    if not acquirer.transport.check_health():
        log.warning("Inference endpoint %s did not answer its health probe", acquirer.endpoint)
    log.info("Starting game: model=%s difficulty=%s human=%s", settings.model, difficulty.value, human_color)
    result = play(ref, acquirer, human_color, difficulty, log=log)

    print("Result:", result)
    print("PGN:\n", ref.pgn())
    if args.pgn_out:
        with open(args.pgn_out, "w", encoding="utf-8") as f:
            f.write(ref.pgn())
        log.info("Wrote PGN to %s", args.pgn_out)
