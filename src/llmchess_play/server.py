"""
Flask app: inference proxy plus a small game API for the browser board.

Endpoints:
- GET  /api/health                -> proxy and inference-server reachability
- POST /api/llama                 -> forward {systemMessage, userMessage}, return {move}
- POST /api/move                  -> full acquisition for {pgn, fen, legalMoves, difficulty}
- POST /api/games                 -> start a game (AI moves first if it plays white)
- GET  /api/games/<id>            -> current game state
- GET  /api/games/<id>/moves      -> verbose legal moves (?square=e2 to filter)
- POST /api/games/<id>/move       -> apply a player move, then the AI reply
- GET  /<path>                    -> built frontend (index.html fallback for client routing)

Inference credentials and location stay on the server; every response carries CORS headers.
"""
from __future__ import annotations

import datetime
import logging
import os
import sys
from typing import Optional

from flask import Flask, jsonify, request, send_from_directory

from .acquisition import MoveAcquirer, build_acquirer
from .config import Settings, load_settings, validate_settings
from .errors import AttemptFailed, ErrorKind, NoLegalMoves, RetriesExhausted
from .llm_client import ChatTransport
from .move_validator import extract_move_text
from .position import PositionSnapshot
from .prompting import Difficulty
from .referee import Referee
from .session import MODE_AI, GameSession, SessionError, SessionStore

log = logging.getLogger("server")

_SESSION_ERROR_STATUS = {
    "game_over": 409,
    "not_your_turn": 409,
    "missing_move": 400,
    "illegal_move": 400,
}


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _error(code: str, message: str, status: int):
    return jsonify({"error": code, "message": message}), status


def _json_object() -> Optional[dict]:
    """Request body as a dict; an empty body counts as {}, any non-object JSON as None."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


_NOT_AN_OBJECT = "request body must be a JSON object"


def create_app(
    settings: Settings,
    acquirer: Optional[MoveAcquirer] = None,
    transport=None,
    store: Optional[SessionStore] = None,
) -> Flask:
    """Build the app. The proxy always talks to the inference endpoint directly."""
    app = Flask(__name__, static_folder=None)
    relay = transport or ChatTransport(settings)
    acquirer = acquirer or build_acquirer(settings, transport=relay)
    store = store or SessionStore(ttl_s=settings.game_ttl_s)
    static_dir = os.path.abspath(settings.static_dir)
    app.extensions["llmchess"] = {"acquirer": acquirer, "transport": relay, "store": store}

    # ---------------- Proxy -----------------
    @app.route("/api/health", methods=["GET"])
    def health():
        reachable = relay.check_health()
        return jsonify(
            {
                "status": "healthy",
                "backend": "connected",
                "llamaServer": "connected" if reachable else "disconnected",
                "llmApiKey": "configured" if settings.llm_api_key else "not configured",
                "timestamp": _utc_now(),
            }
        )

    @app.route("/api/llama", methods=["POST"])
    def proxy_llama():
        data = _json_object()
        if data is None:
            return _error("bad_request", _NOT_AN_OBJECT, 400)
        system = data.get("systemMessage")
        user = data.get("userMessage")
        if not isinstance(system, str) or not isinstance(user, str):
            return _error("bad_request", "systemMessage and userMessage are required strings", 400)
        try:
            move = extract_move_text(relay.complete(system, user))
        except AttemptFailed as exc:
            log.exception("Error proxying to inference server %s", relay.endpoint)
            status = 429 if exc.kind == ErrorKind.RATE_LIMITED else 500
            return _error("Failed to connect to llama server", exc.message, status)
        return jsonify({"move": move})

    @app.route("/api/move", methods=["POST"])
    def acquire_move():
        data = _json_object()
        if data is None:
            return _error("bad_request", _NOT_AN_OBJECT, 400)
        legal = data.get("legalMoves")
        if not isinstance(legal, list) or not all(isinstance(m, str) for m in legal):
            return _error("bad_request", "legalMoves must be a list of strings", 400)
        try:
            difficulty = Difficulty(data.get("difficulty") or Difficulty.EASY.value)
        except ValueError:
            return _error("bad_request", "difficulty must be one of easy, medium, hard", 400)
        snapshot = PositionSnapshot(pgn=str(data.get("pgn") or ""), fen=str(data.get("fen") or ""), legal_moves=legal)
        try:
            result = acquirer.acquire(snapshot, difficulty)
        except NoLegalMoves as exc:
            return _error(exc.kind.value, str(exc), 422)
        except RetriesExhausted as exc:
            return _error(exc.kind.value, str(exc), 502)
        return jsonify(result.to_dict())

    # ---------------- Games -----------------
    def _lookup(game_id: str) -> Optional[GameSession]:
        store.cleanup()
        return store.get(game_id)

    @app.route("/api/games", methods=["POST"])
    def create_game():
        store.cleanup()
        data = _json_object()
        if data is None:
            return _error("bad_request", _NOT_AN_OBJECT, 400)
        pgn = data.get("pgn")
        if pgn is not None and not isinstance(pgn, str):
            return _error("bad_request", "pgn must be a string", 400)
        try:
            referee = Referee.from_pgn(pgn) if pgn else Referee()
            session = GameSession(
                acquirer=acquirer,
                mode=data.get("mode") or MODE_AI,
                player_color=data.get("playerColor") or "w",
                difficulty=data.get("difficulty") or Difficulty.EASY.value,
                referee=referee,
            )
        except ValueError as exc:
            return _error("bad_request", str(exc), 400)
        with session.lock:
            session.play_ai_turn()
        store.add(session)
        return jsonify(session.to_dict()), 201

    @app.route("/api/games/<game_id>", methods=["GET"])
    def get_game(game_id: str):
        session = _lookup(game_id)
        if not session:
            return _error("not_found", f"No game '{game_id}'", 404)
        return jsonify(session.to_dict())

    @app.route("/api/games/<game_id>/moves", methods=["GET"])
    def game_moves(game_id: str):
        session = _lookup(game_id)
        if not session:
            return _error("not_found", f"No game '{game_id}'", 404)
        square = request.args.get("square")
        try:
            moves = session.referee.moves_from(square)
        except ValueError:
            return _error("bad_request", f"Invalid square '{square}'", 400)
        return jsonify({"moves": moves})

    @app.route("/api/games/<game_id>/move", methods=["POST"])
    def game_move(game_id: str):
        session = _lookup(game_id)
        if not session:
            return _error("not_found", f"No game '{game_id}'", 404)
        data = _json_object()
        if data is None:
            return _error("bad_request", _NOT_AN_OBJECT, 400)
        fields = {key: data.get(key) for key in ("from", "to", "promotion", "san")}
        if any(val is not None and not isinstance(val, str) for val in fields.values()):
            return _error("bad_request", "from, to, promotion and san must be strings", 400)
        with session.lock:
            try:
                session.apply_human_move(
                    from_sq=fields["from"],
                    to_sq=fields["to"],
                    promotion=fields["promotion"],
                    san=fields["san"],
                )
            except SessionError as exc:
                return _error(exc.code, exc.message, _SESSION_ERROR_STATUS.get(exc.code, 400))
            session.play_ai_turn()
            return jsonify(session.to_dict())

    # ---------------- CORS / static -----------------
    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        if request.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"
        return response

    @app.route("/api/<path:path>", methods=["OPTIONS"])
    def cors_preflight(path: str):
        return app.make_response(("", 204))

    @app.route("/", defaults={"path": ""}, methods=["GET"])
    @app.route("/<path:path>", methods=["GET"])
    def frontend(path: str):
        if path.startswith("api/") or not os.path.isdir(static_dir):
            return _error("not_found", "Not found", 404)
        if path and os.path.isfile(os.path.join(static_dir, path)):
            return send_from_directory(static_dir, path)
        return send_from_directory(static_dir, "index.html")

    return app


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings()
    problem = validate_settings(settings)
    if problem is not None:
        for item in problem.problems:
            log.error("Configuration problem: %s", item)
        return 2
    app = create_app(settings)
    log.info("Backend server running on port %d", settings.port)
    log.info("Inference endpoint: %s/chat/completions", settings.api_base)
    app.run(host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
