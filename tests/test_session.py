import unittest

from llmchess_play.acquisition import MoveResult
from llmchess_play.errors import RetriesExhausted, ServerError
from llmchess_play.referee import Referee
from llmchess_play.session import (
    MODE_FRIEND,
    STATE_ERROR,
    STATE_GAME_OVER,
    STATE_PLAYING,
    GameSession,
    SessionError,
    SessionStore,
)


class FakeAcquirer:
    """Returns scripted moves (or raises scripted errors) and records each snapshot."""

    def __init__(self, *moves):
        self.moves = list(moves)
        self.snapshots = []

    def acquire(self, snapshot, difficulty):
        self.snapshots.append(snapshot)
        step = self.moves.pop(0)
        if isinstance(step, Exception):
            raise step
        return MoveResult(move=step, source="model", raw=step, attempts=1)


class GameSessionTests(unittest.TestCase):
    def test_ai_moves_first_when_player_is_black(self):
        session = GameSession(FakeAcquirer("e4"), player_color="b")
        self.assertTrue(session.ai_to_move())
        applied = session.play_ai_turn()
        self.assertEqual(applied["san"], "e4")
        self.assertEqual(applied["source"], "model")
        state = session.to_dict()
        self.assertEqual(state["history"], ["e4"])
        self.assertEqual(state["lastAiMove"]["san"], "e4")
        self.assertTrue(state["isPlayerTurn"])
        self.assertEqual(state["status"], "Black's turn")

    def test_player_move_then_ai_reply(self):
        acquirer = FakeAcquirer("e5")
        session = GameSession(acquirer, player_color="w", difficulty="hard")
        self.assertIsNone(session.play_ai_turn())
        session.apply_human_move(from_sq="e2", to_sq="e4")
        session.play_ai_turn()
        self.assertEqual(session.referee.history(), ["e4", "e5"])
        snap = acquirer.snapshots[0]
        self.assertIn("e5", snap.legal_moves)
        self.assertEqual(snap.pgn, "1. e4 *")

    def test_not_your_turn(self):
        session = GameSession(FakeAcquirer(), player_color="b")
        with self.assertRaises(SessionError) as ctx:
            session.apply_human_move(san="e4")
        self.assertEqual(ctx.exception.code, "not_your_turn")

    def test_missing_and_illegal_moves(self):
        session = GameSession(FakeAcquirer())
        with self.assertRaises(SessionError) as ctx:
            session.apply_human_move()
        self.assertEqual(ctx.exception.code, "missing_move")
        with self.assertRaises(SessionError) as ctx:
            session.apply_human_move(san="Ke2")
        self.assertEqual(ctx.exception.code, "illegal_move")

    def test_acquisition_failure_ends_the_round(self):
        failure = RetriesExhausted(5, ServerError("Internal Server Error", 500), endpoint="http://llm.test")
        session = GameSession(FakeAcquirer(failure), player_color="b")
        self.assertIsNone(session.play_ai_turn())
        self.assertEqual(session.state, STATE_ERROR)
        state = session.to_dict()
        self.assertEqual(state["gameOver"]["title"], "AI Error")
        self.assertIn("after 5 attempts", state["gameOver"]["message"])
        self.assertEqual(state["status"], "AI Error")
        self.assertEqual(state["history"], [])
        with self.assertRaises(SessionError) as ctx:
            session.apply_human_move(san="e4")
        self.assertEqual(ctx.exception.code, "game_over")

    def test_late_result_is_discarded(self):
        session = GameSession(FakeAcquirer(), player_color="b")
        snapshot = session.referee.snapshot()
        session.referee.apply_san("d4")
        late = MoveResult(move="e4", source="model", raw="e4", attempts=1)
        self.assertIsNone(session.apply_ai_result(snapshot, late))
        self.assertEqual(session.referee.history(), ["d4"])
        self.assertEqual(session.state, STATE_PLAYING)

    def test_move_the_board_rejects_is_an_error(self):
        session = GameSession(FakeAcquirer(), player_color="b")
        snapshot = session.referee.snapshot()
        bogus = MoveResult(move="Ke2", source="model", raw="Ke2", attempts=1)
        self.assertIsNone(session.apply_ai_result(snapshot, bogus))
        self.assertEqual(session.state, STATE_ERROR)
        self.assertIn("invalid move (Ke2)", session.game_over["message"])

    def test_ai_checkmate_ends_the_game(self):
        ref = Referee()
        for san in ("f3", "e5", "g4"):
            ref.apply_san(san)
        session = GameSession(FakeAcquirer("Qh4#"), player_color="w", referee=ref)
        session.play_ai_turn()
        self.assertEqual(session.state, STATE_GAME_OVER)
        self.assertEqual(session.game_over, {"title": "Checkmate!", "message": "Black wins."})
        self.assertFalse(session.to_dict()["isPlayerTurn"])

    def test_friend_mode_never_calls_the_model(self):
        session = GameSession(None, mode=MODE_FRIEND)
        session.apply_human_move(san="e4")
        self.assertIsNone(session.play_ai_turn())
        session.apply_human_move(san="e5")
        self.assertEqual(session.referee.history(), ["e4", "e5"])

    def test_invalid_construction(self):
        with self.assertRaises(ValueError):
            GameSession(FakeAcquirer(), mode="online")
        with self.assertRaises(ValueError):
            GameSession(FakeAcquirer(), player_color="white")
        with self.assertRaises(ValueError):
            GameSession(None)
        with self.assertRaises(ValueError):
            GameSession(FakeAcquirer(), difficulty="impossible")


class SessionStoreTests(unittest.TestCase):
    def test_inactive_sessions_expire(self):
        store = SessionStore(ttl_s=60)
        old = GameSession(None, mode=MODE_FRIEND)
        fresh = GameSession(None, mode=MODE_FRIEND)
        old.updated_at = fresh.updated_at - 120
        store.add(old)
        store.add(fresh)
        self.assertEqual(store.cleanup(now=fresh.updated_at), 1)
        self.assertIsNone(store.get(old.id))
        self.assertIs(store.get(fresh.id), fresh)
        self.assertEqual(len(store), 1)


if __name__ == "__main__":
    unittest.main()
