import unittest

from llmchess_play.referee import Referee


def play(ref, *sans):
    for san in sans:
        if ref.apply_san(san) is None:
            raise AssertionError(f"{san} was rejected")
    return ref


class GameOverTests(unittest.TestCase):
    def test_checkmate(self):
        ref = play(Referee(), "f3", "e5", "g4", "Qh4#")
        self.assertTrue(ref.is_game_over())
        self.assertEqual(ref.game_over(), {"title": "Checkmate!", "message": "Black wins."})
        self.assertEqual(ref.status_text(), "Checkmate! Black wins.")
        self.assertEqual(ref.status(), "0-1")
        self.assertEqual(ref.legal_moves(), [])
        self.assertTrue(ref.snapshot().is_terminal)

    def test_stalemate_is_reported_as_stalemate(self):
        ref = Referee(starting_fen="7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")
        self.assertEqual(ref.game_over(), {"title": "Stalemate!", "message": "The game is a stalemate."})
        self.assertEqual(ref.status(), "1/2-1/2")

    def test_insufficient_material_is_a_draw(self):
        ref = Referee(starting_fen="8/8/8/8/8/8/8/K6k w - - 0 1")
        self.assertEqual(ref.game_over(), {"title": "Draw!", "message": "The game is a draw."})
        self.assertEqual(ref.status_text(), "Draw!")

    def test_running_game(self):
        ref = Referee()
        self.assertIsNone(ref.game_over())
        self.assertEqual(ref.status_text(), "White's turn")
        self.assertEqual(ref.status(), "*")
        self.assertEqual(len(ref.legal_moves()), 20)


class MoveTests(unittest.TestCase):
    def test_verbose_moves_for_a_square(self):
        moves = Referee().moves_from("e2")
        by_to = {m["to"]: m for m in moves}
        self.assertEqual(set(by_to), {"e3", "e4"})
        self.assertEqual(by_to["e3"]["flags"], "n")
        self.assertEqual(by_to["e4"]["flags"], "b")
        self.assertEqual(by_to["e4"]["san"], "e4")

    def test_invalid_square_raises(self):
        with self.assertRaises(ValueError):
            Referee().moves_from("z9")

    def test_promotion_by_squares(self):
        ref = Referee(starting_fen="8/P7/8/8/8/8/8/k6K w - - 0 1")
        promos = ref.moves_from("a7")
        self.assertEqual(sorted(m["promotion"] for m in promos), ["b", "n", "q", "r"])
        self.assertTrue(all("p" in m["flags"] for m in promos))
        self.assertIsNone(ref.apply_squares("a7", "a8"))
        applied = ref.apply_squares("a7", "a8", "q")
        self.assertEqual(applied["from"], "a7")
        self.assertTrue(applied["san"].startswith("a8=Q"))

    def test_illegal_input_is_rejected(self):
        ref = Referee()
        self.assertIsNone(ref.apply_san("Ke2"))
        self.assertIsNone(ref.apply_san(""))
        self.assertIsNone(ref.apply_squares("e2", "e5"))
        self.assertIsNone(ref.apply_squares("x1", "e4"))
        self.assertEqual(ref.history(), [])

    def test_uci_is_accepted(self):
        ref = Referee()
        self.assertEqual(ref.apply_san("g1f3"), {"from": "g1", "to": "f3", "san": "Nf3"})
        self.assertEqual(ref.last_move(), {"from": "g1", "to": "f3"})
        self.assertEqual(ref.turn(), "b")


class PgnTests(unittest.TestCase):
    def test_from_pgn_replays_moves(self):
        ref = Referee.from_pgn('[White "Alice"]\n\n1. e4 e5 2. Nf3 *')
        self.assertEqual(ref.history(), ["e4", "e5", "Nf3"])
        self.assertEqual(ref.turn(), "b")
        self.assertIn('[White "Alice"]', ref.pgn())

    def test_from_pgn_rejects_illegal_game(self):
        with self.assertRaises(ValueError):
            Referee.from_pgn("1. e4 e5 2. Ke3 *")
        with self.assertRaises(ValueError):
            Referee.from_pgn("")

    def test_pgn_output(self):
        ref = play(Referee(), "e4", "e5")
        ref.set_headers(white="Human", black="qwen2.5-coder-7b")
        text = ref.pgn()
        self.assertIn('[White "Human"]', text)
        self.assertIn('[Black "qwen2.5-coder-7b"]', text)
        self.assertIn("1. e4 e5", text)
        self.assertEqual(ref.movetext(), "1. e4 e5 *")


if __name__ == "__main__":
    unittest.main()
