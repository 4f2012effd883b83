import unittest

from chessrooms.board import ChessBoard, MoveDescriptor

SCHOLARS_MATE = [
    ("e2", "e4"), ("e7", "e5"),
    ("f1", "c4"), ("b8", "c6"),
    ("d1", "h5"), ("g8", "f6"),
    ("h5", "f7"),
]


def mv(frm: str, to: str, promotion: str | None = None) -> MoveDescriptor:
    return MoveDescriptor(from_square=frm, to_square=to, promotion=promotion)


class ChessBoardTests(unittest.TestCase):
    def test_legal_move_is_applied_and_turn_passes(self) -> None:
        board = ChessBoard()
        applied = board.apply(mv("e2", "e4"))
        assert applied is not None
        self.assertEqual(applied.san, "e4")
        self.assertEqual(applied.uci, "e2e4")
        self.assertEqual(applied.color, "white")
        self.assertEqual(board.turn, "black")

    def test_illegal_move_leaves_board_untouched(self) -> None:
        board = ChessBoard()
        fen = board.fen
        self.assertIsNone(board.apply(mv("e2", "e5")))
        self.assertIsNone(board.apply(mv("z9", "e4")))
        self.assertEqual(board.fen, fen)

    def test_promotion_letter_on_ordinary_move_is_ignored(self) -> None:
        # Browser clients send promotion="q" with every move
        board = ChessBoard()
        applied = board.apply(mv("g1", "f3", "q"))
        assert applied is not None
        self.assertEqual(applied.uci, "g1f3")
        self.assertIsNone(applied.promotion)

    def test_pawn_promotes_to_requested_piece_or_queen(self) -> None:
        fen = "8/P7/8/8/8/8/8/k6K w - - 0 1"
        knight = ChessBoard(fen).apply(mv("a7", "a8", "n"))
        queen = ChessBoard(fen).apply(mv("a7", "a8"))
        assert knight is not None and queen is not None
        self.assertEqual(knight.promotion, "n")
        self.assertEqual(queen.promotion, "q")

    def test_unknown_promotion_piece_is_rejected(self) -> None:
        board = ChessBoard("8/P7/8/8/8/8/8/k6K w - - 0 1")
        self.assertIsNone(board.apply(mv("a7", "a8", "k")))

    def test_castle_and_capture_flags(self) -> None:
        board = ChessBoard("r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1")
        castle = board.apply(mv("e1", "g1"))
        assert castle is not None
        self.assertTrue(castle.is_castle)
        capture = board.apply(mv("a8", "a1"))
        assert capture is not None
        self.assertTrue(capture.is_capture)

    def test_en_passant_flag(self) -> None:
        board = ChessBoard("4k3/8/8/3pP3/8/8/8/4K3 w - d6 0 2")
        applied = board.apply(mv("e5", "d6"))
        assert applied is not None
        self.assertTrue(applied.is_en_passant)
        self.assertTrue(applied.is_capture)

    def test_checkmate_outcome(self) -> None:
        board = ChessBoard()
        applied = [board.apply(mv(frm, to)) for frm, to in SCHOLARS_MATE]
        self.assertNotIn(None, applied)
        self.assertTrue(applied[-1].is_check)
        self.assertTrue(applied[-1].is_capture)
        self.assertTrue(board.is_game_over)
        self.assertEqual(board.game_over_reason(), "checkmate")
        self.assertEqual(board.winner_color(), "white")
        self.assertEqual(board.result(), "1-0")

    def test_stalemate_is_a_draw(self) -> None:
        board = ChessBoard("7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")
        self.assertTrue(board.is_game_over)
        self.assertEqual(board.game_over_reason(), "stalemate")
        self.assertIsNone(board.winner_color())
        self.assertEqual(board.result(), "1/2-1/2")

    def test_reset_restores_start_position(self) -> None:
        board = ChessBoard()
        start = board.fen
        board.apply(mv("d2", "d4"))
        board.reset()
        self.assertEqual(board.fen, start)
        self.assertEqual(board.ply_count, 0)
