"""
Rules engine adapter over python-chess.

Rooms never touch chess.Board directly: every position change goes through
ChessBoard.apply() or reset(), and everything a room broadcasts about a move
comes back in one AppliedMove.
"""

from __future__ import annotations

from dataclasses import dataclass

import chess

from chessrooms.events import Color, GameOverReason, GameResult

_PROMOTION_PIECES = {
    "n": chess.KNIGHT,
    "b": chess.BISHOP,
    "r": chess.ROOK,
    "q": chess.QUEEN,
}

_COLOR_NAMES: dict[chess.Color, Color] = {chess.WHITE: "white", chess.BLACK: "black"}

_TERMINATION_REASONS: dict[chess.Termination, GameOverReason] = {
    chess.Termination.CHECKMATE: "checkmate",
    chess.Termination.STALEMATE: "stalemate",
    chess.Termination.THREEFOLD_REPETITION: "threefold_repetition",
    chess.Termination.FIFTY_MOVES: "fifty_move",
    chess.Termination.INSUFFICIENT_MATERIAL: "insufficient_material",
}


@dataclass(frozen=True)
class MoveDescriptor:
    """A move as clients send it: {"from": "e7", "to": "e8", "promotion": "q"}."""

    from_square: str
    to_square: str
    promotion: str | None = None


@dataclass(frozen=True)
class AppliedMove:
    """What a successfully applied move did, captured around the push."""

    color: Color
    from_square: str
    to_square: str
    promotion: str | None
    uci: str
    san: str
    is_capture: bool
    is_castle: bool
    is_en_passant: bool
    is_check: bool


class ChessBoard:
    """Facade over chess.Board."""

    def __init__(self, fen: str | None = None) -> None:
        self._initial_fen = fen
        self._board = chess.Board(fen or chess.STARTING_FEN)

    # ------------------------------------------------------------------ #
    # State queries                                                        #
    # ------------------------------------------------------------------ #

    @property
    def fen(self) -> str:
        return self._board.fen()

    @property
    def turn(self) -> Color:
        return _COLOR_NAMES[self._board.turn]

    @property
    def is_game_over(self) -> bool:
        # Claimable draws end the game; there is no "claim draw" request.
        return self._board.is_game_over(claim_draw=True)

    @property
    def ply_count(self) -> int:
        return len(self._board.move_stack)

    # ------------------------------------------------------------------ #
    # Move application                                                    #
    # ------------------------------------------------------------------ #

    def resolve(self, descriptor: MoveDescriptor) -> chess.Move | None:
        """
        Resolve a descriptor to a legal chess.Move, or None.

        The promotion piece is only honoured on an actual promotion: browser
        clients attach promotion="q" to every move, so a plain e2e4 with a
        promotion letter still resolves to e2e4. A pawn reaching the last rank
        without a promotion letter promotes to a queen.
        """
        try:
            from_sq = chess.parse_square(descriptor.from_square.strip().lower())
            to_sq = chess.parse_square(descriptor.to_square.strip().lower())
        except ValueError:
            return None

        promotion: chess.PieceType | None = None
        if descriptor.promotion:
            promotion = _PROMOTION_PIECES.get(descriptor.promotion.strip().lower())
            if promotion is None:
                return None

        candidates = [chess.Move(from_sq, to_sq, promotion=promotion)]
        if promotion is not None:
            candidates.append(chess.Move(from_sq, to_sq))
        else:
            candidates.append(chess.Move(from_sq, to_sq, promotion=chess.QUEEN))

        for move in candidates:
            if move in self._board.legal_moves:
                return move
        return None

    def apply(self, descriptor: MoveDescriptor) -> AppliedMove | None:
        """Validate and push a move. Returns None (board untouched) if illegal."""
        move = self.resolve(descriptor)
        if move is None:
            return None

        color = self.turn
        san = self._board.san(move)
        is_capture = self._board.is_capture(move)
        is_castle = self._board.is_castling(move)
        is_en_passant = self._board.is_en_passant(move)
        self._board.push(move)

        return AppliedMove(
            color=color,
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
            uci=move.uci(),
            san=san,
            is_capture=is_capture,
            is_castle=is_castle,
            is_en_passant=is_en_passant,
            is_check=self._board.is_check(),
        )

    def reset(self) -> None:
        """Back to the starting position."""
        self._board = chess.Board(self._initial_fen or chess.STARTING_FEN)

    # ------------------------------------------------------------------ #
    # Outcome                                                              #
    # ------------------------------------------------------------------ #

    def game_over_reason(self) -> GameOverReason:
        outcome = self._outcome()
        if outcome is None:
            return "game_over"
        return _TERMINATION_REASONS.get(
            outcome.termination, "draw" if outcome.winner is None else "game_over"
        )

    def result(self) -> GameResult:
        outcome = self._outcome()
        return outcome.result() if outcome else "*"  # type: ignore[return-value]

    def winner_color(self) -> Color | None:
        outcome = self._outcome()
        if outcome is None or outcome.winner is None:
            return None
        return _COLOR_NAMES[outcome.winner]

    def _outcome(self) -> chess.Outcome | None:
        return self._board.outcome(claim_draw=True)
