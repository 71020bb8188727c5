from dataclasses import dataclass
from typing import Protocol

import chess

from chessrooms.core.errors import IllegalMove

STARTING_FEN = chess.STARTING_FEN
PROMOTION_PIECES = {"q", "r", "b", "n"}


@dataclass(frozen=True)
class GameResult:
    status: str
    winner: str | None = None
    reason: str | None = None

    def to_payload(self) -> dict:
        payload: dict = {"status": self.status}
        if self.winner:
            payload["winner"] = self.winner
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class AppliedMove:
    from_square: str
    to_square: str
    promotion: str | None = None


class RulesOracle(Protocol):
    def fen(self) -> str: ...

    def turn(self) -> str: ...

    def in_check(self) -> bool: ...

    def apply_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> AppliedMove: ...

    def outcome(self) -> GameResult | None: ...

    def reset(self) -> None: ...

    def load(self, fen: str) -> None: ...


def _color_code(color: chess.Color) -> str:
    return "w" if color == chess.WHITE else "b"


class ChessRulesOracle:
    def __init__(self, fen: str = STARTING_FEN) -> None:
        self._board = chess.Board(fen)

    def fen(self) -> str:
        return self._board.fen(en_passant="fen")

    def turn(self) -> str:
        return _color_code(self._board.turn)

    def in_check(self) -> bool:
        return self._board.is_check()

    def apply_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> AppliedMove:
        try:
            from_index = chess.parse_square(from_square.strip().lower())
            to_index = chess.parse_square(to_square.strip().lower())
        except ValueError as exc:
            raise IllegalMove("Invalid move format") from exc

        # A promotion piece sent with any other move is ignored.
        promotion_type: chess.PieceType | None = None
        if self._is_pawn_reaching_last_rank(from_index, to_index):
            promotion_type = chess.QUEEN
            if promotion:
                symbol = promotion.strip().lower()
                if symbol not in PROMOTION_PIECES:
                    raise IllegalMove("Invalid promotion piece")
                promotion_type = chess.Piece.from_symbol(symbol).piece_type

        move = chess.Move(from_index, to_index, promotion=promotion_type)
        if not self._board.is_legal(move):
            raise IllegalMove()
        self._board.push(move)
        return AppliedMove(
            from_square=chess.square_name(from_index),
            to_square=chess.square_name(to_index),
            promotion=chess.piece_symbol(promotion_type) if promotion_type else None,
        )

    def _is_pawn_reaching_last_rank(self, from_index: chess.Square, to_index: chess.Square) -> bool:
        piece = self._board.piece_at(from_index)
        if piece is None or piece.piece_type != chess.PAWN:
            return False
        return chess.square_rank(to_index) in (0, 7)

    def outcome(self) -> GameResult | None:
        board = self._board
        if board.is_checkmate():
            return GameResult(status="checkmate", winner=_color_code(not board.turn))
        if board.is_stalemate():
            return GameResult(status="stalemate")
        if board.is_repetition(3):
            return GameResult(status="draw", reason="threefold repetition")
        if board.is_insufficient_material():
            return GameResult(status="draw", reason="insufficient material")
        if board.is_fifty_moves():
            return GameResult(status="draw", reason="50-move rule")
        return None

    def reset(self) -> None:
        self._board.reset()

    def load(self, fen: str) -> None:
        # chess.Board raises ValueError on a malformed FEN before anything is replaced.
        self._board = chess.Board(fen)
