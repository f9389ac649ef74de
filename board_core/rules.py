"""Rules engine port and its python-chess implementation.

The session never inspects chess rules itself. Everything it needs to know
about a position goes through the five calls of :class:`RulesEngine`, and
positions travel as plain FEN strings.
"""

from __future__ import annotations

import re
from typing import List, Optional, Protocol

import chess

MOVE_PATTERN = re.compile(r"[a-h][1-8][a-h][1-8][nbrqNBRQ]?")
SQUARE_NAMES = frozenset(chess.SQUARE_NAMES)

EMPTY_SQUARE_CLASS = "empty-square"
INVALID_FEN_STATE = "Invalid FEN"


class RulesEngine(Protocol):
    def game_state(self, position: str) -> str: ...

    def is_valid_move(self, position: str, move: str) -> bool: ...

    def next_position(self, position: str, move: str) -> str: ...

    def legal_targets(self, position: str, square: str) -> List[str]: ...

    def render_classes(self, position: str) -> List[str]: ...


def piece_class(piece: Optional[chess.Piece]) -> str:
    if piece is None:
        return EMPTY_SQUARE_CLASS
    return f"piece {chess.COLOR_NAMES[piece.color]}-{chess.piece_name(piece.piece_type)}"


def board_squares() -> List[int]:
    """Square indices in render order: rank 8 down to rank 1, file a to h."""
    return [chess.square(file_idx, rank) for rank in range(7, -1, -1) for file_idx in range(8)]


def is_square(name: str) -> bool:
    return name in SQUARE_NAMES


def render_index(name: str) -> int:
    """Position of square ``name`` within :meth:`RulesEngine.render_classes`."""
    square = chess.parse_square(name)
    return (7 - chess.square_rank(square)) * 8 + chess.square_file(square)


class PythonChessRules:
    """Stateless :class:`RulesEngine` backed by ``chess.Board``."""

    def game_state(self, position: str) -> str:
        board = self._board(position)
        if board is None:
            return INVALID_FEN_STATE
        if board.is_checkmate():
            winner = "Black" if board.turn == chess.WHITE else "White"
            return f"Checkmate: {winner} wins"
        if board.is_stalemate():
            return "Stalemate: Draw"
        if board.is_insufficient_material():
            return "Draw: insufficient material"
        if board.is_seventyfive_moves():
            return "Draw: seventy-five-move rule"
        turn = "White" if board.turn == chess.WHITE else "Black"
        return f"{turn} to move"

    def is_valid_move(self, position: str, move: str) -> bool:
        if not MOVE_PATTERN.fullmatch(move):
            return False
        board = self._board(position)
        if board is None:
            return False
        if len(move) == 4:
            return move[2:4] in self.legal_targets(position, move[:2])
        return self._promotion_move(board, move) is not None

    def next_position(self, position: str, move: str) -> str:
        board = self._board(position)
        if board is None:
            raise ValueError(f"Invalid FEN: {position!r}")
        if not MOVE_PATTERN.fullmatch(move):
            raise ValueError(f"Malformed move: {move!r}")

        if len(move) == 5:
            candidate = self._promotion_move(board, move)
            if candidate is None:
                raise ValueError(f"Illegal promotion {move} on position {position}")
        else:
            candidate = chess.Move.from_uci(move)
            if candidate not in board.legal_moves:
                if chess.Move(candidate.from_square, candidate.to_square, promotion=chess.QUEEN) in board.legal_moves:
                    raise ValueError(f"Move {move} needs a promotion piece letter")
                raise ValueError(f"Illegal move {move} on position {position}")

        board.push(candidate)
        # Standard FEN keeps the en-passant target after every double push.
        return board.fen(en_passant="fen")

    def legal_targets(self, position: str, square: str) -> List[str]:
        board = self._board(position)
        if board is None or square not in chess.SQUARE_NAMES:
            return []
        origin = chess.parse_square(square)
        targets: List[str] = []
        for move in board.legal_moves:
            if move.from_square != origin:
                continue
            name = chess.square_name(move.to_square)
            if name not in targets:
                targets.append(name)
        return targets

    def render_classes(self, position: str) -> List[str]:
        board = self._board(position)
        if board is None:
            return []
        return [piece_class(board.piece_at(square)) for square in board_squares()]

    @staticmethod
    def _board(position: str) -> Optional[chess.Board]:
        try:
            board = chess.Board(position)
        except ValueError:
            return None
        if not board.is_valid():
            return None
        return board

    @staticmethod
    def _promotion_move(board: chess.Board, move: str) -> Optional[chess.Move]:
        letter = move[4]
        # Uppercase letters promote White pieces, lowercase Black ones.
        if letter.isupper() != (board.turn == chess.WHITE):
            return None
        candidate = chess.Move.from_uci(move.lower())
        if candidate not in board.legal_moves:
            return None
        return candidate
