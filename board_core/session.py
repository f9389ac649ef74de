"""Interactive board session: move input, promotion, history and clock.

A :class:`Session` turns abstract pointer events (square activation, drag
start, drop, promotion choice, timer tick) into a consistent game session.
Rules questions are answered by a :class:`~board_core.rules.RulesEngine`;
the session only tracks what the user is doing and what has been committed.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .clock import ChessClock, Side
from .config import SessionConfig
from .exceptions import BoardCoreError, RulesEngineError
from .history import PositionHistory
from .rules import EMPTY_SQUARE_CLASS, MOVE_PATTERN, PythonChessRules, RulesEngine, is_square, render_index
from .status import StatusChannel

logger = logging.getLogger(__name__)

BOARD_SIZE = 64
INVALID_FEN_MESSAGE = "Invalid FEN!"
FEN_COPIED_MESSAGE = "FEN Copied!"

PROMOTION_LETTERS: Dict[str, str] = {
    "knight": "n",
    "bishop": "b",
    "rook": "r",
    "queen": "q",
}
PIECE_KINDS: Dict[str, str] = {letter: kind for kind, letter in PROMOTION_LETTERS.items()}

# (right half, bottom half) of the promotion square -> piece kind
PROMOTION_QUADRANTS: Dict[Tuple[bool, bool], str] = {
    (False, False): "knight",
    (True, False): "bishop",
    (False, True): "rook",
    (True, True): "queen",
}


def promotion_choice_at(x: float, y: float) -> str:
    """Piece kind under a point of the promotion square.

    ``x`` and ``y`` are fractions of the square's width and height measured
    from its top-left corner.
    """
    return PROMOTION_QUADRANTS[(x >= 0.5, y >= 0.5)]


class InputState(Enum):
    IDLE = "idle"
    SELECTED = "selected"
    PROMOTING = "promoting"


@dataclass(frozen=True)
class PendingPromotion:
    square: str
    color: str
    move: str
    token: int

    @property
    def source(self) -> str:
        return self.move[:2]

    def move_with(self, piece_kind: str) -> str:
        letter = PROMOTION_LETTERS[piece_kind]
        return self.move + (letter.upper() if self.color == "white" else letter)


@dataclass(frozen=True)
class BoardUpdate:
    board_changed: bool = False
    selection_changed: bool = False
    moved: bool = False
    promotion_started: bool = False
    promotion_cancelled: bool = False
    history_changed: bool = False
    clock_changed: bool = False
    timed_out: bool = False
    focus_square: Optional[str] = None

    def merge(self, other: "BoardUpdate") -> "BoardUpdate":
        values = {
            f.name: getattr(self, f.name) or getattr(other, f.name)
            for f in fields(self)
            if f.name != "focus_square"
        }
        focus = other.focus_square if other.focus_square is not None else self.focus_square
        return BoardUpdate(focus_square=focus, **values)


@dataclass(frozen=True)
class BoardView:
    squares: Tuple[str, ...]
    fen: str
    status: Optional[str]
    can_undo: bool
    can_redo: bool
    selected_square: Optional[str]
    highlights: Tuple[str, ...]
    promotion_square: Optional[str]
    white_clock: str
    black_clock: str
    active_side: Optional[str]
    log: Tuple[str, ...]
    finished: bool


class Session:
    def __init__(
        self,
        rules: Optional[RulesEngine] = None,
        config: Optional[SessionConfig] = None,
        notify: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.rules: RulesEngine = rules if rules is not None else PythonChessRules()
        self.config = config if config is not None else SessionConfig()
        self.history = PositionHistory()
        self.clock = ChessClock(self.config.starting_seconds)
        self.status = StatusChannel(
            capacity=self.config.log_capacity,
            notify=notify,
            on_alert=self.clock.stop,
            routine_messages=self.config.routine_messages,
        )
        self.selected_square: Optional[str] = None
        self.highlights: Tuple[str, ...] = ()
        self.promotion: Optional[PendingPromotion] = None
        self.finished = False
        self._promotion_tokens = itertools.count(1)
        self.replay()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def position(self) -> str:
        position = self.history.current
        if position is None:
            raise BoardCoreError("Session has no position loaded")
        return position

    @property
    def state(self) -> InputState:
        if self.promotion is not None:
            return InputState.PROMOTING
        if self.selected_square is not None:
            return InputState.SELECTED
        return InputState.IDLE

    def replay(self, fen: Optional[str] = None) -> BoardUpdate:
        """Start over from ``fen`` (the configured initial position by default)."""
        fen = self.config.initial_fen if fen is None else fen.strip()
        if len(self.rules.render_classes(fen)) != BOARD_SIZE:
            raise RulesEngineError(f"Rules engine cannot render position {fen!r}")

        self.status.clear()
        self._clear_selection()
        self.promotion = None
        self.history.reset(fen)
        self.clock.reset()
        logger.info("Session started from %s", fen)
        self._record_state(self.rules.game_state(fen))
        return BoardUpdate(
            board_changed=True,
            selection_changed=True,
            history_changed=True,
            clock_changed=True,
        )

    def teardown(self) -> None:
        self.clock.stop()
        self.promotion = None
        self._clear_selection()

    def submit_fen(self, text: str) -> BoardUpdate:
        text = text.strip()
        if len(self.rules.render_classes(text)) != BOARD_SIZE:
            self.status.record(INVALID_FEN_MESSAGE)
            return BoardUpdate()
        return self.replay(text)

    def copy_fen(self) -> str:
        fen = self.position
        self.status.record(FEN_COPIED_MESSAGE)
        return fen

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------

    def activate(self, square: str) -> BoardUpdate:
        """A click (or tap) on ``square``."""
        if self.finished or not is_square(square):
            return BoardUpdate()

        if self.promotion is not None:
            if square == self.promotion.square:
                # Clicks on the overlay belong to choose()/choose_at().
                return BoardUpdate()
            return self._cancel_promotion().merge(self._select(square))

        if self.selected_square is None:
            return self._select(square)

        if square == self.selected_square:
            self._clear_selection()
            return BoardUpdate(selection_changed=True)

        return self._attempt(self.selected_square, square)

    def drag_start(self, square: str) -> BoardUpdate:
        if self.finished or not is_square(square):
            return BoardUpdate()
        update = self._cancel_promotion()
        if self.selected_square is not None or self.highlights:
            self._clear_selection()
            update = update.merge(BoardUpdate(selection_changed=True))
        return update.merge(self._select(square))

    def drop(self, source: str, target: str) -> BoardUpdate:
        if self.finished or not (is_square(source) and is_square(target)):
            return BoardUpdate()
        update = self._cancel_promotion()
        if source == target:
            self._clear_selection()
            return update.merge(BoardUpdate(selection_changed=True))
        self.selected_square = source
        return update.merge(self._attempt(source, target))

    # ------------------------------------------------------------------
    # Promotion sub-flow
    # ------------------------------------------------------------------

    def promotion_active(self, token: int) -> bool:
        return self.promotion is not None and self.promotion.token == token

    def choose(self, piece_kind: str, token: Optional[int] = None) -> BoardUpdate:
        promotion = self.promotion
        if promotion is None or self.finished or (token is not None and token != promotion.token):
            logger.debug("Ignoring stale promotion choice %s (token %s)", piece_kind, token)
            return BoardUpdate()
        if piece_kind not in PROMOTION_LETTERS:
            raise ValueError(f"Unknown promotion piece: {piece_kind!r}")

        move = promotion.move_with(piece_kind)
        self.promotion = None
        if not self.rules.is_valid_move(self.position, move):
            logger.warning("Rules engine rejected promotion %s", move)
            return BoardUpdate(board_changed=True, promotion_cancelled=True)
        return self._commit(move)

    def choose_at(self, x: float, y: float, token: Optional[int] = None) -> BoardUpdate:
        return self.choose(promotion_choice_at(x, y), token)

    # ------------------------------------------------------------------
    # History navigation
    # ------------------------------------------------------------------

    def undo(self) -> BoardUpdate:
        position = self.history.undo()
        if position is None:
            return BoardUpdate()
        return self._navigated(position)

    def redo(self) -> BoardUpdate:
        position = self.history.redo()
        if position is None:
            return BoardUpdate()
        return self._navigated(position)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def resume(self) -> BoardUpdate:
        """Restart the clock for the side to move after undo/redo."""
        if self.finished or self.clock.timed_out:
            return BoardUpdate()
        side = Side.to_move(self.rules.game_state(self.position))
        if side is None:
            return BoardUpdate()
        self.clock.switch(side)
        return BoardUpdate(clock_changed=True)

    def tick(self) -> BoardUpdate:
        was_running = self.clock.running
        outcome = self.clock.tick()
        if outcome is None:
            return BoardUpdate(clock_changed=was_running)

        # A fallen flag ends the game before any pending move can land.
        self.finished = True
        update = self._cancel_promotion()
        self._clear_selection()
        self.status.record(outcome)
        return update.merge(BoardUpdate(selection_changed=True, clock_changed=True, timed_out=True))

    # ------------------------------------------------------------------
    # Scripted input
    # ------------------------------------------------------------------

    def play(self, move: str) -> BoardUpdate:
        """Commit a coordinate move such as ``e2e4`` or ``a7a8Q`` in one call."""
        if not MOVE_PATTERN.fullmatch(move) or not self.rules.is_valid_move(self.position, move):
            raise ValueError(f"Illegal move {move} on position {self.position}")

        update = self.drop(move[:2], move[2:4])
        if self.promotion is not None:
            if len(move) == 4:
                self._cancel_promotion()
                raise ValueError(f"Move {move} needs a promotion piece letter")
            update = update.merge(self.choose(PIECE_KINDS[move[4].lower()]))
        if not update.moved:
            raise ValueError(f"Move {move} was not accepted by the session")
        return update

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def view(self) -> BoardView:
        squares: List[str] = list(self.rules.render_classes(self.position))
        if self.promotion is not None:
            squares[render_index(self.promotion.source)] = EMPTY_SQUARE_CLASS
            squares[render_index(self.promotion.square)] = f"piece {self.promotion.color}-promotion-menu"
        active = self.clock.active_side
        return BoardView(
            squares=tuple(squares),
            fen=self.position,
            status=self.status.latest,
            can_undo=self.history.can_undo,
            can_redo=self.history.can_redo,
            selected_square=self.selected_square,
            highlights=self.highlights,
            promotion_square=self.promotion.square if self.promotion is not None else None,
            white_clock=self.clock.display(Side.WHITE),
            black_clock=self.clock.display(Side.BLACK),
            active_side=active.value if active is not None else None,
            log=tuple(self.status.entries),
            finished=self.finished,
        )

    def export_payload(self) -> dict:
        view = self.view()
        return {
            "fen": view.fen,
            "status_text": view.status,
            "state": self.state.value,
            "squares": list(view.squares),
            "selected_square": view.selected_square,
            "legal_targets": list(view.highlights),
            "promotion_square": view.promotion_square,
            "can_undo": view.can_undo,
            "can_redo": view.can_redo,
            "history": list(self.history.positions),
            "cursor": self.history.cursor,
            "clock": {
                "white": view.white_clock,
                "black": view.black_clock,
                "active": view.active_side,
            },
            "log": list(view.log),
            "is_finished": view.finished,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select(self, square: str) -> BoardUpdate:
        targets = self.rules.legal_targets(self.position, square)
        if not targets:
            changed = self.selected_square is not None or bool(self.highlights)
            self._clear_selection()
            return BoardUpdate(selection_changed=changed)
        self.selected_square = square
        self.highlights = tuple(targets)
        return BoardUpdate(selection_changed=True, focus_square=square)

    def _clear_selection(self) -> None:
        self.selected_square = None
        self.highlights = ()

    def _attempt(self, source: str, target: str) -> BoardUpdate:
        move = source + target
        if self.rules.is_valid_move(self.position, move):
            color = self._promotion_color(source, target)
            if color is not None:
                return self._start_promotion(target, color, move)
            return self._commit(move)

        logger.debug("Rejected %s, selecting %s instead", move, target)
        self._clear_selection()
        return BoardUpdate(selection_changed=True).merge(self._select(target))

    def _promotion_color(self, source: str, target: str) -> Optional[str]:
        piece = self.rules.render_classes(self.position)[render_index(source)]
        if piece == "piece white-pawn" and target[1] == "8":
            return "white"
        if piece == "piece black-pawn" and target[1] == "1":
            return "black"
        return None

    def _start_promotion(self, square: str, color: str, move: str) -> BoardUpdate:
        self._clear_selection()
        self.promotion = PendingPromotion(
            square=square,
            color=color,
            move=move,
            token=next(self._promotion_tokens),
        )
        logger.debug("Awaiting promotion choice for %s", move)
        return BoardUpdate(
            board_changed=True,
            selection_changed=True,
            promotion_started=True,
            focus_square=square,
        )

    def _cancel_promotion(self) -> BoardUpdate:
        if self.promotion is None:
            return BoardUpdate()
        logger.debug("Promotion on %s cancelled", self.promotion.square)
        self.promotion = None
        return BoardUpdate(board_changed=True, promotion_cancelled=True)

    def _commit(self, move: str) -> BoardUpdate:
        position = self.rules.next_position(self.position, move)
        self.history.push(position)
        self._clear_selection()
        self.promotion = None
        logger.info("Committed %s", move)

        game_state = self.rules.game_state(position)
        side = Side.to_move(game_state)
        if side is None:
            self.clock.stop()
        else:
            self.clock.switch(side)
        # Recorded after the switch so a game-ending state leaves the clock stopped.
        self._record_state(game_state)
        return BoardUpdate(
            board_changed=True,
            selection_changed=True,
            moved=True,
            history_changed=True,
            clock_changed=True,
            focus_square=move[2:4],
        )

    def _navigated(self, position: str) -> BoardUpdate:
        self._clear_selection()
        self.promotion = None
        # Jumping through history never leaves a stale countdown running.
        self.clock.stop()
        self.status.clear()
        self._record_state(self.rules.game_state(position))
        return BoardUpdate(
            board_changed=True,
            selection_changed=True,
            history_changed=True,
            clock_changed=True,
        )

    def _record_state(self, game_state: str) -> None:
        # Only a side to move keeps the board open; a fallen flag stays final.
        self.finished = self.clock.timed_out or Side.to_move(game_state) is None
        self.status.record(game_state)
