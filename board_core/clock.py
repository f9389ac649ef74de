"""Two-sided countdown clock with a single active side."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_STARTING_SECONDS = 600


class Side(Enum):
    WHITE = "white"
    BLACK = "black"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def opponent(self) -> "Side":
        return Side.BLACK if self is Side.WHITE else Side.WHITE

    @classmethod
    def to_move(cls, game_state: str) -> Optional["Side"]:
        """Side to move announced by a rules-engine game state, if any."""
        if game_state == "White to move":
            return cls.WHITE
        if game_state == "Black to move":
            return cls.BLACK
        return None


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


@dataclass
class ClockState:
    remaining: Dict[Side, int]
    active_side: Optional[Side] = None
    running: bool = False


class ChessClock:
    def __init__(self, starting_seconds: int = DEFAULT_STARTING_SECONDS) -> None:
        self.starting_seconds = starting_seconds
        self.state = ClockState(remaining={Side.WHITE: starting_seconds, Side.BLACK: starting_seconds})
        self.timed_out = False

    @property
    def active_side(self) -> Optional[Side]:
        return self.state.active_side

    @property
    def running(self) -> bool:
        return self.state.running

    def remaining(self, side: Side) -> int:
        return self.state.remaining[side]

    def display(self, side: Side) -> str:
        return format_clock(self.state.remaining[side])

    def switch(self, side: Side) -> None:
        """Hand the countdown to ``side`` after a committed move."""
        if self.timed_out:
            logger.debug("Ignoring clock switch to %s after timeout", side.value)
            return
        self.stop()
        self.state.active_side = side
        self.state.running = True

    def stop(self) -> None:
        if self.state.running:
            logger.debug("Clock stopped with %s active", self.state.active_side)
        self.state.running = False
        self.state.active_side = None

    def reset(self) -> None:
        self.stop()
        self.state.remaining = {Side.WHITE: self.starting_seconds, Side.BLACK: self.starting_seconds}
        self.timed_out = False

    def tick(self) -> Optional[str]:
        """Advance one second. Returns the timeout outcome when a flag falls."""
        if not self.state.running or self.state.active_side is None:
            return None
        side = self.state.active_side
        if self.state.remaining[side] == 0:
            self.timed_out = True
            self.stop()
            return f"Timeout: {side.opponent.label} wins"
        self.state.remaining[side] -= 1
        return None
