from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet

import chess

ROUTINE_MESSAGES: FrozenSet[str] = frozenset(
    {
        "White to move",
        "Black to move",
        "FEN Copied!",
        "Invalid FEN!",
    }
)


@dataclass(frozen=True)
class SessionConfig:
    starting_seconds: int = 600
    log_capacity: int = 10
    # Seconds the presentation waits before arming the promotion overlay.
    promotion_delay: float = 0.05
    initial_fen: str = chess.STARTING_FEN
    routine_messages: FrozenSet[str] = field(default=ROUTINE_MESSAGES)

    @classmethod
    def from_minutes(cls, minutes: float, **kwargs) -> "SessionConfig":
        if minutes <= 0:
            raise ValueError(f"Clock allotment must be positive, got {minutes}")
        return cls(starting_seconds=int(round(minutes * 60)), **kwargs)
