from .clock import ChessClock, ClockState, Side
from .config import SessionConfig
from .exceptions import BoardCoreError, RulesEngineError
from .history import PositionHistory
from .rules import PythonChessRules, RulesEngine
from .session import BoardUpdate, BoardView, InputState, PendingPromotion, Session
from .status import StatusChannel

__all__ = [
    "BoardCoreError",
    "BoardUpdate",
    "BoardView",
    "ChessClock",
    "ClockState",
    "InputState",
    "PendingPromotion",
    "PositionHistory",
    "PythonChessRules",
    "RulesEngine",
    "RulesEngineError",
    "Session",
    "SessionConfig",
    "Side",
    "StatusChannel",
]
