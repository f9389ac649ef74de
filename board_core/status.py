from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, FrozenSet, List, Optional

from .config import ROUTINE_MESSAGES

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 10


class StatusChannel:
    """Bounded visible log that escalates non-routine messages to alerts.

    Routine messages (side to move, copy confirmation, invalid input) only
    land in the log. Anything else is game-ending: it is also pushed to
    ``notify`` for a blocking user notification and triggers ``on_alert``,
    which the session wires to stopping the clock.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_LOG_CAPACITY,
        notify: Optional[Callable[[str], None]] = None,
        on_alert: Optional[Callable[[], None]] = None,
        routine_messages: FrozenSet[str] = ROUTINE_MESSAGES,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"Log capacity must be positive, got {capacity}")
        self._entries: Deque[str] = deque(maxlen=capacity)
        self.notify = notify
        self.on_alert = on_alert
        self.routine_messages = routine_messages
        self._alerts: Deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    @property
    def alerts(self) -> List[str]:
        """Most recent game-ending messages, bounded like the log."""
        return list(self._alerts)

    @property
    def latest(self) -> Optional[str]:
        return self._entries[-1] if self._entries else None

    def is_routine(self, message: str) -> bool:
        return message in self.routine_messages

    def record(self, message: str) -> bool:
        """Log ``message``; returns True when it raised an alert."""
        self._entries.append(message)
        if self.is_routine(message):
            logger.info("%s", message)
            return False

        logger.warning("%s", message)
        self._alerts.append(message)
        if self.on_alert is not None:
            self.on_alert()
        if self.notify is not None:
            self.notify(message)
        return True

    def clear(self) -> None:
        self._entries.clear()
