from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class PositionHistory:
    """Linear stack of committed positions with an undo/redo cursor.

    ``positions`` is empty only before the first :meth:`reset`. After that
    ``0 <= cursor < len(positions)`` always holds.
    """

    positions: List[str] = field(default_factory=list)
    cursor: int = 0

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def current(self) -> Optional[str]:
        if not self.positions:
            return None
        return self.positions[self.cursor]

    @property
    def can_undo(self) -> bool:
        return bool(self.positions) and self.cursor > 0

    @property
    def can_redo(self) -> bool:
        return bool(self.positions) and self.cursor < len(self.positions) - 1

    def reset(self, initial: str) -> None:
        self.positions = [initial]
        self.cursor = 0

    def push(self, position: str) -> None:
        # A new move after undo() drops the redo-able suffix.
        if self.can_redo:
            del self.positions[self.cursor + 1 :]
        self.positions.append(position)
        self.cursor = len(self.positions) - 1

    def undo(self) -> Optional[str]:
        if not self.can_undo:
            return None
        self.cursor -= 1
        return self.positions[self.cursor]

    def redo(self) -> Optional[str]:
        if not self.can_redo:
            return None
        self.cursor += 1
        return self.positions[self.cursor]
