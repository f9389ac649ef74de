class BoardCoreError(Exception):
    """Base class for errors raised by board_core."""


class RulesEngineError(BoardCoreError):
    """The rules engine produced a reply the session cannot work with."""
