"""Console and file logging for the board front end and its tools."""

from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name when writing to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_colors: Optional[bool] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.use_colors = sys.stdout.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)
        original_levelname = record.levelname
        color = self.COLORS.get(original_levelname, "")
        record.levelname = f"{color}{original_levelname:>8}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def setup_logging(log_file_path: Optional[str] = None, log_level: int = logging.INFO) -> logging.Logger:
    """Configure the root logger with a colored console handler.

    Args:
        log_file_path: Optional path of a plain-text log file.
        log_level: Level applied to the root logger and its handlers.

    Returns:
        The configured root logger.
    """
    log = logging.getLogger()
    log.setLevel(log_level)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    if log_file_path:
        file_handler = logging.FileHandler(log_file_path, mode="w", encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    log.addHandler(console_handler)
    return log


def parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level
