"""
Logging for wbgrid.

Thin wrapper over the standard logging module. Each logger can be bound to a
run context (site / model / scenario) so that messages coming from parallel
runs stay distinguishable in a shared log.

Usage:
    from wbgrid.wb_logging import get_logger

    logger = get_logger(__name__)
    logger.info("Terrain loaded: 400×400 cells")

    run_logger = logger.bind("yell/CCSM4/rcp85")
    run_logger.warning("12 negative precipitation values clamped to zero")
"""

from __future__ import annotations

import logging
import sys
from enum import IntEnum


class LogLevel(IntEnum):
    """Log levels matching Python logging."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class WaterBalanceLogger:
    """
    Logger with an optional run-context prefix.

    Messages are forwarded to ``logging.getLogger(name)`` so normal handler
    configuration applies; the wrapper only adds the level gate and prefix.
    """

    def __init__(self, name: str, level: LogLevel = LogLevel.INFO, context: str | None = None):
        """
        Initialize logger.

        Args:
            name: Logger name (usually module name)
            level: Minimum log level to display
            context: Optional prefix identifying the run (e.g. "site/model/scenario")
        """
        self.name = name
        self.level = level
        self.context = context

    def _log(self, level: LogLevel, message: str) -> None:
        if level < self.level:
            return
        if self.context:
            message = f"[{self.context}] {message}"
        logging.getLogger(self.name).log(level, message)

    def debug(self, message: str) -> None:
        """Log debug message."""
        self._log(LogLevel.DEBUG, message)

    def info(self, message: str) -> None:
        """Log info message."""
        self._log(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self._log(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        """Log error message."""
        self._log(LogLevel.ERROR, message)

    def set_level(self, level: LogLevel | int) -> None:
        """Set minimum log level."""
        self.level = LogLevel(level) if isinstance(level, int) else level

    def bind(self, context: str) -> WaterBalanceLogger:
        """Return a logger sharing this name and level but prefixed with ``context``."""
        return WaterBalanceLogger(self.name, self.level, context=context)


# Global logger registry
_loggers: dict[str, WaterBalanceLogger] = {}


def get_logger(name: str, level: LogLevel | int = LogLevel.INFO) -> WaterBalanceLogger:
    """
    Get or create a logger for the given name.

    Args:
        name: Logger name (usually module name or __name__)
        level: Minimum log level (default: INFO)

    Returns:
        WaterBalanceLogger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Run started")
    """
    if name not in _loggers:
        _loggers[name] = WaterBalanceLogger(name, LogLevel(level) if isinstance(level, int) else level)
    return _loggers[name]


def set_global_level(level: LogLevel | int) -> None:
    """
    Set log level for all existing loggers.

    Example:
        >>> import wbgrid.wb_logging as wlog
        >>> wlog.set_global_level(wlog.LogLevel.DEBUG)
    """
    level = LogLevel(level) if isinstance(level, int) else level
    for logger in _loggers.values():
        logger.set_level(level)


# Configure Python logging to be less verbose by default
logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
    stream=sys.stdout,
)
