"""structlog setup for kroctl.

Logs go to stderr so that stdout only carries command output (which may be
JSON). The default level is silent.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

from .config import LogLevel

__all__ = [
    "configure_logging",
    "level_number",
]

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "silent": logging.CRITICAL,
}


def level_number(level: LogLevel) -> int:
    """Return the numeric logging level for *level*."""
    return _LEVELS[level]


def configure_logging(
    level: LogLevel = "silent",
    *,
    color: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the current process.

    Args:
        level: Effective log level resolved from flags and environment.
        color: Whether the console renderer may emit ANSI colours.
        stream: Destination stream, ``sys.stderr`` by default.
    """
    factory: Any
    if level == "silent":
        # ReturnLogger hands the rendered event back instead of writing it
        factory = structlog.ReturnLoggerFactory()
    else:
        factory = structlog.PrintLoggerFactory(file=stream or sys.stderr)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=color),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_number(level)),
        context_class=dict,
        logger_factory=factory,
        cache_logger_on_first_use=False,
    )
