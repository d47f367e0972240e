"""Structured logging setup via structlog.

The CLI configures structlog once and builds a single bound logger that is
handed to every component by constructor. Components never look up a
module-level logger of their own.

Example:
    >>> from yaks_core.log import configure_logging, get_logger
    >>> configure_logging(log_level="DEBUG", json_output=False)
    >>> logger = get_logger(component="cli")
    >>> logger.info("run.started", source="hello.feature")
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(
    log_level: str = "WARNING",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog processors, level filtering and output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output logs as JSON. If False, use console format.
        stream: Output stream for log lines (default: stderr).

    Raises:
        ValueError: If log_level is not a known level name.
    """
    level = _LEVELS.get(log_level.upper())
    if level is None:
        msg = f"Unknown log level: {log_level}"
        raise ValueError(msg)

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(**initial_values: Any) -> structlog.typing.FilteringBoundLogger:
    """Build the bound logger passed into orchestrator components.

    Args:
        **initial_values: Context bound to every event of this logger.

    Returns:
        A structlog bound logger.
    """
    return structlog.get_logger("yaks").bind(**initial_values)


__all__ = ["configure_logging", "get_logger"]
