"""CLI utility functions and error handling.

Errors and warnings go to stderr as plain text; exit codes follow common
Unix conventions so CI pipelines can tell failure kinds apart.

Example:
    from yaks_core.cli.utils import error_exit, ExitCode

    if not path.exists():
        error_exit("Test source not found", exit_code=ExitCode.FILE_NOT_FOUND, path=str(path))
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes of the yaks CLI."""

    SUCCESS = 0
    """Command completed successfully."""

    TEST_FAILURE = 1
    """At least one test suite recorded errors."""

    USAGE_ERROR = 2
    """Invalid usage (bad arguments, missing required options)."""

    FILE_NOT_FOUND = 3
    """Test source not found."""

    NETWORK_ERROR = 8
    """Cluster client could not be created."""

    INTERRUPTED = 130
    """Run cancelled with Ctrl+C."""


def _format(prefix: str, message: str, context: dict[str, str | int | bool | None]) -> str:
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    if context_str:
        return f"{prefix}{message} ({context_str})"
    return f"{prefix}{message}"


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Test source not found", path="tests/missing.feature")
        # Output: Error: Test source not found (path=tests/missing.feature)
    """
    click.echo(_format("Error: ", message, context), err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.TEST_FAILURE,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with ``exit_code``.

    Raises:
        SystemExit: Always.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    click.echo(_format("Warning: ", message, context), err=True)


def info(message: str) -> None:
    """Print an informational message to stderr."""
    click.echo(message, err=True)


__all__ = ["ExitCode", "error", "error_exit", "info", "warn"]
