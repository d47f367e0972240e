"""Aggregation and reporting of test results.

Each source contributes exactly one ``TestSuite`` to the invocation's
``TestResults``: either the results reported by the controller in
``Test.status.results`` or a synthetic suite holding a single setup error.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, TYPE_CHECKING

import click

from yaks_core.errors import reason_for_error
from yaks_core.schemas.results import TestSuite

if TYPE_CHECKING:
    from yaks_core.schemas.results import TestResults
    from yaks_core.schemas.test import Test

REPORT_FILE = "yaks-report.json"


def _append(results: TestResults, suite: TestSuite) -> TestSuite:
    results.suites.append(suite)
    results.summary.add(suite.summary)
    return suite


def add_error(results: TestResults, source: str, error: BaseException) -> TestSuite:
    """Record a setup failure of ``source`` as a one-line error suite.

    The error line is ``"<reason> - <message>"``.
    """
    suite = TestSuite(name=source, errors=[f"{reason_for_error(error)} - {error}"])
    return _append(results, suite)


def add_test(results: TestResults, test: Test, error: str | None = None) -> TestSuite:
    """Record the controller-reported results of ``test``.

    Args:
        results: Invocation results to append to.
        test: Last observed Test.
        error: Failure message for the test outcome, if any.
    """
    suite = TestSuite(name=test.name)
    if test.status is not None:
        suite.append_results(test.status.results)
    if error:
        suite.errors.append(error)
    return _append(results, suite)


def save_test_results(test: Test, output_dir: str | Path) -> Path:
    """Write the results of ``test`` to ``<output_dir>/<name>.json``.

    Raises:
        OSError: If the file cannot be written.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{test.name}.json"

    payload: dict = {}
    if test.status is not None and test.status.results is not None:
        payload = test.status.results.model_dump(by_alias=True, mode="json")
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return path


def write_json_report(results: TestResults, output_dir: str | Path) -> Path:
    """Write the aggregated results to ``<output_dir>/yaks-report.json``.

    Raises:
        OSError: If the file cannot be written.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / REPORT_FILE
    path.write_text(results.model_dump_json(by_alias=True, indent=2) + "\n", encoding="utf-8")
    return path


def print_summary(results: TestResults, out: IO[str] | None = None) -> None:
    """Print a human-readable summary of all suites."""
    summary = results.summary
    click.echo("", file=out)
    click.echo("Test results:", file=out)
    click.echo(
        f"Total: {summary.total}, Passed: {summary.passed}, Failed: {summary.failed}, "
        f"Skipped: {summary.skipped}",
        file=out,
    )

    for suite in results.suites:
        status = "Failed" if suite.has_errors() else "Passed"
        click.echo(f"\t{suite.name}: {status}", file=out)
        for test in suite.tests:
            if test.error_message:
                click.echo(f"\t\t{test.name}: {test.error_message}", file=out)

    errors = [error for suite in results.suites for error in suite.errors]
    if errors:
        click.echo("Errors:", file=out)
        for error in errors:
            click.echo(f"\t{error}", file=out)


__all__ = [
    "REPORT_FILE",
    "add_error",
    "add_test",
    "print_summary",
    "save_test_results",
    "write_json_report",
]
