"""Command-line interface for the YAKS run orchestrator.

Example:
    $ yaks --help
    $ yaks run tests/hello.feature
    $ yaks -n my-project run tests --tag @smoke --timeout 10m

Exit Codes:
    0: Success
    1: Test failures
    2: Usage error (invalid arguments)
    3: Test source not found
    8: Cluster client error
    130: Interrupted
"""

from __future__ import annotations

from yaks_core.cli.main import cli, main

__all__ = ["cli", "main"]
