"""Root-level test configuration for yaks-core.

Fixtures:
    - feature_dir: Directory with a.feature, b.feature and sub/c.feature
    - cli_runner: Click test runner
"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

FEATURE = """Feature: {name}

  Scenario: Print a message
    Given print 'Hello from {name}'
"""


@pytest.fixture
def feature_dir(tmp_path: Path) -> Path:
    """Create a test directory with two top-level features and one nested feature.

    Returns:
        Path of the test directory.
    """
    root = tmp_path / "tests"
    sub = root / "sub"
    sub.mkdir(parents=True)
    (root / "a.feature").write_text(FEATURE.format(name="a"))
    (root / "b.feature").write_text(FEATURE.format(name="b"))
    (root / "README.md").write_text("not a test\n")
    (sub / "c.feature").write_text(FEATURE.format(name="c"))
    return root


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()
