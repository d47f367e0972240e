"""Test result models.

``TestSuite`` collects the outcome of one source; ``TestResults`` aggregates
all suites of one invocation. The same ``TestSuite`` shape is reported by the
cluster-side controller in ``Test.status.results``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_MODEL_CONFIG = ConfigDict(
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


class TestResult(BaseModel):
    """Outcome of a single scenario."""

    __test__ = False

    model_config = _MODEL_CONFIG

    name: str = ""
    class_name: str = ""
    error_type: str = ""
    error_message: str = ""


class TestSummary(BaseModel):
    """Scenario counters."""

    __test__ = False

    model_config = _MODEL_CONFIG

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    undefined: int = 0
    pending: int = 0
    errors: list[str] = Field(default_factory=list)

    def add(self, other: TestSummary) -> None:
        """Accumulate the counters of ``other`` into this summary."""
        self.total += other.total
        self.passed += other.passed
        self.failed += other.failed
        self.skipped += other.skipped
        self.undefined += other.undefined
        self.pending += other.pending
        self.errors.extend(other.errors)


class TestSuite(BaseModel):
    """Results of one test source.

    Attributes:
        name: Suite name (the test name, or the source for error suites).
        summary: Scenario counters.
        tests: Individual scenario results.
        errors: Human-readable failures recorded for this source.
    """

    __test__ = False

    model_config = _MODEL_CONFIG

    name: str = ""
    summary: TestSummary = Field(default_factory=TestSummary)
    tests: list[TestResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def append_results(self, results: TestSuite | None) -> None:
        """Merge controller-reported results into this suite."""
        if results is None:
            return
        if not self.name:
            self.name = results.name
        self.summary.add(results.summary)
        self.tests.extend(results.tests)
        self.errors.extend(results.errors)

    def has_errors(self) -> bool:
        """Return True if this suite recorded any failure."""
        return bool(self.errors)


class TestResults(BaseModel):
    """Aggregated results of one invocation."""

    __test__ = False

    model_config = _MODEL_CONFIG

    summary: TestSummary = Field(default_factory=TestSummary)
    suites: list[TestSuite] = Field(default_factory=list)

    def has_errors(self) -> bool:
        """Return True if any suite recorded a failure."""
        return any(suite.has_errors() for suite in self.suites)


__all__ = ["TestResult", "TestResults", "TestSuite", "TestSummary"]
