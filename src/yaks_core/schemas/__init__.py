"""Pydantic models for run configuration, cluster resources and results."""

from __future__ import annotations

from yaks_core.schemas.options import RunOptions
from yaks_core.schemas.results import TestResult, TestResults, TestSuite, TestSummary
from yaks_core.schemas.run_config import RunConfig, StepConfig
from yaks_core.schemas.test import Instance, Test, TestPhase, TestStatus

__all__ = [
    "Instance",
    "RunConfig",
    "RunOptions",
    "StepConfig",
    "Test",
    "TestPhase",
    "TestResult",
    "TestResults",
    "TestStatus",
    "TestSuite",
    "TestSummary",
]
