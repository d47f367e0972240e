"""Invocation options of a ``yaks run``.

Collected from CLI flags once per invocation and shared read-only by the
reconciler and the run coordinator.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_OUTPUT_DIR = "_output"


class RunOptions(BaseModel):
    """Options of a test run.

    Attributes:
        namespace: Default namespace of the invocation.
        repositories: Maven repositories (``YAKS_REPOSITORIES``).
        dependencies: Maven dependencies (``YAKS_DEPENDENCIES``).
        loggers: Logger levels (``YAKS_LOGGERS``).
        settings: Explicit runtime settings file.
        env: Extra ``KEY=VALUE`` entries for the test runtime.
        tags: Cucumber tag filters.
        features: Cucumber feature selection.
        glue: Cucumber glue packages.
        options: Raw Cucumber options.
        resources: Extra resource files.
        property_files: Extra property files.
        dump: Dump format (``yaml`` or ``json``). Nothing is submitted.
        report: Report formats to write after the run.
        timeout: Go-style wait timeout overriding the config.
        wait: Block until each test finishes.
        logs: Stream test logs while waiting.
        dev: Developer mode, waiting for the test route instead of a phase.
        fail_on_timeout: Record a wait timeout as a failure.
        output_dir: Directory for result and report files.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = "default"
    repositories: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    loggers: tuple[str, ...] = ()
    settings: str = ""
    env: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    glue: tuple[str, ...] = ()
    options: str = ""
    resources: tuple[str, ...] = ()
    property_files: tuple[str, ...] = ()
    dump: str = ""
    report: tuple[str, ...] = ()
    timeout: str = ""
    wait: bool = True
    logs: bool = True
    dev: bool = False
    fail_on_timeout: bool = False
    output_dir: str = Field(default=DEFAULT_OUTPUT_DIR)


__all__ = ["DEFAULT_OUTPUT_DIR", "RunOptions"]
