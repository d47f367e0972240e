"""Run coordination.

``Runner.run`` is the top-level entry point. A file source runs as a single
test; a directory source runs as a group that shares one namespace, one
operator and one set of pre/post hooks. For every source the flow is::

    config -> namespace -> operator -> pre hooks -> reconcile -> wait
           -> post hooks (always) -> namespace teardown

A failure while setting up a source is recorded as an error suite for that
source and never stops the remaining sources of a group.

Example:
    >>> runner = Runner(client, RunOptions(namespace="default"), logger)
    >>> results = runner.run("tests")
    >>> len(results.suites)
    2
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import IO, TYPE_CHECKING

import click

from yaks_core.cancel import CancelToken, WaitCause
from yaks_core.config import CONFIG_FILE, FEATURE_SUFFIX, resolve_run_config, resolve_timeout
from yaks_core.errors import ConfigError, HookError, WaitTimeoutError, YaksError
from yaks_core.hooks import HookRunner
from yaks_core.namespace import NamespaceManager
from yaks_core.operator import OperatorBootstrapper
from yaks_core.reconciler import TestReconciler
from yaks_core.results import add_error, add_test, save_test_results
from yaks_core.schemas.options import RunOptions
from yaks_core.schemas.results import TestResults
from yaks_core.watcher import PhaseWatcher

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from yaks_core.cluster import YaksClient
    from yaks_core.schemas.run_config import RunConfig
    from yaks_core.schemas.test import Test


class Runner:
    """Runs test sources and aggregates their results.

    Components are built from ``client`` unless injected.

    Attributes:
        options: Invocation options.
        token: Run-level cancellation token.
    """

    def __init__(
        self,
        client: YaksClient,
        options: RunOptions,
        logger: FilteringBoundLogger,
        out: IO[str] | None = None,
        token: CancelToken | None = None,
        *,
        namespaces: NamespaceManager | None = None,
        operators: OperatorBootstrapper | None = None,
        hooks: HookRunner | None = None,
        reconciler: TestReconciler | None = None,
        watcher: PhaseWatcher | None = None,
    ) -> None:
        self.options = options
        self.token = token or CancelToken()
        self._logger = logger
        self._out = out
        self._namespaces = namespaces or NamespaceManager(client, logger, out)
        self._operators = operators or OperatorBootstrapper(client, logger)
        self._hooks = hooks or HookRunner(logger, out)
        self._reconciler = reconciler or TestReconciler(client, logger, out)
        self._watcher = watcher or PhaseWatcher(client, logger, out)
        self._names: dict[str, str] = {}

    def run(self, source: str) -> TestResults:
        """Run a test file or a directory of test files.

        Returns:
            Fresh results holding one suite per source.
        """
        results = TestResults()
        if Path(source).is_dir():
            self.run_test_group(source, results)
        else:
            self.run_test(source, results)
        return results

    def run_test(self, source: str, results: TestResults) -> None:
        """Run a single test source with its own provisioning."""
        config = self._resolve(source, results)
        if config is not None:
            self._provisioned(
                source, config, results, lambda cfg: self._run_source(source, cfg, results)
            )

    def run_test_group(self, source: str, results: TestResults) -> None:
        """Run every feature file of directory ``source`` with shared provisioning."""
        config = self._resolve(source, results)
        if config is not None:
            self._provisioned(
                source, config, results, lambda cfg: self._run_entries(source, cfg, results)
            )

    def _resolve(self, source: str, results: TestResults) -> RunConfig | None:
        try:
            return resolve_run_config(source, self.options.namespace)
        except YaksError as e:
            self._logger.error("runner.config_failed", source=source, error=e.message)
            add_error(results, source, e)
            return None

    def _provisioned(
        self,
        source: str,
        config: RunConfig,
        results: TestResults,
        body: Callable[[RunConfig], None],
    ) -> None:
        """Run ``body`` inside the namespace, operator and hooks of ``config``."""
        dump = bool(self.options.dump)
        try:
            handle = self._namespaces.ensure_namespace(config, dry_run=dump)
        except YaksError as e:
            add_error(results, source, e)
            return

        config = config.with_namespace(handle.name)
        try:
            if handle.temporary:
                self._operators.ensure_operator(config)
            if dump:
                body(config)
            else:
                self._with_hooks(config, body)
        except YaksError as e:
            self._logger.error("runner.setup_failed", source=source, error=e.message)
            add_error(results, source, e)
        finally:
            if handle.temporary and config.config.namespace.auto_remove and self.options.wait:
                self._namespaces.remove_namespace(handle)

    def _with_hooks(self, config: RunConfig, body: Callable[[RunConfig], None]) -> None:
        try:
            self._hooks.run_steps(config.pre, config.namespace, config.base_dir)
            body(config)
        finally:
            try:
                self._hooks.run_steps(config.post, config.namespace, config.base_dir)
            except HookError as e:
                self._logger.warning("hooks.post_failed", error=e.message)
                click.echo(e.message, file=self._out)

    def _run_entries(self, directory: str, config: RunConfig, results: TestResults) -> None:
        try:
            entries = sorted(Path(directory).iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise ConfigError(f"Failed to read test directory: {e}", path=directory) from e

        for entry in entries:
            if self.token.cancelled:
                self._logger.warning("runner.cancelled", directory=directory)
                return
            if entry.is_dir():
                if not config.recursive:
                    continue
                if (entry / CONFIG_FILE).exists():
                    self.run_test_group(str(entry), results)
                else:
                    self._run_entries(str(entry), config, results)
            elif entry.name.endswith(FEATURE_SUFFIX):
                self._run_source(str(entry), config, results)

    def _run_source(self, source: str, config: RunConfig, results: TestResults) -> None:
        """Reconcile and await one test, recording exactly one suite."""
        try:
            test = self._reconciler.create_or_update(source, config, self.options)
        except YaksError as e:
            self._logger.error("runner.reconcile_failed", source=source, error=e.message)
            add_error(results, source, e)
            return

        if test is None:
            return
        self._check_collision(test.name, source)

        if not self.options.wait:
            click.echo(f"Test '{test.name}' started", file=self._out)
            self._record(results, test, None)
            return

        timeout = resolve_timeout(self.options.timeout, config.config.timeout, self._logger)
        result = self._watcher.await_test(
            test, timeout, self.token, logs=self.options.logs, dev=self.options.dev
        )

        error = result.phase.as_error(test.name)
        if (
            error is None
            and result.cause is WaitCause.TIMED_OUT
            and self.options.fail_on_timeout
        ):
            timeout_error = WaitTimeoutError(test.name, timeout, result.phase.value)
            error = f"{timeout_error.reason} - {timeout_error}"
        self._record(results, result.test or test, error)

    def _record(self, results: TestResults, test: Test, error: str | None) -> None:
        add_test(results, test, error)
        try:
            save_test_results(test, self.options.output_dir)
        except OSError as e:
            click.echo(f"Failed to save test results: {e}", file=self._out)

    def _check_collision(self, name: str, source: str) -> None:
        previous = self._names.setdefault(name, source)
        if previous != source:
            self._logger.warning(
                "runner.name_collision", test=name, source=source, previous=previous
            )


__all__ = ["RunOptions", "Runner"]
