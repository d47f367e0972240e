"""Pre/post lifecycle steps.

Steps either call a script file or run inline shell text, each in a bash
(PowerShell on Windows) subprocess bounded by the step timeout. A step whose
``if`` condition does not hold is skipped.

Example:
    >>> HookRunner(logger).run_steps(config.pre, "team-a", config.base_dir)
    Running step-0:
"""

from __future__ import annotations

import os
import platform
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from typing import IO, TYPE_CHECKING

import click

from yaks_core.config import DEFAULT_TIMEOUT, parse_duration
from yaks_core.errors import ConfigError, HookError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from yaks_core.schemas.run_config import StepConfig

NAMESPACE_ENV = "YAKS_NAMESPACE"
SCRIPT_HEADER = "#!/bin/bash\n\nset -e\n\n"

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def current_os() -> str:
    """Return the OS name in Go notation (``linux``, ``darwin``, ``windows``)."""
    return platform.system().lower()


def current_arch() -> str:
    """Return the CPU architecture in Go notation (``amd64``, ``arm64``)."""
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine)


def resolve_placeholders(path: str) -> str:
    """Substitute ``{{os.type}}`` and ``{{os.arch}}`` in a script path."""
    return path.replace("{{os.type}}", current_os()).replace("{{os.arch}}", current_arch())


def skip_step(
    step: StepConfig,
    *,
    os_name: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> bool:
    """Return True unless every predicate of the step condition holds."""
    os_name = os_name if os_name is not None else current_os()
    environ = environ if environ is not None else os.environ
    return not all(p.holds(os_name, environ) for p in step.condition)


class HookRunner:
    """Runs pre/post steps as local subprocesses."""

    def __init__(self, logger: FilteringBoundLogger, out: IO[str] | None = None) -> None:
        self._logger = logger
        self._out = out

    def run_steps(self, steps: Sequence[StepConfig], namespace: str, base_dir: str) -> None:
        """Run ``steps`` in order, stopping at the first failure.

        Raises:
            HookError: If a step fails or times out.
        """
        for idx, step in enumerate(steps):
            name = step.name or f"step-{idx}"

            if skip_step(step):
                click.echo(f"Skip {name}", file=self._out)
                continue

            if step.script:
                self.run_script(
                    resolve_placeholders(step.script), name, namespace, base_dir, step.timeout
                )

            if step.run:
                self._run_inline(step.run, name, namespace, base_dir, step.timeout)

    def run_script(
        self,
        script_file: str,
        desc: str,
        namespace: str,
        base_dir: str,
        timeout: str = "",
    ) -> None:
        """Execute a script file with a wall-clock timeout.

        The script runs with bash (PowerShell on Windows) in ``base_dir``
        with ``YAKS_NAMESPACE`` added to the environment.

        Raises:
            HookError: If the script exits non-zero, times out or cannot start.
        """
        try:
            seconds = parse_duration(timeout or DEFAULT_TIMEOUT)
        except ConfigError as e:
            raise HookError(desc, e.message) from e

        executor = "powershell.exe" if current_os() == "windows" else "/bin/bash"
        env = dict(os.environ)
        env[NAMESPACE_ENV] = namespace

        click.echo(f"Running {desc}:", file=self._out)
        self._logger.debug("hooks.step_started", step=desc, script=script_file)
        try:
            subprocess.run(
                [executor, script_file],
                cwd=base_dir or None,
                env=env,
                timeout=seconds,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            self._logger.warning("hooks.step_timeout", step=desc, timeout=seconds)
            raise HookError(desc, f"timed out after {timeout or DEFAULT_TIMEOUT}") from e
        except subprocess.CalledProcessError as e:
            self._logger.warning("hooks.step_failed", step=desc, returncode=e.returncode)
            raise HookError(desc, f"exit status {e.returncode}") from e
        except OSError as e:
            self._logger.warning("hooks.step_failed", step=desc, error=str(e))
            raise HookError(desc, str(e)) from e

    def _run_inline(
        self, text: str, desc: str, namespace: str, base_dir: str, timeout: str
    ) -> None:
        windows = current_os() == "windows"
        temp_file = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                prefix="yaks-script-",
                suffix=".ps1" if windows else ".sh",
                delete=False,
                encoding="utf-8",
            ) as temp_file:
                if not windows:
                    temp_file.write(SCRIPT_HEADER)
                temp_file.write(text)
            os.chmod(temp_file.name, 0o777)

            self.run_script(temp_file.name, desc, namespace, base_dir, timeout)
        except OSError as e:
            raise HookError(desc, str(e)) from e
        finally:
            if temp_file:
                try:
                    os.unlink(temp_file.name)
                except OSError:
                    pass


__all__ = [
    "HookRunner",
    "current_arch",
    "current_os",
    "resolve_placeholders",
    "skip_step",
]
