"""The ``yaks run`` command.

Runs a single feature file or every feature file of a directory on the
cluster and prints a summary of the results.

Example:
    $ yaks run tests/hello.feature
    $ yaks run tests --tag @smoke --env FOO=bar --timeout 10m
    $ yaks run tests/hello.feature --dump yaml
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from yaks_core.cancel import CancelToken
from yaks_core.cli.utils import ExitCode, error_exit, info, warn
from yaks_core.cluster import DEFAULT_NAMESPACE, YaksClient
from yaks_core.config import is_remote
from yaks_core.errors import ResourceError
from yaks_core.reconciler import DUMP_FORMATS
from yaks_core.results import print_summary, write_json_report
from yaks_core.runner import Runner
from yaks_core.schemas.options import DEFAULT_OUTPUT_DIR, RunOptions

REPORT_FORMATS = ("summary", "json")


def _validate_env(
    ctx: click.Context, param: click.Parameter, value: tuple[str, ...]
) -> tuple[str, ...]:
    for item in value:
        key, sep, _ = item.partition("=")
        if not key or not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'")
    return value


def _create_client(obj: dict[str, Any], dump: bool) -> YaksClient:
    client = obj.get("client")
    if client is not None:
        return client
    if dump:
        # Dump mode renders resources only and never talks to the cluster.
        return YaksClient(namespace=obj.get("namespace") or DEFAULT_NAMESPACE)
    try:
        return YaksClient.from_kubeconfig(
            kubeconfig=obj.get("kubeconfig"),
            context=obj.get("context"),
            namespace=obj.get("namespace"),
        )
    except ResourceError as e:
        error_exit(
            f"Unable to create cluster client: {e.message}", exit_code=ExitCode.NETWORK_ERROR
        )


@click.command(
    name="run",
    help="Run tests from a feature file or a directory of feature files.",
)
@click.argument("source", type=str)
@click.option(
    "--maven-repository",
    "repositories",
    multiple=True,
    help="Additional Maven repository URL. Can be repeated.",
)
@click.option(
    "--logger",
    "-l",
    "loggers",
    multiple=True,
    help="Test runtime logger level (name=level). Can be repeated.",
)
@click.option(
    "--dependency",
    "-d",
    "dependencies",
    multiple=True,
    help="Additional test runtime dependency (Maven coordinates). Can be repeated.",
)
@click.option(
    "--settings",
    "-s",
    type=str,
    default="",
    help="Runtime settings file (relative to the test directory).",
)
@click.option(
    "--env",
    "-e",
    multiple=True,
    callback=_validate_env,
    help="Environment variable KEY=VALUE for the test runtime. Can be repeated.",
)
@click.option(
    "--tag",
    "-t",
    "tags",
    multiple=True,
    help="Cucumber tag filter. Can be repeated.",
)
@click.option(
    "--feature",
    "-f",
    "features",
    multiple=True,
    help="Cucumber feature to run. Can be repeated.",
)
@click.option(
    "--resource",
    "resources",
    multiple=True,
    help="Additional resource file for the test. Can be repeated.",
)
@click.option(
    "--property-file",
    "property_files",
    multiple=True,
    help="Property file for the test. Can be repeated.",
)
@click.option(
    "--glue",
    "-g",
    multiple=True,
    help="Cucumber glue package. Can be repeated.",
)
@click.option(
    "--options",
    "-o",
    type=str,
    default="",
    help="Cucumber runtime options.",
)
@click.option(
    "--dump",
    type=str,
    default="",
    help="Print the test resource (yaml|json) instead of submitting it.",
)
@click.option(
    "--report",
    "-r",
    type=click.Choice(REPORT_FORMATS),
    multiple=True,
    default=("summary",),
    help="Report format (default: summary). Can be repeated.",
)
@click.option(
    "--timeout",
    type=str,
    default="",
    help="Time to wait for each test, e.g. 30m or 1h30m (default: config or 30m).",
)
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for each test to finish (default: wait).",
)
@click.option(
    "--logs/--no-logs",
    default=True,
    help="Stream test logs while waiting (default: logs).",
)
@click.option(
    "--dev",
    is_flag=True,
    default=False,
    help="Developer mode: wait for the test route instead of a result.",
)
@click.option(
    "--fail-on-timeout",
    is_flag=True,
    default=False,
    help="Record a test that does not finish in time as a failure.",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_OUTPUT_DIR,
    help=f"Directory for result and report files (default: {DEFAULT_OUTPUT_DIR}).",
)
@click.pass_context
def run_command(
    ctx: click.Context,
    source: str,
    repositories: tuple[str, ...],
    loggers: tuple[str, ...],
    dependencies: tuple[str, ...],
    settings: str,
    env: tuple[str, ...],
    tags: tuple[str, ...],
    features: tuple[str, ...],
    resources: tuple[str, ...],
    property_files: tuple[str, ...],
    glue: tuple[str, ...],
    options: str,
    dump: str,
    report: tuple[str, ...],
    timeout: str,
    wait: bool,
    logs: bool,
    dev: bool,
    fail_on_timeout: bool,
    output_dir: Path,
) -> None:
    """Run tests and exit non-zero if any test suite recorded errors.

    Args:
        ctx: Click context holding the root options.
        source: Feature file, directory or http(s) URL.
    """
    obj = ctx.ensure_object(dict)
    logger = obj["logger"]

    if not is_remote(source) and not Path(source).exists():
        error_exit("Test source not found", exit_code=ExitCode.FILE_NOT_FOUND, path=source)

    if dump and dump not in DUMP_FORMATS:
        error_exit(
            f"invalid dump output format option '{dump}', should be one of: yaml|json",
            exit_code=ExitCode.USAGE_ERROR,
        )

    client = _create_client(obj, bool(dump))
    run_options = RunOptions(
        namespace=obj.get("namespace") or client.namespace,
        repositories=repositories,
        dependencies=dependencies,
        loggers=loggers,
        settings=settings,
        env=env,
        tags=tags,
        features=features,
        glue=glue,
        options=options,
        resources=resources,
        property_files=property_files,
        dump=dump,
        report=report,
        timeout=timeout,
        wait=wait,
        logs=logs,
        dev=dev,
        fail_on_timeout=fail_on_timeout,
        output_dir=str(output_dir),
    )

    logger.info("run.started", source=source, namespace=run_options.namespace)
    token = CancelToken()
    runner = Runner(client, run_options, logger, token=token)
    results = runner.run(source)
    logger.info("run.finished", source=source, suites=len(results.suites))

    if run_options.wait and not run_options.dump:
        print_summary(results)
        if "json" in run_options.report:
            try:
                path = write_json_report(results, run_options.output_dir)
                info(f"Report written to {path}")
            except OSError as e:
                warn("Failed to write report", error=str(e))

    if token.cancelled:
        error_exit("Test run interrupted", exit_code=ExitCode.INTERRUPTED)

    if results.has_errors():
        error_exit("There are test failures!", exit_code=ExitCode.TEST_FAILURE)


__all__ = ["run_command"]
