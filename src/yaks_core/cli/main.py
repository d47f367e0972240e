"""Main entry point for the yaks CLI.

Root options select the cluster connection and logging; they are stored in
the click context object for the subcommands.

Example:
    $ yaks --help
    $ yaks --log-level DEBUG run tests/hello.feature
"""

from __future__ import annotations

import sys
from importlib.metadata import version as get_version
from pathlib import Path

import click

from yaks_core.cli.run import run_command
from yaks_core.log import configure_logging, get_logger


def _get_version() -> str:
    """Return the installed yaks-core version, or 'unknown'."""
    try:
        return get_version("yaks-core")
    except Exception:
        return "unknown"


@click.group(
    name="yaks",
    help="yaks - Run Gherkin tests on Kubernetes.",
    epilog="Use 'yaks <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="yaks",
    message="%(prog)s %(version)s",
)
@click.option(
    "--namespace",
    "-n",
    type=str,
    default=None,
    help="Namespace to use for all operations (default: kubeconfig context namespace).",
)
@click.option(
    "--kubeconfig",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to kubeconfig file.",
)
@click.option(
    "--context",
    "kube_context",
    type=str,
    default=None,
    help="Kubeconfig context to use.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Minimum level of diagnostic log events (default: WARNING).",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Emit diagnostic log events as JSON.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    namespace: str | None,
    kubeconfig: Path | None,
    kube_context: str | None,
    log_level: str,
    log_json: bool,
) -> None:
    """Root command group for the yaks CLI."""
    ctx.ensure_object(dict)
    configure_logging(log_level=log_level, json_output=log_json)
    ctx.obj.setdefault("logger", get_logger())
    ctx.obj["namespace"] = namespace
    ctx.obj["kubeconfig"] = kubeconfig
    ctx.obj["context"] = kube_context


cli.add_command(run_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the yaks CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
