"""Run configuration resolution.

Locates ``yaks-config.yaml`` next to a test source (or inside a test
directory), validates it into a ``RunConfig`` and applies the defaults that
depend on the invocation: the base directory and the default namespace.

Example:
    >>> config = resolve_run_config("tests/hello.feature", default_namespace="default")
    >>> config.base_dir
    'tests'
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from yaks_core.errors import ConfigError
from yaks_core.schemas.run_config import RunConfig

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

CONFIG_FILE = "yaks-config.yaml"
FEATURE_SUFFIX = ".feature"
DEFAULT_TIMEOUT = "30m"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def is_remote(source: str) -> bool:
    """Return True for ``http(s)://`` sources."""
    return source.startswith(("http://", "https://"))


def load_config(path: Path) -> RunConfig:
    """Load and validate a run configuration file.

    A missing file yields the default configuration.

    Args:
        path: Path to ``yaks-config.yaml``.

    Returns:
        The validated RunConfig.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML or does
            not match the schema.
    """
    if not path.exists():
        return RunConfig()

    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load run configuration: {e}", path=str(path)) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Run configuration must be a mapping", path=str(path))

    try:
        return RunConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid run configuration: {e}", path=str(path)) from e


def config_path_for(source: str) -> Path:
    """Return where the run configuration for ``source`` is expected."""
    path = Path(source)
    if path.is_dir():
        return path / CONFIG_FILE
    return path.parent / CONFIG_FILE


def base_dir_for(source: str) -> str:
    """Return the directory relative paths of ``source`` resolve against."""
    path = Path(source)
    if path.is_dir():
        return str(path)
    return str(path.parent)


def resolve_run_config(source: str, default_namespace: str) -> RunConfig:
    """Resolve the run configuration nearest ``source``.

    Args:
        source: Test file, test directory or remote URL.
        default_namespace: Namespace of the invocation.

    Returns:
        RunConfig with ``base_dir`` set and the namespace defaulted.

    Raises:
        ConfigError: If the configuration file is invalid.
    """
    if is_remote(source):
        config = RunConfig(base_dir=str(Path.cwd()))
    else:
        config = load_config(config_path_for(source))
        if not config.base_dir:
            config = config.model_copy(update={"base_dir": base_dir_for(source)})

    namespace = config.config.namespace
    if not namespace.name and not namespace.temporary:
        config = config.with_namespace(default_namespace)

    return config


def resolve_path(config: RunConfig, path: str) -> str:
    """Resolve ``path`` against the configuration base directory."""
    if is_remote(path) or Path(path).is_absolute() or not config.base_dir:
        return path
    return str(Path(config.base_dir) / path)


def parse_duration(text: str) -> float:
    """Parse a Go-style duration (``90s``, ``30m``, ``1h30m``) into seconds.

    Raises:
        ConfigError: If ``text`` is not a valid duration.
    """
    value = text.strip()
    sign = 1.0
    if value and value[0] in "+-":
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]

    if value == "0":
        return 0.0

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if not value or position != len(value):
        raise ConfigError(f"invalid duration '{text}'")
    return sign * total


def resolve_timeout(
    flag_timeout: str,
    config_timeout: str,
    logger: FilteringBoundLogger,
) -> float:
    """Pick the wait timeout: flag > config > default.

    A malformed value is logged and replaced by the default.
    """
    timeout = flag_timeout or config_timeout or DEFAULT_TIMEOUT
    try:
        return parse_duration(timeout)
    except ConfigError as e:
        logger.warning("config.invalid_timeout", timeout=timeout, error=e.message)
        return parse_duration(DEFAULT_TIMEOUT)


__all__ = [
    "CONFIG_FILE",
    "DEFAULT_TIMEOUT",
    "FEATURE_SUFFIX",
    "base_dir_for",
    "config_path_for",
    "is_remote",
    "load_config",
    "parse_duration",
    "resolve_path",
    "resolve_run_config",
    "resolve_timeout",
]
