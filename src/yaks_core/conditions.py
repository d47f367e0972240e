"""Step conditions.

A step carries an optional ``if`` condition made of clauses joined by
`` && ``:

- ``os=<name>`` runs only on that OS (Go naming: linux, darwin, windows).
- ``env:<NAME>`` runs only when the variable is set, whatever its value.
- ``env:<NAME>=<value>`` runs only when the variable equals ``value``.

Conditions are parsed once when the run configuration is loaded.

Example:
    >>> parse_condition("os=linux && env:CI")
    (OSEquals(value='linux'), EnvPresent(name='CI'))
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

from yaks_core.errors import ConfigError


@dataclass(frozen=True)
class OSEquals:
    """Holds when the current OS equals ``value``."""

    value: str

    def holds(self, os_name: str, environ: Mapping[str, str]) -> bool:
        return os_name == self.value


@dataclass(frozen=True)
class EnvPresent:
    """Holds when environment variable ``name`` is set."""

    name: str

    def holds(self, os_name: str, environ: Mapping[str, str]) -> bool:
        return self.name in environ


@dataclass(frozen=True)
class EnvEquals:
    """Holds when environment variable ``name`` equals ``value``."""

    name: str
    value: str

    def holds(self, os_name: str, environ: Mapping[str, str]) -> bool:
        return environ.get(self.name) == self.value


Predicate = Union[OSEquals, EnvPresent, EnvEquals]


def parse_condition(text: str) -> tuple[Predicate, ...]:
    """Parse an ``if`` condition into predicates.

    Args:
        text: Condition text, e.g. ``"os=linux && env:FOO=bar"``.

    Returns:
        Predicates that must all hold. Empty for an empty condition.

    Raises:
        ConfigError: If a clause is not one of the supported forms.
    """
    if not text.strip():
        return ()

    predicates: list[Predicate] = []
    for clause in text.split(" && "):
        clause = clause.strip()
        key, sep, value = clause.partition("=")
        if key == "os" and sep:
            predicates.append(OSEquals(value))
        elif key.startswith("env:") and len(key) > len("env:"):
            name = key[len("env:") :]
            predicates.append(EnvEquals(name, value) if sep else EnvPresent(name))
        else:
            raise ConfigError(f"unsupported step condition '{clause}'")
    return tuple(predicates)


__all__ = ["EnvEquals", "EnvPresent", "OSEquals", "Predicate", "parse_condition"]
