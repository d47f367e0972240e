"""Kubernetes-safe naming helpers.

Test resource names are derived from the source path; temporary namespace
names carry a UUID suffix so repeated invocations never collide.
"""

from __future__ import annotations

import re
import uuid

MAX_NAME_LENGTH = 63
TEMP_NAMESPACE_PREFIX = "yaks-"

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_DISALLOWED = re.compile(r"[^a-z0-9]+")


def sanitize_file_name(path: str) -> str:
    """Return the last path segment of ``path`` (``/`` or ``\\`` separated)."""
    return re.split(r"[/\\]", path.rstrip("/\\"))[-1]


def sanitize_name(path: str) -> str:
    """Derive a DNS-1123 label from a source path.

    The basename is taken, everything from the first dot is dropped,
    camelCase is split, the result is lower-cased and every run of
    non-alphanumeric characters collapses into a single hyphen.

    The function is idempotent: ``sanitize_name(sanitize_name(x)) == sanitize_name(x)``.

    Example:
        >>> sanitize_name("tests/helloWorld_test.feature")
        'hello-world-test'
    """
    name = sanitize_file_name(path).split(".")[0]
    name = _CAMEL_BOUNDARY.sub(r"\1-\2", name).lower()
    name = _DISALLOWED.sub("-", name).strip("-")
    return name[:MAX_NAME_LENGTH].rstrip("-")


def temporary_namespace_name(prefix: str = TEMP_NAMESPACE_PREFIX) -> str:
    """Generate a globally unique namespace name (``prefix`` + UUID4)."""
    return f"{prefix}{uuid.uuid4()}"


__all__ = ["sanitize_file_name", "sanitize_name", "temporary_namespace_name"]
