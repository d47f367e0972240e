"""Custom exceptions for the YAKS run orchestrator.

Exception Hierarchy:
    YaksError (base)
    ├── ConfigError (wraps ValueError)
    │   └── FormatError
    ├── ResourceError (wraps RuntimeError)
    ├── WaitTimeoutError (wraps TimeoutError)
    └── HookError (wraps RuntimeError)

Every error carries a ``reason`` that is used as the prefix of the one-line
error recorded in a test suite (``"<reason> - <message>"``).

Example:
    >>> from yaks_core.errors import ResourceError
    >>> raise ResourceError("create", "Test", "hello", reason="Forbidden", status=403)
    ResourceError: Failed to create Test 'hello': Forbidden (HTTP 403)
"""

from __future__ import annotations

import json
from typing import Any


class YaksError(Exception):
    """Base exception for all orchestrator errors.

    Attributes:
        message: Human-readable error message.
        reason: Short machine-friendly failure category.
    """

    default_reason = "Unknown"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            reason: Failure category. Defaults to the class default.
        """
        self.message = message
        self.reason = reason or self.default_reason
        super().__init__(message)


class ConfigError(YaksError, ValueError):
    """Raised when run configuration, settings or source files are invalid.

    Attributes:
        path: Offending file path, if any.
    """

    default_reason = "ConfigError"

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{message} ({path})"
        YaksError.__init__(self, message)


class FormatError(ConfigError):
    """Raised when an unsupported dump output format is requested."""

    default_reason = "FormatError"

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"invalid dump output format option '{value}', should be one of: yaml|json"
        )


class ResourceError(YaksError, RuntimeError):
    """Raised when a call against the cluster API fails.

    Attributes:
        action: API verb that failed (create, get, update, list, delete).
        kind: Resource kind.
        name: Resource name.
        status: HTTP status code, if known.
    """

    default_reason = "InternalError"

    def __init__(
        self,
        action: str,
        kind: str,
        name: str = "",
        *,
        reason: str | None = None,
        status: int | None = None,
        detail: str = "",
    ) -> None:
        self.action = action
        self.kind = kind
        self.name = name
        self.status = status
        target = f"{kind} '{name}'" if name else kind
        message = f"Failed to {action} {target}"
        if detail:
            message = f"{message}: {detail}"
        elif reason:
            message = f"{message}: {reason}"
        if status is not None:
            message = f"{message} (HTTP {status})"
        YaksError.__init__(self, message, reason=reason)

    @classmethod
    def from_api_exception(
        cls, exc: Exception, action: str, kind: str, name: str = ""
    ) -> ResourceError:
        """Build a ResourceError from a kubernetes ApiException.

        Only the status code, the Kubernetes status reason and the status
        message are extracted. Headers are never copied.
        """
        status = getattr(exc, "status", None)
        reason, detail = api_status_reason(exc)
        return cls(action, kind, name, reason=reason, status=status, detail=detail)

    @classmethod
    def from_transport_error(
        cls, exc: Exception, action: str, kind: str, name: str = ""
    ) -> ResourceError:
        """Build a ResourceError for a request that never got an API response.

        Connection refused, DNS and TLS failures surface from urllib3 without
        a status; they are reported as ``ServiceUnavailable``.
        """
        return cls(action, kind, name, reason="ServiceUnavailable", detail=str(exc))


class WaitTimeoutError(YaksError, TimeoutError):
    """Raised (or recorded) when a test does not reach a terminal phase in time."""

    default_reason = "Timeout"

    def __init__(self, name: str, timeout: float, last_phase: str = "") -> None:
        self.name = name
        self.timeout = timeout
        self.last_phase = last_phase
        message = f"Timed out after {timeout:.0f}s waiting for test '{name}'"
        if last_phase:
            message = f"{message} (last phase: {last_phase})"
        YaksError.__init__(self, message)


class HookError(YaksError, RuntimeError):
    """Raised when a pre or post step fails.

    Attributes:
        step: Step description.
    """

    default_reason = "HookError"

    def __init__(self, step: str, detail: str) -> None:
        self.step = step
        YaksError.__init__(self, f"Failed to run {step}: {detail}")


def api_status_reason(exc: Exception) -> tuple[str | None, str]:
    """Extract the Kubernetes status reason and message from an ApiException.

    Returns:
        Tuple of (reason, message). The reason is the ``reason`` field of the
        ``Status`` body (e.g. ``AlreadyExists``, ``Conflict``, ``NotFound``)
        falling back to the HTTP reason phrase.
    """
    body: Any = getattr(exc, "body", None)
    if body:
        try:
            payload = json.loads(body)
        except (TypeError, ValueError):
            payload = None
        if isinstance(payload, dict):
            return payload.get("reason") or getattr(exc, "reason", None), str(
                payload.get("message") or ""
            )
    return getattr(exc, "reason", None), ""


def reason_for_error(exc: BaseException) -> str:
    """Return the failure category used in error suites."""
    reason = getattr(exc, "reason", None)
    if isinstance(reason, str) and reason:
        return reason
    return type(exc).__name__


__all__ = [
    "YaksError",
    "ConfigError",
    "FormatError",
    "ResourceError",
    "WaitTimeoutError",
    "HookError",
    "api_status_reason",
    "reason_for_error",
]
