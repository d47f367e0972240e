"""Unit tests for the orchestrator exception hierarchy."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from yaks_core.errors import (
    ConfigError,
    FormatError,
    HookError,
    ResourceError,
    WaitTimeoutError,
    YaksError,
    api_status_reason,
    reason_for_error,
)


class TestHierarchy:
    """Test exception base classes."""

    @pytest.mark.parametrize(
        ("exc", "builtin"),
        [
            (ConfigError("bad"), ValueError),
            (FormatError("xml"), ValueError),
            (ResourceError("create", "Test"), RuntimeError),
            (WaitTimeoutError("hello", 60.0), TimeoutError),
            (HookError("setup", "exit status 1"), RuntimeError),
        ],
    )
    def test_builtin_bases(self, exc: YaksError, builtin: type[Exception]) -> None:
        """Test every error is a YaksError and its matching builtin."""
        assert isinstance(exc, YaksError)
        assert isinstance(exc, builtin)

    def test_format_error_message(self) -> None:
        """Test the unsupported dump format message."""
        assert str(FormatError("xml")) == (
            "invalid dump output format option 'xml', should be one of: yaml|json"
        )

    def test_config_error_path(self) -> None:
        """Test the offending path is appended to the message."""
        exc = ConfigError("Failed to read file", path="a.feature")
        assert exc.message == "Failed to read file (a.feature)"
        assert exc.path == "a.feature"

    def test_hook_error_message(self) -> None:
        """Test hook failures name the step."""
        assert str(HookError("setup", "exit status 2")) == "Failed to run setup: exit status 2"

    def test_wait_timeout_message(self) -> None:
        """Test the last phase is included."""
        exc = WaitTimeoutError("hello", 90.0, "Running")
        assert "'hello'" in exc.message
        assert "last phase: Running" in exc.message
        assert exc.reason == "Timeout"


class TestResourceError:
    """Test API error translation."""

    def test_from_api_exception(self, api_exception: Callable[..., ApiException]) -> None:
        """Test status, reason and message are taken from the Status body."""
        exc = ResourceError.from_api_exception(
            api_exception(403, "Forbidden", "tests.yaks.dev is forbidden"),
            "create",
            "Test",
            "hello",
        )

        assert exc.status == 403
        assert exc.reason == "Forbidden"
        assert exc.message == (
            "Failed to create Test 'hello': tests.yaks.dev is forbidden (HTTP 403)"
        )

    def test_without_body(self) -> None:
        """Test the HTTP reason phrase is used without a Status body."""
        exc = ResourceError.from_api_exception(
            ApiException(status=500, reason="Internal Server Error"), "get", "Test"
        )
        assert exc.reason == "Internal Server Error"
        assert exc.message == "Failed to get Test: Internal Server Error (HTTP 500)"

    def test_from_transport_error(self) -> None:
        """Test a request without API response is reported as ServiceUnavailable."""
        exc = ResourceError.from_transport_error(
            MaxRetryError(None, "/apis", reason=OSError("Connection refused")),
            "create",
            "Test",
            "hello",
        )

        assert exc.status is None
        assert exc.reason == "ServiceUnavailable"
        assert exc.message.startswith("Failed to create Test 'hello': ")
        assert "Connection refused" in exc.message

    def test_default_reason(self) -> None:
        """Test a ResourceError without reason reports InternalError."""
        assert ResourceError("list", "Instance").reason == "InternalError"


class TestReasons:
    """Test reason extraction helpers."""

    def test_api_status_reason_bad_body(self) -> None:
        """Test a non-JSON body falls back to the HTTP reason."""
        exc = ApiException(status=502, reason="Bad Gateway")
        exc.body = "<html>oops</html>"
        assert api_status_reason(exc) == ("Bad Gateway", "")

    def test_reason_for_yaks_error(self) -> None:
        """Test YaksError reasons are used as-is."""
        assert reason_for_error(ConfigError("bad")) == "ConfigError"

    def test_reason_for_foreign_error(self) -> None:
        """Test other exceptions fall back to their class name."""
        assert reason_for_error(OSError("disk full")) == "OSError"
