"""Unit tests for waiting on tests and following their logs."""

from __future__ import annotations

import io
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
import urllib3
from kubernetes.client.rest import ApiException
from urllib3.exceptions import ProtocolError

from yaks_core.cancel import CancelToken, WaitCause
from yaks_core.cluster import YaksClient
from yaks_core.schemas.test import SourceSpec, Test, TestPhase
from yaks_core.watcher import LogFollower, PhaseWatcher

POLL = 0.01


def _test() -> Test:
    return Test.new("team-a", "hello", SourceSpec(name="hello.feature", content="x"))


def _observed(phase: str | None) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "apiVersion": "yaks.dev/v1alpha1",
        "kind": "Test",
        "metadata": {"name": "hello", "namespace": "team-a"},
        "spec": {"source": {"name": "hello.feature", "content": "x"}},
    }
    if phase is not None:
        obj["status"] = {"phase": phase}
    return obj


def _pod(name: str, phase: str) -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name), status=SimpleNamespace(phase=phase)
    )


class _StreamingResponse:
    """Streaming log response that stays open until closed."""

    def __init__(self, chunks: list[bytes], after_chunks: threading.Event | None = None) -> None:
        self.chunks = chunks
        self.after_chunks = after_chunks
        self.closed = threading.Event()
        self.released = False

    def stream(self, amt: int) -> Iterator[bytes]:
        yield from self.chunks
        if self.after_chunks is not None:
            self.after_chunks.set()
        self.closed.wait(5)

    def close(self) -> None:
        self.closed.set()

    def release_conn(self) -> None:
        self.released = True


@pytest.fixture
def watcher(mock_client: YaksClient, logger: MagicMock, out: io.StringIO) -> PhaseWatcher:
    """Watcher polling the mocked client quickly."""
    return PhaseWatcher(mock_client, logger, out, poll_interval=POLL, route_ceiling=5)


class TestAwaitPhase:
    """Test waiting for a terminal phase."""

    def test_terminal_phase(
        self, watcher: PhaseWatcher, mock_client: YaksClient, out: io.StringIO
    ) -> None:
        """Test the wait ends when the test passes."""
        mock_client.custom.get_namespaced_custom_object.side_effect = [
            _observed(None),
            _observed("Running"),
            _observed("Passed"),
        ]

        result = watcher.await_test(_test(), 10.0, CancelToken(), logs=False)

        assert result.cause is WaitCause.TERMINAL_PHASE
        assert result.phase is TestPhase.PASSED
        assert result.test is not None
        assert result.test.phase is TestPhase.PASSED
        assert "Test 'hello' finished with status: Passed" in out.getvalue()

    @pytest.mark.parametrize("phase", ["Failed", "Error", "Deleting"])
    def test_other_terminal_phases(
        self, watcher: PhaseWatcher, mock_client: YaksClient, phase: str
    ) -> None:
        """Test failures and deletion also end the wait."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed(phase)

        result = watcher.await_test(_test(), 10.0, CancelToken(), logs=False)

        assert result.cause is WaitCause.TERMINAL_PHASE
        assert result.phase.value == phase

    def test_read_errors_tolerated(
        self,
        watcher: PhaseWatcher,
        mock_client: YaksClient,
        logger: MagicMock,
        api_exception: Callable[..., ApiException],
    ) -> None:
        """Test transient read and decode failures keep polling."""
        mock_client.custom.get_namespaced_custom_object.side_effect = [
            api_exception(500, "InternalError"),
            ProtocolError("connection reset"),
            {"kind": "Test"},
            _observed("Failed"),
        ]

        result = watcher.await_test(_test(), 10.0, CancelToken(), logs=False)

        assert result.phase is TestPhase.FAILED
        events = [c.args[0] for c in logger.debug.call_args_list]
        assert events.count("watcher.read_failed") == 3

    def test_timeout(
        self, watcher: PhaseWatcher, mock_client: YaksClient, logger: MagicMock
    ) -> None:
        """Test the wait ends with the last observed phase on timeout."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed("Running")

        result = watcher.await_test(_test(), 0.05, CancelToken(), logs=False)

        assert result.cause is WaitCause.TIMED_OUT
        assert result.phase is TestPhase.RUNNING
        assert logger.warning.call_args.args[0] == "watcher.timeout"

    def test_no_phase_reported_as_new(
        self, watcher: PhaseWatcher, mock_client: YaksClient
    ) -> None:
        """Test a test without status is reported as New."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed(None)

        result = watcher.await_test(_test(), 0.03, CancelToken(), logs=False)

        assert result.phase is TestPhase.NEW

    def test_parent_cancellation(self, watcher: PhaseWatcher, mock_client: YaksClient) -> None:
        """Test cancelling the run token ends the wait promptly."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed("Running")
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            result = watcher.await_test(_test(), 30.0, token, logs=False)
        finally:
            timer.cancel()

        assert result.cause is WaitCause.EXTERNALLY_CANCELLED
        assert result.phase is TestPhase.RUNNING

    def test_terminal_phase_leaves_run_token(
        self, watcher: PhaseWatcher, mock_client: YaksClient
    ) -> None:
        """Test finishing one test does not cancel the run."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed("Passed")
        token = CancelToken()

        watcher.await_test(_test(), 10.0, token, logs=False)

        assert not token.cancelled

    def test_wait_detached_from_run_token(
        self, watcher: PhaseWatcher, mock_client: YaksClient
    ) -> None:
        """Test finished waits leave no callbacks on the run token."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed("Passed")
        token = CancelToken()

        for _ in range(3):
            watcher.await_test(_test(), 10.0, token, logs=False)

        assert token._callbacks == []

    def test_watcher_crash_released(self, watcher: PhaseWatcher, mock_client: YaksClient) -> None:
        """Test an unexpected watcher failure does not block the wait."""
        mock_client.custom.get_namespaced_custom_object.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            watcher.await_test(_test(), 10.0, CancelToken(), logs=False)

    def test_wait_for_phase(self, watcher: PhaseWatcher, mock_client: YaksClient) -> None:
        """Test the single-task wait cancels its token with the cause."""
        mock_client.custom.get_namespaced_custom_object.return_value = _observed("Error")
        token = CancelToken()

        phase, test = watcher.wait_for_phase(_test(), 10.0, token)

        assert phase is TestPhase.ERROR
        assert test.phase is TestPhase.ERROR
        assert token.cause is WaitCause.TERMINAL_PHASE


class TestAwaitRoute:
    """Test dev mode route waiting."""

    def test_route_ready(
        self, watcher: PhaseWatcher, mock_client: YaksClient, out: io.StringIO
    ) -> None:
        """Test the wait ends once the route has an ingress host."""
        mock_client.custom.get_namespaced_custom_object.side_effect = [
            {"status": {}},
            {"status": {"ingress": [{"host": "hello-team-a.apps.example.com"}]}},
        ]

        result = watcher.await_test(_test(), 10.0, CancelToken(), logs=False, dev=True)

        assert result.cause is WaitCause.ENDPOINT_READY
        assert result.host == "hello-team-a.apps.example.com"
        assert "Route is provisioned hello-team-a.apps.example.com" in out.getvalue()
        kwargs = mock_client.custom.get_namespaced_custom_object.call_args.kwargs
        assert kwargs["group"] == "route.openshift.io"
        assert kwargs["plural"] == "routes"
        assert kwargs["name"] == "hello"

    def test_route_ceiling(
        self,
        watcher: PhaseWatcher,
        mock_client: YaksClient,
        api_exception: Callable[..., ApiException],
    ) -> None:
        """Test the wait gives up after the iteration ceiling."""
        mock_client.custom.get_namespaced_custom_object.side_effect = api_exception(
            404, "NotFound"
        )
        token = CancelToken()

        assert watcher.wait_for_route(_test(), token) is None

        assert token.cause is WaitCause.TIMED_OUT
        assert mock_client.custom.get_namespaced_custom_object.call_count == 5


class TestLogFollower:
    """Test pod log streaming."""

    def test_streams_split_utf8(
        self, mock_client: YaksClient, logger: MagicMock, out: io.StringIO
    ) -> None:
        """Test multi-byte characters split across chunks are decoded intact."""
        mock_client.core.list_namespaced_pod.return_value = SimpleNamespace(
            items=[_pod("hello-build", "Pending"), _pod("hello-run", "Running")]
        )
        resp = MagicMock()
        resp.stream.return_value = iter([b"Hello \xe2\x9c", b"\x93 done\n"])
        mock_client.core.read_namespaced_pod_log.return_value = resp

        LogFollower(mock_client, logger, out, POLL).follow("team-a", "hello", CancelToken())

        assert out.getvalue() == "Hello ✓ done\n"
        kwargs = mock_client.core.read_namespaced_pod_log.call_args.kwargs
        assert kwargs["name"] == "hello-run"
        assert kwargs["follow"] is True
        assert kwargs["_preload_content"] is False
        selector = mock_client.core.list_namespaced_pod.call_args.kwargs["label_selector"]
        assert selector == "yaks.dev/test=hello"
        resp.release_conn.assert_called_once_with()

    def test_waits_for_pod(
        self, mock_client: YaksClient, logger: MagicMock, out: io.StringIO
    ) -> None:
        """Test the follower polls until the test pod is running."""
        mock_client.core.list_namespaced_pod.side_effect = [
            SimpleNamespace(items=[]),
            SimpleNamespace(items=None),
            SimpleNamespace(items=[_pod("hello-run", "Succeeded")]),
        ]
        mock_client.core.read_namespaced_pod_log.return_value = _StreamingResponse([b"ok\n"])
        token = CancelToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        try:
            LogFollower(mock_client, logger, out, POLL).follow("team-a", "hello", token)
        finally:
            timer.cancel()

        assert out.getvalue() == "ok\n"
        assert mock_client.core.list_namespaced_pod.call_count == 3

    def test_cancel_closes_stream(
        self, mock_client: YaksClient, logger: MagicMock, out: io.StringIO
    ) -> None:
        """Test cancellation closes an open stream so the follower returns."""
        mock_client.core.list_namespaced_pod.return_value = SimpleNamespace(
            items=[_pod("hello-run", "Running")]
        )
        resp = _StreamingResponse([b"line 1\n"])
        mock_client.core.read_namespaced_pod_log.return_value = resp
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            LogFollower(mock_client, logger, out, POLL).follow("team-a", "hello", token)
        finally:
            timer.cancel()

        assert resp.closed.is_set()
        assert resp.released
        assert out.getvalue() == "line 1\n"

    def test_cancelled_before_pod(
        self,
        mock_client: YaksClient,
        logger: MagicMock,
        api_exception: Callable[..., ApiException],
    ) -> None:
        """Test lookup failures are retried until cancellation."""
        mock_client.core.list_namespaced_pod.side_effect = api_exception(403, "Forbidden")
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            LogFollower(mock_client, logger, io.StringIO(), POLL).follow("team-a", "hello", token)
        finally:
            timer.cancel()

        mock_client.core.read_namespaced_pod_log.assert_not_called()
        assert logger.debug.call_args.args[0] == "logs.pod_lookup_failed"


class TestAwaitWithLogs:
    """Test the phase watcher and log follower together."""

    def test_logs_streamed_until_terminal_phase(
        self, watcher: PhaseWatcher, mock_client: YaksClient, out: io.StringIO
    ) -> None:
        """Test the log is printed and the stream closed when the test finishes."""
        streamed = threading.Event()
        resp = _StreamingResponse([b"Scenario passed\n"], after_chunks=streamed)
        mock_client.core.list_namespaced_pod.return_value = SimpleNamespace(
            items=[_pod("hello-run", "Running")]
        )
        mock_client.core.read_namespaced_pod_log.return_value = resp

        def _get(**_: Any) -> dict[str, Any]:
            streamed.wait(5)
            return _observed("Passed")

        mock_client.custom.get_namespaced_custom_object.side_effect = _get

        result = watcher.await_test(_test(), 10.0, CancelToken())

        assert result.cause is WaitCause.TERMINAL_PHASE
        output = out.getvalue()
        assert output.index("Scenario passed") < output.index("finished with status: Passed")
        assert resp.closed.is_set()
        assert resp.released


class _LogServer(ThreadingHTTPServer):
    """Local HTTP server standing in for the pod log endpoint."""

    daemon_threads = True

    def __init__(self, handler: type[BaseHTTPRequestHandler]) -> None:
        super().__init__(("127.0.0.1", 0), handler)
        self.sent = threading.Event()
        self.release = threading.Event()

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server_address[1]}/log"


class _SilentPodHandler(BaseHTTPRequestHandler):
    """Writes one chunked log line, then stays silent until released."""

    protocol_version = "HTTP/1.1"
    server: _LogServer

    def do_GET(self) -> None:
        chunked = self.protocol_version == "HTTP/1.1"
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        if chunked:
            self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()
        line = b"hello\n"
        self.wfile.write(b"%x\r\n%s\r\n" % (len(line), line) if chunked else line)
        self.wfile.flush()
        self.server.sent.set()
        self.server.release.wait(15)

    def log_message(self, format: str, *args: Any) -> None:
        pass


class _SilentCloseDelimitedHandler(_SilentPodHandler):
    """Same log line without chunked encoding (body ends when the socket closes)."""

    protocol_version = "HTTP/1.0"


@contextmanager
def _serve(handler: type[BaseHTTPRequestHandler]) -> Iterator[_LogServer]:
    server = _LogServer(handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.release.set()
        server.shutdown()
        server.server_close()


class TestLogFollowerSocket:
    """Test cancellation while the follower is blocked on a real socket."""

    def _cancel_while_silent(
        self,
        handler: type[BaseHTTPRequestHandler],
        mock_client: YaksClient,
        logger: MagicMock,
        out: io.StringIO,
    ) -> float:
        """Follow a pod that goes silent, cancel, and return the time to stop."""
        pool = urllib3.PoolManager()
        with _serve(handler) as server:
            mock_client.core.list_namespaced_pod.return_value = SimpleNamespace(
                items=[_pod("hello-run", "Running")]
            )
            mock_client.core.read_namespaced_pod_log.side_effect = lambda **_: pool.request(
                "GET", server.url, preload_content=False
            )
            token = CancelToken()
            follower = threading.Thread(
                target=LogFollower(mock_client, logger, out, POLL).follow,
                args=("team-a", "hello", token),
                daemon=True,
            )
            follower.start()
            assert server.sent.wait(5)
            time.sleep(0.2)

            started = time.monotonic()
            token.cancel(WaitCause.TIMED_OUT)
            follower.join(10)
            elapsed = time.monotonic() - started

            assert not follower.is_alive()
        pool.clear()
        return elapsed

    def test_cancel_wakes_silent_chunked_stream(
        self, mock_client: YaksClient, logger: MagicMock, out: io.StringIO
    ) -> None:
        """Test cancellation stops a follower waiting on a silent pod log."""
        elapsed = self._cancel_while_silent(_SilentPodHandler, mock_client, logger, out)

        assert elapsed < 2
        assert out.getvalue() == "hello\n"

    def test_cancel_wakes_silent_close_delimited_stream(
        self, mock_client: YaksClient, logger: MagicMock, out: io.StringIO
    ) -> None:
        """Test cancellation also stops a stream whose body ends at connection close."""
        elapsed = self._cancel_while_silent(
            _SilentCloseDelimitedHandler, mock_client, logger, out
        )

        assert elapsed < 2
