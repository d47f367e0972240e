"""Waiting for a submitted test to finish.

``PhaseWatcher.await_test`` starts two tasks sharing one cancellation token:

- a phase watcher polling the Test until a terminal phase or the timeout
  (or, in dev mode, a route watcher polling for the test endpoint), and
- a log follower streaming the test pod log to the output stream.

The caller blocks on the token; whichever condition fires first cancels it,
and both tasks are joined before the result is returned. On cancellation the
log stream socket is shut down, which wakes a follower blocked on a silent
pod, so it returns promptly after flushing.

Example:
    >>> watcher = PhaseWatcher(client, logger)
    >>> result = watcher.await_test(test, timeout=1800.0, token=CancelToken())
    >>> result.cause, result.phase
    (<WaitCause.TERMINAL_PHASE: 'TerminalPhase'>, <TestPhase.PASSED: 'Passed'>)
"""

from __future__ import annotations

import codecs
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Any

import click
from kubernetes.client.rest import ApiException
from pydantic import ValidationError
from urllib3.exceptions import HTTPError as TransportError

from yaks_core.cancel import CancelToken, WaitCause
from yaks_core.schemas.test import GROUP, TEST_PLURAL, VERSION, Test, TestPhase

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from yaks_core.cluster import YaksClient

ROUTE_GROUP = "route.openshift.io"
ROUTE_VERSION = "v1"
ROUTE_PLURAL = "routes"
TEST_LABEL = "yaks.dev/test"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_ROUTE_CEILING = 1000
LOG_CHUNK_SIZE = 4096

_READ_ERRORS = (ApiException, TransportError, ValidationError)


@dataclass(frozen=True)
class WaitResult:
    """Outcome of waiting for a test.

    Attributes:
        cause: Why the wait ended.
        phase: Last non-empty phase observed (``New`` if none was).
        test: Last observed Test object.
        host: Route host in dev mode, if one was provisioned.
    """

    cause: WaitCause
    phase: TestPhase
    test: Test | None = None
    host: str | None = None


@dataclass
class _Observation:
    phase: TestPhase = TestPhase.NEW
    test: Test | None = None
    host: str | None = None


def _stream_socket(resp: Any) -> socket.socket | None:
    """Return the socket a streaming urllib3 response reads from, if any."""
    sock = getattr(getattr(resp, "connection", None), "sock", None)
    if sock is None:
        # http.client drops the connection socket of close-delimited bodies;
        # the response file still holds it.
        raw = getattr(getattr(getattr(resp, "_fp", None), "fp", None), "raw", None)
        sock = getattr(raw, "_sock", None)
    return sock if isinstance(sock, socket.socket) else None


class LogFollower:
    """Streams the log of a test pod until cancelled."""

    def __init__(
        self,
        client: YaksClient,
        logger: FilteringBoundLogger,
        out: IO[str] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._client = client
        self._logger = logger
        self._out = out
        self._poll_interval = poll_interval

    def follow(self, namespace: str, name: str, token: CancelToken) -> None:
        """Stream the log of the pod labelled ``yaks.dev/test=<name>``.

        Waits for the pod to appear, then follows its log until the stream
        ends or ``token`` is cancelled. Read errors are logged, never raised.
        """
        while not token.cancelled:
            pod = self._find_pod(namespace, name)
            if pod is not None:
                resp = self._open_stream(namespace, pod)
                if resp is not None:
                    self._copy(resp, token)
                    return
            token.wait(self._poll_interval)

    def _find_pod(self, namespace: str, name: str) -> str | None:
        try:
            pods = self._client.core.list_namespaced_pod(
                namespace=namespace, label_selector=f"{TEST_LABEL}={name}"
            )
        except (ApiException, TransportError) as e:
            self._logger.debug("logs.pod_lookup_failed", test=name, error=str(e))
            return None
        for pod in pods.items or []:
            phase = pod.status.phase if pod.status else None
            if phase in ("Running", "Succeeded", "Failed"):
                return pod.metadata.name
        return None

    def _open_stream(self, namespace: str, pod: str) -> Any:
        try:
            return self._client.core.read_namespaced_pod_log(
                name=pod,
                namespace=namespace,
                follow=True,
                _preload_content=False,
            )
        except (ApiException, TransportError) as e:
            self._logger.debug("logs.stream_failed", pod=pod, error=str(e))
            return None

    def _copy(self, resp: Any, token: CancelToken) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        unregister = token.on_cancel(lambda: self._interrupt(resp))
        try:
            for chunk in resp.stream(LOG_CHUNK_SIZE):
                text = decoder.decode(chunk)
                if text:
                    click.echo(text, file=self._out, nl=False)
                if token.cancelled:
                    break
        except (TransportError, OSError, ValueError) as e:
            if not token.cancelled:
                self._logger.debug("logs.stream_interrupted", error=str(e))
        finally:
            unregister()
            tail = decoder.decode(b"", final=True)
            if tail:
                click.echo(tail, file=self._out, nl=False)
            if token.cancelled:
                resp.close()
            resp.release_conn()

    def _interrupt(self, resp: Any) -> None:
        """Wake a reader blocked on the stream socket."""
        sock = _stream_socket(resp)
        if sock is None:
            resp.close()
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            self._logger.debug("logs.shutdown_failed", error=str(e))


class PhaseWatcher:
    """Waits for Test resources to reach a terminal phase."""

    def __init__(
        self,
        client: YaksClient,
        logger: FilteringBoundLogger,
        out: IO[str] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        route_ceiling: int = DEFAULT_ROUTE_CEILING,
    ) -> None:
        self._client = client
        self._logger = logger
        self._out = out
        self.poll_interval = poll_interval
        self.route_ceiling = route_ceiling

    def await_test(
        self,
        test: Test,
        timeout: float,
        token: CancelToken,
        *,
        logs: bool = True,
        dev: bool = False,
    ) -> WaitResult:
        """Block until ``test`` finishes, times out or the run is cancelled.

        Args:
            test: The submitted Test.
            timeout: Wait timeout in seconds (ignored in dev mode).
            token: Run-level token. A KeyboardInterrupt cancels it.
            logs: Follow the test pod log while waiting.
            dev: Wait for the test route instead of a terminal phase.

        Returns:
            WaitResult with the cause and the last observed phase.
        """
        wait_token = token.child()
        try:
            return self._await(test, timeout, token, wait_token, logs=logs, dev=dev)
        finally:
            wait_token.detach()

    def _await(
        self,
        test: Test,
        timeout: float,
        token: CancelToken,
        wait_token: CancelToken,
        *,
        logs: bool,
        dev: bool,
    ) -> WaitResult:
        observation = _Observation(test=test)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="yaks-wait") as executor:
            if dev:
                watch = executor.submit(self._route_task, test, wait_token, observation)
            else:
                watch = executor.submit(
                    self._phase_task, test, timeout, wait_token, observation
                )
            # A crashed watcher must still release the wait point.
            watch.add_done_callback(lambda _: wait_token.cancel())

            follow = None
            if logs:
                follower = LogFollower(self._client, self._logger, self._out, self.poll_interval)
                follow = executor.submit(follower.follow, test.namespace, test.name, wait_token)

            try:
                wait_token.wait()
            except KeyboardInterrupt:
                self._logger.warning("watcher.interrupted", test=test.name)
                token.cancel(WaitCause.EXTERNALLY_CANCELLED)

        watch.result()
        if follow is not None and follow.exception() is not None:
            self._logger.warning(
                "watcher.log_follow_failed", test=test.name, error=str(follow.exception())
            )

        cause = wait_token.cause or WaitCause.EXTERNALLY_CANCELLED
        click.echo(
            f"Test '{test.name}' finished with status: {observation.phase.value}",
            file=self._out,
        )
        self._logger.info(
            "watcher.finished", test=test.name, phase=observation.phase.value, cause=cause.value
        )
        return WaitResult(
            cause=cause, phase=observation.phase, test=observation.test, host=observation.host
        )

    def wait_for_phase(
        self, test: Test, timeout: float, token: CancelToken
    ) -> tuple[TestPhase, Test]:
        """Poll ``test`` until a terminal phase or ``timeout`` seconds elapsed.

        Cancels ``token`` with TERMINAL_PHASE or TIMED_OUT and returns early if
        the token is cancelled by someone else.

        Returns:
            Tuple of (last non-empty phase, last observed Test).
        """
        observation = _Observation(test=test)
        self._phase_task(test, timeout, token, observation)
        return observation.phase, observation.test or test

    def wait_for_route(self, test: Test, token: CancelToken) -> str | None:
        """Poll the route named after ``test`` until it has an ingress host.

        Cancels ``token`` with ENDPOINT_READY, or TIMED_OUT after the
        iteration ceiling.

        Returns:
            The route host, or None if none was provisioned.
        """
        observation = _Observation(test=test)
        self._route_task(test, token, observation)
        return observation.host

    def _phase_task(
        self, test: Test, timeout: float, token: CancelToken, observation: _Observation
    ) -> None:
        deadline = time.monotonic() + timeout
        while not token.cancelled:
            try:
                obj = self._client.custom.get_namespaced_custom_object(
                    group=GROUP,
                    version=VERSION,
                    namespace=test.namespace,
                    plural=TEST_PLURAL,
                    name=test.name,
                )
                current = Test.model_validate(obj)
            except _READ_ERRORS as e:
                self._logger.debug("watcher.read_failed", test=test.name, error=str(e))
            else:
                observation.test = current
                if current.phase is not TestPhase.NONE:
                    observation.phase = current.phase
                if current.phase.is_terminal:
                    token.cancel(WaitCause.TERMINAL_PHASE)
                    return

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._logger.warning(
                    "watcher.timeout",
                    test=test.name,
                    timeout=timeout,
                    phase=observation.phase.value,
                )
                token.cancel(WaitCause.TIMED_OUT)
                return
            token.wait(min(self.poll_interval, remaining))

    def _route_task(self, test: Test, token: CancelToken, observation: _Observation) -> None:
        for _ in range(self.route_ceiling):
            if token.cancelled:
                return
            try:
                route = self._client.custom.get_namespaced_custom_object(
                    group=ROUTE_GROUP,
                    version=ROUTE_VERSION,
                    namespace=test.namespace,
                    plural=ROUTE_PLURAL,
                    name=test.name,
                )
            except (ApiException, TransportError) as e:
                self._logger.debug("watcher.route_read_failed", test=test.name, error=str(e))
            else:
                ingress = (route.get("status") or {}).get("ingress") or []
                if ingress:
                    observation.host = ingress[0].get("host", "")
                    click.echo(f"Route is provisioned {observation.host}", file=self._out)
                    token.cancel(WaitCause.ENDPOINT_READY)
                    return
            self._logger.debug("watcher.route_waiting", test=test.name)
            token.wait(self.poll_interval)

        self._logger.warning("watcher.route_timeout", test=test.name, ceiling=self.route_ceiling)
        token.cancel(WaitCause.TIMED_OUT)


__all__ = ["LogFollower", "PhaseWatcher", "WaitResult"]
