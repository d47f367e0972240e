"""Cancellation token shared by concurrent wait tasks.

A token wraps a ``threading.Event``. The first ``cancel()`` call records its
cause and runs the registered callbacks (used e.g. to interrupt a streaming HTTP
response so a blocked reader returns promptly). Child tokens are cancelled
together with their parent until they are detached.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum


class WaitCause(str, Enum):
    """Why a wait ended."""

    TERMINAL_PHASE = "TerminalPhase"
    TIMED_OUT = "TimedOut"
    EXTERNALLY_CANCELLED = "ExternallyCancelled"
    ENDPOINT_READY = "EndpointReady"


class CancelToken:
    """Thread-safe, one-shot cancellation signal.

    Example:
        >>> token = CancelToken()
        >>> token.on_cancel(lambda: print("closing"))
        >>> token.cancel(WaitCause.TIMED_OUT)
        closing
        >>> token.cause
        <WaitCause.TIMED_OUT: 'TimedOut'>
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._cause: WaitCause | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._detach: Callable[[], None] = lambda: None

    @property
    def cancelled(self) -> bool:
        """Return True once the token has been cancelled."""
        return self._event.is_set()

    @property
    def cause(self) -> WaitCause | None:
        """The cause passed to the first ``cancel()`` call."""
        return self._cause

    def cancel(self, cause: WaitCause = WaitCause.EXTERNALLY_CANCELLED) -> bool:
        """Cancel the token.

        Returns:
            True if this call cancelled the token, False if it already was.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._cause = cause
            callbacks = list(self._callbacks)
            self._callbacks.clear()
            self._event.set()

        for callback in callbacks:
            callback()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` seconds elapsed.

        Returns:
            True if the token is cancelled.
        """
        return self._event.wait(timeout)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation.

        The callback runs immediately if the token is already cancelled.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._discard(callback)
        callback()
        return lambda: None

    def child(self) -> CancelToken:
        """Create a token that is cancelled whenever this one is.

        The child stays registered on this token until ``detach()`` is called.
        """
        token = CancelToken()
        token._detach = self.on_cancel(
            lambda: token.cancel(self._cause or WaitCause.EXTERNALLY_CANCELLED)
        )
        return token

    def detach(self) -> None:
        """Stop following the parent token. No-op for tokens without parent."""
        detach, self._detach = self._detach, lambda: None
        detach()

    def _discard(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


__all__ = ["CancelToken", "WaitCause"]
