"""
Cancellation shared between a subscription and its listener.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

__all__ = ["CancelToken"]


class CancelToken:
    """
    One-shot cancellation signal. Callbacks registered with {obj}`on_cancel`
    are invoked exactly once, from the thread which calls {obj}`cancel`.

    A single token is bound to a subscription when it's created; cancelling
    it tears down the subscription and stops any {obj}`Listener` draining it.
    """

    _event: threading.Event
    _lock: threading.Lock
    _callbacks: list[Callable[[], None]]

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        """
        Set the token and run callbacks. No-op if already cancelled.
        """
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logging.getLogger("scribe").exception(
                    f"Cancel callback {callback} failed"
                )

    def on_cancel(self, callback: Callable[[], None]):
        """
        Register callback; it's invoked immediately if the token is already
        cancelled.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return

        callback()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until cancelled or timeout elapses.

        :returns: Whether the token is cancelled
        """
        return self._event.wait(timeout)
