"""
Background delivery of messages received on a subscription.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum, auto
from logging import Logger
from typing import Iterator, TypeVar

from .adapter import BaseSubscription, Message
from .cancel import CancelToken
from .exceptions import AdapterError

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "Listener",
    "OverflowPolicy",
]

DEFAULT_BUFFER_SIZE = 64
"""
Default capacity of each of the message and error queues.
"""

_POLL_INTERVAL = 0.1

_T = TypeVar("_T")


class OverflowPolicy(Enum):
    """
    What the delivery loop does when a queue is full.
    """

    BLOCK = auto()
    """
    Wait for the consumer to make space. A slow consumer throttles the
    subscription; with a `put_timeout`, the item is dropped once the timeout
    elapses.
    """

    DROP_OLDEST = auto()
    """Discard the oldest queued item to make space"""

    DROP_NEWEST = auto()
    """Discard the item being delivered"""


class Listener:
    """
    Drains a subscription from a background thread, forwarding messages on
    {obj}`messages` and receive errors on {obj}`errors`.

    The loop only exits once its {obj}`CancelToken` is cancelled, which
    also tears down the subscription and so unblocks a pending receive.
    Errors are forwarded rather than ending the loop; the owner decides
    whether to stop.

    Obtain one using {obj}`Node.listen`.
    """

    messages: queue.Queue[Message]
    """Received messages, in order of arrival at this subscription"""

    errors: queue.Queue[AdapterError]
    """Receive errors"""

    dropped: int
    """Number of items discarded due to overflow"""

    _subscription: BaseSubscription
    _cancel: CancelToken
    _overflow: OverflowPolicy
    _put_timeout: float | None
    _error_backoff: float
    _thread: threading.Thread | None
    _logger: Logger

    def __init__(
        self,
        subscription: BaseSubscription,
        cancel: CancelToken,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        overflow: OverflowPolicy = OverflowPolicy.BLOCK,
        put_timeout: float | None = None,
        error_backoff: float = 0.1,
        logger: Logger | None = None,
    ):
        """
        :param subscription: Subscription to drain
        :param cancel: Token which stops this listener
        :param buffer_size: Capacity of each queue
        :param overflow: Policy applied when a queue is full
        :param put_timeout: With {obj}`OverflowPolicy.BLOCK`, seconds to wait for space before dropping, or `None` to wait indefinitely
        :param error_backoff: Seconds to wait after a receive error
        :param logger: Logger to use, or `None` to use default logger
        """
        assert buffer_size > 0, "buffer_size must be positive"

        self.messages = queue.Queue(maxsize=buffer_size)
        self.errors = queue.Queue(maxsize=buffer_size)
        self.dropped = 0

        self._subscription = subscription
        self._cancel = cancel
        self._overflow = overflow
        self._put_timeout = put_timeout
        self._error_backoff = error_backoff
        self._thread = None
        self._logger = logger or logging.getLogger("scribe")

    def __enter__(self):
        if self._thread is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc_val, traceback):
        self.stop()
        self.join()

    def __iter__(self) -> Iterator[Message]:
        """
        Yield messages until stopped. Errors are left on {obj}`errors`.
        """
        while not self._cancel.cancelled or not self.messages.empty():
            try:
                yield self.messages.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue

    @property
    def topic(self) -> str:
        return self._subscription.topic

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel

    def start(self):
        """
        Start the delivery thread.
        """
        assert self._thread is None, f"{self} already started"

        self._thread = threading.Thread(
            target=self._run,
            name=f"scribe-listener-{self.topic}",
            daemon=True,
        )
        self._thread.start()

    def stop(self):
        """
        Signal the loop to exit; also tears down the subscription.
        """
        self._cancel.cancel()

    def join(self, timeout: float | None = None) -> bool:
        """
        Wait for the delivery thread to exit.

        :returns: Whether the thread has exited
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self):
        self._logger.debug(f"Listening on topic '{self.topic}'")

        while not self._cancel.cancelled:
            try:
                message = self._subscription.next()
            except AdapterError as e:
                if self._cancel.cancelled:
                    break

                error = AdapterError(f"failed to wait for pubsub message: {e}")
                error.__cause__ = e
                self._deliver(self.errors, error)

                self._cancel.wait(self._error_backoff)
                continue

            self._deliver(self.messages, message)

        self._logger.debug(f"Stopped listening on topic '{self.topic}'")

    def _deliver(self, target: queue.Queue[_T], item: _T):
        if self._overflow is OverflowPolicy.BLOCK:
            self._deliver_block(target, item)
        elif self._overflow is OverflowPolicy.DROP_NEWEST:
            try:
                target.put_nowait(item)
            except queue.Full:
                self._drop(item)
        else:
            while True:
                try:
                    target.put_nowait(item)
                    return
                except queue.Full:
                    try:
                        self._drop(target.get_nowait())
                    except queue.Empty:
                        pass

    def _deliver_block(self, target: queue.Queue[_T], item: _T):
        waited = 0.0

        while True:
            try:
                target.put(item, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                # re-check cancellation so a stalled consumer can't wedge stop()
                if self._cancel.cancelled:
                    self._drop(item, reason="stopped with queue full")
                    return

                waited += _POLL_INTERVAL
                if self._put_timeout is not None and waited >= self._put_timeout:
                    self._drop(item)
                    return

    def _drop(self, item: object, reason: str = "queue full"):
        self.dropped += 1
        self._logger.warning(
            f"Listener {reason} on topic '{self.topic}', dropped: {item!r}"
        )
