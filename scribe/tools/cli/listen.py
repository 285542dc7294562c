"""
CLI command to listen for project updates.
"""

from __future__ import annotations

import queue
import signal
from enum import Enum

from typer import Context, Exit, Option

from ...core import DEFAULT_BUFFER_SIZE, Listener, OverflowPolicy, ScribeError
from ._utils import get_root_context, logger

POLL_INTERVAL = 0.5


class Overflow(str, Enum):
    block = "block"
    drop_oldest = "drop-oldest"
    drop_newest = "drop-newest"

    @property
    def policy(self) -> OverflowPolicy:
        return OverflowPolicy[self.name.upper()]


def listen(
    ctx: Context,
    buffer_size: int = Option(
        DEFAULT_BUFFER_SIZE,
        min=1,
        help="Number of messages to buffer",
    ),
    overflow: Overflow = Option(
        Overflow.block,
        help="What to do when the buffer is full",
    ),
    count: int = Option(
        0,
        min=0,
        help="Exit after receiving this many messages; 0 to listen until interrupted",
    ),
):
    """
    Listen for project updates that are being pushed to the network

    This uses the pubsub protocol, which is an experimental IPFS feature.
    """
    root_context = get_root_context(ctx)
    project = root_context.config.project

    node = root_context.create_node()

    with node:
        try:
            logger.info(f"Node identity: {node.identity().id}")

            token = node.subscribe(project)
            listener = node.listen(
                buffer_size=buffer_size, overflow=overflow.policy
            )
        except ScribeError as e:
            logger.error(f"Failed to subscribe: {e}")
            raise Exit(code=1)

        logger.info(f"Listening for: {project}")

        # graceful close down upon SIGTERM; SIGINT raises KeyboardInterrupt
        previous = signal.signal(signal.SIGTERM, lambda *_: token.cancel())

        try:
            _process(listener, count)
        except KeyboardInterrupt:
            logger.info("Interrupt received, shutting down")
        finally:
            signal.signal(signal.SIGTERM, previous)

            try:
                node.unsubscribe()
            except ScribeError as e:
                logger.warning(f"Failed to unsubscribe: {e}")
                token.cancel()

            listener.join(timeout=POLL_INTERVAL * 4)


def _process(listener: Listener, count: int):
    """
    Log messages and errors until stopped, or `count` messages received.
    """
    received = 0

    while not listener.cancel_token.cancelled:
        try:
            while True:
                logger.warning(listener.errors.get_nowait())
        except queue.Empty:
            pass

        try:
            message = listener.messages.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            continue

        logger.info(f"Message received from: {message.sender}")
        logger.info(f"Content: {message.text}")

        received += 1
        if count and received >= count:
            return
