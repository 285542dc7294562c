"""
Implementation of node functionality.
"""

from __future__ import annotations

import logging
import threading
from logging import Logger
from typing import Any

from .adapter import BaseAdapter, BaseSubscription, PeerInfo
from .cancel import CancelToken
from .exceptions import (
    AdapterError,
    AlreadyListeningError,
    AlreadySubscribedError,
    MissingIdError,
    NoProjectError,
    NotSubscribedError,
    OfflineError,
)
from .listener import DEFAULT_BUFFER_SIZE, Listener, OverflowPolicy

__all__ = ["Node"]
__canonical_syms__ = __all__


NAME_PREFIX = "scribe:"
"""
Prefix of names announced using {obj}`Node.publish_name`.
"""


class Node:
    """
    Interface to a storage daemon: gates all operations on connectivity and
    owns at most one pubsub subscription.

    Mutable state is shared between the caller and a {obj}`Listener`, so
    it's guarded by a single lock. The lock is only held to read or write
    fields, never across a network call.

    Nodes are safe to use from multiple threads.
    """

    _adapter: BaseAdapter
    """
    Content store interface.
    """

    _lock: threading.Lock
    """
    Guards the mutable fields below.
    """

    _allow_network: bool
    """
    Whether the network may be used, independent of reachability.
    """

    _identity: PeerInfo | None
    """
    Identity resolved from the daemon, cached after first success.
    """

    _subscription: BaseSubscription | None
    """
    Active subscription, if any.
    """

    _cancel: CancelToken | None
    """
    Token bound to the active subscription.
    """

    _listener: Listener | None
    """
    Listener draining the active subscription, if any.
    """

    _project: str
    """
    Registered project, which doubles as pubsub topic.
    """

    _logger: Logger
    """
    Logger to use.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        adapter: BaseAdapter | None = None,
        logger: Logger | None = None,
    ):
        """
        Exactly one of `endpoint` or `adapter` is required. The daemon must
        already be reachable.

        :param endpoint: Daemon API endpoint, e.g. `127.0.0.1:5001`
        :param adapter: Content store adapter to use instead of connecting to `endpoint`
        :param logger: Logger to use, or `None` to use default logger

        :raises OfflineError: Daemon isn't reachable
        """
        assert (endpoint is None) != (
            adapter is None
        ), "Exactly one of endpoint or adapter is required"

        self._logger = logger or logging.getLogger("scribe")

        if adapter is None:
            from .ipfs import IpfsAdapter

            assert endpoint is not None
            adapter = IpfsAdapter(endpoint, logger=self._logger)

        self._adapter = adapter
        self._lock = threading.Lock()
        self._allow_network = True
        self._identity = None
        self._subscription = None
        self._cancel = None
        self._listener = None
        self._project = ""

        if not self.is_online:
            self._logger.error(f"Failed to connect to daemon: {adapter}")
            raise OfflineError("init")

        self._logger.debug(f"Connected to daemon: {adapter}")

    def __repr__(self) -> str:
        return f"Node({self._adapter!r}, project='{self.project}')"

    def __enter__(self):
        self._logger.debug(f"Entering context: {self}")
        return self

    def __exit__(self, exc_type, exc_val, traceback):
        self._logger.debug(f"Exiting context: {self}")
        self.close()

    @property
    def adapter(self) -> BaseAdapter:
        """
        Content store adapter. Exposed for manual low-level operations.
        """
        return self._adapter

    @property
    def is_online(self) -> bool:
        """
        Whether the network is allowed and the daemon is reachable.
        Reachability is probed on every access.
        """
        with self._lock:
            allow_network = self._allow_network

        return allow_network and self._adapter.is_reachable()

    @property
    def project(self) -> str:
        """
        Registered project; empty if none.
        """
        with self._lock:
            return self._project

    @property
    def subscribed(self) -> bool:
        with self._lock:
            return self._subscription is not None

    def connect(self):
        """
        Allow the node to use the network.
        """
        with self._lock:
            self._allow_network = True

    def disconnect(self):
        """
        Prevent the node from using the network. The daemon is unaffected.
        """
        with self._lock:
            self._allow_network = False

    def identity(self) -> PeerInfo:
        """
        Get the daemon's identity, fetching it on first use.

        Concurrent first calls may each fetch it; the last one to complete
        is cached.
        """
        with self._lock:
            if self._identity is not None:
                return self._identity

        # don't hold the lock during network operations
        identity = self._adapter.identity()

        with self._lock:
            self._identity = identity

        return identity

    def set_project(self, project: str):
        """
        Register the node with a project.

        :raises AlreadySubscribedError: Node is subscribed to a project
        """
        with self._lock:
            if self._subscription is not None:
                raise AlreadySubscribedError(self._project)
            self._project = project

    def get_project(self) -> str:
        return self.project

    def publish(self, message: str | bytes):
        """
        Publish a message on the registered project's topic.

        :raises OfflineError: Node is offline
        :raises NoProjectError: No project is registered
        """
        self._ensure_online("publish")

        project = self.project
        if not project:
            raise NoProjectError()

        data = message.encode() if isinstance(message, str) else message
        self._adapter.publish_topic(project, data)

    def publish_name(self, name: str) -> str:
        """
        Announce a name to the network, making this node discoverable.

        :returns: Block id of the announcement
        """
        self._ensure_online("publish_name")

        key = self._adapter.block_put(f"{NAME_PREFIX}{name}".encode())
        self._logger.debug(f"Published name: '{name}' (key {key})")
        return key

    def subscribe(self, topic: str, cancel: CancelToken | None = None) -> CancelToken:
        """
        Subscribe to a topic and register it as this node's project.

        Cancelling the returned token, from any thread, tears down the
        subscription and stops any listener.

        :param topic: Topic (project name) to subscribe to
        :param cancel: Token to bind to the subscription, or `None` to create one

        :returns: Token bound to the subscription

        :raises NoProjectError: `topic` is empty
        :raises OfflineError: Node is offline
        :raises AlreadySubscribedError: A subscription is already active
        """
        if not topic:
            raise NoProjectError()

        self._ensure_online("subscribe")

        with self._lock:
            if self._subscription is not None:
                raise AlreadySubscribedError(self._project)

        subscription = self._adapter.subscribe_topic(topic)
        token = cancel or CancelToken()

        with self._lock:
            if self._subscription is not None:
                # lost a race with another subscribe
                current = self._project
            else:
                current = None
                self._subscription = subscription
                self._cancel = token
                self._listener = None
                self._project = topic

        if current is not None:
            subscription.cancel()
            raise AlreadySubscribedError(current)

        token.on_cancel(lambda: self._release(subscription))

        self._logger.debug(f"Subscribed to topic '{topic}'")
        return token

    def unsubscribe(self):
        """
        Cancel the active subscription and deregister the project. No-op if
        not subscribed.

        :raises OfflineError: Node is offline
        """
        self._ensure_online("unsubscribe")

        with self._lock:
            subscription, token = self._subscription, self._cancel
            if subscription is None:
                return

            self._subscription = None
            self._cancel = None
            self._listener = None
            self._project = ""

        assert token is not None

        try:
            subscription.cancel()
        finally:
            # stop any listener even if cancel failed
            token.cancel()

        self._logger.debug(f"Unsubscribed from topic '{subscription.topic}'")

    def listen(
        self,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        overflow: OverflowPolicy = OverflowPolicy.BLOCK,
        put_timeout: float | None = None,
        start: bool = True,
    ) -> Listener:
        """
        Create the listener draining the active subscription. It's stopped by
        the subscription's token, by {obj}`Listener.stop` or by
        {obj}`unsubscribe`.

        A subscription has at most one listener, so its messages aren't split
        between competing readers.

        :param buffer_size: Capacity of message and error queues
        :param overflow: Policy applied when a queue is full
        :param put_timeout: Seconds to wait for space before dropping, with {obj}`OverflowPolicy.BLOCK`
        :param start: Whether to start the listener's thread

        :raises NotSubscribedError: No subscription is active
        :raises AlreadyListeningError: Subscription already has a listener
        """
        with self._lock:
            subscription, token = self._subscription, self._cancel

            if subscription is None:
                raise NotSubscribedError()

            if self._listener is not None:
                raise AlreadyListeningError(self._project)

            assert token is not None

            listener = Listener(
                subscription,
                token,
                buffer_size=buffer_size,
                overflow=overflow,
                put_timeout=put_timeout,
                logger=self._logger,
            )
            self._listener = listener

        if start:
            listener.start()

        return listener

    def add(self, content: bytes, pin: bool) -> str:
        """
        Add content, pinning it if requested.

        :returns: Content id
        """
        self._ensure_online("add")
        return self._adapter.add(content, pin)

    def cat(self, cid: str) -> bytes:
        """
        Get the data stored for a content id.
        """
        if not cid:
            raise MissingIdError("cat")
        self._ensure_online("cat")
        return self._adapter.cat(cid)

    def dag_put(
        self,
        data: bytes,
        encoding: str = "dag-json",
        format: str = "dag-cbor",
        pin: bool = True,
    ) -> str:
        """
        Store a structured object.

        :param data: Encoded object
        :param encoding: Codec of `data`
        :param format: Codec to store the object as
        :param pin: Whether to pin the object

        :returns: Content id
        """
        self._ensure_online("dag_put")
        return self._adapter.dag_put(data, encoding, format, pin)

    def dag_get(self, cid: str, field: str = "") -> Any:
        """
        Get a structured object, or one of its fields if `field` is provided.
        """
        if not cid:
            raise MissingIdError("dag_get")
        self._ensure_online("dag_get")

        ref = f"{cid}/{field}" if field else cid
        return self._adapter.dag_get(ref)

    def close(self):
        """
        Cancel any subscription and release the adapter.
        """
        with self._lock:
            token = self._cancel

        if token is not None:
            token.cancel()

        self._adapter.close()

    def _ensure_online(self, operation: str):
        if not self.is_online:
            raise OfflineError(operation)

    def _release(self, subscription: BaseSubscription):
        """
        Tear down subscription upon its token being cancelled.
        """
        with self._lock:
            if self._subscription is subscription:
                self._subscription = None
                self._cancel = None
                self._listener = None
                self._project = ""

        try:
            subscription.cancel()
        except AdapterError as e:
            self._logger.warning(
                f"Failed to cancel subscription to '{subscription.topic}': {e}"
            )
