"""
Interface to the content store consumed by {obj}`Node`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "BaseAdapter",
    "BaseSubscription",
    "PeerInfo",
    "Message",
]


class PeerInfo(BaseModel):
    """
    Identity of a storage node.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    """Peer id"""

    addresses: list[str] = Field(default_factory=list)
    """Multiaddrs the peer listens on"""


class Message(BaseModel):
    """
    Message received from a pubsub topic.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender: str = Field(alias="from")
    """Peer id of publisher"""

    data: bytes
    """Payload as published"""

    seqno: bytes = b""
    """Sequence number assigned by publisher"""

    topic_ids: list[str] = Field(default_factory=list, alias="topicIDs")
    """Topics this message was published to"""

    @property
    def text(self) -> str:
        """
        Payload decoded as UTF-8.
        """
        return self.data.decode("utf-8", errors="replace")


class BaseSubscription(ABC):
    """
    Live handle to a topic's message stream.
    """

    topic: str

    def __init__(self, topic: str):
        self.topic = topic

    @abstractmethod
    def next(self) -> Message:
        """
        Block until the next message arrives.

        :raises SubscriptionClosedError: Stream has ended or was cancelled
        :raises AdapterError: Failed to receive or decode message
        """
        ...

    @abstractmethod
    def cancel(self):
        """
        Close the stream, unblocking any pending {obj}`next`. Idempotent.
        """
        ...


class BaseAdapter(ABC):
    """
    Content-addressed storage, structured object (DAG) storage and
    publish/subscribe, as provided by a storage daemon.

    All methods are blocking network operations and raise
    {obj}`AdapterError` upon failure.
    """

    @abstractmethod
    def is_reachable(self) -> bool:
        """
        Liveness probe; never raises.
        """
        ...

    @abstractmethod
    def identity(self) -> PeerInfo:
        ...

    @abstractmethod
    def add(self, content: bytes, pin: bool) -> str:
        """
        Store raw bytes and return the content id.
        """
        ...

    @abstractmethod
    def cat(self, cid: str) -> bytes:
        ...

    @abstractmethod
    def dag_put(self, data: bytes, encoding: str, format: str, pin: bool) -> str:
        """
        Store a structured object encoded as `encoding`, persisted using
        codec `format`, and return its content id.
        """
        ...

    @abstractmethod
    def dag_get(self, ref: str) -> Any:
        """
        Get a structured object, or a sub-path of one as `<cid>/<path>`,
        decoded into plain Python values.
        """
        ...

    @abstractmethod
    def block_put(self, data: bytes) -> str:
        ...

    @abstractmethod
    def publish_topic(self, topic: str, message: bytes):
        ...

    @abstractmethod
    def subscribe_topic(self, topic: str) -> BaseSubscription:
        ...

    def close(self):
        """
        Release any held resources.
        """
