"""
Adapter to an IPFS daemon through its HTTP RPC API.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from logging import Logger
from typing import Any, Iterator

import requests

from .adapter import BaseAdapter, BaseSubscription, Message, PeerInfo
from .exceptions import AdapterError, SubscriptionClosedError
from .utils import MULTIHASH, decode_multibase, encode_multibase, normalize_endpoint

__all__ = ["IpfsAdapter", "IpfsSubscription"]


REQUEST_TIMEOUT = 30.0
"""
Timeout for request/response commands.
"""

PROBE_TIMEOUT = 2.0
"""
Timeout for liveness probe.
"""

CONNECT_TIMEOUT = 10.0
"""
Timeout to establish the streaming connection of a subscription; reads
on it are unbounded until the subscription is cancelled.
"""

_STREAM_ERRORS = (requests.RequestException, OSError, ValueError, AttributeError)


class IpfsAdapter(BaseAdapter):
    """
    Content store backed by an IPFS (Kubo) daemon.
    """

    _base_url: str
    _session: requests.Session
    _timeout: float
    _logger: Logger

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
        logger: Logger | None = None,
    ):
        """
        :param endpoint: Daemon API as `host:port`, URL or multiaddr
        :param timeout: Timeout for request/response commands
        :param session: HTTP session to use, or `None` to create one
        :param logger: Logger to use, or `None` to use default logger
        """
        self._base_url = f"{normalize_endpoint(endpoint)}/api/v0"
        self._session = session or requests.Session()
        self._timeout = timeout
        self._logger = logger or logging.getLogger("scribe")

    def __repr__(self) -> str:
        return f"IpfsAdapter({self._base_url})"

    def is_reachable(self) -> bool:
        try:
            self._post("version", timeout=PROBE_TIMEOUT)
        except AdapterError as e:
            self._logger.debug(f"Daemon not reachable at {self._base_url}: {e}")
            return False
        return True

    def identity(self) -> PeerInfo:
        body = self._json(self._post("id"), "id")
        return PeerInfo(id=body["ID"], addresses=body.get("Addresses") or [])

    def add(self, content: bytes, pin: bool) -> str:
        response = self._post(
            "add",
            params={
                "pin": _bool_arg(pin),
                "hash": MULTIHASH,
                "cid-version": "1",
            },
            files={"file": ("data", content)},
        )
        return self._json(response, "add")["Hash"]

    def cat(self, cid: str) -> bytes:
        return self._post("cat", params={"arg": cid}).content

    def dag_put(self, data: bytes, encoding: str, format: str, pin: bool) -> str:
        response = self._post(
            "dag/put",
            params={
                "input-codec": encoding,
                "store-codec": format,
                "pin": _bool_arg(pin),
                "hash": MULTIHASH,
            },
            files={"file": ("data", data)},
        )
        return self._json(response, "dag/put")["Cid"]["/"]

    def dag_get(self, ref: str) -> Any:
        response = self._post(
            "dag/get", params={"arg": ref, "output-codec": "dag-json"}
        )
        return self._json(response, "dag/get")

    def block_put(self, data: bytes) -> str:
        response = self._post(
            "block/put",
            params={"mhtype": MULTIHASH},
            files={"file": ("data", data)},
        )
        return self._json(response, "block/put")["Key"]

    def publish_topic(self, topic: str, message: bytes):
        self._post(
            "pubsub/pub",
            params={"arg": encode_multibase(topic.encode())},
            files={"file": ("data", message)},
        )

    def subscribe_topic(self, topic: str) -> IpfsSubscription:
        response = self._post(
            "pubsub/sub",
            params={"arg": encode_multibase(topic.encode())},
            stream=True,
            timeout=(CONNECT_TIMEOUT, None),
        )
        return IpfsSubscription(topic, response)

    def close(self):
        self._session.close()

    def _post(
        self,
        command: str,
        *,
        params: dict[str, str] | None = None,
        files: dict | None = None,
        stream: bool = False,
        timeout: float | tuple[float, float | None] | None = None,
    ) -> requests.Response:
        """
        Invoke RPC command and ensure it succeeded.
        """
        url = f"{self._base_url}/{command}"

        try:
            response = self._session.post(
                url,
                params=params,
                files=files,
                stream=stream,
                timeout=self._timeout if timeout is None else timeout,
            )
        except requests.RequestException as e:
            raise AdapterError(f"request '{command}' failed: {e}") from e

        if response.status_code != 200:
            reason = _error_message(response)
            response.close()
            raise AdapterError(
                f"request '{command}' returned status {response.status_code}: {reason}"
            )

        return response

    def _json(self, response: requests.Response, command: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise AdapterError(
                f"request '{command}' returned invalid JSON: {e}"
            ) from e


class IpfsSubscription(BaseSubscription):
    """
    Subscription backed by a streaming `pubsub/sub` response, which yields
    one JSON-encoded message per line.

    The response is only closed by the thread reading it: closing it while
    another thread is blocked in {obj}`next` would wait on that reader.
    Cancelling instead shuts down the socket, which wakes the reader.
    """

    _response: requests.Response
    _lines: Iterator[bytes]
    _lock: threading.Lock
    _cancelled: bool
    _reading: bool

    def __init__(self, topic: str, response: requests.Response):
        super().__init__(topic)
        self._response = response
        self._lines = response.iter_lines()
        self._lock = threading.Lock()
        self._cancelled = False
        self._reading = False

    def next(self) -> Message:
        with self._lock:
            if self._cancelled:
                raise SubscriptionClosedError(
                    f"subscription to '{self.topic}' cancelled"
                )
            self._reading = True

        try:
            return self._read()
        finally:
            with self._lock:
                self._reading = False
                cancelled = self._cancelled

            # cancelled while reading: closing was left to this thread
            if cancelled:
                self._response.close()

    def cancel(self):
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            reading = self._reading

        if reading:
            _shutdown_stream(self._response)
        else:
            self._response.close()

    def _read(self) -> Message:
        while True:
            try:
                line = next(self._lines)
            except StopIteration:
                if self._is_cancelled():
                    raise SubscriptionClosedError(
                        f"subscription to '{self.topic}' cancelled"
                    ) from None
                raise SubscriptionClosedError(
                    f"subscription stream for '{self.topic}' ended"
                ) from None
            except _STREAM_ERRORS as e:
                if self._is_cancelled():
                    raise SubscriptionClosedError(
                        f"subscription to '{self.topic}' cancelled"
                    ) from e
                raise AdapterError(
                    f"failed to read subscription stream for '{self.topic}': {e}"
                ) from e

            # keepalive
            if line:
                return _decode_message(line)

    def _is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled


def _stream_socket(response: requests.Response) -> socket.socket | None:
    """
    Get the socket a streaming response is read from, if still open.
    """
    raw = response.raw

    # urllib3 response -> http.client response -> buffered reader -> SocketIO
    fp = getattr(getattr(raw, "_fp", None), "fp", None)
    sock = getattr(getattr(fp, "raw", None), "_sock", None)

    if sock is None:
        sock = getattr(getattr(raw, "_connection", None), "sock", None)

    return sock if isinstance(sock, socket.socket) else None


def _shutdown_stream(response: requests.Response):
    """
    Wake a thread blocked reading `response` by shutting down its socket.
    """
    sock = _stream_socket(response)

    if sock is None:
        logging.getLogger("scribe").debug(
            "Subscription stream has no open socket; reader closes it on its next line"
        )
        return

    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        # already disconnected: the reader has been woken
        logging.getLogger("scribe").debug(f"Subscription socket shutdown: {e}")


def _decode_message(line: bytes) -> Message:
    try:
        wire = json.loads(line)
        return Message(
            sender=wire.get("from", ""),
            data=decode_multibase(wire.get("data", "")),
            seqno=decode_multibase(wire.get("seqno", "")),
            topic_ids=[
                decode_multibase(t).decode() for t in wire.get("topicIDs", [])
            ],
        )
    except (ValueError, TypeError, AttributeError) as e:
        raise AdapterError(f"failed to decode pubsub message: {e}") from e


def _error_message(response: requests.Response) -> str:
    """
    Get error message from response, which the daemon normally sends as
    JSON with a `Message` field.
    """
    try:
        return str(response.json()["Message"])
    except (ValueError, KeyError, TypeError):
        return response.text.strip() or str(response.reason)


def _bool_arg(value: bool) -> str:
    return str(value).lower()
