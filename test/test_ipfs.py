"""
Test the IPFS adapter against a stubbed HTTP session, and its streaming
subscriptions against a local server.
"""

import json
import threading
import time
from typing import Any

import requests
from pytest import mark, raises

from scribe import *

from fakes import StreamServer, wait_for

ENDPOINT = "127.0.0.1:5001"
BASE_URL = "http://127.0.0.1:5001/api/v0"


class StubResponse:
    def __init__(
        self,
        body: Any = None,
        *,
        status_code: int = 200,
        content: bytes | None = None,
        lines: list[bytes] | None = None,
    ):
        self.status_code = status_code
        self.reason = "OK" if status_code == 200 else "Internal Server Error"
        self.content = (
            content if content is not None else json.dumps(body).encode()
        )
        self.lines = lines or []
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode()

    def json(self) -> Any:
        return json.loads(self.content)

    def iter_lines(self):
        for line in self.lines:
            if self.closed:
                raise requests.ConnectionError("connection closed")
            yield line

    def close(self):
        self.closed = True


class StubSession:
    """
    Returns canned responses keyed by RPC command and records requests.
    """

    def __init__(self, responses: dict[str, StubResponse | Exception]):
        self.responses = responses
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, **kwargs) -> StubResponse:
        assert url.startswith(BASE_URL)
        command = url[len(BASE_URL) + 1 :]
        self.requests.append({"command": command, **kwargs})

        response = self.responses[command]
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True

    def last(self, command: str) -> dict[str, Any]:
        return next(r for r in reversed(self.requests) if r["command"] == command)


def create_adapter(**responses: StubResponse | Exception) -> tuple[IpfsAdapter, StubSession]:
    session = StubSession(
        {command.replace("_", "/"): r for command, r in responses.items()}
    )
    return IpfsAdapter(ENDPOINT, session=session), session  # type: ignore


@mark.parametrize(
    ("endpoint", "url"),
    [
        ("127.0.0.1:5001", "http://127.0.0.1:5001"),
        ("http://localhost:5001/", "http://localhost:5001"),
        ("/ip4/127.0.0.1/tcp/5001", "http://127.0.0.1:5001"),
        ("/ip6/::1/tcp/5001", "http://[::1]:5001"),
        ("/dns/ipfs.local/tcp/5001", "http://ipfs.local:5001"),
    ],
)
def test_normalize_endpoint(endpoint: str, url: str):
    assert normalize_endpoint(endpoint) == url


def test_multibase():
    assert encode_multibase(b"proj1") == "ucHJvajE"
    assert decode_multibase("ucHJvajE") == b"proj1"
    assert decode_multibase("mcHJvajE") == b"proj1"
    assert decode_multibase("f70726f6a31") == b"proj1"
    assert decode_multibase("") == b""

    with raises(ValueError):
        decode_multibase("zabc")


def test_reachable():
    adapter, session = create_adapter(version=StubResponse({"Version": "0.29.0"}))
    assert adapter.is_reachable()
    assert session.last("version")["timeout"] == 2.0

    adapter, _ = create_adapter(
        version=requests.ConnectionError("connection refused")
    )
    assert not adapter.is_reachable()

    adapter, _ = create_adapter(version=StubResponse(status_code=500, content=b""))
    assert not adapter.is_reachable()


def test_identity():
    adapter, _ = create_adapter(
        id=StubResponse(
            {
                "ID": "12D3KooWPeerA",
                "Addresses": ["/ip4/127.0.0.1/tcp/4001"],
                "AgentVersion": "kubo/0.29.0",
            }
        )
    )

    identity = adapter.identity()
    assert identity.id == "12D3KooWPeerA"
    assert identity.addresses == ["/ip4/127.0.0.1/tcp/4001"]


def test_add_cat():
    adapter, session = create_adapter(
        add=StubResponse({"Name": "data", "Hash": "bafkreiabc", "Size": "4"}),
        cat=StubResponse(content=b"data"),
    )

    assert adapter.add(b"data", False) == "bafkreiabc"

    request = session.last("add")
    assert request["params"]["pin"] == "false"
    assert request["params"]["cid-version"] == "1"
    assert request["files"]["file"][1] == b"data"

    assert adapter.cat("bafkreiabc") == b"data"
    assert session.last("cat")["params"] == {"arg": "bafkreiabc"}


def test_dag():
    adapter, session = create_adapter(
        dag_put=StubResponse({"Cid": {"/": "bafyreiabc"}}),
        dag_get=StubResponse({"label": "alpha"}),
    )

    cid = adapter.dag_put(b'{"label":"alpha"}', "dag-json", "dag-cbor", True)
    assert cid == "bafyreiabc"

    params = session.last("dag/put")["params"]
    assert params["input-codec"] == "dag-json"
    assert params["store-codec"] == "dag-cbor"
    assert params["pin"] == "true"

    assert adapter.dag_get("bafyreiabc/label") == {"label": "alpha"}
    assert session.last("dag/get")["params"]["arg"] == "bafyreiabc/label"


def test_block_put():
    adapter, _ = create_adapter(
        block_put=StubResponse({"Key": "bafkreikey", "Size": 12})
    )
    assert adapter.block_put(b"scribe:node") == "bafkreikey"


def test_publish():
    adapter, session = create_adapter(pubsub_pub=StubResponse(content=b""))

    adapter.publish_topic("proj1", b"hello")

    request = session.last("pubsub/pub")
    assert request["params"] == {"arg": "ucHJvajE"}
    assert request["files"]["file"][1] == b"hello"


def test_error_status():
    adapter, _ = create_adapter(
        cat=StubResponse(
            {"Message": "block was not found locally", "Code": 0, "Type": "error"},
            status_code=500,
        )
    )

    with raises(AdapterError) as e:
        adapter.cat("bafkreiabc")

    assert "block was not found locally" in str(e.value)
    assert "500" in str(e.value)


def test_request_exception():
    adapter, _ = create_adapter(dag_get=requests.Timeout("read timed out"))

    with raises(AdapterError) as e:
        adapter.dag_get("bafyreiabc")

    assert isinstance(e.value.__cause__, requests.Timeout)


def test_invalid_json():
    adapter, _ = create_adapter(id=StubResponse(content=b"not json"))

    with raises(AdapterError):
        adapter.identity()


def _wire_message(data: bytes, sender: str = "12D3KooWPeerB") -> bytes:
    return json.dumps(
        {
            "from": sender,
            "data": encode_multibase(data),
            "seqno": encode_multibase(b"\x00\x01"),
            "topicIDs": [encode_multibase(b"proj1")],
        }
    ).encode()


def test_subscription():
    response = StubResponse(
        lines=[_wire_message(b"hello"), b"", _wire_message(b"world")]
    )
    adapter, session = create_adapter(pubsub_sub=response)

    subscription = adapter.subscribe_topic("proj1")
    assert subscription.topic == "proj1"

    request = session.last("pubsub/sub")
    assert request["stream"]
    assert request["timeout"] == (10.0, None)

    first = subscription.next()
    assert first.text == "hello"
    assert first.sender == "12D3KooWPeerB"
    assert first.seqno == b"\x00\x01"
    assert first.topic_ids == ["proj1"]

    # keepalive line skipped
    assert subscription.next().text == "world"

    with raises(SubscriptionClosedError):
        subscription.next()


def test_subscription_cancel():
    response = StubResponse(lines=[_wire_message(b"hello")] * 2)
    adapter, _ = create_adapter(pubsub_sub=response)

    subscription = adapter.subscribe_topic("proj1")
    subscription.next()

    subscription.cancel()
    subscription.cancel()
    assert response.closed

    with raises(SubscriptionClosedError):
        subscription.next()


def test_subscription_invalid_message():
    response = StubResponse(lines=[b"{not json", _wire_message(b"ok")])
    adapter, _ = create_adapter(pubsub_sub=response)

    subscription = adapter.subscribe_topic("proj1")

    with raises(AdapterError) as e:
        subscription.next()

    assert not isinstance(e.value, SubscriptionClosedError)

    # subscription remains usable
    assert subscription.next().text == "ok"


def test_close():
    adapter, session = create_adapter()
    adapter.close()
    assert session.closed


def _in_thread(target, timeout: float = 5.0) -> bool:
    """
    Run target in a thread and check whether it returned within timeout.
    """
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    thread.join(timeout)
    return not thread.is_alive()


def test_stream_cancel_blocked_receive(stream_server: StreamServer):
    """
    Cancelling from another thread unblocks a receive waiting on an idle
    stream.
    """
    stream_server.messages.append(_wire_message(b"hello"))

    adapter = IpfsAdapter(stream_server.endpoint)
    subscription = adapter.subscribe_topic("proj1")

    assert subscription.next().text == "hello"

    errors: list[AdapterError] = []

    def receive():
        try:
            subscription.next()
        except AdapterError as e:
            errors.append(e)

    receiver = threading.Thread(target=receive, daemon=True)
    receiver.start()

    # let the receiver block on the idle stream
    time.sleep(0.2)
    assert receiver.is_alive()

    assert _in_thread(subscription.cancel)

    receiver.join(5.0)
    assert not receiver.is_alive()

    assert len(errors) == 1
    assert isinstance(errors[0], SubscriptionClosedError)

    adapter.close()


def test_stream_listener_stop(stream_server: StreamServer):
    stream_server.messages.append(_wire_message(b"hello"))

    with Node(stream_server.endpoint) as node:
        node.subscribe("proj1")
        listener = node.listen()

        assert listener.messages.get(timeout=5.0).text == "hello"

        # listener is now blocked on the idle stream
        assert _in_thread(listener.stop)
        assert listener.join(5.0)

        assert not node.subscribed
        assert listener.errors.empty()


def test_stream_unsubscribe(stream_server: StreamServer):
    node = Node(stream_server.endpoint)
    node.subscribe("proj1")
    listener = node.listen()

    assert wait_for(lambda: listener.running)
    time.sleep(0.2)

    assert _in_thread(node.unsubscribe)
    assert listener.join(5.0)

    assert _in_thread(node.close)
