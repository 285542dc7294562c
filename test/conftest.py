import logging
import os
import sys
from pathlib import Path
from typing import Generator

import dotenv
from pytest import Config, FixtureRequest, fixture, skip

from scribe import Node, ProjectDatabase

# enable import of modules in test folder
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeAdapter, FakeNetwork, StreamServer  # noqa: E402

logging.basicConfig(level=logging.WARNING)

dotenv.load_dotenv()

IPFS_API = os.environ.get("SCRIBE_IPFS_API")
"""
API endpoint of a live daemon, if tests against one should be run.
"""

MARKERS = [
    "ipfs",
    "offline",
]


def pytest_configure(config: Config) -> None:
    for marker in MARKERS:
        config.addinivalue_line("markers", marker)


@fixture(autouse=True)
def newline(request):
    """
    Print a newline and underline test name.
    """
    print("\n" + "-" * len(request.node.nodeid))


@fixture(autouse=True)
def live_daemon(request: FixtureRequest):
    """
    Skip tests marked with `@mark.ipfs` unless a live daemon is configured.
    """
    if request.node.get_closest_marker("ipfs") and not IPFS_API:
        skip("SCRIBE_IPFS_API not set")


@fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@fixture
def adapter(network: FakeNetwork) -> FakeAdapter:
    return FakeAdapter(network)


@fixture
def adapter2(network: FakeNetwork) -> FakeAdapter:
    """
    Adapter of a second peer on the same network.
    """
    return FakeAdapter(network, peer_id="12D3KooWPeerB")


@fixture
def node(request: FixtureRequest, adapter: FakeAdapter) -> Generator[Node, None, None]:
    """
    Create a new Node using the fake adapter.

    Use `@mark.offline` to get a node which has been disconnected.
    """
    node = Node(adapter=adapter)

    if request.node.get_closest_marker("offline"):
        node.disconnect()

    yield node

    node.close()


@fixture
def node2(adapter2: FakeAdapter) -> Generator[Node, None, None]:
    node = Node(adapter=adapter2)
    yield node
    node.close()


@fixture
def live_node() -> Generator[Node, None, None]:
    assert IPFS_API
    with Node(IPFS_API) as node:
        yield node


@fixture
def db() -> ProjectDatabase:
    return ProjectDatabase()


@fixture
def scribe_caplog(caplog):
    """
    Capture records from the "scribe" logger, which may not propagate to
    the root logger once the CLI has configured it.
    """
    logger = logging.getLogger("scribe")
    logger.addHandler(caplog.handler)
    yield caplog
    logger.removeHandler(caplog.handler)


@fixture
def stream_server(monkeypatch) -> Generator[StreamServer, None, None]:
    """
    Local server streaming pubsub messages over a real socket.
    """
    # don't route requests to the local server through a proxy
    monkeypatch.setenv("NO_PROXY", "127.0.0.1")
    monkeypatch.setenv("no_proxy", "127.0.0.1")

    server = StreamServer()
    server.start()
    yield server
    server.stop()
