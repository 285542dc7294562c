"""
This module implements the node: connectivity, pubsub subscriptions and
access to the content store.
"""

from pyrollup import rollup

from . import adapter, cancel, exceptions, ipfs, listener, node, utils
from .adapter import *  # noqa
from .cancel import *  # noqa
from .exceptions import *  # noqa
from .ipfs import *  # noqa
from .listener import *  # noqa
from .node import *  # noqa
from .utils import *  # noqa

__all__ = rollup(
    node,
    listener,
    cancel,
    adapter,
    ipfs,
    exceptions,
    utils,
)

__canonical_children__ = [
    "node",
    "listener",
    "cancel",
    "adapter",
    "ipfs",
    "exceptions",
    "utils",
]
