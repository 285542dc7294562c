"""
Scribe: project records synchronized through IPFS, with live updates over
pubsub.
"""

from pyrollup import rollup

from . import core, records
from .core import *  # noqa
from .records import *  # noqa

__all__ = rollup(core, records)

__canonical_children__ = [
    "core",
    "records",
]
