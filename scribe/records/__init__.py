"""
This module implements the records synchronized through the content store:
projects, runs and the project database.
"""

from pyrollup import rollup

from . import database, model, project, run
from .database import *  # noqa
from .model import *  # noqa
from .project import *  # noqa
from .run import *  # noqa

__all__ = rollup(
    database,
    project,
    run,
    model,
)

__canonical_children__ = [
    "database",
    "project",
    "run",
    "model",
]
