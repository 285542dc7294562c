"""
In-memory project database, synchronized with the content store as a single
structured object.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from pydantic import Field, PrivateAttr, ValidationError

from ..core.exceptions import (
    AdapterError,
    DuplicateLabelError,
    MissingIdError,
    NonEmptyTargetError,
    NotFoundError,
)
from .model import DAG_ENCODING, DAG_FORMAT, BaseRecord
from .project import Project

if TYPE_CHECKING:
    from ..core.node import Node

__all__ = ["ProjectDatabase"]


class ProjectDatabase(BaseRecord):
    """
    Collection of projects keyed by their unique label.

    Pushing yields a content id derived from the database's canonical
    encoding: pushing an unchanged database again yields the same id.
    Pulling is only supported into an empty database; there is no merging.

    Mutating operations are serialized by an internal lock, so a single
    writer operates at a time.
    """

    projects: dict[str, Project] = Field(default_factory=dict)
    """Mapping of label to project"""

    pin: bool = True
    """Whether pushed content should be pinned"""

    _lock: Any = PrivateAttr(default_factory=threading.RLock)

    def get_num_projects(self) -> int:
        return len(self.projects)

    def add_project(self, project: Project):
        """
        Add a project. Existing projects are never overwritten.

        :raises DuplicateLabelError: Label is already in the database
        """
        with self._lock:
            if project.label in self.projects:
                raise DuplicateLabelError(project.label)
            self.projects[project.label] = project

    def get_project(self, label: str) -> Project:
        """
        :raises NotFoundError: No project with this label
        """
        project = self.projects.get(label)
        if project is None:
            raise NotFoundError(label)
        return project

    def push(self, node: Node) -> str:
        """
        Store the database, pinning it according to {obj}`pin`.

        :returns: Content id
        """
        with self._lock:
            data = self.encode(exclude={"pin"})
            pin = self.pin

        cid = node.dag_put(data, DAG_ENCODING, DAG_FORMAT, pin)

        logging.getLogger("scribe").debug(
            f"Pushed project database with {self.get_num_projects()} projects: {cid}"
        )
        return cid

    def pull(self, node: Node, cid: str):
        """
        Load the database stored at `cid` into this empty database. This
        database is left unmodified upon failure.

        :raises NonEmptyTargetError: Database already has projects
        :raises MissingIdError: `cid` is empty
        """
        with self._lock:
            if self.projects:
                raise NonEmptyTargetError(len(self.projects))

            if not cid:
                raise MissingIdError("pull")

            value = node.dag_get(cid)

            try:
                pulled = ProjectDatabase.decode(value)
            except ValidationError as e:
                raise AdapterError(
                    f"content at {cid} is not a project database: {e}"
                ) from e

            self.projects = pulled.projects

        logging.getLogger("scribe").debug(
            f"Pulled project database with {self.get_num_projects()} projects: {cid}"
        )
