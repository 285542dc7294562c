"""
Project records.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from ..core.exceptions import OrphanRecordError
from .model import DAG_ENCODING, DAG_FORMAT, BaseRecord

if TYPE_CHECKING:
    from ..core.node import Node
    from .run import Run

__all__ = ["Project"]


class Project(BaseRecord):
    """
    A project: the unit which runs belong to and whose name doubles as
    pubsub topic.
    """

    label: str = Field(frozen=True)
    """Unique label"""

    cid: str = ""
    """Content id assigned by {obj}`register`; empty if unregistered"""

    runs: dict[str, str] = Field(default_factory=dict)
    """Mapping of run label to content id of synced run"""

    @classmethod
    def create(cls, label: str) -> Project:
        return cls(label=label)

    @property
    def is_registered(self) -> bool:
        return bool(self.cid)

    def register(self, node: Node, *, pin: bool = True) -> str:
        """
        Store this project's own record (not its owning database) and
        assign the resulting content id.

        ```{note}
        Syncing a run adds to {obj}`runs`, so the project needs to be
        registered again for its stored record to reflect it. Runs keep
        referencing the id they were attached with.
        ```

        :returns: Content id
        """
        cid = node.dag_put(
            self.encode(exclude={"cid"}), DAG_ENCODING, DAG_FORMAT, pin
        )
        self.cid = cid
        return cid

    def attach(self, run: Run):
        """
        Make this project the parent of `run`.

        :raises OrphanRecordError: Project isn't registered
        """
        if not self.is_registered:
            raise OrphanRecordError(
                f"project '{self.label}' must be registered before runs can be attached"
            )
        run.parent_project_cid = self.cid
