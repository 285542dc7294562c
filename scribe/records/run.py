"""
Sequencing run records.
"""

from __future__ import annotations

import datetime
from enum import IntEnum
from typing import TYPE_CHECKING

from pydantic import ConfigDict, Field, field_serializer

from ..core.exceptions import EmptyCommentError, OrphanRecordError
from .model import DAG_ENCODING, DAG_FORMAT, BaseRecord

if TYPE_CHECKING:
    from ..core.node import Node
    from .project import Project

__all__ = [
    "Comment",
    "Run",
    "RunStatus",
]

CREATED_COMMENT = "run created."


class RunStatus(IntEnum):
    """
    Lifecycle state of a run.
    """

    CREATED = 1
    """Created locally"""

    ACTIVE = 2
    """Sequencing in progress"""

    SYNCED = 3
    """Stored in the content store and referenced by its project"""

    ARCHIVED = 4
    """No longer updated"""


class Comment(BaseRecord):
    """
    Entry in a run's history.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime.datetime
    text: str = Field(min_length=1)


class Run(BaseRecord):
    """
    A sequencing run belonging to a project.

    The history is append-only: use {obj}`add_comment`.
    """

    label: str
    created: datetime.datetime = Field(default_factory=lambda: _now())
    status: RunStatus = RunStatus.CREATED
    tags: set[str] = Field(default_factory=set)
    history: list[Comment] = Field(default_factory=list)
    request_order: list[str] = Field(default_factory=list)
    output_directory: str = ""
    fast5_output_directory: str = ""
    fastq_output_directory: str = ""
    parent_project_cid: str = Field(default="", alias="parentProjectCID")

    @field_serializer("tags")
    def serialize_tags(self, value: set[str]) -> list[str]:
        return sorted(value)

    @classmethod
    def create(
        cls,
        label: str,
        output_dir: str = "",
        fast5_dir: str = "",
        fastq_dir: str = "",
    ) -> Run:
        """
        Create a run with its history seeded.
        """
        run = cls(
            label=label,
            output_directory=output_dir,
            fast5_output_directory=fast5_dir,
            fastq_output_directory=fastq_dir,
        )
        run.add_comment(CREATED_COMMENT)
        return run

    @property
    def is_orphan(self) -> bool:
        return not self.parent_project_cid

    def add_comment(self, text: str) -> Comment:
        """
        Append a comment to the history.

        :raises EmptyCommentError: `text` is empty
        """
        if not text:
            raise EmptyCommentError()

        comment = Comment(timestamp=_now(), text=text)
        self.history.append(comment)
        return comment

    def sync(self, node: Node, parent: Project, *, pin: bool = True) -> str:
        """
        Store this run and reference it from its parent project.

        :param node: Node to push through
        :param parent: Registered project this run belongs to
        :param pin: Whether to pin the run

        :returns: Content id of the run

        :raises OrphanRecordError: Run doesn't reference `parent`
        """
        if self.is_orphan:
            raise OrphanRecordError(
                f"orphan run can't be synced, needs a parent project (label: {self.label})"
            )

        if parent.cid != self.parent_project_cid:
            raise OrphanRecordError(
                f"run '{self.label}' belongs to {self.parent_project_cid}, not project '{parent.label}' ({parent.cid or 'unregistered'})"
            )

        # push a synced copy so a failed push leaves this run unchanged
        synced = self.model_copy(update={"status": RunStatus.SYNCED})
        cid = node.dag_put(synced.encode(), DAG_ENCODING, DAG_FORMAT, pin)

        self.status = RunStatus.SYNCED
        parent.runs[self.label] = cid

        return cid


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)
