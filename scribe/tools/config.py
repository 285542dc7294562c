"""
Interface to configuration as persisted in .yaml file.
"""
from __future__ import annotations

import re
from logging import Logger
from pathlib import Path
from typing import Any

from pydantic import field_serializer, field_validator

from ..core import Node
from .yaml_model import BaseYamlModel

__all__ = [
    "Config",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_PROJECT",
]

DEFAULT_CONFIG_FILE = Path.home() / ".scribe.yaml"
"""
Config file used if none is given.
"""

DEFAULT_PROJECT = "scribe-test-project"

_STORAGE_RE = re.compile(r"^\d+(\.\d+)?\s*(KB|MB|GB|TB)$", re.IGNORECASE)


class Config(BaseYamlModel):
    """
    Encapsulates configuration of Scribe and the daemon it runs.
    """

    ipfs_path: Path = Path.home() / ".ipfs"
    """
    Path to the daemon's repository on this node.
    """

    storage_max: str = "1GB"
    """
    Maximum storage available for the daemon's repository.
    """

    pinning: bool = True
    """
    Whether to pin pushed content, preventing its garbage collection.
    """

    project: str = DEFAULT_PROJECT
    """
    Project to operate on.
    """

    remote_cid: str = ""
    """
    Content id of the project database, updated after each push.
    """

    private: bool = False
    """
    Run in private mode.
    """

    api_host: str = "127.0.0.1"
    api_port: int = 5001
    swarm_port: int = 4001
    gateway_port: int = 8081

    @field_validator("ipfs_path", mode="before")
    def validate_ipfs_path(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Path(value).expanduser()
        return value

    @field_serializer("ipfs_path")
    def serialize_ipfs_path(self, value: Path) -> str:
        return str(value)

    @field_validator("storage_max")
    def validate_storage_max(cls, value: str) -> str:
        if not _STORAGE_RE.match(value):
            raise ValueError(
                f"storage must be a size such as '10GB', got '{value}'"
            )
        return value.replace(" ", "").upper()

    @field_validator("project")
    def validate_project(cls, value: str) -> str:
        if not value:
            raise ValueError("project must not be empty")
        return value

    @classmethod
    def default(cls) -> Config:
        return cls()

    @property
    def api_endpoint(self) -> str:
        """
        Daemon API as `host:port`.
        """
        return f"{self.api_host}:{self.api_port}"

    def check(self):
        """
        Ensure the daemon's repository folder exists, creating it if needed.
        """
        if self.ipfs_path.is_dir():
            return

        if self.ipfs_path.exists():
            raise ValueError(f"not a directory: '{self.ipfs_path}'")

        try:
            self.ipfs_path.mkdir(parents=True)
        except OSError as e:
            raise ValueError(
                f"can't create new directory for IPFS ({e})"
            ) from e

    def create_node(self, *, logger: Logger) -> Node:
        """
        Get node connected to this config's API endpoint.
        """
        return Node(self.api_endpoint, logger=logger)
