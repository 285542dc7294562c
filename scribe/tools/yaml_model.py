"""
Interface to create models with associated .yaml storage.
"""

from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel

__all__ = [
    "BaseYamlModel",
]


class BaseYamlModel(BaseModel):
    """
    Base pydantic model with additional functionality to load from and dump
    to .yaml file.
    """

    @classmethod
    def load_yaml(cls, file: Path) -> Self:
        """
        Load model from .yaml file.
        """
        assert file.is_file()

        with file.open() as fh:
            model = yaml.safe_load(fh)

        # empty file: all defaults
        if model is None:
            model = {}

        if not isinstance(model, dict):
            raise ValueError(f"Invalid yaml contents: {model}")

        return cls(**model)

    def dump_yaml(self, file: Path):
        """
        Dump model to .yaml file.
        """
        model = self.model_dump(mode="json", by_alias=True)
        model_yaml = yaml.safe_dump(
            model, default_flow_style=False, sort_keys=False
        )
        file.write_text(model_yaml)

    def to_yaml(self) -> str:
        """
        Get model as .yaml text.
        """
        return yaml.safe_dump(
            self.model_dump(mode="json", by_alias=True),
            default_flow_style=False,
            sort_keys=False,
        )
