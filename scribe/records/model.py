"""
Base model of records synchronized through the content store.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

__all__ = ["BaseRecord"]

DAG_ENCODING = "dag-json"
"""
Codec records are encoded as when pushed.
"""

DAG_FORMAT = "dag-cbor"
"""
Codec records are stored as.
"""


class BaseRecord(BaseModel):
    """
    Record with a canonical encoding: camelCase field names, default-valued
    fields omitted and keys sorted, so identical records always encode to
    identical bytes and hence the same content id.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def encode(self, *, exclude: set[str] | None = None) -> bytes:
        """
        Get canonical encoding of this record.
        """
        return encode_canonical(
            self.model_dump(
                mode="json",
                by_alias=True,
                exclude_defaults=True,
                exclude=exclude,
            )
        )

    @classmethod
    def decode(cls, value: Any):
        """
        Create record from a decoded structured object.
        """
        return cls.model_validate(value or {})


def encode_canonical(value: Any) -> bytes:
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode()
