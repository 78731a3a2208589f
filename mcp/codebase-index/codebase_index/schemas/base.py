"""Strict Pydantic base models."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

import pydantic
from pydantic.alias_generators import to_camel

__all__ = [
    'CamelModel',
    'JsonDatetime',
    'StrictModel',
]

# Datetime that accepts ISO strings when loading persisted JSON
JsonDatetime = Annotated[datetime, pydantic.Field(strict=False)]


class StrictModel(pydantic.BaseModel):
    """Base model with strict validation.

    Config:
    - extra='forbid': Reject unknown fields (fail-fast)
    - strict=True: No implicit type coercion
    - frozen=True: Immutable after creation
    """

    model_config = pydantic.ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
    )


class CamelModel(StrictModel):
    """Strict model persisted with camelCase keys.

    On-disk documents use camelCase (indexedFiles, pendingQueue, ...).
    Python code uses snake_case field names; both are accepted on load.
    Dump with by_alias=True to produce the on-disk layout.
    """

    model_config = pydantic.ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
    )
