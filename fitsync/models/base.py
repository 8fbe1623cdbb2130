"""Shared Pydantic base models and utilities."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FitSyncBase(BaseModel):
    """Base model with shared config for all FitSync schemas.

    Python attributes are snake_case; the wire format (and the stored JSON
    payload) is camelCase, matching what the web client sends.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
    )
