"""Base schema configuration for pipewatch Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with strict validation defaults.

    Note: extra="ignore" drops fields the job-queue API adds over time, so a
    newer payload never fails validation for carrying more than we read.
    Required fields are still validated.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        validate_default=True,
        str_strip_whitespace=True,
        use_enum_values=True,
        strict=True,
    )


class FrozenSchema(BaseSchema):
    """Immutable schema for facts and derived views."""

    model_config = ConfigDict(frozen=True)
