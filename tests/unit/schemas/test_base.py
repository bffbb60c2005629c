"""Unit tests for BaseSchema behavior."""

import pytest
from pydantic import Field, ValidationError

from pipewatch_schemas.base import BaseSchema, FrozenSchema
from pipewatch_schemas.primitives import JobStatus


class SampleSchema(BaseSchema):
    """Sample schema for BaseSchema validation checks."""

    name: str = Field(..., min_length=1, description="Name")
    status: JobStatus = Field(JobStatus.WAITING, description="Status")


class FrozenSample(FrozenSchema):
    """Sample schema for FrozenSchema checks."""

    name: str = Field(..., min_length=1, description="Name")


def test_extra_fields_ignored() -> None:
    """Fields added by newer payloads are dropped, not rejected."""
    result = SampleSchema.model_validate({"name": "ok", "extra": "ignored"})
    assert result.name == "ok"
    assert not hasattr(result, "extra")


def test_strict_mode_rejects_coercion() -> None:
    """Numbers are not silently coerced into strings."""
    with pytest.raises(ValidationError):
        SampleSchema.model_validate({"name": 42})


def test_enum_values_are_stored() -> None:
    """Enum fields hold their string values."""
    result = SampleSchema(name="ok", status=JobStatus.FAILED)
    assert result.status == "failed"
    assert result.model_dump()["status"] == "failed"


def test_frozen_schema_rejects_assignment() -> None:
    """Frozen schemas cannot be mutated."""
    sample = FrozenSample(name="ok")
    with pytest.raises(ValidationError):
        sample.name = "changed"
