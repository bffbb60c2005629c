"""Response envelope schemas for CLI JSON output."""

from __future__ import annotations

from pydantic import Field

from pipewatch_schemas.base import BaseSchema
from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.primitives import RunScope, Timestamp
from pipewatch_schemas.rerun import RerunRequest, RerunTarget
from pipewatch_schemas.views import EntityView


class MetaInfo(BaseSchema):
    """Metadata for responses."""

    timestamp: Timestamp = Field(..., description="ISO-8601 response timestamp")
    scope: RunScope | None = Field(None, description="Run scope used")
    missing_stages: list[str] | None = Field(
        None, description="Stages whose data could not be fetched"
    )


class ErrorDetails(BaseSchema):
    """Detailed error context for responses."""

    field: str | None = Field(None, description="Field name if applicable")
    provided: str | None = Field(None, description="Provided value")
    valid_options: list[str] | None = Field(
        None, description="Valid options if applicable"
    )


class ErrorResponse(BaseSchema):
    """Error information in response."""

    code: str = Field(..., min_length=1, description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: ErrorDetails | None = Field(None, description="Optional error details")


class ApiResponse[ResponseData](BaseSchema):
    """Generic response envelope."""

    data: ResponseData | None = Field(
        None, description="Success payload, null on error"
    )
    error: ErrorResponse | None = Field(
        None, description="Error information, null on success"
    )
    meta: MetaInfo = Field(..., description="Response metadata")


class EntityListResult(BaseSchema):
    """Result payload for the list command."""

    entities: list[EntityView] = Field(..., description="Matching entities")
    total: int = Field(..., ge=0, description="Entities before filtering")
    diagnostics: list[Diagnostic] = Field(
        default_factory=list, description="Diagnostics from fetching"
    )


class FilterCountsResult(BaseSchema):
    """Result payload for the counts command."""

    counts: dict[str, int] = Field(..., description="Matching entities per filter")
    total: int = Field(..., ge=0, description="Entities considered")


class RerunPlanResult(BaseSchema):
    """Result payload for the rerun-targets command."""

    targets: list[RerunTarget] = Field(..., description="Selected anchor jobs")
    request: RerunRequest | None = Field(
        None, description="Request body sent for each target"
    )
