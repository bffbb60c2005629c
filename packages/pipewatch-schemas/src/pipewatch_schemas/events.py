"""Event taxonomy and structured payloads for fetch and aggregation logs."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pipewatch_schemas.base import BaseSchema
from pipewatch_schemas.primitives import DiagnosticCode, JsonValue


class FetchEvent(StrEnum):
    """Event names for fetch cycles."""

    CYCLE_STARTED = "fetch_cycle_started"
    CYCLE_COMPLETED = "fetch_cycle_completed"
    STAGE_STARTED = "fetch_stage_started"
    STAGE_COMPLETED = "fetch_stage_completed"
    STAGE_FAILED = "fetch_stage_failed"
    RETRY_SCHEDULED = "fetch_retry_scheduled"


class AggregationEvent(StrEnum):
    """Event names for aggregation passes."""

    DIAGNOSTIC_RECORDED = "diagnostic_recorded"
    COMPLETED = "aggregation_completed"


class CommandEvent(StrEnum):
    """Event names for CLI command lifecycle."""

    STARTED = "command_started"
    COMPLETED = "command_completed"
    FAILED = "command_failed"


class FetchCycleStartedData(BaseSchema):
    """Payload for fetch cycle start events."""

    stage_ids: list[str] = Field(..., description="Stages requested")
    max_parallel_requests: int = Field(..., ge=1, description="Concurrency limit")


class FetchCycleCompletedData(BaseSchema):
    """Payload for fetch cycle completion events."""

    job_count: int = Field(..., ge=0, description="Jobs fetched")
    stages_completed: int = Field(..., ge=0, description="Stages fully fetched")
    stages_missing: list[str] = Field(..., description="Stages without data")


class FetchStageCompletedData(BaseSchema):
    """Payload for stage fetch completion events."""

    job_count: int = Field(..., ge=0, description="Jobs fetched for the stage")
    page_count: int = Field(..., ge=0, description="Pages fetched")
    skipped_count: int = Field(0, ge=0, description="Malformed jobs skipped")


class FetchStageFailedData(BaseSchema):
    """Payload for stage fetch failure events."""

    error_code: str = Field(..., min_length=1, description="Error code")
    error_message: str = Field(..., min_length=1, description="Error message")
    attempts: int = Field(..., ge=1, description="Attempts made")
    status_code: int | None = Field(None, description="HTTP status if any")


class FetchRetryData(BaseSchema):
    """Payload for retry scheduling events."""

    attempt: int = Field(..., ge=1, description="Attempt that failed")
    delay_s: float = Field(..., ge=0, description="Delay before the next attempt")
    error_code: str = Field(..., min_length=1, description="Error code")


class DiagnosticRecordedData(BaseSchema):
    """Payload for diagnostic events."""

    code: DiagnosticCode = Field(..., description="Diagnostic code")
    entity_key: str | None = Field(None, description="Affected entity")
    thread_id: str | None = Field(None, description="Affected run")
    job_id: str | None = Field(None, description="Offending job")


class AggregationCompletedData(BaseSchema):
    """Payload for aggregation completion events."""

    entity_count: int = Field(..., ge=0, description="Entities aggregated")
    run_count: int = Field(..., ge=0, description="Runs aggregated")
    diagnostic_count: int = Field(..., ge=0, description="Diagnostics recorded")


class CommandStartedData(BaseSchema):
    """Payload for command start events."""

    command: str = Field(..., min_length=1, description="Command name")
    args: dict[str, JsonValue] | None = Field(None, description="Command arguments")


class CommandCompletedData(BaseSchema):
    """Payload for command completion events."""

    command: str = Field(..., min_length=1, description="Command name")


class CommandFailedData(BaseSchema):
    """Payload for command failure events."""

    command: str = Field(..., min_length=1, description="Command name")
    error_code: str = Field(..., min_length=1, description="Error code")
    error_message: str = Field(..., min_length=1, description="Error message")
