"""Protocol definitions, errors and log builders for job sources."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from pipewatch_schemas.base import BaseSchema
from pipewatch_schemas.events import (
    FetchCycleCompletedData,
    FetchCycleStartedData,
    FetchEvent,
    FetchRetryData,
    FetchStageCompletedData,
    FetchStageFailedData,
)
from pipewatch_schemas.jobs import JobRecord
from pipewatch_schemas.logs import LogEntry
from pipewatch_schemas.primitives import CycleId, JobId, LogLevel, StageId, Timestamp
from pipewatch_schemas.responses import ErrorDetails, ErrorResponse


class FetchErrorCode(StrEnum):
    """Categorized error codes for job fetch failures."""

    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    PARSE_ERROR = "parse_error"
    IO_ERROR = "io_error"


RETRYABLE_FETCH_ERRORS = frozenset(
    {FetchErrorCode.NETWORK_ERROR, FetchErrorCode.SERVER_ERROR}
)


class FetchErrorDetails(BaseSchema):
    """Detailed fetch error context."""

    stage_id: StageId | None = Field(None, description="Stage being fetched")
    cursor: str | None = Field(None, description="Pagination cursor")
    status_code: int | None = Field(None, description="HTTP status if any")
    url: str | None = Field(None, description="Request URL if any")
    reason: str | None = Field(None, description="Additional error context")


class FetchErrorInfo(BaseSchema):
    """Structured fetch error data."""

    code: FetchErrorCode = Field(..., description="Fetch error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: FetchErrorDetails | None = Field(None, description="Error details")

    @property
    def retryable(self) -> bool:
        """Whether retrying the request may succeed."""
        return FetchErrorCode(self.code) in RETRYABLE_FETCH_ERRORS

    def to_error_response(self) -> ErrorResponse:
        """Convert fetch error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None:
            details = ErrorDetails(
                field=self.details.stage_id,
                provided=self.details.url,
                valid_options=None,
            )
        return ErrorResponse(
            code=str(self.code), message=self.message, details=details
        )


class FetchError(Exception):
    """Fetch error with structured details."""

    def __init__(self, info: FetchErrorInfo) -> None:
        """Initialize the fetch error.

        Args:
            info: Structured fetch error information.
        """
        super().__init__(info.message)
        self.info = info


class SkippedJob(BaseSchema):
    """A job payload that could not be normalized and was left out."""

    stage_id: StageId = Field(..., description="Stage the payload came from")
    job_id: JobId | None = Field(None, description="Payload id, if readable")
    reason: str = Field(..., min_length=1, description="Why it was skipped")


class JobPage(BaseSchema):
    """One page of normalized jobs for a stage."""

    jobs: list[JobRecord] = Field(..., description="Jobs on this page")
    skipped: list[SkippedJob] = Field(
        default_factory=list, description="Malformed payloads left out"
    )
    next_cursor: str | None = Field(
        None, description="Cursor of the next page, None on the last page"
    )


class StageFetchResult(BaseSchema):
    """Outcome of fetching every page of one stage."""

    stage_id: StageId = Field(..., description="Stage identifier")
    jobs: list[JobRecord] = Field(
        default_factory=list, description="Jobs fetched, empty on failure"
    )
    skipped: list[SkippedJob] = Field(
        default_factory=list, description="Malformed payloads left out"
    )
    page_count: int = Field(0, ge=0, description="Pages fetched")
    attempts: int = Field(0, ge=0, description="Requests made, retries included")
    error: FetchErrorInfo | None = Field(
        None, description="Error that stopped the stage, if any"
    )

    @property
    def complete(self) -> bool:
        """Whether every page of the stage was fetched."""
        return self.error is None


class JobSnapshot(BaseSchema):
    """Jobs fetched so far in one fetch cycle."""

    cycle_id: CycleId = Field(..., description="Fetch cycle identifier")
    jobs: list[JobRecord] = Field(
        default_factory=list, description="Jobs of every completed stage"
    )
    stages: list[StageFetchResult] = Field(
        default_factory=list, description="Finished stage fetches"
    )
    pending_stage_ids: list[StageId] = Field(
        default_factory=list, description="Stages still being fetched"
    )

    @property
    def missing_stage_ids(self) -> list[str]:
        """Stages whose fetch failed."""
        return [stage.stage_id for stage in self.stages if not stage.complete]

    @property
    def skipped_jobs(self) -> list[SkippedJob]:
        """Malformed payloads left out of completed stages."""
        return [job for stage in self.stages for job in stage.skipped]

    @property
    def is_final(self) -> bool:
        """Whether every requested stage has finished."""
        return not self.pending_stage_ids


@runtime_checkable
class JobSourceProtocol(Protocol):
    """Protocol for job sources."""

    async def fetch_page(self, stage_id: str, cursor: str | None) -> JobPage:
        """Fetch one page of jobs for a stage.

        Raises:
            FetchError: When the page cannot be fetched or parsed.
        """
        raise NotImplementedError


def build_fetch_cycle_started_log(
    timestamp: Timestamp,
    cycle_id: CycleId,
    stage_ids: list[str],
    max_parallel_requests: int,
) -> LogEntry:
    """Build a log entry for fetch cycle start.

    Args:
        timestamp: ISO-8601 timestamp.
        cycle_id: Fetch cycle identifier.
        stage_ids: Stages requested.
        max_parallel_requests: Concurrency limit.

    Returns:
        LogEntry: Structured fetch log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=FetchEvent.CYCLE_STARTED.value,
        cycle_id=cycle_id,
        message="Fetch cycle started",
        data=FetchCycleStartedData(
            stage_ids=stage_ids,
            max_parallel_requests=max_parallel_requests,
        ).model_dump(mode="json"),
    )


def build_fetch_cycle_completed_log(
    timestamp: Timestamp, snapshot: JobSnapshot
) -> LogEntry:
    """Build a log entry for fetch cycle completion.

    Args:
        timestamp: ISO-8601 timestamp.
        snapshot: Final snapshot of the cycle.

    Returns:
        LogEntry: Structured fetch log entry.
    """
    missing = snapshot.missing_stage_ids
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN if missing else LogLevel.INFO,
        event=FetchEvent.CYCLE_COMPLETED.value,
        cycle_id=snapshot.cycle_id,
        message="Fetch cycle completed",
        data=FetchCycleCompletedData(
            job_count=len(snapshot.jobs),
            stages_completed=len(snapshot.stages) - len(missing),
            stages_missing=missing,
        ).model_dump(mode="json"),
    )


def build_fetch_stage_started_log(
    timestamp: Timestamp, cycle_id: CycleId, stage_id: str
) -> LogEntry:
    """Build a log entry for stage fetch start.

    Returns:
        LogEntry: Structured fetch log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.DEBUG,
        event=FetchEvent.STAGE_STARTED.value,
        cycle_id=cycle_id,
        stage_id=stage_id,
        message="Stage fetch started",
    )


def build_fetch_stage_completed_log(
    timestamp: Timestamp, cycle_id: CycleId, result: StageFetchResult
) -> LogEntry:
    """Build a log entry for stage fetch completion.

    Returns:
        LogEntry: Structured fetch log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=FetchEvent.STAGE_COMPLETED.value,
        cycle_id=cycle_id,
        stage_id=result.stage_id,
        message="Stage fetch completed",
        data=FetchStageCompletedData(
            job_count=len(result.jobs),
            page_count=result.page_count,
            skipped_count=len(result.skipped),
        ).model_dump(mode="json"),
    )


def build_fetch_stage_failed_log(
    timestamp: Timestamp,
    cycle_id: CycleId,
    stage_id: str,
    error: FetchErrorInfo,
    attempts: int,
) -> LogEntry:
    """Build a log entry for stage fetch failure.

    Args:
        timestamp: ISO-8601 timestamp.
        cycle_id: Fetch cycle identifier.
        stage_id: Stage that failed.
        error: Error that stopped the stage.
        attempts: Requests made for the failing page.

    Returns:
        LogEntry: Structured fetch log entry.
    """
    status_code = error.details.status_code if error.details is not None else None
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR,
        event=FetchEvent.STAGE_FAILED.value,
        cycle_id=cycle_id,
        stage_id=stage_id,
        message="Stage fetch failed",
        data=FetchStageFailedData(
            error_code=str(error.code),
            error_message=error.message,
            attempts=attempts,
            status_code=status_code,
        ).model_dump(mode="json", exclude_none=True),
    )


def build_fetch_retry_log(
    timestamp: Timestamp,
    cycle_id: CycleId,
    stage_id: str,
    error: FetchErrorInfo,
    attempt: int,
    delay_s: float,
) -> LogEntry:
    """Build a log entry for a scheduled retry.

    Returns:
        LogEntry: Structured fetch log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=FetchEvent.RETRY_SCHEDULED.value,
        cycle_id=cycle_id,
        stage_id=stage_id,
        message=f"Retrying after {error.code}",
        data=FetchRetryData(
            attempt=attempt,
            delay_s=delay_s,
            error_code=str(error.code),
        ).model_dump(mode="json"),
    )
