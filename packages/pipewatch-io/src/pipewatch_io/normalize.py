"""Normalization of job-queue API payloads into canonical job records.

This is the only place that knows the wire shape of a job. Aggregation code
works on JobRecord exclusively.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from pipewatch_core.ports.fetch import (
    FetchError,
    FetchErrorCode,
    FetchErrorDetails,
    FetchErrorInfo,
    SkippedJob,
)
from pipewatch_schemas.jobs import JobApproval, JobFailure, JobParentRef, JobRecord

FAILED_STATUS = "failed"

type EpochOrIso = int | float | str


class _PayloadModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
    )


class ApprovalMetadataPayload(_PayloadModel):
    """Reviewer metadata attached to an approval block."""

    comment: str | None = None


class ApprovalPayload(_PayloadModel):
    """Approval block as sent by the job-queue API."""

    summary: str | None = None
    type: str | None = None
    approved: bool = False
    metadata: ApprovalMetadataPayload | None = None


class ParentPayload(_PayloadModel):
    """Parent job reference as sent by the job-queue API."""

    queue: str
    id: str


class JobDataPayload(_PayloadModel):
    """Nested job data; only consulted when top-level fields are absent."""

    thread_id: str | None = None
    company: str | None = None
    year: int | None = None


class QueueJobPayload(_PayloadModel):
    """Job as returned by ``GET /queues/{stage}``."""

    id: str = Field(..., min_length=1)
    queue: str | None = None
    process_id: str | None = None
    thread_id: str | None = None
    company: str | None = None
    wikidata_id: str | None = None
    year: int | None = None
    timestamp: EpochOrIso | None = None
    processed_on: EpochOrIso | None = None
    processed_by: str | None = None
    finished_on: EpochOrIso | None = None
    status: str | None = None
    failed_reason: str | None = None
    stacktrace: list[str] | None = None
    attempts_made: int = 0
    auto_approve: bool | None = None
    approval: ApprovalPayload | None = None
    parent: ParentPayload | None = None
    data: JobDataPayload | None = None


def to_datetime(value: EpochOrIso | None) -> datetime | None:
    """Convert an epoch-millisecond or ISO-8601 value to an aware datetime.

    Args:
        value: Milliseconds since the epoch, or an ISO-8601 string. Naive
            strings are read as UTC.

    Returns:
        datetime | None: UTC-aware datetime, None when the value is absent.

    Raises:
        ValueError: If a string is not valid ISO-8601.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_job(
    payload: Mapping[str, object], stage_id: str | None = None
) -> JobRecord:
    """Convert one raw job payload into a JobRecord.

    Args:
        payload: Raw job object.
        stage_id: Stage the job was fetched from; falls back to the
            payload's ``queue``.

    Returns:
        JobRecord: Canonical job record.

    Raises:
        FetchError: If the payload lacks identity fields or is malformed.
    """
    try:
        job = QueueJobPayload.model_validate(payload)
    except ValidationError as exc:
        raise _parse_error(stage_id, payload, f"Invalid job payload: {exc}") from exc

    data = job.data or JobDataPayload()
    resolved_stage = stage_id or job.queue
    entity_key = job.company or data.company or job.wikidata_id
    thread_id = job.process_id or job.thread_id or data.thread_id
    if resolved_stage is None:
        raise _parse_error(stage_id, payload, "Job has no stage (queue)")
    if entity_key is None:
        raise _parse_error(stage_id, payload, "Job has no company")
    if thread_id is None:
        raise _parse_error(stage_id, payload, "Job has no processId or threadId")

    try:
        created_at = to_datetime(job.timestamp)
        started_at = to_datetime(job.processed_on)
        finished_at = to_datetime(job.finished_on)
    except (ValueError, OverflowError, OSError) as exc:
        raise _parse_error(stage_id, payload, f"Invalid timestamp: {exc}") from exc
    if created_at is None:
        raise _parse_error(stage_id, payload, "Job has no timestamp")
    if started_at is None and job.processed_by:
        started_at = created_at

    failed = job.status == FAILED_STATUS
    failure = None
    if failed or job.failed_reason:
        failure = JobFailure(
            reason=job.failed_reason, stacktrace=list(job.stacktrace or [])
        )

    approval = None
    if job.approval is not None:
        required = job.auto_approve is not True
        approval = JobApproval(
            required=required,
            approved=required and job.approval.approved,
            summary=job.approval.summary,
            comment=(
                job.approval.metadata.comment
                if job.approval.metadata is not None
                else None
            ),
        )

    parent = None
    if job.parent is not None:
        parent = JobParentRef(stage_id=job.parent.queue, job_id=job.parent.id)

    try:
        return JobRecord(
            job_id=job.id,
            stage_id=resolved_stage,
            entity_key=entity_key,
            year=job.year if job.year is not None else data.year,
            thread_id=thread_id,
            created_at=created_at,
            started_at=started_at,
            finished_at=finished_at,
            failed=failed,
            failure=failure,
            approval=approval,
            parent=parent,
            attempts_made=job.attempts_made,
        )
    except ValidationError as exc:
        raise _parse_error(stage_id, payload, f"Invalid job record: {exc}") from exc


def normalize_jobs(
    payloads: Iterable[Mapping[str, object]], stage_id: str
) -> tuple[list[JobRecord], list[SkippedJob]]:
    """Normalize a page of payloads, leaving out the malformed ones.

    Args:
        payloads: Raw job objects of one page.
        stage_id: Stage the page was fetched from.

    Returns:
        tuple[list[JobRecord], list[SkippedJob]]: Normalized jobs in input
        order, and the payloads that could not be normalized.
    """
    jobs: list[JobRecord] = []
    skipped: list[SkippedJob] = []
    for payload in payloads:
        try:
            jobs.append(normalize_job(payload, stage_id))
        except FetchError as exc:
            raw_id = payload.get("id")
            skipped.append(
                SkippedJob(
                    stage_id=stage_id,
                    job_id=str(raw_id) if raw_id not in (None, "") else None,
                    reason=exc.info.message,
                )
            )
    return jobs, skipped


def _parse_error(
    stage_id: str | None, payload: Mapping[str, object], message: str
) -> FetchError:
    job_id = payload.get("id")
    return FetchError(
        FetchErrorInfo(
            code=FetchErrorCode.PARSE_ERROR,
            message=message,
            details=FetchErrorDetails(
                stage_id=stage_id,
                reason=f"job id {job_id}" if job_id is not None else None,
            ),
        )
    )
