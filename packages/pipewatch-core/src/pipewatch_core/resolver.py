"""Job status resolution from raw lifecycle facts."""

from __future__ import annotations

from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.jobs import JobRecord
from pipewatch_schemas.primitives import DiagnosticCode, JobStatus


def resolve_job_status(job: JobRecord) -> JobStatus:
    """Derive the status of a single job.

    The first matching rule wins: failure, then a pending approval gate, then
    finished, then started. A job whose finish timestamp precedes its start or
    creation is reported as processing rather than completed.

    Args:
        job: Job record to resolve.

    Returns:
        JobStatus: Derived job status.
    """
    if job.failed:
        return JobStatus.FAILED
    if job.approval is not None and job.approval.required and not job.approval.approved:
        return JobStatus.NEEDS_APPROVAL
    if job.finished_at is not None:
        if has_inconsistent_timestamps(job):
            return JobStatus.PROCESSING
        return JobStatus.COMPLETED
    if job.started_at is not None:
        return JobStatus.PROCESSING
    return JobStatus.WAITING


def has_inconsistent_timestamps(job: JobRecord) -> bool:
    """Return True when the start or finish timestamp runs backwards.

    A start before creation is inconsistent, as is a finish before either.
    """
    if job.started_at is not None and job.started_at < job.created_at:
        return True
    if job.finished_at is None:
        return False
    if job.started_at is not None and job.finished_at < job.started_at:
        return True
    return job.finished_at < job.created_at


def check_job(job: JobRecord) -> list[Diagnostic]:
    """Report lifecycle anomalies of a single job.

    Args:
        job: Job record to inspect.

    Returns:
        list[Diagnostic]: Diagnostics, empty for a well-formed job.
    """
    diagnostics: list[Diagnostic] = []
    if has_inconsistent_timestamps(job):
        diagnostics.append(
            _job_diagnostic(
                job,
                DiagnosticCode.INCONSISTENT_TIMESTAMPS,
                "lifecycle timestamps are out of order",
            )
        )
    if job.failed and job.finished_at is None:
        diagnostics.append(
            _job_diagnostic(
                job,
                DiagnosticCode.FAILED_WITHOUT_FINISH,
                "failed job has no finished_at",
            )
        )
    return diagnostics


def _job_diagnostic(
    job: JobRecord, code: DiagnosticCode, message: str
) -> Diagnostic:
    return Diagnostic(
        code=code,
        message=message,
        entity_key=job.entity_key,
        stage_id=job.stage_id,
        thread_id=job.thread_id,
        job_id=job.job_id,
    )
