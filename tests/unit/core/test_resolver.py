"""Unit tests for job status resolution."""

from __future__ import annotations

from pipewatch_core.resolver import (
    check_job,
    has_inconsistent_timestamps,
    resolve_job_status,
)
from pipewatch_schemas.primitives import DiagnosticCode, JobStatus
from tests.helpers.jobs import make_job


def test_job_without_start_is_waiting() -> None:
    """A queued job that never started is waiting."""
    assert resolve_job_status(make_job("1", "precheck")) == JobStatus.WAITING


def test_started_job_is_processing() -> None:
    """A started job without a finish is processing."""
    job = make_job("1", "precheck", started=1)
    assert resolve_job_status(job) == JobStatus.PROCESSING


def test_finished_job_is_completed() -> None:
    """A finished job is completed."""
    job = make_job("1", "precheck", started=1, finished=2)
    assert resolve_job_status(job) == JobStatus.COMPLETED


def test_failure_wins_over_everything() -> None:
    """Failure takes precedence over approval and finish."""
    job = make_job(
        "1",
        "precheck",
        started=1,
        finished=2,
        failed=True,
        approval_required=True,
    )
    assert resolve_job_status(job) == JobStatus.FAILED


def test_pending_approval_wins_over_finish() -> None:
    """A finished job with an unapproved gate needs approval."""
    job = make_job("1", "precheck", started=1, finished=2, approval_required=True)
    assert resolve_job_status(job) == JobStatus.NEEDS_APPROVAL


def test_approved_gate_is_ignored() -> None:
    """An approved gate no longer blocks completion."""
    job = make_job(
        "1", "precheck", started=1, finished=2, approval_required=True, approved=True
    )
    assert resolve_job_status(job) == JobStatus.COMPLETED


def test_auto_approved_gate_is_ignored() -> None:
    """A gate that does not require approval does not block."""
    job = make_job("1", "precheck", started=1, approval_required=False)
    assert resolve_job_status(job) == JobStatus.PROCESSING


def test_finish_before_start_degrades_to_processing() -> None:
    """Inconsistent timestamps never produce a completed status."""
    job = make_job("1", "precheck", created=5, started=10, finished=7)
    assert has_inconsistent_timestamps(job)
    assert resolve_job_status(job) == JobStatus.PROCESSING
    codes = [diagnostic.code for diagnostic in check_job(job)]
    assert codes == [DiagnosticCode.INCONSISTENT_TIMESTAMPS]


def test_finish_before_creation_is_inconsistent() -> None:
    """A finish that precedes creation is inconsistent even without a start."""
    job = make_job("1", "precheck", created=5, finished=3)
    assert has_inconsistent_timestamps(job)


def test_start_before_creation_is_inconsistent() -> None:
    """A job started before it was created is reported and never completes."""
    running = make_job("1", "precheck", created=5, started=2)
    assert has_inconsistent_timestamps(running)
    assert [diagnostic.code for diagnostic in check_job(running)] == [
        DiagnosticCode.INCONSISTENT_TIMESTAMPS
    ]
    finished = make_job("2", "precheck", created=5, started=2, finished=8)
    assert resolve_job_status(finished) == JobStatus.PROCESSING


def test_failed_without_finish_is_reported() -> None:
    """A failed job without finished_at still resolves and is reported."""
    job = make_job("job-9", "scope1", started=1, failed=True)
    assert resolve_job_status(job) == JobStatus.FAILED
    diagnostics = check_job(job)
    assert [diagnostic.code for diagnostic in diagnostics] == [
        DiagnosticCode.FAILED_WITHOUT_FINISH
    ]
    assert diagnostics[0].job_id == "job-9"


def test_well_formed_job_has_no_diagnostics() -> None:
    """A consistent completed job yields no diagnostics."""
    assert check_job(make_job("1", "precheck", started=1, finished=2)) == []
