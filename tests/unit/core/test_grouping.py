"""Unit tests for run grouping and authoritative job selection."""

from __future__ import annotations

import pytest

from pipewatch_core.grouping import (
    RunKey,
    build_run_snapshot,
    group_by_stage,
    group_runs,
    select_authoritative,
    snapshot_fingerprint,
)
from pipewatch_schemas.primitives import DiagnosticCode
from tests.helpers.jobs import completed_job, make_job


def test_group_runs_keys_by_entity_year_and_thread() -> None:
    """Jobs are bucketed by (entity, year, thread) in first-seen order."""
    jobs = [
        make_job("1", "precheck", thread_id="b"),
        make_job("2", "precheck", thread_id="a"),
        make_job("3", "scope1", thread_id="b"),
        make_job("4", "precheck", thread_id="a", year=2023),
    ]
    runs = group_runs(jobs)
    assert list(runs) == [
        RunKey("Acme", 2024, "b"),
        RunKey("Acme", 2024, "a"),
        RunKey("Acme", 2023, "a"),
    ]
    assert [job.job_id for job in runs[RunKey("Acme", 2024, "b")]] == ["1", "3"]


def test_group_by_stage_orders_by_creation() -> None:
    """Each stage list is sorted by created_at."""
    jobs = [
        make_job("late", "scope1", created=10),
        make_job("early", "scope1", created=1),
    ]
    stages = group_by_stage(jobs)
    assert [job.job_id for job in stages["scope1"]] == ["early", "late"]


def test_later_activity_wins() -> None:
    """The rerun with the most recent activity is authoritative."""
    failed = make_job("1", "scope1", created=0, started=1, finished=2, failed=True)
    rerun = completed_job("2", "scope1", created=5)
    group = select_authoritative("scope1", [failed, rerun])
    assert group.authoritative.job_id == "2"
    assert group.is_rerun
    assert not group.tie


def test_old_job_with_recent_finish_wins_over_new_waiting_job() -> None:
    """Activity, not creation, decides which job represents the stage."""
    slow = make_job("1", "scope1", created=0, started=1, finished=30)
    queued = make_job("2", "scope1", created=10)
    group = select_authoritative("scope1", [slow, queued])
    assert group.authoritative.job_id == "1"


def test_identical_timestamps_fall_back_to_input_order() -> None:
    """Exact ties keep the last job received and are flagged."""
    first = make_job("first", "scope1", created=0)
    second = make_job("second", "scope1", created=0)
    group = select_authoritative("scope1", [first, second])
    assert group.authoritative.job_id == "second"
    assert group.tie
    assert group.tied_jobs == (first, second)


def test_tied_jobs_leave_out_older_reruns() -> None:
    """Only jobs matching the winner's timestamps count as tied."""
    older = completed_job("older", "scope1", created=0)
    first = completed_job("first", "scope1", created=5)
    second = completed_job("second", "scope1", created=5)
    group = select_authoritative("scope1", [older, first, second])
    assert group.tie
    assert group.tied_jobs == (first, second)
    untied = select_authoritative("scope1", [older, first])
    assert untied.tied_jobs == (first,)


def test_select_authoritative_rejects_empty_stage() -> None:
    """A stage group needs at least one job."""
    with pytest.raises(ValueError):
        select_authoritative("scope1", [])


def test_build_run_snapshot_reports_ties() -> None:
    """Ambiguous ties surface as diagnostics on the snapshot."""
    jobs = [make_job("a", "scope1"), make_job("b", "scope1")]
    snapshot = build_run_snapshot(RunKey("Acme", 2024, "thread-1"), jobs)
    assert snapshot.job_count == 2
    assert [diagnostic.code for diagnostic in snapshot.diagnostics] == [
        DiagnosticCode.AMBIGUOUS_RERUN_TIE
    ]
    assert snapshot.diagnostics[0].job_id == "b"


def test_latest_activity_covers_every_job() -> None:
    """Run activity is the maximum activity over all jobs, reruns included."""
    jobs = [
        completed_job("1", "precheck", created=0),
        make_job("2", "scope1", created=3, started=40),
    ]
    snapshot = build_run_snapshot(RunKey("Acme", 2024, "thread-1"), jobs)
    assert snapshot.latest_activity_at == jobs[1].started_at


def test_fingerprint_is_stable_and_order_sensitive() -> None:
    """Equal inputs hash equally; reordering changes the hash."""
    jobs = [make_job("1", "precheck"), make_job("2", "scope1")]
    assert snapshot_fingerprint(jobs) == snapshot_fingerprint(list(jobs))
    assert snapshot_fingerprint(jobs) != snapshot_fingerprint(jobs[::-1])
