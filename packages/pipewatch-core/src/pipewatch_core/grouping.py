"""Group job records into runs and pick the authoritative job per stage."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple

from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.jobs import JobRecord
from pipewatch_schemas.primitives import DiagnosticCode


class RunKey(NamedTuple):
    """Identity of one run: entity, reporting year and thread."""

    entity_key: str
    year: int | None
    thread_id: str


@dataclass(frozen=True)
class StageGroup:
    """Every job of one stage within one run, plus the one that counts."""

    stage_id: str
    jobs: tuple[JobRecord, ...]
    authoritative: JobRecord
    tie: bool = False

    @property
    def is_rerun(self) -> bool:
        """Whether the stage was queued more than once in the run."""
        return len(self.jobs) > 1

    @property
    def tied_jobs(self) -> tuple[JobRecord, ...]:
        """Jobs sharing the authoritative job's activity and creation times.

        Holds only the authoritative job unless ``tie`` is set.
        """
        if not self.tie:
            return (self.authoritative,)
        mark = (self.authoritative.activity_at, self.authoritative.created_at)
        return tuple(
            job for job in self.jobs if (job.activity_at, job.created_at) == mark
        )


@dataclass(frozen=True)
class RunSnapshot:
    """Immutable grouping of one run's jobs by stage."""

    key: RunKey
    stages: dict[str, StageGroup]
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def job_count(self) -> int:
        """Number of jobs in the run, reruns included."""
        return sum(len(group.jobs) for group in self.stages.values())

    @property
    def latest_activity_at(self) -> datetime:
        """Most recent activity timestamp over every job of the run."""
        return max(
            job.activity_at for group in self.stages.values() for job in group.jobs
        )


def run_key(job: JobRecord) -> RunKey:
    """Return the run identity of a job."""
    return RunKey(job.entity_key, job.year, job.thread_id)


def group_runs(jobs: Iterable[JobRecord]) -> dict[RunKey, list[JobRecord]]:
    """Bucket jobs by run, preserving input order within each bucket.

    Args:
        jobs: Job records of any number of entities.

    Returns:
        dict[RunKey, list[JobRecord]]: Jobs keyed by run identity, buckets in
        order of first appearance.
    """
    buckets: dict[RunKey, list[JobRecord]] = {}
    for job in jobs:
        buckets.setdefault(run_key(job), []).append(job)
    return buckets


def group_by_stage(bucket: Sequence[JobRecord]) -> dict[str, list[JobRecord]]:
    """Split a run's jobs by stage, each list ordered by created_at.

    The sort is stable, so jobs created at the same instant keep their input
    order.

    Args:
        bucket: Jobs of a single run.

    Returns:
        dict[str, list[JobRecord]]: Jobs keyed by stage id.
    """
    stages: dict[str, list[JobRecord]] = {}
    for job in bucket:
        stages.setdefault(job.stage_id, []).append(job)
    return {
        stage_id: sorted(stage_jobs, key=lambda job: job.created_at)
        for stage_id, stage_jobs in stages.items()
    }


def authoritative_sort_key(
    job: JobRecord, position: int
) -> tuple[datetime, datetime, int]:
    """Ordering used to pick the job that represents a stage.

    Greater keys win: most recent activity first, then latest creation, then
    the later position in the input.

    Args:
        job: Candidate job.
        position: Index of the job in its stage list.

    Returns:
        tuple[datetime, datetime, int]: Comparable key.
    """
    return (job.activity_at, job.created_at, position)


def select_authoritative(stage_id: str, jobs: Sequence[JobRecord]) -> StageGroup:
    """Pick the authoritative job among one stage's jobs in a run.

    Args:
        stage_id: Stage identifier.
        jobs: Jobs of the stage ordered by created_at; must not be empty.

    Returns:
        StageGroup: Full history plus the authoritative job. ``tie`` is set
        when the winner shares activity and creation timestamps with another
        job and was chosen by input order.

    Raises:
        ValueError: If ``jobs`` is empty.
    """
    if not jobs:
        raise ValueError(f"stage {stage_id!r} has no jobs")
    ranked = sorted(
        enumerate(jobs), key=lambda item: authoritative_sort_key(item[1], item[0])
    )
    _, winner = ranked[-1]
    tie = False
    if len(ranked) > 1:
        _, runner_up = ranked[-2]
        tie = (runner_up.activity_at, runner_up.created_at) == (
            winner.activity_at,
            winner.created_at,
        )
    return StageGroup(
        stage_id=stage_id, jobs=tuple(jobs), authoritative=winner, tie=tie
    )


def build_run_snapshot(key: RunKey, bucket: Sequence[JobRecord]) -> RunSnapshot:
    """Group a run's jobs by stage and resolve rerun ties.

    Args:
        key: Run identity.
        bucket: Jobs of the run.

    Returns:
        RunSnapshot: Stage groups plus tie diagnostics.
    """
    stages: dict[str, StageGroup] = {}
    diagnostics: list[Diagnostic] = []
    for stage_id, stage_jobs in group_by_stage(bucket).items():
        group = select_authoritative(stage_id, stage_jobs)
        stages[stage_id] = group
        if group.tie:
            diagnostics.append(
                Diagnostic(
                    code=DiagnosticCode.AMBIGUOUS_RERUN_TIE,
                    message=(
                        f"{len(group.jobs)} jobs of stage {stage_id!r} share "
                        "the latest timestamps; kept the last one received"
                    ),
                    entity_key=key.entity_key,
                    stage_id=stage_id,
                    thread_id=key.thread_id,
                    job_id=group.authoritative.job_id,
                )
            )
    return RunSnapshot(key=key, stages=stages, diagnostics=tuple(diagnostics))


def snapshot_fingerprint(jobs: Iterable[JobRecord]) -> str:
    """Hash a job snapshot, input order included.

    Input order breaks residual rerun ties, so it is part of the hash. Equal
    fingerprints mean equal derived views and callers may memoize
    aggregation results by this value.

    Args:
        jobs: Job records as passed to aggregation.

    Returns:
        str: Hex SHA-256 digest.
    """
    digest = hashlib.sha256()
    for job in jobs:
        digest.update(job.model_dump_json().encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()
