"""Entity status views computed from a job snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime

from pipewatch_core.aggregation import build_run_view, check_unclassified
from pipewatch_core.grouping import RunSnapshot, build_run_snapshot, group_runs
from pipewatch_core.resolver import check_job
from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.jobs import JobRecord
from pipewatch_schemas.primitives import DiagnosticCode
from pipewatch_schemas.topology import PipelineTopology
from pipewatch_schemas.views import EntityView, RunView

type StageJobIndex = Mapping[str, frozenset[str]]


def build_stage_job_index(jobs: Iterable[JobRecord]) -> dict[str, frozenset[str]]:
    """Index job ids by stage for parent lookups.

    Returns:
        dict[str, frozenset[str]]: Job ids per stage present in the snapshot.
    """
    index: dict[str, set[str]] = {}
    for job in jobs:
        index.setdefault(job.stage_id, set()).add(job.job_id)
    return {stage_id: frozenset(job_ids) for stage_id, job_ids in index.items()}


def check_parents(
    jobs: Iterable[JobRecord], stage_index: StageJobIndex
) -> list[Diagnostic]:
    """Report parent references that the snapshot proves missing.

    A parent is only reported when its stage has data in the snapshot but no
    job with the referenced id; a partial snapshot cannot prove more.

    Args:
        jobs: Jobs to inspect.
        stage_index: Job ids per stage of the full snapshot.

    Returns:
        list[Diagnostic]: Orphaned parent diagnostics.
    """
    diagnostics: list[Diagnostic] = []
    for job in jobs:
        if job.parent is None:
            continue
        known = stage_index.get(job.parent.stage_id)
        if known is None or job.parent.job_id in known:
            continue
        diagnostics.append(
            Diagnostic(
                code=DiagnosticCode.ORPHANED_PARENT,
                message=(
                    f"parent {job.parent.stage_id}/{job.parent.job_id} "
                    "is not in the snapshot"
                ),
                entity_key=job.entity_key,
                stage_id=job.stage_id,
                thread_id=job.thread_id,
                job_id=job.job_id,
            )
        )
    return diagnostics


def compute_entity_view(
    entity_key: str,
    jobs: Sequence[JobRecord],
    topology: PipelineTopology,
    *,
    stage_index: StageJobIndex | None = None,
) -> EntityView:
    """Compute the status view of one entity.

    Jobs of other entities are ignored, but still count as evidence for
    parent lookups.

    Args:
        entity_key: Entity to compute.
        jobs: Current job snapshot.
        topology: Pipeline topology.
        stage_index: Optional precomputed index from
            ``build_stage_job_index(jobs)``.

    Returns:
        EntityView: Runs newest first, with diagnostics.
    """
    if stage_index is None:
        stage_index = build_stage_job_index(jobs)
    entity_jobs = [job for job in jobs if job.entity_key == entity_key]

    diagnostics: list[Diagnostic] = []
    for job in entity_jobs:
        diagnostics.extend(check_job(job))
    diagnostics.extend(check_parents(entity_jobs, stage_index))

    snapshots = [
        build_run_snapshot(key, bucket)
        for key, bucket in group_runs(entity_jobs).items()
    ]
    snapshots.sort(key=_snapshot_recency_key, reverse=True)

    runs: list[RunView] = []
    year_positions: dict[int | None, int] = {}
    for snapshot in snapshots:
        diagnostics.extend(snapshot.diagnostics)
        diagnostics.extend(check_unclassified(snapshot, topology))
        run_index = year_positions.get(snapshot.key.year, 0)
        year_positions[snapshot.key.year] = run_index + 1
        runs.append(
            build_run_view(
                snapshot,
                topology,
                run_index=run_index,
                is_latest_run=run_index == 0,
            )
        )
    return EntityView(entity_key=entity_key, runs=runs, diagnostics=diagnostics)


def compute_entity_views(
    jobs: Sequence[JobRecord], topology: PipelineTopology
) -> list[EntityView]:
    """Compute the views of every entity in a snapshot.

    Args:
        jobs: Current job snapshot.
        topology: Pipeline topology.

    Returns:
        list[EntityView]: Views ordered by most recent activity, newest first.
    """
    stage_index = build_stage_job_index(jobs)
    entity_keys = list(dict.fromkeys(job.entity_key for job in jobs))
    views = [
        compute_entity_view(entity_key, jobs, topology, stage_index=stage_index)
        for entity_key in entity_keys
    ]
    views.sort(key=lambda view: view.entity_key)
    views.sort(key=_entity_recency, reverse=True)
    return views


def _snapshot_recency_key(snapshot: RunSnapshot) -> tuple[datetime, str]:
    return (snapshot.latest_activity_at, snapshot.key.thread_id)


def _entity_recency(view: EntityView) -> datetime:
    latest = view.latest_activity_at
    if latest is None:
        return datetime.min.replace(tzinfo=UTC)
    return latest
