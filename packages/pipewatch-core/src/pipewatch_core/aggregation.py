"""Roll authoritative job statuses up to stages, steps and runs."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from pipewatch_core.grouping import RunSnapshot
from pipewatch_core.resolver import resolve_job_status
from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.primitives import STATUS_PRECEDENCE, DiagnosticCode, JobStatus
from pipewatch_schemas.topology import (
    UNCLASSIFIED_STEP_ID,
    UNCLASSIFIED_STEP_NAME,
    PipelineStep,
    PipelineTopology,
)
from pipewatch_schemas.views import RunView, StageView, StatusCounts, StepView


def combine_statuses(statuses: Iterable[JobStatus | str]) -> JobStatus:
    """Combine statuses by precedence, most actionable first.

    Args:
        statuses: Statuses to combine.

    Returns:
        JobStatus: The highest-precedence status, WAITING when empty.
    """
    present = {JobStatus(status) for status in statuses}
    if not present:
        return JobStatus.WAITING
    for status in STATUS_PRECEDENCE:
        if status in present:
            return status
    return JobStatus.WAITING


def tally_statuses(statuses: Iterable[JobStatus | str]) -> StatusCounts:
    """Count statuses into a StatusCounts payload.

    Returns:
        StatusCounts: Tally per status.
    """
    counter = Counter(JobStatus(status) for status in statuses)
    return StatusCounts(
        completed=counter[JobStatus.COMPLETED],
        processing=counter[JobStatus.PROCESSING],
        failed=counter[JobStatus.FAILED],
        needs_approval=counter[JobStatus.NEEDS_APPROVAL],
        waiting=counter[JobStatus.WAITING],
    )


def merge_counts(counts: Iterable[StatusCounts]) -> StatusCounts:
    """Sum several tallies.

    Returns:
        StatusCounts: Combined tally.
    """
    totals: Counter[str] = Counter()
    for item in counts:
        for status in JobStatus:
            totals[status.value] += item.get(status)
    return StatusCounts(
        completed=totals[JobStatus.COMPLETED.value],
        processing=totals[JobStatus.PROCESSING.value],
        failed=totals[JobStatus.FAILED.value],
        needs_approval=totals[JobStatus.NEEDS_APPROVAL.value],
        waiting=totals[JobStatus.WAITING.value],
    )


def stage_status(run: RunSnapshot, stage_id: str) -> JobStatus:
    """Return the authoritative status of a stage; WAITING without jobs.

    When reruns tie on their timestamps the worst tied status is reported,
    so a stage only completes if every tied job completed.
    """
    group = run.stages.get(stage_id)
    if group is None:
        return JobStatus.WAITING
    if group.tie:
        return combine_statuses(resolve_job_status(job) for job in group.tied_jobs)
    return resolve_job_status(group.authoritative)


def step_status(run: RunSnapshot, step: PipelineStep) -> JobStatus:
    """Roll a step up from its stages.

    Args:
        run: Grouped jobs of one run.
        step: Step to evaluate.

    Returns:
        JobStatus: Step status; completed only if every stage completed.
    """
    return combine_statuses(stage_status(run, stage_id) for stage_id in step.stage_ids)


def step_counts(run: RunSnapshot, step: PipelineStep) -> StatusCounts:
    """Count authoritative job statuses of the stages in a step.

    Stages without jobs are not counted.

    Returns:
        StatusCounts: Tally per status.
    """
    return tally_statuses(
        stage_status(run, stage_id)
        for stage_id in step.stage_ids
        if stage_id in run.stages
    )


def unclassified_step(
    run: RunSnapshot, topology: PipelineTopology
) -> PipelineStep | None:
    """Collect stages unknown to the topology into a trailing bucket step.

    Returns:
        PipelineStep | None: Bucket step, or None when every stage is known.
    """
    known = set(topology.stage_ids())
    unknown = [stage_id for stage_id in run.stages if stage_id not in known]
    if not unknown:
        return None
    last_order = max(step.order for step in topology.steps)
    return PipelineStep(
        step_id=UNCLASSIFIED_STEP_ID,
        name=UNCLASSIFIED_STEP_NAME,
        description="Stages missing from the pipeline topology",
        stage_ids=unknown,
        order=last_order + 1,
    )


def run_steps(run: RunSnapshot, topology: PipelineTopology) -> list[PipelineStep]:
    """Return the steps a run is evaluated over, unclassified bucket last."""
    steps = topology.ordered_steps()
    bucket = unclassified_step(run, topology)
    if bucket is not None:
        steps.append(bucket)
    return steps


def run_status(run: RunSnapshot, topology: PipelineTopology) -> JobStatus:
    """Roll a run up across every step of the pipeline.

    Args:
        run: Grouped jobs of one run.
        topology: Pipeline topology.

    Returns:
        JobStatus: Run status.
    """
    return combine_statuses(
        step_status(run, step) for step in run_steps(run, topology)
    )


def build_stage_view(
    run: RunSnapshot, stage_id: str, topology: PipelineTopology
) -> StageView:
    """Build the view of one stage within a run.

    Returns:
        StageView: Stage status with its full job history.
    """
    group = run.stages.get(stage_id)
    if group is None:
        return StageView(
            stage_id=stage_id,
            display_name=topology.display_name(stage_id),
            status=JobStatus.WAITING,
        )
    return StageView(
        stage_id=stage_id,
        display_name=topology.display_name(stage_id),
        status=stage_status(run, stage_id),
        authoritative_job_id=group.authoritative.job_id,
        jobs=list(group.jobs),
    )


def build_step_view(
    run: RunSnapshot, step: PipelineStep, topology: PipelineTopology
) -> StepView:
    """Build the rolled-up view of one step within a run.

    Returns:
        StepView: Step status, counts and stage views.
    """
    return StepView(
        step_id=step.step_id,
        name=step.name,
        order=step.order,
        status=step_status(run, step),
        counts=step_counts(run, step),
        stages=[
            build_stage_view(run, stage_id, topology) for stage_id in step.stage_ids
        ],
    )


def build_run_view(
    run: RunSnapshot,
    topology: PipelineTopology,
    *,
    run_index: int = 0,
    is_latest_run: bool = False,
) -> RunView:
    """Build the view of one run.

    Args:
        run: Grouped jobs of one run.
        topology: Pipeline topology.
        run_index: Position among the same year's runs, newest 0.
        is_latest_run: Whether this is the newest run for its year.

    Returns:
        RunView: Run status with per-step rollups.
    """
    step_views = [
        build_step_view(run, step, topology) for step in run_steps(run, topology)
    ]
    return RunView(
        entity_key=run.key.entity_key,
        year=run.key.year,
        thread_id=run.key.thread_id,
        latest_activity_at=run.latest_activity_at,
        status=combine_statuses(step.status for step in step_views),
        job_count=run.job_count,
        steps=step_views,
        run_index=run_index,
        is_latest_run=is_latest_run,
    )


def check_unclassified(
    run: RunSnapshot, topology: PipelineTopology
) -> list[Diagnostic]:
    """Report stages of a run that the topology does not know.

    Returns:
        list[Diagnostic]: One diagnostic per unknown stage.
    """
    bucket = unclassified_step(run, topology)
    if bucket is None:
        return []
    return [
        Diagnostic(
            code=DiagnosticCode.UNCLASSIFIED_STAGE,
            message=f"stage {stage_id!r} is not part of any pipeline step",
            entity_key=run.key.entity_key,
            stage_id=stage_id,
            thread_id=run.key.thread_id,
        )
        for stage_id in bucket.stage_ids
    ]
