"""Overview statistics across many entities."""

from __future__ import annotations

from collections.abc import Sequence

from pipewatch_core.aggregation import merge_counts, tally_statuses
from pipewatch_core.predicates import has_failed_jobs, has_pending_approval
from pipewatch_core.scope import select_runs
from pipewatch_schemas.overview import OverviewStats, StepOverview
from pipewatch_schemas.primitives import RunScope
from pipewatch_schemas.topology import (
    UNCLASSIFIED_STEP_ID,
    UNCLASSIFIED_STEP_NAME,
    PipelineTopology,
)
from pipewatch_schemas.views import EntityView, RunView


def compute_overview(
    entities: Sequence[EntityView],
    topology: PipelineTopology,
    scope: RunScope | str = RunScope.LATEST,
) -> OverviewStats:
    """Summarize the selected runs of many entities.

    Args:
        entities: Entity views.
        topology: Pipeline topology providing the step order.
        scope: Run scope.

    Returns:
        OverviewStats: Totals, completion rate and per-step tallies.
    """
    runs: list[RunView] = []
    for entity in entities:
        runs.extend(select_runs(entity.runs, scope))

    stage_statuses = merge_counts(step.counts for run in runs for step in run.steps)
    completion_rate = 0.0
    if stage_statuses.total > 0:
        completion_rate = round(
            stage_statuses.completed / stage_statuses.total * 100, 2
        )

    step_ids = [step.step_id for step in topology.ordered_steps()]
    step_names = {step.step_id: step.name for step in topology.steps}
    if any(run.get_step(UNCLASSIFIED_STEP_ID) is not None for run in runs):
        step_ids.append(UNCLASSIFIED_STEP_ID)
        step_names[UNCLASSIFIED_STEP_ID] = UNCLASSIFIED_STEP_NAME

    steps: list[StepOverview] = []
    for step_id in step_ids:
        step_views = [
            step
            for step in (run.get_step(step_id) for run in runs)
            if step is not None
        ]
        steps.append(
            StepOverview(
                step_id=step_id,
                name=step_names[step_id],
                run_statuses=tally_statuses(step.status for step in step_views),
                job_statuses=merge_counts(step.counts for step in step_views),
            )
        )

    return OverviewStats(
        scope=RunScope(scope),
        total_entities=len(entities),
        total_runs=len(runs),
        active_jobs=stage_statuses.processing,
        stage_statuses=stage_statuses,
        completion_rate=completion_rate,
        entities_with_failed=sum(
            1 for entity in entities if has_failed_jobs(entity, scope)
        ),
        entities_with_needs_approval=sum(
            1 for entity in entities if has_pending_approval(entity, scope)
        ),
        steps=steps,
    )
