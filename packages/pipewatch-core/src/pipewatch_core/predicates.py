"""Entity filter predicates over selected runs."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from pipewatch_core.scope import select_runs
from pipewatch_schemas.filters import EntityFilter
from pipewatch_schemas.primitives import (
    ISSUE_STATUSES,
    FilterType,
    JobStatus,
    RunScope,
)
from pipewatch_schemas.topology import UNCLASSIFIED_STEP_ID, PipelineTopology
from pipewatch_schemas.views import EntityView

type EntityPredicate = Callable[[EntityView], bool]


def _has_job_status(
    entity: EntityView, scope: RunScope | str, status: JobStatus
) -> bool:
    for run in select_runs(entity.runs, scope):
        for stage in run.iter_stages():
            if stage.authoritative_job_id is not None and stage.status == status:
                return True
    return False


def has_pending_approval(
    entity: EntityView, scope: RunScope | str = RunScope.LATEST
) -> bool:
    """Return True if any selected run has a job awaiting approval."""
    return _has_job_status(entity, scope, JobStatus.NEEDS_APPROVAL)


def has_failed_jobs(
    entity: EntityView, scope: RunScope | str = RunScope.LATEST
) -> bool:
    """Return True if any selected run has a failed job."""
    return _has_job_status(entity, scope, JobStatus.FAILED)


def has_processing_jobs(
    entity: EntityView, scope: RunScope | str = RunScope.LATEST
) -> bool:
    """Return True if any selected run has a job in progress."""
    return _has_job_status(entity, scope, JobStatus.PROCESSING)


def is_fully_completed(
    entity: EntityView, scope: RunScope | str = RunScope.LATEST
) -> bool:
    """Return True if every selected run has jobs and completed.

    An entity without runs is never fully completed.

    Args:
        entity: Entity view.
        scope: Run scope.

    Returns:
        bool: Whether all selected runs are completed.
    """
    runs = select_runs(entity.runs, scope)
    if not runs:
        return False
    return all(
        run.job_count > 0 and run.status == JobStatus.COMPLETED for run in runs
    )


def has_issues(entity: EntityView, scope: RunScope | str = RunScope.LATEST) -> bool:
    """Return True if any selected run has a failure or pending approval."""
    return has_failed_jobs(entity, scope) or has_pending_approval(entity, scope)


def has_pipeline_step_issues(
    entity: EntityView, step_id: str, scope: RunScope | str = RunScope.LATEST
) -> bool:
    """Return True if a selected run's step is failed or awaiting approval.

    Args:
        entity: Entity view.
        step_id: Step to inspect.
        scope: Run scope.

    Returns:
        bool: Whether the step needs attention in any selected run.
    """
    for run in select_runs(entity.runs, scope):
        step = run.get_step(step_id)
        if step is not None and step.status in ISSUE_STATUSES:
            return True
    return False


def build_predicate(
    entity_filter: EntityFilter, scope: RunScope | str = RunScope.LATEST
) -> EntityPredicate:
    """Bind a filter and scope into a predicate over entities.

    Args:
        entity_filter: Active filter.
        scope: Run scope.

    Returns:
        EntityPredicate: Predicate for the filter.

    Raises:
        ValueError: If the filter type is unknown.
    """
    filter_type = FilterType(entity_filter.filter_type)
    if filter_type == FilterType.PENDING_APPROVAL:
        return lambda entity: has_pending_approval(entity, scope)
    if filter_type == FilterType.HAS_FAILED:
        return lambda entity: has_failed_jobs(entity, scope)
    if filter_type == FilterType.HAS_PROCESSING:
        return lambda entity: has_processing_jobs(entity, scope)
    if filter_type == FilterType.FULLY_COMPLETED:
        return lambda entity: is_fully_completed(entity, scope)
    if filter_type == FilterType.HAS_ISSUES:
        return lambda entity: has_issues(entity, scope)
    if filter_type == FilterType.STEP_ISSUES and entity_filter.step_id is not None:
        step_id = entity_filter.step_id
        return lambda entity: has_pipeline_step_issues(entity, step_id, scope)
    raise ValueError(f"Unsupported filter: {entity_filter.key}")


def matches_filters(
    entity: EntityView,
    filters: Iterable[EntityFilter],
    scope: RunScope | str = RunScope.LATEST,
) -> bool:
    """Return True if the entity satisfies every filter (logical AND)."""
    return all(build_predicate(item, scope)(entity) for item in filters)


def filter_entities(
    entities: Sequence[EntityView],
    filters: Sequence[EntityFilter] = (),
    scope: RunScope | str = RunScope.LATEST,
    *,
    search: str | None = None,
) -> list[EntityView]:
    """Filter entities by active filters and an optional name search.

    Args:
        entities: Entity views.
        filters: Active filters, combined with logical AND.
        scope: Run scope applied to every filter.
        search: Case-insensitive substring matched against entity keys.

    Returns:
        list[EntityView]: Matching entities in input order.
    """
    predicates = [build_predicate(item, scope) for item in filters]
    needle = search.strip().casefold() if search else ""
    return [
        entity
        for entity in entities
        if (not needle or needle in entity.entity_key.casefold())
        and all(predicate(entity) for predicate in predicates)
    ]


def available_filters(
    topology: PipelineTopology, entities: Sequence[EntityView] = ()
) -> list[EntityFilter]:
    """List every filter offered for a topology, one step filter per step.

    The unclassified bucket step gets a filter too once any of the given
    entities has a run with stages unknown to the topology.

    Args:
        topology: Pipeline topology.
        entities: Entity views checked for the unclassified bucket.

    Returns:
        list[EntityFilter]: Filters in display order.
    """
    filters = [
        EntityFilter(filter_type=filter_type)
        for filter_type in FilterType
        if filter_type != FilterType.STEP_ISSUES
    ]
    filters.extend(
        EntityFilter(filter_type=FilterType.STEP_ISSUES, step_id=step.step_id)
        for step in topology.ordered_steps()
    )
    if any(
        run.get_step(UNCLASSIFIED_STEP_ID) is not None
        for entity in entities
        for run in entity.runs
    ):
        filters.append(
            EntityFilter(
                filter_type=FilterType.STEP_ISSUES, step_id=UNCLASSIFIED_STEP_ID
            )
        )
    return filters


def count_filter_matches(
    entities: Sequence[EntityView],
    topology: PipelineTopology,
    scope: RunScope | str = RunScope.LATEST,
) -> dict[str, int]:
    """Count matching entities for every available filter on its own.

    Args:
        entities: Entity views.
        topology: Pipeline topology providing the step filters.
        scope: Run scope.

    Returns:
        dict[str, int]: Match counts keyed by filter key.
    """
    counts: dict[str, int] = {}
    for entity_filter in available_filters(topology, entities):
        predicate = build_predicate(entity_filter, scope)
        counts[entity_filter.key] = sum(1 for entity in entities if predicate(entity))
    return counts
