"""Bulk-rerun target selection and request building."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pipewatch_core.predicates import filter_entities
from pipewatch_core.scope import select_runs
from pipewatch_schemas.filters import EntityFilter
from pipewatch_schemas.primitives import RunScope
from pipewatch_schemas.rerun import RerunJobData, RerunRequest, RerunTarget
from pipewatch_schemas.views import EntityView

DEFAULT_ANCHOR_STAGE_ID = "extractEmissions"

# Follow-up stage -> key understood by the rerun-and-save endpoint.
FOLLOW_UP_SCOPE_KEYS: dict[str, str] = {
    "followUpScope1": "scope1",
    "followUpScope2": "scope2",
    "followUpScope12": "scope1+2",
    "followUpScope3": "scope3",
    "followUpBiogenic": "biogenic",
    "followUpEconomy": "economy",
    "followUpGoals": "goals",
    "followUpInitiatives": "initiatives",
    "followUpBaseYear": "baseYear",
    "followUpIndustryGics": "industryGics",
    "followUpFiscalYear": "fiscalYear",
    "followUpCompanyTags": "companyTags",
}


def resolve_follow_up_keys(values: Sequence[str]) -> list[str]:
    """Map follow-up stage ids or keys to rerun keys, dropping duplicates.

    Args:
        values: Stage ids such as ``followUpScope3`` or keys such as
            ``scope3``.

    Returns:
        list[str]: Rerun keys in first-seen order.

    Raises:
        ValueError: If a value is neither a follow-up stage nor a key.
    """
    known_keys = set(FOLLOW_UP_SCOPE_KEYS.values())
    keys: list[str] = []
    for value in values:
        key = FOLLOW_UP_SCOPE_KEYS.get(value, value)
        if key not in known_keys:
            raise ValueError(f"Unknown follow-up scope: {value}")
        if key not in keys:
            keys.append(key)
    return keys


def select_rerun_targets(
    entities: Sequence[EntityView],
    anchor_stage_id: str = DEFAULT_ANCHOR_STAGE_ID,
    *,
    filters: Sequence[EntityFilter] = (),
    scope: RunScope | str = RunScope.LATEST,
    search: str | None = None,
    limit: int | None = None,
    wikidata_nodes: Mapping[str, str] | None = None,
) -> list[RerunTarget]:
    """Pick the anchor job to rerun for each matching entity.

    Entities are walked in order; each contributes the authoritative anchor
    job of its newest selected run. Entities whose newest run never queued
    the anchor stage are skipped.

    Args:
        entities: Entity views, typically newest activity first.
        anchor_stage_id: Stage whose job is rerun.
        filters: Filters an entity must match.
        scope: Run scope for filters and run selection.
        search: Optional case-insensitive entity search.
        limit: Maximum number of targets, None for all.
        wikidata_nodes: Optional wikidata node per entity key.

    Returns:
        list[RerunTarget]: Selected targets.

    Raises:
        ValueError: If limit is not positive.
    """
    if limit is not None and limit < 1:
        raise ValueError("limit must be at least 1")
    nodes = wikidata_nodes or {}
    targets: list[RerunTarget] = []
    for entity in filter_entities(entities, filters, scope, search=search):
        if limit is not None and len(targets) >= limit:
            break
        runs = select_runs(entity.runs, scope)
        if not runs:
            continue
        newest = runs[0]
        stage = newest.get_stage(anchor_stage_id)
        if stage is None or stage.authoritative_job_id is None:
            continue
        targets.append(
            RerunTarget(
                entity_key=entity.entity_key,
                year=newest.year,
                thread_id=newest.thread_id,
                stage_id=anchor_stage_id,
                job_id=stage.authoritative_job_id,
                wikidata_node=nodes.get(entity.entity_key),
            )
        )
    return targets


def build_rerun_request(
    scopes: Sequence[str], wikidata_node: str | None = None
) -> RerunRequest:
    """Build the rerun-and-save request body for an anchor job.

    Args:
        scopes: Follow-up stage ids or keys to rerun.
        wikidata_node: Optional wikidata node forwarded as job data.

    Returns:
        RerunRequest: Request body; dump with ``by_alias=True`` for the wire.
    """
    job_data = None
    if wikidata_node:
        job_data = RerunJobData(wikidata={"node": wikidata_node})
    return RerunRequest(scopes=resolve_follow_up_keys(scopes), job_data=job_data)
