"""Bulk-rerun targeting schemas."""

from __future__ import annotations

from pydantic import Field

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.primitives import EntityKey, JobId, StageId, ThreadId


class RerunTarget(FrozenSchema):
    """A job selected as the anchor for a bulk rerun."""

    entity_key: EntityKey = Field(..., description="Entity to rerun")
    year: int | None = Field(None, description="Reporting year of the run")
    thread_id: ThreadId = Field(..., description="Run the job belongs to")
    stage_id: StageId = Field(..., description="Anchor stage")
    job_id: JobId = Field(..., description="Authoritative anchor job")
    wikidata_node: str | None = Field(
        None, description="Wikidata node passed along with the rerun"
    )


class RerunJobData(FrozenSchema):
    """Extra job data forwarded with a rerun request."""

    wikidata: dict[str, str] = Field(..., description="Wikidata context")


class RerunRequest(FrozenSchema):
    """Body of a rerun-and-save request for an anchor job."""

    scopes: list[str] = Field(..., min_length=1, description="Follow-up keys to run")
    job_data: RerunJobData | None = Field(
        None, serialization_alias="jobData", description="Optional job data"
    )
