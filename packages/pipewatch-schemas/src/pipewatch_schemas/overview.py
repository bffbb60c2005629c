"""Overview statistics across many entities."""

from __future__ import annotations

from pydantic import Field

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.primitives import RunScope, StepId
from pipewatch_schemas.views import StatusCounts


class StepOverview(FrozenSchema):
    """Step status tallies across the selected runs of many entities."""

    step_id: StepId = Field(..., description="Step identifier")
    name: str = Field(..., min_length=1, description="Step display name")
    run_statuses: StatusCounts = Field(
        ..., description="Rolled-up step status per selected run"
    )
    job_statuses: StatusCounts = Field(
        ..., description="Authoritative job statuses inside the step"
    )


class OverviewStats(FrozenSchema):
    """Dashboard overview numbers for one scope."""

    scope: RunScope = Field(..., description="Run scope used for the numbers")
    total_entities: int = Field(..., ge=0, description="Entities considered")
    total_runs: int = Field(..., ge=0, description="Selected runs")
    active_jobs: int = Field(..., ge=0, description="Jobs currently processing")
    stage_statuses: StatusCounts = Field(
        ..., description="Stage status tallies over selected runs"
    )
    completion_rate: float = Field(
        ..., ge=0, le=100, description="Percent of stages completed"
    )
    entities_with_failed: int = Field(..., ge=0, description="Entities with failures")
    entities_with_needs_approval: int = Field(
        ..., ge=0, description="Entities with pending approvals"
    )
    steps: list[StepOverview] = Field(..., description="Per-step tallies")
