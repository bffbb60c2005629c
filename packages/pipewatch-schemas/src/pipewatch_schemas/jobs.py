"""Canonical job record schemas."""

from __future__ import annotations

from pydantic import AwareDatetime, Field, model_validator

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.primitives import EntityKey, JobId, StageId, ThreadId


class JobFailure(FrozenSchema):
    """Failure details reported by the job queue."""

    reason: str | None = Field(None, description="Failure reason if reported")
    stacktrace: list[str] = Field(
        default_factory=list, description="Stack trace lines, newest last"
    )


class JobApproval(FrozenSchema):
    """Human-approval gate attached to a job."""

    required: bool = Field(..., description="Whether a human must approve")
    approved: bool = Field(False, description="Whether the gate was approved")
    summary: str | None = Field(None, description="What is being approved")
    comment: str | None = Field(None, description="Reviewer comment")

    @model_validator(mode="after")
    def _validate_approved(self) -> JobApproval:
        if self.approved and not self.required:
            raise ValueError("approved gates must be required")
        return self


class JobParentRef(FrozenSchema):
    """Reference to a causally preceding job, used for display only."""

    stage_id: StageId = Field(..., description="Stage of the parent job")
    job_id: JobId = Field(..., description="Parent job identifier")


class JobRecord(FrozenSchema):
    """One execution fact for one stage of one run.

    Records are append-only: a manual rerun produces a new record with the
    same thread_id and a later created_at instead of mutating this one.
    Timestamp ordering is not enforced here; inconsistent records are
    detected by the status resolver and reported as diagnostics.
    """

    job_id: JobId = Field(..., description="Job identifier, unique per stage")
    stage_id: StageId = Field(..., description="Processing stage identifier")
    entity_key: EntityKey = Field(..., description="Owning business entity")
    year: int | None = Field(
        None, description="Reporting year, None for entity-wide jobs"
    )
    thread_id: ThreadId = Field(..., description="Run (thread) identifier")
    created_at: AwareDatetime = Field(..., description="When the job was queued")
    started_at: AwareDatetime | None = Field(
        None, description="When processing started"
    )
    finished_at: AwareDatetime | None = Field(
        None, description="When processing finished"
    )
    failed: bool = Field(False, description="Whether the job failed")
    failure: JobFailure | None = Field(None, description="Failure details")
    approval: JobApproval | None = Field(None, description="Approval gate")
    parent: JobParentRef | None = Field(None, description="Parent job reference")
    attempts_made: int = Field(
        0, ge=0, description="Low-level execution retries inside this job"
    )

    @property
    def activity_at(self) -> AwareDatetime:
        """Most recent lifecycle timestamp reached by the job."""
        return self.finished_at or self.started_at or self.created_at
