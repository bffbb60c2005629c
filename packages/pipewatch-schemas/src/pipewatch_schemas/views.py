"""Derived status views for runs and entities."""

from __future__ import annotations

from collections.abc import Iterator

from pydantic import AwareDatetime, Field

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.jobs import JobRecord
from pipewatch_schemas.primitives import (
    EntityKey,
    JobId,
    JobStatus,
    StageId,
    StepId,
    ThreadId,
)


class StatusCounts(FrozenSchema):
    """Tally of authoritative job statuses."""

    completed: int = Field(0, ge=0, description="Completed jobs")
    processing: int = Field(0, ge=0, description="Processing jobs")
    failed: int = Field(0, ge=0, description="Failed jobs")
    needs_approval: int = Field(0, ge=0, description="Jobs awaiting approval")
    waiting: int = Field(0, ge=0, description="Waiting jobs")

    @property
    def total(self) -> int:
        """Total number of counted jobs."""
        return (
            self.completed
            + self.processing
            + self.failed
            + self.needs_approval
            + self.waiting
        )

    def get(self, status: JobStatus | str) -> int:
        """Return the count for one status."""
        return int(getattr(self, JobStatus(status).value))


class StageView(FrozenSchema):
    """Status of one stage within one run."""

    stage_id: StageId = Field(..., description="Stage identifier")
    display_name: str = Field(..., min_length=1, description="Stage display name")
    status: JobStatus = Field(..., description="Authoritative job status")
    authoritative_job_id: JobId | None = Field(
        None, description="Job that decides the status, None if never queued"
    )
    jobs: list[JobRecord] = Field(
        default_factory=list, description="Every job of the stage, oldest first"
    )

    @property
    def job_count(self) -> int:
        """Number of times the stage was queued in this run."""
        return len(self.jobs)

    @property
    def is_rerun(self) -> bool:
        """Whether the stage ran more than once in this run."""
        return len(self.jobs) > 1

    @property
    def authoritative_job(self) -> JobRecord | None:
        """The job whose status represents the stage."""
        for job in self.jobs:
            if job.job_id == self.authoritative_job_id:
                return job
        return None


class StepView(FrozenSchema):
    """Rolled-up status of one pipeline step within one run."""

    step_id: StepId = Field(..., description="Step identifier")
    name: str = Field(..., min_length=1, description="Step display name")
    order: int = Field(..., ge=0, description="Display order")
    status: JobStatus = Field(..., description="Rolled-up step status")
    counts: StatusCounts = Field(..., description="Authoritative job tallies")
    stages: list[StageView] = Field(..., description="Stages in display order")


class RunView(FrozenSchema):
    """Status of one run (thread) of the pipeline for one entity and year."""

    entity_key: EntityKey = Field(..., description="Owning entity")
    year: int | None = Field(None, description="Reporting year")
    thread_id: ThreadId = Field(..., description="Run identifier")
    latest_activity_at: AwareDatetime = Field(
        ..., description="Most recent activity over the run's jobs"
    )
    status: JobStatus = Field(..., description="Rolled-up run status")
    job_count: int = Field(..., ge=0, description="Jobs in the run, reruns included")
    steps: list[StepView] = Field(..., description="Steps in display order")
    run_index: int = Field(
        0, ge=0, description="Position among the same year's runs, newest 0"
    )
    is_latest_run: bool = Field(
        False, description="Whether this is the newest run for its year"
    )

    def get_step(self, step_id: str) -> StepView | None:
        """Return the view of one step, if present."""
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def iter_stages(self) -> Iterator[StageView]:
        """Iterate over every stage of every step."""
        for step in self.steps:
            yield from step.stages

    def get_stage(self, stage_id: str) -> StageView | None:
        """Return the view of one stage, if present."""
        for stage in self.iter_stages():
            if stage.stage_id == stage_id:
                return stage
        return None


class EntityView(FrozenSchema):
    """Every run of one entity, newest first, with diagnostics."""

    entity_key: EntityKey = Field(..., description="Entity identifier")
    runs: list[RunView] = Field(default_factory=list, description="Runs, newest first")
    diagnostics: list[Diagnostic] = Field(
        default_factory=list, description="Recovered anomalies"
    )

    @property
    def latest_activity_at(self) -> AwareDatetime | None:
        """Most recent activity across every run, None without runs."""
        if not self.runs:
            return None
        return max(run.latest_activity_at for run in self.runs)

    @property
    def years(self) -> list[int | None]:
        """Distinct reporting years in run order."""
        seen: list[int | None] = []
        for run in self.runs:
            if run.year not in seen:
                seen.append(run.year)
        return seen
