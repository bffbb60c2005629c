"""Non-fatal diagnostics reported alongside derived status views."""

from __future__ import annotations

from pydantic import Field

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.primitives import (
    DiagnosticCode,
    EntityKey,
    JobId,
    StageId,
    ThreadId,
)


class Diagnostic(FrozenSchema):
    """An anomaly that was recovered from instead of raised."""

    code: DiagnosticCode = Field(..., description="Diagnostic category")
    message: str = Field(..., min_length=1, description="Human-readable detail")
    entity_key: EntityKey | None = Field(None, description="Affected entity")
    stage_id: StageId | None = Field(None, description="Affected stage")
    thread_id: ThreadId | None = Field(None, description="Affected run")
    job_id: JobId | None = Field(None, description="Offending job")
