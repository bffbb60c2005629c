"""JSONL log entry schema for fetch and aggregation events."""

from __future__ import annotations

from pydantic import Field

from pipewatch_schemas.base import BaseSchema
from pipewatch_schemas.primitives import (
    CycleId,
    EventName,
    JsonValue,
    LogLevel,
    StageId,
    Timestamp,
)


class LogEntry(BaseSchema):
    """Single log line in JSONL format."""

    timestamp: Timestamp = Field(
        ..., description="ISO-8601 timestamp for the log entry"
    )
    level: LogLevel = Field(..., description="Log level")
    event: EventName = Field(..., description="Event name")
    cycle_id: CycleId = Field(..., description="Fetch/aggregation cycle identifier")
    stage_id: StageId | None = Field(None, description="Stage if applicable")
    message: str = Field(..., min_length=1, description="Log message")
    data: dict[str, JsonValue] | None = Field(None, description="Structured event data")
