"""Log builders for aggregation diagnostics."""

from __future__ import annotations

from collections.abc import Sequence

from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.events import (
    AggregationCompletedData,
    AggregationEvent,
    DiagnosticRecordedData,
)
from pipewatch_schemas.logs import LogEntry
from pipewatch_schemas.primitives import CycleId, DiagnosticCode, LogLevel, Timestamp
from pipewatch_schemas.views import EntityView


def collect_diagnostics(entities: Sequence[EntityView]) -> list[Diagnostic]:
    """Flatten the diagnostics of several entity views.

    Returns:
        list[Diagnostic]: Diagnostics in entity order.
    """
    return [diagnostic for entity in entities for diagnostic in entity.diagnostics]


def build_diagnostic_log(
    timestamp: Timestamp, cycle_id: CycleId, diagnostic: Diagnostic
) -> LogEntry:
    """Build a log entry for one aggregation diagnostic.

    Args:
        timestamp: ISO-8601 timestamp.
        cycle_id: Cycle the diagnostic was recorded in.
        diagnostic: Diagnostic to log.

    Returns:
        LogEntry: Structured diagnostic log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=AggregationEvent.DIAGNOSTIC_RECORDED.value,
        cycle_id=cycle_id,
        stage_id=diagnostic.stage_id,
        message=diagnostic.message,
        data=DiagnosticRecordedData(
            code=DiagnosticCode(diagnostic.code),
            entity_key=diagnostic.entity_key,
            thread_id=diagnostic.thread_id,
            job_id=diagnostic.job_id,
        ).model_dump(mode="json", exclude_none=True),
    )


def build_aggregation_completed_log(
    timestamp: Timestamp, cycle_id: CycleId, entities: Sequence[EntityView]
) -> LogEntry:
    """Build a log entry summarizing an aggregation pass.

    Args:
        timestamp: ISO-8601 timestamp.
        cycle_id: Cycle the aggregation belongs to.
        entities: Computed entity views.

    Returns:
        LogEntry: Structured aggregation log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=AggregationEvent.COMPLETED.value,
        cycle_id=cycle_id,
        message="Aggregation completed",
        data=AggregationCompletedData(
            entity_count=len(entities),
            run_count=sum(len(entity.runs) for entity in entities),
            diagnostic_count=sum(len(entity.diagnostics) for entity in entities),
        ).model_dump(mode="json"),
    )
