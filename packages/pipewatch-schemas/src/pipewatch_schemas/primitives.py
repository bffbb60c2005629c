"""Primitive types and enums shared across pipewatch schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import Field

ISO_8601_PATTERN = (
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d+)?"
    r"(?:Z|[+-]\d{2}:\d{2})$"
)
EVENT_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"
STEP_ID_PATTERN = r"^[a-z][a-z0-9_-]*$"

type JobId = Annotated[str, Field(min_length=1)]
type StageId = Annotated[str, Field(min_length=1)]
type StepId = Annotated[str, Field(pattern=STEP_ID_PATTERN)]
type EntityKey = Annotated[str, Field(min_length=1)]
type ThreadId = Annotated[str, Field(min_length=1)]
type CycleId = UUID
type Timestamp = Annotated[str, Field(pattern=ISO_8601_PATTERN)]
type EventName = Annotated[str, Field(pattern=EVENT_NAME_PATTERN)]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]


class JobStatus(StrEnum):
    """Derived status of a job, a step, or a run."""

    WAITING = "waiting"
    PROCESSING = "processing"
    NEEDS_APPROVAL = "needs_approval"
    COMPLETED = "completed"
    FAILED = "failed"


# Most actionable first; used to roll statuses up from jobs to steps to runs.
STATUS_PRECEDENCE = [
    JobStatus.FAILED,
    JobStatus.NEEDS_APPROVAL,
    JobStatus.PROCESSING,
    JobStatus.WAITING,
    JobStatus.COMPLETED,
]

ISSUE_STATUSES = frozenset({JobStatus.FAILED, JobStatus.NEEDS_APPROVAL})


class RunScope(StrEnum):
    """Which runs of an entity participate in filtering and counting."""

    LATEST = "latest"
    ALL = "all"


class FilterType(StrEnum):
    """Entity filters offered to consumers."""

    PENDING_APPROVAL = "pending_approval"
    HAS_FAILED = "has_failed"
    HAS_PROCESSING = "has_processing"
    FULLY_COMPLETED = "fully_completed"
    HAS_ISSUES = "has_issues"
    STEP_ISSUES = "step_issues"


class DiagnosticCode(StrEnum):
    """Non-fatal anomalies recorded during aggregation or fetching."""

    INCONSISTENT_TIMESTAMPS = "inconsistent_timestamps"
    FAILED_WITHOUT_FINISH = "failed_without_finish"
    ORPHANED_PARENT = "orphaned_parent"
    AMBIGUOUS_RERUN_TIE = "ambiguous_rerun_tie"
    UNCLASSIFIED_STAGE = "unclassified_stage"
    STAGE_DATA_MISSING = "stage_data_missing"
    MALFORMED_JOB = "malformed_job"


class SourceKind(StrEnum):
    """Supported job source transports."""

    API = "api"
    FILE = "file"


class LogLevel(StrEnum):
    """Log level values for JSONL logs."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogSinkType(StrEnum):
    """Supported log sink types."""

    CONSOLE = "console"
    FILE = "file"
    NOOP = "noop"
