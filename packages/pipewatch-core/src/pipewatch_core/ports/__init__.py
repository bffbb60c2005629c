"""Port interfaces for pipewatch collaborators."""

from pipewatch_core.ports.fetch import (
    RETRYABLE_FETCH_ERRORS,
    FetchError,
    FetchErrorCode,
    FetchErrorDetails,
    FetchErrorInfo,
    JobPage,
    JobSnapshot,
    JobSourceProtocol,
    SkippedJob,
    StageFetchResult,
    build_fetch_cycle_completed_log,
    build_fetch_cycle_started_log,
    build_fetch_retry_log,
    build_fetch_stage_completed_log,
    build_fetch_stage_failed_log,
    build_fetch_stage_started_log,
)
from pipewatch_core.ports.sinks import LogSinkProtocol

__all__ = [
    "RETRYABLE_FETCH_ERRORS",
    "FetchError",
    "FetchErrorCode",
    "FetchErrorDetails",
    "FetchErrorInfo",
    "JobPage",
    "JobSnapshot",
    "JobSourceProtocol",
    "LogSinkProtocol",
    "SkippedJob",
    "StageFetchResult",
    "build_fetch_cycle_completed_log",
    "build_fetch_cycle_started_log",
    "build_fetch_retry_log",
    "build_fetch_stage_completed_log",
    "build_fetch_stage_failed_log",
    "build_fetch_stage_started_log",
]
