"""pipewatch-core: Status aggregation and filtering for pipewatch."""

from pipewatch_core.aggregation import (
    build_run_view,
    combine_statuses,
    run_status,
    step_counts,
    step_status,
)
from pipewatch_core.diagnostics import (
    build_aggregation_completed_log,
    build_diagnostic_log,
    collect_diagnostics,
)
from pipewatch_core.fetch import (
    SnapshotCollector,
    collect_snapshot,
    missing_stage_diagnostics,
    retry_delay,
    skipped_job_diagnostics,
)
from pipewatch_core.grouping import (
    RunKey,
    RunSnapshot,
    StageGroup,
    authoritative_sort_key,
    build_run_snapshot,
    group_by_stage,
    group_runs,
    snapshot_fingerprint,
)
from pipewatch_core.overview import compute_overview
from pipewatch_core.ports import (
    FetchError,
    FetchErrorCode,
    FetchErrorDetails,
    FetchErrorInfo,
    JobPage,
    JobSnapshot,
    JobSourceProtocol,
    LogSinkProtocol,
    StageFetchResult,
)
from pipewatch_core.predicates import (
    count_filter_matches,
    filter_entities,
    has_failed_jobs,
    has_issues,
    has_pending_approval,
    has_pipeline_step_issues,
    has_processing_jobs,
    is_fully_completed,
    matches_filters,
)
from pipewatch_core.rerun import build_rerun_request, select_rerun_targets
from pipewatch_core.resolver import check_job, resolve_job_status
from pipewatch_core.scope import select_runs
from pipewatch_core.version import VERSION
from pipewatch_core.views import compute_entity_view, compute_entity_views

__version__ = "0.1.0"

__all__ = [
    "VERSION",
    "FetchError",
    "FetchErrorCode",
    "FetchErrorDetails",
    "FetchErrorInfo",
    "JobPage",
    "JobSnapshot",
    "JobSourceProtocol",
    "LogSinkProtocol",
    "RunKey",
    "RunSnapshot",
    "SnapshotCollector",
    "StageFetchResult",
    "StageGroup",
    "authoritative_sort_key",
    "build_aggregation_completed_log",
    "build_diagnostic_log",
    "build_rerun_request",
    "build_run_snapshot",
    "build_run_view",
    "check_job",
    "collect_diagnostics",
    "collect_snapshot",
    "combine_statuses",
    "compute_entity_view",
    "compute_entity_views",
    "compute_overview",
    "count_filter_matches",
    "filter_entities",
    "group_by_stage",
    "group_runs",
    "has_failed_jobs",
    "has_issues",
    "has_pending_approval",
    "has_pipeline_step_issues",
    "has_processing_jobs",
    "is_fully_completed",
    "matches_filters",
    "missing_stage_diagnostics",
    "resolve_job_status",
    "retry_delay",
    "run_status",
    "select_rerun_targets",
    "select_runs",
    "skipped_job_diagnostics",
    "snapshot_fingerprint",
    "step_counts",
    "step_status",
]
