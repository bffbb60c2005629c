"""CLI entry point - thin adapter over pipewatch-core."""

from __future__ import annotations

import asyncio
import os
import tomllib
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import NamedTuple, TypeVar
from uuid import UUID, uuid4

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table

from pipewatch_core import (
    VERSION,
    build_aggregation_completed_log,
    build_diagnostic_log,
    build_rerun_request,
    collect_diagnostics,
    collect_snapshot,
    compute_entity_views,
    compute_overview,
    count_filter_matches,
    filter_entities,
    has_issues,
    missing_stage_diagnostics,
    select_rerun_targets,
    select_runs,
    skipped_job_diagnostics,
)
from pipewatch_core.ports import FetchError, LogSinkProtocol
from pipewatch_core.rerun import DEFAULT_ANCHOR_STAGE_ID
from pipewatch_io.sources import build_job_source
from pipewatch_io.storage import build_log_sink
from pipewatch_schemas.config import SourceConfig, WatchConfig
from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.events import (
    CommandCompletedData,
    CommandEvent,
    CommandFailedData,
    CommandStartedData,
)
from pipewatch_schemas.exit_codes import resolve_exit_code
from pipewatch_schemas.filters import EntityFilter
from pipewatch_schemas.logs import LogEntry
from pipewatch_schemas.overview import OverviewStats
from pipewatch_schemas.primitives import (
    CycleId,
    JobStatus,
    JsonValue,
    LogLevel,
    RunScope,
    SourceKind,
)
from pipewatch_schemas.responses import (
    ApiResponse,
    EntityListResult,
    ErrorResponse,
    FilterCountsResult,
    MetaInfo,
    RerunPlanResult,
)
from pipewatch_schemas.validation import validate_watch_config
from pipewatch_schemas.views import EntityView, RunView, StatusCounts

CONFIG_OPTION = typer.Option(
    Path("pipewatch.toml"),
    "--config",
    "-c",
    help="Path to pipewatch TOML config",
)
SCOPE_OPTION = typer.Option(
    RunScope.LATEST,
    "--scope",
    "-s",
    help="Runs considered per entity (latest|all)",
)
JSON_OPTION = typer.Option(False, "--json", help="Output as a JSON envelope")
FILTER_OPTION = typer.Option(
    None,
    "--filter",
    "-f",
    help="Entity filter such as has_failed or step_issues:finalize (repeatable)",
)
SEARCH_OPTION = typer.Option(
    None, "--search", help="Case-insensitive entity name search"
)
ANCHOR_OPTION = typer.Option(
    DEFAULT_ANCHOR_STAGE_ID, "--anchor", help="Stage whose job is rerun"
)
LIMIT_OPTION = typer.Option(None, "--limit", "-n", help="Maximum rerun targets")
FOLLOW_UP_OPTION = typer.Option(
    None,
    "--follow-up",
    help="Follow-up stage id or key to include in the request (repeatable)",
)

app = typer.Typer(
    help="Pipeline status dashboard for multi-stage job queues",
    no_args_is_help=True,
)

ResultT = TypeVar("ResultT")

_STATUS_STYLES = {
    JobStatus.COMPLETED: "green",
    JobStatus.PROCESSING: "cyan",
    JobStatus.NEEDS_APPROVAL: "yellow",
    JobStatus.FAILED: "red",
    JobStatus.WAITING: "dim",
}


@app.callback()
def main() -> None:
    """Pipewatch CLI."""


@app.command()
def version() -> None:
    """Display version information."""
    rprint(f"[bold]pipewatch[/bold] v{VERSION}")


@app.command()
def status(
    entity_key: str = typer.Argument(..., help="Entity to show"),
    config_path: Path = CONFIG_OPTION,
    scope: RunScope = SCOPE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the runs of one entity, step by step."""

    def build(collected: _Collected) -> EntityView:
        for entity in collected.entities:
            if entity.entity_key == entity_key:
                return entity.model_copy(
                    update={"runs": select_runs(entity.runs, scope)}
                )
        raise _NotFoundError(f"Entity not found: {entity_key}")

    _run_command(
        command="status",
        args={"entity_key": entity_key, "scope": scope.value},
        config_path=config_path,
        scope=scope,
        json_output=json_output,
        build=build,
        render=_render_entity,
    )


@app.command("list")
def list_entities(
    config_path: Path = CONFIG_OPTION,
    scope: RunScope = SCOPE_OPTION,
    filters: list[str] | None = FILTER_OPTION,
    search: str | None = SEARCH_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """List entities matching every given filter."""
    filter_values = filters or []

    def build(collected: _Collected) -> EntityListResult:
        parsed = _parse_filters(filter_values)
        entities = filter_entities(
            collected.entities, parsed, scope, search=search
        )
        return EntityListResult(
            entities=entities,
            total=len(collected.entities),
            diagnostics=collected.diagnostics,
        )

    _run_command(
        command="list",
        args={
            "scope": scope.value,
            "filters": list(filter_values),
            "search": search,
        },
        config_path=config_path,
        scope=scope,
        json_output=json_output,
        build=build,
        render=lambda result: _render_entity_list(result, scope),
    )


@app.command()
def counts(
    config_path: Path = CONFIG_OPTION,
    scope: RunScope = SCOPE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show how many entities match each available filter."""

    def build(collected: _Collected) -> FilterCountsResult:
        return FilterCountsResult(
            counts=count_filter_matches(
                collected.entities, collected.config.topology, scope
            ),
            total=len(collected.entities),
        )

    _run_command(
        command="counts",
        args={"scope": scope.value},
        config_path=config_path,
        scope=scope,
        json_output=json_output,
        build=build,
        render=_render_counts,
    )


@app.command()
def overview(
    config_path: Path = CONFIG_OPTION,
    scope: RunScope = SCOPE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show overview statistics across every entity."""

    def build(collected: _Collected) -> OverviewStats:
        return compute_overview(collected.entities, collected.config.topology, scope)

    _run_command(
        command="overview",
        args={"scope": scope.value},
        config_path=config_path,
        scope=scope,
        json_output=json_output,
        build=build,
        render=_render_overview,
    )


@app.command("rerun-targets")
def rerun_targets(
    config_path: Path = CONFIG_OPTION,
    scope: RunScope = SCOPE_OPTION,
    anchor: str = ANCHOR_OPTION,
    filters: list[str] | None = FILTER_OPTION,
    search: str | None = SEARCH_OPTION,
    limit: int | None = LIMIT_OPTION,
    follow_ups: list[str] | None = FOLLOW_UP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Select the anchor jobs a bulk rerun would restart."""
    filter_values = filters or []
    follow_up_values = follow_ups or []

    def build(collected: _Collected) -> RerunPlanResult:
        targets = select_rerun_targets(
            collected.entities,
            anchor,
            filters=_parse_filters(filter_values),
            scope=scope,
            search=search,
            limit=limit,
        )
        request = None
        if follow_up_values:
            request = build_rerun_request(follow_up_values)
        return RerunPlanResult(targets=targets, request=request)

    _run_command(
        command="rerun-targets",
        args={
            "scope": scope.value,
            "anchor": anchor,
            "filters": list(filter_values),
            "search": search,
            "limit": limit,
            "follow_ups": list(follow_up_values),
        },
        config_path=config_path,
        scope=scope,
        json_output=json_output,
        build=build,
        render=_render_rerun_plan,
    )


class _ConfigError(Exception):
    """Raised for CLI configuration issues."""


class _NotFoundError(Exception):
    """Raised when a requested entity is not in the snapshot."""


class _Collected(NamedTuple):
    config: WatchConfig
    entities: list[EntityView]
    missing_stages: list[str]
    diagnostics: list[Diagnostic]


def _run_command(
    *,
    command: str,
    args: dict[str, JsonValue],
    config_path: Path,
    scope: RunScope,
    json_output: bool,
    build: Callable[[_Collected], ResultT],
    render: Callable[[ResultT], None],
) -> None:
    cycle_id = uuid4()
    log_sink: LogSinkProtocol | None = None
    try:
        config = _load_resolved_config(config_path)
        log_sink = build_log_sink(config.logging)
        _emit_command_log_sync(
            log_sink,
            _build_command_started_log(
                timestamp=_now_timestamp(),
                cycle_id=cycle_id,
                command=command,
                args={"config_path": str(config_path), **args},
            ),
        )
        collected = asyncio.run(_collect_async(config, log_sink, cycle_id))
        result = build(collected)
        _emit_command_log_sync(
            log_sink,
            _build_command_completed_log(
                timestamp=_now_timestamp(), cycle_id=cycle_id, command=command
            ),
        )
    except Exception as exc:
        error = _error_from_exception(exc)
        if log_sink is not None:
            _emit_command_log_sync(
                log_sink,
                _build_command_failed_log(
                    timestamp=_now_timestamp(),
                    cycle_id=cycle_id,
                    command=command,
                    error=error,
                ),
            )
        if json_output:
            print(_error_response(error).model_dump_json())
        else:
            rprint(f"[red]Error:[/red] {error.message}")
        exit_code = resolve_exit_code(error.code, domain="fetch")
        raise typer.Exit(code=int(exit_code)) from None

    if json_output:
        response: ApiResponse[ResultT] = ApiResponse(
            data=result,
            error=None,
            meta=MetaInfo(
                timestamp=_now_timestamp(),
                scope=scope,
                missing_stages=collected.missing_stages,
            ),
        )
        print(response.model_dump_json(by_alias=True))
        return
    render(result)
    if collected.missing_stages:
        rprint(
            "[yellow]Missing stages:[/yellow] " + ", ".join(collected.missing_stages)
        )


async def _collect_async(
    config: WatchConfig, log_sink: LogSinkProtocol, cycle_id: UUID
) -> _Collected:
    source = build_job_source(config.source, token=_resolve_token(config.source))
    snapshot = await collect_snapshot(
        source,
        config.topology.stage_ids(),
        retry=config.retry,
        concurrency=config.concurrency,
        log_sink=log_sink,
        cycle_id=cycle_id,
    )
    failures = [stage.error for stage in snapshot.stages if stage.error is not None]
    if snapshot.stages and len(failures) == len(snapshot.stages):
        raise FetchError(failures[0])

    entities = compute_entity_views(snapshot.jobs, config.topology)
    diagnostics = [
        *missing_stage_diagnostics(snapshot),
        *skipped_job_diagnostics(snapshot),
        *collect_diagnostics(entities),
    ]
    for diagnostic in diagnostics:
        await log_sink.emit_log(
            build_diagnostic_log(_now_timestamp(), cycle_id, diagnostic)
        )
    await log_sink.emit_log(
        build_aggregation_completed_log(_now_timestamp(), cycle_id, entities)
    )
    return _Collected(
        config=config,
        entities=entities,
        missing_stages=snapshot.missing_stage_ids,
        diagnostics=diagnostics,
    )


def _parse_filters(values: list[str]) -> list[EntityFilter]:
    return [EntityFilter.parse(value) for value in values]


def _resolve_token(source: SourceConfig) -> str | None:
    if source.token_env is None:
        return None
    token = os.environ.get(source.token_env)
    if not token:
        raise _ConfigError(f"Environment variable {source.token_env} is not set")
    return token


def _now_timestamp() -> str:
    timestamp = datetime.now(UTC).isoformat()
    return timestamp.replace("+00:00", "Z")


def _load_resolved_config(config_path: Path) -> WatchConfig:
    config = _load_watch_config(config_path)
    return _resolve_config_paths(config, config_path)


def _load_watch_config(config_path: Path) -> WatchConfig:
    _load_dotenv(config_path)
    if not config_path.exists():
        raise _ConfigError(f"Config not found: {config_path}")
    try:
        with open(config_path, "rb") as handle:
            payload: dict[str, JsonValue] = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise _ConfigError(f"Failed to read config: {exc}") from exc
    try:
        return validate_watch_config(payload)
    except ValidationError as exc:
        raise _ConfigError(_format_validation_error(exc)) from exc


def _load_dotenv(config_path: Path) -> None:
    env_path = config_path.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _resolve_config_paths(config: WatchConfig, config_path: Path) -> WatchConfig:
    config_dir = config_path.parent
    logging_config = config.logging.model_copy(
        update={
            "logs_dir": str(_resolve_path(Path(config.logging.logs_dir), config_dir))
        }
    )
    source = config.source
    if SourceKind(source.kind) == SourceKind.FILE and source.path is not None:
        source = source.model_copy(
            update={"path": str(_resolve_path(Path(source.path), config_dir))}
        )
    return config.model_copy(update={"logging": logging_config, "source": source})


def _resolve_path(path: Path, base_dir: Path) -> Path:
    resolved = path if path.is_absolute() else base_dir / path
    return resolved.resolve()


def _format_validation_error(exc: ValidationError) -> str:
    message = "Config validation failed"
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = first.get("loc", [])
        label = ".".join(str(part) for part in loc) if loc else ""
        detail = first.get("msg", "")
        if label and detail:
            message = f"Config validation failed: {label} - {detail}"
        elif detail:
            message = f"Config validation failed: {detail}"
    return message


async def _emit_command_log(log_sink: LogSinkProtocol, entry: LogEntry) -> None:
    await log_sink.emit_log(entry)


def _emit_command_log_sync(log_sink: LogSinkProtocol, entry: LogEntry) -> None:
    asyncio.run(_emit_command_log(log_sink, entry))


def _build_command_started_log(
    *,
    timestamp: str,
    cycle_id: CycleId,
    command: str,
    args: dict[str, JsonValue] | None,
) -> LogEntry:
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=CommandEvent.STARTED.value,
        cycle_id=cycle_id,
        message="Command started",
        data=CommandStartedData(command=command, args=args).model_dump(
            mode="json", exclude_none=True
        ),
    )


def _build_command_completed_log(
    *,
    timestamp: str,
    cycle_id: CycleId,
    command: str,
) -> LogEntry:
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=CommandEvent.COMPLETED.value,
        cycle_id=cycle_id,
        message="Command completed",
        data=CommandCompletedData(command=command).model_dump(mode="json"),
    )


def _build_command_failed_log(
    *,
    timestamp: str,
    cycle_id: CycleId,
    command: str,
    error: ErrorResponse,
) -> LogEntry:
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR,
        event=CommandEvent.FAILED.value,
        cycle_id=cycle_id,
        message="Command failed",
        data=CommandFailedData(
            command=command,
            error_code=error.code,
            error_message=error.message,
        ).model_dump(mode="json"),
    )


def _error_response(error: ErrorResponse) -> ApiResponse[ResultT]:
    return ApiResponse(
        data=None,
        error=error,
        meta=MetaInfo(timestamp=_now_timestamp()),
    )


def _error_from_exception(exc: Exception) -> ErrorResponse:
    if isinstance(exc, FetchError):
        return exc.info.to_error_response()
    if isinstance(exc, _ConfigError):
        return ErrorResponse(code="config_error", message=str(exc), details=None)
    if isinstance(exc, _NotFoundError):
        return ErrorResponse(code="not_found", message=str(exc), details=None)
    if isinstance(exc, ValueError):
        return ErrorResponse(code="validation_error", message=str(exc), details=None)
    return ErrorResponse(code="runtime_error", message=str(exc), details=None)


def _format_status(status: JobStatus | str) -> str:
    value = JobStatus(status)
    return f"[{_STATUS_STYLES[value]}]{value.value}[/]"


def _format_counts(counts: StatusCounts) -> str:
    parts = [
        f"{counts.get(status)} {status.value}"
        for status in JobStatus
        if counts.get(status)
    ]
    return ", ".join(parts) if parts else "-"


def _format_datetime(value: datetime | None) -> str:
    if value is None:
        return "n/a"
    return value.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%SZ")


def _render_entity(entity: EntityView) -> None:
    renderables: list[RenderableType] = [
        _build_run_table(entity.entity_key, run) for run in entity.runs
    ]
    if entity.diagnostics:
        diagnostics = Table(title="Diagnostics")
        diagnostics.add_column("Code")
        diagnostics.add_column("Message")
        for diagnostic in entity.diagnostics:
            diagnostics.add_row(str(diagnostic.code), diagnostic.message)
        renderables.append(diagnostics)
    if not renderables:
        renderables.append(Table(title="No runs"))
    rprint(Panel(Group(*renderables), title=entity.entity_key, expand=True))


def _build_run_table(entity_key: str, run: RunView) -> Table:
    year = str(run.year) if run.year is not None else "n/a"
    latest = " (latest)" if run.is_latest_run else ""
    table = Table(
        title=f"{entity_key} {year} run {run.thread_id}{latest}",
        caption=f"{_format_status(run.status)} at "
        f"{_format_datetime(run.latest_activity_at)}",
    )
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Jobs")
    table.add_column("Reruns")
    for step in run.steps:
        reruns = [
            f"{stage.display_name} x{stage.job_count}"
            for stage in step.stages
            if stage.is_rerun
        ]
        table.add_row(
            step.name,
            _format_status(step.status),
            _format_counts(step.counts),
            ", ".join(reruns) if reruns else "-",
        )
    return table


def _render_entity_list(result: EntityListResult, scope: RunScope) -> None:
    table = Table(title=f"Entities ({len(result.entities)} of {result.total})")
    table.add_column("Entity")
    table.add_column("Runs", justify="right")
    table.add_column("Status")
    table.add_column("Latest activity")
    table.add_column("Issues")
    for entity in result.entities:
        newest = entity.runs[0] if entity.runs else None
        table.add_row(
            entity.entity_key,
            str(len(entity.runs)),
            _format_status(newest.status) if newest is not None else "n/a",
            _format_datetime(entity.latest_activity_at),
            "yes" if has_issues(entity, scope) else "no",
        )
    rprint(table)


def _render_counts(result: FilterCountsResult) -> None:
    table = Table(title=f"Filter matches ({result.total} entities)")
    table.add_column("Filter")
    table.add_column("Matches", justify="right")
    for key, count in result.counts.items():
        table.add_row(key, str(count))
    rprint(table)


def _render_overview(stats: OverviewStats) -> None:
    header = Table.grid(padding=(0, 1))
    header.add_column(justify="right", style="bold")
    header.add_column()
    header.add_row("Entities", str(stats.total_entities))
    header.add_row("Runs", str(stats.total_runs))
    header.add_row("Active jobs", str(stats.active_jobs))
    header.add_row("Completion", f"{stats.completion_rate:.2f}%")
    header.add_row("With failures", str(stats.entities_with_failed))
    header.add_row("Awaiting approval", str(stats.entities_with_needs_approval))

    steps = Table(title="Steps")
    steps.add_column("Step")
    steps.add_column("Runs")
    steps.add_column("Jobs")
    for step in stats.steps:
        steps.add_row(
            step.name,
            _format_counts(step.run_statuses),
            _format_counts(step.job_statuses),
        )
    rprint(
        Panel(Group(header, steps), title=f"pipewatch overview ({stats.scope})")
    )


def _render_rerun_plan(result: RerunPlanResult) -> None:
    table = Table(title=f"Rerun targets ({len(result.targets)})")
    table.add_column("Entity")
    table.add_column("Year")
    table.add_column("Run")
    table.add_column("Job")
    for target in result.targets:
        table.add_row(
            target.entity_key,
            str(target.year) if target.year is not None else "n/a",
            target.thread_id,
            target.job_id,
        )
    rprint(table)
    if result.request is not None:
        rprint(f"Request: {result.request.model_dump_json(by_alias=True)}")


if __name__ == "__main__":
    app()
