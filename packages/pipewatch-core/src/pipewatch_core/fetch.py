"""Fetch cycle orchestration over a job source."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from uuid import UUID, uuid4

from pipewatch_core.ports.fetch import (
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
from pipewatch_schemas.config import ConcurrencyConfig, RetryConfig
from pipewatch_schemas.diagnostics import Diagnostic
from pipewatch_schemas.jobs import JobRecord
from pipewatch_schemas.logs import LogEntry
from pipewatch_schemas.primitives import DiagnosticCode, Timestamp

type SnapshotCallback = Callable[[JobSnapshot], None]
type SleepFn = Callable[[float], Awaitable[None]]


def retry_delay(
    retry: RetryConfig, attempt: int, jitter: Callable[[], float] = random.random
) -> float:
    """Compute the delay before the next attempt.

    Args:
        retry: Retry policy.
        attempt: Number of the attempt that just failed, starting at 1.
        jitter: Source of uniform random values in [0, 1).

    Returns:
        float: Delay in seconds, exponential plus jitter, capped at
        ``max_backoff_s``.
    """
    delay = retry.backoff_s * 2 ** (attempt - 1) + jitter() * retry.jitter_s
    return min(delay, retry.max_backoff_s)


class SnapshotCollector:
    """Fetch every stage of a cycle under a bounded concurrency limit."""

    def __init__(
        self,
        source: JobSourceProtocol,
        *,
        retry: RetryConfig | None = None,
        concurrency: ConcurrencyConfig | None = None,
        log_sink: LogSinkProtocol | None = None,
        sleep: SleepFn = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the collector.

        Args:
            source: Job source to page through.
            retry: Retry policy for retryable failures.
            concurrency: Concurrency limit for stage fetches.
            log_sink: Optional sink for fetch events.
            sleep: Awaitable sleep, injectable for tests.
            jitter: Random source for backoff jitter.
            clock: Timestamp factory for log entries.
        """
        self._source = source
        self._retry = retry or RetryConfig()
        self._concurrency = concurrency or ConcurrencyConfig()
        self._log_sink = log_sink
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock or _now_timestamp

    async def collect(
        self,
        stage_ids: Sequence[str],
        *,
        on_snapshot: SnapshotCallback | None = None,
        cycle_id: UUID | None = None,
    ) -> JobSnapshot:
        """Fetch the given stages and return the final snapshot.

        Stage failures never raise: the stage is reported as missing and the
        remaining stages are still fetched.

        Args:
            stage_ids: Stages to fetch; duplicates are ignored.
            on_snapshot: Called with the current partial snapshot each time a
                stage finishes.
            cycle_id: Optional cycle identifier, generated when omitted.

        Returns:
            JobSnapshot: Snapshot after every stage finished.
        """
        cycle_id = cycle_id or uuid4()
        requested = list(dict.fromkeys(stage_ids))
        results: dict[str, StageFetchResult] = {}
        semaphore = asyncio.Semaphore(self._concurrency.max_parallel_requests)
        await self._emit(
            build_fetch_cycle_started_log(
                self._clock(),
                cycle_id,
                requested,
                self._concurrency.max_parallel_requests,
            )
        )

        async def run_stage(stage_id: str) -> None:
            async with semaphore:
                result = await self._fetch_stage(cycle_id, stage_id)
            results[stage_id] = result
            if on_snapshot is not None:
                on_snapshot(_build_snapshot(cycle_id, requested, results))

        await asyncio.gather(*(run_stage(stage_id) for stage_id in requested))
        snapshot = _build_snapshot(cycle_id, requested, results)
        await self._emit(build_fetch_cycle_completed_log(self._clock(), snapshot))
        return snapshot

    async def _fetch_stage(self, cycle_id: UUID, stage_id: str) -> StageFetchResult:
        await self._emit(
            build_fetch_stage_started_log(self._clock(), cycle_id, stage_id)
        )
        jobs: list[JobRecord] = []
        skipped: list[SkippedJob] = []
        cursor: str | None = None
        seen_cursors: set[str] = set()
        page_count = 0
        total_attempts = 0
        while True:
            try:
                page, attempts = await self._fetch_page(cycle_id, stage_id, cursor)
            except _PageFetchFailed as failure:
                total_attempts += failure.attempts
                await self._emit(
                    build_fetch_stage_failed_log(
                        self._clock(),
                        cycle_id,
                        stage_id,
                        failure.info,
                        failure.attempts,
                    )
                )
                return StageFetchResult(
                    stage_id=stage_id,
                    page_count=page_count,
                    attempts=total_attempts,
                    error=failure.info,
                )
            total_attempts += attempts
            page_count += 1
            jobs.extend(page.jobs)
            skipped.extend(page.skipped)
            if page.next_cursor is None:
                break
            if page.next_cursor in seen_cursors:
                info = FetchErrorInfo(
                    code=FetchErrorCode.PARSE_ERROR,
                    message="Pagination cursor did not advance",
                    details=FetchErrorDetails(
                        stage_id=stage_id, cursor=page.next_cursor
                    ),
                )
                await self._emit(
                    build_fetch_stage_failed_log(
                        self._clock(), cycle_id, stage_id, info, attempts
                    )
                )
                return StageFetchResult(
                    stage_id=stage_id,
                    page_count=page_count,
                    attempts=total_attempts,
                    error=info,
                )
            seen_cursors.add(page.next_cursor)
            cursor = page.next_cursor
        result = StageFetchResult(
            stage_id=stage_id,
            jobs=jobs,
            skipped=skipped,
            page_count=page_count,
            attempts=total_attempts,
        )
        await self._emit(
            build_fetch_stage_completed_log(self._clock(), cycle_id, result)
        )
        return result

    async def _fetch_page(
        self, cycle_id: UUID, stage_id: str, cursor: str | None
    ) -> tuple[JobPage, int]:
        max_attempts = self._retry.max_retries + 1
        attempts = 0
        while True:
            attempts += 1
            try:
                page = await self._source.fetch_page(stage_id, cursor)
            except FetchError as exc:
                if not exc.info.retryable or attempts >= max_attempts:
                    raise _PageFetchFailed(exc.info, attempts) from exc
                delay = retry_delay(self._retry, attempts, self._jitter)
                await self._emit(
                    build_fetch_retry_log(
                        self._clock(), cycle_id, stage_id, exc.info, attempts, delay
                    )
                )
                await self._sleep(delay)
            else:
                return page, attempts

    async def _emit(self, entry: LogEntry) -> None:
        if self._log_sink is not None:
            await self._log_sink.emit_log(entry)


async def collect_snapshot(
    source: JobSourceProtocol,
    stage_ids: Sequence[str],
    *,
    retry: RetryConfig | None = None,
    concurrency: ConcurrencyConfig | None = None,
    log_sink: LogSinkProtocol | None = None,
    on_snapshot: SnapshotCallback | None = None,
    cycle_id: UUID | None = None,
    sleep: SleepFn = asyncio.sleep,
    jitter: Callable[[], float] = random.random,
) -> JobSnapshot:
    """Fetch one cycle of stages from a job source.

    Args:
        source: Job source to page through.
        stage_ids: Stages to fetch.
        retry: Retry policy for network errors and server errors.
        concurrency: Concurrency limit for stage fetches.
        log_sink: Optional sink for fetch events.
        on_snapshot: Called with each new partial snapshot.
        cycle_id: Optional cycle identifier.
        sleep: Awaitable sleep, injectable for tests.
        jitter: Random source for backoff jitter.

    Returns:
        JobSnapshot: Final snapshot of the cycle.
    """
    collector = SnapshotCollector(
        source,
        retry=retry,
        concurrency=concurrency,
        log_sink=log_sink,
        sleep=sleep,
        jitter=jitter,
    )
    return await collector.collect(
        stage_ids, on_snapshot=on_snapshot, cycle_id=cycle_id
    )


def missing_stage_diagnostics(snapshot: JobSnapshot) -> list[Diagnostic]:
    """Report stages whose data could not be fetched.

    Returns:
        list[Diagnostic]: One diagnostic per failed stage.
    """
    diagnostics: list[Diagnostic] = []
    for stage in snapshot.stages:
        if stage.error is None:
            continue
        diagnostics.append(
            Diagnostic(
                code=DiagnosticCode.STAGE_DATA_MISSING,
                message=f"{stage.error.code}: {stage.error.message}",
                stage_id=stage.stage_id,
            )
        )
    return diagnostics


def skipped_job_diagnostics(snapshot: JobSnapshot) -> list[Diagnostic]:
    """Report job payloads that were left out because they were malformed.

    Returns:
        list[Diagnostic]: One diagnostic per skipped payload.
    """
    return [
        Diagnostic(
            code=DiagnosticCode.MALFORMED_JOB,
            message=skipped.reason,
            stage_id=skipped.stage_id,
            job_id=skipped.job_id,
        )
        for skipped in snapshot.skipped_jobs
    ]


class _PageFetchFailed(Exception):
    def __init__(self, info: FetchErrorInfo, attempts: int) -> None:
        super().__init__(info.message)
        self.info = info
        self.attempts = attempts


def _build_snapshot(
    cycle_id: UUID,
    requested: list[str],
    results: dict[str, StageFetchResult],
) -> JobSnapshot:
    stages = [results[stage_id] for stage_id in requested if stage_id in results]
    return JobSnapshot(
        cycle_id=cycle_id,
        jobs=[job for stage in stages for job in stage.jobs],
        stages=stages,
        pending_stage_ids=[
            stage_id for stage_id in requested if stage_id not in results
        ],
    )


def _now_timestamp() -> Timestamp:
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")
