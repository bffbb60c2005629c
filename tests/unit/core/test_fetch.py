"""Unit tests for fetch cycle orchestration."""

from __future__ import annotations

import asyncio
from uuid import UUID

import pytest

from pipewatch_core.fetch import (
    SnapshotCollector,
    collect_snapshot,
    missing_stage_diagnostics,
    retry_delay,
    skipped_job_diagnostics,
)
from pipewatch_core.ports.fetch import (
    FetchError,
    FetchErrorCode,
    FetchErrorInfo,
    JobPage,
    JobSnapshot,
    SkippedJob,
)
from pipewatch_core.ports.sinks import LogSinkProtocol
from pipewatch_schemas.config import ConcurrencyConfig, RetryConfig
from pipewatch_schemas.events import FetchEvent
from pipewatch_schemas.logs import LogEntry
from pipewatch_schemas.primitives import DiagnosticCode
from tests.helpers.jobs import make_job

CYCLE_ID = UUID("01890a5c-91c8-7b2a-9f51-9b40d0cfb700")
NO_JITTER_RETRY = RetryConfig(
    max_retries=2, backoff_s=1.0, max_backoff_s=10.0, jitter_s=0.0
)


class _StubLogSink(LogSinkProtocol):
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    async def emit_log(self, entry: LogEntry) -> None:
        self.entries.append(entry)


class _FakeSource:
    """Serves scripted pages or errors per (stage, cursor)."""

    def __init__(
        self,
        pages: dict[tuple[str, str | None], list[JobPage | FetchError]],
        delay: float = 0.0,
    ) -> None:
        self._pages = pages
        self._delay = delay
        self.calls: list[tuple[str, str | None]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_page(self, stage_id: str, cursor: str | None) -> JobPage:
        self.calls.append((stage_id, cursor))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delay)
            script = self._pages[(stage_id, cursor)]
            outcome = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(outcome, FetchError):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1


def _error(code: FetchErrorCode) -> FetchError:
    return FetchError(FetchErrorInfo(code=code, message=f"{code} happened"))


async def _no_sleep(delay: float) -> None:
    return None


def test_retry_delay_is_exponential_and_capped() -> None:
    """Delays double per attempt, include jitter and stop at the cap."""
    retry = RetryConfig(max_retries=5, backoff_s=1.0, max_backoff_s=5.0, jitter_s=1.0)
    assert retry_delay(retry, 1, lambda: 0.0) == 1.0
    assert retry_delay(retry, 2, lambda: 0.5) == 2.5
    assert retry_delay(retry, 4, lambda: 0.0) == 5.0


@pytest.mark.anyio
async def test_collect_pages_through_every_stage() -> None:
    """Pages are followed until the cursor runs out."""
    source = _FakeSource(
        {
            ("precheck", None): [
                JobPage(jobs=[make_job("1", "precheck")], next_cursor="2")
            ],
            ("precheck", "2"): [JobPage(jobs=[make_job("2", "precheck")])],
            ("scope1", None): [JobPage(jobs=[make_job("3", "scope1")])],
        }
    )
    snapshot = await collect_snapshot(source, ["precheck", "scope1"])
    assert [job.job_id for job in snapshot.jobs] == ["1", "2", "3"]
    assert snapshot.missing_stage_ids == []
    assert snapshot.is_final
    assert snapshot.stages[0].page_count == 2


@pytest.mark.anyio
async def test_retryable_errors_are_retried() -> None:
    """Server errors are retried with backoff until a page arrives."""
    sleeps: list[float] = []

    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    source = _FakeSource(
        {
            ("precheck", None): [
                _error(FetchErrorCode.SERVER_ERROR),
                _error(FetchErrorCode.NETWORK_ERROR),
                JobPage(jobs=[make_job("1", "precheck")]),
            ]
        }
    )
    log_sink = _StubLogSink()
    collector = SnapshotCollector(
        source,
        retry=NO_JITTER_RETRY,
        log_sink=log_sink,
        sleep=record_sleep,
        jitter=lambda: 0.0,
    )
    snapshot = await collector.collect(["precheck"], cycle_id=CYCLE_ID)
    assert len(snapshot.jobs) == 1
    assert snapshot.stages[0].attempts == 3
    assert sleeps == [1.0, 2.0]
    events = [entry.event for entry in log_sink.entries]
    assert events.count(FetchEvent.RETRY_SCHEDULED) == 2
    assert events[0] == FetchEvent.CYCLE_STARTED
    assert events[-1] == FetchEvent.CYCLE_COMPLETED
    assert all(entry.cycle_id == CYCLE_ID for entry in log_sink.entries)


@pytest.mark.anyio
async def test_client_errors_are_not_retried() -> None:
    """A 4xx-style failure marks the stage missing after one attempt."""
    source = _FakeSource(
        {
            ("precheck", None): [_error(FetchErrorCode.CLIENT_ERROR)],
            ("scope1", None): [JobPage(jobs=[make_job("1", "scope1")])],
        }
    )
    snapshot = await collect_snapshot(
        source, ["precheck", "scope1"], retry=NO_JITTER_RETRY, sleep=_no_sleep
    )
    assert source.calls.count(("precheck", None)) == 1
    assert snapshot.missing_stage_ids == ["precheck"]
    assert [job.job_id for job in snapshot.jobs] == ["1"]
    failed = snapshot.stages[0]
    assert failed.error is not None
    assert failed.error.code == FetchErrorCode.CLIENT_ERROR
    assert not failed.complete


@pytest.mark.anyio
async def test_retries_stop_after_max_attempts() -> None:
    """A stage that keeps failing is given up after max_retries + 1 attempts."""
    source = _FakeSource({("precheck", None): [_error(FetchErrorCode.SERVER_ERROR)]})
    snapshot = await collect_snapshot(
        source,
        ["precheck"],
        retry=NO_JITTER_RETRY,
        sleep=_no_sleep,
        jitter=lambda: 0.0,
    )
    assert len(source.calls) == 3
    assert snapshot.stages[0].attempts == 3
    diagnostics = missing_stage_diagnostics(snapshot)
    assert [diagnostic.code for diagnostic in diagnostics] == [
        DiagnosticCode.STAGE_DATA_MISSING
    ]
    assert diagnostics[0].stage_id == "precheck"


@pytest.mark.anyio
async def test_failed_page_discards_partial_stage_data() -> None:
    """Jobs from earlier pages of a failed stage are not reported."""
    source = _FakeSource(
        {
            ("precheck", None): [
                JobPage(jobs=[make_job("1", "precheck")], next_cursor="2")
            ],
            ("precheck", "2"): [_error(FetchErrorCode.PARSE_ERROR)],
        }
    )
    snapshot = await collect_snapshot(source, ["precheck"], sleep=_no_sleep)
    assert snapshot.jobs == []
    assert snapshot.missing_stage_ids == ["precheck"]


@pytest.mark.anyio
async def test_repeated_cursor_is_a_parse_error() -> None:
    """A cursor that does not advance stops the stage."""
    source = _FakeSource(
        {
            ("precheck", None): [JobPage(jobs=[], next_cursor="x")],
            ("precheck", "x"): [JobPage(jobs=[], next_cursor="x")],
        }
    )
    snapshot = await collect_snapshot(source, ["precheck"])
    error = snapshot.stages[0].error
    assert error is not None
    assert error.code == FetchErrorCode.PARSE_ERROR


@pytest.mark.anyio
async def test_concurrency_limit_is_respected() -> None:
    """No more than max_parallel_requests stages are fetched at once."""
    stage_ids = [f"stage{index}" for index in range(6)]
    source = _FakeSource(
        {(stage_id, None): [JobPage(jobs=[])] for stage_id in stage_ids},
        delay=0.01,
    )
    await collect_snapshot(
        source,
        stage_ids,
        concurrency=ConcurrencyConfig(max_parallel_requests=2),
    )
    assert source.max_in_flight == 2


@pytest.mark.anyio
async def test_partial_snapshots_are_published() -> None:
    """on_snapshot sees a growing snapshot after each stage."""
    seen: list[JobSnapshot] = []
    source = _FakeSource(
        {
            ("precheck", None): [JobPage(jobs=[make_job("1", "precheck")])],
            ("scope1", None): [JobPage(jobs=[make_job("2", "scope1")])],
            ("scope2", None): [JobPage(jobs=[])],
        }
    )
    final = await collect_snapshot(
        source,
        ["precheck", "scope1", "scope2", "scope1"],
        concurrency=ConcurrencyConfig(max_parallel_requests=1),
        on_snapshot=seen.append,
    )
    assert [len(snapshot.stages) for snapshot in seen] == [1, 2, 3]
    assert not seen[0].is_final
    assert seen[0].pending_stage_ids == ["scope1", "scope2"]
    assert seen[-1].is_final
    assert [stage.stage_id for stage in final.stages] == [
        "precheck",
        "scope1",
        "scope2",
    ]


@pytest.mark.anyio
async def test_skipped_jobs_are_kept_per_stage_and_reported() -> None:
    """Payloads skipped by the source keep the stage and become diagnostics."""
    skipped = SkippedJob(stage_id="precheck", job_id="bad", reason="Missing company")
    source = _FakeSource(
        {
            ("precheck", None): [
                JobPage(jobs=[make_job("1", "precheck")], skipped=[skipped])
            ],
        }
    )
    log_sink = _StubLogSink()
    snapshot = await collect_snapshot(source, ["precheck"], log_sink=log_sink)

    assert [job.job_id for job in snapshot.jobs] == ["1"]
    assert snapshot.missing_stage_ids == []
    assert snapshot.skipped_jobs == [skipped]
    diagnostics = skipped_job_diagnostics(snapshot)
    assert [diagnostic.code for diagnostic in diagnostics] == [
        DiagnosticCode.MALFORMED_JOB
    ]
    assert diagnostics[0].job_id == "bad"
    assert diagnostics[0].stage_id == "precheck"
    completed = [
        entry
        for entry in log_sink.entries
        if entry.event == FetchEvent.STAGE_COMPLETED
    ]
    assert completed[0].data is not None
    assert completed[0].data["skipped_count"] == 1
