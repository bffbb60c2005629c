"""JSONL file job source for offline snapshots and fixtures."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from pipewatch_core.ports.fetch import (
    FetchError,
    FetchErrorCode,
    FetchErrorDetails,
    FetchErrorInfo,
    JobPage,
)
from pipewatch_io.normalize import normalize_jobs
from pipewatch_schemas.primitives import JsonValue


class JsonlJobSource:
    """Job source reading raw job payloads, one JSON object per line.

    Each line carries its stage in ``queue``. Pages are offsets into the
    stage's jobs in file order.
    """

    def __init__(self, path: str | Path, *, page_size: int = 100) -> None:
        """Initialize the JSONL job source.

        Args:
            path: Path to the JSONL file.
            page_size: Jobs returned per page.
        """
        self._path = Path(path)
        self._page_size = page_size
        self._payloads: list[dict[str, JsonValue]] | None = None
        self._lock = asyncio.Lock()

    async def fetch_page(self, stage_id: str, cursor: str | None) -> JobPage:
        """Return one page of a stage's jobs.

        Args:
            stage_id: Stage (queue) name.
            cursor: Offset returned by the previous page, None for the first.

        Returns:
            JobPage: Normalized jobs and the next offset.

        Raises:
            FetchError: If the file cannot be read or parsed.
        """
        payloads = await self._load()
        stage_payloads = [
            payload for payload in payloads if payload.get("queue") == stage_id
        ]
        offset = _parse_cursor(stage_id, cursor)
        window = stage_payloads[offset : offset + self._page_size]
        next_offset = offset + len(window)
        next_cursor = str(next_offset) if next_offset < len(stage_payloads) else None
        jobs, skipped = normalize_jobs(window, stage_id)
        return JobPage(jobs=jobs, skipped=skipped, next_cursor=next_cursor)

    async def _load(self) -> list[dict[str, JsonValue]]:
        async with self._lock:
            if self._payloads is None:
                self._payloads = await asyncio.to_thread(_read_jsonl, self._path)
            return self._payloads


def _read_jsonl(path: Path) -> list[dict[str, JsonValue]]:
    payloads: list[dict[str, JsonValue]] = []
    try:
        with open(path, encoding="utf-8") as handle:
            for line_number, raw_line in enumerate(handle, start=1):
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise _file_error(
                        FetchErrorCode.PARSE_ERROR,
                        f"Invalid JSON on line {line_number}",
                        path,
                    ) from exc
                if not isinstance(payload, dict):
                    raise _file_error(
                        FetchErrorCode.PARSE_ERROR,
                        f"Line {line_number} is not a JSON object",
                        path,
                    )
                payloads.append(payload)
    except OSError as exc:
        raise _file_error(
            FetchErrorCode.IO_ERROR, f"Cannot read {path}: {exc}", path
        ) from exc
    return payloads


def _parse_cursor(stage_id: str, cursor: str | None) -> int:
    if cursor is None:
        return 0
    try:
        offset = int(cursor)
    except ValueError:
        offset = -1
    if offset < 0:
        raise FetchError(
            FetchErrorInfo(
                code=FetchErrorCode.CLIENT_ERROR,
                message=f"Invalid cursor: {cursor}",
                details=FetchErrorDetails(stage_id=stage_id, cursor=cursor),
            )
        )
    return offset


def _file_error(code: FetchErrorCode, message: str, path: Path) -> FetchError:
    return FetchError(
        FetchErrorInfo(
            code=code,
            message=message,
            details=FetchErrorDetails(reason=str(path)),
        )
    )
