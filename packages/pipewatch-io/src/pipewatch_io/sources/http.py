"""HTTP job source for the job-queue API."""

from __future__ import annotations

import httpx

from pipewatch_core.ports.fetch import (
    FetchError,
    FetchErrorCode,
    FetchErrorDetails,
    FetchErrorInfo,
    JobPage,
)
from pipewatch_io.normalize import normalize_jobs
from pipewatch_schemas.primitives import JsonValue


class HttpJobSource:
    """Job source that pages through ``GET {base_url}/queues/{stage_id}``."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_s: float = 30.0,
        page_size: int = 100,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP job source.

        Args:
            base_url: API base URL.
            token: Optional bearer token.
            timeout_s: Per-request timeout in seconds.
            page_size: Jobs requested per page.
            http_client: Optional pre-configured HTTP client for dependency
                injection. If None, a client is created per request.
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_s = timeout_s
        self._page_size = page_size
        self._http_client = http_client

    async def fetch_page(self, stage_id: str, cursor: str | None) -> JobPage:
        """Fetch one page of jobs for a stage.

        Args:
            stage_id: Stage (queue) name.
            cursor: Cursor returned by the previous page, None for the first.

        Returns:
            JobPage: Normalized jobs and the next cursor.

        Raises:
            FetchError: For transport failures, error statuses and malformed
                bodies.
        """
        if self._http_client is not None:
            response = await self._request(self._http_client, stage_id, cursor)
        else:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await self._request(client, stage_id, cursor)
        return _parse_page(response, stage_id, cursor)

    async def _request(
        self, client: httpx.AsyncClient, stage_id: str, cursor: str | None
    ) -> httpx.Response:
        url = f"{self._base_url}/queues/{stage_id}"
        params: dict[str, str | int] = {"limit": self._page_size}
        if cursor is not None:
            params["cursor"] = cursor
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise FetchError(
                FetchErrorInfo(
                    code=FetchErrorCode.NETWORK_ERROR,
                    message=f"Request to {url} failed: {exc}",
                    details=FetchErrorDetails(
                        stage_id=stage_id, cursor=cursor, url=url
                    ),
                )
            ) from exc

        if response.status_code >= 500:
            raise _status_error(
                FetchErrorCode.SERVER_ERROR, response, stage_id, cursor
            )
        if response.status_code >= 400:
            raise _status_error(
                FetchErrorCode.CLIENT_ERROR, response, stage_id, cursor
            )
        return response


def _status_error(
    code: FetchErrorCode,
    response: httpx.Response,
    stage_id: str,
    cursor: str | None,
) -> FetchError:
    return FetchError(
        FetchErrorInfo(
            code=code,
            message=f"HTTP {response.status_code} from job-queue API",
            details=FetchErrorDetails(
                stage_id=stage_id,
                cursor=cursor,
                status_code=response.status_code,
                url=str(response.request.url),
                reason=response.text[:200] or None,
            ),
        )
    )


def _parse_page(
    response: httpx.Response, stage_id: str, cursor: str | None
) -> JobPage:
    try:
        body: JsonValue = response.json()
    except ValueError as exc:
        raise _body_error(stage_id, cursor, "Response is not valid JSON") from exc

    next_cursor: str | None = None
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict) and isinstance(body.get("jobs"), list):
        items = body["jobs"]
        raw_cursor = body.get("nextCursor")
        if raw_cursor is not None:
            next_cursor = str(raw_cursor)
    else:
        raise _body_error(stage_id, cursor, "Expected a job list or {jobs: [...]}")

    payloads = [item for item in items if isinstance(item, dict)]
    if len(payloads) != len(items):
        raise _body_error(stage_id, cursor, "Job entries must be objects")
    jobs, skipped = normalize_jobs(payloads, stage_id)
    return JobPage(jobs=jobs, skipped=skipped, next_cursor=next_cursor)


def _body_error(stage_id: str, cursor: str | None, message: str) -> FetchError:
    return FetchError(
        FetchErrorInfo(
            code=FetchErrorCode.PARSE_ERROR,
            message=message,
            details=FetchErrorDetails(stage_id=stage_id, cursor=cursor),
        )
    )
