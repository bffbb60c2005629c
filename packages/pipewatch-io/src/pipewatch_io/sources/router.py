"""Source router for job sources."""

from __future__ import annotations

import httpx

from pipewatch_core.ports.fetch import JobSourceProtocol
from pipewatch_io.sources.http import HttpJobSource
from pipewatch_io.sources.jsonl import JsonlJobSource
from pipewatch_schemas.config import SourceConfig
from pipewatch_schemas.primitives import SourceKind


def build_job_source(
    config: SourceConfig,
    *,
    token: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> JobSourceProtocol:
    """Build the job source described by configuration.

    Args:
        config: Source configuration.
        token: Optional API bearer token for api sources.
        http_client: Optional HTTP client for api sources.

    Returns:
        JobSourceProtocol: Configured job source.

    Raises:
        ValueError: If the source kind is unsupported or incomplete.
    """
    kind = SourceKind(config.kind)
    if kind == SourceKind.API and config.base_url is not None:
        return HttpJobSource(
            config.base_url,
            token=token,
            timeout_s=config.timeout_s,
            page_size=config.page_size,
            http_client=http_client,
        )
    if kind == SourceKind.FILE and config.path is not None:
        return JsonlJobSource(config.path, page_size=config.page_size)
    raise ValueError(f"Unsupported job source configuration: {kind}")
