"""Job source adapters."""

from pipewatch_io.sources.http import HttpJobSource
from pipewatch_io.sources.jsonl import JsonlJobSource
from pipewatch_io.sources.router import build_job_source

__all__ = ["HttpJobSource", "JsonlJobSource", "build_job_source"]
