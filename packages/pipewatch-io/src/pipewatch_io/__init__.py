"""pipewatch-io: Job sources, payload normalization and log sinks."""

from pipewatch_io.normalize import normalize_job, normalize_jobs, to_datetime
from pipewatch_io.sources import HttpJobSource, JsonlJobSource, build_job_source
from pipewatch_io.storage import (
    CompositeLogSink,
    ConsoleLogSink,
    FileLogSink,
    NoopLogSink,
    build_log_sink,
)

__version__ = "0.1.0"

__all__ = [
    "CompositeLogSink",
    "ConsoleLogSink",
    "FileLogSink",
    "HttpJobSource",
    "JsonlJobSource",
    "NoopLogSink",
    "build_job_source",
    "build_log_sink",
    "normalize_job",
    "normalize_jobs",
    "to_datetime",
]
