"""Storage adapters for pipewatch logs."""

from pipewatch_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    FileLogSink,
    NoopLogSink,
    build_log_sink,
)

__all__ = [
    "CompositeLogSink",
    "ConsoleLogSink",
    "FileLogSink",
    "NoopLogSink",
    "build_log_sink",
]
