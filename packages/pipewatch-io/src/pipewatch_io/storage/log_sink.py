"""Log sink adapters for fetch and aggregation events."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from pipewatch_core.ports.sinks import LogSinkProtocol
from pipewatch_schemas.config import LoggingConfig
from pipewatch_schemas.logs import LogEntry
from pipewatch_schemas.primitives import LogSinkType


class CompositeLogSink(LogSinkProtocol):
    """Log sink that forwards entries to multiple sinks."""

    def __init__(self, sinks: Iterable[LogSinkProtocol]) -> None:
        """Initialize the composite log sink."""
        self._sinks = list(sinks)

    async def emit_log(self, entry: LogEntry) -> None:
        """Forward log entries to each sink."""
        for sink in self._sinks:
            await sink.emit_log(entry)


class ConsoleLogSink(LogSinkProtocol):
    """Log sink that writes JSONL entries to stderr."""

    def __init__(self, stream: TextIO | None = None) -> None:
        """Initialize the console log sink.

        Args:
            stream: Output stream to write JSONL log entries.
        """
        self._stream = stream or sys.stderr

    async def emit_log(self, entry: LogEntry) -> None:
        """Write log entry JSONL to the output stream."""
        payload = entry.model_dump_json(exclude_none=False)
        self._stream.write(payload + "\n")
        self._stream.flush()


class FileLogSink(LogSinkProtocol):
    """Log sink that appends entries to one JSONL file per cycle."""

    def __init__(self, logs_dir: str | Path) -> None:
        """Initialize the file log sink.

        Args:
            logs_dir: Directory receiving ``<cycle_id>.jsonl`` files.
        """
        self._logs_dir = Path(logs_dir)

    def log_path(self, entry: LogEntry) -> Path:
        """Return the file an entry is appended to."""
        return self._logs_dir / f"{entry.cycle_id}.jsonl"

    async def emit_log(self, entry: LogEntry) -> None:
        """Append a log entry.

        Raises:
            OSError: If the log file cannot be written.
        """
        await asyncio.to_thread(_append_jsonl, self.log_path(entry), entry)


class NoopLogSink(LogSinkProtocol):
    """Log sink that drops all log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Ignore log entries."""
        return None


def build_log_sink(
    logging_config: LoggingConfig,
    *,
    stream: TextIO | None = None,
    logs_dir: str | Path | None = None,
) -> LogSinkProtocol:
    """Build a log sink from configuration.

    Args:
        logging_config: Logging configuration.
        stream: Optional stream for console logging.
        logs_dir: Optional override of the configured logs directory.

    Returns:
        LogSinkProtocol: Configured log sink.

    Raises:
        ValueError: If an unsupported log sink type is configured.
    """
    sinks: list[LogSinkProtocol] = []
    for sink_config in logging_config.sinks:
        if sink_config.type == LogSinkType.FILE:
            sinks.append(FileLogSink(logs_dir or logging_config.logs_dir))
        elif sink_config.type == LogSinkType.CONSOLE:
            sinks.append(ConsoleLogSink(stream=stream))
        elif sink_config.type == LogSinkType.NOOP:
            sinks.append(NoopLogSink())
        else:
            raise ValueError(f"Unsupported log sink type: {sink_config.type}")

    if len(sinks) == 1:
        return sinks[0]
    return CompositeLogSink(sinks)


def _append_jsonl(path: Path, entry: LogEntry) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(entry.model_dump_json(exclude_none=False) + "\n")
