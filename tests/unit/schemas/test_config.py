"""Unit tests for configuration schema validation."""

import pytest
from pydantic import ValidationError

from pipewatch_schemas.config import (
    ConcurrencyConfig,
    LoggingConfig,
    LogSinkConfig,
    RetryConfig,
    SourceConfig,
)
from pipewatch_schemas.primitives import LogSinkType, SourceKind
from pipewatch_schemas.validation import validate_watch_config


def test_minimal_api_config_uses_defaults() -> None:
    """Only the source is required; everything else has defaults."""
    config = validate_watch_config({
        "source": {"kind": "api", "base_url": "https://jobs.example.com/api"}
    })
    assert config.source.kind == SourceKind.API
    assert config.retry.max_retries == 3
    assert config.concurrency.max_parallel_requests == 3
    assert [sink.type for sink in config.logging.sinks] == [LogSinkType.NOOP]
    assert "extractEmissions" in config.topology.stage_ids()


def test_api_source_requires_http_url() -> None:
    """API sources need an http(s) base URL."""
    with pytest.raises(ValidationError):
        SourceConfig(kind=SourceKind.API)
    with pytest.raises(ValidationError):
        SourceConfig(kind=SourceKind.API, base_url="ftp://jobs.example.com")


def test_file_source_requires_path() -> None:
    """File sources need a path."""
    with pytest.raises(ValidationError):
        SourceConfig(kind=SourceKind.FILE)
    config = SourceConfig(kind="file", path="jobs.jsonl")
    assert config.kind == SourceKind.FILE


def test_unknown_source_kind_is_rejected() -> None:
    """Unknown kinds fail validation."""
    with pytest.raises(ValidationError):
        validate_watch_config({"source": {"kind": "kafka"}})


def test_retry_and_concurrency_bounds() -> None:
    """Retry and concurrency values are range checked."""
    with pytest.raises(ValidationError):
        RetryConfig(max_retries=-1)
    with pytest.raises(ValidationError):
        ConcurrencyConfig(max_parallel_requests=0)


def test_duplicate_log_sinks_are_rejected() -> None:
    """Each sink type may appear once."""
    with pytest.raises(ValidationError):
        LoggingConfig(
            sinks=[
                LogSinkConfig(type=LogSinkType.CONSOLE),
                LogSinkConfig(type="console"),
            ]
        )


def test_custom_topology_is_loaded() -> None:
    """A configured topology replaces the bundled one."""
    config = validate_watch_config({
        "source": {"kind": "file", "path": "jobs.jsonl"},
        "topology": {
            "steps": [
                {
                    "step_id": "only",
                    "name": "Only",
                    "stage_ids": ["precheck"],
                    "order": 1,
                }
            ]
        },
    })
    assert config.topology.stage_ids() == ["precheck"]
