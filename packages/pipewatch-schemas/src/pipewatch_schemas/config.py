"""Configuration schemas for pipewatch."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import Field, field_validator, model_validator

from pipewatch_schemas.base import BaseSchema
from pipewatch_schemas.primitives import LogSinkType, SourceKind
from pipewatch_schemas.topology import PipelineTopology, default_topology


class SourceConfig(BaseSchema):
    """Where job records are fetched from."""

    kind: SourceKind = Field(SourceKind.API, description="Source transport")
    base_url: str | None = Field(None, description="Job-queue API base URL")
    token_env: str | None = Field(
        None, description="Environment variable holding the API bearer token"
    )
    timeout_s: float = Field(30.0, gt=0, description="Per-request timeout")
    page_size: int = Field(100, ge=1, description="Jobs requested per page")
    path: str | None = Field(None, description="JSONL file for file sources")

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: object) -> SourceKind:
        if isinstance(value, SourceKind):
            return value
        if isinstance(value, str):
            return SourceKind(value)
        return value  # type: ignore[return-value]

    @model_validator(mode="after")
    def validate_source(self) -> SourceConfig:
        """Ensure the fields required by the source kind are present.

        Returns:
            SourceConfig: Validated source configuration.

        Raises:
            ValueError: If required fields are missing or malformed.
        """
        if self.kind == SourceKind.API:
            if self.base_url is None:
                raise ValueError("base_url is required for api sources")
            parsed = urlparse(self.base_url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError("base_url must be an http(s) URL")
        elif self.path is None:
            raise ValueError("path is required for file sources")
        return self


class RetryConfig(BaseSchema):
    """Retry policy for job fetches."""

    max_retries: int = Field(3, ge=0, description="Maximum retry attempts")
    backoff_s: float = Field(1.0, gt=0, description="Initial backoff in seconds")
    max_backoff_s: float = Field(
        10.0, gt=0, description="Maximum backoff delay in seconds"
    )
    jitter_s: float = Field(
        1.0, ge=0, description="Upper bound of random jitter added per retry"
    )


class ConcurrencyConfig(BaseSchema):
    """Concurrency settings for fetching."""

    max_parallel_requests: int = Field(
        3, ge=1, description="Max in-flight stage requests"
    )


class LogSinkConfig(BaseSchema):
    """Configuration for a single log sink."""

    type: LogSinkType = Field(..., description="Log sink type (console|file|noop)")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> LogSinkType:
        if isinstance(value, LogSinkType):
            return value
        if isinstance(value, str):
            return LogSinkType(value)
        return value  # type: ignore[return-value]


class LoggingConfig(BaseSchema):
    """Logging configuration for fetch cycles and CLI commands."""

    sinks: list[LogSinkConfig] = Field(
        ..., min_length=1, description="Log sinks to enable"
    )
    logs_dir: str = Field(
        ".pipewatch/logs", min_length=1, description="Directory for JSONL logs"
    )

    @model_validator(mode="after")
    def validate_sink_types(self) -> LoggingConfig:
        """Ensure log sink types are unique.

        Returns:
            LoggingConfig: Validated logging configuration.

        Raises:
            ValueError: If sink types are duplicated.
        """
        sink_types = [sink.type for sink in self.sinks]
        if len(set(sink_types)) != len(sink_types):
            raise ValueError("log sinks must not contain duplicates")
        return self


def _default_logging() -> LoggingConfig:
    return LoggingConfig(sinks=[LogSinkConfig(type=LogSinkType.NOOP)])


class WatchConfig(BaseSchema):
    """Root configuration loaded from pipewatch.toml."""

    source: SourceConfig = Field(..., description="Job source settings")
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retries")
    concurrency: ConcurrencyConfig = Field(
        default_factory=ConcurrencyConfig, description="Fetch concurrency"
    )
    logging: LoggingConfig = Field(
        default_factory=_default_logging, description="Logging sinks"
    )
    topology: PipelineTopology = Field(
        default_factory=default_topology, description="Stage-to-step topology"
    )
