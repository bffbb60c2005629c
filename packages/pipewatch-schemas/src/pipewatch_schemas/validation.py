"""Validation entrypoints for config and topology payloads."""

from __future__ import annotations

from pipewatch_schemas.config import WatchConfig
from pipewatch_schemas.primitives import JsonValue
from pipewatch_schemas.topology import PipelineTopology


def validate_watch_config(payload: dict[str, JsonValue]) -> WatchConfig:
    """Validate a root configuration payload.

    Args:
        payload: Raw configuration payload, typically parsed TOML.

    Returns:
        WatchConfig: Validated configuration.
    """
    return WatchConfig.model_validate(payload)


def validate_topology(payload: dict[str, JsonValue]) -> PipelineTopology:
    """Validate a topology payload.

    Args:
        payload: Raw topology payload.

    Returns:
        PipelineTopology: Validated topology.
    """
    return PipelineTopology.model_validate(payload)
