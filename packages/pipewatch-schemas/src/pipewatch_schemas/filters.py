"""Entity filter schemas."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.primitives import FilterType, StepId

STEP_FILTER_SEPARATOR = ":"


class EntityFilter(FrozenSchema):
    """One active filter; step_issues filters name the step they inspect."""

    filter_type: FilterType = Field(..., description="Filter kind")
    step_id: StepId | None = Field(
        None, description="Step inspected by step_issues filters"
    )

    @field_validator("filter_type", mode="before")
    @classmethod
    def _coerce_filter_type(cls, value: object) -> FilterType:
        if isinstance(value, FilterType):
            return value
        if isinstance(value, str):
            return FilterType(value)
        return value  # type: ignore[return-value]

    @model_validator(mode="after")
    def _validate_step_id(self) -> EntityFilter:
        if self.filter_type == FilterType.STEP_ISSUES:
            if self.step_id is None:
                raise ValueError("step_issues filters require step_id")
        elif self.step_id is not None:
            raise ValueError("step_id is only allowed for step_issues filters")
        return self

    @property
    def key(self) -> str:
        """Stable string form, e.g. has_failed or step_issues:finalize."""
        if self.step_id is None:
            return str(self.filter_type)
        return f"{self.filter_type}{STEP_FILTER_SEPARATOR}{self.step_id}"

    @classmethod
    def parse(cls, value: str) -> EntityFilter:
        """Parse the string form produced by ``key``.

        Args:
            value: Filter string such as ``has_issues`` or
                ``step_issues:data-extraction``.

        Returns:
            EntityFilter: Parsed filter.

        Raises:
            ValueError: If the filter type or step id is invalid.
        """
        name, _, step_id = value.strip().partition(STEP_FILTER_SEPARATOR)
        return cls(filter_type=FilterType(name), step_id=step_id or None)
