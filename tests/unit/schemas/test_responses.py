"""Unit tests for API response schemas."""

from pipewatch_schemas.primitives import RunScope
from pipewatch_schemas.rerun import RerunRequest
from pipewatch_schemas.responses import (
    ApiResponse,
    ErrorDetails,
    ErrorResponse,
    FilterCountsResult,
    MetaInfo,
    RerunPlanResult,
)


def test_api_response_with_error() -> None:
    """Ensure error responses serialize with required fields."""
    response = ApiResponse[FilterCountsResult](
        data=None,
        error=ErrorResponse(
            code="client_error",
            message="Queue not found",
            details=ErrorDetails(
                field="precheck",
                provided="https://queues.example.test/queues/precheck",
            ),
        ),
        meta=MetaInfo(timestamp="2026-03-01T12:00:00Z"),
    )

    payload = response.model_dump()
    assert payload["data"] is None
    assert payload["error"]["code"] == "client_error"
    assert payload["error"]["details"]["field"] == "precheck"


def test_api_response_with_data_and_meta() -> None:
    """Successful responses carry the scope and missing stages."""
    response = ApiResponse[FilterCountsResult](
        data=FilterCountsResult(counts={"has_failed": 1}, total=3),
        error=None,
        meta=MetaInfo(
            timestamp="2026-03-01T12:00:00Z",
            scope=RunScope.ALL,
            missing_stages=["followUpScope3"],
        ),
    )

    payload = response.model_dump()
    assert payload["data"] == {"counts": {"has_failed": 1}, "total": 3}
    assert payload["meta"]["scope"] == "all"
    assert payload["meta"]["missing_stages"] == ["followUpScope3"]


def test_rerun_plan_dumps_request_alias() -> None:
    """The embedded rerun request keeps its wire alias."""
    plan = RerunPlanResult(targets=[], request=RerunRequest(scopes=["scope3"]))
    payload = plan.model_dump(by_alias=True)
    assert payload["request"] == {"scopes": ["scope3"], "jobData": None}
