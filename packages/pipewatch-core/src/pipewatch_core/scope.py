"""Run scope selection."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from pipewatch_schemas.primitives import RunScope
from pipewatch_schemas.views import RunView


def run_recency_key(run: RunView) -> tuple[datetime, str]:
    """Ordering of runs by recency; greater is newer.

    The thread id only breaks ties between runs with identical activity.
    """
    return (run.latest_activity_at, run.thread_id)


def select_runs(runs: Sequence[RunView], scope: RunScope | str) -> list[RunView]:
    """Select the runs that participate in filtering and counting.

    Args:
        runs: Runs of one entity, in any order.
        scope: ``latest`` keeps the newest run of every reporting year
            (a missing year counts as its own year); ``all`` keeps every run.

    Returns:
        list[RunView]: Selected runs in their input order.
    """
    if RunScope(scope) == RunScope.ALL:
        return list(runs)
    newest: dict[int | None, int] = {}
    for index, run in enumerate(runs):
        current = newest.get(run.year)
        if current is None or run_recency_key(run) > run_recency_key(runs[current]):
            newest[run.year] = index
    keep = set(newest.values())
    return [run for index, run in enumerate(runs) if index in keep]
