"""Unit tests for the pipewatch CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pipewatch_cli.main import app
from pipewatch_core.version import VERSION
from pipewatch_schemas.events import CommandEvent, FetchEvent
from pipewatch_schemas.logs import LogEntry

runner = CliRunner()

_TOPOLOGY = """
[[topology.steps]]
step_id = "preprocessing"
name = "Preprocessing"
stage_ids = ["precheck"]
order = 1

[[topology.steps]]
step_id = "data-extraction"
name = "Data Extraction"
stage_ids = ["extractEmissions", "followUpScope3"]
order = 2
"""


def _write_config(
    tmp_path: Path,
    *,
    source: str | None = None,
    logging: str = "",
) -> Path:
    source_block = source or '[source]\nkind = "file"\npath = "jobs.jsonl"\n'
    config_path = tmp_path / "pipewatch.toml"
    config_path.write_text(
        source_block + "\n[retry]\nmax_retries = 0\n" + logging + _TOPOLOGY,
        encoding="utf-8",
    )
    return config_path


def _job(
    job_id: str,
    queue: str,
    company: str,
    thread_id: str,
    minute: int,
    *,
    failed: bool = False,
) -> dict[str, object]:
    return {
        "id": job_id,
        "queue": queue,
        "processId": thread_id,
        "company": company,
        "year": 2024,
        "timestamp": f"2026-03-01T09:{minute:02d}:00Z",
        "processedOn": f"2026-03-01T09:{minute:02d}:10Z",
        "finishedOn": f"2026-03-01T09:{minute:02d}:20Z",
        "status": "failed" if failed else "completed",
    }


def _write_jobs(tmp_path: Path) -> Path:
    jobs = [
        _job("a-1", "precheck", "Acme", "thread-a", 0),
        _job("a-2", "extractEmissions", "Acme", "thread-a", 1),
        _job("a-3", "followUpScope3", "Acme", "thread-a", 2, failed=True),
        _job("b-1", "precheck", "Beta", "thread-b", 10),
        _job("b-2", "extractEmissions", "Beta", "thread-b", 11),
        _job("b-3", "followUpScope3", "Beta", "thread-b", 12),
    ]
    path = tmp_path / "jobs.jsonl"
    path.write_text(
        "\n".join(json.dumps(job) for job in jobs) + "\n", encoding="utf-8"
    )
    return path


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Write a file-source config with two entities."""
    _write_jobs(tmp_path)
    return _write_config(tmp_path)


def _invoke_json(args: list[str]) -> tuple[int, dict]:
    result = runner.invoke(app, [*args, "--json"])
    return result.exit_code, json.loads(result.stdout)


def test_version_command() -> None:
    """Test version command outputs version string."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert VERSION in result.stdout


def test_list_outputs_entities_by_recency(config_path: Path) -> None:
    """List returns every entity, most recently active first."""
    exit_code, response = _invoke_json(["list", "--config", str(config_path)])
    assert exit_code == 0
    assert response["error"] is None
    data = response["data"]
    assert [entity["entity_key"] for entity in data["entities"]] == [
        "Beta",
        "Acme",
    ]
    assert data["total"] == 2
    assert response["meta"]["scope"] == "latest"
    assert response["meta"]["missing_stages"] == []


def test_list_applies_filters(config_path: Path) -> None:
    """Filters narrow the listed entities."""
    exit_code, response = _invoke_json(
        ["list", "--config", str(config_path), "--filter", "has_failed"]
    )
    assert exit_code == 0
    assert [entity["entity_key"] for entity in response["data"]["entities"]] == [
        "Acme"
    ]
    assert response["data"]["total"] == 2


def test_list_search_matches_substring(config_path: Path) -> None:
    """Search narrows entities by case-insensitive name."""
    exit_code, response = _invoke_json(
        ["list", "--config", str(config_path), "--search", "bet"]
    )
    assert exit_code == 0
    assert [entity["entity_key"] for entity in response["data"]["entities"]] == [
        "Beta"
    ]


def test_status_shows_entity_runs(config_path: Path) -> None:
    """Status returns the rolled-up runs of one entity."""
    exit_code, response = _invoke_json(
        ["status", "Acme", "--config", str(config_path)]
    )
    assert exit_code == 0
    entity = response["data"]
    assert entity["entity_key"] == "Acme"
    assert len(entity["runs"]) == 1
    run = entity["runs"][0]
    assert run["status"] == "failed"
    assert [step["step_id"] for step in run["steps"]] == [
        "preprocessing",
        "data-extraction",
    ]
    assert run["steps"][0]["status"] == "completed"


def test_status_unknown_entity_exits_not_found(config_path: Path) -> None:
    """An unknown entity yields a not_found error envelope."""
    exit_code, response = _invoke_json(
        ["status", "Nobody", "--config", str(config_path)]
    )
    assert exit_code == 12  # ExitCode.NOT_FOUND
    assert response["data"] is None
    assert response["error"]["code"] == "not_found"


def test_counts_reports_every_filter(config_path: Path) -> None:
    """Counts tally each filter over all entities."""
    exit_code, response = _invoke_json(["counts", "--config", str(config_path)])
    assert exit_code == 0
    data = response["data"]
    assert data["total"] == 2
    assert data["counts"]["has_failed"] == 1
    assert data["counts"]["fully_completed"] == 1
    assert data["counts"]["step_issues:preprocessing"] == 0


def test_overview_summarizes_runs(config_path: Path) -> None:
    """Overview reports totals across entities."""
    exit_code, response = _invoke_json(["overview", "--config", str(config_path)])
    assert exit_code == 0
    data = response["data"]
    assert data["total_entities"] == 2
    assert data["total_runs"] == 2
    assert data["entities_with_failed"] == 1


def test_rerun_targets_with_follow_up(config_path: Path) -> None:
    """Rerun targets pick the anchor job and build the request body."""
    exit_code, response = _invoke_json([
        "rerun-targets",
        "--config",
        str(config_path),
        "--filter",
        "has_failed",
        "--follow-up",
        "followUpScope3",
    ])
    assert exit_code == 0
    data = response["data"]
    assert [target["job_id"] for target in data["targets"]] == ["a-2"]
    assert data["request"] == {"scopes": ["scope3"], "jobData": None}


def test_bad_filter_exits_validation_error(config_path: Path) -> None:
    """Unknown filter names map to a validation error."""
    exit_code, response = _invoke_json(
        ["list", "--config", str(config_path), "--filter", "bogus"]
    )
    assert exit_code == 11  # ExitCode.VALIDATION_ERROR
    assert response["error"]["code"] == "validation_error"


def test_missing_config_exits_config_error(tmp_path: Path) -> None:
    """A missing config file maps to a config error."""
    exit_code, response = _invoke_json(
        ["list", "--config", str(tmp_path / "missing.toml")]
    )
    assert exit_code == 10  # ExitCode.CONFIG_ERROR
    assert response["error"]["code"] == "config_error"


def test_invalid_config_exits_config_error(tmp_path: Path) -> None:
    """A config failing validation maps to a config error."""
    config_path = _write_config(tmp_path, source='[source]\nkind = "file"\n')
    exit_code, response = _invoke_json(["list", "--config", str(config_path)])
    assert exit_code == 10  # ExitCode.CONFIG_ERROR
    assert "path" in response["error"]["message"]


def test_missing_token_env_exits_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An api source whose token variable is unset fails before fetching."""
    monkeypatch.delenv("PIPEWATCH_TEST_TOKEN", raising=False)
    config_path = _write_config(
        tmp_path,
        source=(
            "[source]\n"
            'kind = "api"\n'
            'base_url = "https://queues.example.test"\n'
            'token_env = "PIPEWATCH_TEST_TOKEN"\n'
        ),
    )
    exit_code, response = _invoke_json(["list", "--config", str(config_path)])
    assert exit_code == 10  # ExitCode.CONFIG_ERROR
    assert "PIPEWATCH_TEST_TOKEN" in response["error"]["message"]


def test_unreadable_source_exits_fetch_error(tmp_path: Path) -> None:
    """When every stage fails the command exits with a fetch error."""
    config_path = _write_config(tmp_path)
    exit_code, response = _invoke_json(["list", "--config", str(config_path)])
    assert exit_code == 20  # ExitCode.FETCH_ERROR
    assert response["error"]["code"] == "io_error"


def test_list_renders_table(config_path: Path) -> None:
    """Without --json the entities are rendered for humans."""
    result = runner.invoke(app, ["list", "--config", str(config_path)])
    assert result.exit_code == 0
    assert "Acme" in result.stdout
    assert "Beta" in result.stdout


def test_commands_emit_logs_to_file_sink(tmp_path: Path) -> None:
    """The file sink records the command and fetch lifecycle per cycle."""
    _write_jobs(tmp_path)
    config_path = _write_config(
        tmp_path,
        logging='[logging]\nlogs_dir = "logs"\n\n[[logging.sinks]]\ntype = "file"\n',
    )
    result = runner.invoke(app, ["overview", "--config", str(config_path)])
    assert result.exit_code == 0

    log_files = list((tmp_path / "logs").glob("*.jsonl"))
    assert len(log_files) == 1
    entries = [
        LogEntry.model_validate_json(line)
        for line in log_files[0].read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    events = [entry.event for entry in entries]
    assert events[0] == CommandEvent.STARTED
    assert events[-1] == CommandEvent.COMPLETED
    assert FetchEvent.CYCLE_STARTED in events
    assert len({entry.cycle_id for entry in entries}) == 1


def test_list_reports_malformed_jobs_and_keeps_the_rest(tmp_path: Path) -> None:
    """A payload without a thread id is reported while other jobs still list."""
    jobs_path = _write_jobs(tmp_path)
    broken = _job("c-1", "precheck", "Gamma", "thread-c", 20)
    del broken["processId"]
    with open(jobs_path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(broken) + "\n")
    config_path = _write_config(tmp_path)

    exit_code, response = _invoke_json(["list", "--config", str(config_path)])

    assert exit_code == 0
    data = response["data"]
    assert [entity["entity_key"] for entity in data["entities"]] == [
        "Beta",
        "Acme",
    ]
    malformed = [
        diagnostic
        for diagnostic in data["diagnostics"]
        if diagnostic["code"] == "malformed_job"
    ]
    assert [diagnostic["job_id"] for diagnostic in malformed] == ["c-1"]
    assert malformed[0]["stage_id"] == "precheck"
