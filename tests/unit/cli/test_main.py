"""Tests for the resource-loader CLI entry point, build and query commands."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from resource_loader.cli.main import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# resource-loader --version
# ---------------------------------------------------------------------------


def test_version_flag_exits_zero() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "resource-loader" in result.output


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "resource-loader" in result.output


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("build", "query", "show", "graph", "cache"):
        assert name in result.output


# ---------------------------------------------------------------------------
# resource-loader build
# ---------------------------------------------------------------------------


def test_build_writes_cache(sample_project: Path) -> None:
    result = runner.invoke(app, ["build", "--root", str(sample_project)])
    assert result.exit_code == 0, result.output
    assert "Indexed" in result.output
    assert (sample_project / ".cache" / "resource-index.json").is_file()


def test_build_no_cache(sample_project: Path) -> None:
    result = runner.invoke(app, ["build", "--root", str(sample_project), "--no-cache"])
    assert result.exit_code == 0, result.output
    assert not (sample_project / ".cache" / "resource-index.json").exists()


def test_build_reports_duplicates(sample_project: Path) -> None:
    dup = sample_project / ".opencode" / "task" / "pre-commit.md"
    dup.write_text("shadowing the checklist", encoding="utf-8")
    result = runner.invoke(app, ["build", "--root", str(sample_project), "--no-cache"])
    assert result.exit_code == 0, result.output
    assert "Duplicate ids" in result.output


def test_build_without_resource_dir_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["build", "--root", str(tmp_path)])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_build_invalid_config_fails(sample_project: Path) -> None:
    (sample_project / "resource-loader.yaml").write_text(
        "session:\n  max_resources_per_session: 0\n", encoding="utf-8"
    )
    result = runner.invoke(app, ["build", "--root", str(sample_project)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


# ---------------------------------------------------------------------------
# resource-loader query
# ---------------------------------------------------------------------------


def test_query_json(sample_project: Path) -> None:
    result = runner.invoke(
        app, ["query", "--root", str(sample_project), "--tag", "quality", "--json"]
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert {r["id"] for r in payload["results"]} == {"pre-commit", "code-style"}
    assert payload["total"] == 2


def test_query_repeated_tags_and_semantics(sample_project: Path) -> None:
    result = runner.invoke(
        app,
        ["query", "--root", str(sample_project), "--tag", "quality", "--tag", "git", "--json"],
    )
    payload = json.loads(result.output)
    assert [r["id"] for r in payload["results"]] == ["pre-commit"]


def test_query_text_and_type(sample_project: Path) -> None:
    result = runner.invoke(
        app, ["query", "readme", "--type", "task", "--root", str(sample_project), "--json"]
    )
    payload = json.loads(result.output)
    assert [r["id"] for r in payload["results"]] == ["write-readme"]


def test_query_table(sample_project: Path) -> None:
    result = runner.invoke(app, ["query", "--root", str(sample_project), "--type", "checklist"])
    assert result.exit_code == 0, result.output
    assert "Showing 1 of 1" in result.output


def test_query_no_matches(sample_project: Path) -> None:
    result = runner.invoke(app, ["query", "--root", str(sample_project), "--tag", "nope"])
    assert result.exit_code == 0
    assert "No resources matched" in result.output
