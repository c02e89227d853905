"""Tests for the ResourceLoader orchestrator: tools, hooks and index lifecycle."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

import resource_loader.loader as loader_module
from resource_loader.config import LoaderConfig
from resource_loader.loader import ResourceLoader, format_resource_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _config(**session: int) -> LoaderConfig:
    cfg = LoaderConfig()
    cfg.index.persist_cache = False
    for key, value in session.items():
        setattr(cfg.session, key, value)
    return cfg


@pytest.fixture
def loader(sample_project: Path) -> ResourceLoader:
    return ResourceLoader(sample_project, _config())


# ---------------------------------------------------------------------------
# Index lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_three_resource_project(tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/checklist/pre-commit.md", "---\ntags: [git]\n---\nChecks\n")
    _write(tmp_path, ".opencode/task/resource-1.md", "one")
    _write(tmp_path, ".opencode/task/resource-2.md", "two")
    loader = ResourceLoader(tmp_path, _config())

    index = await loader.ensure_index()
    assert len(index) == 3
    assert len(index.by_type["task"]) == 2
    assert index.by_tag["git"] == {"pre-commit"}

    payload = await loader.resource_query(type="checklist")
    assert [r["id"] for r in payload["results"]] == ["pre-commit"]


@pytest.mark.asyncio
async def test_concurrent_ensure_index_builds_once(loader: ResourceLoader) -> None:
    first, second, third = await asyncio.gather(
        loader.ensure_index(), loader.ensure_index(), loader.ensure_index()
    )
    assert first is second is third
    assert loader.stats.index_builds == 1
    assert loader.stats.cache_misses == 1


@pytest.mark.asyncio
async def test_ensure_index_reuses_cached_index(loader: ResourceLoader) -> None:
    first = await loader.ensure_index()
    assert await loader.ensure_index() is first
    assert loader.stats.cache_hits == 1


@pytest.mark.asyncio
async def test_persisted_cache_is_reused(sample_project: Path) -> None:
    cfg = LoaderConfig()
    await ResourceLoader(sample_project, cfg).ensure_index()
    assert cfg.cache_file(sample_project.resolve()).is_file()

    second = ResourceLoader(sample_project, cfg)
    index = await second.ensure_index()
    assert second.stats.index_builds == 0
    assert "pre-commit" in index.resources


@pytest.mark.asyncio
async def test_invalidate_rebuilds_on_next_access(loader: ResourceLoader, sample_project: Path) -> None:
    await loader.ensure_index()
    _write(sample_project, ".opencode/task/new-task.md", "new")

    await loader.invalidate_index()
    assert loader.index is None

    index = await loader.ensure_index()
    assert "new-task" in index.resources
    assert loader.stats.index_builds == 2


@pytest.mark.asyncio
async def test_invalidate_removes_cache_file(sample_project: Path) -> None:
    loader = ResourceLoader(sample_project, LoaderConfig())
    await loader.ensure_index()
    assert loader.cache_path.is_file()

    await loader.invalidate_index()
    assert not loader.cache_path.exists()


@pytest.mark.asyncio
async def test_build_index_ignores_cache(sample_project: Path) -> None:
    loader = ResourceLoader(sample_project, LoaderConfig())
    await loader.ensure_index()
    _write(sample_project, ".opencode/task/late.md", "late")

    index = await loader.build_index()
    assert "late" in index.resources
    assert loader.index is index


def _hold_first_scan(monkeypatch: pytest.MonkeyPatch) -> tuple[asyncio.Event, asyncio.Event]:
    """Pause the first index scan after it reads the tree until *release* is set."""
    scanned, release = asyncio.Event(), asyncio.Event()
    real_build = loader_module.build_resource_index

    async def held_build(*args, **kwargs):
        index = await real_build(*args, **kwargs)
        if not scanned.is_set():
            scanned.set()
            await release.wait()
        return index

    monkeypatch.setattr(loader_module, "build_resource_index", held_build)
    return scanned, release


@pytest.mark.asyncio
async def test_invalidate_during_build_leaves_no_stale_cache(
    sample_project: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    scanned, release = _hold_first_scan(monkeypatch)
    loader = ResourceLoader(sample_project, LoaderConfig())
    stale = asyncio.create_task(loader.ensure_index())
    await scanned.wait()

    _write(sample_project, ".opencode/task/new-task.md", "new")
    await loader.invalidate_index()
    release.set()
    await stale

    assert not loader.cache_path.exists()
    assert loader.index is None
    index = await loader.ensure_index()
    assert "new-task" in index.resources


@pytest.mark.asyncio
async def test_late_build_does_not_overwrite_rebuilt_cache(
    sample_project: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    scanned, release = _hold_first_scan(monkeypatch)
    cfg = LoaderConfig()
    loader = ResourceLoader(sample_project, cfg)
    stale = asyncio.create_task(loader.ensure_index())
    await scanned.wait()

    _write(sample_project, ".opencode/task/new-task.md", "new")
    fresh = await loader.build_index()
    release.set()
    await stale

    assert loader.index is fresh
    reopened = ResourceLoader(sample_project, cfg)
    index = await reopened.ensure_index()
    assert reopened.stats.index_builds == 0
    assert "new-task" in index.resources


# ---------------------------------------------------------------------------
# resource_query
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_query_payload_shape(loader: ResourceLoader) -> None:
    payload = await loader.resource_query(tags=["quality"])

    assert payload["total"] == 2
    assert payload["showing"] == 2
    assert payload["query"] == {"tags": ["quality"], "limit": 10}
    first = payload["results"][0]
    assert set(first) == {"id", "type", "name", "domain", "description", "tags", "path", "size"}
    assert first["path"].startswith(".opencode/")
    assert "hint" in payload
    assert loader.stats.total_queries == 1


@pytest.mark.asyncio
async def test_query_text(loader: ResourceLoader) -> None:
    payload = await loader.resource_query(query="readme")
    assert [r["id"] for r in payload["results"]] == ["write-readme"]


@pytest.mark.asyncio
async def test_query_failure_becomes_payload(loader: ResourceLoader) -> None:
    payload = await loader.resource_query(limit="many")  # type: ignore[arg-type]
    assert payload["error"] == "QueryError"
    assert "message" in payload


# ---------------------------------------------------------------------------
# resource_load
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_load_returns_formatted_content(loader: ResourceLoader) -> None:
    payload = await loader.resource_load("s1", "pre-commit", message_id="m1")

    assert payload["id"] == "pre-commit"
    content = payload["content"]
    assert content.startswith("# Resource: Pre-Commit Checklist")
    assert "**Tags:** git, quality" in content
    assert "**Version:** 1.2.0" in content
    assert "Run the linters" in content
    assert "# Referenced Resources" not in content

    state = loader.sessions["s1"]
    assert state.loaded["pre-commit"].status == "active"
    assert state.loaded["pre-commit"].loaded_in_message == "m1"
    assert state.total_loaded == 1


@pytest.mark.asyncio
async def test_load_unknown_id(loader: ResourceLoader) -> None:
    payload = await loader.resource_load("s1", "does-not-exist")
    assert payload["error"] == "ResourceNotFound"
    assert "s1" not in loader.sessions or not loader.sessions["s1"].loaded


@pytest.mark.asyncio
async def test_load_twice_is_already_loaded(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit")
    payload = await loader.resource_load("s1", "pre-commit")

    assert payload["warning"] == "AlreadyLoaded"
    state = loader.sessions["s1"]
    assert len(state.loaded) == 1
    assert state.total_loaded == 1


@pytest.mark.asyncio
async def test_sessions_are_independent(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit")
    payload = await loader.resource_load("s2", "pre-commit")
    assert payload["id"] == "pre-commit"


@pytest.mark.asyncio
async def test_load_rejected_at_session_limit(sample_project: Path) -> None:
    loader = ResourceLoader(sample_project, _config(max_resources_per_session=2))
    await loader.resource_load("s1", "pre-commit")
    await loader.resource_load("s1", "code-style")

    payload = await loader.resource_load("s1", "commit-message")

    assert payload["error"] == "SessionLimitReached"
    assert set(loader.sessions["s1"].loaded) == {"pre-commit", "code-style"}


@pytest.mark.asyncio
async def test_load_rejected_over_size_budget(sample_project: Path) -> None:
    loader = ResourceLoader(sample_project, _config(max_total_size_per_session=10))
    payload = await loader.resource_load("s1", "pre-commit")
    assert payload["error"] == "SessionSizeLimitReached"


@pytest.mark.asyncio
async def test_load_file_removed_after_indexing(loader: ResourceLoader, sample_project: Path) -> None:
    await loader.ensure_index()
    (sample_project / ".opencode" / "template" / "commit-message.md").unlink()

    payload = await loader.resource_load("s1", "commit-message")

    assert payload["error"] == "FileReadError"
    assert "commit-message" not in loader.sessions["s1"].loaded


@pytest.mark.asyncio
async def test_load_with_references(loader: ResourceLoader) -> None:
    payload = await loader.resource_load("s1", "pre-commit", include_references=True)

    assert payload["loadedReferences"] == ["code-style", "commit-message"]
    assert "# Referenced Resources" in payload["content"]
    assert "## Referenced: Code Style" in payload["content"]
    assert set(loader.sessions["s1"].loaded) == {"pre-commit", "code-style", "commit-message"}


@pytest.mark.asyncio
async def test_load_references_respects_depth(sample_project: Path) -> None:
    _write(sample_project, ".opencode/task/a.md", "---\nreferences: [b]\n---\n")
    _write(sample_project, ".opencode/task/b.md", "---\nreferences: [c]\n---\n")
    _write(sample_project, ".opencode/task/c.md", "leaf")
    cfg = _config()
    cfg.loading.max_references_depth = 1
    loader = ResourceLoader(sample_project, cfg)

    payload = await loader.resource_load("s1", "a", include_references=True)
    assert payload["loadedReferences"] == ["b"]


@pytest.mark.asyncio
async def test_load_references_skips_already_loaded(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "code-style")
    payload = await loader.resource_load("s1", "pre-commit", include_references=True)
    assert payload["loadedReferences"] == ["commit-message"]


@pytest.mark.asyncio
async def test_load_references_stop_at_session_limit(sample_project: Path) -> None:
    loader = ResourceLoader(sample_project, _config(max_resources_per_session=2))
    payload = await loader.resource_load("s1", "pre-commit", include_references=True)
    assert payload["loadedReferences"] == ["code-style"]
    assert len(loader.sessions["s1"].loaded) == 2


@pytest.mark.asyncio
async def test_auto_load_references_from_config(sample_project: Path) -> None:
    cfg = _config()
    cfg.loading.auto_load_references = True
    loader = ResourceLoader(sample_project, cfg)
    payload = await loader.resource_load("s1", "pre-commit")
    assert payload["loadedReferences"] == ["code-style", "commit-message"]


# ---------------------------------------------------------------------------
# Lifecycle through the tool surface
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_flag_then_load_reactivates(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit", message_id="m1")
    loader.on_chat_message("s1", "m2")
    assert loader.sessions["s1"].loaded["pre-commit"].status == "flagged"

    await loader.resource_load("s1", "code-style", message_id="m3")
    assert loader.sessions["s1"].loaded["pre-commit"].status == "active"


@pytest.mark.asyncio
async def test_rejected_load_still_reactivates(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit", message_id="m1")
    loader.on_chat_message("s1", "m2")

    payload = await loader.resource_load("s1", "pre-commit", message_id="m3")

    assert payload["warning"] == "AlreadyLoaded"
    assert loader.sessions["s1"].loaded["pre-commit"].status == "active"


@pytest.mark.asyncio
async def test_flag_disabled_by_config(sample_project: Path) -> None:
    cfg = _config()
    cfg.session.auto_flag_after_message = False
    loader = ResourceLoader(sample_project, cfg)
    await loader.resource_load("s1", "pre-commit", message_id="m1")
    loader.on_chat_message("s1", "m2")
    assert loader.sessions["s1"].loaded["pre-commit"].status == "active"


@pytest.mark.asyncio
async def test_idle_event_prunes_flagged(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit", message_id="m1")
    loader.on_chat_message("s1", "m2")

    await loader.on_event("session.idle", {"sessionID": "s1"})

    state = loader.sessions["s1"]
    assert "pre-commit" not in state.loaded
    assert state.total_loaded == 1

    payload = await loader.resource_load("s1", "pre-commit", message_id="m3")
    assert payload["id"] == "pre-commit"


@pytest.mark.asyncio
async def test_release_with_keep(loader: ResourceLoader) -> None:
    for rid in ("pre-commit", "code-style", "commit-message"):
        await loader.resource_load("s1", rid)

    payload = await loader.resource_release("s1", keep=["pre-commit"])

    assert sorted(payload["released"]) == ["code-style", "commit-message"]
    assert payload["message"] == "Released 2 resource(s)"
    assert payload["remaining"] == 1
    assert loader.sessions["s1"].loaded["pre-commit"].status == "active"
    assert loader.stats.total_releases == 2


@pytest.mark.asyncio
async def test_release_reports_not_found(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit")
    payload = await loader.resource_release("s1", ids=["pre-commit", "ghost"])
    assert payload["released"] == ["pre-commit"]
    assert payload["notFound"] == ["ghost"]


@pytest.mark.asyncio
async def test_release_empty_session(loader: ResourceLoader) -> None:
    payload = await loader.resource_release("nobody")
    assert payload == {"message": "No resources to release", "released": []}


@pytest.mark.asyncio
async def test_list_loaded(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit", message_id="m1")
    await loader.resource_load("s1", "code-style", message_id="m1")
    await loader.resource_release("s1", ids=["code-style"])

    payload = await loader.resource_list_loaded("s1")

    by_id = {entry["id"]: entry for entry in payload["loaded"]}
    assert by_id["pre-commit"]["status"] == "active"
    assert by_id["pre-commit"]["name"] == "Pre-Commit Checklist"
    assert by_id["code-style"]["status"] == "released"
    assert "releasedAt" in by_id["code-style"]
    assert payload["activeResources"] == 1
    assert payload["totalLoaded"] == 2


@pytest.mark.asyncio
async def test_list_loaded_empty(loader: ResourceLoader) -> None:
    payload = await loader.resource_list_loaded("s1")
    assert payload["message"] == "No resources loaded in this session"
    assert payload["loaded"] == []


# ---------------------------------------------------------------------------
# Hooks + sweeper
# ---------------------------------------------------------------------------


def test_tool_executed_marks_loads_prunable(loader: ResourceLoader) -> None:
    merged = loader.on_tool_executed("resource-load", {"title": "x"})
    assert merged == {"title": "x", "prunable": True, "retentionPolicy": "single-use"}


def test_tool_executed_leaves_other_tools(loader: ResourceLoader) -> None:
    assert loader.on_tool_executed("resource-query", {"a": 1}) == {"a": 1}


@pytest.mark.asyncio
async def test_session_created_and_deleted_events(loader: ResourceLoader) -> None:
    await loader.on_event("session.created", {"sessionID": "s9"})
    assert "s9" in loader.sessions
    await loader.on_event("session.deleted", {"sessionID": "s9"})
    assert "s9" not in loader.sessions


@pytest.mark.asyncio
async def test_file_edited_in_resource_dir_invalidates(loader: ResourceLoader, sample_project: Path) -> None:
    await loader.ensure_index()
    path = sample_project / ".opencode" / "checklist" / "pre-commit.md"
    await loader.on_event("file.edited", {"path": str(path)})
    assert loader.index is None


@pytest.mark.asyncio
async def test_file_edited_elsewhere_keeps_index(loader: ResourceLoader, sample_project: Path) -> None:
    index = await loader.ensure_index()
    await loader.on_event("file.edited", {"path": str(sample_project / "README.md")})
    assert loader.index is index


@pytest.mark.asyncio
async def test_agent_definition_edit_refreshes_graph(loader: ResourceLoader, sample_project: Path) -> None:
    index = await loader.ensure_index()
    assert index.graph.agents["reviewer"] == {"pre-commit", "code-style", "missing-one"}

    path = _write(sample_project, ".opencode/agent/reviewer.md", "Only @write-readme now.\n")
    await loader.on_event("file.edited", {"path": str(path)})
    assert loader.index is None

    index = await loader.ensure_index()
    assert index.graph.agents["reviewer"] == {"write-readme"}


@pytest.mark.asyncio
async def test_command_definition_edit_invalidates(loader: ResourceLoader, sample_project: Path) -> None:
    await loader.ensure_index()
    path = sample_project / ".opencode" / "command" / "commit.md"
    await loader.on_event("file.edited", {"path": str(path)})
    assert loader.index is None


@pytest.mark.asyncio
async def test_unknown_event_ignored(loader: ResourceLoader) -> None:
    await loader.on_event("something.else", {})
    assert loader.sessions == {}


@pytest.mark.asyncio
async def test_sweep_idle_sessions(loader: ResourceLoader) -> None:
    await loader.resource_load("s1", "pre-commit")
    day_and_a_bit = loader.sessions["s1"].last_activity + 25 * 60 * 60 * 1000
    assert loader.sweep_idle_sessions(now=day_and_a_bit) == ["s1"]
    assert loader.sessions == {}


@pytest.mark.asyncio
async def test_start_sweeper_and_shutdown(sample_project: Path) -> None:
    loader = ResourceLoader(sample_project, LoaderConfig())
    loader.start_sweeper()
    await loader.ensure_index()
    loader.cache_path.unlink()

    await loader.shutdown()

    # shutdown flushes the in-memory index back to the cache
    assert loader.cache_path.is_file()


# ---------------------------------------------------------------------------
# format_resource_output
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_format_omits_missing_optional_fields(loader: ResourceLoader) -> None:
    index = await loader.ensure_index()
    output = format_resource_output(index.resources["commit-message"], "body")
    assert "**Description:**" not in output
    assert "**Tags:**" not in output
    assert "**Path:** .opencode/template/commit-message.md" in output
    assert output.endswith("body")
