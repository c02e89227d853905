"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

# Sample project layout (ids → type / domain):
#   pre-commit      checklist       common   refs: code-style, commit-message
#   code-style      knowledge-base  core     refs: naming (dangling)
#   commit-message  template        common
#   config-schema   schema          dev
#   write-readme    task            docs     referencedBy: docs-agent
# agent/reviewer.md   → pre-commit, code-style, missing-one (dangling)
# command/commit.md   → pre-commit

_FILES: dict[str, str] = {
    ".opencode/checklist/pre-commit.md": (
        "---\n"
        "title: Pre-Commit Checklist\n"
        "description: Checks to run before every commit\n"
        "tags: [git, quality]\n"
        "version: 1.2.0\n"
        "references: [code-style]\n"
        "---\n"
        "\n"
        "- [ ] Run the linters\n"
        "- [ ] Write the message following @commit-message\n"
    ),
    ".opencode/knowledge-base/core/code-style.md": (
        "---\n"
        "title: Code Style\n"
        "tags: [quality]\n"
        "---\n"
        "Formatting rules. Naming is covered in [[naming]].\n"
    ),
    ".opencode/template/commit-message.md": "type(scope): subject\n\nbody\n",
    ".opencode/schema/dev/config-schema.json": (
        '{"title": "Config Schema", "description": "Project config file", '
        '"tags": ["config"], "type": "object"}\n'
    ),
    ".opencode/task/docs/write-readme.md": (
        "---\n"
        "description: Draft the project README\n"
        "tags: [docs]\n"
        "referencedBy: [docs-agent]\n"
        "---\n"
        "Write the README.\n"
    ),
    ".opencode/agent/reviewer.md": "Use @pre-commit and [[code-style]]; see @missing-one.\n",
    ".opencode/command/commit.md": "Load @pre-commit first.\n",
}


def write_resource(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """Project root with a populated .opencode/ resource tree."""
    for relative, content in _FILES.items():
        write_resource(tmp_path, relative, content)
    return tmp_path


@pytest.fixture(autouse=True)
def _clear_loader_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "RESOURCE_LOADER_CACHE_PATH",
        "RESOURCE_LOADER_MAX_RESOURCES",
        "RESOURCE_LOADER_PERSIST_CACHE",
    ):
        monkeypatch.delenv(var, raising=False)
