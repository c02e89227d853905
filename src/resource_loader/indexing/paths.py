"""Path-derived identity, domain and inline-reference helpers."""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePath
from typing import TypeVar

from resource_loader.models import RESOURCE_TYPES, Domain

T = TypeVar("T")

# Token: lowercase alphanumerics and hyphens; the marker match is case-insensitive.
_INLINE_REF_RE = re.compile(r"@([a-z0-9-]+)|\[\[([a-z0-9-]+)\]\]", re.IGNORECASE)

_RESOURCE_SUFFIXES = (".md", ".json")
_DEFINITION_DIRS = ("agent", "command")

# First matching segment wins, in this order
_DOMAIN_SEGMENTS: tuple[Domain, ...] = ("opencode", "core", "docs", "dev")


def derive_id_from_path(path: str | PurePath) -> str:
    """Filename without its .md / .json extension."""
    name = PurePath(path).name
    for suffix in _RESOURCE_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def derive_name_from_path(path: str | PurePath) -> str:
    """kebab-case filename → Title Case display name."""
    return " ".join(
        word[:1].upper() + word[1:] for word in derive_id_from_path(path).split("-")
    )


def derive_domain_from_path(path: str | PurePath) -> Domain:
    """Classify *path* by its directory segments.

    Only directory segments count: ``.opencode`` does not match ``opencode``
    and the filename itself is ignored.
    """
    segments = set(PurePath(path).parts[:-1])
    for domain in _DOMAIN_SEGMENTS:
        if domain in segments:
            return domain
    return "common"


def extract_inline_references(content: str) -> list[str]:
    """Return ``@id`` and ``[[id]]`` targets in first-seen order, deduplicated."""
    seen: dict[str, None] = {}
    for match in _INLINE_REF_RE.finditer(content):
        seen.setdefault(match.group(1) or match.group(2), None)
    return list(seen)


def get_relative_path(path: str | Path, project_root: str | Path) -> str:
    return Path(os.path.relpath(path, project_root)).as_posix()


def is_resource_path(path: str, resource_dir: str = ".opencode") -> bool:
    """True if *path* lies inside a per-type resource directory or ``agent/`` or ``command/``."""
    normalized = "/" + path.replace("\\", "/").lstrip("/")
    return any(
        f"/{resource_dir}/{d}/" in normalized for d in (*RESOURCE_TYPES, *_DEFINITION_DIRS)
    )


def format_bytes(size: int) -> str:
    """Human-readable size: ``0 B``, ``100.00 B``, ``1.00 KB``, ``5.00 MB``."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{value:.2f} {units[i]}"


def intersection(a: set[T], b: set[T]) -> set[T]:
    """New set of items present in both *a* and *b*."""
    if len(b) < len(a):
        a, b = b, a
    return {item for item in a if item in b}
