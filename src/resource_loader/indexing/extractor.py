"""Metadata extraction: one resource file → one ResourceMetadata."""

from __future__ import annotations

import logging
from pathlib import Path

from resource_loader.errors import FileReadError
from resource_loader.indexing.frontmatter import parse_frontmatter, parse_json_metadata
from resource_loader.indexing.paths import (
    derive_domain_from_path,
    derive_id_from_path,
    derive_name_from_path,
    extract_inline_references,
    get_relative_path,
)
from resource_loader.indexing.reader import (
    DEFAULT_MAX_FILE_SIZE,
    get_file_stats,
    read_resource_file,
)
from resource_loader.models import Frontmatter, ResourceMetadata, ResourceType

logger = logging.getLogger(__name__)


def merge_references(declared: list[str], inline: list[str]) -> tuple[str, ...]:
    """Union of declared and inline references, first-seen order."""
    return tuple(dict.fromkeys([*declared, *inline]))


def build_metadata(
    path: Path,
    resource_type: ResourceType,
    project_root: Path,
    content: str,
    size: int,
    last_modified: int,
) -> ResourceMetadata:
    """Assemble a ResourceMetadata from already-read file content.

    Domain is derived from the root-relative path so directory names above the
    project root never influence classification.
    """
    if path.suffix == ".json":
        fm = Frontmatter.from_mapping(parse_json_metadata(content))
    else:
        fm = Frontmatter.from_mapping(parse_frontmatter(content))

    relative = get_relative_path(path, project_root)
    # Scanning the whole text, frontmatter included
    inline = extract_inline_references(content)

    return ResourceMetadata(
        id=fm.id or derive_id_from_path(path),
        type=resource_type,
        path=str(path),
        relative_path=relative,
        name=fm.title or fm.name or derive_name_from_path(path),
        domain=derive_domain_from_path(relative),
        size=size,
        last_modified=last_modified,
        tags=tuple(fm.tags),
        references=merge_references(fm.references, inline),
        referenced_by=tuple(fm.referenced_by),
        description=fm.description,
        version=fm.version,
        category=fm.category,
        author=fm.author,
        created=fm.created,
        updated=fm.updated,
        difficulty=fm.difficulty,
        status=fm.status,
    )


async def extract_resource_metadata(
    path: str | Path,
    resource_type: ResourceType,
    project_root: str | Path,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> ResourceMetadata | None:
    """Read *path* and extract its metadata.

    Returns ``None`` (and logs) when the file cannot be read, so one bad file
    never aborts a batch scan.
    """
    file_path = Path(path)
    try:
        content = await read_resource_file(file_path, max_size)
        size, mtime = get_file_stats(file_path)
    except FileReadError as exc:
        logger.warning("Skipping %s: %s", file_path, exc.reason)
        return None
    return build_metadata(file_path, resource_type, Path(project_root), content, size, mtime)
