"""Resource index builder.

Scans the five per-type resource directories, extracts metadata for every
file, fills the primary store and secondary indexes, builds the reference
graph, then scans ``agent/`` and ``command/`` definitions for inline
references.

Failures are contained at the narrowest level: one unreadable file skips that
file, one unscannable directory skips that type. The build itself only fails
on programming errors.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from resource_loader.errors import FileReadError, IndexBuildError
from resource_loader.indexing.extractor import extract_resource_metadata
from resource_loader.indexing.graph import build_reference_graph
from resource_loader.indexing.paths import derive_id_from_path, extract_inline_references
from resource_loader.indexing.reader import (
    DEFAULT_MAX_FILE_SIZE,
    read_resource_file,
    scan_files,
)
from resource_loader.models import (
    INDEX_VERSION,
    RESOURCE_TYPES,
    ResourceIndex,
    ResourceMetadata,
    ResourceType,
)

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_DIR = ".opencode"

# Glob per type; schemas are JSON, everything else markdown
_PATTERNS: dict[str, str] = {"schema": "**/*.json"}
_DEFAULT_PATTERN = "**/*.md"


def get_resource_paths(
    project_root: str | Path, resource_dir: str = DEFAULT_RESOURCE_DIR
) -> list[tuple[ResourceType, Path, str]]:
    """``(type, base_dir, glob)`` for every resource type, in scan order."""
    base = Path(project_root) / resource_dir
    return [(t, base / t, _PATTERNS.get(t, _DEFAULT_PATTERN)) for t in RESOURCE_TYPES]


def new_index(project_root: str | Path) -> ResourceIndex:
    return ResourceIndex(
        version=INDEX_VERSION,
        generated_at=int(time.time() * 1000),
        project_root=str(project_root),
    )


def _discard(buckets: dict[str, set[str]], key: str, resource_id: str) -> None:
    bucket = buckets.get(key)
    if bucket is None:
        return
    bucket.discard(resource_id)
    if not bucket:
        del buckets[key]


def _remove_from_secondary(index: ResourceIndex, old: ResourceMetadata) -> None:
    _discard(index.by_type, old.type, old.id)
    _discard(index.by_domain, old.domain, old.id)
    for tag in old.tags:
        _discard(index.by_tag, tag, old.id)
    for ref in old.referenced_by:
        _discard(index.by_reference, ref, old.id)


def add_resource_to_index(index: ResourceIndex, metadata: ResourceMetadata) -> None:
    """Insert *metadata* into the primary store and all secondary indexes.

    A later file with an already-indexed id replaces the earlier one in every
    index; the shadowed file is recorded in ``index.duplicates``.
    """
    rid = metadata.id
    previous = index.resources.get(rid)
    if previous is not None:
        _remove_from_secondary(index, previous)
        index.duplicates.setdefault(rid, []).append(previous.relative_path)
        logger.warning(
            "Duplicate resource id '%s': %s replaces %s",
            rid,
            metadata.relative_path,
            previous.relative_path,
        )

    index.resources[rid] = metadata
    index.by_type.setdefault(metadata.type, set()).add(rid)
    index.by_domain.setdefault(metadata.domain, set()).add(rid)
    for tag in metadata.tags:
        index.by_tag.setdefault(tag, set()).add(rid)
    for ref in metadata.referenced_by:
        index.by_reference.setdefault(ref, set()).add(rid)


async def scan_resource_type(
    resource_type: ResourceType,
    base_dir: Path,
    pattern: str,
    project_root: Path,
    index: ResourceIndex,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> int:
    """Index every file of one type; returns the number of files indexed.

    Raises:
        IndexBuildError: If *base_dir* cannot be walked.
    """
    try:
        files = await scan_files(base_dir, pattern)
    except OSError as exc:
        raise IndexBuildError(resource_type, str(exc)) from exc

    count = 0
    for path in files:
        metadata = await extract_resource_metadata(path, resource_type, project_root, max_size)
        if metadata is not None:
            add_resource_to_index(index, metadata)
            count += 1
    logger.debug("Indexed %d %s resource(s) from %s", count, resource_type, base_dir)
    return count


async def _scan_definitions(
    base_dir: Path,
    graph_map: dict[str, set[str]],
    index: ResourceIndex,
    max_size: int,
) -> None:
    for path in await scan_files(base_dir, _DEFAULT_PATTERN):
        name = derive_id_from_path(path)
        try:
            content = await read_resource_file(path, max_size)
        except FileReadError as exc:
            logger.warning("Skipping definition %s: %s", path, exc.reason)
            continue
        refs = extract_inline_references(content)
        if not refs:
            continue
        graph_map[name] = set(refs)
        known = [r for r in refs if r in index.resources]
        if known:
            index.by_reference.setdefault(name, set()).update(known)


async def index_agent_command_references(
    project_root: str | Path,
    index: ResourceIndex,
    resource_dir: str = DEFAULT_RESOURCE_DIR,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> None:
    """Record which resources each agent / command definition references.

    Keys are definition-file names (a separate namespace from resource ids).
    Targets that resolve to indexed resources are also added to
    ``by_reference`` under the same name so queries can filter by
    ``referenced_by``; dangling targets stay in the graph map only.
    """
    base = Path(project_root) / resource_dir
    for sub, graph_map in (("agent", index.graph.agents), ("command", index.graph.commands)):
        try:
            await _scan_definitions(base / sub, graph_map, index, max_size)
        except OSError as exc:
            logger.warning("Error indexing %s references: %s", sub, exc)


async def build_resource_index(
    project_root: str | Path,
    resource_dir: str = DEFAULT_RESOURCE_DIR,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> ResourceIndex:
    """Build a complete ResourceIndex for *project_root* from the filesystem."""
    root = Path(project_root).resolve()
    index = new_index(root)

    for resource_type, base_dir, pattern in get_resource_paths(root, resource_dir):
        try:
            await scan_resource_type(resource_type, base_dir, pattern, root, index, max_size)
        except IndexBuildError as exc:
            logger.error("%s", exc)

    build_reference_graph(index)
    await index_agent_command_references(root, index, resource_dir, max_size)

    logger.info("Index built: %d resources indexed", len(index.resources))
    return index


def validate_index(index: ResourceIndex) -> list[str]:
    """Return human-readable violations of the index invariants (empty if sound)."""
    problems: list[str] = []
    known = index.resources

    for label, buckets in (
        ("by_type", index.by_type),
        ("by_domain", index.by_domain),
        ("by_tag", index.by_tag),
        ("by_reference", index.by_reference),
    ):
        for key, ids in buckets.items():
            for rid in sorted(ids - known.keys()):
                problems.append(f"{label}['{key}'] contains unknown id '{rid}'")

    for rid, metadata in known.items():
        type_hits = [k for k, ids in index.by_type.items() if rid in ids]
        if type_hits != [metadata.type]:
            problems.append(f"'{rid}' is in type buckets {type_hits}, expected ['{metadata.type}']")
        domain_hits = [k for k, ids in index.by_domain.items() if rid in ids]
        if domain_hits != [metadata.domain]:
            problems.append(
                f"'{rid}' is in domain buckets {domain_hits}, expected ['{metadata.domain}']"
            )

    for src, targets in index.graph.forward.items():
        for dst in targets:
            if src not in index.graph.backward.get(dst, set()):
                problems.append(f"edge {src} -> {dst} has no backward entry")
    for dst, sources in index.graph.backward.items():
        for src in sources:
            if dst not in index.graph.forward.get(src, set()):
                problems.append(f"backward edge {dst} <- {src} has no forward entry")

    return problems
