"""Index cache: flatten a ResourceIndex to JSON and back.

Every mapping-of-sets is stored as an ordered list of ``[key, [values...]]``
pairs; ``deserialize_index(serialize_index(x))`` reproduces every id, bucket
membership and graph edge of ``x`` (member order may differ).

Persistence never breaks the caller: a failed save is logged and the
in-memory index stays valid; a missing, corrupt or incompatible cache file
loads as ``None`` so the caller rebuilds from source.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from resource_loader.models import ReferenceGraph, ResourceIndex, ResourceMetadata

logger = logging.getLogger(__name__)

_GRAPH_KEYS = ("forward", "backward", "agents", "commands")


def _flatten(buckets: dict[str, set[str]]) -> list[list[Any]]:
    return [[key, sorted(ids)] for key, ids in buckets.items()]


def _restore(pairs: list[list[Any]]) -> dict[str, set[str]]:
    result: dict[str, set[str]] = {}
    for key, ids in pairs:
        if not isinstance(ids, list):
            raise TypeError(f"bucket '{key}' is not a list")
        result[str(key)] = {str(i) for i in ids}
    return result


def serialize_index(index: ResourceIndex) -> dict[str, Any]:
    """Convert *index* to a JSON-serialisable dict (camelCase keys)."""
    return {
        "version": index.version,
        "generatedAt": index.generated_at,
        "projectRoot": index.project_root,
        "resources": [[rid, m.to_dict()] for rid, m in index.resources.items()],
        "byType": _flatten(index.by_type),
        "byDomain": _flatten(index.by_domain),
        "byTag": _flatten(index.by_tag),
        "byReference": _flatten(index.by_reference),
        "graph": {k: _flatten(getattr(index.graph, k)) for k in _GRAPH_KEYS},
        "duplicates": [[rid, list(paths)] for rid, paths in index.duplicates.items()],
    }


def deserialize_index(data: dict[str, Any]) -> ResourceIndex:
    """Rebuild a ResourceIndex from :func:`serialize_index` output.

    Raises:
        KeyError, TypeError, ValueError: If *data* is structurally incompatible.
    """
    graph_data = data["graph"]
    return ResourceIndex(
        version=str(data["version"]),
        generated_at=int(data["generatedAt"]),
        project_root=str(data["projectRoot"]),
        resources={
            str(rid): ResourceMetadata.from_dict(meta) for rid, meta in data["resources"]
        },
        by_type=_restore(data["byType"]),
        by_domain=_restore(data["byDomain"]),
        by_tag=_restore(data["byTag"]),
        by_reference=_restore(data["byReference"]),
        graph=ReferenceGraph(**{k: _restore(graph_data[k]) for k in _GRAPH_KEYS}),
        duplicates={str(rid): list(paths) for rid, paths in data.get("duplicates", [])},
    )


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def _write(index: ResourceIndex, cache_path: Path) -> None:
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = cache_path.with_suffix(cache_path.suffix + ".tmp")
    tmp.write_text(json.dumps(serialize_index(index), indent=2), encoding="utf-8")
    tmp.replace(cache_path)


async def save_index_cache(index: ResourceIndex, cache_path: Path) -> bool:
    """Write *index* to *cache_path*; returns False (and logs) on failure."""
    try:
        await asyncio.to_thread(_write, index, cache_path)
    except (OSError, TypeError, ValueError) as exc:
        logger.warning("Failed to save index cache to %s: %s", cache_path, exc)
        return False
    logger.info("Index cache saved to %s", cache_path)
    return True


def _read(cache_path: Path) -> dict[str, Any] | None:
    if not cache_path.is_file():
        return None
    return json.loads(cache_path.read_text(encoding="utf-8"))


async def load_index_cache(
    cache_path: Path, project_root: str | Path | None = None
) -> ResourceIndex | None:
    """Load a cached index, or ``None`` when absent, corrupt or for another root."""
    try:
        data = await asyncio.to_thread(_read, cache_path)
        if data is None:
            return None
        index = deserialize_index(data)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.warning("Failed to load index cache %s: %s", cache_path, exc)
        return None

    if project_root is not None and index.project_root != str(project_root):
        logger.info(
            "Ignoring index cache built for %s (current root: %s)",
            index.project_root,
            project_root,
        )
        return None

    logger.info("Index loaded from cache (%d resources)", len(index.resources))
    return index


async def delete_cache_file(cache_path: Path) -> None:
    """Remove the cache file if present; failures are logged, not raised."""
    try:
        await asyncio.to_thread(cache_path.unlink, True)
    except OSError as exc:
        logger.warning("Failed to delete cache file %s: %s", cache_path, exc)
        return
    logger.info("Cache file deleted: %s", cache_path)
