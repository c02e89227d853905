"""Reference graph construction and traversal.

forward[a] ∋ b  ⇔  backward[b] ∋ a. Dangling references (targets with no
resource) are kept as edges; cycles are legal.
"""

from __future__ import annotations

from collections import deque

from resource_loader.models import ResourceIndex


def build_reference_graph(index: ResourceIndex) -> None:
    """Populate ``index.graph.forward`` / ``backward`` from resource references."""
    forward = index.graph.forward
    backward = index.graph.backward
    for rid, metadata in index.resources.items():
        if not metadata.references:
            continue
        targets = forward.setdefault(rid, set())
        for ref in metadata.references:
            targets.add(ref)
            backward.setdefault(ref, set()).add(rid)


def resolve_references(index: ResourceIndex, resource_id: str) -> tuple[list[str], list[str]]:
    """Split the forward references of *resource_id* into (resolved, dangling)."""
    metadata = index.resources.get(resource_id)
    if metadata is None:
        return [], []
    resolved = [r for r in metadata.references if r in index.resources]
    dangling = [r for r in metadata.references if r not in index.resources]
    return resolved, dangling


def collect_reference_closure(
    index: ResourceIndex, resource_id: str, max_depth: int
) -> list[tuple[str, int]]:
    """Breadth-first ``(id, depth)`` pairs reachable from *resource_id*.

    Depth 1 is a direct reference. The start id and ids already visited are
    never yielded twice; dangling ids are skipped. Declared reference order is
    kept within each level.
    """
    if max_depth < 1 or resource_id not in index.resources:
        return []

    visited: set[str] = {resource_id}
    result: list[tuple[str, int]] = []
    queue: deque[tuple[str, int]] = deque([(resource_id, 0)])

    while queue:
        current, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for ref in index.resources[current].references:
            if ref in visited or ref not in index.resources:
                continue
            visited.add(ref)
            result.append((ref, depth + 1))
            queue.append((ref, depth + 1))
    return result
