"""Query engine: filtered, free-text search over a ResourceIndex.

Candidates start as every resource id and are intersected with the bucket of
each active filter in turn (type, domain, each tag, referenced_by). A missing
bucket empties the candidate set immediately. The optional text filter is a
case-insensitive substring match over name, description and tags. Results are
sorted by display name and truncated to ``limit``.

Queries never mutate the index.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from resource_loader.indexing.paths import intersection
from resource_loader.models import ResourceIndex, ResourceMetadata

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


@dataclass
class QueryFilters:
    """Optional filters for :func:`query_index`.

    Attributes:
        type: Exact resource type; ``"all"`` or ``None`` disables the filter.
        domain: Exact domain.
        tags: Required tags; a resource must carry every one (AND).
        referenced_by: Name of a resource, agent or command in ``by_reference``.
        text: Case-insensitive substring over name, description and tags.
        limit: Maximum results returned, clamped to 1..MAX_LIMIT.
    """

    type: str | None = None
    domain: str | None = None
    tags: list[str] = field(default_factory=list)
    referenced_by: str | None = None
    text: str | None = None
    limit: int = DEFAULT_LIMIT

    @property
    def bounded_limit(self) -> int:
        return max(1, min(int(self.limit), MAX_LIMIT))


@dataclass
class QueryResult:
    results: list[ResourceMetadata]
    total: int  # matches before truncation

    @property
    def showing(self) -> int:
        return len(self.results)


def filter_candidates(index: ResourceIndex, filters: QueryFilters) -> set[str]:
    """Ids passing every bucket filter (text filter not applied)."""
    candidates = set(index.resources)

    buckets: list[set[str] | None] = []
    if filters.type and filters.type != "all":
        buckets.append(index.by_type.get(filters.type))
    if filters.domain:
        buckets.append(index.by_domain.get(filters.domain))
    for tag in filters.tags:
        buckets.append(index.by_tag.get(tag))
    if filters.referenced_by:
        buckets.append(index.by_reference.get(filters.referenced_by))

    for bucket in buckets:
        if not bucket:
            return set()
        candidates = intersection(candidates, bucket)
        if not candidates:
            return candidates
    return candidates


def matches_text(metadata: ResourceMetadata, text: str) -> bool:
    haystack = " ".join([metadata.name, metadata.description or "", *metadata.tags]).lower()
    return text.lower() in haystack


def query_index(index: ResourceIndex, filters: QueryFilters | None = None) -> QueryResult:
    """Run *filters* against *index*."""
    filters = filters or QueryFilters()
    matched = [index.resources[rid] for rid in filter_candidates(index, filters)]
    if filters.text:
        matched = [m for m in matched if matches_text(m, filters.text)]
    matched.sort(key=lambda m: (m.name, m.id))
    return QueryResult(results=matched[: filters.bounded_limit], total=len(matched))
