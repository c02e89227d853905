"""Domain models for the resource index and session lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ResourceType = Literal["checklist", "knowledge-base", "schema", "task", "template"]
Domain = Literal["opencode", "core", "docs", "dev", "common"]
ResourceStatus = Literal["active", "flagged", "released", "pruned"]

# Declared scan order
RESOURCE_TYPES: tuple[ResourceType, ...] = (
    "checklist",
    "knowledge-base",
    "schema",
    "task",
    "template",
)
DOMAINS: tuple[Domain, ...] = ("opencode", "core", "docs", "dev", "common")
STATUSES: tuple[ResourceStatus, ...] = ("active", "flagged", "released", "pruned")

INDEX_VERSION = "1.0.0"

# Frontmatter keys mapped to Frontmatter attributes
_FRONTMATTER_KEYS: dict[str, str] = {
    "id": "id",
    "title": "title",
    "name": "name",
    "description": "description",
    "tags": "tags",
    "version": "version",
    "author": "author",
    "created": "created",
    "updated": "updated",
    "difficulty": "difficulty",
    "status": "status",
    "references": "references",
    "referencedBy": "referenced_by",
    "referenced_by": "referenced_by",
    "category": "category",
    "domain": "domain",
}
_LIST_FIELDS = frozenset(["tags", "references", "referenced_by"])


def _as_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v) != ""]


@dataclass
class Frontmatter:
    """Recognised frontmatter keys of a resource file.

    Unrecognised keys are kept verbatim in ``extra``. Scalar values are
    stringified (YAML turns ``2024-01-01`` into a ``date``); list fields that
    are not lists are dropped.
    """

    id: str | None = None
    title: str | None = None
    name: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    version: str | None = None
    author: str | None = None
    created: str | None = None
    updated: str | None = None
    difficulty: str | None = None
    status: str | None = None
    references: list[str] = field(default_factory=list)
    referenced_by: list[str] = field(default_factory=list)
    category: str | None = None
    domain: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Frontmatter:
        fm = cls()
        for key, value in data.items():
            attr = _FRONTMATTER_KEYS.get(str(key))
            if attr is None:
                fm.extra[str(key)] = value
            elif attr in _LIST_FIELDS:
                setattr(fm, attr, _as_str_list(value))
            else:
                setattr(fm, attr, _as_str(value))
        return fm


@dataclass(frozen=True)
class ResourceMetadata:
    """One discovered resource file. Never mutated after creation."""

    id: str
    type: ResourceType
    path: str
    relative_path: str
    name: str
    domain: Domain
    size: int
    last_modified: int  # epoch milliseconds
    tags: tuple[str, ...] = ()
    references: tuple[str, ...] = ()
    referenced_by: tuple[str, ...] = ()
    description: str | None = None
    version: str | None = None
    category: str | None = None
    author: str | None = None
    created: str | None = None
    updated: str | None = None
    difficulty: str | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase mapping stored in the cache file."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "path": self.path,
            "relativePath": self.relative_path,
            "name": self.name,
            "domain": self.domain,
            "size": self.size,
            "lastModified": self.last_modified,
            "tags": list(self.tags),
            "references": list(self.references),
            "referencedBy": list(self.referenced_by),
        }
        for key in ("description", "version", "category", "author",
                    "created", "updated", "difficulty", "status"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceMetadata:
        """Inverse of :meth:`to_dict`. Raises KeyError/TypeError on bad input."""
        return cls(
            id=str(data["id"]),
            type=data["type"],
            path=str(data["path"]),
            relative_path=str(data["relativePath"]),
            name=str(data["name"]),
            domain=data["domain"],
            size=int(data["size"]),
            last_modified=int(data["lastModified"]),
            tags=tuple(data.get("tags") or ()),
            references=tuple(data.get("references") or ()),
            referenced_by=tuple(data.get("referencedBy") or ()),
            description=data.get("description"),
            version=data.get("version"),
            category=data.get("category"),
            author=data.get("author"),
            created=data.get("created"),
            updated=data.get("updated"),
            difficulty=data.get("difficulty"),
            status=data.get("status"),
        )


@dataclass
class ReferenceGraph:
    """Symmetric forward/backward adjacency sets plus agent/command maps.

    ``agents`` and ``commands`` are keyed by definition-file name, not by
    resource id.
    """

    forward: dict[str, set[str]] = field(default_factory=dict)
    backward: dict[str, set[str]] = field(default_factory=dict)
    agents: dict[str, set[str]] = field(default_factory=dict)
    commands: dict[str, set[str]] = field(default_factory=dict)


@dataclass
class ResourceIndex:
    """Aggregate root: primary store, secondary indexes and reference graph."""

    version: str
    generated_at: int  # epoch milliseconds
    project_root: str
    resources: dict[str, ResourceMetadata] = field(default_factory=dict)
    by_type: dict[str, set[str]] = field(default_factory=dict)
    by_domain: dict[str, set[str]] = field(default_factory=dict)
    by_tag: dict[str, set[str]] = field(default_factory=dict)
    by_reference: dict[str, set[str]] = field(default_factory=dict)
    graph: ReferenceGraph = field(default_factory=ReferenceGraph)
    # id -> relative paths of files shadowed by a later file with the same id
    duplicates: dict[str, list[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.resources)


@dataclass
class LoadedResource:
    """Point-in-time snapshot of a resource loaded into a session."""

    id: str
    type: ResourceType
    path: str
    size: int
    loaded_at: int
    loaded_in_message: str
    tool_call_id: str
    status: ResourceStatus = "active"
    include_references: bool = False
    flagged_at: int | None = None
    released_at: int | None = None
    pruned_at: int | None = None


@dataclass
class SessionResourceState:
    """Loaded-resource bookkeeping for one chat session."""

    session_id: str
    created_at: int
    last_activity: int
    loaded: dict[str, LoadedResource] = field(default_factory=dict)
    total_loaded: int = 0  # lifetime counter, never decremented
    total_size: int = 0  # lifetime sum of loaded sizes, never decremented

    @property
    def current_size(self) -> int:
        """Bytes currently tracked in ``loaded``."""
        return sum(r.size for r in self.loaded.values())
