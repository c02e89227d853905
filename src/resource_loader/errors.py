"""Exceptions and structured tool payloads.

Expected business-rule outcomes (not found, limits, already loaded) are never
raised; tools return the payload dicts built here so the host always receives
a structured response:

    from resource_loader.errors import err_resource_not_found
    return err_resource_not_found(resource_id)

Every payload contains:
  1. ``error`` or ``warning``: the named outcome
  2. ``message``: what went wrong
  3. ``suggestion``: the next action, where one exists
"""

from __future__ import annotations

from typing import Any


class ResourceLoaderError(Exception):
    """Base class for resource-loader exceptions."""


class FileReadError(ResourceLoaderError):
    """A single resource file could not be read (I/O failure or too large)."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to read '{path}': {reason}")
        self.path = path
        self.reason = reason


class IndexBuildError(ResourceLoaderError):
    """A whole resource-type directory could not be scanned."""

    def __init__(self, resource_type: str, reason: str) -> None:
        super().__init__(f"Failed to index '{resource_type}' resources: {reason}")
        self.resource_type = resource_type
        self.reason = reason


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def err_resource_not_found(resource_id: str) -> dict[str, Any]:
    """Load referenced an id that is not in the index."""
    return {
        "error": "ResourceNotFound",
        "id": resource_id,
        "message": f"Resource with ID '{resource_id}' does not exist",
        "suggestion": "Use resource-query to find available resources",
    }


def err_session_limit(limit: int) -> dict[str, Any]:
    """Session already tracks the maximum number of resources."""
    return {
        "error": "SessionLimitReached",
        "limit": limit,
        "message": f"Maximum of {limit} resources per session",
        "suggestion": "Use resource-release to free up space",
    }


def err_session_size_limit(limit: str, current: str, requested: str) -> dict[str, Any]:
    """Loading would push the session's current footprint over its byte budget."""
    return {
        "error": "SessionSizeLimitReached",
        "limit": limit,
        "message": (
            f"Loading {requested} would exceed the {limit} per-session budget "
            f"(currently {current})"
        ),
        "suggestion": "Use resource-release to free up space",
    }


def warn_already_loaded(resource_id: str, loaded_at: int, status: str) -> dict[str, Any]:
    """The id is still tracked in this session."""
    return {
        "warning": "AlreadyLoaded",
        "id": resource_id,
        "status": status,
        "message": f"Resource '{resource_id}' is already loaded in this session",
        "loadedAt": str(loaded_at),
    }


def err_file_read(path: str, reason: str) -> dict[str, Any]:
    """The resource exists in the index but its file could not be read."""
    return {
        "error": "FileReadError",
        "path": path,
        "message": reason,
        "suggestion": "The file may have changed; the index is rebuilt on the next edit event",
    }


def err_unexpected(kind: str, exc: BaseException) -> dict[str, Any]:
    """Catch-all for unexpected failures at a tool boundary.

    *kind* is one of QueryError, LoadError, ListError, ReleaseError.
    """
    return {"error": kind, "message": str(exc) or type(exc).__name__}
