"""Session resource lifecycle.

Per-session state machine for loaded resources:

    active ──flag──▶ flagged ──prune──▶ (removed)
      │                 │
      │◀──reactivate────┘
      └──release──▶ released ──prune──▶ (removed)

``flagged`` resources may also be released. Pruning deletes the record from
``loaded``; no tombstone is kept. ``total_loaded`` and ``total_size`` are
lifetime counters and never decrease.

Transitions never raise. Flag, reactivate, prune and sweep are best-effort
bookkeeping; load and release report their outcome to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from resource_loader.errors import (
    err_session_limit,
    err_session_size_limit,
    warn_already_loaded,
)
from resource_loader.indexing.paths import format_bytes
from resource_loader.models import LoadedResource, ResourceMetadata, SessionResourceState

logger = logging.getLogger(__name__)

SESSION_RETENTION_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ReleaseResult:
    released: list[str] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)


def get_or_create_session_state(
    sessions: dict[str, SessionResourceState], session_id: str
) -> SessionResourceState:
    state = sessions.get(session_id)
    if state is None:
        ts = now_ms()
        state = SessionResourceState(session_id=session_id, created_at=ts, last_activity=ts)
        sessions[session_id] = state
        logger.info("Created new session state: %s", session_id)
    return state


def is_resource_loaded(state: SessionResourceState, resource_id: str) -> bool:
    """True while *resource_id* is tracked in the session, whatever its status."""
    return resource_id in state.loaded


def check_session_limits(
    state: SessionResourceState,
    resource_id: str,
    size: int,
    max_resources: int,
    max_total_size: int | None = None,
) -> dict[str, Any] | None:
    """Return the rejection payload for loading *resource_id*, or None if allowed.

    Checked in order: already tracked, resource-count ceiling, byte budget of
    the resources currently tracked.
    """
    existing = state.loaded.get(resource_id)
    if existing is not None:
        return warn_already_loaded(resource_id, existing.loaded_at, existing.status)
    if len(state.loaded) >= max_resources:
        return err_session_limit(max_resources)
    if max_total_size is not None and state.current_size + size > max_total_size:
        return err_session_size_limit(
            format_bytes(max_total_size), format_bytes(state.current_size), format_bytes(size)
        )
    return None


def add_loaded_resource(state: SessionResourceState, resource: LoadedResource) -> None:
    """Track *resource* in the session and bump the lifetime counters."""
    state.loaded[resource.id] = resource
    state.total_loaded += 1
    state.total_size += resource.size
    state.last_activity = now_ms()


def new_loaded_resource(
    metadata: ResourceMetadata,
    message_id: str,
    tool_call_id: str,
    include_references: bool = False,
) -> LoadedResource:
    """Snapshot *metadata* as an ``active`` LoadedResource."""
    return LoadedResource(
        id=metadata.id,
        type=metadata.type,
        path=metadata.path,
        size=metadata.size,
        loaded_at=now_ms(),
        loaded_in_message=message_id,
        tool_call_id=tool_call_id,
        include_references=include_references,
    )


def flag_resources_for_pruning(state: SessionResourceState, current_message_id: str) -> int:
    """Flag every active resource not loaded in *current_message_id*.

    Resources loaded during the message that just completed are exempt.
    Returns the number of resources flagged.
    """
    flagged = 0
    ts = now_ms()
    for resource in state.loaded.values():
        if resource.status == "active" and resource.loaded_in_message != current_message_id:
            resource.status = "flagged"
            resource.flagged_at = ts
            flagged += 1
    return flagged


def reactivate_resources(state: SessionResourceState) -> int:
    """Return every flagged resource to ``active``; returns how many moved."""
    count = 0
    for resource in state.loaded.values():
        if resource.status == "flagged":
            resource.status = "active"
            resource.flagged_at = None
            count += 1
    return count


def select_release_targets(
    state: SessionResourceState,
    ids: list[str] | None = None,
    keep: list[str] | None = None,
) -> list[str]:
    """Ids to release: *ids* if given, else everything tracked except *keep*."""
    if ids:
        return list(ids)
    keep_set = set(keep or ())
    return [rid for rid in state.loaded if rid not in keep_set]


def release_resources(state: SessionResourceState, resource_ids: list[str]) -> ReleaseResult:
    """Move matching active/flagged resources to ``released``.

    Ids that are not tracked are reported in ``not_found``; an id already
    released is reported as released again without changing its timestamp.
    """
    result = ReleaseResult()
    ts = now_ms()
    for rid in dict.fromkeys(resource_ids):
        resource = state.loaded.get(rid)
        if resource is None:
            result.not_found.append(rid)
            continue
        if resource.status in ("active", "flagged"):
            resource.status = "released"
            resource.released_at = ts
        result.released.append(rid)
    if result.released:
        state.last_activity = ts
    return result


def auto_prune_resources(state: SessionResourceState) -> list[str]:
    """Prune flagged and released resources; active ones are untouched.

    Returns the pruned ids.
    """
    ts = now_ms()
    pruned: list[str] = []
    for rid, resource in state.loaded.items():
        if resource.status in ("flagged", "released"):
            resource.status = "pruned"
            resource.pruned_at = ts
            pruned.append(rid)
    for rid in pruned:
        del state.loaded[rid]
    if pruned:
        logger.info("Auto-pruned %d resources from session %s", len(pruned), state.session_id)
    return pruned


def cleanup_old_sessions(
    sessions: dict[str, SessionResourceState],
    now: int | None = None,
    max_age_ms: int = SESSION_RETENTION_MS,
) -> list[str]:
    """Delete sessions idle for longer than *max_age_ms*; returns their ids."""
    now = now if now is not None else now_ms()
    expired = [sid for sid, s in sessions.items() if now - s.last_activity > max_age_ms]
    for sid in expired:
        del sessions[sid]
        logger.info("Cleaned up old session: %s", sid)
    return expired


def get_session_stats(state: SessionResourceState) -> dict[str, Any]:
    return {
        "sessionID": state.session_id,
        "activeResources": sum(1 for r in state.loaded.values() if r.status == "active"),
        "trackedResources": len(state.loaded),
        "totalLoaded": state.total_loaded,
        "totalSize": state.total_size,
        "currentSize": state.current_size,
        "createdAt": _iso(state.created_at),
        "lastActivity": _iso(state.last_activity),
    }


def _iso(ms: int) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ms / 1000))
