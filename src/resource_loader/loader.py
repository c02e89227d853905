"""Resource loader: process-scoped index + session state and the tool surface.

One ``ResourceLoader`` is constructed per project at startup and handed to the
host. It owns the cached index, the single in-flight index build, every
session's lifecycle state and the usage counters.

Tools (``resource_query``, ``resource_load``, ``resource_list_loaded``,
``resource_release``) always return a JSON-serialisable dict and never raise;
unexpected failures become ``{"error": "<Kind>Error", "message": ...}``.

Usage:
    loader = ResourceLoader(Path("."), load_config())
    loader.start_sweeper()
    payload = await loader.resource_query(type="checklist", tags=["git"])
    payload = await loader.resource_load("session-1", "pre-commit", message_id="m1")
    loader.on_chat_message("session-1", "m2")      # end of turn → flag
    await loader.on_event("session.idle", {"sessionID": "session-1"})  # prune
    await loader.shutdown()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from resource_loader.cache import delete_cache_file, load_index_cache, save_index_cache
from resource_loader.config import LoaderConfig, load_config
from resource_loader.errors import (
    FileReadError,
    err_file_read,
    err_resource_not_found,
    err_unexpected,
)
from resource_loader.indexing.builder import build_resource_index
from resource_loader.indexing.graph import collect_reference_closure
from resource_loader.indexing.paths import format_bytes, is_resource_path
from resource_loader.indexing.reader import read_resource_file
from resource_loader.models import ResourceIndex, ResourceMetadata, SessionResourceState
from resource_loader.query import QueryFilters, query_index
from resource_loader.session import (
    add_loaded_resource,
    auto_prune_resources,
    check_session_limits,
    cleanup_old_sessions,
    flag_resources_for_pruning,
    get_or_create_session_state,
    get_session_stats,
    new_loaded_resource,
    now_ms,
    reactivate_resources,
    release_resources,
    select_release_targets,
)

logger = logging.getLogger(__name__)

LOAD_TOOL = "resource-load"


@dataclass
class LoaderStats:
    index_builds: int = 0
    total_queries: int = 0
    total_loads: int = 0
    total_releases: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


@dataclass
class LoadedReference:
    metadata: ResourceMetadata
    content: str
    depth: int


def format_resource_output(
    metadata: ResourceMetadata,
    content: str,
    references: list[LoadedReference] | None = None,
) -> str:
    """Render a loaded resource (and any loaded references) as markdown."""
    lines = [
        f"# Resource: {metadata.name}",
        f"**Type:** {metadata.type}",
        f"**Domain:** {metadata.domain}",
        f"**ID:** {metadata.id}",
    ]
    if metadata.description:
        lines.append(f"**Description:** {metadata.description}")
    if metadata.tags:
        lines.append(f"**Tags:** {', '.join(metadata.tags)}")
    if metadata.version:
        lines.append(f"**Version:** {metadata.version}")
    lines += [
        f"**Path:** {metadata.relative_path}",
        f"**Size:** {format_bytes(metadata.size)}",
        "",
        "---",
        "",
        content,
    ]
    output = "\n".join(lines)
    if references:
        sections = [f"## Referenced: {r.metadata.name}\n\n{r.content}" for r in references]
        output += "\n\n---\n\n# Referenced Resources\n\n" + "\n\n---\n\n".join(sections)
    return output


class ResourceLoader:
    """Process-scoped owner of the resource index and session lifecycle state."""

    def __init__(self, project_root: Path | str, config: LoaderConfig | None = None) -> None:
        self.project_root = Path(project_root).resolve()
        self.config = config or LoaderConfig()
        self.index: ResourceIndex | None = None
        self.sessions: dict[str, SessionResourceState] = {}
        self.stats = LoaderStats()
        self._building: asyncio.Task[ResourceIndex] | None = None
        # Bumped on invalidation so a build started earlier cannot install a stale index
        self._generation = 0
        self._sweeper: asyncio.Task[None] | None = None

    @classmethod
    def from_project(cls, project_root: Path | str) -> ResourceLoader:
        """Construct with configuration loaded from *project_root*.

        Raises:
            ConfigError: If a config file or environment override is invalid.
        """
        return cls(project_root, load_config(Path(project_root)))

    @property
    def cache_path(self) -> Path:
        return self.config.cache_file(self.project_root)

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    async def ensure_index(self, timeout: float | None = None) -> ResourceIndex:
        """Return the cached index, joining or starting the single build.

        Concurrent callers share one build task. *timeout* bounds how long
        this caller waits; the build itself keeps running.

        Raises:
            asyncio.TimeoutError: If *timeout* elapses first.
        """
        if self.index is not None:
            self.stats.cache_hits += 1
            return self.index

        if self._building is None:
            self.stats.cache_misses += 1
            self._building = asyncio.create_task(self._build(self._generation))

        pending = asyncio.shield(self._building)
        if timeout is None:
            return await pending
        return await asyncio.wait_for(pending, timeout)

    async def _build(self, generation: int) -> ResourceIndex:
        try:
            index: ResourceIndex | None = None
            if self.config.index.persist_cache:
                index = await load_index_cache(self.cache_path, self.project_root)

            if index is None:
                logger.info("Building resource index for %s", self.project_root)
                index = await build_resource_index(
                    self.project_root,
                    self.config.index.resource_dir,
                    self.config.loading.max_file_size,
                )
                self.stats.index_builds += 1
                # A build invalidated while scanning must not leave its result on disk
                if self.config.index.persist_cache and generation == self._generation:
                    await save_index_cache(index, self.cache_path)

            if generation == self._generation:
                self.index = index
            return index
        finally:
            if self._building is asyncio.current_task():
                self._building = None

    async def build_index(self, save_cache: bool | None = None) -> ResourceIndex:
        """Rebuild from source, ignoring any cache file, and install the result."""
        self._generation += 1
        self._building = None
        index = await build_resource_index(
            self.project_root,
            self.config.index.resource_dir,
            self.config.loading.max_file_size,
        )
        self.stats.index_builds += 1
        self.index = index
        if save_cache is None:
            save_cache = self.config.index.persist_cache
        if save_cache:
            await save_index_cache(index, self.cache_path)
        return index

    async def invalidate_index(self) -> None:
        """Drop the cached index and its cache file; the next access rebuilds."""
        self.index = None
        self._generation += 1
        self._building = None
        if self.config.index.persist_cache:
            await delete_cache_file(self.cache_path)
        logger.info("Index cache invalidated")
        if self.config.index.auto_rebuild:
            await self.ensure_index()

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def resource_query(
        self,
        type: str | None = None,
        query: str | None = None,
        domain: str | None = None,
        tags: list[str] | None = None,
        referenced_by: str | None = None,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Search the index; returns matches plus total and showing counts."""
        filters = QueryFilters(
            type=type,
            domain=domain,
            tags=list(tags or []),
            referenced_by=referenced_by,
            text=query,
            limit=limit,
        )
        try:
            index = await self.ensure_index(self.config.index.build_timeout)
            result = query_index(index, filters)
            self.stats.total_queries += 1
        except Exception as exc:
            logger.exception("resource-query failed")
            return err_unexpected("QueryError", exc)

        return {
            "query": {k: v for k, v in asdict(filters).items() if v not in (None, [])},
            "results": [
                {
                    "id": m.id,
                    "type": m.type,
                    "name": m.name,
                    "domain": m.domain,
                    "description": m.description,
                    "tags": list(m.tags),
                    "path": m.relative_path,
                    "size": format_bytes(m.size),
                }
                for m in result.results
            ],
            "total": result.total,
            "showing": result.showing,
            "hint": "Use resource-load with an ID to fetch the full content",
        }

    async def resource_load(
        self,
        session_id: str,
        resource_id: str,
        include_references: bool | None = None,
        message_id: str | None = None,
        tool_call_id: str | None = None,
    ) -> dict[str, Any]:
        """Load one resource into the session and return its formatted content.

        Rejections (not found, already loaded, limits, unreadable file) come
        back as payloads without touching session state. Every call ends by
        reactivating the session's flagged resources.
        """
        if include_references is None:
            include_references = self.config.loading.auto_load_references
        message = message_id or session_id
        tool_call = tool_call_id or session_id

        try:
            index = await self.ensure_index(self.config.index.build_timeout)
            metadata = index.resources.get(resource_id)
            if metadata is None:
                return err_resource_not_found(resource_id)

            state = get_or_create_session_state(self.sessions, session_id)
            rejection = self._check_limits(state, metadata)
            if rejection is not None:
                return rejection

            try:
                content = await self._read(metadata)
            except FileReadError as exc:
                return err_file_read(metadata.relative_path, exc.reason)

            # Re-check: another load may have landed while the file was read
            rejection = self._check_limits(state, metadata)
            if rejection is not None:
                return rejection
            add_loaded_resource(
                state, new_loaded_resource(metadata, message, tool_call, include_references)
            )
            self.stats.total_loads += 1

            references: list[LoadedReference] = []
            if include_references and metadata.references:
                references = await self._load_references(index, state, metadata, message, tool_call)

            return {
                "id": metadata.id,
                "name": metadata.name,
                "type": metadata.type,
                "content": format_resource_output(metadata, content, references),
                "loadedReferences": [r.metadata.id for r in references],
            }
        except Exception as exc:
            logger.exception("resource-load failed for '%s'", resource_id)
            return err_unexpected("LoadError", exc)
        finally:
            self.reactivate_session(session_id)

    async def resource_list_loaded(self, session_id: str) -> dict[str, Any]:
        """List the resources tracked in the session with their lifecycle status."""
        try:
            state = self.sessions.get(session_id)
            if state is None or not state.loaded:
                return {
                    "message": "No resources loaded in this session",
                    "loaded": [],
                    "totalSize": "0 B",
                }

            index = await self.ensure_index(self.config.index.build_timeout)
            loaded = []
            for lr in state.loaded.values():
                metadata = index.resources.get(lr.id)
                entry: dict[str, Any] = {
                    "id": lr.id,
                    "type": lr.type,
                    "name": metadata.name if metadata else "Unknown",
                    "status": lr.status,
                    "loadedAt": lr.loaded_at,
                    "loadedInMessage": lr.loaded_in_message,
                    "size": format_bytes(lr.size),
                    "includeReferences": lr.include_references,
                }
                if lr.flagged_at is not None:
                    entry["flaggedAt"] = lr.flagged_at
                if lr.released_at is not None:
                    entry["releasedAt"] = lr.released_at
                loaded.append(entry)

            return {
                **get_session_stats(state),
                "loaded": loaded,
                "totalSize": format_bytes(state.total_size),
                "currentSize": format_bytes(state.current_size),
            }
        except Exception as exc:
            logger.exception("resource-list-loaded failed")
            return err_unexpected("ListError", exc)

    async def resource_release(
        self,
        session_id: str,
        ids: list[str] | None = None,
        keep: list[str] | None = None,
    ) -> dict[str, Any]:
        """Release *ids*, or every tracked resource except *keep* when *ids* is empty."""
        try:
            state = self.sessions.get(session_id)
            if state is None or not state.loaded:
                return {"message": "No resources to release", "released": []}

            targets = select_release_targets(state, ids, keep)
            result = release_resources(state, targets)
            self.stats.total_releases += len(result.released)

            payload: dict[str, Any] = {
                "message": f"Released {len(result.released)} resource(s)",
                "released": result.released,
                "remaining": sum(
                    1 for r in state.loaded.values() if r.status in ("active", "flagged")
                ),
                "hint": "Released resources will be pruned from context in the next message cycle",
            }
            if result.not_found:
                payload["notFound"] = result.not_found
            return payload
        except Exception as exc:
            logger.exception("resource-release failed")
            return err_unexpected("ReleaseError", exc)

    # ------------------------------------------------------------------
    # Lifecycle bookkeeping (best effort, never raises)
    # ------------------------------------------------------------------

    def flag_after_turn(self, session_id: str, message_id: str) -> int:
        state = self.sessions.get(session_id)
        if state is None:
            return 0
        try:
            return flag_resources_for_pruning(state, message_id)
        except Exception:
            logger.exception("Flagging failed for session %s", session_id)
            return 0

    def reactivate_session(self, session_id: str) -> int:
        state = self.sessions.get(session_id)
        if state is None:
            return 0
        try:
            return reactivate_resources(state)
        except Exception:
            logger.exception("Reactivation failed for session %s", session_id)
            return 0

    def prune_session(self, session_id: str) -> list[str]:
        state = self.sessions.get(session_id)
        if state is None:
            return []
        try:
            return auto_prune_resources(state)
        except Exception:
            logger.exception("Pruning failed for session %s", session_id)
            return []

    def sweep_idle_sessions(self, now: int | None = None) -> list[str]:
        """Drop sessions idle longer than the configured retention window."""
        max_age = self.config.session.retention_hours * 60 * 60 * 1000
        try:
            return cleanup_old_sessions(self.sessions, now, max_age)
        except Exception:
            logger.exception("Session sweep failed")
            return []

    # ------------------------------------------------------------------
    # Host hooks
    # ------------------------------------------------------------------

    def on_chat_message(self, session_id: str, message_id: str | None = None) -> None:
        """End of a chat turn: touch the session and flag stale resources."""
        try:
            state = get_or_create_session_state(self.sessions, session_id)
            state.last_activity = now_ms()
        except Exception:
            logger.exception("Error in chat.message hook")
            return
        if self.config.session.auto_flag_after_message and message_id:
            self.flag_after_turn(session_id, message_id)

    def on_tool_executed(
        self, tool_name: str, metadata: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Return tool-output metadata, marking resource loads as prunable."""
        merged = dict(metadata or {})
        if tool_name == LOAD_TOOL:
            merged.update({"prunable": True, "retentionPolicy": "single-use"})
        return merged

    async def on_event(self, event_type: str, properties: dict[str, Any]) -> None:
        """Dispatch a host event; unknown events are ignored."""
        try:
            if event_type == "session.created" and "sessionID" in properties:
                get_or_create_session_state(self.sessions, str(properties["sessionID"]))
            elif event_type == "session.deleted" and "sessionID" in properties:
                self.sessions.pop(str(properties["sessionID"]), None)
            elif event_type == "session.idle" and "sessionID" in properties:
                self.prune_session(str(properties["sessionID"]))
            elif event_type == "file.edited" and "path" in properties:
                if is_resource_path(str(properties["path"]), self.config.index.resource_dir):
                    await self.invalidate_index()
        except Exception:
            logger.exception("Error handling event %s", event_type)

    # ------------------------------------------------------------------
    # Background sweeper + shutdown
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the periodic idle-session sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        interval = self.config.session.sweep_interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            self.sweep_idle_sessions()

    async def shutdown(self) -> None:
        """Stop the sweeper and flush the index cache (best effort)."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        if self.index is not None and self.config.index.persist_cache:
            await save_index_cache(self.index, self.cache_path)
        logger.info("Resource loader shut down")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_limits(
        self, state: SessionResourceState, metadata: ResourceMetadata
    ) -> dict[str, Any] | None:
        return check_session_limits(
            state,
            metadata.id,
            metadata.size,
            self.config.session.max_resources_per_session,
            self.config.session.max_total_size_per_session,
        )

    async def _read(self, metadata: ResourceMetadata) -> str:
        try:
            return await asyncio.wait_for(
                read_resource_file(metadata.path, self.config.loading.max_file_size),
                self.config.loading.file_read_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FileReadError(metadata.path, "read timed out") from exc

    async def _load_references(
        self,
        index: ResourceIndex,
        state: SessionResourceState,
        root: ResourceMetadata,
        message_id: str,
        tool_call_id: str,
    ) -> list[LoadedReference]:
        """Load *root*'s references breadth-first up to the configured depth.

        Each id is visited once per traversal. References already tracked in
        the session are skipped; the traversal stops at the first session limit.
        """
        loaded: list[LoadedReference] = []
        closure = collect_reference_closure(
            index, root.id, self.config.loading.max_references_depth
        )
        for ref_id, depth in closure:
            metadata = index.resources[ref_id]
            if ref_id in state.loaded:
                continue
            if self._check_limits(state, metadata) is not None:
                logger.info("Session %s limit reached while loading references", state.session_id)
                break
            try:
                content = await self._read(metadata)
            except FileReadError as exc:
                logger.warning("Error loading reference %s: %s", ref_id, exc.reason)
                continue
            if self._check_limits(state, metadata) is not None:
                continue
            add_loaded_resource(state, new_loaded_resource(metadata, message_id, tool_call_id))
            self.stats.total_loads += 1
            loaded.append(LoadedReference(metadata, content, depth))
        return loaded
