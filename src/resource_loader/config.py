"""resource-loader configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (RESOURCE_LOADER_CACHE_PATH,
     RESOURCE_LOADER_MAX_RESOURCES, RESOURCE_LOADER_PERSIST_CACHE)
  3. Per-project resource-loader.yaml  (in the project root)
  4. Global ~/.resource-loader/config.yaml
  5. Hardcoded defaults

All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".resource-loader"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "resource-loader.yaml"

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(["index", "loading", "session"])

_TRUE_VALUES = frozenset(["1", "true", "yes", "on"])
_FALSE_VALUES = frozenset(["0", "false", "no", "off"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file or env var contains an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class IndexCfg:
    """Index build and cache behaviour (resource-loader.yaml: index:).

    Attributes:
        resource_dir: Directory (relative to the project root) holding the
            per-type resource folders plus ``agent/`` and ``command/``.
        cache_path: Cache file location; relative paths resolve against the
            project root.
        persist_cache: Whether the index is saved to / restored from disk.
        auto_rebuild: Rebuild eagerly after invalidation instead of lazily.
        build_timeout: Seconds a caller should wait for an index build.
    """

    resource_dir: str = ".opencode"
    cache_path: str = ".cache/resource-index.json"
    persist_cache: bool = True
    auto_rebuild: bool = False
    build_timeout: float = 30.0


@dataclass
class LoadingCfg:
    """Resource loading behaviour (resource-loader.yaml: loading:)."""

    auto_load_references: bool = False
    max_references_depth: int = 2
    max_file_size: int = 1024 * 1024
    file_read_timeout: float = 5.0


@dataclass
class SessionCfg:
    """Per-session context limits (resource-loader.yaml: session:)."""

    auto_flag_after_message: bool = True
    max_resources_per_session: int = 20
    max_total_size_per_session: int = 10 * 1024 * 1024
    retention_hours: int = 24
    sweep_interval_minutes: int = 60


@dataclass
class LoaderConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    index: IndexCfg = field(default_factory=IndexCfg)
    loading: LoadingCfg = field(default_factory=LoadingCfg)
    session: SessionCfg = field(default_factory=SessionCfg)

    def cache_file(self, project_root: Path) -> Path:
        """Absolute cache file path for *project_root*."""
        path = Path(self.index.cache_path).expanduser()
        return path if path.is_absolute() else project_root / path


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"'{key}' must be a boolean, got '{value}'.")


def _validate(cfg: LoaderConfig) -> None:
    """Raise ConfigError for limits that would make the loader unusable."""
    positive = {
        "session.max_resources_per_session": cfg.session.max_resources_per_session,
        "session.max_total_size_per_session": cfg.session.max_total_size_per_session,
        "session.retention_hours": cfg.session.retention_hours,
        "session.sweep_interval_minutes": cfg.session.sweep_interval_minutes,
        "loading.max_file_size": cfg.loading.max_file_size,
        "loading.file_read_timeout": cfg.loading.file_read_timeout,
        "index.build_timeout": cfg.index.build_timeout,
    }
    for key, value in positive.items():
        if value <= 0:
            raise ConfigError(f"'{key}' must be > 0, got {value}.")
    if cfg.loading.max_references_depth < 0:
        raise ConfigError(
            f"'loading.max_references_depth' must be >= 0, "
            f"got {cfg.loading.max_references_depth}."
        )
    if not cfg.index.cache_path.strip():
        raise ConfigError("'index.cache_path' must not be empty.")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> LoaderConfig:
    """Build a *LoaderConfig* from a merged raw YAML dict."""
    cfg = LoaderConfig()

    try:
        if "index" in data:
            i = data["index"] or {}
            cfg.index = IndexCfg(
                resource_dir=str(i.get("resource_dir", cfg.index.resource_dir)),
                cache_path=str(i.get("cache_path", cfg.index.cache_path)),
                persist_cache=_to_bool(
                    i.get("persist_cache", cfg.index.persist_cache), "index.persist_cache"
                ),
                auto_rebuild=_to_bool(
                    i.get("auto_rebuild", cfg.index.auto_rebuild), "index.auto_rebuild"
                ),
                build_timeout=float(i.get("build_timeout", cfg.index.build_timeout)),
            )

        if "loading" in data:
            lo = data["loading"] or {}
            cfg.loading = LoadingCfg(
                auto_load_references=_to_bool(
                    lo.get("auto_load_references", cfg.loading.auto_load_references),
                    "loading.auto_load_references",
                ),
                max_references_depth=int(
                    lo.get("max_references_depth", cfg.loading.max_references_depth)
                ),
                max_file_size=int(lo.get("max_file_size", cfg.loading.max_file_size)),
                file_read_timeout=float(
                    lo.get("file_read_timeout", cfg.loading.file_read_timeout)
                ),
            )

        if "session" in data:
            s = data["session"] or {}
            cfg.session = SessionCfg(
                auto_flag_after_message=_to_bool(
                    s.get("auto_flag_after_message", cfg.session.auto_flag_after_message),
                    "session.auto_flag_after_message",
                ),
                max_resources_per_session=int(
                    s.get("max_resources_per_session", cfg.session.max_resources_per_session)
                ),
                max_total_size_per_session=int(
                    s.get("max_total_size_per_session", cfg.session.max_total_size_per_session)
                ),
                retention_hours=int(s.get("retention_hours", cfg.session.retention_hours)),
                sweep_interval_minutes=int(
                    s.get("sweep_interval_minutes", cfg.session.sweep_interval_minutes)
                ),
            )
    except ConfigError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: LoaderConfig) -> LoaderConfig:
    """Apply RESOURCE_LOADER_* environment variable overrides (layer 2)."""
    if path := os.environ.get("RESOURCE_LOADER_CACHE_PATH"):
        cfg.index.cache_path = path
    if raw := os.environ.get("RESOURCE_LOADER_MAX_RESOURCES"):
        try:
            cfg.session.max_resources_per_session = int(raw)
        except ValueError as exc:
            raise ConfigError(
                f"RESOURCE_LOADER_MAX_RESOURCES must be an integer, got '{raw}'."
            ) from exc
    if raw := os.environ.get("RESOURCE_LOADER_PERSIST_CACHE"):
        cfg.index.persist_cache = _to_bool(raw, "RESOURCE_LOADER_PERSIST_CACHE")
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LoaderConfig:
    """Load and return a merged *LoaderConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *resource-loader.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *LoaderConfig*.

    Raises:
        ConfigError: If any value has the wrong type or is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
