"""Filesystem access for resource files: bounded reads, stats, glob scans.

Reads run in a worker thread (``asyncio.to_thread``) so the event loop is
free while a file is being read; each call is an independent suspension point.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from resource_loader.errors import FileReadError
from resource_loader.indexing.paths import format_bytes

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 1024 * 1024


def _read_text(path: Path, max_size: int) -> str:
    try:
        size = path.stat().st_size
        if size > max_size:
            raise FileReadError(
                str(path),
                f"File too large: {format_bytes(size)} (max: {format_bytes(max_size)})",
            )
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FileReadError(str(path), exc.strerror or str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise FileReadError(str(path), f"not valid UTF-8: {exc.reason}") from exc


async def read_resource_file(
    path: str | Path, max_size: int = DEFAULT_MAX_FILE_SIZE
) -> str:
    """Read a UTF-8 resource file, refusing files above *max_size* bytes.

    Raises:
        FileReadError: On any I/O failure, decode failure or size violation.
    """
    return await asyncio.to_thread(_read_text, Path(path), max_size)


def get_file_stats(path: str | Path) -> tuple[int, int]:
    """Return ``(size_bytes, mtime_epoch_ms)``.

    Raises:
        FileReadError: If the file cannot be stat'ed.
    """
    try:
        st = Path(path).stat()
    except OSError as exc:
        raise FileReadError(str(path), exc.strerror or str(exc)) from exc
    return st.st_size, int(st.st_mtime * 1000)


def _glob(base_dir: Path, pattern: str) -> list[Path]:
    return sorted(p.resolve() for p in base_dir.glob(pattern) if p.is_file())


async def scan_files(base_dir: str | Path, pattern: str) -> list[Path]:
    """Absolute paths of files under *base_dir* matching *pattern*, sorted.

    A missing directory yields an empty list.

    Raises:
        OSError: If the directory exists but cannot be walked.
    """
    base = Path(base_dir)
    if not base.is_dir():
        logger.debug("Resource directory not found: %s", base)
        return []
    return await asyncio.to_thread(_glob, base, pattern)
