"""Frontmatter parsing for markdown and JSON resource files.

Markdown: a leading ``---`` line, a YAML mapping, a closing ``---`` line.
JSON: the top-level object's descriptive keys (title, description, version,
tags) stand in for frontmatter.

Parse failures never raise; they yield an empty mapping and a warning.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*\r?$", re.DOTALL | re.MULTILINE
)

_JSON_KEYS = ("title", "description", "version", "tags")


def split_frontmatter(content: str) -> tuple[str | None, str]:
    """Return ``(frontmatter_text, body)``; ``None`` when there is no block."""
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return None, content
    body = content[match.end():].lstrip("\r\n")
    return match.group(1), body


def parse_frontmatter(content: str) -> dict[str, Any]:
    """Parse the leading YAML block of *content* into a dict."""
    raw, _ = split_frontmatter(content)
    if raw is None or not raw.strip():
        return {}
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        logger.warning("Error parsing frontmatter: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Frontmatter is not a mapping (got %s)", type(data).__name__)
        return {}
    return data


def parse_json_metadata(content: str) -> dict[str, Any]:
    """Descriptive keys of a JSON document's top-level object."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("Error parsing JSON resource: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}
    return {k: data[k] for k in _JSON_KEYS if k in data}
