"""CLI error messages: cause on the first line, the next action below it.

Usage:
    from resource_loader.cli.errors import err_config
    console.print(err_config(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from typing import Any


def err_config(exc: Exception) -> str:
    """Configuration file or environment override is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {exc}\n"
        "  Fix resource-loader.yaml or the RESOURCE_LOADER_* environment variables."
    )


def err_no_resource_dir(path: str) -> str:
    """Project has no resource directory to index."""
    return (
        f"[red]Error:[/] No resource directory at '{path}'.\n"
        "  Create it (e.g. .opencode/checklist/) or pass --root."
    )


def err_index_build(exc: Exception) -> str:
    return (
        f"[red]Error:[/] Index build failed: {exc}\n"
        "  Re-run with --verbose for details."
    )


def err_payload(payload: dict[str, Any]) -> str:
    """Render a tool error payload ({error, message, suggestion?})."""
    text = f"[red]Error:[/] {payload.get('error', 'Error')}: {payload.get('message', '')}"
    if payload.get("suggestion"):
        text += f"\n  {payload['suggestion']}"
    return text


def warn_not_found(resource_id: str) -> str:
    """Unknown resource id: not a failure, exit 0."""
    return (
        f"[yellow]Resource '{resource_id}' not found.[/]\n"
        "  Run:  resource-loader query"
    )
