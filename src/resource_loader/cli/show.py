"""resource-loader show / graph: inspect a single resource."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from resource_loader.cli.errors import err_config, err_index_build, err_payload, warn_not_found
from resource_loader.config import ConfigError
from resource_loader.errors import ResourceLoaderError
from resource_loader.indexing.graph import resolve_references
from resource_loader.loader import ResourceLoader

console = Console()

_CLI_SESSION = "cli"

_RootOption = Annotated[
    Path,
    typer.Option("--root", help="Project root containing the resource directory."),
]


def _open(root: Path) -> ResourceLoader:
    try:
        return ResourceLoader.from_project(root)
    except ConfigError as exc:
        console.print(err_config(exc))
        raise typer.Exit(1)


def show_cmd(
    resource_id: Annotated[str, typer.Argument(help="Resource id.")],
    references: Annotated[
        bool,
        typer.Option("--references", "-r", help="Also print referenced resources."),
    ] = False,
    root: _RootOption = Path("."),
) -> None:
    """Print a resource the way the load tool returns it."""
    loader = _open(root)
    payload = asyncio.run(
        loader.resource_load(_CLI_SESSION, resource_id, include_references=references)
    )
    if payload.get("error") == "ResourceNotFound":
        console.print(warn_not_found(resource_id))
        return
    if "error" in payload:
        console.print(err_payload(payload))
        raise typer.Exit(1)
    if "warning" in payload:
        console.print(f"[yellow]{payload['message']}[/]")
        return
    typer.echo(payload["content"])


def graph_cmd(
    resource_id: Annotated[str, typer.Argument(help="Resource id.")],
    root: _RootOption = Path("."),
) -> None:
    """Show what a resource references and what references it."""
    loader = _open(root)
    try:
        index = asyncio.run(loader.ensure_index())
    except (ResourceLoaderError, OSError) as exc:
        console.print(err_index_build(exc))
        raise typer.Exit(1)

    if resource_id not in index.resources:
        console.print(warn_not_found(resource_id))
        return

    resolved, dangling = resolve_references(index, resource_id)
    backward = sorted(index.graph.backward.get(resource_id, set()))
    agents = sorted(n for n, refs in index.graph.agents.items() if resource_id in refs)
    commands = sorted(n for n, refs in index.graph.commands.items() if resource_id in refs)

    table = Table(title=f"References: {resource_id}", show_header=True, header_style="bold")
    table.add_column("Direction", style="bold")
    table.add_column("Ids")
    table.add_row("references", ", ".join(resolved) or "[dim]none[/]")
    if dangling:
        table.add_row("[yellow]dangling[/]", ", ".join(dangling))
    table.add_row("referenced by", ", ".join(backward) or "[dim]none[/]")
    if agents:
        table.add_row("agents", ", ".join(agents))
    if commands:
        table.add_row("commands", ", ".join(commands))
    console.print(table)
