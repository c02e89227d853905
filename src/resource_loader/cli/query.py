"""resource-loader query: search the index from the command line.

Usage:
  resource-loader query --type checklist --tag git
  resource-loader query "commit" --json
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from resource_loader.cli.errors import err_config, err_payload
from resource_loader.config import ConfigError
from resource_loader.loader import ResourceLoader
from resource_loader.query import DEFAULT_LIMIT

console = Console()


def query_cmd(
    text: Annotated[
        str | None,
        typer.Argument(help="Free-text search over name, description and tags."),
    ] = None,
    type_: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Resource type (checklist, knowledge-base, schema, task, template)."),
    ] = None,
    domain: Annotated[
        str | None,
        typer.Option("--domain", "-d", help="Domain (opencode, core, docs, dev, common)."),
    ] = None,
    tag: Annotated[
        list[str] | None,
        typer.Option("--tag", help="Required tag; repeat for several (all must match)."),
    ] = None,
    referenced_by: Annotated[
        str | None,
        typer.Option("--referenced-by", help="Resource, agent or command name that references the results."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum results (1-50)."),
    ] = DEFAULT_LIMIT,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the raw query payload as JSON."),
    ] = False,
    root: Annotated[
        Path,
        typer.Option("--root", help="Project root containing the resource directory."),
    ] = Path("."),
) -> None:
    """Search resources by type, domain, tags, references and text."""
    try:
        loader = ResourceLoader.from_project(root)
    except ConfigError as exc:
        console.print(err_config(exc))
        raise typer.Exit(1)

    payload = asyncio.run(
        loader.resource_query(
            type=type_,
            query=text,
            domain=domain,
            tags=tag,
            referenced_by=referenced_by,
            limit=limit,
        )
    )
    if "error" in payload:
        console.print(err_payload(payload))
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(payload, indent=2))
        return

    if not payload["results"]:
        console.print("[yellow]No resources matched.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Domain")
    table.add_column("Name")
    table.add_column("Tags")
    table.add_column("Size", justify="right")
    for r in payload["results"]:
        table.add_row(r["id"], r["type"], r["domain"], r["name"], ", ".join(r["tags"]), r["size"])

    console.print(table)
    console.print(f"[dim]Showing {payload['showing']} of {payload['total']}[/]")
