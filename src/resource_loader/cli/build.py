"""resource-loader build: index every resource under the project root.

Prints a per-type and per-domain summary and reports ids that were defined by
more than one file (the later file wins).

Usage:
  resource-loader build
  resource-loader build --root path/to/project --no-cache
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from resource_loader.cli.errors import err_config, err_index_build, err_no_resource_dir
from resource_loader.config import ConfigError
from resource_loader.errors import ResourceLoaderError
from resource_loader.loader import ResourceLoader
from resource_loader.models import DOMAINS, RESOURCE_TYPES, ResourceIndex

console = Console()


def build_cmd(
    root: Annotated[
        Path,
        typer.Option("--root", help="Project root containing the resource directory."),
    ] = Path("."),
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Do not write the index cache file."),
    ] = False,
) -> None:
    """Build the resource index and save it to the cache."""
    try:
        loader = ResourceLoader.from_project(root)
    except ConfigError as exc:
        console.print(err_config(exc))
        raise typer.Exit(1)

    resource_dir = loader.project_root / loader.config.index.resource_dir
    if not resource_dir.is_dir():
        console.print(err_no_resource_dir(str(resource_dir)))
        raise typer.Exit(1)

    try:
        index = asyncio.run(loader.build_index(save_cache=False if no_cache else None))
    except (ResourceLoaderError, OSError) as exc:
        console.print(err_index_build(exc))
        raise typer.Exit(1)

    _print_summary(index)
    if not no_cache and loader.config.index.persist_cache:
        console.print(f"Cache: [dim]{loader.cache_path}[/]")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_summary(index: ResourceIndex) -> None:
    table = Table(title="Resource Index", show_header=True, header_style="bold")
    table.add_column("Type", style="bold")
    for domain in DOMAINS:
        table.add_column(domain, justify="right")
    table.add_column("Total", justify="right")

    for resource_type in RESOURCE_TYPES:
        type_ids = index.by_type.get(resource_type, set())
        counts = [len(type_ids & index.by_domain.get(d, set())) for d in DOMAINS]
        table.add_row(resource_type, *(str(c) for c in counts), str(len(type_ids)))

    console.print(table)
    console.print(
        f"[green]✓[/] Indexed [bold]{len(index)}[/] resources "
        f"({len(index.by_tag)} tags, {len(index.graph.agents)} agents, "
        f"{len(index.graph.commands)} commands)"
    )

    if index.duplicates:
        console.print("[yellow]Duplicate ids (later file wins):[/]")
        for rid, shadowed in sorted(index.duplicates.items()):
            kept = index.resources[rid].relative_path if rid in index.resources else "?"
            console.print(f"  {rid}: kept {kept}, ignored {', '.join(shadowed)}")
