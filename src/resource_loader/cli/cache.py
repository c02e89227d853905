"""resource-loader cache CLI commands.

Commands:
  resource-loader cache info    show the cache file location and contents
  resource-loader cache clear   delete the cache file
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from resource_loader.cache import delete_cache_file, load_index_cache
from resource_loader.cli.errors import err_config
from resource_loader.config import ConfigError
from resource_loader.indexing.paths import format_bytes
from resource_loader.loader import ResourceLoader

console = Console()

cache_app = typer.Typer(
    name="cache",
    help="Inspect or clear the index cache.",
    add_completion=False,
)

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


@cache_app.command("info")
def cache_info_cmd(root: _RootOption = Path(".")) -> None:
    """Show the index cache file and what it holds."""
    loader = _open(root)
    path = loader.cache_path
    if not path.is_file():
        console.print(
            Panel(
                f"[yellow]No cache file at {path}.[/]\n"
                "  Run:  resource-loader build",
                title="[bold]Index Cache[/]",
                expand=False,
            )
        )
        return

    lines = [f"Path:       {path}", f"Size:       {format_bytes(path.stat().st_size)}"]
    index = asyncio.run(load_index_cache(path, loader.project_root))
    if index is None:
        lines.append("Status:     [yellow]unreadable or built for another project[/]")
    else:
        built = datetime.fromtimestamp(index.generated_at / 1000, tz=timezone.utc)
        lines += [
            "Status:     [green]✓ valid[/]",
            f"Resources:  [bold]{len(index)}[/]",
            f"Generated:  [dim]{built:%Y-%m-%d %H:%M:%S} UTC[/]",
        ]
    console.print(Panel("\n".join(lines), title="[bold]Index Cache[/]", expand=False))


@cache_app.command("clear")
def cache_clear_cmd(root: _RootOption = Path(".")) -> None:
    """Delete the index cache file."""
    loader = _open(root)
    path = loader.cache_path
    if not path.exists():
        console.print(f"[yellow]No cache file at {path}.[/]")
        return
    asyncio.run(delete_cache_file(path))
    if path.exists():
        console.print(f"[red]Error:[/] Could not delete {path}.\n  Check file permissions.")
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Removed {path}")
