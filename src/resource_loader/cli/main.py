"""resource-loader CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from resource_loader.cli.build import build_cmd
from resource_loader.cli.cache import cache_app
from resource_loader.cli.query import query_cmd
from resource_loader.cli.show import graph_cmd, show_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("resource-loader")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"resource-loader {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="resource-loader",
    help=(
        "Index and query on-demand project resources.\n\n"
        "  resource-loader build   Index checklists, knowledge bases, schemas, tasks and templates.\n"
        "  resource-loader query   Search the index."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log indexing and cache activity."),
    ] = False,
) -> None:
    """Index and query on-demand project resources."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
            force=True,
        )


app.command("build")(build_cmd)
app.command("query")(query_cmd)
app.command("show")(show_cmd)
app.command("graph")(graph_cmd)
app.add_typer(cache_app, name="cache")


@app.command("version")
def version_cmd() -> None:
    """Show the installed resource-loader version."""
    typer.echo(f"resource-loader {_installed_version()}")


if __name__ == "__main__":
    app()
