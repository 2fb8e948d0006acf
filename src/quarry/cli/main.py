"""Quarry CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from quarry.cli.add import add_cmd
from quarry.cli.context import context_cmd
from quarry.cli.index import index_cmd
from quarry.cli.init import init_cmd
from quarry.cli.remove import remove_cmd
from quarry.cli.search import search_cmd
from quarry.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("quarry")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"quarry {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route ``quarry.*`` log records to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = logging.getLogger("quarry")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


app = typer.Typer(
    name="quarry",
    help=(
        "Quarry: local knowledge ingestion and hybrid retrieval.\n\n"
        "  quarry add     Register documents and notes, then index them.\n"
        "  quarry search  Keyword + vector search fused with RRF."
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
        typer.Option("--verbose", "-v", help="Log indexing and search details."),
    ] = False,
) -> None:
    """Quarry: local knowledge ingestion and hybrid retrieval."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("add")(add_cmd)
app.command("index")(index_cmd)
app.command("search")(search_cmd)
app.command("context")(context_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Quarry version."""
    typer.echo(f"quarry {_installed_version()}")


if __name__ == "__main__":
    app()
