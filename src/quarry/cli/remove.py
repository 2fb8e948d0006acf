"""quarry remove: source lifecycle management.

Archives a source and deletes its derived index data:
  - source text
  - chunks (+ FTS5 index entries)
  - vector entries
  - the blob, once no other live source uses it

Usage:
  quarry remove 3f2c…
  quarry remove 3f2c… --yes
"""

from __future__ import annotations

from typing import Annotated

import typer

from quarry.cli.common import DbOption, WorkspaceOption, console, load_cli_config, open_cli_workspace
from quarry.cli.errors import err_source_not_found
from quarry.sources import remove_source


def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id to remove (see 'quarry status').")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Remove a source and all its index data."""
    cfg = load_cli_config()
    with open_cli_workspace(cfg, db, workspace) as ws:
        existing = ws.repo.get_source(source_id)
        if existing is None or existing.archived_at is not None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(0)

        chunk_count = ws.repo.count_chunks_by_source(source_id)
        vec_count = ws.repo.count_embeddings_by_source(source_id)

        console.print(f"\nRemove source: [bold]{existing.name or source_id}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Vec entries: {vec_count}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        remove_source(ws, source_id)

    console.print(f"\n[green]✓[/] Removed: {existing.name or source_id}")
    console.print(f"  {chunk_count} chunks, {vec_count} vec entries deleted")
