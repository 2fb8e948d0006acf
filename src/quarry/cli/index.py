"""quarry index: (re)index one source or every file source.

Unchanged blobs are skipped unless --force is given.
"""

from __future__ import annotations

from typing import Annotated

import typer

from quarry.cli.common import (
    DbOption,
    WorkspaceOption,
    build_indexer,
    console,
    load_cli_config,
    open_cli_workspace,
    report_index_result,
)
from quarry.cli.errors import err_index_failed, err_index_target, err_source_not_found
from quarry.cli.progress import show_progress
from quarry.ingest.events import ProgressBus


def index_cmd(
    source_id: Annotated[
        str | None,
        typer.Argument(help="Source id to index (see 'quarry status')."),
    ] = None,
    all_sources: Annotated[
        bool,
        typer.Option("--all", help="Index every file source in the workspace."),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Re-index even if the content is unchanged."),
    ] = False,
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Index sources so they can be searched."""
    if (source_id is None) == (not all_sources):
        console.print(err_index_target())
        raise typer.Exit(1)

    cfg = load_cli_config()
    with open_cli_workspace(cfg, db, workspace) as ws:
        bus = ProgressBus()
        indexer = build_indexer(ws, cfg, bus)

        if all_sources:
            labels = {s.id: s.name or s.id for s in ws.repo.list_sources(kind="file")}
            with show_progress(bus, labels):
                failures = indexer.index_all_sources(force=force)
            for failed_id, message in failures.items():
                console.print(err_index_failed(failed_id, message))
            ok = len([s for s in labels if s not in failures])
            console.print(f"\n[bold]{ok}[/] indexed, [bold]{len(failures)}[/] failed")
            if failures:
                raise typer.Exit(1)
            return

        source = ws.repo.get_source(source_id)
        if source is None or source.archived_at is not None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1)

        with show_progress(bus, {source.id: source.name or source.id}):
            try:
                status = indexer.index_source(source.id, force=force)
            except Exception as exc:
                console.print(err_index_failed(source.id, str(exc)))
                raise typer.Exit(1) from None
        if not report_index_result(ws, source.id, status):
            raise typer.Exit(1)
