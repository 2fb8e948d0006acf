"""quarry add: register file or note sources and index them.

  quarry add --source report.pdf --source notes.md
  quarry add --source design.docx --notes "Draft from March" --scope-type channel --scope-id ops
  quarry add --note "The VPN password rotates every 90 days." --name vpn
"""

from __future__ import annotations

from pathlib import Path
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
from quarry.cli.errors import err_file_not_found, err_index_failed, err_invalid_scope, err_nothing_to_add
from quarry.cli.progress import show_progress
from quarry.db.models import KnowledgeSource
from quarry.ingest.events import ProgressBus
from quarry.sources import add_note_source, add_path_source


def add_cmd(
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="File to add (repeatable)."),
    ] = None,
    note: Annotated[
        str | None,
        typer.Option("--note", help="Add a text-only source with this content."),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", help="Display name for the --note source."),
    ] = None,
    notes: Annotated[
        str | None,
        typer.Option("--notes", help="Notes appended to each added file's indexed text."),
    ] = None,
    scope_type: Annotated[
        str,
        typer.Option("--scope-type", help="workspace | channel | thread | coworker."),
    ] = "workspace",
    scope_id: Annotated[
        str | None,
        typer.Option("--scope-id", help="Scope id (for non-workspace scopes)."),
    ] = None,
    no_index: Annotated[
        bool,
        typer.Option("--no-index", help="Register only; index later with 'quarry index'."),
    ] = False,
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Add sources to the knowledge store and index them."""
    paths = source or []
    if not paths and note is None:
        console.print(err_nothing_to_add())
        raise typer.Exit(1)

    missing = [p for p in paths if not p.is_file()]
    for p in missing:
        console.print(err_file_not_found(str(p)))
    if missing:
        raise typer.Exit(1)

    cfg = load_cli_config()
    failed = False

    with open_cli_workspace(cfg, db, workspace) as ws:
        added: list[KnowledgeSource] = []
        try:
            for p in paths:
                src = add_path_source(ws, p, notes=notes, scope_type=scope_type, scope_id=scope_id)
                console.print(f"  [green]✓[/] Added {p.name} [dim]({src.id})[/]")
                added.append(src)
            if note is not None:
                src = add_note_source(ws, note, name=name, scope_type=scope_type, scope_id=scope_id)
                console.print(f"  [green]✓[/] Added note {name or ''} [dim]({src.id})[/]")
                added.append(src)
        except ValueError as exc:
            console.print(err_invalid_scope(str(exc)))
            raise typer.Exit(1) from None

        if no_index:
            console.print("[dim]Not indexed (--no-index). Run: quarry index --all[/]")
            return

        bus = ProgressBus()
        indexer = build_indexer(ws, cfg, bus)
        labels = {s.id: s.name or s.id for s in added}
        with show_progress(bus, labels):
            for src in added:
                try:
                    status = indexer.index_source(src.id)
                except Exception as exc:
                    console.print(err_index_failed(src.id, str(exc)))
                    failed = True
                    continue
                failed = not report_index_result(ws, src.id, status) or failed

    if failed:
        raise typer.Exit(1)
