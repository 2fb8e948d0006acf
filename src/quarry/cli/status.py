"""quarry status: sources, index state and retrieval channels.

Shows two panels: the store (database, workspace, channel availability,
totals) and a table of live sources with their index status and errors.
"""

from __future__ import annotations

from pathlib import Path

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quarry.cli.common import DbOption, WorkspaceOption, console, load_cli_config, open_cli_workspace
from quarry.db.models import IndexStatus, KnowledgeSource
from quarry.workspace import Workspace

_STATUS_STYLE = {
    IndexStatus.PENDING: "dim",
    IndexStatus.PROCESSING: "yellow",
    IndexStatus.READY: "green",
    IndexStatus.ERROR: "red",
}


def status_cmd(
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Show the knowledge store: sources, index status and channels."""
    cfg = load_cli_config()
    with open_cli_workspace(cfg, db, workspace) as ws:
        db_path = Path(db) if db is not None else Path(cfg.workspace.db)
        sources = ws.repo.list_sources()
        _show_store_panel(db_path, ws, sources)
        _show_sources_table(ws, sources)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_store_panel(db_path: Path, ws: Workspace, sources: list[KnowledgeSource]) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024) if db_path.exists() else 0.0
    caps = ws.capabilities
    fts = "[green]✓[/]" if caps.fts_available else "[yellow]✗[/]"
    vec = "[green]✓[/]" if caps.vector_available else "[yellow]✗[/]"
    ready = sum(1 for s in sources if s.index_status == IndexStatus.READY)
    errors = sum(1 for s in sources if s.index_status == IndexStatus.ERROR)

    lines = [
        f"Database:   {db_path} ({size_mb:.1f} MB)",
        f"Workspace:  [bold]{ws.id}[/]",
        f"Channels:   full-text {fts}   vector {vec}",
        f"Sources: [bold]{len(sources)}[/]  |  Ready: [bold]{ready}[/]  |  "
        f"Errors: [bold]{errors}[/]  |  Chunks: [bold]{ws.repo.count_chunks():,}[/]",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Store[/]", expand=False))


def _show_sources_table(ws: Workspace, sources: list[KnowledgeSource]) -> None:
    if not sources:
        console.print(
            Panel(
                "[dim]No sources yet.[/]\n"
                "  Run:  quarry add --source <file>",
                title="[bold]Sources[/]",
                expand=False,
            )
        )
        return

    table = Table(title="Sources")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Scope")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Indexed", style="dim")

    for s in sources:
        scope = s.scope_type if not s.scope_id else f"{s.scope_type}:{s.scope_id}"
        status = Text(s.index_status.value, style=_STATUS_STYLE[s.index_status])
        if s.index_error:
            status.append(f"\n{s.index_error}", style="red")
        table.add_row(
            s.id,
            Text(s.name or "(unnamed)"),
            s.kind,
            scope,
            status,
            str(ws.repo.count_chunks_by_source(s.id)),
            (s.indexed_at or "")[:16],
        )

    console.print(table)
