"""quarry search: hybrid (BM25 + vector) search with RRF fusion."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from quarry.cli.common import (
    DbOption,
    WorkspaceOption,
    build_embedder,
    console,
    load_cli_config,
    open_cli_workspace,
)
from quarry.cli.errors import warn_degraded_search
from quarry.rag.retriever import Retriever

_PREVIEW_CHARS = 160


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum results (default from config: 8)."),
    ] = None,
    scope_type: Annotated[
        str | None,
        typer.Option("--scope-type", help="Restrict to workspace | channel | thread | coworker."),
    ] = None,
    scope_id: Annotated[
        str | None,
        typer.Option("--scope-id", help="Restrict to one scope id."),
    ] = None,
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Search indexed chunks."""
    cfg = load_cli_config()
    with open_cli_workspace(cfg, db, workspace) as ws:
        caps = ws.capabilities
        if not (caps.fts_available and caps.vector_available):
            console.print(warn_degraded_search(caps.fts_available, caps.vector_available))

        retriever = Retriever(
            ws,
            embedder=build_embedder(cfg),
            rrf_k=cfg.retrieval.rrf_k,
        )
        results = retriever.search(
            query,
            scope_type=scope_type,
            scope_id=scope_id,
            limit=limit or cfg.retrieval.limit,
        )
        names = {s.id: s.name or s.id for s in ws.repo.list_sources()}

    if not results:
        console.print("[yellow]No results.[/]")
        return

    table = Table(title=f"Results for: {escape(query)}", show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Match", style="cyan")
    table.add_column("Source")
    table.add_column("Text")

    for i, r in enumerate(results, start=1):
        preview = " ".join(r.text.split())
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[: _PREVIEW_CHARS - 1] + "…"
        table.add_row(
            str(i),
            f"{r.score:.4f}",
            r.match_type,
            Text(names.get(r.source_id, r.source_id)),
            Text(preview),
        )

    console.print(table)
