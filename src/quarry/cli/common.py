"""Options and helpers shared by the quarry commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from quarry.cli.errors import err_config, err_index_failed, err_no_db, err_tokenizer
from quarry.config import ConfigError, QuarryConfig, load_config
from quarry.db.models import IndexStatus
from quarry.ingest.embedder import HashedBagEmbedder
from quarry.ingest.events import ProgressBus
from quarry.ingest.indexer import Indexer
from quarry.ingest.tokenizer import TokenizerUnavailableError
from quarry.workspace import Workspace, open_workspace

console = Console()

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the quarry database (default: .quarry.db)."),
]
WorkspaceOption = Annotated[
    str | None,
    typer.Option("--workspace", "-w", help="Workspace id (default: 'default')."),
]


def load_cli_config() -> QuarryConfig:
    """load_config() with errors rendered for the terminal."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None


def resolve_db_path(cfg: QuarryConfig, db: Path | None) -> Path:
    return db if db is not None else Path(cfg.workspace.db)


def open_cli_workspace(
    cfg: QuarryConfig,
    db: Path | None,
    workspace_id: str | None,
    *,
    create: bool = False,
) -> Workspace:
    """Open the workspace selected by flags and config.

    Exits with an actionable message if the database does not exist and
    *create* is False.
    """
    db_path = resolve_db_path(cfg, db)
    if not create and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    if create:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return open_workspace(
        db_path,
        workspace_id or cfg.workspace.id,
        cfg.workspace.blob_dir,
        dimensions=cfg.embedding.dimensions,
    )


def build_embedder(cfg: QuarryConfig) -> HashedBagEmbedder:
    """HashedBagEmbedder with a missing vocabulary rendered for the terminal."""
    try:
        return HashedBagEmbedder(cfg.embedding.dimensions)
    except TokenizerUnavailableError as exc:
        console.print(err_tokenizer(str(exc)))
        raise typer.Exit(1) from None


def build_indexer(ws: Workspace, cfg: QuarryConfig, bus: ProgressBus | None = None) -> Indexer:
    return Indexer(
        ws,
        bus=bus,
        embedder=build_embedder(cfg),
        chunk_tokens=cfg.indexing.chunk_tokens,
        overlap_tokens=cfg.indexing.overlap_tokens,
    )


def report_index_result(ws: Workspace, source_id: str, status: IndexStatus) -> bool:
    """Print the outcome of one index_source() call. Returns True on success."""
    if status == IndexStatus.READY:
        chunks = ws.repo.count_chunks_by_source(source_id)
        console.print(f"  [green]✓[/] {source_id}: ready ({chunks} chunks)")
        return True
    source = ws.repo.get_source(source_id)
    message = (source.index_error if source else None) or status.value
    console.print(err_index_failed(source_id, message))
    return False
