"""quarry init: create the knowledge store.

Creates:
  .quarry.db               SQLite store with schema (+ FTS5 / sqlite-vec indexes when available)
  ~/.quarry/config.yaml    global defaults (created once, mode 0o600)

Reports which retrieval channels the local SQLite build supports and adds
the store to an existing .gitignore.
"""

from __future__ import annotations

from pathlib import Path

from rich.panel import Panel

from quarry.cli.common import DbOption, WorkspaceOption, console, load_cli_config, open_cli_workspace, resolve_db_path
from quarry.cli.errors import warn_degraded_search
from quarry.config import ensure_global_config
from quarry.db.indexes import IndexCapabilities

_GITIGNORE_ENTRIES = [".quarry.db", ".quarry.db-wal", ".quarry.db-shm", ".quarry-blobs/"]


def init_cmd(
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Create (or migrate) the quarry database in the current directory."""
    cfg = load_cli_config()
    db_path = resolve_db_path(cfg, db)
    existed = db_path.exists()

    with open_cli_workspace(cfg, db, workspace, create=True) as ws:
        capabilities = ws.capabilities
        workspace_id = ws.id

    if existed:
        console.print(f"  [yellow]⚠[/] {db_path} already exists; schema is up to date.")
    else:
        console.print(f"  [green]✓[/] {db_path}")

    _show_capabilities(capabilities)
    _update_gitignore(db_path.resolve().parent)

    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print(f"\n[bold green]✓ Workspace '{workspace_id}' ready.[/]")
    console.print("\nNext steps:")
    console.print("  1. quarry add --source <file>      (add and index a document)")
    console.print("  2. quarry search \"<question>\"      (hybrid search)")
    console.print("  3. quarry status                   (sources and index state)")


def _show_capabilities(capabilities: IndexCapabilities) -> None:
    fts = "[green]✓ available[/]" if capabilities.fts_available else "[yellow]✗ unavailable[/]"
    vec = "[green]✓ available[/]" if capabilities.vector_available else "[yellow]✗ unavailable[/]"
    console.print(
        Panel(
            f"Full-text (FTS5):     {fts}\nVector (sqlite-vec):  {vec}",
            title="[bold]Retrieval channels[/]",
            expand=False,
        )
    )
    if not (capabilities.fts_available and capabilities.vector_available):
        console.print(warn_degraded_search(capabilities.fts_available, capabilities.vector_available))


def _update_gitignore(project_dir: Path) -> None:
    """Add quarry entries to .gitignore if it already exists."""
    gitignore = project_dir / ".gitignore"
    if not gitignore.exists():
        return
    existing = gitignore.read_text(encoding="utf-8")
    to_add = [e for e in _GITIGNORE_ENTRIES if e not in existing.splitlines()]
    if to_add:
        with gitignore.open("a", encoding="utf-8") as f:
            f.write("\n# Quarry\n")
            for entry in to_add:
                f.write(f"{entry}\n")
        console.print("  [green]✓[/] .gitignore (updated with quarry entries)")
