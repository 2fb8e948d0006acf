"""Quarry rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from quarry.cli.errors import err_no_db
    console.print(err_no_db(".quarry.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".quarry.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  quarry init"
    )


def err_config(message: str) -> str:
    """quarry.yaml, the global config or a QUARRY_* variable is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix the value in quarry.yaml, ~/.quarry/config.yaml or the QUARRY_* environment."
    )


def err_nothing_to_add() -> str:
    return (
        "[red]Error:[/] Nothing to add.\n"
        "  Use:  quarry add --source PATH   or   quarry add --note \"text\""
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and try again."
    )


def err_invalid_scope(message: str) -> str:
    return (
        f"[red]Error:[/] {message}\n"
        "  Use --scope-type workspace, channel, thread or coworker."
    )


def err_source_not_found(source_id: str) -> str:
    """Source id not present (or archived) in the workspace."""
    return (
        f"[yellow]Source not found:[/] '{source_id}' is not in this workspace.\n"
        "  Run:  quarry status  to see all sources and their ids."
    )


def err_index_failed(source_id: str, message: str) -> str:
    """Indexing left the source in ``error`` state."""
    return (
        f"[red]✗ Indexing failed[/] for {source_id}: {message}\n"
        f"  Fix the source, then retry:  quarry index {source_id} --force"
    )


def err_index_target() -> str:
    return (
        "[red]Error:[/] Give a source id or --all.\n"
        "  Use:  quarry index SOURCE_ID   or   quarry index --all"
    )


def warn_degraded_search(fts: bool, vector: bool) -> str:
    """Only one (or no) retrieval channel is available."""
    if not fts and not vector:
        return (
            "[yellow]⚠[/] Neither full-text (FTS5) nor vector (sqlite-vec) search is available.\n"
            "  Install sqlite-vec and use a Python build whose SQLite has FTS5."
        )
    missing = "vector (sqlite-vec)" if fts else "full-text (FTS5)"
    return f"[yellow]⚠[/] {missing} index unavailable; results come from one channel only."


def err_tokenizer(message: str) -> str:
    """The cl100k_base vocabulary could not be loaded from disk."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Point QUARRY_TOKENIZER_VOCAB at a local cl100k_base.tiktoken file."
    )
