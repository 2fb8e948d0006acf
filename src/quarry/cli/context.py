"""quarry context: print a source's text fitted to a prompt token budget."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from quarry.cli.common import DbOption, WorkspaceOption, console, load_cli_config, open_cli_workspace
from quarry.cli.errors import err_source_not_found
from quarry.rag.assembler import get_prompt_text


def context_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id (see 'quarry status').")],
    token_cap: Annotated[
        int | None,
        typer.Option("--token-cap", min=1, help="Token budget (default from config: 4000)."),
    ] = None,
    db: DbOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Show the prompt text for one source."""
    cfg = load_cli_config()
    with open_cli_workspace(cfg, db, workspace) as ws:
        result = get_prompt_text(ws, source_id, token_cap or cfg.context.token_cap)

    if result is None:
        console.print(err_source_not_found(source_id))
        console.print("  [dim]Sources without extracted text need 'quarry index' first.[/]")
        raise typer.Exit(1)

    subtitle = f"{result.token_count} tokens · {result.mode_used}"
    if result.truncated:
        subtitle += f" · {len(result.selected_chunk_ids)} chunks"
    console.print(
        Panel(
            Text(result.text),
            title=f"[bold]{escape(source_id)}[/]",
            subtitle=subtitle,
            expand=False,
        )
    )
