"""Context assembler: fit one source's text into a prompt token budget.

If the whole extracted text fits under the cap it is returned as-is.
Otherwise chunks are taken in document order until the next one would
overflow; the first chunk is always taken so the result is never empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from quarry.ingest.tokenizer import count_tokens
from quarry.workspace import Workspace, require_open

DEFAULT_TOKEN_CAP = 4000

MODE_FULL = "full"
MODE_SELECTED_CHUNKS = "selected_chunks"


@dataclass
class SourceTextResult:
    source_id: str
    text: str
    token_count: int
    truncated: bool
    mode_used: str  # full | selected_chunks
    selected_chunk_ids: list[str] = field(default_factory=list)


def get_prompt_text(
    workspace: Workspace | None,
    source_id: str,
    token_cap: int = DEFAULT_TOKEN_CAP,
) -> SourceTextResult | None:
    """Return the prompt text for *source_id*, or None if it has no SourceText.

    Raises:
        WorkspaceNotOpenError: The workspace handle is closed.
    """
    ws = require_open(workspace)
    repo = ws.repo
    source_text = repo.get_source_text(source_id)
    if source_text is None:
        return None

    total = count_tokens(source_text.text)
    if total <= token_cap:
        return SourceTextResult(
            source_id=source_id,
            text=source_text.text,
            token_count=total,
            truncated=False,
            mode_used=MODE_FULL,
        )

    selected = []
    remaining = token_cap
    for chunk in repo.list_chunks(source_id):
        if selected and chunk.token_count > remaining:
            break
        selected.append(chunk)
        remaining -= chunk.token_count

    return SourceTextResult(
        source_id=source_id,
        text="\n\n".join(c.text for c in selected),
        token_count=sum(c.token_count for c in selected),
        truncated=True,
        mode_used=MODE_SELECTED_CHUNKS,
        selected_chunk_ids=[c.id for c in selected],
    )
