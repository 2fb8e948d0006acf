"""Token-window chunker with overlap.

Windows are cut on token boundaries (see quarry.ingest.tokenizer), decoded
back to text and stripped. Windows that decode to whitespace are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass

from quarry.ingest.tokenizer import decode, encode

DEFAULT_CHUNK_TOKENS = 600
DEFAULT_OVERLAP_TOKENS = 80


@dataclass
class TextChunk:
    text: str
    token_count: int


def chunk_text(
    text: str,
    chunk_tokens: int = DEFAULT_CHUNK_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[TextChunk]:
    """Split *text* into overlapping windows of at most *chunk_tokens* tokens.

    Window step = ``max(1, chunk_tokens - overlap_tokens)``. Splitting stops
    once a window reaches the end of the token stream, so the last chunk may
    be shorter and a text of at most *chunk_tokens* tokens is one chunk.

    ``token_count`` is the window length in tokens, not a recount of the
    stripped text.
    """
    if chunk_tokens < 1:
        raise ValueError("chunk_tokens must be >= 1")
    if overlap_tokens < 0:
        raise ValueError("overlap_tokens must be >= 0")

    if not text.strip():
        return []

    tokens = encode(text)
    step = max(1, chunk_tokens - overlap_tokens)

    chunks: list[TextChunk] = []
    start = 0
    length = len(tokens)

    while start < length:
        end = min(start + chunk_tokens, length)
        window = tokens[start:end]
        segment = decode(window).strip()
        if segment:
            chunks.append(TextChunk(text=segment, token_count=len(window)))
        if end >= length:
            break
        start += step

    return chunks
