"""Token codec over one fixed BPE vocabulary (tiktoken ``cl100k_base``).

The vocabulary is read from local disk only, first match wins:

  1. ``QUARRY_TOKENIZER_VOCAB``  (path to a ``cl100k_base.tiktoken`` file)
  2. package data            (``quarry/ingest/data/cl100k_base.tiktoken``)
  3. tiktoken's own cache    (``TIKTOKEN_CACHE_DIR`` / ``DATA_GYM_CACHE_DIR`` /
                              ``$TMPDIR/data-gym-cache``)

Nothing here downloads. A missing or corrupt vocabulary raises
TokenizerUnavailableError from ``get_encoding()``, which the embedder calls
at construction time, so the failure surfaces when the indexer or retriever
is built rather than on some later call.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from collections.abc import Sequence
from functools import lru_cache
from importlib import resources
from pathlib import Path

import tiktoken
from tiktoken.load import load_tiktoken_bpe

ENCODING_NAME = "cl100k_base"
VOCAB_ENV = "QUARRY_TOKENIZER_VOCAB"
VOCAB_URL = "https://openaipublic.blob.core.windows.net/encodings/cl100k_base.tiktoken"
VOCAB_SHA256 = "223921b76ee99bde995b7ff738513eef100fb51d18c93597a113bcffe865b2a7"

_PAT_STR = (
    r"""(?i:'s|'t|'re|'ve|'m|'ll|'d)|[^\r\n\p{L}\p{N}]?\p{L}+|\p{N}{1,3}"""
    r"""| ?[^\s\p{L}\p{N}]+[\r\n]*|\s*[\r\n]+|\s+(?!\S)|\s+"""
)
_SPECIAL_TOKENS = {
    "<|endoftext|>": 100257,
    "<|fim_prefix|>": 100258,
    "<|fim_middle|>": 100259,
    "<|fim_suffix|>": 100260,
    "<|endofprompt|>": 100276,
}


class TokenizerUnavailableError(RuntimeError):
    """The BPE vocabulary is missing or does not match its known hash."""


def find_vocabulary() -> Path | None:
    """Return the first existing vocabulary file, or None."""
    for candidate in _candidates():
        if candidate.is_file():
            return candidate
    return None


def _candidates() -> list[Path]:
    paths: list[Path] = []
    if configured := os.environ.get(VOCAB_ENV):
        paths.append(Path(configured))
    paths.append(Path(str(resources.files("quarry.ingest") / "data" / f"{ENCODING_NAME}.tiktoken")))
    cache_dir = (
        os.environ.get("TIKTOKEN_CACHE_DIR")
        or os.environ.get("DATA_GYM_CACHE_DIR")
        or os.path.join(tempfile.gettempdir(), "data-gym-cache")
    )
    paths.append(Path(cache_dir) / hashlib.sha1(VOCAB_URL.encode()).hexdigest())
    return paths


def load_encoding(path: Path | str) -> tiktoken.Encoding:
    """Build the ``cl100k_base`` encoding from the vocabulary file at *path*."""
    path = Path(path)
    if not path.is_file():
        raise TokenizerUnavailableError(f"Tokenizer vocabulary not found: {path}")
    data = path.read_bytes()
    if hashlib.sha256(data).hexdigest() != VOCAB_SHA256:
        raise TokenizerUnavailableError(f"Tokenizer vocabulary is corrupt: {path}")
    # The hash is checked above; load_tiktoken_bpe only parses the file.
    ranks = load_tiktoken_bpe(str(path))
    return tiktoken.Encoding(
        name=ENCODING_NAME,
        pat_str=_PAT_STR,
        mergeable_ranks=ranks,
        special_tokens=_SPECIAL_TOKENS,
    )


@lru_cache(maxsize=1)
def get_encoding() -> tiktoken.Encoding:
    """Load the vocabulary once per process.

    Raises:
        TokenizerUnavailableError: No vocabulary file on disk, or a corrupt one.
    """
    path = find_vocabulary()
    if path is None:
        searched = ", ".join(str(p) for p in _candidates())
        raise TokenizerUnavailableError(
            f"Tokenizer vocabulary {ENCODING_NAME} not found (searched: {searched}). "
            f"Set {VOCAB_ENV} to a local {ENCODING_NAME}.tiktoken file."
        )
    return load_encoding(path)


def encode(text: str) -> list[int]:
    """Encode *text* to token ids. Special-token text is encoded as plain text."""
    return get_encoding().encode(text, disallowed_special=())


def decode(tokens: Sequence[int]) -> str:
    """Decode token ids back to text.

    A slice that splits a multi-byte character decodes with U+FFFD in its place.
    """
    return get_encoding().decode(list(tokens))


def count_tokens(text: str) -> int:
    return len(encode(text))
