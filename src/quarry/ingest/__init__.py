"""Quarry ingest pipeline: tokenizer, chunker, embedder, extractor, progress events.

The orchestrator lives in ``quarry.ingest.indexer`` and is imported from
there directly (it depends on ``quarry.workspace``).
"""

from quarry.ingest.chunker import TextChunk, chunk_text
from quarry.ingest.embedder import BaseEmbedder, HashedBagEmbedder
from quarry.ingest.events import IndexingProgress, ProgressBus
from quarry.ingest.extract import ExtractedText, ExtractionWarning, extract_text
from quarry.ingest.tokenizer import count_tokens, decode, encode

__all__ = [
    "BaseEmbedder",
    "ExtractedText",
    "ExtractionWarning",
    "HashedBagEmbedder",
    "IndexingProgress",
    "ProgressBus",
    "TextChunk",
    "chunk_text",
    "count_tokens",
    "decode",
    "encode",
    "extract_text",
]
