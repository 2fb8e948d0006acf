"""Embedding contract plus the hashed bag-of-tokens placeholder.

Callers may rely on two things only: every vector has ``dimensions``
entries, and non-zero vectors have unit L2 norm. Any implementation of
``BaseEmbedder`` honouring that can replace ``HashedBagEmbedder`` without
touching the indexer or the retriever.
"""

from __future__ import annotations

import math
import struct
from abc import ABC, abstractmethod
from collections.abc import Sequence

from quarry.ingest.tokenizer import encode, get_encoding

EMBEDDING_DIMENSIONS = 384


class BaseEmbedder(ABC):
    """Maps text to a fixed-dimension, L2-normalised float vector."""

    def __init__(self, dimensions: int = EMBEDDING_DIMENSIONS) -> None:
        if dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        self.dimensions = dimensions

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*; the zero vector for empty input."""


class HashedBagEmbedder(BaseEmbedder):
    """Count token ids into ``id mod dimensions`` buckets, then L2-normalise.

    Deterministic and model-free; a stand-in until a trained model is wired in.
    """

    def __init__(self, dimensions: int = EMBEDDING_DIMENSIONS) -> None:
        super().__init__(dimensions)
        get_encoding()

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for token in encode(text):
            vector[token % self.dimensions] += 1.0
        return normalize(vector)


def normalize(vector: list[float]) -> list[float]:
    """Scale *vector* to unit length; the zero vector is returned unchanged."""
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    scale = 1.0 / norm
    return [v * scale for v in vector]


def serialize_embedding(vector: Sequence[float]) -> bytes:
    """Pack *vector* as raw little-endian float32 (the sqlite-vec blob format)."""
    return struct.pack(f"<{len(vector)}f", *vector)


def deserialize_embedding(data: bytes) -> list[float]:
    return list(struct.unpack(f"<{len(data) // 4}f", data))
