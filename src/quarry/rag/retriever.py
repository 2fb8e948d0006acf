"""Hybrid retriever: BM25 (FTS5) + nearest-neighbour (sqlite-vec), fused via RRF.

Reciprocal Rank Fusion:
  score(d) = Σ 1 / (k + rank_list(d))   over the lists d appears in, k = 60

A chunk found by both channels collects two terms and so always outranks
the same chunk found by one channel. Either channel may be absent (see
``IndexCapabilities``); the other one still answers.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass

from quarry.db.models import SourceChunk
from quarry.db.repository import ScopeFilter
from quarry.ingest.embedder import BaseEmbedder, HashedBagEmbedder, serialize_embedding
from quarry.workspace import Workspace, require_open

logger = logging.getLogger(__name__)

RRF_K = 60
DEFAULT_LIMIT = 8

_QUOTES_RE = re.compile(r"[\"'`]")
_NON_TERM_RE = re.compile(r"[^\w\s-]")


@dataclass
class RagChunkResult:
    """A retrieved chunk with its fused score.

    Attributes:
        source_id: Owning knowledge source.
        chunk_id: Stable chunk id.
        text: Chunk text.
        score: RRF score (higher = more relevant).
        match_type: ``"hybrid"``, ``"fts"`` or ``"vec"``.
    """

    source_id: str
    chunk_id: str
    text: str
    score: float
    match_type: str


def build_fts_query(query: str) -> str | None:
    """Turn free text into an FTS5 MATCH expression, or None if no terms remain.

    Terms are OR-ed and each one is quoted, so FTS5 operators in user input
    are matched literally.
    """
    cleaned = _NON_TERM_RE.sub(" ", _QUOTES_RE.sub("", query))
    terms = [t for t in cleaned.split() if t]
    if not terms:
        return None
    return " OR ".join('"' + t.replace('"', '""') + '"' for t in terms)


def build_scope_filter(scope_type: str | None = None, scope_id: str | None = None) -> ScopeFilter:
    """SQL predicate restricting results to a scope.

    No scope → no filter. ``workspace`` → workspace-scoped sources only.
    Other scope types match on (type, id), or on type alone without an id.
    """
    if not scope_type:
        return ScopeFilter()
    if scope_type == "workspace":
        return ScopeFilter("AND knowledge_sources.scope_type = ?", ("workspace",))
    if scope_id:
        return ScopeFilter(
            "AND knowledge_sources.scope_type = ? AND knowledge_sources.scope_id = ?",
            (scope_type, scope_id),
        )
    return ScopeFilter("AND knowledge_sources.scope_type = ?", (scope_type,))


class Retriever:
    """Hybrid search over one workspace.

    Never raises for missing or failing optional indexes; only a closed
    workspace is an error.
    """

    def __init__(
        self,
        workspace: Workspace | None,
        embedder: BaseEmbedder | None = None,
        rrf_k: int = RRF_K,
    ) -> None:
        self._workspace = workspace
        self.embedder = embedder or HashedBagEmbedder()
        self.rrf_k = rrf_k

    def search(
        self,
        query: str,
        scope_type: str | None = None,
        scope_id: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[RagChunkResult]:
        """Return up to *limit* chunks for *query*, best first.

        Raises:
            WorkspaceNotOpenError: The workspace handle is closed.
        """
        ws = require_open(self._workspace)
        if limit < 1:
            return []
        scope = build_scope_filter(scope_type, scope_id)

        fts_results = self._search_fts(ws, query, scope, limit)
        vec_results = self._search_vec(ws, query, scope, limit)
        logger.debug(
            "search %r: %d fts, %d vec results", query, len(fts_results), len(vec_results)
        )
        return rrf_fuse(fts_results, vec_results, limit, k=self.rrf_k)

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _search_fts(
        self, ws: Workspace, query: str, scope: ScopeFilter, limit: int
    ) -> list[SourceChunk]:
        if not ws.capabilities.fts_available:
            return []
        fts_query = build_fts_query(query)
        if fts_query is None:
            return []
        try:
            return [chunk for chunk, _ in ws.repo.search_fts(fts_query, scope, limit)]
        except sqlite3.Error as exc:
            logger.warning("Full-text search failed, skipping channel: %s", exc)
            return []

    def _search_vec(
        self, ws: Workspace, query: str, scope: ScopeFilter, limit: int
    ) -> list[SourceChunk]:
        if not ws.capabilities.vector_available:
            return []
        try:
            vector = self.embedder.embed(query)
        except Exception as exc:
            logger.warning("Query embedding failed, skipping vector channel: %s", exc)
            return []
        if not any(vector):
            return []
        try:
            return [chunk for chunk, _ in ws.repo.search_vec(serialize_embedding(vector), scope, limit)]
        except (sqlite3.Error, ValueError) as exc:
            logger.warning("Vector search failed, skipping channel: %s", exc)
            return []


# ------------------------------------------------------------------
# RRF fusion
# ------------------------------------------------------------------


def rrf_fuse(
    fts_results: list[SourceChunk],
    vec_results: list[SourceChunk],
    limit: int,
    k: int = RRF_K,
) -> list[RagChunkResult]:
    """Combine two ranked chunk lists via Reciprocal Rank Fusion.

    Ties keep first-seen order (FTS list first, then vector list).
    """
    scores: dict[str, float] = {}
    chunks: dict[str, SourceChunk] = {}
    in_fts: set[str] = set()
    in_vec: set[str] = set()

    for rank, chunk in enumerate(fts_results, start=1):
        scores[chunk.id] = scores.get(chunk.id, 0.0) + 1.0 / (k + rank)
        chunks.setdefault(chunk.id, chunk)
        in_fts.add(chunk.id)

    for rank, chunk in enumerate(vec_results, start=1):
        scores[chunk.id] = scores.get(chunk.id, 0.0) + 1.0 / (k + rank)
        chunks.setdefault(chunk.id, chunk)
        in_vec.add(chunk.id)

    fused = [
        RagChunkResult(
            source_id=chunks[chunk_id].source_id,
            chunk_id=chunk_id,
            text=chunks[chunk_id].text,
            score=score,
            match_type=_match_type(chunk_id in in_fts, chunk_id in in_vec),
        )
        for chunk_id, score in scores.items()
    ]
    fused.sort(key=lambda r: r.score, reverse=True)
    return fused[:limit]


def _match_type(fts: bool, vec: bool) -> str:
    if fts and vec:
        return "hybrid"
    return "fts" if fts else "vec"
