"""Repository pattern for all knowledge store operations.

Single interface for: blobs, sources, source text, chunks, FTS5 search,
vector entries. Every query is scoped to one workspace id. The optional
indexes are only touched when the workspace's capabilities say they exist.
"""

from __future__ import annotations

import functools
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

from quarry.db.indexes import FTS_TABLE, VEC_TABLE, IndexCapabilities, detect_capabilities
from quarry.db.models import Blob, IndexStatus, KnowledgeSource, SourceChunk, SourceText

_SOURCE_COLUMNS = (
    "id, workspace_id, kind, scope_type, scope_id, name, blob_id, metadata, notes, "
    "content_hash, index_status, index_error, indexed_at, created_at, updated_at, archived_at"
)


_F = TypeVar("_F", bound=Callable[..., Any])


def _serialized(method: _F) -> _F:
    """Hold the repository lock for the duration of *method*."""

    @functools.wraps(method)
    def wrapper(self: Repository, *args: Any, **kwargs: Any) -> Any:
        with self.lock:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


@dataclass(frozen=True)
class ScopeFilter:
    """Extra SQL predicate on ``knowledge_sources`` plus its parameters."""

    clause: str = ""
    params: tuple[str, ...] = ()


class Repository:
    """Data access layer for one workspace.

    Wraps an open sqlite3.Connection (autocommit mode, see
    ``quarry.db.connection.Database``). Single-statement writes commit
    immediately; grouped writes go through ``transaction()``. The connection
    is owned by the caller and must be closed after use.

    The connection may be shared across threads. Every method, and every
    ``transaction()`` block as a whole, runs under one re-entrant lock, so a
    statement from another thread never lands inside an open transaction.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        workspace_id: str,
        capabilities: IndexCapabilities | None = None,
    ) -> None:
        """Initialise with an open connection and the workspace it serves.

        Args:
            conn: An open connection with the schema initialised
                (see quarry.db.schema.initialize).
            workspace_id: Workspace every read and write is restricted to.
            capabilities: Optional index availability; detected from the
                connection when omitted.
        """
        self._conn = conn
        self.workspace_id = workspace_id
        self.capabilities = capabilities or detect_capabilities(conn)
        self._savepoint_depth = 0
        self.lock = threading.RLock()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed writes atomically.

        Re-entrant: a nested call opens a SAVEPOINT, so an inner failure that
        the caller catches only rolls back the inner block.
        """
        with self.lock:
            if self._conn.in_transaction:
                with self._savepoint():
                    yield
                return

            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    @contextmanager
    def _savepoint(self) -> Iterator[None]:
        self._savepoint_depth += 1
        name = f"sp_{self._savepoint_depth}"
        self._conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except BaseException:
            self._conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self._conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            self._conn.execute(f"RELEASE SAVEPOINT {name}")
        finally:
            self._savepoint_depth -= 1

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    @_serialized
    def add_blob(self, blob: Blob) -> None:
        """Insert blob metadata (the bytes live in the blob store)."""
        self._conn.execute(
            """
            INSERT INTO blobs (id, workspace_id, path, mime, size, sha256)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (blob.id, self.workspace_id, blob.path, blob.mime, blob.size, blob.sha256),
        )

    @_serialized
    def get_blob(self, blob_id: str) -> Blob | None:
        """Return blob metadata by ID, or None if not found in this workspace."""
        row = self._conn.execute(
            """
            SELECT id, workspace_id, path, mime, size, sha256, created_at
            FROM blobs WHERE id = ? AND workspace_id = ?
            """,
            (blob_id, self.workspace_id),
        ).fetchone()
        return _row_to_blob(row) if row else None

    @_serialized
    def delete_blob(self, blob_id: str) -> None:
        self._conn.execute(
            "DELETE FROM blobs WHERE id = ? AND workspace_id = ?",
            (blob_id, self.workspace_id),
        )

    @_serialized
    def count_live_sources_for_blob(self, blob_id: str, exclude_source_id: str | None = None) -> int:
        """Number of non-archived sources (other than *exclude_source_id*) using *blob_id*."""
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM knowledge_sources
            WHERE workspace_id = ? AND blob_id = ? AND archived_at IS NULL AND id IS NOT ?
            """,
            (self.workspace_id, blob_id, exclude_source_id),
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @_serialized
    def add_source(self, source: KnowledgeSource) -> None:
        """Insert a new source record into this workspace.

        Args:
            source: KnowledgeSource to persist; its ``workspace_id`` is ignored.
        """
        self._conn.execute(
            """
            INSERT INTO knowledge_sources
                (id, workspace_id, kind, scope_type, scope_id, name, blob_id,
                 metadata, notes, content_hash, index_status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                source.id,
                self.workspace_id,
                source.kind,
                source.scope_type,
                source.scope_id,
                source.name,
                source.blob_id,
                source.metadata,
                source.notes,
                source.content_hash,
                IndexStatus(source.index_status).value,
            ),
        )

    @_serialized
    def get_source(self, source_id: str) -> KnowledgeSource | None:
        """Return a source by ID (archived included), or None if not found."""
        row = self._conn.execute(
            f"SELECT {_SOURCE_COLUMNS} FROM knowledge_sources WHERE id = ? AND workspace_id = ?",
            (source_id, self.workspace_id),
        ).fetchone()
        return _row_to_source(row) if row else None

    @_serialized
    def list_sources(self, kind: str | None = None, include_archived: bool = False) -> list[KnowledgeSource]:
        """Return sources ordered by creation time (oldest first).

        Args:
            kind: Restrict to one source kind (e.g. ``"file"``).
            include_archived: Also return archived sources.
        """
        sql = f"SELECT {_SOURCE_COLUMNS} FROM knowledge_sources WHERE workspace_id = ?"
        params: list[object] = [self.workspace_id]
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind)
        if not include_archived:
            sql += " AND archived_at IS NULL"
        sql += " ORDER BY created_at, rowid"
        return [_row_to_source(r) for r in self._conn.execute(sql, params).fetchall()]

    @_serialized
    def update_notes(self, source_id: str, notes: str | None) -> None:
        self._conn.execute(
            """
            UPDATE knowledge_sources SET notes = ?, updated_at = datetime('now')
            WHERE id = ? AND workspace_id = ?
            """,
            (notes, source_id, self.workspace_id),
        )

    @_serialized
    def set_index_status(
        self,
        source_id: str,
        status: IndexStatus,
        error: str | None = None,
    ) -> None:
        """Record *status* (and *error*, cleared when None) for a source."""
        self._conn.execute(
            """
            UPDATE knowledge_sources
            SET index_status = ?, index_error = ?, updated_at = datetime('now')
            WHERE id = ? AND workspace_id = ?
            """,
            (IndexStatus(status).value, error, source_id, self.workspace_id),
        )

    @_serialized
    def mark_indexed(self, source_id: str, content_hash: str | None = None) -> None:
        """Set status ``ready`` and ``indexed_at``; store *content_hash* when given."""
        self._conn.execute(
            """
            UPDATE knowledge_sources
            SET index_status = ?, index_error = NULL,
                content_hash = COALESCE(?, content_hash),
                indexed_at = datetime('now'), updated_at = datetime('now')
            WHERE id = ? AND workspace_id = ?
            """,
            (IndexStatus.READY.value, content_hash, source_id, self.workspace_id),
        )

    @_serialized
    def archive_source(self, source_id: str) -> None:
        self._conn.execute(
            """
            UPDATE knowledge_sources
            SET archived_at = datetime('now'), updated_at = datetime('now')
            WHERE id = ? AND workspace_id = ? AND archived_at IS NULL
            """,
            (source_id, self.workspace_id),
        )

    # ------------------------------------------------------------------
    # Source text
    # ------------------------------------------------------------------

    @_serialized
    def upsert_source_text(self, text: SourceText) -> None:
        """Insert or replace the single SourceText row for ``text.source_id``."""
        self._conn.execute(
            """
            INSERT INTO source_text
                (source_id, workspace_id, text, rich_text, extraction_version, warnings_json)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(source_id) DO UPDATE SET
                text = excluded.text,
                rich_text = excluded.rich_text,
                extraction_version = excluded.extraction_version,
                warnings_json = excluded.warnings_json,
                updated_at = datetime('now')
            """,
            (
                text.source_id,
                self.workspace_id,
                text.text,
                text.rich_text,
                text.extraction_version,
                text.warnings_json,
            ),
        )

    @_serialized
    def get_source_text(self, source_id: str) -> SourceText | None:
        row = self._conn.execute(
            """
            SELECT source_id, text, rich_text, extraction_version, warnings_json, updated_at
            FROM source_text WHERE source_id = ? AND workspace_id = ?
            """,
            (source_id, self.workspace_id),
        ).fetchone()
        if row is None:
            return None
        return SourceText(
            source_id=row["source_id"],
            text=row["text"],
            rich_text=row["rich_text"],
            extraction_version=row["extraction_version"],
            warnings_json=row["warnings_json"],
            updated_at=row["updated_at"],
        )

    @_serialized
    def clear_derived(self, source_id: str) -> None:
        """Delete SourceText, chunks, FTS entries and vector entries for a source."""
        with self.transaction():
            self.delete_chunks_by_source(source_id)
            self._conn.execute(
                "DELETE FROM source_text WHERE source_id = ? AND workspace_id = ?",
                (source_id, self.workspace_id),
            )

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    @_serialized
    def add_chunk(self, source_id: str, chunk_index: int, text: str, token_count: int) -> SourceChunk:
        """Insert a chunk + sync the FTS5 index. Returns the stored chunk."""
        chunk_id = str(uuid.uuid4())
        cur = self._conn.execute(
            """
            INSERT INTO source_chunks (id, workspace_id, source_id, chunk_index, text, token_count)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (chunk_id, self.workspace_id, source_id, chunk_index, text, token_count),
        )
        rowid = cur.lastrowid
        if self.capabilities.fts_available:
            # Keep FTS5 in sync with explicit rowid mapping
            self._conn.execute(
                f"INSERT INTO {FTS_TABLE}(rowid, text) VALUES (?, ?)", (rowid, text)
            )
        return SourceChunk(
            id=chunk_id,
            source_id=source_id,
            chunk_index=chunk_index,
            text=text,
            token_count=token_count,
            rowid=rowid,
        )

    @_serialized
    def list_chunks(self, source_id: str) -> list[SourceChunk]:
        """Return the chunks of a source in ``chunk_index`` order."""
        rows = self._conn.execute(
            """
            SELECT pk, id, source_id, chunk_index, text, token_count
            FROM source_chunks WHERE source_id = ? AND workspace_id = ?
            ORDER BY chunk_index
            """,
            (source_id, self.workspace_id),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    @_serialized
    def count_chunks_by_source(self, source_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM source_chunks WHERE source_id = ? AND workspace_id = ?",
            (source_id, self.workspace_id),
        ).fetchone()[0]

    @_serialized
    def count_chunks(self) -> int:
        """Total chunks across this workspace's live sources."""
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM source_chunks
            JOIN knowledge_sources ON knowledge_sources.id = source_chunks.source_id
            WHERE source_chunks.workspace_id = ? AND knowledge_sources.archived_at IS NULL
            """,
            (self.workspace_id,),
        ).fetchone()[0]

    @_serialized
    def delete_chunks_by_source(self, source_id: str) -> None:
        """Delete chunks + FTS entries (+ vectors via cascade) for a source."""
        with self.transaction():
            if self.capabilities.fts_available:
                self._conn.execute(
                    f"""
                    DELETE FROM {FTS_TABLE} WHERE rowid IN (
                        SELECT pk FROM source_chunks WHERE source_id = ? AND workspace_id = ?
                    )
                    """,
                    (source_id, self.workspace_id),
                )
            self._conn.execute(
                "DELETE FROM source_chunks WHERE source_id = ? AND workspace_id = ?",
                (source_id, self.workspace_id),
            )

    # ------------------------------------------------------------------
    # Vector entries
    # ------------------------------------------------------------------

    @_serialized
    def add_embedding(self, chunk: SourceChunk, embedding: bytes) -> None:
        """Insert the serialized embedding for *chunk*."""
        self._conn.execute(
            f"INSERT INTO {VEC_TABLE}(chunk_id, source_id, embedding) VALUES (?, ?, ?)",
            (chunk.id, chunk.source_id, embedding),
        )

    @_serialized
    def delete_embeddings_by_source(self, source_id: str) -> int:
        """Delete every vector entry for *source_id*. Returns rows deleted."""
        cur = self._conn.execute(
            f"DELETE FROM {VEC_TABLE} WHERE source_id = ?", (source_id,)
        )
        return cur.rowcount

    @_serialized
    def count_embeddings_by_source(self, source_id: str) -> int:
        if not self.capabilities.vector_available:
            return 0
        return self._conn.execute(
            f"SELECT COUNT(*) FROM {VEC_TABLE} WHERE source_id = ?", (source_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @_serialized
    def search_fts(
        self, fts_query: str, scope: ScopeFilter = ScopeFilter(), limit: int = 8
    ) -> list[tuple[SourceChunk, float]]:
        """BM25 full-text search over live sources. Returns (chunk, score) best-first.

        *fts_query* must already be a valid FTS5 MATCH expression.
        bm25() returns negative values; lower (more negative) = better match.
        """
        rows = self._conn.execute(
            f"""
            SELECT source_chunks.pk, source_chunks.id, source_chunks.source_id,
                   source_chunks.chunk_index, source_chunks.text, source_chunks.token_count,
                   bm25({FTS_TABLE}) AS score
            FROM {FTS_TABLE}
            JOIN source_chunks ON {FTS_TABLE}.rowid = source_chunks.pk
            JOIN knowledge_sources ON knowledge_sources.id = source_chunks.source_id
            WHERE {FTS_TABLE} MATCH ?
              AND knowledge_sources.workspace_id = ?
              AND knowledge_sources.archived_at IS NULL
              {scope.clause}
            ORDER BY score
            LIMIT ?
            """,
            (fts_query, self.workspace_id, *scope.params, limit),
        ).fetchall()
        return [(_row_to_chunk(r), r["score"]) for r in rows]

    @_serialized
    def search_vec(
        self, embedding: bytes, scope: ScopeFilter = ScopeFilter(), limit: int = 8
    ) -> list[tuple[SourceChunk, float]]:
        """Nearest-neighbour search over live sources. Returns (chunk, distance) sorted by distance."""
        rows = self._conn.execute(
            f"""
            SELECT source_chunks.pk, source_chunks.id, source_chunks.source_id,
                   source_chunks.chunk_index, source_chunks.text, source_chunks.token_count,
                   vec_distance_l2({VEC_TABLE}.embedding, ?) AS distance
            FROM {VEC_TABLE}
            JOIN source_chunks ON source_chunks.id = {VEC_TABLE}.chunk_id
            JOIN knowledge_sources ON knowledge_sources.id = {VEC_TABLE}.source_id
            WHERE knowledge_sources.workspace_id = ?
              AND knowledge_sources.archived_at IS NULL
              {scope.clause}
            ORDER BY distance
            LIMIT ?
            """,
            (embedding, self.workspace_id, *scope.params, limit),
        ).fetchall()
        return [(_row_to_chunk(r), r["distance"]) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_blob(row: sqlite3.Row) -> Blob:
    return Blob(
        id=row["id"],
        workspace_id=row["workspace_id"],
        path=row["path"],
        mime=row["mime"],
        size=row["size"],
        sha256=row["sha256"],
        created_at=row["created_at"],
    )


def _row_to_source(row: sqlite3.Row) -> KnowledgeSource:
    return KnowledgeSource(
        id=row["id"],
        workspace_id=row["workspace_id"],
        kind=row["kind"],
        scope_type=row["scope_type"],
        scope_id=row["scope_id"],
        name=row["name"],
        blob_id=row["blob_id"],
        metadata=row["metadata"],
        notes=row["notes"],
        content_hash=row["content_hash"],
        index_status=IndexStatus(row["index_status"]),
        index_error=row["index_error"],
        indexed_at=row["indexed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        archived_at=row["archived_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> SourceChunk:
    return SourceChunk(
        rowid=row["pk"],
        id=row["id"],
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        token_count=row["token_count"],
    )
