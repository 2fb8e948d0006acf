"""Optional full-text and vector index management.

Neither index is required: the engine degrades to whichever retrieval
channel is present. Availability is detected once per opened workspace and
carried around as an ``IndexCapabilities`` value.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

logger = logging.getLogger(__name__)

FTS_TABLE = "source_chunks_fts"
VEC_TABLE = "source_chunks_vec"


@dataclass(frozen=True)
class IndexCapabilities:
    """Which optional retrieval indexes are usable on a connection."""

    fts_available: bool = False
    vector_available: bool = False


def ensure_fts_table(conn: sqlite3.Connection) -> bool:
    """Create the FTS5 table if it doesn't exist. Returns False if FTS5 is missing.

    Rows are inserted explicitly (rowid = source_chunks.pk) by the repository.
    """
    try:
        conn.execute(
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} "
            "USING fts5(text, tokenize='porter ascii')"
        )
    except sqlite3.Error as exc:
        logger.warning("FTS5 unavailable, full-text search disabled: %s", exc)
        return False
    return True


def ensure_vec_table(conn: sqlite3.Connection, dimensions: int) -> bool:
    """Create the vector companion table if sqlite-vec is loaded.

    Args:
        conn: Active database connection.
        dimensions: Embedding dimensions; stored vectors must be exactly
            ``dimensions`` little-endian float32 values.

    Returns:
        True if the table exists (or was created), False if sqlite-vec is
        not loaded on this connection.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    if not _vec_loaded(conn):
        return False

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {VEC_TABLE} (
            chunk_id    TEXT PRIMARY KEY REFERENCES source_chunks(id) ON DELETE CASCADE,
            source_id   TEXT NOT NULL,
            embedding   BLOB NOT NULL CHECK (length(embedding) = {dimensions * 4})
        )
        """
    )
    conn.execute(
        f"CREATE INDEX IF NOT EXISTS idx_{VEC_TABLE}_source ON {VEC_TABLE} (source_id)"
    )
    return True


def detect_capabilities(conn: sqlite3.Connection) -> IndexCapabilities:
    """Report which optional indexes exist and can be queried on *conn*."""
    fts = _table_exists(conn, FTS_TABLE)
    vec = _table_exists(conn, VEC_TABLE) and _vec_loaded(conn)
    return IndexCapabilities(fts_available=fts, vector_available=vec)


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    return (
        conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
        ).fetchone()
        is not None
    )


def _vec_loaded(conn: sqlite3.Connection) -> bool:
    try:
        conn.execute("SELECT vec_version()").fetchone()
    except sqlite3.Error:
        return False
    return True
