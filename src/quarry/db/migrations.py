"""Forward-only migration runner for the knowledge store schema.

Optional indexes (source_chunks_fts, source_chunks_vec) are NOT
migration-managed: use ensure_fts_table() / ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS blobs (
    id              TEXT PRIMARY KEY,
    workspace_id    TEXT NOT NULL,
    path            TEXT NOT NULL,
    mime            TEXT,
    size            INTEGER,
    sha256          TEXT,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_blobs_workspace ON blobs (workspace_id);

CREATE TABLE IF NOT EXISTS knowledge_sources (
    id              TEXT PRIMARY KEY,
    workspace_id    TEXT NOT NULL,
    scope_type      TEXT NOT NULL DEFAULT 'workspace',
    scope_id        TEXT,
    kind            TEXT NOT NULL,
    name            TEXT,
    blob_id         TEXT REFERENCES blobs(id) ON DELETE SET NULL,
    metadata        TEXT NOT NULL DEFAULT '{}',
    notes           TEXT,
    content_hash    TEXT,
    index_status    TEXT NOT NULL DEFAULT 'pending',
    index_error     TEXT,
    indexed_at      DATETIME,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    archived_at     DATETIME
);

CREATE INDEX IF NOT EXISTS idx_knowledge_sources_workspace
    ON knowledge_sources (workspace_id, archived_at);
CREATE INDEX IF NOT EXISTS idx_knowledge_sources_scope
    ON knowledge_sources (scope_type, scope_id, archived_at);

CREATE TABLE IF NOT EXISTS source_text (
    source_id           TEXT PRIMARY KEY REFERENCES knowledge_sources(id) ON DELETE CASCADE,
    workspace_id        TEXT NOT NULL,
    text                TEXT NOT NULL,
    rich_text           TEXT,
    extraction_version  INTEGER NOT NULL,
    warnings_json       TEXT,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS source_chunks (
    pk              INTEGER PRIMARY KEY,
    id              TEXT NOT NULL UNIQUE,
    workspace_id    TEXT NOT NULL,
    source_id       TEXT NOT NULL REFERENCES knowledge_sources(id) ON DELETE CASCADE,
    chunk_index     INTEGER NOT NULL,
    text            TEXT NOT NULL,
    token_count     INTEGER NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (source_id, chunk_index)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Optional indexes are not managed here; see quarry.db.indexes.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
