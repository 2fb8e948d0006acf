"""Explicit workspace handle passed to the indexer, retriever and assembler.

A Workspace bundles the open connection, the workspace id every query is
scoped to, the blob store and the optional-index capabilities detected once
at open time. Several workspaces may share one database file.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from quarry.blobs import BlobStore, FileBlobStore
from quarry.db.connection import Database
from quarry.db.indexes import IndexCapabilities
from quarry.db.repository import Repository
from quarry.db.schema import initialize
from quarry.ingest.embedder import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_ID = "default"


class WorkspaceNotOpenError(RuntimeError):
    """Raised by every public operation when no workspace is open."""

    def __init__(self, message: str = "No workspace is currently open") -> None:
        super().__init__(message)


class Workspace:
    """An open workspace: connection, scope id, blob store, capabilities."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        workspace_id: str,
        blobs: BlobStore,
        capabilities: IndexCapabilities,
    ) -> None:
        self.id = workspace_id
        self.blobs = blobs
        self.capabilities = capabilities
        self._conn: sqlite3.Connection | None = conn
        self._repo = Repository(conn, workspace_id, capabilities)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise WorkspaceNotOpenError()
        return self._conn

    @property
    def repo(self) -> Repository:
        if self._conn is None:
            raise WorkspaceNotOpenError()
        return self._repo

    def close(self) -> None:
        with self._repo.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def require_open(workspace: Workspace | None) -> Workspace:
    """Return *workspace* if it is open, else raise WorkspaceNotOpenError."""
    if workspace is None or not workspace.is_open:
        raise WorkspaceNotOpenError()
    return workspace


def open_workspace(
    db_path: Path | str,
    workspace_id: str = DEFAULT_WORKSPACE_ID,
    blob_root: Path | str | None = None,
    *,
    dimensions: int = EMBEDDING_DIMENSIONS,
    capabilities: IndexCapabilities | None = None,
) -> Workspace:
    """Open (or create) the database at *db_path* and return a workspace handle.

    Args:
        db_path: SQLite file; migrated on open.
        workspace_id: Scope for every read and write through the handle.
        blob_root: Directory for blob bytes. Defaults to ``.quarry-blobs``
            next to the database.
        dimensions: Embedding dimensions for the vector table.
        capabilities: Override the detected capabilities, e.g. to run with
            one retrieval channel switched off. A channel can only be
            switched off, never on.
    """
    db_path = Path(db_path)
    conn = Database(db_path).connect()
    detected = initialize(conn, dimensions=dimensions)
    if capabilities is not None:
        detected = IndexCapabilities(
            fts_available=detected.fts_available and capabilities.fts_available,
            vector_available=detected.vector_available and capabilities.vector_available,
        )
    logger.debug(
        "Opened workspace %s at %s (fts=%s, vector=%s)",
        workspace_id,
        db_path,
        detected.fts_available,
        detected.vector_available,
    )
    root = Path(blob_root) if blob_root is not None else db_path.parent / ".quarry-blobs"
    return Workspace(conn, workspace_id, FileBlobStore(root), detected)
