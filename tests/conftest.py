"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest
import tiktoken

from quarry.db.connection import Database
from quarry.db.indexes import IndexCapabilities
from quarry.db.schema import initialize
from quarry.ingest.tokenizer import find_vocabulary, get_encoding
from quarry.workspace import open_workspace


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".quarry.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def workspace(tmp_path):
    """Open 'default' workspace with every channel the platform supports."""
    ws = open_workspace(tmp_path / ".quarry.db", blob_root=tmp_path / "blobs")
    yield ws
    ws.close()


@pytest.fixture
def fts_workspace(tmp_path):
    """Workspace with the vector channel switched off."""
    ws = open_workspace(
        tmp_path / ".quarry.db",
        blob_root=tmp_path / "blobs",
        capabilities=IndexCapabilities(fts_available=True, vector_available=False),
    )
    yield ws
    ws.close()


@pytest.fixture
def vec_workspace(tmp_path):
    """Workspace with the full-text channel switched off; skipped without sqlite-vec."""
    ws = open_workspace(
        tmp_path / ".quarry.db",
        blob_root=tmp_path / "blobs",
        capabilities=IndexCapabilities(fts_available=False, vector_available=True),
    )
    if not ws.capabilities.vector_available:
        ws.close()
        pytest.skip("sqlite-vec not loadable on this platform")
    yield ws
    ws.close()


@pytest.fixture
def hybrid_workspace(workspace):
    """The default workspace, skipped unless both channels are available."""
    if not (workspace.capabilities.fts_available and workspace.capabilities.vector_available):
        pytest.skip("FTS5 or sqlite-vec not available on this platform")
    return workspace


@pytest.fixture(autouse=True)
def _isolated_global_config(tmp_path, monkeypatch):
    """Keep ~/.quarry/config.yaml reads and writes inside tmp_path."""
    monkeypatch.setattr("quarry.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / ".quarry" / "config.yaml")
    for name in ("QUARRY_DB", "QUARRY_WORKSPACE", "QUARRY_CHUNK_TOKENS", "QUARRY_OVERLAP_TOKENS"):
        monkeypatch.delenv(name, raising=False)


def pytest_sessionstart(session):
    """Seed tiktoken's cache once so the suite runs against a real vocabulary.

    quarry itself only reads the vocabulary from disk; this is the one place
    allowed to fetch it, and only when nothing local was found.
    """
    if find_vocabulary() is not None:
        return
    try:
        tiktoken.get_encoding("cl100k_base")
    except Exception as exc:
        logging.getLogger(__name__).warning("Could not seed the cl100k_base cache: %s", exc)


@pytest.fixture
def no_vocabulary(tmp_path, monkeypatch):
    """No cl100k_base file anywhere the tokenizer looks."""
    missing = tmp_path / "missing.tiktoken"
    monkeypatch.setattr("quarry.ingest.tokenizer._candidates", lambda: [missing])
    get_encoding.cache_clear()
    yield missing
    get_encoding.cache_clear()
