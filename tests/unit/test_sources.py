"""Tests for source CRUD helpers."""

from __future__ import annotations

import hashlib
import sqlite3
from unittest.mock import patch

import pytest

from quarry.db.models import IndexStatus
from quarry.ingest.indexer import Indexer
from quarry.sources import (
    add_file_source,
    add_note_source,
    add_path_source,
    remove_source,
    update_notes,
)
from quarry.workspace import WorkspaceNotOpenError


def test_add_file_source_stores_blob_and_metadata(workspace):
    src = add_file_source(workspace, b"# Title\n\nbody", "readme.md")

    assert src.kind == "file"
    assert src.name == "readme.md"
    assert src.index_status == IndexStatus.PENDING
    assert src.metadata_dict == {"filename": "readme.md", "size": 13, "mime": "text/markdown"}

    blob = workspace.repo.get_blob(src.blob_id)
    assert blob.sha256 == hashlib.sha256(b"# Title\n\nbody").hexdigest()
    assert blob.size == 13
    assert workspace.blobs.read(src.blob_id) == b"# Title\n\nbody"


def test_add_file_source_explicit_mime_and_scope(workspace):
    src = add_file_source(
        workspace, b"data", "blob.bin", mime="text/plain", scope_type="channel", scope_id="c1"
    )
    assert workspace.repo.get_blob(src.blob_id).mime == "text/plain"
    assert (src.scope_type, src.scope_id) == ("channel", "c1")


def test_add_path_source_reads_file(workspace, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("from disk", encoding="utf-8")
    src = add_path_source(workspace, path, notes="imported")
    assert src.name == "notes.txt"
    assert src.notes == "imported"
    assert workspace.blobs.read(src.blob_id) == b"from disk"


def test_add_note_source(workspace):
    src = add_note_source(workspace, "remember this", name="memo", kind="memory")
    assert src.kind == "memory"
    assert src.blob_id is None
    assert src.notes == "remember this"


def test_add_note_source_rejects_file_kind(workspace):
    with pytest.raises(ValueError, match="need a blob"):
        add_note_source(workspace, "x", kind="file")


def test_invalid_scope_rejected(workspace):
    with pytest.raises(ValueError, match="scope_type"):
        add_note_source(workspace, "x", scope_type="galaxy")
    with pytest.raises(ValueError, match="scope_type"):
        add_file_source(workspace, b"x", "x.txt", scope_type="galaxy")
    assert workspace.repo.list_sources() == []


def test_unknown_kind_rejected(workspace):
    with pytest.raises(ValueError, match="kind must be one of"):
        add_note_source(workspace, "x", kind="bookmark")
    assert workspace.repo.list_sources() == []


def test_failed_insert_removes_blob_file(workspace, tmp_path):
    with patch.object(workspace.repo, "add_source", side_effect=sqlite3.IntegrityError("constraint failed")):
        with pytest.raises(sqlite3.IntegrityError):
            add_file_source(workspace, b"orphan bytes", "orphan.txt")
    assert [p for p in (tmp_path / "blobs").rglob("*") if p.is_file()] == []
    assert workspace.repo.list_sources() == []


def test_update_notes(workspace):
    src = add_note_source(workspace, "old")
    update_notes(workspace, src.id, "new")
    assert workspace.repo.get_source(src.id).notes == "new"


def test_remove_source_archives_and_clears_derived(workspace):
    src = add_file_source(workspace, b"to be removed", "gone.txt")
    Indexer(workspace).index_source(src.id)

    assert remove_source(workspace, src.id) is True

    stored = workspace.repo.get_source(src.id)
    assert stored.archived_at is not None
    assert workspace.repo.count_chunks_by_source(src.id) == 0
    assert workspace.repo.get_source_text(src.id) is None
    assert workspace.repo.count_embeddings_by_source(src.id) == 0
    assert workspace.blobs.read(src.blob_id) is None
    assert workspace.repo.get_blob(src.blob_id) is None


def test_remove_source_keeps_shared_blob(workspace):
    first = add_file_source(workspace, b"shared", "a.txt")
    second = add_note_source(workspace, "placeholder")
    workspace.conn.execute(
        "UPDATE knowledge_sources SET blob_id = ?, kind = 'file' WHERE id = ?",
        (first.blob_id, second.id),
    )

    remove_source(workspace, first.id)

    assert workspace.blobs.read(first.blob_id) == b"shared"
    assert workspace.repo.get_blob(first.blob_id) is not None


def test_remove_source_missing_or_archived(workspace):
    src = add_note_source(workspace, "x")
    assert remove_source(workspace, "nope") is False
    assert remove_source(workspace, src.id) is True
    assert remove_source(workspace, src.id) is False


def test_closed_workspace_raises(workspace):
    workspace.close()
    with pytest.raises(WorkspaceNotOpenError):
        add_note_source(workspace, "x")
