"""Source CRUD used by the CLI: add files and notes, edit notes, remove.

Indexing is not triggered here; callers hand the new source id to
``Indexer.index_source``.
"""

from __future__ import annotations

import hashlib
import json
import mimetypes
import uuid
from pathlib import Path

from quarry.db.models import SCOPE_TYPES, SOURCE_KINDS, Blob, KnowledgeSource
from quarry.workspace import Workspace, require_open

mimetypes.add_type("text/markdown", ".md")
mimetypes.add_type("text/markdown", ".markdown")


def add_file_source(
    workspace: Workspace,
    data: bytes,
    filename: str,
    *,
    mime: str | None = None,
    notes: str | None = None,
    scope_type: str = "workspace",
    scope_id: str | None = None,
) -> KnowledgeSource:
    """Store *data* as a blob and register a ``file`` source for it."""
    ws = require_open(workspace)
    _check_scope(scope_type)
    mime = mime or mimetypes.guess_type(filename)[0]
    blob_id = uuid.uuid4().hex

    ws.blobs.write(blob_id, data)
    source = KnowledgeSource(
        id=str(uuid.uuid4()),
        workspace_id=ws.id,
        kind="file",
        scope_type=scope_type,
        scope_id=scope_id,
        name=filename,
        blob_id=blob_id,
        metadata=json.dumps({"filename": filename, "size": len(data), "mime": mime}),
        notes=notes,
    )
    try:
        with ws.repo.transaction():
            ws.repo.add_blob(
                Blob(
                    id=blob_id,
                    workspace_id=ws.id,
                    path=f"{blob_id[:2]}/{blob_id}",
                    mime=mime,
                    size=len(data),
                    sha256=hashlib.sha256(data).hexdigest(),
                )
            )
            ws.repo.add_source(source)
    except BaseException:
        ws.blobs.delete(blob_id)
        raise
    return ws.repo.get_source(source.id)


def add_path_source(workspace: Workspace, path: Path | str, **kwargs: object) -> KnowledgeSource:
    """Convenience wrapper: read *path* and call add_file_source()."""
    p = Path(path)
    return add_file_source(workspace, p.read_bytes(), p.name, **kwargs)


def add_note_source(
    workspace: Workspace,
    notes: str,
    *,
    name: str | None = None,
    kind: str = "text",
    scope_type: str = "workspace",
    scope_id: str | None = None,
) -> KnowledgeSource:
    """Register a blob-less source whose only content is *notes*."""
    ws = require_open(workspace)
    _check_scope(scope_type)
    if kind not in SOURCE_KINDS:
        raise ValueError(f"kind must be one of {', '.join(SOURCE_KINDS)}; got {kind!r}")
    if kind == "file":
        raise ValueError("file sources need a blob; use add_file_source()")
    source = KnowledgeSource(
        id=str(uuid.uuid4()),
        workspace_id=ws.id,
        kind=kind,
        scope_type=scope_type,
        scope_id=scope_id,
        name=name,
        notes=notes,
    )
    ws.repo.add_source(source)
    return ws.repo.get_source(source.id)


def update_notes(workspace: Workspace, source_id: str, notes: str | None) -> None:
    ws = require_open(workspace)
    ws.repo.update_notes(source_id, notes)


def remove_source(workspace: Workspace, source_id: str) -> bool:
    """Archive a source and drop its derived index data.

    The blob is deleted once no other live source references it.
    Returns False if the source does not exist or is already archived.
    """
    ws = require_open(workspace)
    repo = ws.repo
    source = repo.get_source(source_id)
    if source is None or source.archived_at is not None:
        return False

    with repo.transaction():
        repo.archive_source(source_id)
        repo.clear_derived(source_id)

    if source.blob_id and repo.count_live_sources_for_blob(source.blob_id, source_id) == 0:
        ws.blobs.delete(source.blob_id)
        repo.delete_blob(source.blob_id)
    return True


def _check_scope(scope_type: str) -> None:
    if scope_type not in SCOPE_TYPES:
        raise ValueError(f"scope_type must be one of {', '.join(SCOPE_TYPES)}; got {scope_type!r}")
