"""Indexing orchestrator: blob → text → chunks → vectors, per knowledge source.

State machine per source::

    pending → processing → ready | error
    ready   → processing   (new index request)
    error   → processing   (retry)

Per call:
  1. Blob-less sources index their notes block (or clear everything when
     the notes are empty).
  2. Blob sources are skipped when already ``ready`` with an unchanged
     content hash, unless ``force`` is set.
  3. Extract, append the notes block, chunk, embed.
  4. In one transaction: drop old chunks/vectors, upsert SourceText,
     insert chunks, insert vectors (best-effort), mark the source ready.

Expected failures (missing blob metadata, unreadable blob, no text) are
recorded as ``error`` and returned. Anything unexpected is recorded as
``error``, published, and re-raised.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading

from quarry.db.models import IndexStatus, KnowledgeSource, SourceText
from quarry.db.repository import Repository
from quarry.ingest.chunker import DEFAULT_CHUNK_TOKENS, DEFAULT_OVERLAP_TOKENS, chunk_text
from quarry.ingest.embedder import BaseEmbedder, HashedBagEmbedder, serialize_embedding
from quarry.ingest.events import IndexingProgress, ProgressBus
from quarry.ingest.extract import ExtractedText, extract_text
from quarry.ingest.tokenizer import get_encoding
from quarry.workspace import Workspace, WorkspaceNotOpenError, require_open

logger = logging.getLogger(__name__)

EXTRACTION_VERSION = 1

MSG_MISSING_BLOB = "Missing blob metadata for this source."
MSG_UNREADABLE_BLOB = "Unable to read blob."
MSG_NO_TEXT = "No text could be extracted."


class SourceNotFoundError(LookupError):
    """The requested source id does not exist in the workspace."""


def build_notes_block(notes: str | None) -> str:
    """Return the notes section appended to a source's document ('' if blank)."""
    if not notes or not notes.strip():
        return ""
    return f"Notes:\n{notes.strip()}"


class Indexer:
    """Indexes knowledge sources of one workspace.

    Args:
        workspace: Open workspace handle; checked on every call.
        bus: Progress channel. A private bus is created when omitted.
        embedder: Embedding implementation (default HashedBagEmbedder).
        chunk_tokens: Window size in tokens.
        overlap_tokens: Tokens shared by adjacent windows.
    """

    def __init__(
        self,
        workspace: Workspace | None,
        *,
        bus: ProgressBus | None = None,
        embedder: BaseEmbedder | None = None,
        chunk_tokens: int = DEFAULT_CHUNK_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    ) -> None:
        get_encoding()
        self._workspace = workspace
        self.bus = bus or ProgressBus()
        self.embedder = embedder or HashedBagEmbedder()
        self.chunk_tokens = chunk_tokens
        self.overlap_tokens = overlap_tokens
        self._in_flight = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_indexing_in_progress(self) -> bool:
        """True while at least one index_source() call is running."""
        with self._lock:
            return self._in_flight > 0

    def index_all_sources(self, force: bool = False) -> dict[str, str]:
        """Index every ``file`` source with a blob.

        A failing source does not stop the batch. Returns a mapping of
        failed source id → error message (empty when all succeeded).
        """
        ws = require_open(self._workspace)
        failures: dict[str, str] = {}
        for source in ws.repo.list_sources(kind="file"):
            if not source.blob_id:
                continue
            try:
                status = self.index_source(source.id, force=force)
            except WorkspaceNotOpenError:
                raise
            except Exception as exc:
                logger.warning("Indexing %s failed: %s", source.id, exc)
                failures[source.id] = str(exc) or type(exc).__name__
                continue
            if status == IndexStatus.ERROR:
                failed = ws.repo.get_source(source.id)
                failures[source.id] = (failed.index_error if failed else None) or "Indexing failed."
        return failures

    def index_source(self, source_id: str, force: bool = False) -> IndexStatus:
        """Index one source and return its resulting status.

        Raises:
            WorkspaceNotOpenError: The workspace handle is closed.
            SourceNotFoundError: *source_id* is not in this workspace.
            Exception: Any unexpected failure, after it has been recorded
                as the source's ``index_error``.
        """
        self._enter()
        try:
            return self._run(source_id, force)
        finally:
            self._leave()

    def index_source_in_background(self, source_id: str, force: bool = False) -> threading.Thread:
        """Run index_source() on a daemon thread and return the started thread.

        ``is_indexing_in_progress()`` is already True when this returns.
        Failures end up in the source's ``index_error`` and the log; nothing
        is raised to the caller.
        """
        self._enter()
        worker = threading.Thread(
            target=self._run_in_background,
            args=(source_id, force),
            name=f"quarry-index-{source_id}",
            daemon=True,
        )
        try:
            worker.start()
        except BaseException:
            self._leave()
            raise
        return worker

    def _run_in_background(self, source_id: str, force: bool) -> None:
        try:
            self._run(source_id, force)
        except Exception as exc:
            logger.warning("Background indexing of %s stopped: %s", source_id, exc)
        finally:
            self._leave()

    def _enter(self) -> None:
        with self._lock:
            self._in_flight += 1

    def _leave(self) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)

    def _run(self, source_id: str, force: bool) -> IndexStatus:
        ws = require_open(self._workspace)
        try:
            return self._index(ws, source_id, force)
        except WorkspaceNotOpenError:
            raise
        except Exception as exc:
            message = str(exc) or "Indexing failed."
            logger.error("Indexing %s failed: %s", source_id, message)
            self._set_status(ws.repo, source_id, IndexStatus.ERROR, message=message)
            raise

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _index(self, ws: Workspace, source_id: str, force: bool) -> IndexStatus:
        repo = ws.repo
        source = repo.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Knowledge source not found: {source_id}")

        notes_block = build_notes_block(source.notes)

        if not source.blob_id:
            if not notes_block:
                with repo.transaction():
                    self._drop_vectors(ws, source_id)
                    repo.clear_derived(source_id)
                    repo.mark_indexed(source_id)
                self._publish(source_id, IndexStatus.READY, step="complete")
                return IndexStatus.READY
            self._set_status(repo, source_id, IndexStatus.PROCESSING, step="chunking")
            return self._persist(ws, source, notes_block, extracted=None, content_hash=None)

        blob = repo.get_blob(source.blob_id)
        if blob is None:
            self._set_status(repo, source_id, IndexStatus.ERROR, message=MSG_MISSING_BLOB)
            return IndexStatus.ERROR

        if (
            not force
            and source.index_status == IndexStatus.READY
            and source.content_hash is not None
            and source.content_hash == blob.sha256
        ):
            logger.debug("Source %s unchanged, skipping", source_id)
            return IndexStatus.READY

        self._set_status(repo, source_id, IndexStatus.PROCESSING, step="extracting")

        try:
            data = ws.blobs.read(source.blob_id)
        except OSError as exc:
            logger.warning("Reading blob %s failed: %s", source.blob_id, exc)
            data = None
        if data is None:
            self._set_status(repo, source_id, IndexStatus.ERROR, message=MSG_UNREADABLE_BLOB)
            return IndexStatus.ERROR

        extracted = extract_text(data, mime=blob.mime, filename=_source_filename(source))
        document = "\n\n".join(part for part in (extracted.text.strip(), notes_block) if part)
        if not document:
            self._set_status(repo, source_id, IndexStatus.ERROR, message=MSG_NO_TEXT)
            return IndexStatus.ERROR

        self._set_status(repo, source_id, IndexStatus.PROCESSING, step="chunking")
        return self._persist(ws, source, document, extracted, content_hash=blob.sha256)

    def _persist(
        self,
        ws: Workspace,
        source: KnowledgeSource,
        document: str,
        extracted: ExtractedText | None,
        content_hash: str | None,
    ) -> IndexStatus:
        repo = ws.repo
        chunks = chunk_text(document, self.chunk_tokens, self.overlap_tokens)

        self._set_status(repo, source.id, IndexStatus.PROCESSING, step="embedding")
        vectors = [serialize_embedding(self.embedder.embed(c.text)) for c in chunks]

        warnings = extracted.warnings if extracted is not None else []
        source_text = SourceText(
            source_id=source.id,
            text=document,
            rich_text=extracted.rich_text if extracted is not None else None,
            extraction_version=EXTRACTION_VERSION,
            warnings_json=json.dumps([w.as_dict() for w in warnings]) if warnings else None,
        )

        with repo.transaction():
            self._drop_vectors(ws, source.id)
            repo.delete_chunks_by_source(source.id)
            repo.upsert_source_text(source_text)
            stored = [
                repo.add_chunk(source.id, index, chunk.text, chunk.token_count)
                for index, chunk in enumerate(chunks)
            ]
            if ws.capabilities.vector_available:
                self._write_vectors(repo, stored, vectors)
            repo.mark_indexed(source.id, content_hash)

        logger.info("Indexed %s: %d chunks", source.id, len(stored))
        self._publish(source.id, IndexStatus.READY, step="complete")
        return IndexStatus.READY

    # ------------------------------------------------------------------
    # Optional vector index (best-effort)
    # ------------------------------------------------------------------

    def _drop_vectors(self, ws: Workspace, source_id: str) -> None:
        if not ws.capabilities.vector_available:
            return
        try:
            with ws.repo.transaction():
                ws.repo.delete_embeddings_by_source(source_id)
        except sqlite3.Error as exc:
            logger.warning("Could not clear vectors for %s: %s", source_id, exc)

    def _write_vectors(self, repo: Repository, chunks: list, vectors: list[bytes]) -> None:
        """Insert all vectors or none; a failure leaves the source FTS-only."""
        try:
            with repo.transaction():
                for chunk, vector in zip(chunks, vectors):
                    repo.add_embedding(chunk, vector)
        except sqlite3.Error as exc:
            logger.warning(
                "Vector index write failed for %s, keyword search only: %s",
                chunks[0].source_id if chunks else "?",
                exc,
            )

    # ------------------------------------------------------------------
    # Status + progress
    # ------------------------------------------------------------------

    def _set_status(
        self,
        repo: Repository,
        source_id: str,
        status: IndexStatus,
        message: str | None = None,
        step: str | None = None,
    ) -> None:
        repo.set_index_status(source_id, status, message)
        self._publish(source_id, status, step=step, message=message)

    def _publish(
        self,
        source_id: str,
        status: IndexStatus,
        step: str | None = None,
        message: str | None = None,
    ) -> None:
        self.bus.publish(IndexingProgress(source_id=source_id, status=status, step=step, message=message))


def _source_filename(source: KnowledgeSource) -> str | None:
    return source.metadata_dict.get("filename") or source.name
