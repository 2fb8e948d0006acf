"""Domain models for the knowledge store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class IndexStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


SOURCE_KINDS = ("text", "file", "url", "memory")
SCOPE_TYPES = ("workspace", "channel", "thread", "coworker")


@dataclass
class Blob:
    id: str
    workspace_id: str
    path: str
    mime: str | None = None
    size: int | None = None
    sha256: str | None = None
    created_at: str | None = None


@dataclass
class KnowledgeSource:
    id: str
    workspace_id: str
    kind: str  # text | file | url | memory
    scope_type: str = "workspace"  # workspace | channel | thread | coworker
    scope_id: str | None = None
    name: str | None = None
    blob_id: str | None = None
    metadata: str = field(default_factory=lambda: "{}")
    notes: str | None = None
    content_hash: str | None = None
    index_status: IndexStatus = IndexStatus.PENDING
    index_error: str | None = None
    indexed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    archived_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        """Parsed metadata; malformed JSON reads as an empty dict."""
        try:
            parsed = json.loads(self.metadata or "{}")
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}


@dataclass
class SourceText:
    source_id: str
    text: str
    rich_text: str | None = None
    extraction_version: int = 1
    warnings_json: str | None = None
    updated_at: str | None = None

    @property
    def warnings(self) -> list[dict]:
        return json.loads(self.warnings_json) if self.warnings_json else []


@dataclass
class SourceChunk:
    id: str
    source_id: str
    chunk_index: int
    text: str
    token_count: int
    rowid: int | None = None  # source_chunks.pk; None for unsaved chunks
