"""Blob byte storage behind a small read/write/delete contract.

Blob metadata (mime, size, sha256) lives in the ``blobs`` table; this
module only moves bytes.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

_BLOB_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class BlobStore(Protocol):
    def read(self, blob_id: str) -> bytes | None: ...

    def write(self, blob_id: str, data: bytes) -> None: ...

    def delete(self, blob_id: str) -> None: ...


class FileBlobStore:
    """One file per blob id under *root*. Missing files read as None."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def read(self, blob_id: str) -> bytes | None:
        path = self._path(blob_id)
        if not path.is_file():
            return None
        return path.read_bytes()

    def write(self, blob_id: str, data: bytes) -> None:
        path = self._path(blob_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def delete(self, blob_id: str) -> None:
        self._path(blob_id).unlink(missing_ok=True)

    def _path(self, blob_id: str) -> Path:
        if not _BLOB_ID_RE.match(blob_id):
            raise ValueError(f"Invalid blob id: {blob_id!r}")
        return self.root / blob_id[:2] / blob_id
