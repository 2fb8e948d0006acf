"""Quarry configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (QUARRY_DB, QUARRY_WORKSPACE,
                             QUARRY_CHUNK_TOKENS, QUARRY_OVERLAP_TOKENS)
  3. Per-project quarry.yaml  (in the working directory)
  4. Global ~/.quarry/config.yaml
  5. Hardcoded defaults

All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from quarry.ingest.chunker import DEFAULT_CHUNK_TOKENS, DEFAULT_OVERLAP_TOKENS
from quarry.ingest.embedder import EMBEDDING_DIMENSIONS
from quarry.rag.assembler import DEFAULT_TOKEN_CAP
from quarry.rag.retriever import DEFAULT_LIMIT, RRF_K
from quarry.workspace import DEFAULT_WORKSPACE_ID

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".quarry"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "quarry.yaml"

DEFAULT_DB_NAME = ".quarry.db"

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["workspace", "indexing", "embedding", "retrieval", "context"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file or environment variable holds an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class WorkspaceCfg:
    """Where the store lives (quarry.yaml: workspace:).

    Attributes:
        db: SQLite database path, relative to the working directory.
        id: Workspace id every command is scoped to.
        blob_dir: Blob directory. Defaults to ``.quarry-blobs`` next to the db.
    """

    db: str = DEFAULT_DB_NAME
    id: str = DEFAULT_WORKSPACE_ID
    blob_dir: str | None = None


@dataclass
class IndexingCfg:
    """Chunking window (quarry.yaml: indexing:)."""

    chunk_tokens: int = DEFAULT_CHUNK_TOKENS
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS


@dataclass
class EmbeddingCfg:
    dimensions: int = EMBEDDING_DIMENSIONS


@dataclass
class RetrievalCfg:
    """Hybrid search settings (quarry.yaml: retrieval:)."""

    limit: int = DEFAULT_LIMIT
    rrf_k: int = RRF_K


@dataclass
class ContextCfg:
    token_cap: int = DEFAULT_TOKEN_CAP


@dataclass
class QuarryConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    workspace: WorkspaceCfg = field(default_factory=WorkspaceCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    context: ContextCfg = field(default_factory=ContextCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _as_int(value: Any, name: str, minimum: int) -> int:
    """Coerce *value* to int and enforce *minimum*, raising ConfigError otherwise."""
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(raw).__name__}")
    return raw


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> QuarryConfig:
    """Build a *QuarryConfig* from a merged raw YAML dict."""
    cfg = QuarryConfig()

    if "workspace" in data:
        w = _section(data, "workspace")
        blob_dir = w.get("blob_dir", cfg.workspace.blob_dir)
        cfg.workspace = WorkspaceCfg(
            db=str(w.get("db", cfg.workspace.db)),
            id=str(w.get("id", cfg.workspace.id)),
            blob_dir=str(blob_dir) if blob_dir else None,
        )

    if "indexing" in data:
        i = _section(data, "indexing")
        cfg.indexing = IndexingCfg(
            chunk_tokens=_as_int(
                i.get("chunk_tokens", cfg.indexing.chunk_tokens), "indexing.chunk_tokens", 1
            ),
            overlap_tokens=_as_int(
                i.get("overlap_tokens", cfg.indexing.overlap_tokens), "indexing.overlap_tokens", 0
            ),
        )

    if "embedding" in data:
        e = _section(data, "embedding")
        cfg.embedding = EmbeddingCfg(
            dimensions=_as_int(
                e.get("dimensions", cfg.embedding.dimensions), "embedding.dimensions", 1
            ),
        )

    if "retrieval" in data:
        r = _section(data, "retrieval")
        cfg.retrieval = RetrievalCfg(
            limit=_as_int(r.get("limit", cfg.retrieval.limit), "retrieval.limit", 1),
            rrf_k=_as_int(r.get("rrf_k", cfg.retrieval.rrf_k), "retrieval.rrf_k", 0),
        )

    if "context" in data:
        c = _section(data, "context")
        cfg.context = ContextCfg(
            token_cap=_as_int(c.get("token_cap", cfg.context.token_cap), "context.token_cap", 1),
        )

    return cfg


def _apply_env_overrides(cfg: QuarryConfig) -> QuarryConfig:
    """Apply QUARRY_* environment variable overrides (layer 2)."""
    if db := os.environ.get("QUARRY_DB"):
        cfg.workspace.db = db
    if workspace_id := os.environ.get("QUARRY_WORKSPACE"):
        cfg.workspace.id = workspace_id
    if chunk := os.environ.get("QUARRY_CHUNK_TOKENS"):
        cfg.indexing.chunk_tokens = _as_int(chunk, "QUARRY_CHUNK_TOKENS", 1)
    if overlap := os.environ.get("QUARRY_OVERLAP_TOKENS"):
        cfg.indexing.overlap_tokens = _as_int(overlap, "QUARRY_OVERLAP_TOKENS", 0)
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"'{path}' must contain a mapping at the top level")
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> QuarryConfig:
    """Load and return a merged *QuarryConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *quarry.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a file cannot be parsed or holds an invalid value.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.quarry/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Quarry global configuration.\n"
            "# Per-project quarry.yaml and QUARRY_* env vars override these values.\n"
            "\n"
            "indexing:\n"
            f"  chunk_tokens: {DEFAULT_CHUNK_TOKENS}\n"
            f"  overlap_tokens: {DEFAULT_OVERLAP_TOKENS}\n"
            "\n"
            "retrieval:\n"
            f"  limit: {DEFAULT_LIMIT}\n"
            "\n"
            "context:\n"
            f"  token_cap: {DEFAULT_TOKEN_CAP}\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
