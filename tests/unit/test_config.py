"""Tests for the quarry config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from quarry.config import (
    ConfigError,
    QuarryConfig,
    ensure_global_config,
    load_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path, global_cfg: Path | None = None) -> QuarryConfig:
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_cfg or tmp_path / "nonexistent" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = _load(tmp_path)

    assert cfg.workspace.db == ".quarry.db"
    assert cfg.workspace.id == "default"
    assert cfg.workspace.blob_dir is None
    assert cfg.indexing.chunk_tokens == 600
    assert cfg.indexing.overlap_tokens == 80
    assert cfg.embedding.dimensions == 384
    assert cfg.retrieval.limit == 8
    assert cfg.retrieval.rrf_k == 60
    assert cfg.context.token_cap == 4000


def test_load_config_global_null_yaml(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("~\n", encoding="utf-8")
    assert _load(tmp_path, global_cfg) == QuarryConfig()


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"retrieval": {"limit": 20}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.retrieval.limit == 20
    assert cfg.retrieval.rrf_k == 60


def test_load_config_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"indexing": {"chunk_tokens": 300, "overlap_tokens": 30}})
    _write_yaml(tmp_path / "quarry.yaml", {"indexing": {"chunk_tokens": 1000}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.indexing.chunk_tokens == 1000
    assert cfg.indexing.overlap_tokens == 30


def test_load_config_workspace_section(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "quarry.yaml",
        {"workspace": {"db": "kb/store.db", "id": "team-a", "blob_dir": "kb/blobs"}},
    )
    cfg = _load(tmp_path)
    assert cfg.workspace.db == "kb/store.db"
    assert cfg.workspace.id == "team-a"
    assert cfg.workspace.blob_dir == "kb/blobs"


def test_load_config_embedding_and_context(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "quarry.yaml", {"embedding": {"dimensions": 64}, "context": {"token_cap": 1200}})
    cfg = _load(tmp_path)
    assert cfg.embedding.dimensions == 64
    assert cfg.context.token_cap == 1200


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "data",
    [
        {"indexing": {"chunk_tokens": 0}},
        {"indexing": {"overlap_tokens": -1}},
        {"indexing": {"chunk_tokens": "many"}},
        {"indexing": {"chunk_tokens": True}},
        {"embedding": {"dimensions": 0}},
        {"retrieval": {"limit": 0}},
        {"retrieval": {"rrf_k": -5}},
        {"context": {"token_cap": 0}},
        {"retrieval": ["not", "a", "mapping"]},
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, data: dict) -> None:
    _write_yaml(tmp_path / "quarry.yaml", data)
    with pytest.raises(ConfigError):
        _load(tmp_path)


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    (tmp_path / "quarry.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        _load(tmp_path)


def test_unparseable_yaml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / "quarry.yaml").write_text("indexing: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Could not parse"):
        _load(tmp_path)


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)


# ---------------------------------------------------------------------------
# Unknown key warnings
# ---------------------------------------------------------------------------


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    """Unknown top-level key emits UserWarning (not error)."""
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"unknown_section": {"foo": "bar"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cfg = _load(tmp_path, global_cfg)

    assert any("unknown_section" in str(w.message) for w in caught)
    assert cfg.retrieval.limit == 8


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def test_env_vars_override_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(
        tmp_path / "quarry.yaml",
        {"workspace": {"db": "file.db", "id": "file-ws"}, "indexing": {"chunk_tokens": 100}},
    )
    monkeypatch.setenv("QUARRY_DB", "env.db")
    monkeypatch.setenv("QUARRY_WORKSPACE", "env-ws")
    monkeypatch.setenv("QUARRY_CHUNK_TOKENS", "250")
    monkeypatch.setenv("QUARRY_OVERLAP_TOKENS", "0")

    cfg = _load(tmp_path)
    assert cfg.workspace.db == "env.db"
    assert cfg.workspace.id == "env-ws"
    assert cfg.indexing.chunk_tokens == 250
    assert cfg.indexing.overlap_tokens == 0


def test_env_var_absent_does_not_override(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "quarry.yaml", {"workspace": {"id": "file-ws"}})
    assert _load(tmp_path).workspace.id == "file-ws"


def test_env_var_invalid_int_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUARRY_CHUNK_TOKENS", "lots")
    with pytest.raises(ConfigError, match="QUARRY_CHUNK_TOKENS"):
        _load(tmp_path)


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file(tmp_path: Path) -> None:
    target = tmp_path / ".quarry" / "config.yaml"
    result = ensure_global_config(global_config_path=target)

    assert result == target
    parsed = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert parsed["indexing"] == {"chunk_tokens": 600, "overlap_tokens": 80}
    assert parsed["retrieval"] == {"limit": 8}
    assert parsed["context"] == {"token_cap": 4000}


def test_ensure_global_config_is_loadable(tmp_path: Path) -> None:
    target = tmp_path / ".quarry" / "config.yaml"
    ensure_global_config(global_config_path=target)
    assert _load(tmp_path, target) == QuarryConfig()


def test_ensure_global_config_file_mode(tmp_path: Path) -> None:
    target = tmp_path / ".quarry" / "config.yaml"
    ensure_global_config(global_config_path=target)

    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    assert stat.S_IMODE(target.parent.stat().st_mode) == 0o700


def test_ensure_global_config_idempotent(tmp_path: Path) -> None:
    """Calling ensure_global_config twice does not overwrite existing file."""
    target = tmp_path / ".quarry" / "config.yaml"
    ensure_global_config(global_config_path=target)
    target.write_text("# custom\nretrieval:\n  limit: 3\n", encoding="utf-8")

    ensure_global_config(global_config_path=target)
    assert "limit: 3" in target.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# yaml.safe_load enforcement
# ---------------------------------------------------------------------------


def test_config_does_not_execute_python_tags(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("!!python/object/apply:os.system ['echo pwned']\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        _load(tmp_path, global_cfg)
