"""Tests for quarry add command."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from quarry.cli.main import app
from quarry.db.models import IndexStatus
from quarry.workspace import open_workspace

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / ".quarry.db"
    result = runner.invoke(app, ["init", "--db", str(path)])
    assert result.exit_code == 0, result.output
    return path


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Argument errors
# ---------------------------------------------------------------------------


def test_add_nothing_exits_1(db_path: Path) -> None:
    result = runner.invoke(app, ["add", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Nothing to add" in result.output


def test_add_missing_file_exits_1(db_path: Path, tmp_path: Path) -> None:
    result = runner.invoke(app, ["add", "-s", str(tmp_path / "nope.pdf"), "--db", str(db_path)])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_add_no_db_exits_1(tmp_path: Path) -> None:
    doc = _write(tmp_path, "doc.txt", "content")
    result = runner.invoke(app, ["add", "-s", str(doc), "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "quarry init" in result.output


def test_add_invalid_scope_exits_1(db_path: Path) -> None:
    result = runner.invoke(app, ["add", "--note", "x", "--scope-type", "galaxy", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "scope_type" in result.output
    with open_workspace(db_path) as ws:
        assert ws.repo.list_sources() == []


# ---------------------------------------------------------------------------
# Adding and indexing
# ---------------------------------------------------------------------------


def test_add_file_indexes_it(db_path: Path, tmp_path: Path) -> None:
    doc = _write(tmp_path, "runbook.md", "# Restart\n\nRestart the ingest worker with systemctl.")
    result = runner.invoke(app, ["add", "-s", str(doc), "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "Added runbook.md" in result.output
    assert "ready (1 chunks)" in result.output
    with open_workspace(db_path) as ws:
        (source,) = ws.repo.list_sources()
        assert source.name == "runbook.md"
        assert source.index_status == IndexStatus.READY
        assert ws.repo.count_chunks_by_source(source.id) == 1


def test_add_multiple_files_with_notes_and_scope(db_path: Path, tmp_path: Path) -> None:
    a = _write(tmp_path, "a.txt", "first")
    b = _write(tmp_path, "b.txt", "second")
    result = runner.invoke(
        app,
        [
            "add", "-s", str(a), "-s", str(b),
            "--notes", "from the ops wiki",
            "--scope-type", "channel", "--scope-id", "ops",
            "--db", str(db_path),
        ],
    )

    assert result.exit_code == 0, result.output
    with open_workspace(db_path) as ws:
        sources = ws.repo.list_sources()
        assert len(sources) == 2
        for s in sources:
            assert (s.scope_type, s.scope_id) == ("channel", "ops")
            assert ws.repo.get_source_text(s.id).text.endswith("Notes:\nfrom the ops wiki")


def test_add_note(db_path: Path) -> None:
    result = runner.invoke(app, ["add", "--note", "VPN rotates every 90 days.", "--name", "vpn", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    with open_workspace(db_path) as ws:
        (source,) = ws.repo.list_sources()
        assert source.kind == "text"
        assert source.name == "vpn"
        assert ws.repo.get_source_text(source.id).text == "Notes:\nVPN rotates every 90 days."


def test_add_no_index_leaves_pending(db_path: Path, tmp_path: Path) -> None:
    doc = _write(tmp_path, "later.txt", "index me later")
    result = runner.invoke(app, ["add", "-s", str(doc), "--no-index", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "--no-index" in result.output
    with open_workspace(db_path) as ws:
        (source,) = ws.repo.list_sources()
        assert source.index_status == IndexStatus.PENDING
        assert ws.repo.count_chunks_by_source(source.id) == 0


def test_add_blank_file_reports_failure(db_path: Path, tmp_path: Path) -> None:
    doc = _write(tmp_path, "blank.txt", "   \n")
    result = runner.invoke(app, ["add", "-s", str(doc), "--db", str(db_path)])

    assert result.exit_code == 1
    assert "Indexing failed" in result.output
    with open_workspace(db_path) as ws:
        (source,) = ws.repo.list_sources()
        assert source.index_status == IndexStatus.ERROR
        assert source.index_error == "No text could be extracted."


def test_add_respects_configured_chunk_size(db_path: Path, tmp_path: Path) -> None:
    (tmp_path / "quarry.yaml").write_text(
        "indexing:\n  chunk_tokens: 5\n  overlap_tokens: 0\n", encoding="utf-8"
    )
    doc = _write(tmp_path, "long.txt", " ".join(f"word{i}" for i in range(30)))
    result = runner.invoke(app, ["add", "-s", str(doc), "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    with open_workspace(db_path) as ws:
        (source,) = ws.repo.list_sources()
        chunks = ws.repo.list_chunks(source.id)
        assert len(chunks) > 1
        assert all(c.token_count <= 5 for c in chunks)
