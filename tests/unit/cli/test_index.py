"""Tests for quarry index command."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from quarry.cli.main import app
from quarry.db.models import IndexStatus
from quarry.sources import add_file_source, add_note_source
from quarry.workspace import open_workspace

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / ".quarry.db"
    open_workspace(path).close()
    return path


def _seed(db_path: Path, *docs: tuple[str, bytes]) -> list[str]:
    with open_workspace(db_path) as ws:
        return [add_file_source(ws, data, name).id for name, data in docs]


def _status(db_path: Path, source_id: str) -> IndexStatus:
    with open_workspace(db_path) as ws:
        return ws.repo.get_source(source_id).index_status


def test_index_requires_exactly_one_target(db_path: Path) -> None:
    result = runner.invoke(app, ["index", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "--all" in result.output

    result = runner.invoke(app, ["index", "abc", "--all", "--db", str(db_path)])
    assert result.exit_code == 1


def test_index_unknown_source_exits_1(db_path: Path) -> None:
    result = runner.invoke(app, ["index", "no-such-id", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Source not found" in result.output


def test_index_no_db_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["index", "--all", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "quarry init" in result.output


def test_index_single_source(db_path: Path) -> None:
    (source_id,) = _seed(db_path, ("doc.txt", b"indexable words"))
    result = runner.invoke(app, ["index", source_id, "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "ready" in result.output
    assert _status(db_path, source_id) == IndexStatus.READY


def test_index_note_source_by_id(db_path: Path) -> None:
    with open_workspace(db_path) as ws:
        source_id = add_note_source(ws, "a note").id
    result = runner.invoke(app, ["index", source_id, "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert _status(db_path, source_id) == IndexStatus.READY


def test_index_force_rebuilds_chunks(db_path: Path) -> None:
    (source_id,) = _seed(db_path, ("doc.txt", b"indexable words"))
    runner.invoke(app, ["index", source_id, "--db", str(db_path)])
    with open_workspace(db_path) as ws:
        before = [c.id for c in ws.repo.list_chunks(source_id)]

    runner.invoke(app, ["index", source_id, "--db", str(db_path)])
    with open_workspace(db_path) as ws:
        assert [c.id for c in ws.repo.list_chunks(source_id)] == before

    result = runner.invoke(app, ["index", source_id, "--force", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    with open_workspace(db_path) as ws:
        assert [c.id for c in ws.repo.list_chunks(source_id)] != before


def test_index_single_failure_exits_1(db_path: Path) -> None:
    (source_id,) = _seed(db_path, ("blank.txt", b"   "))
    result = runner.invoke(app, ["index", source_id, "--db", str(db_path)])

    assert result.exit_code == 1
    assert "Indexing failed" in result.output
    assert _status(db_path, source_id) == IndexStatus.ERROR


def test_index_all_reports_counts(db_path: Path) -> None:
    good, bad = _seed(db_path, ("good.txt", b"good content"), ("bad.txt", b"bad content"))
    with open_workspace(db_path) as ws:
        ws.blobs.delete(ws.repo.get_source(bad).blob_id)

    result = runner.invoke(app, ["index", "--all", "--db", str(db_path)])

    assert result.exit_code == 1
    assert "1 indexed, 1 failed" in result.output
    assert _status(db_path, good) == IndexStatus.READY
    assert _status(db_path, bad) == IndexStatus.ERROR


def test_index_all_success(db_path: Path) -> None:
    _seed(db_path, ("a.txt", b"alpha"), ("b.txt", b"beta"))
    result = runner.invoke(app, ["index", "--all", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert "2 indexed, 0 failed" in result.output
