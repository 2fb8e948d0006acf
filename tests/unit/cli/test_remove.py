"""Tests for quarry remove command."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from quarry.cli.main import app
from quarry.ingest.indexer import Indexer
from quarry.sources import add_file_source
from quarry.workspace import open_workspace

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def seeded(tmp_path: Path) -> tuple[Path, str]:
    db_path = tmp_path / ".quarry.db"
    with open_workspace(db_path) as ws:
        source = add_file_source(ws, b"datasheet contents", "datasheet.txt")
        Indexer(ws).index_source(source.id)
    return db_path, source.id


def _archived(db_path: Path, source_id: str) -> bool:
    with open_workspace(db_path) as ws:
        return ws.repo.get_source(source_id).archived_at is not None


def test_remove_no_db_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["remove", "abc", "--db", str(tmp_path / "missing.db"), "--yes"])
    assert result.exit_code == 1
    assert "quarry init" in result.output


def test_remove_unknown_source_exits_0(seeded: tuple[Path, str]) -> None:
    db_path, _ = seeded
    result = runner.invoke(app, ["remove", "no-such-id", "--db", str(db_path), "--yes"])
    assert result.exit_code == 0
    assert "Source not found" in result.output


def test_remove_with_yes(seeded: tuple[Path, str]) -> None:
    db_path, source_id = seeded
    result = runner.invoke(app, ["remove", source_id, "--db", str(db_path), "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed: datasheet.txt" in result.output
    assert "1 chunks" in result.output
    assert _archived(db_path, source_id)
    with open_workspace(db_path) as ws:
        assert ws.repo.count_chunks_by_source(source_id) == 0


def test_remove_confirm_declined(seeded: tuple[Path, str]) -> None:
    db_path, source_id = seeded
    result = runner.invoke(app, ["remove", source_id, "--db", str(db_path)], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled." in result.output
    assert not _archived(db_path, source_id)


def test_remove_confirm_accepted(seeded: tuple[Path, str]) -> None:
    db_path, source_id = seeded
    result = runner.invoke(app, ["remove", source_id, "--db", str(db_path)], input="y\n")
    assert result.exit_code == 0, result.output
    assert _archived(db_path, source_id)


def test_remove_twice_reports_not_found(seeded: tuple[Path, str]) -> None:
    db_path, source_id = seeded
    runner.invoke(app, ["remove", source_id, "--db", str(db_path), "--yes"])
    result = runner.invoke(app, ["remove", source_id, "--db", str(db_path), "--yes"])
    assert "Source not found" in result.output
