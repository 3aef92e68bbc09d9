"""Unit tests for database session helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from config import settings
from services import database


@pytest.fixture(autouse=True)
def _reset_engine(monkeypatch) -> None:
    """Drop cached engines between tests."""
    monkeypatch.setattr(database, "_sync_engine", None)
    monkeypatch.setattr(database, "_sync_session_factory", None)


def test_get_database_url_reads_settings(monkeypatch) -> None:
    """The URL comes from the database settings section."""
    monkeypatch.setattr(settings.database, "url", "sqlite:///tmp/example.db")

    assert database.get_database_url() == "sqlite:///tmp/example.db"


def test_sqlite_directory_is_created(tmp_path: Path) -> None:
    """File-backed SQLite URLs get their parent directory created."""
    target = tmp_path / "nested" / "store.db"

    database._ensure_sqlite_directory(f"sqlite:///{target}")

    assert target.parent.is_dir()


def test_non_file_urls_are_left_alone(tmp_path: Path) -> None:
    """Memory and server URLs do not touch the filesystem."""
    database._ensure_sqlite_directory("sqlite:///:memory:")
    database._ensure_sqlite_directory("postgresql://db/expenses")

    assert list(tmp_path.iterdir()) == []


def test_session_factory_is_cached(monkeypatch, tmp_path: Path) -> None:
    """The engine is built once and sessions bind to it."""
    monkeypatch.setattr(settings.database, "url", f"sqlite:///{tmp_path / 'store.db'}")

    first = database.get_sync_session()
    second = database.get_sync_session()
    try:
        assert first is not second
        assert first.get_bind() is second.get_bind() is database.get_sync_engine()
    finally:
        first.close()
        second.close()
