"""Pytest configuration for the Expense Autopilot test suite."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def _ensure_test_env() -> None:
    """Seed required environment variables for tests."""
    os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
    os.environ.setdefault("EXPENSES_BASE_URL", "https://expenses.test/api")
    os.environ.setdefault("EXPENSES_API_TOKEN", "Bearer test-token-0123456789abcdef")
    os.environ.setdefault("SCHEDULER_TIMER_BACKEND", "in_process")
    os.environ.setdefault("NOTIFICATIONS_BACKEND", "log")


_ensure_test_env()

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))
sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from models import Base  # noqa: E402
from storage import MemoryKeyValueStore  # noqa: E402


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    """Return an empty in-memory key-value store."""
    return MemoryKeyValueStore()


@pytest.fixture
def sqlite_session_factory():
    """Return a session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine)
    finally:
        engine.dispose()
