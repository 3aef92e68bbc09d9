"""Database engine and session management for the key-value store."""

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import settings

logger = logging.getLogger(__name__)

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker | None = None


def get_database_url() -> str:
    """Return the configured database URL."""
    return settings.database.url


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite:///"
    if not url.startswith(prefix) or url.endswith(":memory:"):
        return
    Path(url[len(prefix):]).expanduser().parent.mkdir(parents=True, exist_ok=True)


def get_sync_engine() -> Engine:
    global _sync_engine
    if _sync_engine is None:
        url = get_database_url()
        _ensure_sqlite_directory(url)
        _sync_engine = create_engine(url, pool_pre_ping=True)
    return _sync_engine


def get_sync_session() -> Session:
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(bind=get_sync_engine())
    return _sync_session_factory()


def _run_migrations() -> None:
    alembic_ini = Path(__file__).resolve().parents[2] / "alembic.ini"
    alembic_cfg = Config(str(alembic_ini))
    alembic_cfg.set_main_option("sqlalchemy.url", get_database_url())
    command.upgrade(alembic_cfg, "head")


def run_migrations_sync() -> None:
    """Run database migrations synchronously."""
    _ensure_sqlite_directory(get_database_url())
    _run_migrations()
    logger.info("Database migrations applied")
