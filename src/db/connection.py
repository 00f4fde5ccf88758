"""Engine and session handling for the ShipBatch state database.

The URL is resolved once at import time:

    DATABASE_URL  >  SHIPBATCH_DB_PATH  >  database.url in shipbatch.yaml
                  >  sqlite:///<user data dir>/shipbatch.db

Routes take a session through ``Depends(get_db)`` and commit themselves;
the CLI wraps each command in ``get_db_context()``.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base


def _url_from_db_path(db_path: str) -> str:
    # SHIPBATCH_DB_PATH may already be a URL
    return db_path if db_path.startswith("sqlite:") else f"sqlite:///{db_path}"


def get_database_url() -> str:
    """Resolve the database URL from the environment, config file or data dir."""
    for env_name, convert in (
        ("DATABASE_URL", str),
        ("SHIPBATCH_DB_PATH", _url_from_db_path),
    ):
        value = os.environ.get(env_name, "").strip()
        if value:
            return convert(value)

    from src.config import load_config

    configured = load_config().database.url
    if configured:
        return configured

    from src.utils.paths import ensure_dirs_exist, get_default_db_path

    ensure_dirs_exist()
    return f"sqlite:///{get_default_db_path()}"


def _sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    """Enforce row cascades; file databases also get WAL for API + CLI sharing."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA database_list")
        # In-memory databases report an empty file name
        if any(entry[2] for entry in cursor.fetchall()):
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def create_db_engine(url: str) -> Engine:
    """Create an engine; SQLite engines are shared across threads with pragmas set."""
    if not url.startswith("sqlite"):
        return create_engine(url)

    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(sqlite_engine, "connect", _sqlite_pragmas)
    return sqlite_engine


DATABASE_URL = get_database_url()
engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Session scope for the CLI and scripts.

    Commits when the block exits cleanly and rolls back when it raises.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables; existing tables are left alone."""
    Base.metadata.create_all(bind=engine)


def close_db() -> None:
    """Dispose of the engine's connection pool."""
    engine.dispose()
