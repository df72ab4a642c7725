"""Database engine setup for SQLite with WAL mode.

The DB lives at ``{root}/.quire/quire.db``. WAL mode lets a background
context read while the foreground context writes.

SQLAlchemy Core (not ORM) is used; unit-of-work bookkeeping lives in
:class:`quire.infrastructure.context.EntityContext`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from quire.infrastructure.database.schema import metadata

DATA_DIR = ".quire"
DB_FILENAME = "quire.db"


def create_db_engine(db_path: Path) -> Engine:
    """Create a SQLite engine with WAL mode enabled."""
    engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return engine


def init_database(root: Path, *, data_dir: str = DATA_DIR, filename: str = DB_FILENAME) -> Engine:
    """Initialize the database at ``{root}/{data_dir}/{filename}``.

    Creates the data directory and all tables from :data:`schema.metadata`.
    Idempotent; safe to call on an existing store.
    """
    db_dir = root / data_dir
    db_dir.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(db_dir / filename)
    metadata.create_all(engine)
    return engine
