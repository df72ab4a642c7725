"""SQLite database engine and schema via SQLAlchemy Core."""

from quire.infrastructure.database.engine import create_db_engine, init_database
from quire.infrastructure.database.schema import (
    containers,
    metadata,
    notes,
    notes_index,
    templates,
)

__all__ = [
    "containers",
    "create_db_engine",
    "init_database",
    "metadata",
    "notes",
    "notes_index",
    "templates",
]
