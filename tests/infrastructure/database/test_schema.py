"""Tests for database schema definitions."""

import pytest
from sqlalchemy import create_engine, insert, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from quire.infrastructure.database.schema import metadata, notes, notes_index


def _in_memory_engine() -> Engine:
    engine = create_engine("sqlite:///:memory:")
    metadata.create_all(engine)
    return engine


def _index_row(uuid: str, path: str) -> dict[str, object]:
    return {
        "uuid": uuid,
        "title": "T",
        "created": "2025-01-01T00:00:00.000+00:00",
        "modified": "2025-01-01T00:00:00.000+00:00",
        "path": path,
        "filename": path.rsplit("/", 1)[-1],
    }


class TestSchemaCreation:
    def test_all_tables_created(self) -> None:
        names = set(inspect(_in_memory_engine()).get_table_names())
        assert names == {"notes_index", "notes", "containers", "templates"}

    def test_entity_tables_carry_version(self) -> None:
        inspector = inspect(_in_memory_engine())
        for table in ("notes", "containers", "templates"):
            columns = {col["name"] for col in inspector.get_columns(table)}
            assert "version" in columns

    def test_index_defaults(self) -> None:
        engine = _in_memory_engine()
        with engine.begin() as conn:
            conn.execute(insert(notes_index).values(**_index_row("A", "a.md")))
            row = conn.execute(notes_index.select()).mappings().one()
        assert row["tags"] == "[]"
        assert row["status"] == "draft"
        assert row["folder_path"] is None

    def test_note_version_defaults_to_one(self) -> None:
        engine = _in_memory_engine()
        with engine.begin() as conn:
            conn.execute(insert(notes).values(id="N"))
            row = conn.execute(notes.select()).mappings().one()
        assert row["version"] == 1
        assert row["is_trashed"] == 0


class TestConstraints:
    def test_index_path_unique(self) -> None:
        engine = _in_memory_engine()
        with pytest.raises(IntegrityError), engine.begin() as conn:
            conn.execute(insert(notes_index).values(**_index_row("A", "same.md")))
            conn.execute(insert(notes_index).values(**_index_row("B", "same.md")))
