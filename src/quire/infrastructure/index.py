"""Identity-keyed metadata index over ``notes_index``.

The index is a cache: every row is derived from a note file and
:meth:`NotesIndex.rebuild` re-derives the whole table from disk. Lookup
failures are cache misses (``None`` or empty results), never errors, and
write failures are logged and reported as ``False``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy import delete, func, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from quire.domain.errors import IndexLookupError
from quire.domain.metadata import NoteMetadata
from quire.infrastructure.database.schema import notes_index

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.engine import Engine

    from quire.infrastructure.filesystem import NoteFileStore

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = frozenset({"title", "created", "modified", "path"})


@dataclass(frozen=True)
class RebuildReport:
    """Outcome of :meth:`NotesIndex.rebuild`."""

    indexed: int = 0
    skipped: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def metadata_to_row(metadata: NoteMetadata) -> dict[str, Any]:
    """Flatten *metadata* into a ``notes_index`` row."""
    return {
        "uuid": metadata.uuid,
        "title": metadata.title,
        "tags": json.dumps(metadata.tags),
        "created": metadata.created.isoformat(timespec="milliseconds"),
        "modified": metadata.modified.isoformat(timespec="milliseconds"),
        "progress": metadata.progress,
        "status": metadata.status,
        "path": metadata.path,
        "folder_path": metadata.folder_path,
        "filename": metadata.filename,
        "word_count": metadata.word_count,
        "char_count": metadata.char_count,
        "content_hash": metadata.content_hash,
        "excerpt": metadata.excerpt,
    }


def row_to_metadata(row: Mapping[str, Any]) -> NoteMetadata:
    """Rebuild :class:`NoteMetadata` from a ``notes_index`` row."""
    return NoteMetadata(
        uuid=row["uuid"],
        title=row["title"],
        tags=json.loads(row["tags"] or "[]"),
        created=datetime.fromisoformat(row["created"]),
        modified=datetime.fromisoformat(row["modified"]),
        progress=row["progress"] or 0.0,
        status=row["status"],
        path=row["path"],
        word_count=row["word_count"],
        char_count=row["char_count"],
        content_hash=row["content_hash"],
        excerpt=row["excerpt"],
    )


# ---------------------------------------------------------------------------
# NotesIndex
# ---------------------------------------------------------------------------


class NotesIndex:
    """Encapsulates SQL for the note metadata cache."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # --- Writes ---

    def upsert_note(self, metadata: NoteMetadata) -> bool:
        """Insert or replace the row for ``metadata.uuid``.

        Idempotent. A stale row recording the same path under a different
        identity is evicted first.
        """
        if metadata.path is None:
            logger.warning("Not indexing note %s without a path", metadata.uuid)
            return False

        row = metadata_to_row(metadata)
        stmt = sqlite_insert(notes_index).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[notes_index.c.uuid],
            set_={key: value for key, value in row.items() if key != "uuid"},
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    delete(notes_index).where(
                        notes_index.c.path == metadata.path,
                        notes_index.c.uuid != metadata.uuid,
                    )
                )
                conn.execute(stmt)
        except SQLAlchemyError:
            logger.warning("Failed to index note %s", metadata.uuid, exc_info=True)
            return False
        return True

    def delete_note(self, uuid: str) -> bool:
        return self._delete(notes_index.c.uuid == uuid)

    def delete_path(self, path: str) -> bool:
        return self._delete(notes_index.c.path == path)

    def clear(self) -> bool:
        return self._delete(None)

    def _delete(self, condition: Any) -> bool:
        stmt = delete(notes_index)
        if condition is not None:
            stmt = stmt.where(condition)
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError:
            logger.warning("Failed to delete index rows", exc_info=True)
            return False
        return True

    # --- Lookups ---

    def get_note(self, uuid: str) -> NoteMetadata | None:
        results = self._select(select(notes_index).where(notes_index.c.uuid == uuid))
        return results[0] if results else None

    def get_note_by_path(self, path: str) -> NoteMetadata | None:
        results = self._select(select(notes_index).where(notes_index.c.path == path))
        return results[0] if results else None

    def all_notes(self, sort_by: str = "modified", *, ascending: bool = False) -> list[NoteMetadata]:
        """Every indexed note, ordered by *sort_by*."""
        if sort_by not in SORTABLE_COLUMNS:
            msg = f"Cannot sort by {sort_by!r}; expected one of {sorted(SORTABLE_COLUMNS)}"
            raise ValueError(msg)
        column = notes_index.c[sort_by]
        return self._select(select(notes_index).order_by(column.asc() if ascending else column.desc()))

    def notes_in_folder(self, folder: str | None) -> list[NoteMetadata]:
        """Notes directly inside *folder* (``None`` or ``""`` for the root)."""
        stmt = select(notes_index)
        if folder:
            stmt = stmt.where(notes_index.c.folder_path == folder)
        else:
            stmt = stmt.where(notes_index.c.folder_path.is_(None))
        return self._select(stmt.order_by(notes_index.c.filename))

    def notes_with_tag(self, tag: str) -> list[NoteMetadata]:
        sql = text(
            "SELECT DISTINCT notes_index.* FROM notes_index, json_each(notes_index.tags) "
            "WHERE json_each.value = :tag ORDER BY notes_index.modified DESC"
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(sql, {"tag": tag}).mappings().all()
        except SQLAlchemyError:
            logger.debug("Tag lookup failed for %r", tag, exc_info=True)
            return []
        return self._convert(rows)

    def recently_modified(self, limit: int = 20) -> list[NoteMetadata]:
        return self._select(
            select(notes_index).order_by(notes_index.c.modified.desc()).limit(limit)
        )

    def count(self) -> int:
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(select(func.count(notes_index.c.uuid))).scalar_one() or 0)
        except SQLAlchemyError:
            logger.debug("Index count failed", exc_info=True)
            return 0

    def all_tags(self) -> list[str]:
        sql = text(
            "SELECT DISTINCT json_each.value AS tag FROM notes_index, json_each(notes_index.tags) "
            "ORDER BY tag"
        )
        try:
            with self._engine.connect() as conn:
                return [str(row.tag) for row in conn.execute(sql)]
        except SQLAlchemyError:
            logger.debug("Tag listing failed", exc_info=True)
            return []

    def all_folders(self) -> list[str]:
        stmt = (
            select(notes_index.c.folder_path)
            .where(notes_index.c.folder_path.is_not(None))
            .distinct()
            .order_by(notes_index.c.folder_path)
        )
        try:
            with self._engine.connect() as conn:
                return [str(row.folder_path) for row in conn.execute(stmt)]
        except SQLAlchemyError:
            logger.debug("Folder listing failed", exc_info=True)
            return []

    # --- Rebuild ---

    def rebuild(self, store: NoteFileStore) -> RebuildReport:
        """Clear the index and re-derive every row from files on disk.

        Trashed files are indexed too. Files without a usable header are
        skipped; when two files share an identity the first path wins
        (live files are scanned before the trash).
        """
        self.clear()
        indexed = 0
        skipped: list[str] = []
        duplicates: list[str] = []
        seen: set[str] = set()

        for path in [*store.scan_files(), *store.trashed_files()]:
            parsed = store.read_file(path)
            if parsed is None:
                skipped.append(path)
                continue
            metadata, _ = parsed
            if metadata.uuid in seen:
                duplicates.append(path)
                continue
            if self.upsert_note(metadata):
                seen.add(metadata.uuid)
                indexed += 1
            else:
                skipped.append(path)

        logger.info("Rebuilt index: %d indexed, %d skipped", indexed, len(skipped))
        return RebuildReport(indexed=indexed, skipped=skipped, duplicates=duplicates)

    # --- Internals ---

    def _select(self, stmt: Select[Any]) -> list[NoteMetadata]:
        try:
            rows = self._fetch(stmt)
        except IndexLookupError:
            logger.debug("Index lookup failed", exc_info=True)
            return []
        return self._convert(rows)

    def _fetch(self, stmt: Select[Any]) -> list[Mapping[str, Any]]:
        try:
            with self._engine.connect() as conn:
                return list(conn.execute(stmt).mappings().all())
        except SQLAlchemyError as exc:
            msg = "notes_index query failed"
            raise IndexLookupError(msg) from exc

    def _convert(self, rows: list[Mapping[str, Any]] | Any) -> list[NoteMetadata]:
        results: list[NoteMetadata] = []
        for row in rows:
            try:
                results.append(row_to_metadata(row))
            except (ValidationError, ValueError, TypeError):
                logger.debug("Dropping unreadable index row %s", row.get("uuid"))
        return results
