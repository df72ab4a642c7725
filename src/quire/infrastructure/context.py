"""EntityContext — a unit of work over notes, containers and templates.

Each context keeps an identity map of loaded entities plus the persisted
state they were loaded with, so it can tell which entities are dirty,
undo in-memory edits, and write every change in one transaction.

Commit discipline (:meth:`EntityContext.save`):

1. Every pending insert and update is validated; any failure raises
   :class:`~quire.domain.errors.EntityValidationError` before anything is
   written.
2. All changes go through a single ``engine.begin()`` transaction. Updates
   are guarded by the row ``version``; a mismatch raises
   :class:`~quire.domain.errors.MergeConflictError` and rolls the whole
   transaction back.
3. After commit, sibling contexts sharing the same
   :class:`ContextRegistry` merge the committed rows into their clean
   entities. Dirty entities keep their edits (and will conflict on save).
"""

from __future__ import annotations

import json
import logging
import threading
import weakref
from collections.abc import Callable
from dataclasses import fields
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from quire.domain.entities import Container, Entity, Note, Template
from quire.domain.errors import EntityValidationError, MergeConflictError
from quire.domain.validation import MISSING_ID, validate_entity
from quire.infrastructure.database.schema import containers, notes, templates

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

E = TypeVar("E", Note, Container, Template)
T = TypeVar("T")

_Key = tuple[type, str]
# (entity type, id, committed row or None when deleted)
_Change = tuple[type, str, dict[str, Any] | None]

_TABLES: dict[type, Table] = {Note: notes, Container: containers, Template: templates}
_DATETIME_FIELDS = frozenset({"created_at", "modified_at"})
_BOOL_FIELDS = frozenset({"is_trashed", "is_favorite"})
_LIST_FIELDS = frozenset({"tags"})


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def entity_to_row(entity: Entity) -> dict[str, Any]:
    """Flatten *entity* into column values."""
    row: dict[str, Any] = {}
    for f in fields(entity):
        value = getattr(entity, f.name)
        if f.name in _DATETIME_FIELDS and value is not None:
            value = value.isoformat(timespec="milliseconds")
        elif f.name in _BOOL_FIELDS:
            value = int(bool(value))
        elif f.name in _LIST_FIELDS:
            value = json.dumps(list(value or []))
        row[f.name] = value
    return row


def row_to_values(cls: type, row: dict[str, Any]) -> dict[str, Any]:
    """Inverse of :func:`entity_to_row`: column values to field values."""
    values: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in row:
            continue
        value = row[f.name]
        if f.name in _DATETIME_FIELDS and value is not None:
            value = datetime.fromisoformat(value)
        elif f.name in _BOOL_FIELDS:
            value = bool(value)
        elif f.name in _LIST_FIELDS:
            value = json.loads(value or "[]")
        values[f.name] = value
    return values


def _apply(entity: Entity, values: dict[str, Any]) -> None:
    for name, value in values.items():
        setattr(entity, name, value)


# ---------------------------------------------------------------------------
# Change propagation between contexts
# ---------------------------------------------------------------------------


class ContextRegistry:
    """Tracks live contexts over one engine and fans out committed changes."""

    def __init__(self) -> None:
        self._contexts: weakref.WeakSet[EntityContext] = weakref.WeakSet()
        self._lock = threading.Lock()

    def register(self, context: EntityContext) -> None:
        with self._lock:
            self._contexts.add(context)

    def publish(self, source: EntityContext, changes: list[_Change]) -> None:
        with self._lock:
            targets = [ctx for ctx in self._contexts if ctx is not source]
        for ctx in targets:
            ctx.merge_changes(changes)


# ---------------------------------------------------------------------------
# EntityContext
# ---------------------------------------------------------------------------


class EntityContext:
    """Identity map and unit of work over the entity tables."""

    def __init__(
        self,
        engine: Engine,
        *,
        name: str = "foreground",
        registry: ContextRegistry | None = None,
    ) -> None:
        self._engine = engine
        self.name = name
        self._registry = registry or ContextRegistry()
        self._registry.register(self)
        self._lock = threading.RLock()
        self._identity: dict[_Key, Entity] = {}
        self._snapshots: dict[_Key, dict[str, Any]] = {}
        self._new: set[_Key] = set()
        self._deleted: set[_Key] = set()

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def add(self, entity: E) -> E:
        """Register a new entity for insertion on the next save."""
        if not entity.id:
            msg = f"{type(entity).__name__} needs an id before it can be tracked"
            raise EntityValidationError(MISSING_ID, msg)
        key = (type(entity), entity.id)
        with self._lock:
            if key in self._identity and self._identity[key] is not entity:
                msg = f"{type(entity).__name__} {entity.id} is already tracked"
                raise ValueError(msg)
            self._identity[key] = entity
            if key not in self._snapshots:
                self._new.add(key)
            self._deleted.discard(key)
        return entity

    def delete(self, entity: Entity) -> None:
        """Mark *entity* for deletion on the next save."""
        key = (type(entity), entity.id or "")
        with self._lock:
            if key in self._new:
                self._new.discard(key)
                self._identity.pop(key, None)
            elif key in self._identity:
                self._deleted.add(key)

    def is_dirty(self, entity: Entity) -> bool:
        key = (type(entity), entity.id or "")
        with self._lock:
            return key in self._new or key in self._deleted or self._changed(key, entity)

    @property
    def has_changes(self) -> bool:
        with self._lock:
            if self._new or self._deleted:
                return True
            return any(self._changed(key, entity) for key, entity in self._identity.items())

    def _changed(self, key: _Key, entity: Entity) -> bool:
        snapshot = self._snapshots.get(key)
        return snapshot is None or entity_to_row(entity) != snapshot

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def get_note(self, note_id: str) -> Note | None:
        return self._get(Note, note_id)

    def get_container(self, container_id: str) -> Container | None:
        return self._get(Container, container_id)

    def get_template(self, template_id: str) -> Template | None:
        return self._get(Template, template_id)

    def notes(self) -> list[Note]:
        return self._all(Note, notes.c.sort_order)

    def containers(self) -> list[Container]:
        return self._all(Container, containers.c.sort_order)

    def templates(self) -> list[Template]:
        return self._all(Template, templates.c.sort_order)

    def notes_in_container(self, container_id: str | None) -> list[Note]:
        return [note for note in self.notes() if note.container_id == container_id]

    def _get(self, cls: type[E], entity_id: str) -> E | None:
        key = (cls, entity_id)
        with self._lock:
            if key in self._deleted:
                return None
            if key in self._identity:
                return self._identity[key]  # type: ignore[return-value]
            table = _TABLES[cls]
            with self._engine.connect() as conn:
                row = conn.execute(select(table).where(table.c.id == entity_id)).mappings().first()
            if row is None:
                return None
            return self._materialize(cls, dict(row))  # type: ignore[return-value]

    def _all(self, cls: type[E], order: Any) -> list[E]:
        table = _TABLES[cls]
        with self._lock:
            with self._engine.connect() as conn:
                rows = conn.execute(select(table).order_by(order, table.c.id)).mappings().all()
            loaded = [self._materialize(cls, dict(row)) for row in rows]
            pending = [self._identity[key] for key in sorted(self._new, key=str) if key[0] is cls]
            return [e for e in [*loaded, *pending] if (cls, e.id) not in self._deleted]  # type: ignore[misc]

    def _materialize(self, cls: type, row: dict[str, Any]) -> Entity:
        key = (cls, row["id"])
        existing = self._identity.get(key)
        if existing is not None:
            return existing
        entity = cls(**row_to_values(cls, row))
        self._identity[key] = entity
        self._snapshots[key] = entity_to_row(entity)
        return entity

    # ------------------------------------------------------------------
    # Container hierarchy
    # ------------------------------------------------------------------

    def ancestors(self, container_id: str | None) -> list[Container]:
        """Leaf-to-root container chain starting at *container_id*.

        The walk stops at a missing parent or a repeated id, so a corrupt
        cycle in stored data cannot loop forever.
        """
        chain: list[Container] = []
        visited: set[str] = set()
        current = container_id
        while current is not None and current not in visited:
            visited.add(current)
            container = self.get_container(current)
            if container is None:
                break
            chain.append(container)
            current = container.parent_id
        return chain

    def _parent_of(self, container_id: str) -> str | None:
        container = self.get_container(container_id)
        return container.parent_id if container is not None else None

    def _container_count(self) -> int:
        with self._engine.connect() as conn:
            stored = int(conn.execute(select(func.count(containers.c.id))).scalar_one() or 0)
        return stored + sum(1 for key in self._new if key[0] is Container)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _pending(self) -> tuple[list[Entity], list[Entity], list[Entity]]:
        inserts = [self._identity[key] for key in sorted(self._new, key=str)]
        updates = [
            entity
            for key, entity in self._identity.items()
            if key not in self._new and key not in self._deleted and self._changed(key, entity)
        ]
        deletes = [self._identity[key] for key in self._deleted]
        return inserts, updates, deletes

    def _validate(self, entities: list[Entity]) -> None:
        if not entities:
            return
        limit = self._container_count()
        for entity in entities:
            validate_entity(entity, self._parent_of, limit=limit)

    def validate_pending(self) -> None:
        """Run commit validation over pending inserts and updates without writing.

        Callers that touch files before :meth:`save` use this to fail early.
        Repairs (blank titles and names) are applied in place, as in
        :meth:`save`.

        Raises:
            EntityValidationError: A pending entity cannot be committed.
        """
        with self._lock:
            inserts, updates, _ = self._pending()
            self._validate([*inserts, *updates])

    def save(self) -> None:
        """Validate and commit all pending changes in one transaction.

        Raises:
            EntityValidationError: Nothing was written.
            MergeConflictError: Another context updated a row first.
            SQLAlchemyError: The transaction rolled back.
        """
        with self._lock:
            inserts, updates, deletes = self._pending()
            if not (inserts or updates or deletes):
                return

            self._validate([*inserts, *updates])

            changes: list[_Change] = []
            versions: dict[_Key, int] = {}
            with self._engine.begin() as conn:
                for entity in inserts:
                    row = {**entity_to_row(entity), "version": 1}
                    conn.execute(insert(_TABLES[type(entity)]).values(**row))
                    versions[(type(entity), entity.id)] = 1  # type: ignore[index]
                    changes.append((type(entity), entity.id, row))  # type: ignore[arg-type]
                for entity in updates:
                    table = _TABLES[type(entity)]
                    row = {**entity_to_row(entity), "version": entity.version + 1}
                    result = conn.execute(
                        update(table)
                        .where(table.c.id == entity.id, table.c.version == entity.version)
                        .values(**row)
                    )
                    if result.rowcount != 1:
                        raise MergeConflictError(entity.id or "", entity.version)
                    versions[(type(entity), entity.id)] = entity.version + 1  # type: ignore[index]
                    changes.append((type(entity), entity.id, row))  # type: ignore[arg-type]
                for entity in deletes:
                    table = _TABLES[type(entity)]
                    conn.execute(delete(table).where(table.c.id == entity.id))
                    changes.append((type(entity), entity.id, None))  # type: ignore[arg-type]

            for key, version in versions.items():
                entity = self._identity[key]
                entity.version = version
                self._snapshots[key] = entity_to_row(entity)
            for key in self._deleted:
                self._identity.pop(key, None)
                self._snapshots.pop(key, None)
            self._new.clear()
            self._deleted.clear()

        logger.debug(
            "Context %s committed %d insert(s), %d update(s), %d delete(s)",
            self.name,
            len(inserts),
            len(updates),
            len(deletes),
        )
        self._registry.publish(self, changes)

    def safe_save(self, operation: str = "save") -> bool:
        """Commit, reporting failure as ``False`` instead of raising.

        A validation failure leaves pending changes in place. A failed write
        (conflict or database error) also rolls back every in-memory change.
        """
        if not self.has_changes:
            return True
        try:
            self.save()
        except EntityValidationError as exc:
            logger.error("Validation failed during %s: [%s] %s", operation, exc.code, exc.message)
            return False
        except (MergeConflictError, SQLAlchemyError):
            logger.error("Failed to save context for %s", operation, exc_info=True)
            self.rollback()
            return False
        logger.debug("Saved context for %s", operation)
        return True

    def safe_perform(self, operation: str, block: Callable[[], T]) -> T | None:
        """Run *block* then :meth:`safe_save`; roll back on any failure."""
        try:
            result = block()
        except Exception:
            logger.error("Operation %r failed", operation, exc_info=True)
            self.rollback()
            return None
        if not self.safe_save(operation):
            self.rollback()
            return None
        return result

    # ------------------------------------------------------------------
    # Undo and refresh
    # ------------------------------------------------------------------

    def rollback(self) -> None:
        """Discard every uncommitted in-memory change."""
        with self._lock:
            for key in self._new:
                self._identity.pop(key, None)
            self._new.clear()
            self._deleted.clear()
            for key, entity in self._identity.items():
                snapshot = self._snapshots.get(key)
                if snapshot is not None and entity_to_row(entity) != snapshot:
                    _apply(entity, row_to_values(type(entity), snapshot))

    def refresh(self, entity: Entity) -> bool:
        """Reload *entity* from its committed row, discarding local edits.

        Returns ``False`` when no committed row exists.
        """
        table = _TABLES[type(entity)]
        key = (type(entity), entity.id or "")
        with self._engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == entity.id)).mappings().first()
        if row is None:
            return False
        with self._lock:
            values = row_to_values(type(entity), dict(row))
            _apply(entity, values)
            self._identity[key] = entity
            self._snapshots[key] = entity_to_row(entity)
            self._new.discard(key)
            self._deleted.discard(key)
        return True

    def merge_changes(self, changes: list[_Change]) -> None:
        """Apply rows committed by a sibling context to clean entities."""
        with self._lock:
            for cls, entity_id, row in changes:
                key = (cls, entity_id)
                entity = self._identity.get(key)
                if entity is None or key in self._new or key in self._deleted:
                    continue
                if self._changed(key, entity):
                    continue
                if row is None:
                    self._identity.pop(key, None)
                    self._snapshots.pop(key, None)
                    continue
                _apply(entity, row_to_values(cls, row))
                self._snapshots[key] = entity_to_row(entity)
