"""Workspace — the single dependency injected into every service.

A workspace owns one SQLite engine, the note file store, the metadata
index and a foreground :class:`EntityContext`. Background work (snapshots,
bulk maintenance) runs against contexts from :meth:`Workspace.new_context`;
commits made there merge into the foreground context automatically.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from quire.infrastructure.context import ContextRegistry, EntityContext
from quire.infrastructure.database.engine import init_database
from quire.infrastructure.filesystem import NoteFileStore
from quire.infrastructure.index import NotesIndex

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from quire.config.settings import QuireSettings

logger = logging.getLogger(__name__)


class Workspace:
    """Repository encapsulating database, file store, index and contexts.

    Services receive the Workspace via their :class:`BaseService`
    constructor.
    """

    def __init__(self, settings: QuireSettings) -> None:
        self._settings = settings
        root = Path(settings.root)
        root.mkdir(parents=True, exist_ok=True)

        self._store = NoteFileStore(
            root,
            trash_folder=settings.store.trash_folder,
            extension=settings.store.extension,
        )
        self._engine: Engine = init_database(
            root,
            data_dir=settings.store.data_dir,
            filename=settings.index.filename,
        )
        self._index = NotesIndex(self._engine)
        self._registry = ContextRegistry()
        self._context = EntityContext(self._engine, name="foreground", registry=self._registry)
        self._background_count = 0
        logger.debug("Opened workspace at %s", self._store.root)

    @property
    def root(self) -> Path:
        """The note root directory."""
        return self._store.root

    @property
    def settings(self) -> QuireSettings:
        return self._settings

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def store(self) -> NoteFileStore:
        return self._store

    @property
    def index(self) -> NotesIndex:
        return self._index

    @property
    def context(self) -> EntityContext:
        """The foreground context (the one user edits go through)."""
        return self._context

    def new_context(self, name: str | None = None) -> EntityContext:
        """An isolated background context sharing this workspace's engine."""
        self._background_count += 1
        return EntityContext(
            self._engine,
            name=name or f"background-{self._background_count}",
            registry=self._registry,
        )

    def close(self) -> None:
        """Release pooled database connections."""
        self._engine.dispose()
