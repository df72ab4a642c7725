"""SnapshotService — serialize the whole library and hand it to an uploader.

A snapshot bundles every container, note (with its body resolved from
whichever tier holds it) and template into one JSON document. Only one
snapshot runs per process at a time; a request arriving while another is
in flight is dropped with a warning.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

import structlog
from pydantic import BaseModel, Field

from quire.domain.metadata import utcnow
from quire.services._helpers import now_compact
from quire.services.base import BaseService
from quire.services.resolver import ContentResolver
from quire.services.result import ServiceResult

if TYPE_CHECKING:
    from quire.infrastructure.context import EntityContext
    from quire.infrastructure.workspace import Workspace

log = structlog.get_logger(__name__)

# Process-wide in-flight flag.
_IN_FLIGHT = threading.Lock()


class Uploader(Protocol):
    def upload(self, name: str, payload: bytes) -> None:
        """Store *payload* under *name*; raise on failure."""
        ...


# ---------------------------------------------------------------------------
# Bundle models
# ---------------------------------------------------------------------------


class ContainerSnapshot(BaseModel):
    model_config = {"frozen": True}

    id: str
    name: str | None = None
    parent_id: str | None = None
    sort_order: int = 0
    created_at: datetime | None = None
    modified_at: datetime | None = None


class NoteSnapshot(BaseModel):
    model_config = {"frozen": True}

    id: str
    title: str | None = None
    content: str = ""
    preview: str | None = None
    file_path: str | None = None
    container_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    word_count: int = 0
    goal_target: int = 0
    is_favorite: bool = False
    is_trashed: bool = False
    sort_order: int = 0
    created_at: datetime | None = None
    modified_at: datetime | None = None


class TemplateSnapshot(BaseModel):
    model_config = {"frozen": True}

    id: str
    name: str | None = None
    content: str = ""
    category: str | None = None
    sort_order: int = 0


class SnapshotBundle(BaseModel):
    """The serialized library."""

    model_config = {"frozen": True}

    version: str
    created_at: datetime
    containers: list[ContainerSnapshot] = Field(default_factory=list)
    notes: list[NoteSnapshot] = Field(default_factory=list)
    templates: list[TemplateSnapshot] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# SnapshotService
# ---------------------------------------------------------------------------


class SnapshotService(BaseService):
    """Builds snapshot bundles and passes them to an :class:`Uploader`."""

    def __init__(self, workspace: Workspace, uploader: Uploader) -> None:
        super().__init__(workspace)
        self._uploader = uploader
        self._config = workspace.settings.snapshot

    @staticmethod
    def is_backing_up() -> bool:
        return _IN_FLIGHT.locked()

    def build_bundle(self, context: EntityContext | None = None) -> SnapshotBundle:
        """Capture the library as seen by *context* (default: foreground)."""
        ctx = context or self._workspace.context
        resolver = ContentResolver(self._workspace.store, self._workspace.index, ctx)

        notes = [
            NoteSnapshot(
                id=note.id or "",
                title=note.title,
                content=resolver.read(note),
                preview=note.preview,
                file_path=note.file_path,
                container_id=note.container_id,
                tags=list(note.tags),
                word_count=note.word_count,
                goal_target=note.goal_target,
                is_favorite=note.is_favorite,
                is_trashed=note.is_trashed,
                sort_order=note.sort_order,
                created_at=note.created_at,
                modified_at=note.modified_at,
            )
            for note in ctx.notes()
            if self._config.include_trashed or not note.is_trashed
        ]
        containers = [
            ContainerSnapshot(
                id=c.id or "",
                name=c.name,
                parent_id=c.parent_id,
                sort_order=c.sort_order,
                created_at=c.created_at,
                modified_at=c.modified_at,
            )
            for c in ctx.containers()
        ]
        templates = [
            TemplateSnapshot(
                id=t.id or "",
                name=t.name,
                content=t.content,
                category=t.category,
                sort_order=t.sort_order,
            )
            for t in ctx.templates()
        ]
        return SnapshotBundle(
            version=self._config.version,
            created_at=utcnow(),
            containers=containers,
            notes=notes,
            templates=templates,
        )

    def backup(self, context: EntityContext | None = None) -> ServiceResult:
        """Serialize the library and upload it, unless a backup is running."""
        op = "backup"
        if not _IN_FLIGHT.acquire(blocking=False):
            log.warning("snapshot_skipped", reason="backup already in progress")
            return self._failure(op, "BACKUP_IN_PROGRESS", "A backup is already running")

        try:
            bundle = self.build_bundle(context)
            payload = bundle.model_dump_json(indent=2).encode("utf-8")
            name = f"quire-snapshot-{now_compact()}.json"
            try:
                self._uploader.upload(name, payload)
            except Exception as exc:
                log.error("snapshot_upload_failed", name=name, error=str(exc), exc_info=True)
                return self._failure(op, "BACKUP_FAILED", "The backup could not be uploaded", name=name)

            log.info(
                "snapshot_uploaded",
                name=name,
                notes=len(bundle.notes),
                containers=len(bundle.containers),
                templates=len(bundle.templates),
                size=len(payload),
            )
            return ServiceResult(
                ok=True,
                op=op,
                data={
                    "name": name,
                    "notes": len(bundle.notes),
                    "containers": len(bundle.containers),
                    "templates": len(bundle.templates),
                    "size": len(payload),
                },
            )
        finally:
            _IN_FLIGHT.release()

    def backup_in_background(self) -> threading.Thread:
        """Run :meth:`backup` on a daemon thread against a background context."""
        context = self._workspace.new_context("snapshot")
        thread = threading.Thread(
            target=self.backup,
            kwargs={"context": context},
            name="quire-snapshot",
            daemon=True,
        )
        thread.start()
        return thread
