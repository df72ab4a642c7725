"""MaintenanceService — storage diagnostics, index rebuild, bulk migration."""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from quire.services.base import BaseService
from quire.services.editor import NoteEditor
from quire.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    from quire.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class MaintenanceService(BaseService):
    """Whole-library checks and repairs."""

    def __init__(self, workspace: Workspace, *, editor: NoteEditor | None = None) -> None:
        super().__init__(workspace)
        self._editor = editor or NoteEditor(workspace)

    def storage_stats(self) -> ServiceResult:
        """Count notes per storage tier alongside file and index totals."""
        resolver = self._editor.resolver
        tiers = Counter(resolver.tier_name(note) for note in self._workspace.context.notes())
        store = self._workspace.store
        return ServiceResult(
            ok=True,
            op="storage_stats",
            data={
                "indexed": tiers["indexed"],
                "legacy": tiers["legacy"],
                "embedded": tiers["embedded"],
                "files": len(store.scan_files()),
                "trashed_files": len(store.trashed_files()),
                "index_entries": self._workspace.index.count(),
            },
        )

    def verify_integrity(self) -> ServiceResult:
        """Find notes whose backing file is missing and index rows without files."""
        op = "verify_integrity"
        warnings: list[str] = []
        store = self._workspace.store

        missing_files: list[str] = []
        missing_legacy: list[str] = []
        for note in self._workspace.context.notes():
            if note.file_path and not self._exists(note.file_path):
                missing_files.append(note.id or "")
                warnings.append(f"Note {note.id}: file {note.file_path} is missing")
            if note.legacy_file and store.read_raw(note.legacy_file) is None:
                missing_legacy.append(note.id or "")
                warnings.append(f"Note {note.id}: legacy file {note.legacy_file} is unreadable")

        orphaned_entries = [
            entry.uuid
            for entry in self._workspace.index.all_notes()
            if entry.path is None or not self._exists(entry.path)
        ]
        if orphaned_entries:
            warnings.append(f"{len(orphaned_entries)} index entries point at missing files")

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "healthy": not (missing_files or missing_legacy or orphaned_entries),
                "missing_files": missing_files,
                "missing_legacy": missing_legacy,
                "orphaned_entries": orphaned_entries,
            },
            warnings=warnings,
        )

    def rebuild_index(self) -> ServiceResult:
        """Re-derive the whole index from files on disk."""
        report = self._workspace.index.rebuild(self._workspace.store)
        warnings = [f"Skipped unreadable note file: {path}" for path in report.skipped]
        warnings.extend(f"Duplicate note identity in: {path}" for path in report.duplicates)
        return ServiceResult(
            ok=True,
            op="rebuild_index",
            data={
                "indexed": report.indexed,
                "skipped": report.skipped,
                "duplicates": report.duplicates,
            },
            warnings=warnings,
        )

    def migrate_all(self) -> ServiceResult:
        """Push every legacy or embedded note through the migration path."""
        op = "migrate_all"
        resolver = self._editor.resolver
        migrated: list[str] = []
        failed: list[str] = []
        warnings: list[str] = []

        pending = [
            note for note in self._workspace.context.notes() if resolver.tier_name(note) != "indexed"
        ]
        for note in pending:
            note_id = note.id or ""
            result = self._editor.save_content(note_id, resolver.read(note))
            if result.ok:
                migrated.append(note_id)
            else:
                failed.append(note_id)
                message = result.error.message if result.error else "unknown error"
                warnings.append(f"Note {note_id}: {message}")

        logger.info("Migrated %d note(s), %d failed", len(migrated), len(failed))
        return ServiceResult(
            ok=not failed,
            op=op,
            data={"migrated": migrated, "failed": failed},
            warnings=warnings,
            error=(
                ServiceError(
                    code="MIGRATION_INCOMPLETE",
                    message=f"{len(failed)} note(s) could not be moved to file storage",
                    detail={"failed": failed},
                )
                if failed
                else None
            ),
        )

    def _exists(self, path: str) -> bool:
        try:
            return self._workspace.store.exists(path)
        except ValueError:
            return False
