"""NoteEditor — user-facing note edits on the foreground context.

Pipeline per edit: APPLY → VALIDATE → WRITE → COMMIT → RESPOND

Pending entity changes are validated before any file is touched. The
resolver then writes the body (and relocates or migrates the file), and
the context commits the entity changes. A merge conflict during commit
refreshes the note to its latest persisted state and replays the edit
under the workspace :class:`RetryPolicy`; exhausting the budget is
reported as ``MERGE_CONFLICT``, never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from quire.domain.entities import Note
from quire.domain.errors import EntityValidationError, MergeConflictError
from quire.domain.naming import is_placeholder_title
from quire.services.base import BaseService
from quire.services.resolver import ContentResolver
from quire.services.result import ServiceResult
from quire.services.retry import RetryPolicy

if TYPE_CHECKING:
    from quire.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)

# Applies an edit to a note and returns the body to write.
Edit = Callable[[Note], str]


class NoteEditor(BaseService):
    """Reads and edits notes through the content resolver."""

    def __init__(
        self,
        workspace: Workspace,
        *,
        resolver: ContentResolver | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        super().__init__(workspace)
        self._context = workspace.context
        self._resolver = resolver or ContentResolver(
            workspace.store, workspace.index, workspace.context
        )
        self._retry = retry or RetryPolicy.from_config(workspace.settings.retry)

    @property
    def resolver(self) -> ContentResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_note(
        self,
        title: str | None = None,
        body: str = "",
        *,
        container_id: str | None = None,
    ) -> ServiceResult:
        """Add a new note and write its first body (migrating it to a file)."""
        note = Note(title=title, container_id=container_id)
        self._context.add(note)
        return self._edit("create_note", note, lambda _: body)

    def read_content(self, note_id: str) -> ServiceResult:
        op = "read_content"
        note = self._context.get_note(note_id)
        if note is None:
            return self._not_found(op, note_id)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "id": note_id,
                "body": self._resolver.read(note),
                "tier": self._resolver.tier_name(note),
            },
        )

    def save_content(self, note_id: str, body: str) -> ServiceResult:
        op = "save_content"
        note = self._context.get_note(note_id)
        if note is None:
            return self._not_found(op, note_id)
        return self._edit(op, note, lambda _: body)

    def set_trashed(self, note_id: str, trashed: bool) -> ServiceResult:
        """Flip the trashed flag and re-save so the file follows."""
        op = "set_trashed"
        note = self._context.get_note(note_id)
        if note is None:
            return self._not_found(op, note_id)

        def apply(current: Note) -> str:
            body = self._resolver.read(current)
            current.is_trashed = trashed
            return body

        return self._edit(op, note, apply)

    def rename(self, note_id: str, title: str) -> ServiceResult:
        """Retitle a note and move its file to match.

        Blank titles and the ``Untitled`` placeholder are rejected with
        ``INVALID_TITLE``; the placeholder only marks notes awaiting a
        generated title.
        """
        op = "rename"
        if not title.strip():
            return self._failure(op, "INVALID_TITLE", "A note title cannot be blank")
        if is_placeholder_title(title):
            return self._failure(op, "INVALID_TITLE", f"{title.strip()!r} is reserved for untitled notes")
        note = self._context.get_note(note_id)
        if note is None:
            return self._not_found(op, note_id)

        def apply(current: Note) -> str:
            body = self._resolver.read(current)
            current.title = title.strip()
            return body

        return self._edit(op, note, apply)

    def delete_note(self, note_id: str) -> ServiceResult:
        """Permanently delete a note, its file and its index entry."""
        op = "delete_note"
        note = self._context.get_note(note_id)
        if note is None:
            return self._not_found(op, note_id)

        result = self._resolver.discard(note)
        if not result.ok:
            return result
        self._context.delete(note)
        if not self._context.safe_save(op):
            return self._failure(op, "SAVE_FAILED", "Could not delete the note", id=note_id)
        return ServiceResult(ok=True, op=op, data={"id": note_id})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _edit(self, op: str, note: Note, apply: Edit) -> ServiceResult:
        def attempt() -> ServiceResult:
            body = apply(note)
            self._context.validate_pending()
            written = self._resolver.write(note, body)
            self._context.save()
            return written

        def on_conflict(_: MergeConflictError) -> None:
            if not self._context.refresh(note):
                logger.warning("Note %s vanished while retrying %s", note.id, op)

        try:
            written = self._retry.run(attempt, on_conflict=on_conflict)
        except MergeConflictError as exc:
            logger.warning("Abandoning %s on %s after repeated conflicts", op, note.id)
            self._context.rollback()
            return self._failure(
                op,
                "MERGE_CONFLICT",
                "The note was changed elsewhere; please try again",
                id=note.id,
                expected_version=exc.expected_version,
            )
        except EntityValidationError as exc:
            logger.error("Validation failed during %s: [%s] %s", op, exc.code, exc.message)
            return self._failure(op, "VALIDATION_FAILED", exc.message, id=note.id, reason=exc.code)
        except SQLAlchemyError:
            logger.error("Failed to commit %s for %s", op, note.id, exc_info=True)
            self._context.rollback()
            return self._failure(op, "SAVE_FAILED", "Could not save changes", id=note.id)

        if not written.ok:
            return written.model_copy(update={"op": op})
        return ServiceResult(
            ok=True,
            op=op,
            data={**written.data, "title": note.title, "version": note.version},
            warnings=written.warnings,
        )

    def _not_found(self, op: str, note_id: str) -> ServiceResult:
        return self._failure(op, "NOT_FOUND", f"No note found with ID: {note_id}", id=note_id)
