"""ContentResolver — where a note's body lives, and how it moves there.

A note's body sits in exactly one of three tiers:

- **Indexed**: a structured file with a metadata header, tracked by the
  index. The target state for every note.
- **Legacy file**: a raw file without header, referenced by
  ``note.legacy_file``.
- **Embedded**: text stored on the entity itself (``note.content``).

Reads try the tiers in that order and never fail. Writes either update
an indexed note in place (relocating its file on rename or trash
transitions) or migrate the note into the indexed tier exactly once.

INVARIANT: No content loss. A failed migration keeps the body embedded
(and rewrites the legacy file where there is one); a failed relocation
keeps the old path. A failed in-place update stashes the body on the
entity, and that stash is what reads return until a file write succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from pydantic import ValidationError

from quire.domain.content import parse_note
from quire.domain.entities import Note
from quire.domain.errors import ParseError, StorageError
from quire.domain.folders import FolderNaming, derive_folder_path
from quire.domain.metadata import NoteMetadata, count_words, make_excerpt, utcnow
from quire.domain.naming import generate_title, is_placeholder_title, sanitize_filename
from quire.infrastructure.filesystem import NoteFileStore
from quire.infrastructure.index import NotesIndex
from quire.services.collaborators import (
    Clock,
    ContainerHierarchy,
    NoteTags,
    ProgressSource,
    TagSource,
    WordGoalProgress,
)
from quire.services.result import ServiceError, ServiceResult

logger = logging.getLogger(__name__)

STATUS_FAVORITE = "favorite"
STATUS_DRAFT = "draft"


# ---------------------------------------------------------------------------
# Tier variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexedTier:
    metadata: NoteMetadata
    body: str


@dataclass(frozen=True)
class LegacyFileTier:
    location: str
    body: str


@dataclass(frozen=True)
class EmbeddedTier:
    body: str


Tier = IndexedTier | LegacyFileTier | EmbeddedTier


# ---------------------------------------------------------------------------
# ContentResolver
# ---------------------------------------------------------------------------


class ContentResolver:
    """Reads and writes note bodies across the three storage tiers."""

    def __init__(
        self,
        store: NoteFileStore,
        index: NotesIndex,
        hierarchy: ContainerHierarchy,
        *,
        tags: TagSource | None = None,
        progress: ProgressSource | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._index = index
        self._hierarchy = hierarchy
        self._tags = tags or NoteTags()
        self._progress = progress or WordGoalProgress()
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def resolve_tier(self, note: Note) -> Tier:
        """Pick the tier currently holding *note*'s body."""
        indexed = self._indexed_tier(note)
        if indexed is not None:
            if note.content is not None:
                # A failed file write left the newer body on the entity.
                return IndexedTier(metadata=indexed.metadata, body=note.content)
            return indexed
        if note.legacy_file:
            text = self._store.read_raw(note.legacy_file)
            if text is not None:
                return LegacyFileTier(location=note.legacy_file, body=text)
        return EmbeddedTier(body=note.content or "")

    def read(self, note: Note) -> str:
        """Current body of *note*; ``""`` when nothing is stored."""
        return self.resolve_tier(note).body

    def tier_name(self, note: Note) -> str:
        match self.resolve_tier(note):
            case IndexedTier():
                return "indexed"
            case LegacyFileTier():
                return "legacy"
            case _:
                return "embedded"

    def _indexed_tier(self, note: Note) -> IndexedTier | None:
        if not note.id:
            return None
        entry = self._index.get_note(note.id)
        if entry is not None and entry.path is not None:
            found = self._read_structured(entry.path, note.id) or self._read_headerless(entry)
            if found is not None:
                return found
        # Cache miss: the note may still point at its structured file.
        if note.file_path:
            return self._read_structured(note.file_path, note.id)
        return None

    def _read_structured(self, path: str, note_id: str) -> IndexedTier | None:
        try:
            parsed = self._store.read_file(path)
        except ValueError:
            logger.warning("Ignoring out-of-root path %r for note %s", path, note_id)
            return None
        if parsed is None or parsed[0].uuid != note_id:
            return None
        metadata, body = parsed
        return IndexedTier(metadata=metadata, body=body)

    def _read_headerless(self, entry: NoteMetadata) -> IndexedTier | None:
        """Whole file as body when an indexed file has lost its header."""
        assert entry.path is not None
        text = self._store.read_raw(entry.path)
        if text is None:
            return None
        try:
            parse_note(text)
        except ParseError:
            logger.warning("Header of %s is unreadable; treating the whole file as body", entry.path)
            return IndexedTier(metadata=entry, body=text)
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write(self, note: Note, body: str) -> ServiceResult:
        """Persist *body* for *note*, migrating it to the indexed tier if needed.

        Mutates *note* (pointers, title, derived caches); the caller commits
        those changes through its entity context.
        """
        now = self._clock()
        tier = self.resolve_tier(note)
        match tier:
            case IndexedTier(metadata=metadata):
                result = self._update(note, metadata, body, now)
            case _:
                result = self._migrate(note, body, tier, now)

        note.word_count = count_words(body)
        note.preview = make_excerpt(body)
        note.modified_at = now
        return result

    def _update(self, note: Note, metadata: NoteMetadata, body: str, now: datetime) -> ServiceResult:
        op = "write"
        warnings: list[str] = []
        assert metadata.path is not None
        current_path = metadata.path

        progress = self._progress.progress_for(note, body)
        title = metadata.title if is_placeholder_title(note.title) else (note.title or "").strip()
        was_trashed = self._store.is_trashed(current_path)
        previous_title = metadata.title

        metadata = metadata.evolve(
            title=title,
            modified=now,
            tags=sorted(self._tags.tags_for(note)),
            progress=metadata.progress if progress is None else progress,
            status=STATUS_FAVORITE if note.is_favorite else STATUS_DRAFT,
        )
        note.title = title

        # ── RELOCATE ─────────────────────────────────────────
        moved = False
        target_folder: str | None = None
        relocate = False
        if note.is_trashed != was_trashed:
            relocate = True
            if note.is_trashed:
                target_folder = self._store.trash_folder
            else:
                chain = self._hierarchy.ancestors(note.container_id)
                target_folder = derive_folder_path(chain, FolderNaming.PLACEHOLDER)
        elif sanitize_filename(title) != sanitize_filename(previous_title):
            relocate = True
            target_folder = metadata.folder_path

        if relocate:
            new_path = self._relocate(current_path, title, previous_title, target_folder, note)
            if new_path is None:
                logger.warning("Could not relocate %s; keeping %s", note.id, current_path)
                warnings.append(f"Could not move note file; it stays at {current_path}")
            else:
                metadata = metadata.evolve(path=new_path)
                note.file_path = new_path
                moved = True

        # ── PERSIST: file first, then index ──────────────────
        final = metadata.with_derived(body)
        if not self._store.update_file(final, body):
            # Keep the text on the entity so it survives until the next save.
            note.content = body
            return ServiceResult(
                ok=False,
                op=op,
                warnings=warnings,
                error=ServiceError(
                    code="WRITE_FAILED",
                    message="Could not save the note file; changes are kept in the library",
                    detail={"id": note.id, "path": final.path},
                ),
            )

        note.file_path = final.path
        note.content = None
        if not self._index.upsert_note(final):
            warnings.append("Index update failed; it will be refreshed on the next save")

        return ServiceResult(
            ok=True,
            op=op,
            data={"id": note.id, "path": final.path, "tier": "indexed", "migrated": False, "moved": moved},
            warnings=warnings,
        )

    def _relocate(
        self,
        current_path: str,
        title: str,
        previous_title: str,
        folder: str | None,
        note: Note,
    ) -> str | None:
        """Move the note's file; return the new path or None on failure."""
        if note.is_trashed and title == previous_title:
            result = self._store.move_to_trash(current_path)
            return result.path if result.ok else None

        try:
            new_path = self._store.unique_path(title, folder)
        except StorageError:
            logger.warning("No usable file name for %r", title, exc_info=True)
            return None
        if self._store.is_trashed(current_path) and not note.is_trashed:
            ok = self._store.restore_from_trash(current_path, new_path)
        else:
            ok = self._store.move_file(current_path, new_path)
        return new_path if ok else None

    def _migrate(self, note: Note, body: str, tier: Tier, now: datetime) -> ServiceResult:
        op = "write"
        warnings: list[str] = []

        if is_placeholder_title(note.title):
            note.title = generate_title(body, now)
        title = (note.title or "").strip()

        if note.is_trashed:
            folder: str | None = self._store.trash_folder
        else:
            chain = self._hierarchy.ancestors(note.container_id)
            folder = derive_folder_path(chain, FolderNaming.SKIP_BLANK)

        progress = self._progress.progress_for(note, body)
        try:
            metadata = NoteMetadata(
                uuid=note.id or "",
                title=title,
                tags=sorted(self._tags.tags_for(note)),
                created=note.created_at or now,
                modified=now,
                progress=progress or 0.0,
                status=STATUS_FAVORITE if note.is_favorite else STATUS_DRAFT,
            )
        except ValidationError:
            logger.warning("Note %r cannot be migrated: invalid metadata", note.id, exc_info=True)
            return self._keep_embedded(note, body, tier, warnings, code="INVALID_METADATA")

        result = self._store.create_file(title, body, folder, metadata=metadata)
        if not result.ok or result.metadata is None:
            logger.warning("Migration of note %s failed; body stays embedded", note.id)
            return self._keep_embedded(note, body, tier, warnings, code="MIGRATION_FAILED")

        if not self._index.upsert_note(result.metadata):
            warnings.append("Index update failed; it will be refreshed on the next save")
        note.file_path = result.path
        note.legacy_file = None
        note.content = None
        logger.info("Migrated note %s to %s", note.id, result.path)

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "id": note.id,
                "path": result.path,
                "tier": "indexed",
                "migrated": True,
                "from_tier": "legacy" if isinstance(tier, LegacyFileTier) else "embedded",
            },
            warnings=warnings,
        )

    def _keep_embedded(
        self,
        note: Note,
        body: str,
        tier: Tier,
        warnings: list[str],
        *,
        code: str,
    ) -> ServiceResult:
        note.content = body
        if isinstance(tier, LegacyFileTier) and not self._store.write_raw(tier.location, body):
            warnings.append(f"Could not update legacy file {tier.location}")
        return ServiceResult(
            ok=False,
            op="write",
            warnings=warnings,
            error=ServiceError(
                code=code,
                message="Could not move the note to file storage; it is kept in the library",
                detail={"id": note.id},
            ),
        )

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def discard(self, note: Note) -> ServiceResult:
        """Permanently delete *note*'s structured file and index entry.

        Raw legacy files are left in place; they may live outside the root.
        """
        op = "discard"
        tier = self.resolve_tier(note)
        path = tier.metadata.path if isinstance(tier, IndexedTier) else note.file_path
        if path is not None:
            try:
                deleted = self._store.delete_file(path)
            except ValueError:
                deleted = False
            if not deleted:
                return ServiceResult(
                    ok=False,
                    op=op,
                    error=ServiceError(
                        code="DELETE_FAILED",
                        message="Could not delete the note file",
                        detail={"id": note.id, "path": path},
                    ),
                )
        if note.id:
            self._index.delete_note(note.id)
        note.file_path = None
        return ServiceResult(ok=True, op=op, data={"id": note.id, "path": path})
