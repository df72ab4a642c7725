"""File-backed note store.

INVARIANT: Files are truth for body content once a note is file-backed.
The index is a derived cache; :meth:`NotesIndex.rebuild` must always be
able to reconstruct it from the files this store manages.

All paths accepted and returned are root-relative POSIX strings (except
:meth:`NoteFileStore.read_raw`/:meth:`NoteFileStore.write_raw`, which also
accept absolute legacy locations). Writes are atomic: content goes to a
hidden sibling temp file which is then renamed into place, so a failed
write never leaves a partial file or clobbers the previous version.

Pure parsing/rendering lives in :mod:`quire.domain.content`; this module
only does I/O, path resolution and discovery.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from quire.domain.content import parse_note, serialize_note
from quire.domain.errors import ParseError, StorageError
from quire.domain.metadata import NoteMetadata, utcnow
from quire.domain.naming import NOTE_EXTENSION, TRASH_FOLDER, sanitize_filename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateResult:
    """Outcome of :meth:`NoteFileStore.create_file`."""

    ok: bool
    metadata: NoteMetadata | None = None
    path: str | None = None


@dataclass(frozen=True)
class TrashResult:
    """Outcome of :meth:`NoteFileStore.move_to_trash`."""

    ok: bool
    path: str | None = None


class NoteFileStore:
    """Create, read, update, move and trash note files under a root folder."""

    def __init__(
        self,
        root: Path,
        *,
        trash_folder: str = TRASH_FOLDER,
        extension: str = NOTE_EXTENSION,
    ) -> None:
        self._root = Path(root).resolve()
        self._trash_folder = trash_folder
        self._extension = extension

    @property
    def root(self) -> Path:
        return self._root

    @property
    def trash_folder(self) -> str:
        return self._trash_folder

    @property
    def extension(self) -> str:
        return self._extension

    # ------------------------------------------------------------------
    # Path resolution
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """Absolute location of root-relative *path*.

        Raises:
            ValueError: If *path* is absolute or escapes the root.
        """
        posix = PurePosixPath(path.replace("\\", "/"))
        if posix.is_absolute():
            msg = f"Path must be root-relative: {path!r}"
            raise ValueError(msg)
        result = (self._root / posix).resolve()
        if not result.is_relative_to(self._root):
            msg = f"Path escapes store root: {path!r}"
            raise ValueError(msg)
        return result

    def relative(self, path: Path) -> str:
        """Root-relative POSIX form of absolute *path*."""
        return path.resolve().relative_to(self._root).as_posix()

    def unique_path(self, title: str, folder_path: str | None = None) -> str:
        """First free ``<name>.md``, ``<name> 2.md``, ``<name> 3.md``, ... in *folder_path*.

        Raises:
            StorageError: The file system refused to look up a candidate.
        """
        base = sanitize_filename(title)
        folder = PurePosixPath(folder_path) if folder_path else PurePosixPath()

        candidate = (folder / f"{base}{self._extension}").as_posix()
        counter = 2
        try:
            while self.resolve(candidate).exists():
                candidate = (folder / f"{base} {counter}{self._extension}").as_posix()
                counter += 1
        except OSError as exc:
            msg = f"Cannot check whether {candidate!r} is free"
            raise StorageError(msg) from exc
        return candidate

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def is_trashed(self, path: str) -> bool:
        parts = PurePosixPath(path).parts
        return bool(parts) and parts[0] == self._trash_folder

    # ------------------------------------------------------------------
    # Structured notes
    # ------------------------------------------------------------------

    def create_file(
        self,
        title: str,
        body: str,
        folder_path: str | None = None,
        tags: Iterable[str] = (),
        metadata: NoteMetadata | None = None,
    ) -> CreateResult:
        """Write a new note file named after *title*.

        When *metadata* is given it supplies identity, timestamps and the
        other header fields; otherwise fresh metadata is built. The returned
        metadata has ``path`` and the derived caches set.
        """
        try:
            path = self.unique_path(title, folder_path)
            if metadata is None:
                now = utcnow()
                metadata = NoteMetadata(
                    uuid=str(uuid.uuid4()).upper(),
                    title=title,
                    tags=list(tags),
                    created=now,
                    modified=now,
                )
            final = metadata.evolve(path=path).with_derived(body)
            self._atomic_write(self.resolve(path), serialize_note(final, body))
        except OSError:
            logger.warning("Failed to create note file for %r", title, exc_info=True)
            return CreateResult(ok=False)

        logger.debug("Created note file %s", path)
        return CreateResult(ok=True, metadata=final, path=path)

    def read_file(self, path: str) -> tuple[NoteMetadata, str] | None:
        """Parse the note at *path*.

        Returns ``None`` for a missing or undecodable file, or one without a
        usable header. The returned metadata carries the file's actual
        location, overriding whatever path the header recorded.
        """
        text = self._read_text(self.resolve(path))
        if text is None:
            return None
        try:
            metadata, body = parse_note(text)
        except ParseError:
            logger.debug("No usable header in %s", path)
            return None

        actual = self.relative(self.resolve(path))
        if metadata.path != actual:
            metadata = metadata.evolve(path=actual)
        return metadata, body

    def update_file(self, metadata: NoteMetadata, body: str) -> bool:
        """Atomically overwrite the note at ``metadata.path``."""
        if metadata.path is None:
            logger.warning("Cannot update note %s without a path", metadata.uuid)
            return False
        final = metadata.with_derived(body)
        try:
            self._atomic_write(self.resolve(metadata.path), serialize_note(final, body))
        except StorageError:
            logger.warning("Failed to update note file %s", metadata.path, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Raw files (legacy tier)
    # ------------------------------------------------------------------

    def read_raw(self, path: str) -> str | None:
        """Raw text at *path*; absolute locations are accepted."""
        return self._read_text(self._raw_location(path))

    def write_raw(self, path: str, text: str) -> bool:
        try:
            self._atomic_write(self._raw_location(path), text)
        except StorageError:
            logger.warning("Failed to write raw file %s", path, exc_info=True)
            return False
        return True

    def _raw_location(self, path: str) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.resolve(path)

    # ------------------------------------------------------------------
    # Relocation
    # ------------------------------------------------------------------

    def move_file(self, src: str, dst: str) -> bool:
        """Move *src* to *dst*, never overwriting an existing file.

        Intermediate folders are created; folders left empty behind *src*
        are pruned (except the root and the trash folder).
        """
        source = self.resolve(src)
        target = self.resolve(dst)
        try:
            if not source.is_file():
                logger.warning("Cannot move missing file %s", src)
                return False
            if target.exists():
                logger.warning("Refusing to overwrite %s when moving %s", dst, src)
                return False
            target.parent.mkdir(parents=True, exist_ok=True)
            source.rename(target)
        except OSError:
            logger.warning("Failed to move %s to %s", src, dst, exc_info=True)
            return False

        self._prune_empty(source.parent)
        logger.debug("Moved %s -> %s", src, dst)
        return True

    def delete_file(self, path: str) -> bool:
        """Permanently delete *path*. A missing file counts as deleted."""
        target = self.resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to delete %s", path, exc_info=True)
            return False
        self._prune_empty(target.parent)
        return True

    def move_to_trash(self, path: str) -> TrashResult:
        """Relocate *path* into the flat top-level trash folder."""
        if self.is_trashed(path):
            return TrashResult(ok=True, path=path)
        stem = PurePosixPath(path).stem
        try:
            destination = self.unique_path(stem, self._trash_folder)
        except StorageError:
            logger.warning("No free trash name for %s", path, exc_info=True)
            return TrashResult(ok=False)
        if not self.move_file(path, destination):
            return TrashResult(ok=False)
        return TrashResult(ok=True, path=destination)

    def restore_from_trash(self, trash_path: str, to_path: str) -> bool:
        """Move a trashed file back out to *to_path* (never overwriting)."""
        if not self.is_trashed(trash_path):
            logger.warning("%s is not in the trash", trash_path)
            return False
        return self.move_file(trash_path, to_path)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def scan_files(self) -> list[str]:
        """All note files outside hidden folders (so the trash is excluded)."""
        results: list[str] = []
        for path in self._root.rglob(f"*{self._extension}"):
            rel = path.relative_to(self._root)
            if not path.is_file() or any(part.startswith(".") for part in rel.parts):
                continue
            results.append(rel.as_posix())
        return sorted(results)

    def list_folders(self) -> list[str]:
        results: list[str] = []
        for path in self._root.rglob("*"):
            rel = path.relative_to(self._root)
            if not path.is_dir() or any(part.startswith(".") for part in rel.parts):
                continue
            results.append(rel.as_posix())
        return sorted(results)

    def trashed_files(self) -> list[str]:
        trash = self._root / self._trash_folder
        if not trash.is_dir():
            return []
        return sorted(
            self.relative(path) for path in trash.glob(f"*{self._extension}") if path.is_file()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_text(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.warning("Unreadable file %s", path, exc_info=True)
            return None

    def _atomic_write(self, target: Path, text: str) -> None:
        """Write *text* to a hidden temp sibling, then rename it over *target*.

        Raises:
            StorageError: The temp file is removed and *target* is untouched.
        """
        temp = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with temp.open("w", encoding="utf-8", newline="") as handle:
                handle.write(text)
            os.replace(temp, target)
        except OSError as exc:
            try:
                temp.unlink(missing_ok=True)
            except OSError:
                logger.warning("Failed to remove temp file %s", temp)
            msg = f"Atomic write to {target} failed"
            raise StorageError(msg) from exc

    def _prune_empty(self, folder: Path) -> None:
        trash = self._root / self._trash_folder
        current = folder
        while current != self._root and current != trash and current.is_relative_to(self._root):
            try:
                if any(current.iterdir()):
                    return
                current.rmdir()
            except OSError:
                return
            current = current.parent
