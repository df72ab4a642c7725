"""Tests for NoteFileStore — atomic writes, relocation, trash and discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from quire.domain.errors import StorageError
from quire.domain.metadata import NoteMetadata
from quire.infrastructure.filesystem import NoteFileStore


def _write(store: NoteFileStore, rel: str, text: str = "x") -> Path:
    path = store.root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


class TestResolve:
    def test_relative_path(self, store: NoteFileStore) -> None:
        assert store.resolve("Work/a.md") == store.root / "Work" / "a.md"

    @pytest.mark.parametrize("path", ["/etc/passwd", "../outside.md", "a/../../b.md"])
    def test_rejects_paths_outside_root(self, store: NoteFileStore, path: str) -> None:
        with pytest.raises(ValueError):
            store.resolve(path)

    def test_relative_round_trip(self, store: NoteFileStore) -> None:
        assert store.relative(store.root / "Work" / "a.md") == "Work/a.md"

    def test_is_trashed(self, store: NoteFileStore) -> None:
        assert store.is_trashed(".trash/a.md") is True
        assert store.is_trashed("Work/.trash/a.md") is False
        assert store.is_trashed("a.md") is False


class TestUniquePath:
    def test_free_name(self, store: NoteFileStore) -> None:
        assert store.unique_path("My Note") == "My Note.md"

    def test_sanitized_and_foldered(self, store: NoteFileStore) -> None:
        assert store.unique_path("a/b?", "Work/Drafts") == "Work/Drafts/a-b-.md"

    def test_collisions_get_counter(self, store: NoteFileStore) -> None:
        _write(store, "Work/Note.md")
        _write(store, "Work/Note 2.md")
        assert store.unique_path("Note", "Work") == "Work/Note 3.md"

    def test_long_title_is_capped(self, store: NoteFileStore) -> None:
        assert store.unique_path("z" * 300) == "z" * 200 + ".md"

    def test_lookup_failure_is_storage_error(
        self, store: NoteFileStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def refuse(*_: object) -> bool:
            raise OSError(36, "File name too long")

        monkeypatch.setattr(Path, "exists", refuse)
        with pytest.raises(StorageError):
            store.unique_path("Note")


# ---------------------------------------------------------------------------
# Structured files
# ---------------------------------------------------------------------------


class TestCreateAndRead:
    def test_create_with_fresh_metadata(self, store: NoteFileStore) -> None:
        result = store.create_file("My Note", "Hello world", "Work", tags=["b", "a"])
        assert result.ok
        assert result.path == "Work/My Note.md"
        assert result.metadata is not None
        assert result.metadata.path == "Work/My Note.md"
        assert result.metadata.word_count == 2
        assert result.metadata.tags == ["b", "a"]
        text = (store.root / "Work" / "My Note.md").read_text(encoding="utf-8")
        assert "\ntitle: My Note\n" in text
        assert text.endswith("---\n\nHello world")

    def test_create_uses_supplied_identity(self, store: NoteFileStore) -> None:
        meta = NoteMetadata(uuid="FIXED", title="Given")
        result = store.create_file("Given", "body", metadata=meta)
        assert result.metadata is not None
        assert result.metadata.uuid == "FIXED"

    def test_create_never_overwrites(self, store: NoteFileStore) -> None:
        first = store.create_file("Same", "one")
        second = store.create_file("Same", "two")
        assert first.path == "Same.md"
        assert second.path == "Same 2.md"

    def test_read_round_trip(self, store: NoteFileStore) -> None:
        created = store.create_file("Note", "line one\nline two\n")
        parsed = store.read_file("Note.md")
        assert parsed is not None
        metadata, body = parsed
        assert metadata == created.metadata
        assert body == "line one\nline two\n"

    def test_read_overrides_recorded_path(self, store: NoteFileStore) -> None:
        store.create_file("Note", "body")
        (store.root / "Note.md").rename(store.root / "Moved.md")
        parsed = store.read_file("Moved.md")
        assert parsed is not None
        assert parsed[0].path == "Moved.md"

    def test_read_missing_is_none(self, store: NoteFileStore) -> None:
        assert store.read_file("nope.md") is None

    def test_read_headerless_is_none(self, store: NoteFileStore) -> None:
        _write(store, "raw.md", "just text")
        assert store.read_file("raw.md") is None

    def test_read_undecodable_is_none(self, store: NoteFileStore) -> None:
        (store.root / "bin.md").write_bytes(b"\xff\xfe\xfa")
        assert store.read_file("bin.md") is None

    def test_create_failure_reported(
        self, store: NoteFileStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def fail(*_: object) -> None:
            raise StorageError("disk full")

        monkeypatch.setattr(store, "_atomic_write", fail)
        result = store.create_file("Note", "body")
        assert result.ok is False
        assert result.path is None

    def test_create_reports_os_errors(
        self, store: NoteFileStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def refuse(*_: object) -> str:
            raise OSError(36, "File name too long")

        monkeypatch.setattr(store, "unique_path", refuse)
        assert store.create_file("Note", "body").ok is False

    def test_create_long_title(self, store: NoteFileStore) -> None:
        result = store.create_file("q" * 300, "body")
        assert result.ok
        assert result.path == "q" * 200 + ".md"
        assert result.metadata is not None
        assert result.metadata.title == "q" * 300


class TestUpdate:
    def test_update_rewrites_body_and_caches(self, store: NoteFileStore) -> None:
        created = store.create_file("Note", "old")
        assert created.metadata is not None
        assert store.update_file(created.metadata, "new body here") is True
        parsed = store.read_file("Note.md")
        assert parsed is not None
        assert parsed[1] == "new body here"
        assert parsed[0].word_count == 3

    def test_update_without_path_fails(self, store: NoteFileStore) -> None:
        assert store.update_file(NoteMetadata(uuid="A", title="T"), "x") is False

    def test_failed_write_keeps_previous_version(
        self, store: NoteFileStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        created = store.create_file("Note", "original")
        assert created.metadata is not None

        def broken_replace(*_: object) -> None:
            raise OSError("rename failed")

        monkeypatch.setattr("quire.infrastructure.filesystem.os.replace", broken_replace)
        assert store.update_file(created.metadata, "replacement") is False
        parsed = store.read_file("Note.md")
        assert parsed is not None
        assert parsed[1] == "original"
        assert not any(p.name.endswith(".tmp") for p in store.root.iterdir())


class TestRawFiles:
    def test_relative_and_absolute(self, store: NoteFileStore, tmp_path_factory: pytest.TempPathFactory) -> None:
        outside = tmp_path_factory.mktemp("legacy") / "old.txt"
        assert store.write_raw(str(outside), "legacy text") is True
        assert store.read_raw(str(outside)) == "legacy text"
        assert store.write_raw("raw/inside.txt", "inside") is True
        assert store.read_raw("raw/inside.txt") == "inside"

    def test_missing_raw_is_none(self, store: NoteFileStore) -> None:
        assert store.read_raw("missing.txt") is None


# ---------------------------------------------------------------------------
# Relocation and trash
# ---------------------------------------------------------------------------


class TestMove:
    def test_move_creates_folders_and_prunes(self, store: NoteFileStore) -> None:
        _write(store, "A/B/note.md")
        assert store.move_file("A/B/note.md", "C/note.md") is True
        assert (store.root / "C" / "note.md").is_file()
        assert not (store.root / "A").exists()

    def test_move_refuses_overwrite(self, store: NoteFileStore) -> None:
        _write(store, "a.md", "a")
        _write(store, "b.md", "b")
        assert store.move_file("a.md", "b.md") is False
        assert (store.root / "b.md").read_text() == "b"

    def test_move_missing_source(self, store: NoteFileStore) -> None:
        assert store.move_file("ghost.md", "b.md") is False

    def test_move_lookup_failure(self, store: NoteFileStore, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(store, "a.md")

        def refuse(*_: object) -> bool:
            raise OSError(36, "File name too long")

        monkeypatch.setattr(Path, "exists", refuse)
        assert store.move_file("a.md", "b.md") is False
        assert (store.root / "a.md").is_file()

    def test_delete_prunes_but_keeps_root(self, store: NoteFileStore) -> None:
        _write(store, "Only/note.md")
        assert store.delete_file("Only/note.md") is True
        assert not (store.root / "Only").exists()
        assert store.root.is_dir()

    def test_delete_missing_counts_as_deleted(self, store: NoteFileStore) -> None:
        assert store.delete_file("ghost.md") is True


class TestTrash:
    def test_move_to_trash_is_flat(self, store: NoteFileStore) -> None:
        _write(store, "Work/Deep/note.md")
        result = store.move_to_trash("Work/Deep/note.md")
        assert result.ok
        assert result.path == ".trash/note.md"
        assert not (store.root / "Work").exists()

    def test_trash_collisions(self, store: NoteFileStore) -> None:
        _write(store, "A/note.md")
        _write(store, "B/note.md")
        assert store.move_to_trash("A/note.md").path == ".trash/note.md"
        assert store.move_to_trash("B/note.md").path == ".trash/note 2.md"

    def test_already_trashed(self, store: NoteFileStore) -> None:
        _write(store, ".trash/note.md")
        assert store.move_to_trash(".trash/note.md").path == ".trash/note.md"

    def test_trash_folder_survives_emptying(self, store: NoteFileStore) -> None:
        _write(store, "note.md")
        store.move_to_trash("note.md")
        assert store.restore_from_trash(".trash/note.md", "Back/note.md") is True
        assert (store.root / ".trash").is_dir()
        assert (store.root / "Back" / "note.md").is_file()

    def test_restore_requires_trashed_source(self, store: NoteFileStore) -> None:
        _write(store, "note.md")
        assert store.restore_from_trash("note.md", "other.md") is False


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscovery:
    def test_scan_skips_hidden_and_other_extensions(self, store: NoteFileStore) -> None:
        _write(store, "a.md")
        _write(store, "Work/b.md")
        _write(store, ".trash/c.md")
        _write(store, ".quire/d.md")
        _write(store, "notes.txt")
        assert store.scan_files() == ["Work/b.md", "a.md"]

    def test_trashed_files(self, store: NoteFileStore) -> None:
        assert store.trashed_files() == []
        _write(store, ".trash/c.md")
        assert store.trashed_files() == [".trash/c.md"]

    def test_list_folders(self, store: NoteFileStore) -> None:
        _write(store, "Work/Drafts/a.md")
        _write(store, ".trash/b.md")
        assert store.list_folders() == ["Work", "Work/Drafts"]
