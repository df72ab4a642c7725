"""Tests for NoteMetadata — validation, derived caches, and helpers."""

import hashlib
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from quire.domain.metadata import (
    NoteMetadata,
    clamp_progress,
    content_hash,
    count_words,
    make_excerpt,
    utcnow,
)


def _meta(**overrides: object) -> NoteMetadata:
    return NoteMetadata.model_validate({"uuid": "A", "title": "T", **overrides})


class TestValidation:
    def test_blank_title_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _meta(title="   ")

    def test_empty_uuid_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _meta(uuid="")

    @pytest.mark.parametrize("status", ["", "  "])
    def test_blank_status_rejected(self, status: str) -> None:
        with pytest.raises(ValidationError):
            _meta(status=status)
        with pytest.raises(ValidationError):
            _meta().evolve(status=status)

    def test_tags_deduplicated_in_order(self) -> None:
        assert _meta(tags=["b", "a", "b", "", "c"]).tags == ["b", "a", "c"]

    @pytest.mark.parametrize(("raw", "expected"), [(-0.5, 0.0), (0.4, 0.4), (7, 1.0)])
    def test_progress_clamped(self, raw: float, expected: float) -> None:
        assert _meta(progress=raw).progress == expected

    def test_naive_datetimes_become_utc(self) -> None:
        meta = _meta(created=datetime(2025, 1, 1, 12, 0))
        assert meta.created.tzinfo is not None
        assert meta.created == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    @pytest.mark.parametrize("path", ["/abs/note.md", "../escape.md", "a/../../b.md", ""])
    def test_path_must_be_root_relative(self, path: str) -> None:
        with pytest.raises(ValidationError):
            _meta(path=path)

    def test_backslashes_normalized(self) -> None:
        assert _meta(path="Work\\Drafts\\n.md").path == "Work/Drafts/n.md"

    def test_frozen(self) -> None:
        meta = _meta()
        with pytest.raises(ValidationError):
            meta.title = "Other"  # type: ignore[misc]


class TestDerivedViews:
    def test_folder_and_filename(self) -> None:
        meta = _meta(path="Work/Drafts/My Note.md")
        assert meta.folder_path == "Work/Drafts"
        assert meta.filename == "My Note.md"

    def test_root_note_has_no_folder(self) -> None:
        meta = _meta(path="My Note.md")
        assert meta.folder_path is None
        assert meta.filename == "My Note.md"

    def test_no_path(self) -> None:
        meta = _meta()
        assert meta.folder_path is None
        assert meta.filename is None

    def test_with_derived(self) -> None:
        meta = _meta().with_derived("Hello world")
        assert meta.word_count == 2
        assert meta.char_count == 11
        assert meta.excerpt == "Hello world"
        assert meta.content_hash == hashlib.sha256(b"Hello world").hexdigest()

    def test_evolve_revalidates(self) -> None:
        meta = _meta().evolve(progress=3.0, tags=["x", "x"])
        assert meta.progress == 1.0
        assert meta.tags == ["x"]


class TestHelpers:
    def test_count_words(self) -> None:
        assert count_words("  one\ttwo\n\nthree ") == 3
        assert count_words("") == 0

    def test_excerpt_truncates(self) -> None:
        excerpt = make_excerpt("  " + "x" * 250 + "  ")
        assert excerpt == "x" * 200 + "..."

    def test_short_excerpt_is_trimmed_body(self) -> None:
        assert make_excerpt("\n short \n") == "short"

    def test_content_hash_changes_with_body(self) -> None:
        assert content_hash("a") != content_hash("b")
        assert len(content_hash("")) == 64

    def test_clamp_progress(self) -> None:
        assert clamp_progress(-1) == 0.0
        assert clamp_progress(2) == 1.0

    def test_utcnow_has_millisecond_precision(self) -> None:
        now = utcnow()
        assert now.tzinfo is not None
        assert now.microsecond % 1000 == 0
