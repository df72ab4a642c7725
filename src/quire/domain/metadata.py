"""NoteMetadata — the structured fields persisted in each note's header.

The model is frozen; updates go through :meth:`NoteMetadata.evolve`.
Derived caches (word/char counts, excerpt, content hash) are recomputed
from the body by :meth:`NoteMetadata.with_derived` on every write.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, Field, field_validator

EXCERPT_LENGTH = 200
EXCERPT_MARKER = "..."


def utcnow() -> datetime:
    """Current UTC time, truncated to milliseconds (the header precision)."""
    now = datetime.now(UTC)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def count_words(body: str) -> int:
    """Number of whitespace-delimited non-empty tokens."""
    return len(body.split())


def make_excerpt(body: str) -> str:
    """Preview text: the trimmed body, cut at 200 characters plus ``...``."""
    trimmed = body.strip()
    if len(trimmed) <= EXCERPT_LENGTH:
        return trimmed
    return trimmed[:EXCERPT_LENGTH] + EXCERPT_MARKER


def content_hash(body: str) -> str:
    """SHA-256 hex digest of *body* for change detection."""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def clamp_progress(value: float) -> float:
    """Clamp a progress ratio into ``[0, 1]``."""
    return max(0.0, min(1.0, float(value)))


class NoteMetadata(BaseModel):
    """Metadata header of a file-backed note.

    Attributes:
        uuid: Stable, opaque note identity.
        title: Display title; never blank.
        tags: Tag set, kept as an ordered list without duplicates.
        created: Creation time (UTC).
        modified: Last modification time (UTC).
        progress: Goal progress ratio in ``[0, 1]``.
        status: Short free-form status (``draft``, ``favorite``, ...); never blank.
        path: Root-relative file location once file-backed.
        word_count: Derived cache.
        char_count: Derived cache.
        content_hash: Derived cache (SHA-256 of the body).
        excerpt: Derived preview cache.
    """

    model_config = {"frozen": True}

    uuid: str = Field(min_length=1)
    title: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    created: datetime = Field(default_factory=utcnow)
    modified: datetime = Field(default_factory=utcnow)
    progress: float = 0.0
    status: str = "draft"
    path: str | None = None
    word_count: int | None = None
    char_count: int | None = None
    content_hash: str | None = None
    excerpt: str | None = None

    @field_validator("uuid", "title", "status")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for tag in value:
            if tag and tag not in seen:
                seen[tag] = None
        return list(seen)

    @field_validator("created", "modified")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @field_validator("progress")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_progress(value)

    @field_validator("path")
    @classmethod
    def _root_relative(cls, value: str | None) -> str | None:
        if value is None:
            return None
        posix = PurePosixPath(value.replace("\\", "/"))
        if not value or posix.is_absolute() or ".." in posix.parts or posix.name == "":
            msg = f"path must be root-relative: {value!r}"
            raise ValueError(msg)
        return posix.as_posix()

    # --- Derived views ---

    @property
    def folder_path(self) -> str | None:
        """Folder part of :attr:`path` (``None`` for the root or no path)."""
        if self.path is None:
            return None
        parent = PurePosixPath(self.path).parent.as_posix()
        return None if parent == "." else parent

    @property
    def filename(self) -> str | None:
        """File name part of :attr:`path`."""
        if self.path is None:
            return None
        return PurePosixPath(self.path).name

    def evolve(self, **changes: Any) -> NoteMetadata:
        """Return a validated copy with *changes* applied.

        Unlike ``model_copy(update=...)`` this re-runs the field validators,
        so progress stays clamped and paths stay root-relative.
        """
        return type(self).model_validate({**self.model_dump(), **changes})

    def with_derived(self, body: str) -> NoteMetadata:
        """Return a copy with word/char counts, excerpt and hash computed from *body*."""
        return self.evolve(
            word_count=count_words(body),
            char_count=len(body),
            excerpt=make_excerpt(body),
            content_hash=content_hash(body),
        )
