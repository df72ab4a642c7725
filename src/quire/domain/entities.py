"""Mutable entities of the note graph: notes, containers, templates.

Entities reference each other by id (``container_id``, ``parent_id``)
rather than by object, so ancestor walks and snapshots work the same on
loaded and detached copies.

A note's storage tier is never stored. It is inferred from which of
``content`` (embedded), ``legacy_file`` (raw file, no header) and
``file_path`` (structured, indexed file) is in use; see
:mod:`quire.services.resolver`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from quire.domain.metadata import utcnow


def new_id() -> str:
    """Fresh opaque identity string."""
    return str(uuid.uuid4()).upper()


@dataclass
class Note:
    """A user-editable note."""

    id: str | None = field(default_factory=new_id)
    title: str | None = None
    created_at: datetime | None = field(default_factory=utcnow)
    modified_at: datetime | None = field(default_factory=utcnow)
    content: str | None = None
    legacy_file: str | None = None
    file_path: str | None = None
    container_id: str | None = None
    is_trashed: bool = False
    is_favorite: bool = False
    tags: list[str] = field(default_factory=list)
    goal_target: int = 0
    word_count: int = 0
    preview: str | None = None
    sort_order: int = 0
    version: int = 0


@dataclass
class Container:
    """A hierarchical group of notes."""

    id: str | None = field(default_factory=new_id)
    name: str | None = None
    parent_id: str | None = None
    sort_order: int = 0
    created_at: datetime | None = field(default_factory=utcnow)
    modified_at: datetime | None = field(default_factory=utcnow)
    version: int = 0


@dataclass
class Template:
    """A reusable note template (only validated and snapshotted here)."""

    id: str | None = field(default_factory=new_id)
    name: str | None = None
    content: str = ""
    category: str | None = None
    sort_order: int = 0
    version: int = 0


Entity = Note | Container | Template
