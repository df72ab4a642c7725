"""Collaborator seams consumed by the content resolver.

Tag extraction, goal progress and the container hierarchy belong to
other parts of an application; the resolver only needs their answers.
Defaults here cover the common case and keep the resolver usable alone.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from quire.domain.entities import Container, Note
from quire.domain.metadata import count_words

Clock = Callable[[], datetime]


class TagSource(Protocol):
    def tags_for(self, note: Note) -> set[str]: ...


class ProgressSource(Protocol):
    def progress_for(self, note: Note, body: str) -> float | None:
        """Goal progress ratio for *note* with *body*, or None when unknown."""
        ...


class ContainerHierarchy(Protocol):
    def ancestors(self, container_id: str | None) -> list[Container]:
        """Leaf-to-root container chain; empty for the root."""
        ...


class NoteTags:
    """Tags already recorded on the note entity."""

    def tags_for(self, note: Note) -> set[str]:
        return {tag for tag in note.tags if tag}


class WordGoalProgress:
    """Word count over the note's word goal; None when no goal is set."""

    def progress_for(self, note: Note, body: str) -> float | None:
        if note.goal_target <= 0:
            return None
        return count_words(body) / note.goal_target
