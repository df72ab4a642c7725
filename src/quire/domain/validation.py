"""Pre-commit validation rules for notes, containers and templates.

Validators run on every pending insert/update before a commit is
attempted. Recoverable problems are repaired in place (blank names get a
placeholder, negative counters become zero); the rest raise
:class:`~quire.domain.errors.EntityValidationError` and block the commit.
"""

from __future__ import annotations

from collections.abc import Callable

from quire.domain.entities import Container, Entity, Note, Template
from quire.domain.errors import EntityValidationError
from quire.domain.naming import PLACEHOLDER_TITLE

MISSING_ID = "MISSING_ID"
MISSING_DATES = "MISSING_DATES"
INVALID_DATES = "INVALID_DATES"
CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"

PLACEHOLDER_GROUP_NAME = "Untitled Group"
PLACEHOLDER_TEMPLATE_NAME = "Untitled Template"

# Maps a container id to its parent id (None when unknown or top-level).
ParentLookup = Callable[[str], str | None]


def validate_note(note: Note) -> None:
    """Validate and repair *note* in place."""
    if not note.id:
        msg = "Note is missing an id"
        raise EntityValidationError(MISSING_ID, msg)

    if not (note.title or "").strip():
        note.title = PLACEHOLDER_TITLE

    if note.created_at is None or note.modified_at is None:
        msg = f"Note {note.id} is missing creation or modification date"
        raise EntityValidationError(MISSING_DATES, msg, entity_id=note.id)
    if note.modified_at < note.created_at:
        msg = f"Note {note.id} was modified before it was created"
        raise EntityValidationError(INVALID_DATES, msg, entity_id=note.id)

    note.word_count = max(note.word_count, 0)
    note.goal_target = max(note.goal_target, 0)


def validate_container(container: Container, parent_of: ParentLookup, *, limit: int) -> None:
    """Validate *container*, rejecting any cycle in its parent chain.

    *parent_of* resolves ids to parent ids using pending state, so a cycle
    introduced within the current unit of work is caught too. The walk
    stops after *limit* steps (the number of known containers).
    """
    if not container.id:
        msg = "Container is missing an id"
        raise EntityValidationError(MISSING_ID, msg)

    if not (container.name or "").strip():
        container.name = PLACEHOLDER_GROUP_NAME

    visited = {container.id}
    current = container.parent_id
    steps = 0
    while current is not None:
        if current in visited or steps > limit:
            msg = f"Container {container.id} has a circular parent reference"
            raise EntityValidationError(CIRCULAR_REFERENCE, msg, entity_id=container.id)
        visited.add(current)
        current = parent_of(current)
        steps += 1


def validate_template(template: Template) -> None:
    if not template.id:
        msg = "Template is missing an id"
        raise EntityValidationError(MISSING_ID, msg)
    if not (template.name or "").strip():
        template.name = PLACEHOLDER_TEMPLATE_NAME


def validate_entity(entity: Entity, parent_of: ParentLookup, *, limit: int) -> None:
    """Dispatch to the validator for *entity*'s type."""
    match entity:
        case Note():
            validate_note(entity)
        case Container():
            validate_container(entity, parent_of, limit=limit)
        case Template():
            validate_template(entity)
        case _:
            msg = f"Unsupported entity type: {type(entity).__name__}"
            raise TypeError(msg)
