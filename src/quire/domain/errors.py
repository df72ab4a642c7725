"""Exception taxonomy for the persistence engine.

None of these terminate the process. Parse and index failures are
recovered locally (whole-file-as-body, cache miss); validation failures
block a single commit; storage failures make the resolver fall back to the
previous tier.
"""

from __future__ import annotations


class QuireError(Exception):
    """Base class for all quire errors."""


class ParseError(QuireError, ValueError):
    """A note file has no usable metadata header."""


class EntityValidationError(QuireError):
    """An entity queued for commit violates an invariant.

    ``code`` is one of ``MISSING_ID``, ``MISSING_DATES``,
    ``INVALID_DATES``, ``CIRCULAR_REFERENCE``.
    """

    def __init__(self, code: str, message: str, *, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.entity_id = entity_id


class StorageError(QuireError, OSError):
    """A create/move/delete on the note store failed."""


class IndexLookupError(QuireError, LookupError):
    """The index could not answer a lookup; treated as a cache miss."""


class MergeConflictError(QuireError):
    """A row changed underneath the committing context."""

    def __init__(self, entity_id: str, expected_version: int) -> None:
        super().__init__(
            f"Merge conflict on {entity_id}: expected version {expected_version}"
        )
        self.entity_id = entity_id
        self.expected_version = expected_version
