"""Folder-path derivation from the container hierarchy.

A note's on-disk folder mirrors its container chain. Two naming
strategies exist and are deliberately kept apart: first-time migration
drops blank-named containers (``SKIP_BLANK``), while restoring a note from
the trash substitutes the ``Untitled`` placeholder (``PLACEHOLDER``).
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import Protocol

from quire.domain.naming import PLACEHOLDER_TITLE, sanitize_filename


class FolderNaming(StrEnum):
    """How blank container names map to folder segments."""

    SKIP_BLANK = "skip_blank"
    PLACEHOLDER = "placeholder"


class Named(Protocol):
    name: str | None


def derive_folder_path(chain: Sequence[Named], naming: FolderNaming) -> str | None:
    """Build a root-relative folder path from a leaf-to-root container chain.

    Returns ``None`` when the result is empty (the note lives at the root).

    Examples:
        >>> from types import SimpleNamespace as C
        >>> chain = [C(name="Drafts"), C(name=""), C(name="Work")]
        >>> derive_folder_path(chain, FolderNaming.SKIP_BLANK)
        'Work/Drafts'
        >>> derive_folder_path(chain, FolderNaming.PLACEHOLDER)
        'Work/Untitled/Drafts'
    """
    segments: list[str] = []
    for container in reversed(chain):
        name = (container.name or "").strip()
        if not name:
            if naming is FolderNaming.SKIP_BLANK:
                continue
            name = PLACEHOLDER_TITLE
        segments.append(sanitize_filename(name))
    return "/".join(segments) or None
