"""Filename sanitization and title generation.

Titles drive file names: ``sanitize_filename`` turns a title into a safe
base name, and ``generate_title`` invents a title for notes that reach
their first file write without one.
"""

from __future__ import annotations

import re
from datetime import datetime

PLACEHOLDER_TITLE = "Untitled"
MAX_TITLE_LENGTH = 100
MAX_FILENAME_BYTES = 200
TRASH_FOLDER = ".trash"
NOTE_EXTENSION = ".md"

_INVALID_FILENAME_CHARS = re.compile(r'[:/\\?%*|"<>]')
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$")


def sanitize_filename(name: str) -> str:
    """Map a title to a safe file base name.

    Each of ``: / \\ ? % * | " < >`` becomes ``-``; surrounding whitespace
    and periods are trimmed. The result is cut to 200 UTF-8 bytes so a
    collision suffix and the extension still fit the usual 255-byte limit.
    An empty result becomes ``Untitled``.

    Examples:
        >>> sanitize_filename("a/b: c")
        'a-b- c'
        >>> sanitize_filename("  ...  ")
        'Untitled'
    """
    sanitized = _INVALID_FILENAME_CHARS.sub("-", name)
    trimmed = sanitized.strip().strip(".").strip()
    encoded = trimmed.encode("utf-8")
    if len(encoded) > MAX_FILENAME_BYTES:
        capped = encoded[:MAX_FILENAME_BYTES].decode("utf-8", errors="ignore")
        trimmed = capped.strip().strip(".").strip()
    return trimmed or PLACEHOLDER_TITLE


def is_placeholder_title(title: str | None) -> bool:
    """True when *title* is missing, blank, or the ``Untitled`` placeholder."""
    if title is None:
        return True
    stripped = title.strip()
    return not stripped or stripped == PLACEHOLDER_TITLE


def timestamp_title(now: datetime) -> str:
    """Title used for notes whose first save has an empty body."""
    return f"Note {now.strftime('%Y-%m-%d %H.%M.%S')}"


def generate_title(body: str, now: datetime) -> str:
    """Derive a title from note *body*.

    Empty body: a timestamp title. Otherwise the first markdown heading,
    falling back to the first non-empty line, truncated to 100 characters.
    """
    if not body.strip():
        return timestamp_title(now)

    first_line: str | None = None
    for line in body.splitlines():
        if not line.strip():
            continue
        match = _HEADING.match(line)
        if match:
            return _truncate(match.group(1))
        if first_line is None:
            first_line = line.strip()

    if first_line:
        return _truncate(first_line)
    return PLACEHOLDER_TITLE


def _truncate(text: str) -> str:
    text = text.strip()
    if len(text) <= MAX_TITLE_LENGTH:
        return text or PLACEHOLDER_TITLE
    return text[:MAX_TITLE_LENGTH].rstrip() or PLACEHOLDER_TITLE
