"""Structured-text codec — metadata header plus body in a single text blob.

A note file looks like::

    ---
    uuid: "6F1C..."
    title: My Note
    tags: [draft, "a, b"]
    created: 2025-11-10T09:30:00.000Z
    modified: 2025-11-10T09:31:12.250Z
    progress: 0.5
    status: "draft"
    path: "Projects/My Note.md"
    ---

    Body text...

Only the flat ``key: value`` subset is understood: quoted or bare strings,
bracketed arrays, numbers and ISO dates. This is deliberately not a YAML
parser; unknown keys are skipped so newer files stay readable.

Pure parsing/rendering utilities live here so that the dependency
direction stays clean: infrastructure -> domain, never the reverse.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from quire.domain.errors import ParseError
from quire.domain.metadata import NoteMetadata

HEADER_DELIMITER = "---"

# Emission order. Keys after ``status`` are written only when present.
CANONICAL_KEY_ORDER: list[str] = [
    "uuid",
    "title",
    "tags",
    "created",
    "modified",
    "progress",
    "status",
    "path",
    "word_count",
    "char_count",
    "content_hash",
    "excerpt",
]

# Tried in order; the first successful parse wins.
DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d",
)

_SIGNIFICANT_CHARS = frozenset(":#[],")
_ESCAPES = {"n": "\n", "r": "\r", '"': '"', "\\": "\\"}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def split_header(text: str) -> tuple[list[str], str]:
    """Split *text* into header lines and body.

    Raises:
        ParseError: If the text does not open with a delimiter line, or no
            closing delimiter line follows.
    """
    if not (text.startswith(HEADER_DELIMITER + "\n") or text.startswith(HEADER_DELIMITER + "\r\n")):
        msg = "missing header-open delimiter"
        raise ParseError(msg)

    lines = text.split("\n")
    end_idx: int | None = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == HEADER_DELIMITER:
            end_idx = i
            break

    if end_idx is None:
        msg = "missing header-close delimiter"
        raise ParseError(msg)

    header = [line.rstrip("\r") for line in lines[1:end_idx]]
    body = "\n".join(lines[end_idx + 1 :])

    # One blank separator line follows the closing delimiter.
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return header, body


def parse_note(text: str) -> tuple[NoteMetadata, str]:
    """Parse a note file into ``(metadata, body)``.

    Raises:
        ParseError: On missing delimiters, or when ``uuid`` or ``title``
            is absent. Callers then treat the whole text as body.
    """
    header, body = split_header(text)
    fields = _parse_header(header)

    if not fields.get("uuid") or not fields.get("title"):
        msg = "header lacks uuid or title"
        raise ParseError(msg)

    now = datetime.now(UTC)
    fields.setdefault("created", now)
    fields.setdefault("modified", now)

    try:
        metadata = NoteMetadata.model_validate(fields)
    except ValidationError as exc:
        msg = f"invalid header: {exc.error_count()} field error(s)"
        raise ParseError(msg) from exc
    return metadata, body


def _parse_header(lines: list[str]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, raw = stripped.partition(":")
        if not sep:
            continue
        key = key.strip()
        raw = raw.strip()

        match key:
            case "uuid" | "title" | "path" | "content_hash" | "excerpt":
                value = parse_string(raw)
                if value is not None:
                    fields[key] = value
            case "status":
                fields["status"] = parse_string(raw) or "draft"
            case "tags":
                fields["tags"] = parse_array(raw)
            case "created" | "modified":
                date = parse_date(raw)
                if date is not None:
                    fields[key] = date
            case "progress":
                number = _parse_float(raw)
                if number is not None:
                    fields["progress"] = number
            case "word_count" | "char_count":
                count = _parse_int(raw)
                if count is not None:
                    fields[key] = count
            case _:
                continue
    return fields


def parse_string(raw: str) -> str | None:
    """Parse a bare, single-quoted or double-quoted scalar.

    A bare empty value yields ``None``; ``""`` yields the empty string.
    """
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return _unescape(value[1:-1])
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    return value or None


def parse_array(raw: str) -> list[str]:
    """Parse a bracket literal ``[a, "b, c", 'd']`` into a list of strings."""
    value = raw.strip()
    if not (value.startswith("[") and value.endswith("]")):
        return []

    items: list[str] = []
    current: list[str] = []
    quote: str | None = None
    escaped = False
    for ch in value[1:-1]:
        if escaped:
            current.append(ch)
            escaped = False
        elif quote == '"' and ch == "\\":
            current.append(ch)
            escaped = True
        elif quote is not None:
            current.append(ch)
            if ch == quote:
                quote = None
        elif ch in "\"'" and not "".join(current).strip():
            current.append(ch)
            quote = ch
        elif ch == ",":
            items.append("".join(current))
            current = []
        else:
            current.append(ch)
    items.append("".join(current))

    parsed = (parse_string(item) for item in items)
    return [item for item in parsed if item]


def parse_date(raw: str) -> datetime | None:
    """Parse a timestamp, trying :data:`DATE_FORMATS` in order."""
    text = parse_string(raw)
    if text is None:
        return None
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
    return None


def _parse_float(raw: str) -> float | None:
    text = parse_string(raw)
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_int(raw: str) -> int | None:
    text = parse_string(raw)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _unescape(inner: str) -> str:
    out: list[str] = []
    chars = iter(inner)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None:
            out.append("\\")
        else:
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
    return "".join(out)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_note(metadata: NoteMetadata, body: str) -> str:
    """Render *metadata* and *body* into note-file text.

    Keys are emitted in :data:`CANONICAL_KEY_ORDER`; optional keys only when
    set. A ``tags`` line is always present.
    """
    lines = [
        HEADER_DELIMITER,
        f"uuid: {quote(metadata.uuid)}",
        f"title: {format_string(metadata.title)}",
        f"tags: {format_array(metadata.tags)}",
        f"created: {format_date(metadata.created)}",
        f"modified: {format_date(metadata.modified)}",
        f"progress: {metadata.progress!r}",
        f"status: {quote(metadata.status)}",
    ]
    if metadata.path is not None:
        lines.append(f"path: {quote(metadata.path)}")
    if metadata.word_count is not None:
        lines.append(f"word_count: {metadata.word_count}")
    if metadata.char_count is not None:
        lines.append(f"char_count: {metadata.char_count}")
    if metadata.content_hash is not None:
        lines.append(f"content_hash: {quote(metadata.content_hash)}")
    if metadata.excerpt is not None:
        lines.append(f"excerpt: {format_string(metadata.excerpt)}")
    lines.append(HEADER_DELIMITER)

    return "\n".join(lines) + "\n\n" + body


def needs_quotes(value: str) -> bool:
    """True when *value* cannot be written as a bare scalar."""
    if not value:
        return True
    if value != value.strip():
        return True
    if value[0] in "\"'":
        return True
    return any(ch in _SIGNIFICANT_CHARS or ch in "\r\n" for ch in value)


def quote(value: str) -> str:
    """Double-quote *value*, escaping quotes, backslashes and line breaks."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def format_string(value: str) -> str:
    """Bare *value* when safe, otherwise :func:`quote` it."""
    return quote(value) if needs_quotes(value) else value


def format_array(values: list[str]) -> str:
    """Render a bracket literal; items are quoted as needed."""
    rendered = (quote(v) if needs_quotes(v) or "\"" in v or "'" in v else v for v in values)
    return "[" + ", ".join(rendered) + "]"


def format_date(value: datetime) -> str:
    """ISO 8601 UTC timestamp with millisecond fraction."""
    utc = value.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
