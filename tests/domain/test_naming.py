"""Tests for filename sanitization and title generation."""

from datetime import datetime

import pytest

from quire.domain.naming import (
    MAX_FILENAME_BYTES,
    MAX_TITLE_LENGTH,
    generate_title,
    is_placeholder_title,
    sanitize_filename,
    timestamp_title,
)

NOW = datetime(2025, 3, 4, 5, 6, 7)


class TestSanitizeFilename:
    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("My Note", "My Note"),
            ("a/b: c", "a-b- c"),
            ('What? *Really* "yes" <no> |x| 50%', "What- -Really- -yes- -no- -x- 50-"),
            ("back\\slash", "back-slash"),
            ("  padded  ", "padded"),
            ("ends with dots...", "ends with dots"),
            (".hidden", "hidden"),
            ("", "Untitled"),
            ("  ...  ", "Untitled"),
        ],
    )
    def test_sanitize(self, title: str, expected: str) -> None:
        assert sanitize_filename(title) == expected

    def test_idempotent(self) -> None:
        once = sanitize_filename("a/b: c?")
        assert sanitize_filename(once) == once

    def test_long_name_capped_in_bytes(self) -> None:
        assert sanitize_filename("a" * 300) == "a" * MAX_FILENAME_BYTES

    def test_cap_never_splits_a_character(self) -> None:
        result = sanitize_filename("\u65e5" * 100)
        assert result == "\u65e5" * 66
        assert len(result.encode("utf-8")) <= MAX_FILENAME_BYTES

    def test_cap_trims_trailing_space(self) -> None:
        assert sanitize_filename("a" * 199 + " b" + "c" * 50) == "a" * 199


class TestPlaceholder:
    @pytest.mark.parametrize("title", [None, "", "   ", "Untitled", " Untitled "])
    def test_placeholders(self, title: str | None) -> None:
        assert is_placeholder_title(title) is True

    def test_real_title(self) -> None:
        assert is_placeholder_title("Untitled Draft") is False


class TestGenerateTitle:
    def test_empty_body_uses_timestamp(self) -> None:
        assert generate_title("  \n ", NOW) == "Note 2025-03-04 05.06.07"
        assert timestamp_title(NOW) == "Note 2025-03-04 05.06.07"

    def test_first_heading_wins(self) -> None:
        assert generate_title("intro line\n\n## The Heading ##\ntext", NOW) == "The Heading"

    def test_first_non_empty_line(self) -> None:
        assert generate_title("\n\n  First line  \nSecond", NOW) == "First line"

    def test_hashtag_is_not_a_heading(self) -> None:
        assert generate_title("#tag only", NOW) == "#tag only"

    def test_truncated(self) -> None:
        title = generate_title("w" * 150, NOW)
        assert len(title) == MAX_TITLE_LENGTH
