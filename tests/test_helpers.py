"""Tests for search-term highlighting."""

from __future__ import annotations

from markupsafe import Markup

from combo_box.helpers import highlight


class TestHighlight:
    """Tests for highlight."""

    def test_wraps_case_insensitive_matches(self) -> None:
        result = highlight("Annis, Anna", ["ann"])

        assert isinstance(result, Markup)
        assert str(result) == (
            '<strong class="highlight">Ann</strong>is, <strong class="highlight">Ann</strong>a'
        )

    def test_escapes_content(self) -> None:
        assert str(highlight("<b>Tom & Co</b>", ["tom"])) == (
            '&lt;b&gt;<strong class="highlight">Tom</strong> &amp; Co&lt;/b&gt;'
        )

    def test_does_not_match_inside_entities(self) -> None:
        assert str(highlight("a & b", ["amp"])) == "a &amp; b"

    def test_longest_token_wins(self) -> None:
        assert str(highlight("lyon", ["ly", "lyon"])) == '<strong class="highlight">lyon</strong>'

    def test_no_tokens(self) -> None:
        assert str(highlight("<x>", [])) == "&lt;x&gt;"
        assert str(highlight("", ["a"])) == ""
