"""Tests for wordstream: token stream construction."""

from __future__ import annotations

from models import BREAK_MARKER, PARAGRAPH_BREAK, display_text, is_first_after_break
from wordstream import build_word_stream, count_words


class TestBuildWordStream:
    def test_two_paragraphs(self) -> None:
        tokens = build_word_stream("Hello world.\nNext paragraph here.")
        assert tokens == ["Hello", "world.", "\n", "⟩Next", "paragraph", "here."]

    def test_blank_lines_collapse_to_one_break(self) -> None:
        tokens = build_word_stream("First line.\n\n\n\nSecond line.")
        assert tokens.count(PARAGRAPH_BREAK) == 1
        assert tokens == ["First", "line.", PARAGRAPH_BREAK, BREAK_MARKER + "Second", "line."]

    def test_empty_text(self) -> None:
        assert build_word_stream("") == []

    def test_whitespace_only(self) -> None:
        assert build_word_stream("   \n\t \n  ") == []

    def test_no_leading_or_trailing_break(self) -> None:
        tokens = build_word_stream("\n\n  Only words here  \n\n")
        assert tokens == ["Only", "words", "here"]

    def test_every_break_is_followed_by_marked_token(self) -> None:
        tokens = build_word_stream("a b\nc\n\nd e f\ng")
        for i, token in enumerate(tokens):
            if token == PARAGRAPH_BREAK:
                assert is_first_after_break(tokens[i + 1])
        assert sum(is_first_after_break(t) for t in tokens) == tokens.count(PARAGRAPH_BREAK)

    def test_marker_never_on_first_token(self) -> None:
        assert not is_first_after_break(build_word_stream("Start\nmiddle")[0])

    def test_tabs_and_multiple_spaces_split(self) -> None:
        assert build_word_stream("one\t two   three") == ["one", "two", "three"]

    def test_large_input(self) -> None:
        text = "\n".join("word " * 50 for _ in range(4000))
        tokens = build_word_stream(text)
        assert len(tokens) == 4000 * 50 + 3999
        assert display_text(tokens[51]) == "word"


class TestCountWords:
    def test_matches_stream_length(self) -> None:
        text = "One two.\n\nThree four five.\nSix."
        assert count_words(text) == len(build_word_stream(text)) == 8

    def test_empty(self) -> None:
        assert count_words("") == 0
