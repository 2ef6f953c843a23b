"""Tests for positions: word index, chapter and scroll conversions."""

from __future__ import annotations

import pytest

import positions
from models import Chapter, DocumentStructure


def make_structure(*counts: int) -> DocumentStructure:
    chapters = []
    start = 0
    for i, count in enumerate(counts):
        chapters.append(Chapter(
            id=f"ch{i}",
            title=f"Chapter {i + 1}",
            level=1,
            source_ref=None,
            raw_text="",
            start_word_index=start,
            end_word_index=start + count,
        ))
        start += count
    return DocumentStructure(chapters=chapters, toc=[])


class TestChapterAt:
    def test_uneven_chapters(self) -> None:
        doc = make_structure(100, 150, 50)
        # 225 falls in the second chapter, [100, 250)
        assert positions.chapter_at(doc, 225) == 1
        assert positions.scroll_percent_in_chapter(doc.chapters[1], 225) == pytest.approx(250 / 3)

    def test_midpoint_of_last_chapter(self) -> None:
        doc = make_structure(100, 100, 50)
        assert positions.chapter_at(doc, 225) == 2
        assert positions.scroll_percent_in_chapter(doc.chapters[2], 225) == pytest.approx(50.0)

    @pytest.mark.parametrize("index, expected", [(0, 0), (99, 0), (100, 1), (249, 1), (250, 2)])
    def test_boundaries(self, index: int, expected: int) -> None:
        assert positions.chapter_at(make_structure(100, 150, 50), index) == expected

    @pytest.mark.parametrize("index", [-5, 300, 10_000])
    def test_out_of_range_defaults_to_first(self, index: int) -> None:
        assert positions.chapter_at(make_structure(100, 150, 50), index) == 0

    def test_no_structure(self) -> None:
        assert positions.chapter_at(None, 3) == 0

    def test_zero_width_chapter_is_skipped(self) -> None:
        doc = make_structure(10, 0, 10)
        assert positions.chapter_at(doc, 10) == 2


class TestScroll:
    def test_zero_width_chapter(self) -> None:
        chapter = make_structure(10, 0).chapters[1]
        assert positions.scroll_percent_in_chapter(chapter, 10) == 0.0
        assert positions.word_index_from_scroll(chapter, 50) == 10

    def test_inverse_floors(self) -> None:
        chapter = make_structure(100, 150).chapters[1]
        assert positions.word_index_from_scroll(chapter, 50) == 175
        assert positions.word_index_from_scroll(chapter, 33.3) == 149

    def test_inverse_clamped_into_chapter(self) -> None:
        chapter = make_structure(100, 150).chapters[1]
        assert positions.word_index_from_scroll(chapter, 100) == 249
        assert positions.word_index_from_scroll(chapter, -20) == 100


class TestChapterProgress:
    def test_within_chapter(self) -> None:
        chapter = make_structure(100, 200).chapters[1]
        assert positions.chapter_progress(chapter, 150) == pytest.approx(25.0)

    def test_clamped(self) -> None:
        chapter = make_structure(100, 200).chapters[1]
        assert positions.chapter_progress(chapter, 40) == 0.0
        assert positions.chapter_progress(chapter, 900) == 100.0


class TestNavigationHelpers:
    def test_next_and_previous(self) -> None:
        doc = make_structure(5, 5, 5)
        assert positions.next_chapter_index(doc, 1) == 2
        assert positions.next_chapter_index(doc, 2) == 2
        assert positions.previous_chapter_index(0) == 0
        assert positions.previous_chapter_index(2) == 1

    def test_percentage_conversions(self) -> None:
        assert positions.percentage_to_word_index(50, 300) == 150
        assert positions.percentage_to_word_index(150, 300) == 300
        assert positions.percentage_to_word_index(50, 0) == 0
        assert positions.word_index_to_percentage(150, 300) == 50
