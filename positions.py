"""positions.py — Conversions between global word index, chapter and scroll position."""

import math

from models import Chapter, DocumentStructure


def chapter_at(structure: DocumentStructure | None, word_index: int) -> int:
    """Index of the chapter containing word_index, 0 when none does."""
    if structure is None:
        return 0
    for i, chapter in enumerate(structure.chapters):
        if chapter.contains(word_index):
            return i
    return 0


def scroll_percent_in_chapter(chapter: Chapter | None, word_index: int) -> float:
    if chapter is None or chapter.word_count == 0:
        return 0.0
    return (word_index - chapter.start_word_index) / chapter.word_count * 100


def word_index_from_scroll(chapter: Chapter | None, percent: float) -> int:
    """Word index at percent of the way through chapter, kept inside the chapter."""
    if chapter is None:
        return 0
    if chapter.word_count == 0:
        return chapter.start_word_index
    offset = math.floor(chapter.word_count * (percent / 100))
    index = chapter.start_word_index + offset
    return max(chapter.start_word_index, min(index, chapter.end_word_index - 1))


def chapter_progress(chapter: Chapter | None, word_index: int) -> float:
    """Progress through chapter for display, always within 0..100."""
    if chapter is None or chapter.word_count == 0:
        return 0.0
    offset = max(0, word_index - chapter.start_word_index)
    return min(100.0, offset / chapter.word_count * 100)


def next_chapter_index(structure: DocumentStructure | None, current: int) -> int:
    if structure is None:
        return current
    nxt = current + 1
    return nxt if nxt < len(structure.chapters) else current


def previous_chapter_index(current: int) -> int:
    return max(0, current - 1)


def percentage_to_word_index(percentage: float, total_words: int) -> int:
    if not total_words or total_words <= 0:
        return 0
    clamped = max(0.0, min(100.0, percentage))
    return math.floor(clamped / 100 * total_words)


def word_index_to_percentage(word_index: int, total_words: int) -> int:
    if not total_words or total_words <= 0:
        return 0
    return round(word_index / total_words * 100)
