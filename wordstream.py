"""wordstream.py — Split text into the annotated token stream used for RSVP playback."""

from models import BREAK_MARKER, PARAGRAPH_BREAK


def build_word_stream(text: str) -> list[str]:
    """
    Turn raw text into an ordered token list.

    Every non-empty line is a paragraph. Between two paragraphs one
    PARAGRAPH_BREAK token is emitted, and the first word of the new
    paragraph carries BREAK_MARKER. Blank lines never add extra breaks.
    """
    if not text:
        return []

    tokens: list[str] = []
    for line in text.splitlines():
        words = line.split()
        if not words:
            continue
        if tokens:
            tokens.append(PARAGRAPH_BREAK)
            tokens.append(BREAK_MARKER + words[0])
        else:
            tokens.append(words[0])
        tokens.extend(words[1:])
    return tokens


def count_words(text: str) -> int:
    """Number of tokens build_word_stream would produce for text."""
    return len(build_word_stream(text))
