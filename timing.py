"""timing.py — Per-word display timing and optimal recognition point (ORP) lookup."""

import math
import unicodedata

from models import Settings, display_text, is_first_after_break, is_paragraph_break

FALLBACK_DELAY_MS = 200.0
LONG_WORD_THRESHOLD = 12
FIRST_AFTER_BREAK_FACTOR = 1.5
COMMA_FACTOR = 1.5
SENTENCE_PUNCTUATION = ".!?;:"

# (max letters, highlighted letter index)
ORP_TABLE = (
    (1, 0),
    (3, 0),
    (5, 1),
    (9, 2),
    (11, 3),
    (14, 4),
    (17, 5),
)
ORP_MAX_INDEX = 6


def _is_letter(ch: str) -> bool:
    return unicodedata.category(ch).startswith("L")


def letter_count(word: str) -> int:
    return sum(1 for ch in display_text(word) if _is_letter(ch))


def compute_delay(
    token: str,
    wpm: float,
    pause_on_punctuation: bool = True,
    punctuation_multiplier: float = 2.0,
    long_word_multiplier: float = 0.0,
    break_multiplier: float = 2.0,
) -> float:
    """Return how long token stays on screen, in milliseconds."""
    if not wpm or wpm <= 0:
        return FALLBACK_DELAY_MS

    delay = 60000 / wpm

    if is_paragraph_break(token):
        return delay * break_multiplier

    if is_first_after_break(token):
        delay *= FIRST_AFTER_BREAK_FACTOR

    word = display_text(token)

    letters = letter_count(word)
    if long_word_multiplier > 0 and letters >= LONG_WORD_THRESHOLD:
        delay *= 1 + (long_word_multiplier / 100) * (letters - LONG_WORD_THRESHOLD)

    if pause_on_punctuation and word:
        if word[-1] in SENTENCE_PUNCTUATION:
            delay *= punctuation_multiplier
        elif word[-1] == ",":
            delay *= COMMA_FACTOR

    return delay


def delay_for_settings(token: str, settings: Settings) -> float:
    return compute_delay(
        token,
        settings.wpm,
        settings.pause_on_punctuation,
        settings.punctuation_multiplier,
        settings.long_word_multiplier,
        settings.paragraph_break_multiplier,
    )


def compute_orp_index(word: str) -> int:
    """Index of the letter to highlight, counted over letters only."""
    if not word:
        return 0
    letters = letter_count(word)
    for max_letters, index in ORP_TABLE:
        if letters <= max_letters:
            return index
    return ORP_MAX_INDEX


def resolve_orp_char_offset(word: str) -> int:
    """
    Map the ORP letter index onto a character offset in the word's display text,
    skipping leading punctuation. Clamped to the last character.
    """
    text = display_text(word)
    if not text:
        return 0
    target = compute_orp_index(text)
    seen = 0
    for i, ch in enumerate(text):
        if _is_letter(ch):
            if seen == target:
                return i
            seen += 1
    return min(target, len(text) - 1)


def split_word_for_display(word: str) -> tuple[str, str, str]:
    """Split a word into (before, orp letter, after) for focal rendering."""
    text = display_text(word)
    if not text:
        return "", "", ""
    i = resolve_orp_char_offset(text)
    return text[:i], text[i], text[i + 1:]


def should_pause_at_word(word_index: int, pause_after_words: int) -> bool:
    """True on positive multiples of the periodic pause interval."""
    if pause_after_words <= 0 or word_index <= 0:
        return False
    return word_index % pause_after_words == 0


def extract_word_frame(words: list[str], center: int, frame_size: int) -> tuple[list[str], int]:
    """Return the words shown around center and center's offset within them."""
    if frame_size <= 1 or center >= len(words):
        return [words[center] if 0 <= center < len(words) else ""], 0
    radius = frame_size // 2
    left = max(0, center - radius)
    right = min(len(words), center + radius + 1)
    return words[left:right], center - left


def format_time_remaining(remaining_words: int, wpm: float) -> str:
    """Format remaining reading time as M:SS."""
    if remaining_words <= 0 or not wpm or wpm <= 0:
        return "0:00"
    seconds = math.ceil(remaining_words / wpm * 60)
    mins, secs = divmod(seconds, 60)
    return f"{mins}:{secs:02d}"
