"""models.py — Shared data types for speedbook."""

import time
from dataclasses import asdict, dataclass, field, fields
from enum import Enum

# Synthetic token standing for a paragraph break; shown as a blank frame.
PARAGRAPH_BREAK = "\n"
# Prefix on the first real token after a paragraph break.
BREAK_MARKER = "\u27e9"


def is_paragraph_break(token: str) -> bool:
    return token == PARAGRAPH_BREAK


def is_first_after_break(token: str) -> bool:
    return token.startswith(BREAK_MARKER)


def display_text(token: str) -> str:
    """Return the visible text of a token (marker stripped, breaks blank)."""
    if is_paragraph_break(token):
        return ""
    if is_first_after_break(token):
        return token[len(BREAK_MARKER):]
    return token


class ViewMode(str, Enum):
    WORD_AT_A_TIME = "word_at_a_time"
    PAGINATED = "paginated"


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass
class ImageMarker:
    source_ref: str
    alt_text: str
    word_position: int   # global token index the image is attached to
    available: bool = True


@dataclass
class Chapter:
    id: str
    title: str
    level: int
    source_ref: str | None
    raw_text: str                    # plain text the word boundaries were computed from
    renderable_content: str = ""     # sanitized HTML for the paginated view, never persisted
    start_word_index: int = 0
    end_word_index: int = 0          # exclusive
    images: list[ImageMarker] = field(default_factory=list)
    page_start: int | None = None    # page-oriented sources only, 1-based
    page_end: int | None = None

    @property
    def word_count(self) -> int:
        return self.end_word_index - self.start_word_index

    def contains(self, word_index: int) -> bool:
        return self.start_word_index <= word_index < self.end_word_index

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "level": self.level,
            "source_ref": self.source_ref,
            "raw_text": self.raw_text,
            "start_word_index": self.start_word_index,
            "end_word_index": self.end_word_index,
            "word_count": self.word_count,
            "images": [asdict(img) for img in self.images],
            "page_start": self.page_start,
            "page_end": self.page_end,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chapter":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "Untitled",
            level=int(data.get("level") or 1),
            source_ref=data.get("source_ref"),
            raw_text=data.get("raw_text") or "",
            start_word_index=int(data["start_word_index"]),
            end_word_index=int(data["end_word_index"]),
            images=[ImageMarker(**img) for img in data.get("images") or []],
            page_start=data.get("page_start"),
            page_end=data.get("page_end"),
        )


@dataclass
class TocEntry:
    id: str
    title: str
    level: int
    chapter_index: int
    start_word_index: int
    word_count: int


@dataclass
class DocumentStructure:
    chapters: list[Chapter]
    toc: list[TocEntry]
    has_native_structure: bool = False
    title: str | None = None

    @property
    def total_words(self) -> int:
        return self.chapters[-1].end_word_index if self.chapters else 0

    @property
    def images(self) -> list[ImageMarker]:
        return [img for ch in self.chapters for img in ch.images]

    def to_dict(self) -> dict:
        return {
            "chapters": [ch.to_dict() for ch in self.chapters],
            "toc": [asdict(entry) for entry in self.toc],
            "has_native_structure": self.has_native_structure,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentStructure":
        return cls(
            chapters=[Chapter.from_dict(ch) for ch in data.get("chapters") or []],
            toc=[TocEntry(**entry) for entry in data.get("toc") or []],
            has_native_structure=bool(data.get("has_native_structure")),
            title=data.get("title"),
        )


@dataclass
class Settings:
    wpm: int = 300
    pause_on_punctuation: bool = True
    punctuation_multiplier: float = 2.0
    paragraph_break_multiplier: float = 2.0
    long_word_multiplier: float = 0.0     # percent of base delay per letter above 12
    pause_after_words: int = 0            # periodic pause interval, 0 disables
    pause_duration_ms: int = 2000
    fade_enabled: bool = False
    fade_duration_ms: int = 150
    frame_size: int = 1                   # words shown per frame
    pause_on_images: bool = True
    image_pause_duration_ms: int = 3000
    chapter_progress_mode: str = "percentage"   # "percentage", "words", "time" or "off"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict | None, defaults: "Settings | None" = None) -> "Settings":
        """Build settings from stored data, falling back to ``defaults`` per field.

        Unknown keys are ignored; missing or ``None`` values take the running
        default rather than a zero value.
        """
        base = defaults or cls()
        data = data or {}
        values = {}
        for f in fields(cls):
            value = data.get(f.name)
            values[f.name] = getattr(base, f.name) if value is None else value
        return cls(**values)


@dataclass
class Session:
    document_text: str
    current_word_index: int
    total_words: int
    view_mode: ViewMode = ViewMode.WORD_AT_A_TIME
    current_chapter_index: int = 0
    scroll_percentage: float = 0.0
    document_structure: DocumentStructure | None = None
    settings: Settings = field(default_factory=Settings)
    saved_at: float = 0.0   # epoch milliseconds

    def to_dict(self) -> dict:
        return {
            "document_text": self.document_text,
            "current_word_index": self.current_word_index,
            "total_words": self.total_words,
            "view_mode": self.view_mode.value,
            "current_chapter_index": self.current_chapter_index,
            "scroll_percentage": self.scroll_percentage,
            "document_structure": (
                self.document_structure.to_dict() if self.document_structure else None
            ),
            "settings": self.settings.to_dict(),
            "saved_at": self.saved_at or time.time() * 1000,
        }

    @classmethod
    def from_dict(cls, data: dict, default_settings: Settings | None = None) -> "Session":
        structure = data.get("document_structure")
        return cls(
            document_text=data.get("document_text") or "",
            current_word_index=int(data.get("current_word_index") or 0),
            total_words=int(data.get("total_words") or 0),
            view_mode=ViewMode(data.get("view_mode") or ViewMode.WORD_AT_A_TIME.value),
            current_chapter_index=int(data.get("current_chapter_index") or 0),
            scroll_percentage=float(data.get("scroll_percentage") or 0.0),
            document_structure=DocumentStructure.from_dict(structure) if structure else None,
            settings=Settings.from_dict(data.get("settings"), default_settings),
            saved_at=float(data.get("saved_at") or 0.0),
        )


def session_summary(data: dict | None) -> dict | None:
    """Summarize a stored session without rebuilding its document."""
    if not data:
        return None
    return {
        "current_word_index": data.get("current_word_index", 0),
        "total_words": data.get("total_words", 0),
        "saved_at": data.get("saved_at"),
        "has_text": bool(data.get("document_text")),
        "view_mode": data.get("view_mode") or ViewMode.WORD_AT_A_TIME.value,
        "current_chapter_index": data.get("current_chapter_index") or 0,
        "has_structure": bool(data.get("document_structure")),
    }
