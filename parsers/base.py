"""parsers/base.py — Shared decoder types and text utilities."""

import html
import re
from dataclasses import dataclass, field


@dataclass
class TextLine:
    """A run of text on a page with its vertical position (page units)."""
    y: float
    text: str


@dataclass
class Section:
    """One unit of decoded content: an EPUB spine item, a PDF page, a Markdown part."""
    text: str = ""
    html: str = ""
    source_ref: str = ""
    lines: list[TextLine] = field(default_factory=list)   # page-oriented sources only


@dataclass
class OutlineEntry:
    title: str
    destination_ref: str | None
    level: int = 1


@dataclass
class DecodedDocument:
    """Standard return type for all decoders."""
    sections: list[Section]
    outline: list[OutlineEntry] | None = None
    resources: frozenset[str] = frozenset()   # resolvable image paths
    page_oriented: bool = False
    title: str | None = None
    file_type: str = ""                         # "epub", "pdf", "markdown", "text"


def clean_text(text: str) -> str:
    """Normalize decoded text: entities, soft hyphens, runs of blank lines."""
    text = html.unescape(text)
    text = text.replace("\u00ad", "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = text.split("\n")
    lines = [re.sub(r"[ \t\u00a0]+", " ", line).strip() for line in lines]
    cleaned_lines = []
    prev_blank = False
    for line in lines:
        if not line:
            if not prev_blank:
                cleaned_lines.append("")
            prev_blank = True
        else:
            cleaned_lines.append(line)
            prev_blank = False
    text = "\n".join(cleaned_lines).strip()
    # Collapse repeated sentence punctuation ("!!!" -> "!")
    return re.sub(r"([.!?])\1+", r"\1", text)


def strip_fragment(ref: str | None) -> str:
    return (ref or "").split("#", 1)[0]
