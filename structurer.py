"""structurer.py — Build chapters, word boundaries and a flat TOC from decoded sections."""

import html
import logging
import math
import posixpath
import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup
from bs4.element import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction

from models import Chapter, DocumentStructure, ImageMarker, TocEntry
from parsers.base import DecodedDocument, OutlineEntry, Section, TextLine, strip_fragment
from wordstream import build_word_stream, count_words

logger = logging.getLogger(__name__)

PAGES_PER_CHUNK = 10
DEFAULT_LINE_SPACING = 12.0
PARAGRAPH_GAP_FACTOR = 1.5
CONTINUATION_GAP_FACTOR = 0.5

BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6",
    "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "tr", "ul",
}
SKIPPED_TAGS = {"script", "style", "head", "title", "noscript"}


@dataclass
class _Draft:
    """A chapter before its text and word boundaries are computed."""
    id: str
    title: str
    level: int
    source_ref: str | None
    parts: list[Section] = field(default_factory=list)
    page_start: int | None = None
    page_end: int | None = None


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


def page_text_from_lines(lines: list[TextLine]) -> str:
    """
    Rebuild a page's text from positioned lines.

    The average line spacing is measured per page. A vertical gap above 1.5x
    that average starts a new paragraph, above 0.5x continues the line with a
    space, and anything smaller adds no separator.
    """
    if not lines:
        return ""

    ys = sorted((line.y for line in lines), reverse=True)
    spacings = [
        abs(a - b) for a, b in zip(ys, ys[1:])
        if 1 < abs(a - b) < 50   # ignore jitter within a line and column jumps
    ]
    avg_spacing = sum(spacings) / len(spacings) if spacings else DEFAULT_LINE_SPACING
    paragraph_threshold = avg_spacing * PARAGRAPH_GAP_FACTOR

    parts = []
    last_y = None
    for line in lines:
        if last_y is not None:
            gap = abs(last_y - line.y)
            if gap > paragraph_threshold:
                parts.append("\n\n")
            elif gap > avg_spacing * CONTINUATION_GAP_FACTOR:
                parts.append(" ")
        parts.append(line.text + " ")
        last_y = line.y

    return _normalize_paragraphs("".join(parts))


def _normalize_paragraphs(text: str) -> str:
    """One paragraph per line, separated by blank lines, single spaces inside."""
    paragraphs = (" ".join(line.split()) for line in text.splitlines())
    return "\n\n".join(p for p in paragraphs if p)


def html_to_text(markup: str) -> tuple[str, list[tuple[int, str, str]]]:
    """
    Extract plain text from HTML, one block element per line.

    Returns (raw_text, images) where each image is (char_offset, src, alt) and
    char_offset is where the image sits in raw_text.
    """
    soup = BeautifulSoup(markup, features="lxml")
    pieces: list[str] = []
    images: list[tuple[int, str, str]] = []
    length = 0

    def emit(s: str) -> None:
        nonlocal length
        pieces.append(s)
        length += len(s)

    def walk(node) -> None:
        for child in node.children:
            if isinstance(child, (Comment, Declaration, Doctype, ProcessingInstruction)):
                continue
            if isinstance(child, NavigableString):
                emit(re.sub(r"\s+", " ", str(child)))
                continue
            name = child.name
            if name in SKIPPED_TAGS:
                continue
            if name == "img":
                images.append((length, child.get("src", ""), child.get("alt", "")))
            elif name == "image":
                src = child.get("xlink:href") or child.get("href") or ""
                images.append((length, src, ""))
            elif name == "br":
                emit("\n")
            else:
                block = name in BLOCK_TAGS
                if block:
                    emit("\n")
                walk(child)
                if block:
                    emit("\n")

    walk(soup.body or soup)
    return "".join(pieces), images


def sanitize_html(markup: str) -> str:
    """Strip scripts and inline event handlers from section HTML."""
    soup = BeautifulSoup(markup, features="lxml")
    for tag in soup.find_all(["script", "noscript"]):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in [a for a in tag.attrs if a.lower().startswith("on")]:
            del tag[attr]
    body = soup.body
    return body.decode_contents() if body is not None else str(soup)


def render_paragraphs(text: str) -> str:
    """Renderable HTML for plain text: one <p> per paragraph."""
    return "".join(
        f"<p>{html.escape(line)}</p>" for line in text.splitlines() if line.strip()
    )


def _section_content(section: Section) -> tuple[str, str, str, list[tuple[int, str, str]]]:
    """(raw_text, text, renderable_html, images) for one section."""
    if section.html:
        raw, images = html_to_text(section.html)
        return raw, _normalize_paragraphs(raw), sanitize_html(section.html), images
    if section.lines:
        text = page_text_from_lines(section.lines)
    else:
        text = _normalize_paragraphs(section.text)
    return text, text, render_paragraphs(text), []


# ---------------------------------------------------------------------------
# Chapter drafting
# ---------------------------------------------------------------------------


def _stem(ref: str | None) -> str:
    """Filename without path or extension."""
    name = posixpath.basename(strip_fragment(ref))
    return posixpath.splitext(name)[0]


def _match_section(entry: OutlineEntry, by_ref: dict, by_stem: dict) -> int | None:
    ref = strip_fragment(entry.destination_ref)
    if not ref:
        return None
    if ref in by_ref:
        return by_ref[ref]
    return by_stem.get(_stem(ref))


def _drafts_from_outline(sections: list[Section], outline: list[OutlineEntry]) -> list[_Draft] | None:
    by_ref: dict[str, int] = {}
    by_stem: dict[str, int] = {}
    for i, section in enumerate(sections):
        by_ref.setdefault(strip_fragment(section.source_ref), i)
        by_stem.setdefault(_stem(section.source_ref), i)

    titled: dict[int, OutlineEntry] = {}
    for entry in outline:
        idx = _match_section(entry, by_ref, by_stem)
        if idx is None:
            logger.info("TOC entry %r matches no section", entry.title)
            continue
        # Later entries pointing into an already titled section are anchors within it.
        titled.setdefault(idx, entry)

    if not titled:
        logger.warning("No TOC entry matched any section; using section order")
        return None

    drafts = []
    first = min(titled)
    if first > 0:
        drafts.append(_Draft(
            id="front-matter",
            title="Front Matter",
            level=1,
            source_ref=sections[0].source_ref,
            parts=list(sections[:first]),
        ))

    for i in range(first, len(sections)):
        section = sections[i]
        entry = titled.get(i)
        if entry is not None:
            drafts.append(_Draft(
                id=entry.destination_ref or section.source_ref or f"section-{i}",
                title=entry.title or f"Chapter {i + 1}",
                level=entry.level,
                source_ref=section.source_ref,
                parts=[section],
            ))
        else:
            drafts.append(_Draft(
                id=section.source_ref or f"section-{i}",
                title=f"Chapter {i + 1}",
                level=1,
                source_ref=section.source_ref,
                parts=[section],
            ))
    return drafts


def _drafts_from_sections(sections: list[Section], title: str | None) -> list[_Draft]:
    drafts = []
    for i, section in enumerate(sections):
        if len(sections) == 1 and title:
            chapter_title = title
        elif "." in posixpath.basename(section.source_ref or ""):
            chapter_title = _stem(section.source_ref)
        else:
            chapter_title = f"Chapter {i + 1}"
        drafts.append(_Draft(
            id=section.source_ref or f"section-{i}",
            title=chapter_title,
            level=1,
            source_ref=section.source_ref,
            parts=[section],
        ))
    return drafts


def _outline_page(entry: OutlineEntry, pages: list[Section]) -> int:
    """1-based page an outline entry points at; unresolvable entries land on page 1."""
    ref = strip_fragment(entry.destination_ref)
    m = re.fullmatch(r"page-(\d+)", ref)
    if m:
        return min(max(1, int(m.group(1))), max(1, len(pages)))
    for i, page in enumerate(pages):
        if ref and strip_fragment(page.source_ref) == ref:
            return i + 1
    logger.info("Outline entry %r has no resolvable page", entry.title)
    return 1


def _drafts_from_page_outline(pages: list[Section], outline: list[OutlineEntry]) -> list[_Draft]:
    located = sorted(
        ((_outline_page(entry, pages), n, entry) for n, entry in enumerate(outline)),
        key=lambda item: (item[0], item[1]),
    )
    drafts = []
    first_page = located[0][0]
    if first_page > 1:
        drafts.append(_Draft(
            id="pdf-front-matter",
            title="Front Matter",
            level=1,
            source_ref=pages[0].source_ref,
            parts=list(pages[:first_page - 1]),
            page_start=1,
            page_end=first_page - 1,
        ))

    for i, (start, _, entry) in enumerate(located):
        end = located[i + 1][0] - 1 if i + 1 < len(located) else len(pages)
        drafts.append(_Draft(
            id=f"pdf-chapter-{i}",
            title=entry.title or f"Chapter {i + 1}",
            level=entry.level,
            source_ref=entry.destination_ref,
            parts=list(pages[start - 1:end]),
            page_start=start,
            page_end=max(start, end),
        ))
    return drafts


def _drafts_from_pages(pages: list[Section], title: str | None) -> list[_Draft]:
    """Group pages into chunks of about ten, titled by page range."""
    if not pages:
        return []
    chunk_size = math.ceil(len(pages) / max(1, len(pages) // PAGES_PER_CHUNK))
    drafts = []
    for i in range(0, len(pages), chunk_size):
        end = min(i + chunk_size, len(pages))
        start = i + 1
        drafts.append(_Draft(
            id=f"pdf-page-{start}",
            title=f"Page {start}" if start == end else f"Pages {start}-{end}",
            level=1,
            source_ref=pages[i].source_ref,
            parts=list(pages[i:end]),
            page_start=start,
            page_end=end,
        ))
    if len(drafts) == 1 and title:
        drafts[0].title = title
    return drafts


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------


def _image_available(src: str, resources: frozenset[str]) -> bool:
    if src.startswith("data:"):
        return True
    return strip_fragment(src) in resources


def _finalize(drafts: list[_Draft], resources: frozenset[str]) -> tuple[list[Chapter], list[str]]:
    chapters: list[Chapter] = []
    words: list[str] = []

    for draft in drafts:
        texts: list[str] = []
        renderable: list[str] = []
        local_images: list[ImageMarker] = []

        for part in draft.parts:
            raw, text, content, images = _section_content(part)
            for offset, src, alt in images:
                prefix = "\n\n".join(texts + [_normalize_paragraphs(raw[:offset])])
                available = _image_available(src, resources)
                if not available:
                    logger.info("Image source not resolvable: %s", src or "<empty>")
                local_images.append(ImageMarker(
                    source_ref=src,
                    alt_text=alt,
                    word_position=count_words(prefix),
                    available=available,
                ))
            if text:
                texts.append(text)
            renderable.append(content)

        raw_text = "\n\n".join(texts)
        chapter_words = build_word_stream(raw_text)
        start = len(words)
        words.extend(chapter_words)

        for image in local_images:
            image.word_position += start

        chapters.append(Chapter(
            id=draft.id,
            title=draft.title,
            level=draft.level,
            source_ref=draft.source_ref,
            raw_text=raw_text,
            renderable_content="".join(renderable),
            start_word_index=start,
            end_word_index=len(words),
            images=local_images,
            page_start=draft.page_start,
            page_end=draft.page_end,
        ))

    return chapters, words


def flatten_toc(chapters: list[Chapter]) -> list[TocEntry]:
    """Display-ready TOC, one entry per chapter."""
    return [
        TocEntry(
            id=chapter.id,
            title=chapter.title,
            level=chapter.level,
            chapter_index=i,
            start_word_index=chapter.start_word_index,
            word_count=chapter.word_count,
        )
        for i, chapter in enumerate(chapters)
    ]


def global_word_stream(chapters: list[Chapter]) -> list[str]:
    """The document's token stream: every chapter's tokens in chapter order."""
    words: list[str] = []
    for chapter in chapters:
        words.extend(build_word_stream(chapter.raw_text))
    return words


def structure_with_words(
    sections: list[Section],
    outline: list[OutlineEntry] | None = None,
    resources: frozenset[str] = frozenset(),
    page_oriented: bool = False,
    title: str | None = None,
) -> tuple[DocumentStructure, list[str]]:
    """
    Build the document structure and its global token stream.

    Outline entries are matched to sections by reference, then by file stem;
    sections no entry claims keep a synthetic "Chapter N" title and content
    before the first entry becomes "Front Matter". Without an outline every
    section becomes a chapter, or, for page-oriented input, runs of about ten
    pages do.
    """
    outline = [entry for entry in (outline or []) if entry is not None]

    native = bool(outline)
    if page_oriented:
        if outline and sections:
            drafts = _drafts_from_page_outline(sections, outline)
        else:
            drafts = _drafts_from_pages(sections, title)
    else:
        drafts = _drafts_from_outline(sections, outline) if outline else None
        if drafts is None:
            native = False
            drafts = _drafts_from_sections(sections, title)

    chapters, words = _finalize(drafts, frozenset(resources))
    doc = DocumentStructure(
        chapters=chapters,
        toc=flatten_toc(chapters),
        has_native_structure=native,
        title=title,
    )
    logger.debug("Structured %d chapters, %d tokens", len(chapters), len(words))
    return doc, words


def structure(
    sections: list[Section],
    outline: list[OutlineEntry] | None = None,
    resources: frozenset[str] = frozenset(),
    page_oriented: bool = False,
    title: str | None = None,
) -> DocumentStructure:
    return structure_with_words(sections, outline, resources, page_oriented, title)[0]


def structure_document(document: DecodedDocument) -> tuple[DocumentStructure, list[str]]:
    """Structure a decoder's output."""
    return structure_with_words(
        document.sections,
        document.outline,
        document.resources,
        document.page_oriented,
        document.title,
    )


def restore_renderable_content(doc: DocumentStructure) -> None:
    """Regenerate paginated-view HTML from raw text after a session restore."""
    for chapter in doc.chapters:
        chapter.renderable_content = render_paragraphs(chapter.raw_text)
