"""parsers/pdf_parser.py — Decode PDF pages and bookmarks using pymupdf."""

import logging

from tqdm import tqdm

from parsers.base import DecodedDocument, OutlineEntry, Section, TextLine

logger = logging.getLogger(__name__)


def page_ref(page_number: int) -> str:
    """Reference string for a 1-based page number."""
    return f"page-{page_number}"


def _outline_from_bookmarks(doc) -> list[OutlineEntry] | None:
    """Top-level PDF bookmarks as outline entries pointing at pages."""
    toc = doc.get_toc()  # list of [level, title, page_number]
    if not toc:
        return None

    # Use the shallowest level present
    min_level = min(level for level, _, _ in toc)
    outline = []
    for level, title, page in toc:
        if level != min_level:
            continue
        outline.append(OutlineEntry(
            title=title.strip(),
            destination_ref=page_ref(page) if page and page > 0 else None,
            level=1,
        ))
    return outline


def _page_lines(page) -> list[TextLine]:
    """Text lines of a page in content order with their vertical positions."""
    lines = []
    for block in page.get_text("dict").get("blocks", []):
        for line in block.get("lines", []):
            text = "".join(span.get("text", "") for span in line.get("spans", []))
            if text.strip():
                lines.append(TextLine(y=line["bbox"][3], text=text))
    return lines


def decode_pdf(data: bytes, show_progress: bool = False) -> DecodedDocument:
    """
    Decode a PDF into one section per page.
    Pages carry their text lines with positions so paragraph breaks can be
    recovered from vertical gaps during structuring.
    """
    import fitz  # pymupdf

    doc = fitz.open(stream=data, filetype="pdf")
    try:
        pdf_meta = doc.metadata or {}
        title = (pdf_meta.get("title") or "").strip() or None

        sections = []
        for page_num in tqdm(range(doc.page_count), desc="  Pages", unit="page",
                             disable=not show_progress):
            page = doc[page_num]
            sections.append(Section(
                text=page.get_text("text"),
                source_ref=page_ref(page_num + 1),
                lines=_page_lines(page),
            ))

        outline = _outline_from_bookmarks(doc)
    finally:
        doc.close()

    logger.debug("Decoded PDF %r: %d pages, outline=%s", title, len(sections), bool(outline))
    return DecodedDocument(
        sections=sections,
        outline=outline,
        page_oriented=True,
        title=title,
        file_type="pdf",
    )
