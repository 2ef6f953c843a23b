"""parsers/markdown_parser.py — Decode Markdown and plain text into sections."""

import re

from parsers.base import DecodedDocument, OutlineEntry, Section, clean_text


def _extract_frontmatter(content: str) -> tuple[dict, str]:
    """Extract YAML frontmatter (--- delimited) if present. Returns (meta, body)."""
    m = re.match(r"^---\s*\n(.*?)\n---\s*\n", content, re.DOTALL)
    if not m:
        return {}, content
    meta = {}
    for line in m.group(1).split("\n"):
        if ":" in line:
            key, _, value = line.partition(":")
            meta[key.strip().lower()] = value.strip().strip("\"'")
    return meta, content[m.end():]


def _split_by_headings(content: str) -> tuple[str, list[tuple[str, int, str]]]:
    """
    Split markdown by # or ## headings.
    Returns (preamble, [(heading_text, level, body_text), ...]).
    """
    heading_pattern = re.compile(r"^(#{1,2})\s+(.+)$", re.MULTILINE)
    matches = list(heading_pattern.finditer(content))
    if not matches:
        return content, []

    preamble = content[:matches[0].start()]
    base_level = min(len(m.group(1)) for m in matches)
    parts = []
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
        body = content[m.end():end]
        parts.append((m.group(2).strip(), len(m.group(1)) - base_level + 1, body))
    return preamble, parts


def _strip_inline_markup(text: str) -> str:
    text = re.sub(r"!\[([^\]]*)\]\([^)]*\)", r"\1", text)   # images -> alt text
    text = re.sub(r"\[([^\]]+)\]\([^)]*\)", r"\1", text)    # links -> label
    text = re.sub(r"(\*\*|__|\*|_|`)(.+?)\1", r"\2", text)
    return text


def _paragraphs(body: str) -> str:
    """Join wrapped lines so each paragraph is a single line."""
    blocks = re.split(r"\n\s*\n", body)
    return "\n\n".join(" ".join(block.split()) for block in blocks if block.strip())


def decode_markdown(data: bytes) -> DecodedDocument:
    """Each heading starts a section; headings form the outline."""
    content = data.decode("utf-8", errors="replace")
    frontmatter, body = _extract_frontmatter(content)
    preamble, parts = _split_by_headings(body)

    sections = []
    outline = []
    if preamble.strip():
        sections.append(Section(
            text=clean_text(_paragraphs(_strip_inline_markup(preamble))),
            source_ref="section-0",
        ))
    for heading, level, text in parts:
        ref = f"section-{len(sections)}"
        sections.append(Section(text=clean_text(_paragraphs(_strip_inline_markup(text))), source_ref=ref))
        outline.append(OutlineEntry(title=heading, destination_ref=ref, level=level))
    if not sections:
        sections.append(Section(text="", source_ref="section-0"))

    return DecodedDocument(
        sections=sections,
        outline=outline or None,
        title=frontmatter.get("title"),
        file_type="markdown",
    )


def decode_plain_text(data: bytes) -> DecodedDocument:
    """Plain text is a single section with no outline."""
    text = clean_text(data.decode("utf-8", errors="replace"))
    return DecodedDocument(
        sections=[Section(text=text, source_ref="text")],
        file_type="text",
    )
