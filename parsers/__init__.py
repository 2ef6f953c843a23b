"""parsers/ — Format decoders producing raw sections and an outline."""

from pathlib import Path

from parsers.base import DecodedDocument

SUPPORTED_EXTENSIONS = {".epub", ".md", ".markdown", ".pdf", ".txt"}


def decoder_for(suffix: str):
    """Return the decode(bytes) callable for a file extension."""
    suffix = suffix.lower()
    if suffix == ".epub":
        from parsers.epub_parser import decode_epub
        return decode_epub
    elif suffix in (".md", ".markdown"):
        from parsers.markdown_parser import decode_markdown
        return decode_markdown
    elif suffix == ".txt":
        from parsers.markdown_parser import decode_plain_text
        return decode_plain_text
    elif suffix == ".pdf":
        from parsers.pdf_parser import decode_pdf
        return decode_pdf
    else:
        raise ValueError(
            f"Unsupported file format: '{suffix}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )


def parse_file(file_path: Path) -> DecodedDocument:
    """Decode a file on disk, dispatching on its extension."""
    file_path = Path(file_path)

    if file_path.is_dir():
        from parsers.epub_parser import decode_epub_directory
        return decode_epub_directory(file_path)

    decode = decoder_for(file_path.suffix)
    document = decode(file_path.read_bytes())
    if not document.title:
        document.title = file_path.stem.replace("_", " ")
    return document
