"""Tests for the EPUB and PDF decoders and for process configuration."""

from __future__ import annotations

import io
import zipfile

import pytest

from config import ReaderConfig, load_config, save_default_wpm
from parsers import decoder_for, parse_file
from parsers.base import OutlineEntry, clean_text
from parsers.epub_parser import decode_epub, decode_epub_directory
from parsers.pdf_parser import decode_pdf
from structurer import structure_document

CONTAINER = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""

OPF = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>Test Book</dc:title>
  </metadata>
  <manifest>
    {nav}
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="copy" href="text/copyright.xhtml" media-type="application/xhtml+xml"/>
    <item id="ch1" href="text/ch1.xhtml" media-type="application/xhtml+xml"/>
    <item id="ch2" href="text/ch2.xhtml" media-type="application/xhtml+xml"/>
    <item id="cover" href="images/cover.png" media-type="image/png"/>
    <item id="gone" href="images/gone.png" media-type="image/png"/>
  </manifest>
  <spine toc="ncx">
    <itemref idref="copy"/>
    <itemref idref="ch1"/>
    <itemref idref="ch2"/>
  </spine>
</package>"""

NAV_ITEM = '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>'

NAV = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<body>
  <nav epub:type="toc">
    <ol>
      <li><a href="text/ch1.xhtml">The Beginning</a>
        <ol><li><a href="text/ch2.xhtml#s1">The Middle</a></li></ol>
      </li>
    </ol>
  </nav>
</body>
</html>"""

NCX = """<?xml version="1.0" encoding="utf-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <navMap>
    <navPoint id="n1"><navLabel><text>First</text></navLabel><content src="text/ch1.xhtml"/>
      <navPoint id="n2"><navLabel><text>Second</text></navLabel><content src="text/ch2.xhtml"/></navPoint>
    </navPoint>
  </navMap>
</ncx>"""

COPYRIGHT = """<html xmlns="http://www.w3.org/1999/xhtml"><body>
<p>Copyright notice.</p></body></html>"""

CH1 = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml"><head><title>One</title></head><body>
<p>First chapter text.</p>
<img src="../images/cover.png" alt="Cover"/>
<p>After the picture.</p>
<img src="../images/gone.png"/>
</body></html>"""

CH2 = """<html xmlns="http://www.w3.org/1999/xhtml"><body>
<h2 id="s1">Middle</h2><p>Second chapter text.</p></body></html>"""


def epub_files(with_nav: bool = True) -> dict[str, bytes]:
    files = {
        "mimetype": "application/epub+zip",
        "META-INF/container.xml": CONTAINER,
        "OEBPS/content.opf": OPF.format(nav=NAV_ITEM if with_nav else ""),
        "OEBPS/toc.ncx": NCX,
        "OEBPS/text/copyright.xhtml": COPYRIGHT,
        "OEBPS/text/ch1.xhtml": CH1,
        "OEBPS/text/ch2.xhtml": CH2,
    }
    if with_nav:
        files["OEBPS/nav.xhtml"] = NAV
    encoded = {name: text.encode("utf-8") for name, text in files.items()}
    encoded["OEBPS/images/cover.png"] = b"\x89PNG fake"
    return encoded


def build_epub(with_nav: bool = True) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in epub_files(with_nav).items():
            zf.writestr(name, data)
    return buffer.getvalue()


class TestEpubDecoder:
    def test_spine_and_metadata(self) -> None:
        decoded = decode_epub(build_epub())
        assert decoded.title == "Test Book"
        assert decoded.file_type == "epub"
        assert [s.source_ref for s in decoded.sections] == [
            "OEBPS/text/copyright.xhtml",
            "OEBPS/text/ch1.xhtml",
            "OEBPS/text/ch2.xhtml",
        ]
        assert "First chapter text." in decoded.sections[1].text

    def test_nav_outline(self) -> None:
        decoded = decode_epub(build_epub())
        assert decoded.outline == [
            OutlineEntry(title="The Beginning", destination_ref="OEBPS/text/ch1.xhtml", level=1),
            OutlineEntry(title="The Middle", destination_ref="OEBPS/text/ch2.xhtml#s1", level=2),
        ]

    def test_ncx_outline_without_nav(self) -> None:
        decoded = decode_epub(build_epub(with_nav=False))
        assert [(e.title, e.destination_ref, e.level) for e in decoded.outline] == [
            ("First", "OEBPS/text/ch1.xhtml", 1),
            ("Second", "OEBPS/text/ch2.xhtml", 2),
        ]

    def test_image_references_resolved(self) -> None:
        decoded = decode_epub(build_epub())
        assert decoded.resources == frozenset({"OEBPS/images/cover.png"})
        assert 'src="OEBPS/images/cover.png"' in decoded.sections[1].html

    def test_structured_chapters_and_images(self) -> None:
        doc, words = structure_document(decode_epub(build_epub()))
        assert [ch.title for ch in doc.chapters] == ["Front Matter", "The Beginning", "The Middle"]
        assert doc.has_native_structure
        cover, gone = doc.chapters[1].images
        assert cover.available and cover.alt_text == "Cover"
        assert not gone.available
        # "Copyright notice." then "First chapter text."
        assert cover.word_position == 2 + 3
        assert doc.total_words == len(words)

    def test_not_a_zip(self) -> None:
        with pytest.raises(ValueError):
            decode_epub(b"plain bytes")

    def test_unpacked_directory(self, tmp_path) -> None:
        root = tmp_path / "book.epub.dir"
        for name, data in epub_files().items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        decoded = decode_epub_directory(root)
        assert len(decoded.sections) == 3
        assert parse_file(root).title == "Test Book"

    def test_parse_file_defaults_title_to_stem(self, tmp_path) -> None:
        path = tmp_path / "my_notes.txt"
        path.write_text("some text", encoding="utf-8")
        assert parse_file(path).title == "my notes"


class TestPdfDecoder:
    @pytest.fixture()
    def pdf_bytes(self) -> bytes:
        import fitz

        doc = fitz.open()
        for n in range(1, 4):
            page = doc.new_page()
            page.insert_text((72, 72), f"Page {n} opening line")
            page.insert_text((72, 86), "and its continuation")
        doc.set_toc([[1, "Intro", 1], [1, "Later", 3], [2, "Detail", 3]])
        data = doc.tobytes()
        doc.close()
        return data

    def test_pages_and_bookmarks(self, pdf_bytes) -> None:
        decoded = decode_pdf(pdf_bytes)
        assert decoded.page_oriented
        assert decoded.file_type == "pdf"
        assert [s.source_ref for s in decoded.sections] == ["page-1", "page-2", "page-3"]
        assert [(e.title, e.destination_ref) for e in decoded.outline] == [
            ("Intro", "page-1"),
            ("Later", "page-3"),
        ]
        assert any("Page 1 opening line" in line.text for line in decoded.sections[0].lines)

    def test_structured_by_bookmarks(self, pdf_bytes) -> None:
        doc, words = structure_document(decode_pdf(pdf_bytes))
        assert [ch.title for ch in doc.chapters] == ["Intro", "Later"]
        assert [(ch.page_start, ch.page_end) for ch in doc.chapters] == [(1, 2), (3, 3)]
        assert doc.total_words == len(words)


class TestDecoderLookup:
    def test_known_extensions(self) -> None:
        assert decoder_for(".EPUB") is decode_epub
        assert decoder_for(".pdf") is decode_pdf

    def test_unknown_extension(self) -> None:
        with pytest.raises(ValueError):
            decoder_for(".docx")

    def test_clean_text(self) -> None:
        assert clean_text("Wait!!!  what\u00adever &amp; more\n\n\n\nEnd") == "Wait! whatever & more\n\nEnd"


class TestConfig:
    KEYS = (
        "SPEEDBOOK_STORAGE_DIR",
        "SPEEDBOOK_DEFAULT_WPM",
        "SPEEDBOOK_AUTOSAVE_INTERVAL",
        "SPEEDBOOK_LOCAL_QUOTA_BYTES",
        "SPEEDBOOK_MAX_LOCAL_PAYLOAD_BYTES",
        "SPEEDBOOK_HOLD_THRESHOLD",
    )

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch) -> None:
        for key in self.KEYS:
            monkeypatch.delenv(key, raising=False)

    def test_defaults(self, tmp_path) -> None:
        config = load_config(tmp_path / "missing.env")
        assert config == ReaderConfig()
        assert config.local_store_path.name == "local.json"

    def test_values_from_env_file(self, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"SPEEDBOOK_STORAGE_DIR={tmp_path / 'store'}\n"
            "SPEEDBOOK_DEFAULT_WPM=420\n"
            "SPEEDBOOK_AUTOSAVE_INTERVAL=2.5\n",
            encoding="utf-8",
        )
        config = load_config(env_file)
        assert config.storage_dir == tmp_path / "store"
        assert config.default_wpm == 420
        assert config.autosave_interval == 2.5
        assert config.archive_dir == tmp_path / "store" / "archive"

    def test_save_default_wpm(self, tmp_path) -> None:
        env_file = tmp_path / ".env"
        save_default_wpm(510, env_file)
        assert "SPEEDBOOK_DEFAULT_WPM" in env_file.read_text(encoding="utf-8")
        assert load_config(env_file).default_wpm == 510
