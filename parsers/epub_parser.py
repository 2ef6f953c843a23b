"""parsers/epub_parser.py — Decode EPUB (packed or directory) into spine sections and an outline."""

import io
import logging
import posixpath
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path

from bs4 import BeautifulSoup

from parsers.base import DecodedDocument, OutlineEntry, Section

logger = logging.getLogger(__name__)

CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"
NCX_NS = "http://www.daisy.org/z3986/2005/ncx/"
OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


class _Archive:
    """Uniform read access to a zipped EPUB or an unpacked EPUB directory."""

    def __init__(self, zf: zipfile.ZipFile | None = None, root: Path | None = None):
        self._zf = zf
        self._root = root
        if zf is not None:
            self.names = set(zf.namelist())
        else:
            self.names = {
                p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
            }

    def read(self, name: str) -> bytes | None:
        if name not in self.names:
            return None
        if self._zf is not None:
            return self._zf.read(name)
        return (self._root / name).read_bytes()


def _resolve(base_file: str, href: str) -> str:
    """Resolve href relative to the archive path of base_file, keeping any fragment."""
    path, _, fragment = href.partition("#")
    if not path:
        resolved = base_file
    else:
        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(base_file), path))
    return f"{resolved}#{fragment}" if fragment else resolved


def _find_opf(archive: _Archive) -> str:
    container = archive.read("META-INF/container.xml")
    if container is not None:
        root = ET.fromstring(container)
        rootfile = root.find(f".//{{{CONTAINER_NS}}}rootfile")
        if rootfile is not None and rootfile.get("full-path"):
            return rootfile.get("full-path")
    candidates = sorted(n for n in archive.names if n.lower().endswith(".opf"))
    if not candidates:
        raise ValueError("No OPF package document found in EPUB")
    return candidates[0]


def _parse_ncx(archive: _Archive, ncx_path: str) -> list[OutlineEntry]:
    data = archive.read(ncx_path)
    if data is None:
        return []
    root = ET.fromstring(data)
    nav_map = root.find(f"{{{NCX_NS}}}navMap")
    if nav_map is None:
        return []

    entries: list[OutlineEntry] = []

    def walk(parent, level: int) -> None:
        for np in parent.findall(f"{{{NCX_NS}}}navPoint"):
            label = np.find(f"{{{NCX_NS}}}navLabel/{{{NCX_NS}}}text")
            content = np.find(f"{{{NCX_NS}}}content")
            title = label.text.strip() if label is not None and label.text else "Untitled"
            src = content.get("src", "") if content is not None else ""
            entries.append(OutlineEntry(
                title=title,
                destination_ref=_resolve(ncx_path, src) if src else None,
                level=level,
            ))
            walk(np, level + 1)

    walk(nav_map, 1)
    return entries


def _parse_nav(archive: _Archive, nav_path: str) -> list[OutlineEntry]:
    data = archive.read(nav_path)
    if data is None:
        return []
    soup = BeautifulSoup(data, features="lxml")
    nav = soup.find("nav", attrs={"epub:type": "toc"}) or soup.find("nav")
    if nav is None or nav.find("ol") is None:
        return []

    entries: list[OutlineEntry] = []

    def walk(ol, level: int) -> None:
        for li in ol.find_all("li", recursive=False):
            link = li.find(["a", "span"], recursive=False)
            if link is not None:
                href = link.get("href")
                entries.append(OutlineEntry(
                    title=link.get_text(" ", strip=True) or "Untitled",
                    destination_ref=_resolve(nav_path, href) if href else None,
                    level=level,
                ))
            child = li.find("ol", recursive=False)
            if child is not None:
                walk(child, level + 1)

    walk(nav.find("ol"), 1)
    return entries


def _extract_section(archive: _Archive, path: str) -> Section | None:
    data = archive.read(path)
    if data is None:
        logger.warning("Spine item missing from archive: %s", path)
        return None
    soup = BeautifulSoup(data, features="lxml")
    body = soup.body or soup

    # Point image references at archive paths so they can be checked against resources.
    for img in body.find_all("img"):
        if img.get("src"):
            img["src"] = _resolve(path, img["src"])
    for image in body.find_all("image"):
        href = image.get("xlink:href") or image.get("href")
        if href:
            image["xlink:href"] = _resolve(path, href)

    return Section(
        text=body.get_text(separator="\n", strip=True),
        html=body.decode_contents(),
        source_ref=path,
    )


def _decode_archive(archive: _Archive) -> DecodedDocument:
    opf_path = _find_opf(archive)
    opf_data = archive.read(opf_path)
    if opf_data is None:
        raise ValueError(f"OPF package document not readable: {opf_path}")
    root = ET.fromstring(opf_data)

    title = None
    t = root.find(f".//{{{DC_NS}}}title")
    if t is not None and t.text:
        title = t.text.strip()

    manifest: dict[str, dict] = {}
    for item in root.findall(f".//{{{OPF_NS}}}manifest/{{{OPF_NS}}}item"):
        manifest[item.get("id", "")] = {
            "path": _resolve(opf_path, item.get("href", "")),
            "media_type": item.get("media-type", ""),
            "properties": item.get("properties") or "",
        }

    spine = root.find(f".//{{{OPF_NS}}}spine")
    sections: list[Section] = []
    if spine is not None:
        for itemref in spine.findall(f"{{{OPF_NS}}}itemref"):
            item = manifest.get(itemref.get("idref", ""))
            if item is None:
                continue
            section = _extract_section(archive, item["path"])
            if section is not None:
                sections.append(section)

    outline: list[OutlineEntry] = []
    nav_item = next((i for i in manifest.values() if "nav" in i["properties"].split()), None)
    if nav_item is not None:
        outline = _parse_nav(archive, nav_item["path"])
    if not outline:
        ncx_id = spine.get("toc") if spine is not None else None
        ncx_item = manifest.get(ncx_id or "") or next(
            (i for i in manifest.values() if i["media_type"] == NCX_MEDIA_TYPE), None
        )
        if ncx_item is not None:
            outline = _parse_ncx(archive, ncx_item["path"])

    resources = frozenset(
        i["path"] for i in manifest.values()
        if i["media_type"].startswith("image/") and i["path"] in archive.names
    )

    logger.debug(
        "Decoded EPUB %r: %d sections, %d outline entries, %d images",
        title, len(sections), len(outline), len(resources),
    )
    return DecodedDocument(
        sections=sections,
        outline=outline or None,
        resources=resources,
        page_oriented=False,
        title=title,
        file_type="epub",
    )


def decode_epub(data: bytes) -> DecodedDocument:
    """Decode a packed EPUB from its bytes."""
    if not zipfile.is_zipfile(io.BytesIO(data)):
        raise ValueError("Not an EPUB archive (expected a zip container)")
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return _decode_archive(_Archive(zf=zf))


def decode_epub_directory(epub_dir: Path) -> DecodedDocument:
    """Decode an unpacked EPUB directory (e.g. ``unzip book.epub -d book.epub.dir``)."""
    epub_dir = Path(epub_dir)
    if not epub_dir.is_dir():
        raise FileNotFoundError(f"EPUB directory not found: {epub_dir}")
    return _decode_archive(_Archive(root=epub_dir))
