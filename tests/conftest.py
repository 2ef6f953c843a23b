"""Shared test fixtures for the speedbook test suite."""

from __future__ import annotations

import itertools

import pytest

from parsers.base import OutlineEntry, Section, TextLine
from session_store import SessionStore
from storage import ArchiveStorage, LocalStorage


# ---------------------------------------------------------------------------
# Manual timer
# ---------------------------------------------------------------------------


class FakeHandle:
    def __init__(self, when: float, seq: int, callback) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """call_later() clock that only moves when a test advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[FakeHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback) -> FakeHandle:
        handle = FakeHandle(self.now + delay, next(self._seq), callback)
        self._timers.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self._timers if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Fire every timer due within the next ``seconds``, in order."""
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._timers.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target

    def run_next(self) -> None:
        """Fire the earliest pending timer."""
        handle = min(self.pending, key=lambda h: (h.when, h.seq))
        self.advance(handle.when - self.now)


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class CountingLocalStorage(LocalStorage):
    """LocalStorage that records which keys were read."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.reads: list[str] = []

    def get(self, key: str):
        self.reads.append(key)
        return super().get(key)


@pytest.fixture()
def local_storage(tmp_path) -> CountingLocalStorage:
    return CountingLocalStorage(tmp_path / "local.json", quota_bytes=64 * 1024)


@pytest.fixture()
def archive_storage(tmp_path) -> ArchiveStorage:
    return ArchiveStorage(tmp_path / "archive")


@pytest.fixture()
def store(local_storage, archive_storage) -> SessionStore:
    return SessionStore(local_storage, archive_storage)


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------


CHAPTER_ONE_HTML = (
    "<html><body>"
    "<h1>Chapter One</h1>"
    "<p>It was a bright cold day in April.</p>"
    "<p>The clocks were striking thirteen.</p>"
    "</body></html>"
)

CHAPTER_TWO_HTML = (
    "<html><body>"
    "<h1>Chapter Two</h1>"
    "<p>Outside, even through the shut window, the world looked cold.</p>"
    "</body></html>"
)

COPYRIGHT_HTML = "<html><body><p>Copyright 1949. All rights reserved.</p></body></html>"


@pytest.fixture()
def epub_sections() -> list[Section]:
    return [
        Section(html=COPYRIGHT_HTML, source_ref="OEBPS/copyright.xhtml"),
        Section(html=CHAPTER_ONE_HTML, source_ref="OEBPS/text/chapter1.xhtml"),
        Section(html=CHAPTER_TWO_HTML, source_ref="OEBPS/text/chapter2.xhtml"),
    ]


@pytest.fixture()
def epub_outline() -> list[OutlineEntry]:
    return [
        OutlineEntry(title="Chapter One", destination_ref="OEBPS/text/chapter1.xhtml"),
        OutlineEntry(title="Chapter Two", destination_ref="OEBPS/text/chapter2.xhtml#start"),
    ]


def make_page(number: int, paragraphs: list[list[str]], spacing: float = 12.0) -> Section:
    """A page of positioned lines; paragraphs are separated by a double gap."""
    lines = []
    y = 800.0
    for p, paragraph in enumerate(paragraphs):
        if p:
            y -= spacing * 2
        for text in paragraph:
            lines.append(TextLine(y=y, text=text))
            y -= spacing
    text = "\n".join(line.text for line in lines)
    return Section(text=text, source_ref=f"page-{number}", lines=lines)
