"""reader.py — Host-facing reader: document loading, playback controls and sessions."""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Protocol

from config import ReaderConfig
from exceptions import IngestionError, SessionCorruptedError
from models import (
    Chapter,
    DocumentStructure,
    PlaybackState,
    Session,
    Settings,
    TocEntry,
    ViewMode,
)
from parsers.base import DecodedDocument, Section
from playback import PlaybackOrchestrator, ReaderState, Scheduler
from session_store import SessionStore
from structurer import (
    flatten_toc,
    global_word_stream,
    restore_renderable_content,
    structure_document,
    structure_with_words,
)
from wordstream import build_word_stream

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = """Welcome to speedbook.

Open an EPUB, PDF, Markdown or text file to start reading. Words appear one at a time at a fixed point so your eyes never have to move.

Switch to the page view at any time; both views share the same reading position."""


class RendererCapabilities(Protocol):
    def can_render_natively(self, file_type: str) -> bool: ...


def choose_renderer(file_type: str | None, capabilities: RendererCapabilities | None = None,
                    prefer_native: bool = True) -> str:
    """Pick "native-pdf", "native-epub" or the built-in "web" renderer."""
    if not prefer_native or not file_type or capabilities is None:
        return "web"
    if file_type in ("pdf", "epub") and capabilities.can_render_natively(file_type):
        return f"native-{file_type}"
    return "web"


@dataclass
class LoadedDocument:
    chapters: list[Chapter]
    toc: list[TocEntry]
    words: list[str]
    renderer: str = "web"


def _ingest(decoder: Callable[[bytes], DecodedDocument], file_bytes: bytes):
    try:
        decoded = decoder(file_bytes)
    except Exception as e:
        raise IngestionError(f"Could not decode document: {e}") from e
    if decoded is None or not decoded.sections:
        raise IngestionError("Document contains no readable sections")
    structure, words = structure_document(decoded)
    return decoded, structure, words


class Reader:
    """
    Owns one PlaybackOrchestrator and one SessionStore and exposes the
    operations a UI needs. Persistence never raises into the caller.
    """

    def __init__(self, store: SessionStore, scheduler: Scheduler,
                 settings: Settings | None = None, config: ReaderConfig | None = None,
                 capabilities: RendererCapabilities | None = None,
                 spawn: Callable | None = None):
        self.config = config or ReaderConfig()
        self.settings = settings or Settings(wpm=self.config.default_wpm)
        self.store = store
        self.scheduler = scheduler
        self.capabilities = capabilities
        self._spawn = spawn or asyncio.ensure_future
        self.playback = PlaybackOrchestrator(scheduler, self.settings, self.config.hold_threshold)
        self.playback.add_listener(self._on_state_change)
        self.file_type: str | None = None
        self.renderer = "web"
        self._ingesting = False
        self._autosave: object | None = None
        self._last_playback = PlaybackState.STOPPED
        self._install_placeholder()

    # -- document ------------------------------------------------------------

    @property
    def state(self) -> ReaderState:
        return self.playback.state

    @property
    def document_text(self) -> str:
        structure = self.state.structure
        if structure is None:
            return ""
        return "\n\n".join(ch.raw_text for ch in structure.chapters if ch.raw_text)

    def _install_placeholder(self) -> None:
        structure, words = structure_with_words(
            [Section(text=PLACEHOLDER_TEXT, source_ref="welcome")], title="Welcome"
        )
        self.playback.load(words, structure)

    async def load_document(self, file_bytes: bytes,
                            decoder: Callable[[bytes], DecodedDocument]) -> LoadedDocument:
        """
        Decode and structure a document off the event loop, then install it.
        Playback controls are disabled meanwhile. Raises IngestionError; the
        current document stays in place on failure.
        """
        if self._ingesting:
            raise IngestionError("Another document is still loading")

        self._ingesting = True
        self.playback.set_controls_enabled(False)
        try:
            decoded, structure, words = await asyncio.to_thread(_ingest, decoder, file_bytes)
        finally:
            self._ingesting = False
            self.playback.set_controls_enabled(True)

        self.file_type = decoded.file_type or None
        self.renderer = choose_renderer(self.file_type, self.capabilities)
        self.playback.load(words, structure)
        logger.info(
            "Loaded %r: %d chapters, %d tokens", structure.title, len(structure.chapters), len(words)
        )
        self._spawn(self.save_session())
        return LoadedDocument(structure.chapters, structure.toc, words, self.renderer)

    @property
    def is_loading(self) -> bool:
        return self._ingesting

    # -- position and playback -----------------------------------------------

    def set_position(self, index: int) -> None:
        self.playback.set_position(index)

    def get_position(self) -> int:
        return self.playback.get_position()

    def advance(self) -> bool:
        return self.playback.advance()

    def rewind(self, amount: int = 1) -> None:
        self.playback.rewind(amount)

    def play(self) -> bool:
        return self.playback.play()

    def pause(self) -> None:
        self.playback.pause()

    def stop(self) -> None:
        self.playback.stop()

    def switch_mode(self, mode: ViewMode) -> None:
        self.playback.switch_mode(mode)

    def navigate_to_chapter(self, chapter_index: int) -> bool:
        return self.playback.navigate_to_chapter(chapter_index)

    def jump_to_percentage(self, percent: float) -> None:
        self.playback.jump_to_percentage(percent)

    def jump_to_word_number(self, number: int) -> None:
        self.playback.jump_to_word_number(number)

    def update_settings(self, **changes) -> Settings:
        """Change reader settings; the session is saved with them."""
        self.settings = replace(self.settings, **changes)
        self.playback.update_settings(self.settings)
        self._spawn(self.save_session())
        return self.settings

    # -- autosave ------------------------------------------------------------

    def _on_state_change(self, state: ReaderState) -> None:
        if state.playback == self._last_playback:
            return
        previous, self._last_playback = self._last_playback, state.playback
        if state.playback == PlaybackState.PLAYING:
            self._arm_autosave()
        else:
            self._cancel_autosave()
            if previous == PlaybackState.PLAYING:
                self._spawn(self.save_session())

    def _arm_autosave(self) -> None:
        if self._autosave is None:
            self._autosave = self.scheduler.call_later(self.config.autosave_interval, self._autosave_tick)

    def _cancel_autosave(self) -> None:
        if self._autosave is not None:
            self._autosave.cancel()
            self._autosave = None

    def _autosave_tick(self) -> None:
        self._autosave = None
        if self.state.playback != PlaybackState.PLAYING:
            return
        self._spawn(self.save_session())
        self._arm_autosave()

    @property
    def autosave_armed(self) -> bool:
        return self._autosave is not None

    # -- sessions ------------------------------------------------------------

    def current_session(self) -> Session:
        state = self.state
        return Session(
            document_text=self.document_text,
            current_word_index=state.current_word_index,
            total_words=state.total_words,
            view_mode=state.view_mode,
            current_chapter_index=state.current_chapter_index,
            scroll_percentage=state.scroll_percentage,
            document_structure=state.structure,
            settings=self.settings,
        )

    async def save_session(self) -> bool:
        return await self.store.save(self.current_session())

    def _rebuild(self, session: Session) -> tuple[DocumentStructure, list[str]]:
        """Rebuild document and token stream from a stored session, or raise."""
        structure = session.document_structure
        if structure is not None and structure.chapters:
            expected = 0
            for chapter in structure.chapters:
                width = len(build_word_stream(chapter.raw_text))
                if (chapter.start_word_index != expected
                        or chapter.end_word_index - chapter.start_word_index != width):
                    raise SessionCorruptedError(
                        f"Chapter {chapter.id!r} boundaries do not match its {width} tokens"
                    )
                expected = chapter.end_word_index
            words = global_word_stream(structure.chapters)
            structure.toc = flatten_toc(structure.chapters)
            restore_renderable_content(structure)
        else:
            structure, words = structure_with_words(
                [Section(text=session.document_text, source_ref="text")]
            )
        if not words:
            raise SessionCorruptedError("Stored session has no readable text")
        return structure, words

    async def load_session(self) -> Session | None:
        """
        Restore the stored session. On any inconsistency the current document
        is kept untouched and None is returned.
        """
        data = await self.store.load()
        if data is None:
            return None
        try:
            session = Session.from_dict(data, self.settings)
            structure, words = self._rebuild(session)
        except (SessionCorruptedError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding stored session, keeping current document: %s", e)
            return None

        self.settings = session.settings
        self.playback.update_settings(self.settings)
        self.playback.load(
            words,
            structure,
            position=session.current_word_index,
            view_mode=session.view_mode,
            scroll_percentage=session.scroll_percentage,
        )
        session.document_structure = structure
        session.current_word_index = self.get_position()
        session.total_words = len(words)
        logger.info("Restored session at word %d of %d", session.current_word_index, len(words))
        return session

    async def has_session(self) -> bool:
        return await self.store.has()

    async def clear_session(self) -> bool:
        return await self.store.clear()

    async def flush(self) -> bool:
        """Best-effort save for visibility loss or shutdown; never raises."""
        try:
            return await self.save_session()
        except Exception:
            logger.exception("Best-effort session save failed")
            return False

    def on_visibility_lost(self) -> None:
        self._spawn(self.flush())

    def on_teardown(self) -> None:
        self.stop()
        self._cancel_autosave()
        self._spawn(self.flush())
