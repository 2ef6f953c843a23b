"""playback.py — Word-at-a-time playback and view synchronization over one reading position."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

import positions
from models import (
    DocumentStructure,
    ImageMarker,
    PlaybackState,
    Settings,
    ViewMode,
    display_text,
)
from timing import delay_for_settings, extract_word_frame, format_time_remaining, should_pause_at_word

logger = logging.getLogger(__name__)

HOLD_THRESHOLD = 0.2           # seconds a rewind press must last to count as a hold
REWIND_STEP_INTERVAL = 0.1     # seconds between continuous rewind steps
# (seconds held, tokens per rewind step)
REWIND_SPEED_TIERS = (
    (0.0, 1),
    (1.0, 3),
    (2.5, 10),
)
AUTO_PAUSE_REASONS = ("image", "periodic")


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Timer port; an asyncio event loop satisfies it."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...


@dataclass
class ReaderState:
    """Everything the orchestrator knows; mutated only through its methods."""
    words: list[str] = field(default_factory=list)
    structure: DocumentStructure | None = None
    current_word_index: int = 0
    playback: PlaybackState = PlaybackState.STOPPED
    view_mode: ViewMode = ViewMode.WORD_AT_A_TIME
    current_chapter_index: int = 0
    scroll_percentage: float = 0.0
    highlight_index: int | None = None     # paginated view marker
    pause_reason: str | None = None        # "user", "periodic" or "image"
    controls_enabled: bool = True

    @property
    def total_words(self) -> int:
        return len(self.words)


class PlaybackOrchestrator:
    """
    Drives the token stream forward on a timer and keeps the paginated view
    derived from the same current_word_index.

    At most one step (or auto-resume) is pending at any time.
    """

    def __init__(self, scheduler: Scheduler, settings: Settings | None = None,
                 hold_threshold: float = HOLD_THRESHOLD):
        self.scheduler = scheduler
        self.settings = settings or Settings()
        self.hold_threshold = hold_threshold
        self.state = ReaderState()
        self._image_stops: set[int] = set()    # positions with at least one available image
        self._image_shown_at: int | None = None
        self._pending: Handle | None = None
        self._hold_timer: Handle | None = None
        self._rewind_timer: Handle | None = None
        self._holding = False
        self._hold_active = False
        self._hold_elapsed = 0.0
        self._listeners: list[Callable[[ReaderState], None]] = []

    # -- listeners -----------------------------------------------------------

    def add_listener(self, listener: Callable[[ReaderState], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self.state)

    # -- document ------------------------------------------------------------

    def load(self, words: list[str], structure: DocumentStructure | None,
             position: int = 0, view_mode: ViewMode = ViewMode.WORD_AT_A_TIME,
             scroll_percentage: float | None = None) -> None:
        """Install a document; any playback in progress is stopped first."""
        self.stop()
        self.state = ReaderState(
            words=words,
            structure=structure,
            view_mode=view_mode,
            controls_enabled=self.state.controls_enabled,
        )
        images: list[ImageMarker] = structure.images if structure else []
        self._image_stops = {img.word_position for img in images if img.available}
        self._image_shown_at = None
        self._move_to(position)
        if scroll_percentage is not None and view_mode == ViewMode.PAGINATED:
            self.state.scroll_percentage = scroll_percentage
        self._notify()

    @property
    def current_token(self) -> str | None:
        i = self.state.current_word_index
        return self.state.words[i] if 0 <= i < len(self.state.words) else None

    def current_chapter(self):
        structure = self.state.structure
        if structure is None or not structure.chapters:
            return None
        return structure.chapters[self.state.current_chapter_index]

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings

    # -- timers --------------------------------------------------------------

    def _schedule(self, delay_ms: float, callback: Callable[[], None]) -> None:
        self._cancel_pending()
        self._pending = self.scheduler.call_later(delay_ms / 1000, callback)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _cancel_rewind_timers(self) -> None:
        for handle in (self._hold_timer, self._rewind_timer):
            if handle is not None:
                handle.cancel()
        self._hold_timer = None
        self._rewind_timer = None
        self._holding = False
        self._hold_active = False

    def _delay_for_current(self) -> float:
        return delay_for_settings(self.current_token or "", self.settings)

    # -- position ------------------------------------------------------------

    def _move_to(self, index: int) -> None:
        """Set the reading position and refresh every value derived from it."""
        state = self.state
        index = max(0, min(index, state.total_words))
        if index != state.current_word_index:
            self._image_shown_at = None
        state.current_word_index = index
        state.current_chapter_index = positions.chapter_at(state.structure, state.current_word_index)
        if state.view_mode == ViewMode.PAGINATED:
            state.highlight_index = state.current_word_index
            state.scroll_percentage = positions.scroll_percent_in_chapter(
                self.current_chapter(), state.current_word_index
            )

    def set_position(self, index: int) -> None:
        self._move_to(index)
        self._notify()

    def get_position(self) -> int:
        return self.state.current_word_index

    def select_word(self, index: int) -> None:
        """Explicit tap/click on a rendered word carrying its global index."""
        self.set_position(index)

    def scroll_to(self, percent: float) -> int:
        """
        Record ordinary scrolling in the paginated view. The reading position is
        left alone; the word index under the scroll point is returned for display.
        """
        self.state.scroll_percentage = max(0.0, min(100.0, percent))
        self._notify()
        return positions.word_index_from_scroll(self.current_chapter(), self.state.scroll_percentage)

    # -- playback ------------------------------------------------------------

    def play(self) -> bool:
        """Start or restart playback. Returns False when there is nothing to play."""
        state = self.state
        if not state.controls_enabled or not state.words:
            return False
        self._cancel_pending()
        if state.current_word_index >= state.total_words:
            self._move_to(0)
        state.playback = PlaybackState.PLAYING
        state.pause_reason = None
        if self._image_due(state.current_word_index):
            self._pause_for_image()
        else:
            self._schedule(self._delay_for_current(), self._step)
        self._notify()
        return True

    def pause(self, reason: str = "user") -> None:
        """Pause playback. An explicit pause also overrides a pending auto-resume."""
        state = self.state
        auto_paused = state.playback == PlaybackState.PAUSED and state.pause_reason in AUTO_PAUSE_REASONS
        if state.playback != PlaybackState.PLAYING and not auto_paused:
            return
        self._cancel_pending()
        self.state.playback = PlaybackState.PAUSED
        self.state.pause_reason = reason
        self._notify()

    def resume(self) -> bool:
        if self.state.playback != PlaybackState.PAUSED:
            return False
        return self.play()

    def toggle(self) -> None:
        if self.state.playback == PlaybackState.PLAYING:
            self.pause()
        elif self.state.playback == PlaybackState.PAUSED:
            self.resume()
        else:
            self.play()

    def stop(self) -> None:
        """Stop playback, keeping the position. Cancels every pending timer."""
        self._cancel_pending()
        self._cancel_rewind_timers()
        if self.state.playback != PlaybackState.STOPPED:
            self.state.playback = PlaybackState.STOPPED
            self.state.pause_reason = None
            self._notify()

    def set_controls_enabled(self, enabled: bool) -> None:
        """Disable (and stop) playback controls, e.g. while a document loads."""
        if not enabled:
            self.stop()
        self.state.controls_enabled = enabled

    def advance(self) -> bool:
        """Move one token forward outside of timed playback."""
        state = self.state
        if state.current_word_index + 1 >= state.total_words:
            return False
        self._move_to(state.current_word_index + 1)
        self._notify()
        return True

    def _step(self) -> None:
        self._pending = None
        state = self.state
        if state.playback != PlaybackState.PLAYING:
            return

        if state.current_word_index + 1 >= state.total_words:
            logger.debug("Reached end of document at %d", state.current_word_index)
            state.playback = PlaybackState.STOPPED
            self._notify()
            return

        self._move_to(state.current_word_index + 1)
        index = state.current_word_index

        if self._image_due(index):
            self._pause_for_image()
        elif should_pause_at_word(index, self.settings.pause_after_words):
            state.playback = PlaybackState.PAUSED
            state.pause_reason = "periodic"
            self._schedule(self.settings.pause_duration_ms, self._auto_resume)
        else:
            self._schedule(self._delay_for_current(), self._step)
        self._notify()

    def _image_due(self, index: int) -> bool:
        """True when an available image sits at index and has not been shown there yet."""
        return (
            self.settings.pause_on_images
            and index in self._image_stops
            and self._image_shown_at != index
        )

    def _pause_for_image(self) -> None:
        state = self.state
        state.playback = PlaybackState.PAUSED
        state.pause_reason = "image"
        self._image_shown_at = state.current_word_index
        self._schedule(self.settings.image_pause_duration_ms, self._auto_resume)

    def _auto_resume(self) -> None:
        self._pending = None
        if self.state.playback == PlaybackState.PAUSED and self.state.pause_reason in AUTO_PAUSE_REASONS:
            self.play()

    # -- rewind --------------------------------------------------------------

    def rewind(self, amount: int = 1) -> None:
        """Step back amount tokens. Playback is paused and stays paused."""
        self.pause()
        self._move_to(self.state.current_word_index - max(0, amount))
        self._notify()

    def begin_rewind_hold(self) -> None:
        """Rewind button pressed. Becomes a hold once held past hold_threshold."""
        if self._holding or not self.state.controls_enabled:
            return
        self.pause()
        self._holding = True
        self._hold_timer = self.scheduler.call_later(self.hold_threshold, self._start_continuous_rewind)

    def _start_continuous_rewind(self) -> None:
        self._hold_timer = None
        self._hold_active = True
        self._hold_elapsed = 0.0
        self._rewind_tick()

    def _rewind_speed(self) -> int:
        step = 1
        for held, tokens in REWIND_SPEED_TIERS:
            if self._hold_elapsed >= held:
                step = tokens
        return step

    def _rewind_tick(self) -> None:
        self._rewind_timer = None
        if self.state.current_word_index > 0:
            self._move_to(self.state.current_word_index - self._rewind_speed())
            self._notify()
        self._hold_elapsed += REWIND_STEP_INTERVAL
        self._rewind_timer = self.scheduler.call_later(REWIND_STEP_INTERVAL, self._rewind_tick)

    def end_rewind_hold(self) -> None:
        """
        Rewind button released. A release before the threshold is a tap: one
        token back, still paused. Releasing a hold resumes playback.
        """
        if not self._holding:
            return
        was_hold = self._hold_active
        self._cancel_rewind_timers()
        if was_hold:
            self.play()
        else:
            self.rewind(1)

    # -- views and navigation ------------------------------------------------

    def switch_mode(self, mode: ViewMode) -> None:
        state = self.state
        if mode == state.view_mode:
            return
        if mode == ViewMode.PAGINATED:
            self.pause()
            state.view_mode = mode
            self._move_to(state.current_word_index)
        else:
            state.view_mode = mode
            state.highlight_index = None
        self._notify()

    def navigate_to_chapter(self, chapter_index: int) -> bool:
        structure = self.state.structure
        if structure is None or not 0 <= chapter_index < len(structure.chapters):
            return False
        self._move_to(structure.chapters[chapter_index].start_word_index)
        self.state.current_chapter_index = chapter_index
        self.state.scroll_percentage = 0.0
        self._notify()
        return True

    def next_chapter(self) -> bool:
        current = self.state.current_chapter_index
        target = positions.next_chapter_index(self.state.structure, current)
        return target != current and self.navigate_to_chapter(target)

    def previous_chapter(self) -> bool:
        current = self.state.current_chapter_index
        target = positions.previous_chapter_index(current)
        return target != current and self.navigate_to_chapter(target)

    def jump_to_percentage(self, percent: float) -> None:
        self.set_position(positions.percentage_to_word_index(percent, self.state.total_words))

    def jump_to_word_number(self, number: int) -> None:
        """Jump to a 1-based word number."""
        total = self.state.total_words
        self.set_position(max(0, min(number - 1, total - 1)) if total else 0)

    # -- display helpers -----------------------------------------------------

    def current_frame(self) -> tuple[list[str], int]:
        words, center = extract_word_frame(
            self.state.words, self.state.current_word_index, self.settings.frame_size
        )
        return [display_text(w) for w in words], center

    def time_remaining(self) -> str:
        remaining = self.state.total_words - self.state.current_word_index
        return format_time_remaining(remaining, self.settings.wpm)

    def chapter_progress(self) -> float:
        return positions.chapter_progress(self.current_chapter(), self.state.current_word_index)
