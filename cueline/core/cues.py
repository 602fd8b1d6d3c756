"""Cue scheduler: upcoming-cue warnings and timed cue countdowns.

WHY: Inline directives interrupt playback at a word position. The session
knows where the speaker is only through tracking updates from the resolver,
so cue evaluation happens on each update and the resulting countdown runs
on the shared scheduler like every other timer.

HOW: CueScheduler holds the cue list for the current text/slide, the set of
already-triggered cues, the upcoming cue (with its 2 s display timer), and
at most one active cue countdown. evaluate() returns the cue that fired, if
any; the session then pauses the clock and calls start_countdown().

RULES:
- Cue identity is its position in the cue list; the triggered set holds
  positions and is cleared by load()/reset()
- Upcoming: the nearest untriggered cue strictly after the last spoken word,
  at most CUE_LOOKAHEAD_WORDS ahead, and not already upcoming
- Fire: the first untriggered cue at or before the last spoken word
- Firing clears the upcoming marker
- Countdown emits duration, duration-1, ..., 1 once per second, then
  on_done; a zero-length cue finishes immediately
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import List, Optional, Sequence, Set

from cueline.config import COUNTDOWN_INTERVAL_S, CUE_LOOKAHEAD_WORDS, UPCOMING_CUE_DISPLAY_S
from cueline.core.clock import Scheduler, TimerHandle
from cueline.core.script import Cue

logger = logging.getLogger(__name__)


class CueScheduler:
    """Tracks cue state for the active script and runs cue countdowns."""

    def __init__(
        self,
        scheduler: Scheduler,
        lookahead_words: int = CUE_LOOKAHEAD_WORDS,
        upcoming_display_s: float = UPCOMING_CUE_DISPLAY_S,
        countdown_interval: float = COUNTDOWN_INTERVAL_S,
    ) -> None:
        self._scheduler = scheduler
        self._lookahead = lookahead_words
        self._upcoming_display_s = upcoming_display_s
        self._countdown_interval = countdown_interval

        self.cues: List[Cue] = []
        self.triggered: Set[int] = set()
        self.upcoming_index: Optional[int] = None
        self.countdown: Optional[int] = None
        self.active_cue: Optional[Cue] = None

        self.on_upcoming_changed: Optional[Callable[[Optional[Cue]], None]] = None

        self._upcoming_handle: Optional[TimerHandle] = None
        self._countdown_handle: Optional[TimerHandle] = None
        self._on_tick: Optional[Callable[[int], None]] = None
        self._on_done: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Cue list management
    # ------------------------------------------------------------------

    def load(self, cues: Sequence[Cue]) -> None:
        """Replace the cue list and forget which cues already fired."""
        self.cues = list(cues)
        self.reset()

    def reset(self) -> None:
        """Forget triggered cues and the upcoming marker (reload or rewind)."""
        self.triggered.clear()
        self.clear_upcoming()

    @property
    def upcoming(self) -> Optional[Cue]:
        if self.upcoming_index is None or self.upcoming_index >= len(self.cues):
            return None
        return self.cues[self.upcoming_index]

    @property
    def is_counting_down(self) -> bool:
        return self.countdown is not None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, last_spoken_index: int) -> Optional[Cue]:
        """Update the upcoming marker and return the cue that fires, if any."""
        next_position = self._next_untriggered_after(last_spoken_index)
        if next_position is not None:
            distance = self.cues[next_position].word_index - last_spoken_index
            if distance <= self._lookahead and self.upcoming_index != next_position:
                self._set_upcoming(next_position)

        for position, cue in enumerate(self.cues):
            if position in self.triggered:
                continue
            if last_spoken_index >= cue.word_index:
                self.triggered.add(position)
                self.clear_upcoming()
                logger.info(
                    "Cue fired at word %d (%s, %.0fs)",
                    cue.word_index, cue.kind.value, cue.duration_s,
                )
                return cue
        return None

    def _next_untriggered_after(self, last_spoken_index: int) -> Optional[int]:
        best: Optional[int] = None
        for position, cue in enumerate(self.cues):
            if position in self.triggered or cue.word_index <= last_spoken_index:
                continue
            if best is None or cue.word_index < self.cues[best].word_index:
                best = position
        return best

    def _set_upcoming(self, position: int) -> None:
        if self._upcoming_handle is not None:
            self._upcoming_handle.cancel()
        self.upcoming_index = position
        self._upcoming_handle = self._scheduler.call_later(
            self._upcoming_display_s, self.clear_upcoming
        )
        if self.on_upcoming_changed:
            self.on_upcoming_changed(self.cues[position])

    def clear_upcoming(self) -> None:
        if self._upcoming_handle is not None:
            self._upcoming_handle.cancel()
            self._upcoming_handle = None
        if self.upcoming_index is None:
            return
        self.upcoming_index = None
        if self.on_upcoming_changed:
            self.on_upcoming_changed(None)

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------

    def start_countdown(
        self,
        cue: Cue,
        on_tick: Optional[Callable[[int], None]] = None,
        on_done: Optional[Callable[[], None]] = None,
    ) -> None:
        """Count down ``cue.duration_s`` seconds, then call on_done."""
        self.cancel_countdown()
        self.active_cue = cue
        self._on_tick = on_tick
        self._on_done = on_done

        duration = int(round(cue.duration_s))
        if duration <= 0:
            self._finish()
            return
        self.countdown = duration
        if on_tick:
            on_tick(duration)
        self._countdown_handle = self._scheduler.call_later(
            self._countdown_interval, self._countdown_step
        )

    def cancel_countdown(self) -> None:
        if self._countdown_handle is not None:
            self._countdown_handle.cancel()
            self._countdown_handle = None
        self.countdown = None
        self.active_cue = None
        self._on_tick = None
        self._on_done = None

    def _countdown_step(self) -> None:
        self._countdown_handle = None
        if self.countdown is None:
            return
        if self.countdown <= 1:
            self._finish()
            return
        self.countdown -= 1
        if self._on_tick:
            self._on_tick(self.countdown)
        self._countdown_handle = self._scheduler.call_later(
            self._countdown_interval, self._countdown_step
        )

    def _finish(self) -> None:
        on_done = self._on_done
        self.countdown = None
        self.active_cue = None
        self._on_tick = None
        self._on_done = None
        if on_done:
            on_done()
