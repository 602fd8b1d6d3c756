"""Playback clock: start delay countdown, per-frame scrolling, end detection.

WHY: The scroll must stay smooth regardless of how long the resolver takes
to answer. The clock therefore advances the offset on its own frame timer,
from the configured speed alone, and only exposes start/stop/rewind hooks to
the rest of the session.

HOW: A small state machine (ClockPhase) driven by timer handles obtained
from a Scheduler. An asyncio event loop satisfies the Scheduler protocol
directly (loop.time() and loop.call_later()), and tests use a manual fake.
Each frame computes the elapsed time since the previous frame and advances
the offset by effective_speed(slider) * delta.

RULES:
- IDLE -> DELAYING (countdown n, n-1, ..., 1 at 1 s steps) -> RUNNING
- Zero start delay goes straight to RUNNING
- RUNNING advances only when content_extent > viewport_extent
- Content extent 0 means "not measured yet" and never counts as the end
- End of content: offset + viewport >= content - 1; on_end_of_content()
  may return True to keep running (next slide), otherwise the clock stops
  with StopReason.END
- stop()/pause_for_cue() cancel every pending frame and countdown handle
- effective speed = 2.25 * slider + 25 (units/s), monotonic in the slider
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional, Protocol

from cueline.config import (
    COUNTDOWN_INTERVAL_S,
    END_TOLERANCE,
    FRAME_INTERVAL_S,
    SPEED_INTERCEPT,
    SPEED_SLOPE,
)

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The subset of asyncio.AbstractEventLoop the core relies on."""

    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def effective_speed(slider: float) -> float:
    """Map the 0-100 speed slider to scroll units per second (25-250)."""
    return SPEED_SLOPE * slider + SPEED_INTERCEPT


class ClockPhase(str, Enum):
    IDLE = "idle"
    DELAYING = "delaying"
    RUNNING = "running"
    PAUSED_FOR_CUE = "paused_for_cue"


class StopReason(str, Enum):
    USER = "user"
    END = "end"
    CUE = "cue"


class PlaybackClock:
    """Drives the scroll offset from the speed slider.

    Callbacks (all optional):
        on_countdown(value): a start-delay countdown value was shown
        on_running(): the clock entered RUNNING
        on_stopped(reason): the clock left DELAYING/RUNNING
        on_end_of_content() -> bool: end reached; True keeps the clock running
    """

    def __init__(
        self,
        scheduler: Scheduler,
        frame_interval: float = FRAME_INTERVAL_S,
        countdown_interval: float = COUNTDOWN_INTERVAL_S,
    ) -> None:
        self._scheduler = scheduler
        self._frame_interval = frame_interval
        self._countdown_interval = countdown_interval

        self.phase = ClockPhase.IDLE
        self.countdown: Optional[int] = None
        self.offset = 0.0
        self.viewport_extent = 0.0
        self.content_extent = 0.0
        self.speed = 0.0
        self.was_running_before_cue = False

        self.on_countdown: Optional[Callable[[int], None]] = None
        self.on_running: Optional[Callable[[], None]] = None
        self.on_stopped: Optional[Callable[[StopReason], None]] = None
        self.on_end_of_content: Optional[Callable[[], bool]] = None

        self._frame_handle: Optional[TimerHandle] = None
        self._countdown_handle: Optional[TimerHandle] = None
        self._last_frame_time: Optional[float] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.phase == ClockPhase.RUNNING

    @property
    def is_active(self) -> bool:
        """True while counting down or running."""
        return self.phase in (ClockPhase.DELAYING, ClockPhase.RUNNING)

    @property
    def at_end(self) -> bool:
        """True once the visible window reaches the end of known content."""
        if self.content_extent <= 0:
            return False
        return self.offset + self.viewport_extent >= self.content_extent - END_TOLERANCE

    def set_extents(self, viewport_extent: float, content_extent: float) -> None:
        self.viewport_extent = max(0.0, float(viewport_extent))
        self.content_extent = max(0.0, float(content_extent))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, delay: int = 0) -> None:
        """Begin playback, counting down ``delay`` seconds first."""
        if self.is_active:
            return
        self._cancel_handles()
        if delay > 0:
            self.phase = ClockPhase.DELAYING
            self.countdown = delay
            logger.debug("Start delay countdown from %d", delay)
            if self.on_countdown:
                self.on_countdown(delay)
            self._countdown_handle = self._scheduler.call_later(
                self._countdown_interval, self._countdown_step
            )
        else:
            self._enter_running()

    def stop(self, reason: StopReason = StopReason.USER) -> None:
        """Return to IDLE from any phase, cancelling pending ticks."""
        was_active = self.is_active
        self._cancel_handles()
        self.phase = ClockPhase.IDLE
        self.countdown = None
        self.was_running_before_cue = False
        if was_active and self.on_stopped:
            self.on_stopped(reason)

    def pause_for_cue(self) -> None:
        """Interrupt playback for a cue, remembering whether it was running."""
        self.was_running_before_cue = self.is_running
        was_active = self.is_active
        self._cancel_handles()
        self.phase = ClockPhase.PAUSED_FOR_CUE
        self.countdown = None
        if was_active and self.on_stopped:
            self.on_stopped(StopReason.CUE)

    def resume_after_cue(self, delay: int = 0) -> bool:
        """Leave PAUSED_FOR_CUE; restart only if it was running before.

        Returns:
            True if playback was restarted.
        """
        if self.phase != ClockPhase.PAUSED_FOR_CUE:
            return False
        self.phase = ClockPhase.IDLE
        if self.was_running_before_cue:
            self.was_running_before_cue = False
            self.start(delay)
            return True
        return False

    def reset_offset(self) -> None:
        self.offset = 0.0
        self._last_frame_time = None

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _countdown_step(self) -> None:
        self._countdown_handle = None
        if self.phase != ClockPhase.DELAYING or self.countdown is None:
            return
        if self.countdown <= 1:
            self.countdown = None
            self._enter_running()
            return
        self.countdown -= 1
        if self.on_countdown:
            self.on_countdown(self.countdown)
        self._countdown_handle = self._scheduler.call_later(
            self._countdown_interval, self._countdown_step
        )

    def _enter_running(self) -> None:
        self.phase = ClockPhase.RUNNING
        self.countdown = None
        self._last_frame_time = None
        if self.on_running:
            self.on_running()
        # on_running may have stopped us (e.g. a subscriber paused playback)
        if self.phase == ClockPhase.RUNNING:
            self._schedule_frame()

    def _schedule_frame(self) -> None:
        self._frame_handle = self._scheduler.call_later(self._frame_interval, self._on_frame)

    def _on_frame(self) -> None:
        self._frame_handle = None
        if self.phase != ClockPhase.RUNNING:
            return

        now = self._scheduler.time()
        if self._last_frame_time is None:
            self._last_frame_time = now
        delta = now - self._last_frame_time
        self._last_frame_time = now

        if self.content_extent > self.viewport_extent:
            self.offset += effective_speed(self.speed) * delta
            self.offset = min(self.offset, self.content_extent - self.viewport_extent)

        if self.at_end:
            keep_running = bool(self.on_end_of_content and self.on_end_of_content())
            if keep_running and self.phase == ClockPhase.RUNNING:
                self.reset_offset()
                self._schedule_frame()
            elif self.phase == ClockPhase.RUNNING:
                logger.info("Reached end of content at offset %.1f", self.offset)
                self.stop(StopReason.END)
            return

        self._schedule_frame()

    def _cancel_handles(self) -> None:
        if self._frame_handle is not None:
            self._frame_handle.cancel()
            self._frame_handle = None
        if self._countdown_handle is not None:
            self._countdown_handle.cancel()
            self._countdown_handle = None
        self._last_frame_time = None
