"""Shared test fixtures for the cueline test suite.

WHY: The clock, cue scheduler, and session are all driven by timers. Real
time makes tests slow and flaky, so every time-driven component is tested
against a manual scheduler that only moves when the test says so.

HOW: FakeScheduler implements the time()/call_later() subset of the asyncio
loop the core relies on; advance(seconds) fires due callbacks in time order,
including callbacks scheduled while advancing. FakeCapture stands in for the
sounddevice adapter and lets tests push clips into the session.

RULES:
- No test touches a real microphone, network, or wall clock
- Sample scripts are small and their word indices are spelled out in tests
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Union

import pytest

from cueline.api.models import AudioClip, Command, PlayerSnapshot, Resolution
from cueline.core.resolver import ResolverRequest
from cueline.core.session import TeleprompterSession
from cueline.core.state import Slide, SlideVideo
from cueline.errors import PermissionDenied


# ---------------------------------------------------------------------------
# Manual scheduler
# ---------------------------------------------------------------------------


class FakeHandle:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic stand-in for the asyncio event loop's timer API."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._handles: List[FakeHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        self._seq += 1
        handle = FakeHandle(self.now + delay, self._seq, callback, args)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every callback that becomes due."""
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self._handles = [h for h in self._handles if not h.cancelled]
        self.now = target


# ---------------------------------------------------------------------------
# Fake speech capture
# ---------------------------------------------------------------------------


class FakeCapture:
    def __init__(self, on_clip: Callable[[AudioClip], None], deny: bool = False) -> None:
        self.on_clip = on_clip
        self.deny = deny
        self.is_capturing = False
        self.devices: List[Union[int, str, None]] = []
        self.starts = 0
        self.stops = 0

    def start_capture(self, device: Union[int, str, None] = None) -> None:
        if self.deny:
            raise PermissionDenied("Microphone access was denied.")
        self.devices.append(device)
        self.starts += 1
        self.is_capturing = True

    def stop_capture(self) -> None:
        self.stops += 1
        self.is_capturing = False


class CaptureFactory:
    """Builds FakeCapture instances and remembers the last one."""

    def __init__(self, deny: bool = False) -> None:
        self.deny = deny
        self.instance: Optional[FakeCapture] = None

    def __call__(self, on_clip: Callable[[AudioClip], None]) -> FakeCapture:
        self.instance = FakeCapture(on_clip, deny=self.deny)
        return self.instance


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


SAMPLE_SCRIPT = "one two three [PAUSE 3 SECONDS] four five six seven"
"""Seven words; the pause cue sits at word index 3 ("four")."""


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def capture_factory() -> CaptureFactory:
    return CaptureFactory()


@pytest.fixture
def session(scheduler, capture_factory) -> TeleprompterSession:
    return TeleprompterSession(scheduler, capture_factory=capture_factory)


@pytest.fixture
def sample_slides() -> List[Slide]:
    return [
        Slide(image_url="https://img/1", speaker_notes="hello and welcome everyone"),
        Slide(
            image_url="https://img/2",
            speaker_notes="watch this [PLAY VIDEO 1] then we continue",
            videos=(SlideVideo(duration_s=4.0),),
        ),
        Slide(image_url="https://img/3", speaker_notes="thank you"),
    ]


def make_request(
    session: TeleprompterSession,
    sequence: int = 1,
    generation: Optional[int] = None,
) -> ResolverRequest:
    """A resolver request stamped with the session's current generation."""
    return ResolverRequest(
        clip=AudioClip(data=b"RIFF", sequence=sequence),
        script_text=session.state.text,
        scroll_speed=float(session.state.settings.scroll_speed),
        snapshot=session.snapshot(),
        generation=session.generation if generation is None else generation,
    )


def tracking(last: Optional[int], speed: Optional[float] = None) -> Resolution:
    return Resolution(
        command=Command.NO_OP,
        last_spoken_word_index=last,
        adjusted_scroll_speed=speed,
    )


def snapshot(**overrides: Any) -> PlayerSnapshot:
    values = dict(is_playing=True, prompter_mode="text", total_slides=0, current_slide_index=0)
    values.update(overrides)
    return PlayerSnapshot(**values)
