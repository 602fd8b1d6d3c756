"""Teleprompter session: the single owner of playback state.

WHY: Manual controls, voice commands, pace tracking, cue countdowns, and
the end-of-content check all change the same handful of values. Letting
each of them poke at state directly produces races where a slow model
answer undoes a button press. The session funnels every change through
one dispatch path on the event loop and stamps resolver requests with a
generation counter so stale answers can be recognized and dropped.

HOW: TeleprompterSession composes the PlaybackClock, CueScheduler,
CommandLog, MirrorBus, PositionResolver, and a speech capture adapter.
dispatch(Action) routes manual actions to handlers; resolver results come
back through the same handlers via _apply_resolution(). Clock and cue
callbacks keep SessionState in sync and publish mirror events. Errors are
turned into Notification records (bounded queue) and logged.

RULES:
- All mutation happens on the event loop thread
- Manual actions that move the playback position, and every applied
  non-tracking command, bump the generation; a result stamped with an
  older generation is dropped
- A result for a clip older than the last applied clip is dropped
- Tracking results are dropped when voice control is off or playback is
  not running
- Play/pause is disabled in slides mode with slide display and while a
  cue countdown runs
- Capture runs only while playing, with voice control on, in a scrolling
  view (text mode, or slides with notes display)
- Every text, settings, mode, or slide change publishes settings_update
- dispatch() records a Notification for any CueLineError and re-raises it
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Protocol, Union

from cueline.api.models import AudioClip, Command, PlayerSnapshot, Resolution
from cueline.config import MAX_NOTIFICATIONS, NOTES_ADVANCE_MARGIN_WORDS, RESOLVER_TIMEOUT_S
from cueline.core.bus import MirrorBus
from cueline.core.clock import PlaybackClock, Scheduler, StopReason
from cueline.core.commandlog import PAUSE, PLAY, CommandLog
from cueline.core.cues import CueScheduler
from cueline.core.resolver import PositionResolver, ResolveFn, ResolverRequest
from cueline.core.script import Cue, Script
from cueline.core.state import (
    PrompterMode,
    SessionState,
    Settings,
    Slide,
    SlideDisplayMode,
)
from cueline.errors import (
    ConfigurationError,
    CueLineError,
    PermissionDenied,
    ValidationError,
)
from cueline.formatters import FORMATTERS
from cueline.formatters.base import FormatterOutput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Actions and notifications
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    TOGGLE_PLAY = "toggle_play"
    PLAY = "play"
    PAUSE = "pause"
    REWIND = "rewind"
    SET_TEXT = "set_text"
    UPDATE_SETTINGS = "update_settings"
    RESET_SETTINGS = "reset_settings"
    SET_MODE = "set_mode"
    SET_SLIDE_DISPLAY = "set_slide_display"
    NEXT_SLIDE = "next_slide"
    PREVIOUS_SLIDE = "previous_slide"
    GO_TO_SLIDE = "go_to_slide"
    LOAD_SLIDES = "load_slides"
    LOAD_DOCUMENT = "load_document"
    SET_VOICE_CONTROL = "set_voice_control"
    SET_CUES = "set_cues"
    SET_VIEWPORT = "set_viewport"
    ENABLE_LOG = "enable_log"
    DISABLE_LOG = "disable_log"
    CLEAR_LOG = "clear_log"


# Manual actions after which in-flight resolver answers are stale
_POSITION_ACTIONS = frozenset({
    ActionType.TOGGLE_PLAY,
    ActionType.PLAY,
    ActionType.PAUSE,
    ActionType.REWIND,
    ActionType.SET_TEXT,
    ActionType.SET_MODE,
    ActionType.NEXT_SLIDE,
    ActionType.PREVIOUS_SLIDE,
    ActionType.GO_TO_SLIDE,
    ActionType.LOAD_SLIDES,
    ActionType.LOAD_DOCUMENT,
})


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Notification:
    """A non-fatal message for the operator."""

    title: str
    message: str
    level: str = "error"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "level": self.level,
            "created_at": self.created_at.isoformat(),
        }


class CaptureAdapter(Protocol):
    @property
    def is_capturing(self) -> bool: ...

    def start_capture(self, device: Union[int, str, None] = None) -> None: ...

    def stop_capture(self) -> None: ...


CaptureFactory = Callable[[Callable[[AudioClip], None]], CaptureAdapter]


async def _unconfigured(request: ResolverRequest) -> Resolution:
    raise ConfigurationError(
        "Voice Control is not configured. "
        "Please ensure your GOOGLE_API_KEY is set correctly in the .env file."
    )


def _default_capture_factory(scheduler: Scheduler) -> CaptureFactory:
    def factory(on_clip: Callable[[AudioClip], None]) -> CaptureAdapter:
        # Imported lazily: opening PortAudio is only needed for voice control
        from cueline.capture.recorder import SpeechCaptureAdapter
        return SpeechCaptureAdapter(scheduler, on_clip)  # type: ignore[arg-type]

    return factory


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TeleprompterSession:
    """One operator's prompter: state, timers, voice control, and the log.

    Args:
        scheduler: Event loop (or a fake with time()/call_later()).
        resolve: Coroutine function turning a ResolverRequest into a
            Resolution. None means voice control is not configured.
        capture_factory: Builds the speech capture adapter for a clip
            callback. Defaults to the sounddevice-backed adapter.
        bus: Mirror bus to publish on (a new one by default).
    """

    def __init__(
        self,
        scheduler: Scheduler,
        resolve: Optional[ResolveFn] = None,
        capture_factory: Optional[CaptureFactory] = None,
        bus: Optional[MirrorBus] = None,
        command_log: Optional[CommandLog] = None,
        resolver_timeout: float = RESOLVER_TIMEOUT_S,
    ) -> None:
        self.state = SessionState()
        self.script = Script("")
        self.bus = bus or MirrorBus()
        self.log = command_log or CommandLog()
        self.notifications: Deque[Notification] = deque(maxlen=MAX_NOTIFICATIONS)
        self.input_device: Union[int, str, None] = None

        self.clock = PlaybackClock(scheduler)
        self.clock.speed = self.state.settings.scroll_speed
        self.clock.on_countdown = self._on_countdown
        self.clock.on_running = self._on_running
        self.clock.on_stopped = self._on_stopped
        self.clock.on_end_of_content = self._on_end_of_content

        self.cues = CueScheduler(scheduler)
        self.cues.on_upcoming_changed = self._on_upcoming_changed

        self.resolver = PositionResolver(resolve or _unconfigured, timeout=resolver_timeout)
        self.resolver.on_resolved = self._apply_resolution
        self.resolver.on_failed = self._on_resolver_failed

        factory = capture_factory or _default_capture_factory(scheduler)
        self.capture = factory(self._on_clip)

        self.generation = 0
        self._last_applied_sequence = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def play_pause_disabled(self) -> bool:
        slide_view = (
            self.state.mode == PrompterMode.SLIDES
            and self.state.slide_display == SlideDisplayMode.SLIDE
        )
        return slide_view or self.cues.is_counting_down

    def snapshot(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            is_playing=self.clock.is_running,
            prompter_mode=self.state.mode.value,
            total_slides=len(self.state.slides),
            current_slide_index=self.state.current_slide,
        )

    def to_dict(self) -> Dict[str, Any]:
        self.state.offset = self.clock.offset
        data = self.state.to_dict()
        data["word_count"] = self.script.word_count
        data["cues"] = [_cue_to_dict(cue) for cue in self.cues.cues]
        data["play_pause_disabled"] = self.play_pause_disabled
        data["logging"] = self.log.enabled
        data["take"] = self.log.take
        data["generation"] = self.generation
        return data

    def export_log(self, fmt: str) -> FormatterOutput:
        if fmt not in FORMATTERS:
            raise ValidationError(
                "Unknown export format '{}'. Available: {}".format(
                    fmt, ", ".join(sorted(FORMATTERS))
                )
            )
        return FORMATTERS[fmt]().format(self.log.entries())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, action: Action) -> None:
        """Apply one manual action.

        Raises:
            CueLineError: The action was rejected; a Notification was queued.
        """
        handler = getattr(self, "_on_" + action.type.value)
        logger.debug("Dispatch %s %s", action.type.value, action.payload)
        if action.type in _POSITION_ACTIONS:
            self.generation += 1
        try:
            handler(**action.payload)
        except CueLineError as exc:
            self.notify_error(exc)
            raise

    def notify(self, title: str, message: str, level: str = "info") -> Notification:
        note = Notification(title=title, message=message, level=level)
        self.notifications.append(note)
        return note

    def notify_error(self, error: CueLineError) -> Notification:
        logger.warning("%s: %s", error.title, error.message)
        return self.notify(error.title, error.message, level="error")

    def drain_notifications(self) -> List[Notification]:
        notes = list(self.notifications)
        self.notifications.clear()
        return notes

    def close(self) -> None:
        self.resolver.cancel()
        self.cues.cancel_countdown()
        self.clock.stop(StopReason.USER)
        self.capture.stop_capture()

    # ------------------------------------------------------------------
    # Playback handlers
    # ------------------------------------------------------------------

    def _on_toggle_play(self) -> None:
        if self.play_pause_disabled:
            logger.debug("Play/pause ignored: disabled in the current view")
            return
        if self.clock.is_active:
            self._stop_playback()
            self.log.record(PAUSE, "Manual")
        else:
            if self.log.has_started_playback:
                self.log.advance_take("Resumed playback")
            self._start_playback()
            self.log.record(PLAY, "Manual")

    def _on_play(self) -> None:
        if not self.clock.is_active:
            self._on_toggle_play()

    def _on_pause(self) -> None:
        if self.clock.is_active:
            self._on_toggle_play()

    def _on_rewind(self) -> None:
        was_playing = self.clock.is_running or self.clock.was_running_before_cue
        self.cues.cancel_countdown()
        self.state.cue_countdown = None
        self._stop_playback()

        self.log.advance_take("Rewind")
        self.clock.reset_offset()
        self.state.last_spoken_word_index = None
        self.cues.reset()
        self.bus.publish("reset")

        if was_playing:
            self._start_playback()

    def _start_playback(self) -> None:
        self.log.mark_playback_started()
        if self.clock.at_end:
            self.clock.reset_offset()
            self.bus.publish("reset")
        self.clock.start(self.state.settings.start_delay)

    def _stop_playback(self) -> None:
        self.clock.stop(StopReason.USER)

    # ------------------------------------------------------------------
    # Script, settings, and mode handlers
    # ------------------------------------------------------------------

    def _on_set_text(self, text: str) -> None:
        self._set_text(text)

    def _on_load_document(self, text: str) -> None:
        self.state.mode = PrompterMode.TEXT
        self.state.slides = []
        self.state.current_slide = 0
        self.state.slide_display = SlideDisplayMode.SLIDE
        self._set_text(text)
        self._sync_capture()

    def _on_update_settings(self, values: Dict[str, Any]) -> None:
        self.state.settings = self.state.settings.updated(values)
        self.clock.speed = self.state.settings.scroll_speed
        self._publish_settings()

    def _on_reset_settings(self) -> None:
        self.state.settings = Settings()
        self.clock.speed = self.state.settings.scroll_speed
        self._publish_settings()

    def _on_set_mode(self, mode: str) -> None:
        self.state.mode = _parse_enum(PrompterMode, mode, "mode")
        self._reload_cues()
        self._publish_settings()
        self._sync_capture()

    def _on_set_slide_display(self, display: str) -> None:
        self.state.slide_display = _parse_enum(SlideDisplayMode, display, "slide display")
        self._publish_settings()
        self._sync_capture()

    def _on_set_voice_control(self, enabled: bool, device: Union[int, str, None] = None) -> None:
        self.state.voice_control = bool(enabled)
        if device is not None:
            self.input_device = device
        if not enabled:
            self.resolver.cancel()
        self._sync_capture()

    def _on_set_cues(self, enabled: bool) -> None:
        self.state.cues_enabled = bool(enabled)
        if not enabled:
            self.cues.clear_upcoming()

    def _on_set_viewport(self, viewport: float, content: float) -> None:
        self.clock.set_extents(viewport, content)

    def _on_enable_log(self) -> None:
        self.log.enable()

    def _on_disable_log(self) -> None:
        self.log.disable()

    def _on_clear_log(self) -> None:
        self.log.clear()

    # ------------------------------------------------------------------
    # Slide handlers
    # ------------------------------------------------------------------

    def _on_load_slides(self, slides: List[Slide]) -> None:
        if not slides:
            raise ValidationError("The presentation has no slides to import.")
        self._stop_playback()
        self.state.mode = PrompterMode.SLIDES
        self.state.slide_display = SlideDisplayMode.SLIDE
        self.state.slides = list(slides)
        self.state.current_slide = 0
        self._set_text(self.state.slides[0].speaker_notes)
        self._sync_capture()

    def _on_next_slide(self) -> None:
        self._require_slides()
        self._change_slide(min(self.state.current_slide + 1, len(self.state.slides) - 1))

    def _on_previous_slide(self) -> None:
        self._require_slides()
        self._change_slide(max(self.state.current_slide - 1, 0))

    def _on_go_to_slide(self, index: int) -> None:
        self._require_slides()
        if not 0 <= index < len(self.state.slides):
            raise ValidationError(
                "Slide {} does not exist (deck has {} slides).".format(
                    index + 1, len(self.state.slides)
                )
            )
        self._change_slide(index)

    def _require_slides(self) -> None:
        if self.state.mode != PrompterMode.SLIDES or not self.state.slides:
            raise ValidationError("Slide navigation needs an imported presentation.")

    def _change_slide(self, index: int) -> None:
        self.state.current_slide = index
        self._set_text(self.state.slides[index].speaker_notes)
        self.bus.publish("slide_change", {"newIndex": index})

    # ------------------------------------------------------------------
    # Internal state helpers
    # ------------------------------------------------------------------

    def _set_text(self, text: str) -> None:
        self.state.text = text
        self.script = Script(text)
        self.state.last_spoken_word_index = None
        self._reload_cues()
        self._publish_settings()

    def _reload_cues(self) -> None:
        slide = self.state.active_slide
        durations = slide.video_durations if slide is not None else None
        self.cues.load(self.script.extract_cues(durations))

    def _publish_settings(self) -> None:
        slide = self.state.active_slide
        payload = dict(self.state.settings.to_dict())
        payload.update({
            "text": self.state.text,
            "mode": self.state.mode.value,
            "slide_display": self.state.slide_display.value,
            "current_slide": self.state.current_slide,
            "image_url": slide.image_url if slide is not None else None,
        })
        self.bus.publish("settings_update", payload)

    def _sync_capture(self) -> None:
        should_capture = (
            self.state.voice_control
            and self.clock.is_running
            and self.state.scrolls
        )
        if should_capture and not self.capture.is_capturing:
            try:
                self.capture.start_capture(self.input_device)
            except PermissionDenied as exc:
                self.notify_error(exc)
                self.state.voice_control = False
        elif not should_capture and self.capture.is_capturing:
            self.capture.stop_capture()

    # ------------------------------------------------------------------
    # Clock and cue callbacks
    # ------------------------------------------------------------------

    def _on_countdown(self, value: int) -> None:
        self.state.countdown = value

    def _on_running(self) -> None:
        self.state.is_playing = True
        self.state.countdown = None
        self.bus.publish("play")
        self._sync_capture()

    def _on_stopped(self, reason: StopReason) -> None:
        self.state.is_playing = False
        self.state.countdown = None
        self.bus.publish("pause")
        logger.info("Playback stopped (%s)", reason.value)
        self._sync_capture()

    def _on_end_of_content(self) -> bool:
        state = self.state
        if (
            state.mode == PrompterMode.SLIDES
            and state.slide_display == SlideDisplayMode.NOTES
            and state.current_slide < len(state.slides) - 1
        ):
            self._change_slide(state.current_slide + 1)
            return True
        return False

    def _on_upcoming_changed(self, cue: Optional[Cue]) -> None:
        self.state.upcoming_cue_word_index = cue.word_index if cue is not None else None

    def _fire_cue(self, cue: Cue) -> None:
        self.clock.pause_for_cue()
        self.cues.start_countdown(cue, on_tick=self._on_cue_tick, on_done=self._on_cue_done)

    def _on_cue_tick(self, value: int) -> None:
        self.state.cue_countdown = value

    def _on_cue_done(self) -> None:
        self.state.cue_countdown = None
        self.clock.resume_after_cue(self.state.settings.start_delay)

    # ------------------------------------------------------------------
    # Voice control
    # ------------------------------------------------------------------

    def _on_clip(self, clip: AudioClip) -> None:
        request = ResolverRequest(
            clip=clip,
            script_text=self.state.text,
            scroll_speed=float(self.state.settings.scroll_speed),
            snapshot=self.snapshot(),
            generation=self.generation,
        )
        self.resolver.submit(request)

    def _on_resolver_failed(self, request: ResolverRequest, error: CueLineError) -> None:
        self.notify_error(error)
        if isinstance(error, ConfigurationError):
            self.state.voice_control = False
            self.resolver.cancel()
            self._sync_capture()

    def _apply_resolution(self, request: ResolverRequest, resolution: Resolution) -> None:
        """Apply one model answer unless it is stale."""
        if request.generation != self.generation:
            logger.debug(
                "Dropping stale resolution (generation %d, now %d)",
                request.generation, self.generation,
            )
            return
        if request.clip.sequence <= self._last_applied_sequence:
            logger.debug("Dropping out-of-order resolution for clip %d", request.clip.sequence)
            return
        command = resolution.command
        if command == Command.NO_OP and not (self.state.voice_control and self.clock.is_running):
            logger.debug("Dropping tracking update: voice control idle")
            return

        self._last_applied_sequence = request.clip.sequence
        self.log.record(command.value, resolution.log_details())

        try:
            if command == Command.NO_OP:
                self._track(resolution)
            else:
                self._apply_command(resolution)
                self.generation += 1
        except CueLineError as exc:
            self.notify_error(exc)

    def _apply_command(self, resolution: Resolution) -> None:
        command = resolution.command
        in_slides = self.state.mode == PrompterMode.SLIDES and bool(self.state.slides)

        if command == Command.NEXT_SLIDE:
            if in_slides:
                self._on_next_slide()
        elif command == Command.PREVIOUS_SLIDE:
            if in_slides:
                self._on_previous_slide()
        elif command == Command.GO_TO_SLIDE:
            number = resolution.slide_number
            if in_slides and number is not None and 1 <= number <= len(self.state.slides):
                self._change_slide(number - 1)
        elif command == Command.STOP_SCROLLING:
            if self.clock.is_active:
                self._stop_playback()
        elif command == Command.START_SCROLLING:
            if not self.play_pause_disabled and not self.clock.is_active:
                self._start_playback()
        elif command == Command.REWIND:
            self._on_rewind()
        elif command == Command.GO_TO_TEXT:
            target = resolution.target_word_index
            if target is not None:
                self.log.advance_take("Jumped to text")
                if self.script.has_word(target):
                    self.state.last_spoken_word_index = target
                    self.bus.publish("scroll_to_word", {"wordIndex": target})

    def _track(self, resolution: Resolution) -> None:
        state = self.state
        if resolution.adjusted_scroll_speed is not None:
            state.settings = state.settings.updated(
                {"scroll_speed": resolution.adjusted_scroll_speed}
            )
            self.clock.speed = state.settings.scroll_speed
            self._publish_settings()

        last = resolution.last_spoken_word_index
        word_count = self.script.word_count
        in_notes = (
            state.mode == PrompterMode.SLIDES
            and state.slide_display == SlideDisplayMode.NOTES
        )
        if (
            in_notes
            and word_count > 0
            and last is not None
            and last >= word_count - NOTES_ADVANCE_MARGIN_WORDS
        ):
            if state.current_slide < len(state.slides) - 1:
                self._change_slide(state.current_slide + 1)
                return
            if self.clock.is_active:
                self._stop_playback()
        elif last is not None and state.cues_enabled:
            cue = self.cues.evaluate(last)
            if cue is not None:
                state.last_spoken_word_index = last
                self._fire_cue(cue)
                return

        if last is not None:
            state.last_spoken_word_index = last
            if self.script.has_word(last):
                self.bus.publish("scroll_to_word", {"wordIndex": last})


def _cue_to_dict(cue: Cue) -> Dict[str, Any]:
    return {
        "word_index": cue.word_index,
        "kind": cue.kind.value,
        "duration_s": cue.duration_s,
        "video_index": cue.video_index,
    }


def _parse_enum(enum_cls, value, label: str):  # noqa: ANN001
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValidationError("Invalid {} '{}'. Choose one of: {}".format(label, value, choices))
