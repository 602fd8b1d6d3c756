"""Tests for the teleprompter session: dispatch, playback, slides, voice control.

WHY: The session is where manual actions, resolver results, and timers
meet. These tests pin down the behaviors that keep them from fighting:
generation-based stale dropping, cue pauses, take numbering, and capture
following playback.

HOW: Sessions run on the FakeScheduler with a FakeCapture (conftest.py).
Resolver results are applied directly through _apply_resolution() except
in the end-to-end clip tests, which run a real event loop via asyncio.run.

RULES:
- Every test builds its own session (no shared state)
- Word indices are spelled out next to each sample text
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import SAMPLE_SCRIPT, CaptureFactory, FakeScheduler, make_request, tracking

from cueline.api.models import AudioClip, Command, Resolution
from cueline.core.clock import ClockPhase
from cueline.core.commandlog import NEW_TAKE, PAUSE, PLAY
from cueline.core.script import CueKind
from cueline.core.session import Action, ActionType, TeleprompterSession
from cueline.core.state import PrompterMode, SlideDisplayMode
from cueline.errors import InferenceError, ValidationError

PLAIN = "a b c d e f g h"  # eight words, no cues


def act(session, action_type, **payload):
    session.dispatch(Action(action_type, payload))


def events(session):
    got = []
    session.bus.subscribe(lambda event: got.append(event))
    return got


def play_now(session, text=PLAIN, voice=False):
    """Load text, drop the start delay, and start playback immediately."""
    act(session, ActionType.SET_TEXT, text=text)
    act(session, ActionType.UPDATE_SETTINGS, values={"start_delay": 0})
    if voice:
        act(session, ActionType.SET_VOICE_CONTROL, enabled=True)
    act(session, ActionType.PLAY)


# ---------------------------------------------------------------------------
# Script and settings
# ---------------------------------------------------------------------------


class TestScriptAndSettings:
    def test_set_text_builds_script_and_cues(self, session):
        got = events(session)
        act(session, ActionType.SET_TEXT, text=SAMPLE_SCRIPT)
        assert session.script.word_count == 7
        assert [c.word_index for c in session.cues.cues] == [3]
        assert got[-1].type == "settings_update"
        assert got[-1].payload["text"] == SAMPLE_SCRIPT

    def test_update_settings_applies_speed(self, session):
        act(session, ActionType.UPDATE_SETTINGS, values={"scroll_speed": 60, "font_size": 72})
        assert session.state.settings.scroll_speed == 60
        assert session.state.settings.font_size == 72
        assert session.clock.speed == 60

    def test_out_of_range_value_rejected_and_kept(self, session):
        with pytest.raises(ValidationError):
            act(session, ActionType.UPDATE_SETTINGS, values={"scroll_speed": 30, "font_size": 500})
        assert session.state.settings.scroll_speed == 10
        assert session.state.settings.font_size == 40
        notes = session.drain_notifications()
        assert notes[0].title == "Invalid Value"
        assert session.drain_notifications() == []

    def test_reset_settings(self, session):
        act(session, ActionType.UPDATE_SETTINGS, values={"scroll_speed": 90})
        act(session, ActionType.RESET_SETTINGS)
        assert session.state.settings.scroll_speed == 10
        assert session.clock.speed == 10

    def test_invalid_mode_rejected(self, session):
        with pytest.raises(ValidationError):
            act(session, ActionType.SET_MODE, mode="video")

    def test_notifications_are_bounded(self, session):
        for i in range(80):
            session.notify("Info", str(i))
        notes = session.drain_notifications()
        assert len(notes) == 50
        assert notes[-1].message == "79"

    def test_to_dict_has_session_fields(self, session):
        act(session, ActionType.SET_TEXT, text=SAMPLE_SCRIPT)
        data = session.to_dict()
        assert data["word_count"] == 7
        assert data["cues"] == [
            {"word_index": 3, "kind": "pause", "duration_s": 3.0, "video_index": None}
        ]
        assert data["play_pause_disabled"] is False
        assert data["logging"] is False
        assert data["take"] == 1
        assert data["settings"]["start_delay"] == 3


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


class TestPlayback:
    def test_toggle_counts_down_then_plays(self, scheduler, session):
        got = events(session)
        act(session, ActionType.TOGGLE_PLAY)
        assert session.state.countdown == 3
        assert not session.state.is_playing
        scheduler.advance(3.0)
        assert session.state.is_playing
        assert session.state.countdown is None
        assert [e.type for e in got] == ["play"]

    def test_toggle_during_countdown_cancels(self, scheduler, session):
        act(session, ActionType.TOGGLE_PLAY)
        scheduler.advance(1.0)
        act(session, ActionType.TOGGLE_PLAY)
        scheduler.advance(5.0)
        assert not session.state.is_playing
        assert session.clock.phase == ClockPhase.IDLE

    def test_pause_publishes_pause(self, session):
        play_now(session)
        got = events(session)
        act(session, ActionType.PAUSE)
        assert not session.state.is_playing
        assert [e.type for e in got] == ["pause"]

    def test_play_and_pause_are_idempotent(self, session):
        play_now(session)
        act(session, ActionType.PLAY)
        assert session.clock.is_running
        act(session, ActionType.PAUSE)
        act(session, ActionType.PAUSE)
        assert session.clock.phase == ClockPhase.IDLE

    def test_end_of_text_stops_and_replay_resets(self, scheduler, session):
        act(session, ActionType.SET_VIEWPORT, viewport=100, content=120)
        play_now(session)
        scheduler.advance(2.0)
        assert not session.state.is_playing
        assert session.clock.at_end

        got = events(session)
        act(session, ActionType.PLAY)
        assert session.clock.offset == 0.0
        assert [e.type for e in got][:2] == ["reset", "play"]

    def test_rewind_while_playing_restarts(self, scheduler, session):
        act(session, ActionType.SET_VIEWPORT, viewport=100, content=10000)
        play_now(session)
        scheduler.advance(1.0)
        assert session.clock.offset > 0

        got = events(session)
        act(session, ActionType.REWIND)
        assert session.clock.offset == 0.0
        assert session.clock.is_running
        assert [e.type for e in got] == ["pause", "reset", "play"]

    def test_rewind_while_idle_stays_idle(self, session):
        act(session, ActionType.SET_TEXT, text=PLAIN)
        act(session, ActionType.REWIND)
        assert session.clock.phase == ClockPhase.IDLE
        assert session.state.last_spoken_word_index is None


class TestTakes:
    def test_manual_play_pause_resume(self, session):
        act(session, ActionType.ENABLE_LOG)
        play_now(session)
        act(session, ActionType.PAUSE)
        act(session, ActionType.PLAY)
        entries = [(e.command, e.details, e.take) for e in session.log.entries()]
        assert entries == [
            (NEW_TAKE, "Playback started (Take 1)", 1),
            (PLAY, "Manual", 1),
            (PAUSE, "Manual", 1),
            (NEW_TAKE, "Resumed playback (Take 2)", 2),
            (PLAY, "Manual", 2),
        ]

    def test_rewind_advances_take(self, session):
        act(session, ActionType.ENABLE_LOG)
        play_now(session)
        act(session, ActionType.REWIND)
        assert session.log.take == 2
        assert session.log.entries()[-1].details == "Rewind (Take 2)"

    def test_clear_log_on_demand(self, session):
        act(session, ActionType.ENABLE_LOG)
        play_now(session)
        act(session, ActionType.REWIND)
        act(session, ActionType.CLEAR_LOG)
        assert session.log.entries() == ()
        assert session.log.take == 2
        act(session, ActionType.PAUSE)
        assert [(e.command, e.take) for e in session.log.entries()] == [(PAUSE, 2)]

    def test_export_log(self, session):
        act(session, ActionType.ENABLE_LOG)
        play_now(session)
        output = session.export_log("csv")
        assert "Playback started (Take 1)" in output.content
        assert output.filename.startswith("q_log_")
        assert session.export_log("srt").content.startswith("1\n00:00:00,000 --> ")
        with pytest.raises(ValidationError):
            session.export_log("xlsx")


# ---------------------------------------------------------------------------
# Slides
# ---------------------------------------------------------------------------


class TestSlides:
    def test_load_slides_shows_first_slide(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        assert session.state.mode == PrompterMode.SLIDES
        assert session.state.slide_display == SlideDisplayMode.SLIDE
        assert session.state.current_slide == 0
        assert session.state.text == "hello and welcome everyone"

    def test_load_empty_deck_rejected(self, session):
        with pytest.raises(ValidationError):
            act(session, ActionType.LOAD_SLIDES, slides=[])

    def test_navigation_clamps(self, session, sample_slides):
        got = events(session)
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.PREVIOUS_SLIDE)
        assert session.state.current_slide == 0
        act(session, ActionType.NEXT_SLIDE)
        act(session, ActionType.NEXT_SLIDE)
        act(session, ActionType.NEXT_SLIDE)
        assert session.state.current_slide == 2
        changes = [e.payload["newIndex"] for e in got if e.type == "slide_change"]
        assert changes == [0, 1, 2, 2]

    def test_video_cue_uses_slide_video(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.GO_TO_SLIDE, index=1)
        cue = session.cues.cues[0]
        assert cue.kind == CueKind.VIDEO
        assert cue.word_index == 2
        assert cue.duration_s == 4.0

    def test_go_to_missing_slide_rejected(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        with pytest.raises(ValidationError):
            act(session, ActionType.GO_TO_SLIDE, index=5)
        assert session.state.current_slide == 0

    def test_navigation_needs_slides(self, session):
        with pytest.raises(ValidationError):
            act(session, ActionType.NEXT_SLIDE)

    def test_play_disabled_on_slide_display(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        assert session.play_pause_disabled
        act(session, ActionType.TOGGLE_PLAY)
        assert not session.clock.is_active

    def test_notes_end_advances_slide(self, scheduler, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.SET_SLIDE_DISPLAY, display="notes")
        act(session, ActionType.SET_VIEWPORT, viewport=100, content=120)
        act(session, ActionType.UPDATE_SETTINGS, values={"start_delay": 0})
        act(session, ActionType.PLAY)
        scheduler.advance(0.6)
        assert session.state.current_slide == 1
        assert session.clock.is_running
        scheduler.advance(2.0)
        assert session.state.current_slide == 2
        assert not session.clock.is_running

    def test_load_document_returns_to_text_mode(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.LOAD_DOCUMENT, text=PLAIN)
        assert session.state.mode == PrompterMode.TEXT
        assert session.state.slides == []
        assert session.script.word_count == 8


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class TestCapture:
    def test_capture_follows_playback(self, session, capture_factory):
        capture = capture_factory.instance
        act(session, ActionType.SET_VOICE_CONTROL, enabled=True, device=3)
        assert not capture.is_capturing
        play_now(session)
        assert capture.is_capturing
        assert capture.devices == [3]
        act(session, ActionType.PAUSE)
        assert not capture.is_capturing

    def test_disabling_voice_stops_capture(self, session, capture_factory):
        play_now(session, voice=True)
        act(session, ActionType.SET_VOICE_CONTROL, enabled=False)
        assert not capture_factory.instance.is_capturing

    def test_permission_denied_turns_voice_off(self, scheduler):
        factory = CaptureFactory(deny=True)
        session = TeleprompterSession(scheduler, capture_factory=factory)
        play_now(session, voice=True)
        assert session.state.voice_control is False
        notes = session.drain_notifications()
        assert notes[0].title == "Microphone Access Denied"
        assert session.clock.is_running

    def test_no_capture_on_slide_display(self, session, capture_factory, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.SET_SLIDE_DISPLAY, display="notes")
        act(session, ActionType.UPDATE_SETTINGS, values={"start_delay": 0})
        act(session, ActionType.SET_VOICE_CONTROL, enabled=True)
        act(session, ActionType.PLAY)
        assert capture_factory.instance.is_capturing
        act(session, ActionType.SET_SLIDE_DISPLAY, display="slide")
        assert not capture_factory.instance.is_capturing


# ---------------------------------------------------------------------------
# Resolver results
# ---------------------------------------------------------------------------


class TestTracking:
    def test_tracking_scrolls_to_word(self, session):
        play_now(session, voice=True)
        got = events(session)
        session._apply_resolution(make_request(session), tracking(4))
        assert session.state.last_spoken_word_index == 4
        assert got[-1].type == "scroll_to_word"
        assert got[-1].payload == {"wordIndex": 4}

    def test_tracking_dropped_when_voice_off(self, session):
        play_now(session, voice=False)
        session._apply_resolution(make_request(session), tracking(4))
        assert session.state.last_spoken_word_index is None

    def test_tracking_dropped_when_not_running(self, session):
        act(session, ActionType.SET_TEXT, text=PLAIN)
        act(session, ActionType.SET_VOICE_CONTROL, enabled=True)
        session._apply_resolution(make_request(session), tracking(4))
        assert session.state.last_spoken_word_index is None

    def test_stale_generation_dropped(self, session):
        play_now(session, voice=True)
        request = make_request(session)
        act(session, ActionType.REWIND)
        session._apply_resolution(request, tracking(6))
        assert session.state.last_spoken_word_index is None

    def test_older_clip_dropped(self, session):
        play_now(session, voice=True)
        session._apply_resolution(make_request(session, sequence=2), tracking(4))
        session._apply_resolution(make_request(session, sequence=1), tracking(1))
        assert session.state.last_spoken_word_index == 4

    def test_adjusted_speed_applied(self, session):
        play_now(session, voice=True)
        session._apply_resolution(make_request(session), tracking(2, speed=55.4))
        assert session.state.settings.scroll_speed == 55
        assert session.clock.speed == 55

    def test_tracking_logged(self, session):
        act(session, ActionType.ENABLE_LOG)
        play_now(session, voice=True)
        session._apply_resolution(make_request(session), tracking(2, speed=40))
        last = session.log.entries()[-1]
        assert last.command == "no_op"
        assert last.details == "Pace tracking. Speed: 40.00, Word Index: 2"

    def test_cue_pauses_and_resumes(self, scheduler, session):
        play_now(session, text=SAMPLE_SCRIPT, voice=True)
        session._apply_resolution(make_request(session), tracking(3))
        assert session.clock.phase == ClockPhase.PAUSED_FOR_CUE
        assert session.state.cue_countdown == 3
        assert session.play_pause_disabled

        act(session, ActionType.TOGGLE_PLAY)
        assert session.clock.phase == ClockPhase.PAUSED_FOR_CUE

        scheduler.advance(3.0)
        assert session.state.cue_countdown is None
        assert session.clock.is_running

    def test_cues_disabled(self, session):
        play_now(session, text=SAMPLE_SCRIPT, voice=True)
        act(session, ActionType.SET_CUES, enabled=False)
        session._apply_resolution(make_request(session), tracking(3))
        assert session.clock.is_running
        assert session.state.last_spoken_word_index == 3

    def test_rewind_cancels_cue_countdown(self, scheduler, session):
        play_now(session, text=SAMPLE_SCRIPT, voice=True)
        session._apply_resolution(make_request(session), tracking(3))
        act(session, ActionType.REWIND)
        assert session.state.cue_countdown is None
        assert not session.cues.is_counting_down
        assert session.clock.is_running

    def test_cue_fires_again_after_rewind(self, scheduler, session):
        play_now(session, text=SAMPLE_SCRIPT, voice=True)
        session._apply_resolution(make_request(session, sequence=1), tracking(3))
        scheduler.advance(3.0)
        assert session.clock.is_running

        act(session, ActionType.REWIND)
        assert session.cues.triggered == set()
        session._apply_resolution(make_request(session, sequence=2), tracking(3))
        assert session.clock.phase == ClockPhase.PAUSED_FOR_CUE
        assert session.state.cue_countdown == 3

    def test_notes_tracking_advances_slide(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.SET_SLIDE_DISPLAY, display="notes")
        act(session, ActionType.UPDATE_SETTINGS, values={"start_delay": 0})
        act(session, ActionType.SET_VOICE_CONTROL, enabled=True)
        act(session, ActionType.PLAY)
        # "hello and welcome everyone": index 2 is within two words of the end
        session._apply_resolution(make_request(session, sequence=1), tracking(2))
        assert session.state.current_slide == 1

    def test_notes_tracking_on_last_slide_stops(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        act(session, ActionType.SET_SLIDE_DISPLAY, display="notes")
        act(session, ActionType.GO_TO_SLIDE, index=2)
        act(session, ActionType.UPDATE_SETTINGS, values={"start_delay": 0})
        act(session, ActionType.SET_VOICE_CONTROL, enabled=True)
        act(session, ActionType.PLAY)
        session._apply_resolution(make_request(session), tracking(0))
        assert session.state.current_slide == 2
        assert not session.clock.is_active


class TestCommands:
    def _apply(self, session, **fields):
        session._apply_resolution(
            make_request(session, sequence=session._last_applied_sequence + 1),
            Resolution(**fields),
        )

    def test_stop_and_start_scrolling(self, session):
        play_now(session)
        self._apply(session, command=Command.STOP_SCROLLING)
        assert not session.clock.is_active
        self._apply(session, command=Command.START_SCROLLING)
        assert session.clock.is_running

    def test_command_bumps_generation(self, session):
        play_now(session)
        before = session.generation
        self._apply(session, command=Command.STOP_SCROLLING)
        assert session.generation == before + 1

    def test_go_to_text(self, session):
        act(session, ActionType.ENABLE_LOG)
        play_now(session)
        got = events(session)
        self._apply(session, command=Command.GO_TO_TEXT, target_word_index=5)
        assert session.state.last_spoken_word_index == 5
        assert got[-1].payload == {"wordIndex": 5}
        details = [e.details for e in session.log.entries()]
        assert details[-2:] == ["Word index 5", "Jumped to text (Take 2)"]

    def test_go_to_slide_is_one_based(self, session, sample_slides):
        act(session, ActionType.LOAD_SLIDES, slides=sample_slides)
        self._apply(session, command=Command.GO_TO_SLIDE, slide_number=3)
        assert session.state.current_slide == 2
        self._apply(session, command=Command.GO_TO_SLIDE, slide_number=9)
        assert session.state.current_slide == 2

    def test_slide_commands_ignored_in_text_mode(self, session):
        act(session, ActionType.SET_TEXT, text=PLAIN)
        self._apply(session, command=Command.NEXT_SLIDE)
        assert session.state.current_slide == 0
        assert session.drain_notifications() == []


class TestClipFlow:
    def test_clip_resolves_and_applies(self):
        async def scenario():
            async def resolve(request):
                return Resolution(command=Command.NO_OP, last_spoken_word_index=2)

            factory = CaptureFactory()
            session = TeleprompterSession(FakeScheduler(), resolve=resolve, capture_factory=factory)
            play_now(session, voice=True)
            factory.instance.on_clip(AudioClip(data=b"x", sequence=1))
            await session.resolver.wait_idle()
            return session

        session = asyncio.run(scenario())
        assert session.state.last_spoken_word_index == 2

    def test_unconfigured_voice_control_turns_off(self):
        async def scenario():
            factory = CaptureFactory()
            session = TeleprompterSession(FakeScheduler(), capture_factory=factory)
            play_now(session, voice=True)
            factory.instance.on_clip(AudioClip(data=b"x", sequence=1))
            await session.resolver.wait_idle()
            return session, factory.instance

        session, capture = asyncio.run(scenario())
        assert session.state.voice_control is False
        assert not capture.is_capturing
        notes = session.drain_notifications()
        assert notes[0].title == "Configuration Error"

    def _run_failing_cycle(self, resolve, timeout=12.0):
        async def scenario():
            factory = CaptureFactory()
            session = TeleprompterSession(
                FakeScheduler(),
                resolve=resolve,
                capture_factory=factory,
                resolver_timeout=timeout,
            )
            play_now(session, voice=True)
            factory.instance.on_clip(AudioClip(data=b"x", sequence=1))
            await session.resolver.wait_idle()
            return session, factory.instance

        return asyncio.run(scenario())

    def _assert_cycle_skipped(self, session, capture):
        assert session.state.voice_control is True
        assert capture.is_capturing
        assert session.clock.is_running
        assert session.state.last_spoken_word_index is None
        notes = session.drain_notifications()
        assert [(n.title, n.level) for n in notes] == [("AI Error", "error")]

    def test_inference_error_skips_one_cycle(self):
        async def resolve(request):
            raise InferenceError("model unavailable")

        self._assert_cycle_skipped(*self._run_failing_cycle(resolve))

    def test_timeout_skips_one_cycle(self):
        async def resolve(request):
            await asyncio.sleep(1.0)
            return Resolution(command=Command.NO_OP, last_spoken_word_index=5)

        self._assert_cycle_skipped(*self._run_failing_cycle(resolve, timeout=0.01))
