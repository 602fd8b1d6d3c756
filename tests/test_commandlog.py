"""Tests for the command log and take numbering."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cueline.core.commandlog import NEW_TAKE, PLAY, CommandLog


@pytest.fixture
def fixed_clock():
    start = datetime(2026, 10, 18, 9, 30, 0, tzinfo=timezone.utc)
    ticks = iter(start + timedelta(seconds=i) for i in range(1000))
    return lambda: next(ticks)


class TestCommandLog:
    def test_disabled_log_records_nothing(self):
        log = CommandLog()
        assert log.record(PLAY, "Manual") is None
        assert len(log) == 0

    def test_enable_resets_take_and_entries(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        log.record(PLAY)
        log.advance_take("Rewind")
        log.enable()
        assert len(log) == 0
        assert log.take == 1
        assert not log.has_started_playback

    def test_clear_keeps_take_and_recording(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        log.mark_playback_started()
        log.advance_take("Rewind")
        log.clear()
        assert len(log) == 0
        assert log.take == 2
        assert log.enabled
        assert log.has_started_playback
        log.record(PLAY, "Manual")
        assert [(e.take, e.command) for e in log.entries()] == [(2, PLAY)]

    def test_first_play_is_take_one(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        assert log.mark_playback_started() is True
        assert log.mark_playback_started() is False
        entries = log.entries()
        assert len(entries) == 1
        assert entries[0].command == NEW_TAKE
        assert entries[0].details == "Playback started (Take 1)"
        assert entries[0].take == 1

    def test_advance_take_records_reason(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        log.mark_playback_started()
        log.advance_take("Rewind")
        log.advance_take("Jumped to text")
        details = [e.details for e in log.entries()]
        assert details == [
            "Playback started (Take 1)",
            "Rewind (Take 2)",
            "Jumped to text (Take 3)",
        ]
        assert [e.take for e in log.entries()] == [1, 2, 3]

    def test_take_advances_while_disabled(self):
        log = CommandLog()
        log.advance_take("Rewind")
        assert log.take == 2
        assert len(log) == 0

    def test_disable_keeps_entries(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        log.record(PLAY, "Manual")
        log.disable()
        log.record(PLAY, "Manual")
        assert len(log) == 1

    def test_default_details_and_timestamps(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        first = log.record("rewind")
        second = log.record("rewind")
        assert first.details == "N/A"
        assert second.timestamp > first.timestamp

    def test_entries_is_a_snapshot(self, fixed_clock):
        log = CommandLog(fixed_clock)
        log.enable()
        snapshot = log.entries()
        log.record(PLAY)
        assert len(snapshot) == 0
