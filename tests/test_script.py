"""Tests for script tokenization, word indexing, and cue extraction.

WHY: Word indices are the shared coordinate system between the resolver,
the prompter, and the cue scheduler. If the numbering drifts, the prompter
scrolls to the wrong word and cues fire early or late.

RULES:
- Directives never count as words
- A cue's word_index is the number of words before it
- Video cues need slide video durations
"""

from __future__ import annotations

from cueline.core.script import (
    CueKind,
    PauseCue,
    PlainRun,
    Script,
    VideoCue,
    split_words,
    tokenize,
)


class TestTokenize:
    def test_plain_text_is_one_run(self):
        assert tokenize("hello world") == [PlainRun("hello world")]

    def test_directives_become_tagged_tokens(self):
        tokens = tokenize("intro [PAUSE 5 SECONDS] middle [PLAY VIDEO 2] outro")
        assert tokens == [
            PlainRun("intro "),
            PauseCue(5),
            PlainRun(" middle "),
            VideoCue(2),
            PlainRun(" outro"),
        ]

    def test_adjacent_directives_produce_no_empty_runs(self):
        tokens = tokenize("[PAUSE 1 SECONDS][PAUSE 2 SECONDS]")
        assert tokens == [PauseCue(1), PauseCue(2)]

    def test_lowercase_or_malformed_directives_are_text(self):
        text = "[pause 3 seconds] [PAUSE three SECONDS] [PLAY VIDEO]"
        assert tokenize(text) == [PlainRun(text)]

    def test_empty_text(self):
        assert tokenize("") == []


class TestWords:
    def test_split_on_whitespace_runs(self):
        assert split_words("  a\tb \n\n c  ") == ["a", "b", "c"]

    def test_directives_are_not_words(self):
        script = Script("one two [PAUSE 3 SECONDS] three")
        assert script.words == ("one", "two", "three")
        assert script.word_count == 3

    def test_directive_glued_to_word(self):
        script = Script("one[PAUSE 3 SECONDS]two")
        assert script.words == ("one", "two")

    def test_has_word_bounds(self):
        script = Script("a b c")
        assert script.has_word(0)
        assert script.has_word(2)
        assert not script.has_word(3)
        assert not script.has_word(-1)


class TestExtractCues:
    def test_pause_cue_index_counts_preceding_words(self):
        cues = Script("one two three [PAUSE 3 SECONDS] four").extract_cues()
        assert len(cues) == 1
        assert cues[0].word_index == 3
        assert cues[0].kind == CueKind.PAUSE
        assert cues[0].duration_s == 3.0
        assert cues[0].video_index is None

    def test_cue_at_start_and_end(self):
        cues = Script("[PAUSE 1 SECONDS] a b [PAUSE 2 SECONDS]").extract_cues()
        assert [c.word_index for c in cues] == [0, 2]

    def test_video_cues_ignored_without_durations(self):
        cues = Script("a [PLAY VIDEO 1] b").extract_cues()
        assert cues == []

    def test_video_cue_uses_slide_duration(self):
        cues = Script("a [PLAY VIDEO 2] b").extract_cues([3.0, 7.5])
        assert len(cues) == 1
        assert cues[0].kind == CueKind.VIDEO
        assert cues[0].duration_s == 7.5
        assert cues[0].video_index == 1

    def test_video_cue_out_of_range_is_skipped(self):
        cues = Script("a [PLAY VIDEO 3] b [PAUSE 2 SECONDS] c").extract_cues([3.0])
        assert [c.kind for c in cues] == [CueKind.PAUSE]

    def test_cues_in_document_order(self):
        text = "a [PAUSE 1 SECONDS] b c [PLAY VIDEO 1] d [PAUSE 4 SECONDS]"
        cues = Script(text).extract_cues([2.0])
        assert [c.word_index for c in cues] == [1, 3, 4]

    def test_extraction_is_deterministic(self):
        script = Script("x [PAUSE 2 SECONDS] y")
        assert script.extract_cues() == script.extract_cues()
        assert Script(script.text).extract_cues() == script.extract_cues()
