"""Script tokenization, word indexing, and cue extraction.

WHY: The prompter scrolls to words by index, the resolver reports positions
as word indices, and the cue scheduler fires at word indices. All three must
agree on one deterministic numbering derived from the current text. Inline
directives ("[PAUSE 3 SECONDS]", "[PLAY VIDEO 1]") are shown to nobody and
must not be counted as words.

HOW: tokenize() splits the text on the directive pattern and produces a
tagged sequence of PlainRun / PauseCue / VideoCue tokens. Script wraps one
text buffer, computes its word list from the plain runs only, and derives
Cue objects whose word_index is the number of real words preceding the
directive.

RULES:
- Word boundaries are whitespace runs; empty strings are never words
- Directive tokens contribute zero words
- A cue's word_index = count of words before it (so a cue after "one two
  three" has word_index 3)
- Video cues need the current slide's video durations; "[PLAY VIDEO n]" is
  1-based and silently ignored when the slide has no n-th video or when no
  durations are supplied (text mode)
- Re-extracting from unchanged text yields an identical cue list
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

# Capturing group so re.split keeps the directives in the output.
_DIRECTIVE_RE = re.compile(r"(\[PLAY VIDEO \d+\]|\[PAUSE \d+ SECONDS\])")
_PAUSE_RE = re.compile(r"^\[PAUSE (\d+) SECONDS\]$")
_VIDEO_RE = re.compile(r"^\[PLAY VIDEO (\d+)\]$")


@dataclass(frozen=True)
class PlainRun:
    """Literal script text between directives."""

    text: str


@dataclass(frozen=True)
class PauseCue:
    """A "[PAUSE n SECONDS]" directive."""

    duration_s: int


@dataclass(frozen=True)
class VideoCue:
    """A "[PLAY VIDEO n]" directive; ``number`` is 1-based."""

    number: int


Token = Union[PlainRun, PauseCue, VideoCue]


class CueKind(str, Enum):
    """Kinds of timed playback interruptions."""

    PAUSE = "pause"
    VIDEO = "video"


@dataclass(frozen=True)
class Cue:
    """A resolved cue positioned in the script's word sequence.

    RULES:
    - word_index: index of the first word after the directive
    - duration_s: pause length, or the referenced video's length
    - video_index: zero-based index into the slide's videos (video cues only)
    """

    word_index: int
    kind: CueKind
    duration_s: float
    video_index: Optional[int] = None


def split_words(text: str) -> List[str]:
    """Split text into words on whitespace runs."""
    return text.split()


def tokenize(text: str) -> List[Token]:
    """Split script text into plain runs and directive tokens.

    Empty plain runs (e.g. between two adjacent directives) are dropped.
    """
    tokens: List[Token] = []
    for part in _DIRECTIVE_RE.split(text):
        if not part:
            continue
        pause = _PAUSE_RE.match(part)
        if pause:
            tokens.append(PauseCue(duration_s=int(pause.group(1))))
            continue
        video = _VIDEO_RE.match(part)
        if video:
            tokens.append(VideoCue(number=int(video.group(1))))
            continue
        tokens.append(PlainRun(text=part))
    return tokens


class Script:
    """An immutable view of one script text with word and cue bookkeeping.

    WHY: The session rebuilds a Script on every edit instead of patching
    indices, so numbering is always a pure function of the text.

    HOW: Tokenizes once in __init__ and caches the word tuple and the
    (word_index, token) pairs of every directive.
    """

    def __init__(self, text: str = "") -> None:
        self.text = text
        self.tokens: Tuple[Token, ...] = tuple(tokenize(text))

        words: List[str] = []
        directives: List[Tuple[int, Token]] = []
        for token in self.tokens:
            if isinstance(token, PlainRun):
                words.extend(split_words(token.text))
            else:
                directives.append((len(words), token))
        self.words: Tuple[str, ...] = tuple(words)
        self._directives = tuple(directives)

    @property
    def word_count(self) -> int:
        return len(self.words)

    def has_word(self, index: int) -> bool:
        return 0 <= index < len(self.words)

    def extract_cues(
        self,
        video_durations: Optional[Sequence[float]] = None,
    ) -> List[Cue]:
        """Build the cue list for this text.

        Args:
            video_durations: Durations (seconds) of the current slide's videos
                in slides mode, or None in text mode.

        Returns:
            Cues in document order (word indices non-decreasing).
        """
        cues: List[Cue] = []
        for word_index, token in self._directives:
            if isinstance(token, PauseCue):
                cues.append(Cue(
                    word_index=word_index,
                    kind=CueKind.PAUSE,
                    duration_s=float(token.duration_s),
                ))
            elif isinstance(token, VideoCue):
                if video_durations is None:
                    continue
                video_index = token.number - 1
                if 0 <= video_index < len(video_durations):
                    cues.append(Cue(
                        word_index=word_index,
                        kind=CueKind.VIDEO,
                        duration_s=float(video_durations[video_index]),
                        video_index=video_index,
                    ))
        return cues

    def __repr__(self) -> str:
        return "Script(words={}, directives={})".format(
            len(self.words), len(self._directives)
        )
