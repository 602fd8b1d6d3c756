"""Resolver request and response dataclasses.

WHY: The voice-control model returns a flat JSON object that the session
turns into playback actions. Typed dataclasses make that contract explicit
and keep the raw dict handling in one place.

HOW: Resolution.from_dict parses the model's JSON after it has been checked
against RESOLUTION_SCHEMA with jsonschema. PlayerSnapshot and AudioClip are
the other halves of a resolver request.

RULES:
- command is one of the eight Command values; anything else is rejected
  by the schema
- slide_number is 1-based and only meaningful for go_to_slide
- target_word_index is only meaningful for go_to_text
- last_spoken_word_index / adjusted_scroll_speed are only meaningful for
  no_op; the speed is clamped to the 0-100 slider domain
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from cueline.config import SETTING_RANGES


class Command(str, Enum):
    NEXT_SLIDE = "next_slide"
    PREVIOUS_SLIDE = "previous_slide"
    GO_TO_SLIDE = "go_to_slide"
    STOP_SCROLLING = "stop_scrolling"
    START_SCROLLING = "start_scrolling"
    REWIND = "rewind"
    GO_TO_TEXT = "go_to_text"
    NO_OP = "no_op"


RESOLUTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["command"],
    "properties": {
        "command": {"type": "string", "enum": [c.value for c in Command]},
        "slideNumber": {"type": ["integer", "null"], "minimum": 1},
        "targetWordIndex": {"type": ["integer", "null"], "minimum": 0},
        "lastSpokenWordIndex": {"type": ["integer", "null"], "minimum": 0},
        "adjustedScrollSpeed": {"type": ["number", "null"]},
    },
}
"""JSON Schema for the model's structured output (camelCase, as prompted)."""


@dataclass(frozen=True)
class PlayerSnapshot:
    """Player state sent alongside a clip so the model can interpret commands."""

    is_playing: bool
    prompter_mode: str
    total_slides: int
    current_slide_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isPlaying": self.is_playing,
            "prompterMode": self.prompter_mode,
            "totalSlides": self.total_slides,
            "currentSlideIndex": self.current_slide_index,
        }


@dataclass(frozen=True)
class AudioClip:
    """One finalized speech clip.

    RULES:
    - data: encoded audio bytes (16-bit mono WAV from the capture adapter)
    - sequence: monotonically increasing per capture session
    """

    data: bytes
    mime_type: str = "audio/wav"
    duration_s: float = 0.0
    sequence: int = 0


def clamp_speed(value: float) -> float:
    low, high = SETTING_RANGES["scroll_speed"]
    return max(float(low), min(float(high), float(value)))


@dataclass(frozen=True)
class Resolution:
    """The model's interpretation of one clip."""

    command: Command
    slide_number: Optional[int] = None
    target_word_index: Optional[int] = None
    last_spoken_word_index: Optional[int] = None
    adjusted_scroll_speed: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> Resolution:
        """Build a Resolution from schema-validated model output."""
        speed = data.get("adjustedScrollSpeed")
        return cls(
            command=Command(data["command"]),
            slide_number=data.get("slideNumber"),
            target_word_index=data.get("targetWordIndex"),
            last_spoken_word_index=data.get("lastSpokenWordIndex"),
            adjusted_scroll_speed=clamp_speed(speed) if speed is not None else None,
        )

    def log_details(self) -> str:
        """Detail text written to the command log for this resolution."""
        if self.command == Command.GO_TO_SLIDE:
            return "Slide {}".format(self.slide_number)
        if self.command == Command.GO_TO_TEXT:
            return "Word index {}".format(self.target_word_index)
        if self.command == Command.NO_OP:
            speed = self.adjusted_scroll_speed if self.adjusted_scroll_speed is not None else 0.0
            index = self.last_spoken_word_index if self.last_spoken_word_index is not None else 0
            return "Pace tracking. Speed: {:.2f}, Word Index: {}".format(speed, index)
        return "N/A"
