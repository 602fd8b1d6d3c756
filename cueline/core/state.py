"""Session state types: modes, slides, settings, and the player snapshot.

WHY: The session, the resolver prompt, the Control API, and the preset
store all talk about the same handful of values. Keeping them in plain
dataclasses lets each layer serialize them without knowing about the others.

HOW: Settings validates every field against config.SETTING_RANGES.
SessionState aggregates everything the session owns; it is mutated only by
TeleprompterSession.dispatch().

RULES:
- Settings values are ints inside their inclusive slider range
- Slide.videos holds durations in seconds, in slide order
- SessionState.to_dict() is the JSON shape returned by GET /session
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from cueline.config import DEFAULT_SETTINGS, SETTING_RANGES
from cueline.errors import ValidationError


class PrompterMode(str, Enum):
    TEXT = "text"
    SLIDES = "slides"


class SlideDisplayMode(str, Enum):
    SLIDE = "slide"
    NOTES = "notes"


@dataclass(frozen=True)
class SlideVideo:
    duration_s: float


@dataclass(frozen=True)
class Slide:
    image_url: str = ""
    speaker_notes: str = ""
    videos: tuple = ()

    @property
    def video_durations(self) -> List[float]:
        return [video.duration_s for video in self.videos]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_url": self.image_url,
            "speaker_notes": self.speaker_notes,
            "videos": [{"duration_s": v.duration_s} for v in self.videos],
        }


def validate_setting(name: str, value: Any) -> int:
    """Return ``value`` as an int if it is inside the slider range for ``name``.

    Raises:
        ValidationError: Unknown setting, non-numeric value, or out of range.
    """
    if name not in SETTING_RANGES:
        raise ValidationError("Unknown setting: {}".format(name))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("{} must be a number".format(name))
    low, high = SETTING_RANGES[name]
    if not low <= value <= high:
        raise ValidationError(
            "{} must be between {} and {} (got {})".format(name, low, high, value)
        )
    return int(round(value))


@dataclass
class Settings:
    scroll_speed: int = DEFAULT_SETTINGS["scroll_speed"]
    font_size: int = DEFAULT_SETTINGS["font_size"]
    horizontal_margin: int = DEFAULT_SETTINGS["horizontal_margin"]
    vertical_margin: int = DEFAULT_SETTINGS["vertical_margin"]
    start_delay: int = DEFAULT_SETTINGS["start_delay"]

    def updated(self, values: Dict[str, Any]) -> "Settings":
        """Return a copy with ``values`` applied; all-or-nothing validation."""
        merged = asdict(self)
        for name, value in values.items():
            merged[name] = validate_setting(name, value)
        return Settings(**merged)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class SessionState:
    """Everything the session owns, as seen by API clients."""

    text: str = ""
    mode: PrompterMode = PrompterMode.TEXT
    slide_display: SlideDisplayMode = SlideDisplayMode.SLIDE
    slides: List[Slide] = field(default_factory=list)
    current_slide: int = 0
    settings: Settings = field(default_factory=Settings)
    is_playing: bool = False
    countdown: Optional[int] = None
    voice_control: bool = False
    cues_enabled: bool = True
    last_spoken_word_index: Optional[int] = None
    upcoming_cue_word_index: Optional[int] = None
    cue_countdown: Optional[int] = None
    offset: float = 0.0

    @property
    def scrolls(self) -> bool:
        """True when the view shows scrolling text (text mode or notes)."""
        return self.mode == PrompterMode.TEXT or self.slide_display == SlideDisplayMode.NOTES

    @property
    def active_slide(self) -> Optional[Slide]:
        if self.mode != PrompterMode.SLIDES or not self.slides:
            return None
        if 0 <= self.current_slide < len(self.slides):
            return self.slides[self.current_slide]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "mode": self.mode.value,
            "slide_display": self.slide_display.value,
            "slides": [slide.to_dict() for slide in self.slides],
            "current_slide": self.current_slide,
            "settings": self.settings.to_dict(),
            "is_playing": self.is_playing,
            "countdown": self.countdown,
            "voice_control": self.voice_control,
            "cues_enabled": self.cues_enabled,
            "last_spoken_word_index": self.last_spoken_word_index,
            "upcoming_cue_word_index": self.upcoming_cue_word_index,
            "cue_countdown": self.cue_countdown,
            "offset": self.offset,
        }
