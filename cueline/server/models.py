"""Pydantic request/response models for the Control API.

WHY: The browser front end and any scripted controller need typed schemas
for request validation, response serialization, and the OpenAPI docs at
/docs.

HOW: One model per request body and per response shape. Enums cover the
closed sets (prompter mode, slide display, export format, assistant
command). Slider bounds are enforced by the session, not here, so an
out-of-range value produces the same ValidationError notification no
matter where it came from.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match the session's internal values exactly
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PrompterModeName(str, Enum):
    text = "text"
    slides = "slides"


class SlideDisplayName(str, Enum):
    slide = "slide"
    notes = "notes"


class ExportFormat(str, Enum):
    """Command log export formats.

    RULES:
    - Values match keys in cueline.formatters.FORMATTERS exactly
    """

    csv = "csv"
    srt = "srt"


class AssistCommand(str, Enum):
    fix = "fix"
    rewrite = "rewrite"
    format = "format"
    cleanup = "cleanup"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ScriptUpdate(BaseModel):
    text: str = Field(description="Full script text, including any cue directives.")


class SettingsUpdate(BaseModel):
    """Partial settings update; omitted fields keep their current value."""

    scroll_speed: Optional[float] = Field(default=None, description="Scroll speed slider, 0-100.")
    font_size: Optional[float] = Field(default=None, description="Font size, 12-120.")
    horizontal_margin: Optional[float] = Field(default=None, description="Horizontal margin, 0-40.")
    vertical_margin: Optional[float] = Field(default=None, description="Vertical margin, 0-50.")
    start_delay: Optional[float] = Field(default=None, description="Start delay in seconds, 0-10.")


class ModeUpdate(BaseModel):
    mode: PrompterModeName = Field(description="Prompter mode.")


class SlideDisplayUpdate(BaseModel):
    display: SlideDisplayName = Field(description="Show the slide image or its speaker notes.")


class GoToSlide(BaseModel):
    slide_number: int = Field(ge=1, description="Target slide, 1-based.")


class ToggleRequest(BaseModel):
    enabled: bool = Field(description="Turn the feature on or off.")


class VoiceControlRequest(BaseModel):
    enabled: bool = Field(description="Turn voice control on or off.")
    device: Optional[Union[int, str]] = Field(
        default=None,
        description="Input device index or name; 'default' for the system default.",
    )


class ViewportUpdate(BaseModel):
    viewport: float = Field(ge=0, description="Visible height of the prompter view.")
    content: float = Field(ge=0, description="Total height of the rendered script.")


class PresetCreate(BaseModel):
    name: str = Field(description="Preset name.")
    settings: Optional[Dict[str, float]] = Field(
        default=None,
        description="Values to save; defaults to the session's current settings.",
    )


class AssistRequest(BaseModel):
    command: AssistCommand = Field(description="Editing command.")
    text: Optional[str] = Field(
        default=None,
        description="Script to edit; defaults to the session's current script.",
    )
    start: int = Field(default=0, ge=0, description="Selection start (fix/rewrite/format).")
    end: Optional[int] = Field(default=None, ge=0, description="Selection end, exclusive.")
    apply: bool = Field(
        default=False,
        description="Replace the session's script with the result.",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class CueInfo(BaseModel):
    word_index: int = Field(description="Index of the first word after the directive.")
    kind: str = Field(description="'pause' or 'video'.")
    duration_s: float = Field(description="Pause or video length in seconds.")
    video_index: Optional[int] = Field(default=None, description="Zero-based video index.")


class SessionResponse(BaseModel):
    """Full session state as seen by the front end."""

    text: str = Field(description="Current script text.")
    mode: str = Field(description="'text' or 'slides'.")
    slide_display: str = Field(description="'slide' or 'notes'.")
    slides: List[Dict[str, Any]] = Field(description="Imported slides.")
    current_slide: int = Field(description="Zero-based index of the active slide.")
    settings: Dict[str, int] = Field(description="Current slider values.")
    is_playing: bool = Field(description="True while the scroll is running.")
    countdown: Optional[int] = Field(default=None, description="Start delay countdown value.")
    voice_control: bool = Field(description="Voice control flag.")
    cues_enabled: bool = Field(description="Cue directives flag.")
    last_spoken_word_index: Optional[int] = Field(default=None, description="Latest tracked word.")
    upcoming_cue_word_index: Optional[int] = Field(default=None, description="Cue shown as upcoming.")
    cue_countdown: Optional[int] = Field(default=None, description="Active cue countdown value.")
    offset: float = Field(description="Scroll offset in viewport units.")
    word_count: int = Field(description="Number of words in the script.")
    cues: List[CueInfo] = Field(description="Cues extracted from the script.")
    play_pause_disabled: bool = Field(description="True when play/pause is unavailable.")
    logging: bool = Field(description="True while the command log records.")
    take: int = Field(description="Current take number.")
    generation: int = Field(description="Counter bumped by position-changing commands.")


class LogEntryResponse(BaseModel):
    take: int = Field(description="Take number.")
    timestamp: str = Field(description="ISO-8601 UTC timestamp.")
    command: str = Field(description="Command or event name.")
    details: str = Field(description="Human-readable details.")


class NotificationResponse(BaseModel):
    title: str = Field(description="Notification heading.")
    message: str = Field(description="Notification text.")
    level: str = Field(description="'error' or 'info'.")
    created_at: str = Field(description="ISO-8601 UTC timestamp.")


class PresetResponse(BaseModel):
    id: str = Field(description="Preset identifier (UUID).")
    name: str = Field(description="Preset name.")
    scroll_speed: int = Field(description="Scroll speed slider value.")
    font_size: int = Field(description="Font size.")
    horizontal_margin: int = Field(description="Horizontal margin.")
    vertical_margin: int = Field(description="Vertical margin.")


class AssistResponse(BaseModel):
    text: str = Field(description="Full script after the edit.")
    selection_start: int = Field(description="Start of the edited passage.")
    selection_end: int = Field(description="End of the edited passage, exclusive.")


class DriveFileResponse(BaseModel):
    id: str = Field(description="Drive file id.")
    name: str = Field(description="File name.")


class DeviceResponse(BaseModel):
    index: int = Field(description="PortAudio device index.")
    name: str = Field(description="Device name.")
    input_channels: int = Field(description="Number of input channels.")
    sample_rate: float = Field(description="Default sample rate.")
    is_default: bool = Field(description="True for the system default input.")


class HealthResponse(BaseModel):
    status: str = Field(description="'ok' when the service is up.")
    version: str = Field(description="Package version.")
    voice_configured: bool = Field(description="True when an inference key is configured.")


class ErrorResponse(BaseModel):
    """Consistent error body for all non-2xx responses."""

    detail: str = Field(description="Human-readable error message.")
