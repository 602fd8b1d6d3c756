"""Configuration constants, slider ranges, and .env loading.

WHY: Centralizes all configurable values so they are easy to find, update,
and override. Slider ranges, default settings, inference endpoints, and
timing constants are plain data structures, not buried in logic, so both
the session core and the API layer validate against the same numbers.

HOW: python-dotenv loads the .env file on import. Constants are defined as
module-level dicts and scalars with os.getenv overrides. load_api_key()
provides a clear ConfigurationError when the key is missing.

RULES:
- SETTING_RANGES holds the inclusive (min, max) of every user-facing slider
- DEFAULT_SETTINGS are applied on startup and on "reset settings"
- The inference key is read from GOOGLE_API_KEY (GEMINI_API_KEY accepted),
  never hardcoded
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from cueline.errors import ConfigurationError

# Load .env from the project root (where the app is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# User-facing settings: inclusive slider ranges and defaults
# ---------------------------------------------------------------------------

SETTING_RANGES: dict[str, tuple[int, int]] = {
    "scroll_speed": (0, 100),
    "font_size": (12, 120),
    "horizontal_margin": (0, 40),
    "vertical_margin": (0, 50),
    "start_delay": (0, 10),
}

DEFAULT_SETTINGS: dict[str, int] = {
    "scroll_speed": 10,
    "font_size": 40,
    "horizontal_margin": 20,
    "vertical_margin": 40,
    "start_delay": 3,
}

PRESET_FIELDS = ("scroll_speed", "font_size", "horizontal_margin", "vertical_margin")
"""Settings captured by a saved preset (start delay is not part of a preset)."""

# ---------------------------------------------------------------------------
# Playback and cue timing
# ---------------------------------------------------------------------------

SPEED_SLOPE = 2.25
SPEED_INTERCEPT = 25.0
"""effective units/s = SPEED_SLOPE * slider + SPEED_INTERCEPT (25..250)."""

FRAME_INTERVAL_S = 1.0 / 60.0
COUNTDOWN_INTERVAL_S = 1.0
END_TOLERANCE = 1.0

CUE_LOOKAHEAD_WORDS = 10
UPCOMING_CUE_DISPLAY_S = 2.0
NOTES_ADVANCE_MARGIN_WORDS = 2

# ---------------------------------------------------------------------------
# Speech capture
# ---------------------------------------------------------------------------

CLIP_SECONDS = float(os.getenv("CUELINE_CLIP_SECONDS", "2.0"))
SAMPLE_RATE = int(os.getenv("CUELINE_SAMPLE_RATE", "16000"))

# ---------------------------------------------------------------------------
# Inference (Gemini generateContent REST API)
# ---------------------------------------------------------------------------

GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
RESOLVER_TIMEOUT_S = float(os.getenv("CUELINE_RESOLVER_TIMEOUT_S", "12"))
ASSIST_TIMEOUT_S = float(os.getenv("CUELINE_ASSIST_TIMEOUT_S", "60"))

# ---------------------------------------------------------------------------
# Google import and local storage
# ---------------------------------------------------------------------------

GOOGLE_DRIVE_URL = os.getenv("GOOGLE_DRIVE_URL", "https://www.googleapis.com/drive/v3")
GOOGLE_DOCS_URL = os.getenv("GOOGLE_DOCS_URL", "https://docs.googleapis.com/v1")
GOOGLE_SLIDES_URL = os.getenv("GOOGLE_SLIDES_URL", "https://slides.googleapis.com/v1")

PRESETS_PATH = Path(
    os.getenv("CUELINE_PRESETS_PATH", str(Path.home() / ".cueline" / "presets.json"))
)

# ---------------------------------------------------------------------------
# Control API
# ---------------------------------------------------------------------------

API_HOST = os.getenv("CUELINE_HOST", "127.0.0.1")
API_PORT = int(os.getenv("CUELINE_PORT", "8000"))
MAX_NOTIFICATIONS = 50


def load_api_key() -> str:
    """Load the inference API key from the environment.

    WHY: The key is required for every resolver and script-assistant call.
    Loading it from the environment (via .env) keeps it out of source code.

    HOW: Reads GOOGLE_API_KEY, falling back to GEMINI_API_KEY.

    RULES:
    - Raises ConfigurationError if both are missing or empty
    - Never returns a default/placeholder value
    """
    key = (os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY") or "").strip()
    if not key:
        raise ConfigurationError(
            "Voice Control is not configured. "
            "Please ensure your GOOGLE_API_KEY is set correctly in the .env file."
        )
    return key
