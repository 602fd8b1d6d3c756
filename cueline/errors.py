"""Error taxonomy shared by the session core, clients, and API layer.

WHY: Every failure in Cue Line is recovered at the boundary where it occurs
and surfaced to the speaker as a non-fatal notification. The session needs
typed exceptions to decide the follow-up: a refused microphone forces voice
control off, a bad API key is reported differently from a flaky network, and
an out-of-range slider value is simply ignored.

HOW: A small hierarchy rooted at CueLineError. Each exception carries a
user-facing ``message`` (what the notification shows) and an optional
``title`` used as the notification heading.

RULES:
- PermissionDenied: microphone/device access refused or unavailable
- ConfigurationError: missing or invalid inference credentials
- InferenceError: transient model call failure, including timeouts
- DocumentImportError: Google Docs/Slides fetch failure; ``expired`` is True
  when the access token was rejected
- ValidationError: user input out of bounds (preset name, slider values)
- Never raise CueLineError directly; always use a concrete subclass
"""

from __future__ import annotations


class CueLineError(Exception):
    """Base class for all recoverable Cue Line errors."""

    title = "Error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDenied(CueLineError):
    """Raised when the microphone cannot be opened."""

    title = "Microphone Access Denied"


class ConfigurationError(CueLineError):
    """Raised when inference credentials are missing or rejected."""

    title = "Configuration Error"


class InferenceError(CueLineError):
    """Raised when a model call fails transiently or times out."""

    title = "AI Error"


class DocumentImportError(CueLineError):
    """Raised when a Google Docs/Slides import fails.

    RULES:
    - expired=True means the bearer token was rejected (401/403); the
      caller should ask the user to sign in again
    """

    title = "Import Error"

    def __init__(self, message: str, expired: bool = False) -> None:
        self.expired = expired
        super().__init__(message)


class ValidationError(CueLineError):
    """Raised when user input falls outside its allowed range."""

    title = "Invalid Value"
