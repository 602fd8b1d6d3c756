"""Cue Line: a voice-aware teleprompter engine.

WHY: A speaker reading from a prompter should not need a second operator.
Cue Line scrolls the script at a steady pace, follows the speaker's voice
to keep the current line in view, obeys spoken commands ("stop", "go back
to ..."), and pauses for inline cue directives such as [PAUSE 5 SECONDS].

HOW: A single TeleprompterSession owns playback state and wires together
the playback clock, the cue scheduler, the command log, the mirror bus,
and the position resolver that turns short microphone clips into commands
via a multimodal model. A FastAPI Control API and a CLI sit on top.

RULES:
- All session state changes happen on one asyncio event loop
- Every external failure surfaces as a typed CueLineError
- Export formats are pluggable formatters over the same LogEntry records
"""

__version__ = "0.1.0"
