"""Prompt templates for voice control and script assistance.

RULES:
- Commands take precedence over in-text search, which takes precedence
  over pace tracking
- The control prompt asks for camelCase JSON matching RESOLUTION_SCHEMA
- Assistant prompts ask for the modified text only, no commentary
"""

from __future__ import annotations

from cueline.api.models import PlayerSnapshot

CONTROL_PROMPT = """\
You are an advanced AI controller for a teleprompter. Your job is to analyze \
an audio clip of a user's speech and decide whether they are issuing a \
command, asking to jump to a passage, or reading from the script. Use the \
first rule that matches.

1. Commands. Listen for explicit commands:
- "next slide" -> "next_slide"
- "previous slide" -> "previous_slide"
- "go to slide [number]" -> "go_to_slide" (set "slideNumber", 1-based)
- "stop" / "pause" -> "stop_scrolling"
- "start" / "play" / "go" -> "start_scrolling"
- "rewind" / "go to the top" / "start over" -> "rewind"

2. In-text search. If the user asks to go to a passage ("go to the part \
about ..."), find it in the script and return "go_to_text" with \
"targetWordIndex" set to the index of its first word.

3. Pace tracking. Otherwise the user is reading. Return "no_op", match the \
speech to the script, set "lastSpokenWordIndex" to the index of the last \
spoken word, and set "adjustedScrollSpeed" (0-100) to match the reading pace.

Words are counted from 0, separated by whitespace. Bracketed directives such \
as [PAUSE 3 SECONDS] or [PLAY VIDEO 1] are not words.

Respond with a single JSON object with the keys "command", "slideNumber", \
"targetWordIndex", "lastSpokenWordIndex", "adjustedScrollSpeed". Use null for \
keys that do not apply.

Full Script:
"{script_text}"

Current State:
- Scrolling Speed: {scroll_speed}
- Is Playing: {is_playing}
- Mode: {prompter_mode}
- Total Slides: {total_slides}
- Current Slide: {current_slide_index}
"""

ASSIST_PROMPT = """\
You are an expert script writing assistant. Your task is to modify a script \
based on a given instruction. Return only the full, modified script text. Do \
not add any extra commentary, conversational text, or explanation.

Instruction: {instruction}

Script to modify:
"{script_text}"
"""

ASSIST_INSTRUCTIONS = {
    "fix": "Correct any spelling and grammar mistakes in the provided script.",
    "rewrite": (
        "Rewrite the provided script to be more clear, concise, and engaging "
        "for a speaker."
    ),
    "format": (
        "Format the provided script for better readability on a teleprompter. "
        "This may include adding line breaks, standardizing punctuation, and "
        "ensuring consistent spacing. Do not change the wording, only the "
        "formatting."
    ),
    "cleanup": (
        "Clean up the provided teleprompter script: correct spelling and "
        "grammar, remove stray formatting artifacts, and keep every bracketed "
        "directive such as [PAUSE 3 SECONDS] exactly as written."
    ),
}


def build_control_prompt(script_text: str, scroll_speed: float, snapshot: PlayerSnapshot) -> str:
    return CONTROL_PROMPT.format(
        script_text=script_text,
        scroll_speed=scroll_speed,
        is_playing=str(snapshot.is_playing).lower(),
        prompter_mode=snapshot.prompter_mode,
        total_slides=snapshot.total_slides,
        current_slide_index=snapshot.current_slide_index,
    )


def build_assist_prompt(command: str, script_text: str) -> str:
    return ASSIST_PROMPT.format(
        instruction=ASSIST_INSTRUCTIONS[command],
        script_text=script_text,
    )
