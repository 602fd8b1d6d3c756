"""AI script assistant: fix, rewrite, or format a selection; clean up a script.

WHY: Speakers tidy their scripts right before recording. Editing only the
selected passage keeps the rest of the script (and its cue directives)
untouched.

HOW: ScriptAssistant sends the selected text to GeminiClient and splices
the answer back between the unchanged head and tail. cleanup() sends the
whole script.

RULES:
- Selection commands: fix, rewrite, format; selection is [start, end)
- An empty selection or an empty script raises ValidationError
- Model failures propagate as ConfigurationError / InferenceError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cueline.api.client import GeminiClient
from cueline.errors import ValidationError

logger = logging.getLogger(__name__)

SELECTION_COMMANDS = ("fix", "rewrite", "format")


@dataclass(frozen=True)
class AssistResult:
    text: str
    selection_start: int
    selection_end: int


class ScriptAssistant:
    def __init__(self, client: GeminiClient) -> None:
        self._client = client

    async def apply(self, command: str, text: str, start: int, end: int) -> AssistResult:
        """Run ``command`` on text[start:end] and splice the result back.

        Returns:
            The full new text and the span occupied by the edited passage.
        """
        if command not in SELECTION_COMMANDS:
            raise ValidationError(
                "Unknown command '{}'. Available: {}".format(
                    command, ", ".join(SELECTION_COMMANDS)
                )
            )
        if not 0 <= start < end <= len(text):
            raise ValidationError("Please select some text to modify.")
        selected = text[start:end]
        if not selected.strip():
            raise ValidationError("Please select some text to modify.")

        edited = (await self._client.assist_with_script(command, selected)).strip()
        logger.info("Assistant %s: %d -> %d chars", command, len(selected), len(edited))
        new_text = text[:start] + edited + text[end:]
        return AssistResult(
            text=new_text,
            selection_start=start,
            selection_end=start + len(edited),
        )

    async def cleanup(self, text: str) -> str:
        if not text.strip():
            raise ValidationError("The script is empty.")
        return (await self._client.assist_with_script("cleanup", text)).strip()
