"""Async HTTP client for the Gemini generateContent API.

WHY: Voice control and script assistance both send a prompt (plus, for
voice control, an audio clip) to a hosted model and read back text. This
module hides the HTTP details and turns every failure into the shared error
taxonomy so the session can decide how to notify the speaker.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. GeminiClient is an async
context manager: enter it to get an authenticated client, exit to close the
connection pool. control_teleprompter() sends inline base64 audio and asks
for JSON output, which is validated with jsonschema before it is parsed
into a Resolution. assist_with_script() asks for plain text.

RULES:
- Always use the async context manager (async with GeminiClient() as client:)
- api_key defaults to load_api_key() from .env (ConfigurationError if unset)
- 401/403, or a 400 whose body mentions "API key" -> ConfigurationError
- Any other non-2xx, transport error, timeout, empty or malformed output
  -> InferenceError
- The key travels in the x-goog-api-key header, never in the URL
"""

from __future__ import annotations

import base64
import json
import logging

import httpx
import jsonschema

from cueline.api.models import RESOLUTION_SCHEMA, AudioClip, PlayerSnapshot, Resolution
from cueline.api.prompts import ASSIST_INSTRUCTIONS, build_assist_prompt, build_control_prompt
from cueline.config import ASSIST_TIMEOUT_S, GEMINI_BASE_URL, GEMINI_MODEL, load_api_key
from cueline.errors import ConfigurationError, InferenceError, ValidationError

logger = logging.getLogger(__name__)

_CONFIG_MESSAGE = (
    "Voice Control is not configured. "
    "Please ensure your GOOGLE_API_KEY is set correctly in the .env file."
)
_GENERIC_MESSAGE = "An unexpected error occurred while processing voice input."


class GeminiClient:
    """Async client for the model endpoints used by Cue Line.

    RULES:
    - Use as: async with GeminiClient() as client: ...
    - base_url defaults to GEMINI_BASE_URL, model to GEMINI_MODEL
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = ASSIST_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self._model = model or GEMINI_MODEL
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GeminiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "GeminiClient must be used as an async context manager: "
                "async with GeminiClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _generate(self, parts: list[dict], json_output: bool) -> str:
        """POST a generateContent request and return the concatenated text."""
        client = self._ensure_client()
        body: dict = {"contents": [{"role": "user", "parts": parts}]}
        if json_output:
            body["generationConfig"] = {"responseMimeType": "application/json"}

        try:
            resp = await client.post(
                "/models/{}:generateContent".format(self._model),
                json=body,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Model request timed out: %s", exc)
            raise InferenceError("The AI request timed out. Please try again.") from exc
        except httpx.HTTPError as exc:
            logger.warning("Model request failed: %s", exc)
            raise InferenceError(_GENERIC_MESSAGE) from exc

        _raise_for_status(resp)

        try:
            data = resp.json()
            candidate_parts = data["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise InferenceError("The AI model did not produce a valid output.") from exc
        text = "".join(part.get("text", "") for part in candidate_parts)
        if not text.strip():
            raise InferenceError("The AI model did not produce a valid output.")
        return text

    # ------------------------------------------------------------------
    # Voice control
    # ------------------------------------------------------------------

    async def control_teleprompter(
        self,
        clip: AudioClip,
        script_text: str,
        scroll_speed: float,
        snapshot: PlayerSnapshot,
    ) -> Resolution:
        """Interpret one speech clip as a command or a position estimate.

        Raises:
            ConfigurationError: Credentials missing or rejected.
            InferenceError: Network failure or output not matching the schema.
        """
        prompt = build_control_prompt(script_text, scroll_speed, snapshot)
        parts = [
            {"text": prompt},
            {"inline_data": {
                "mime_type": clip.mime_type,
                "data": base64.b64encode(clip.data).decode("ascii"),
            }},
        ]
        text = await self._generate(parts, json_output=True)
        try:
            payload = json.loads(text)
            jsonschema.validate(payload, RESOLUTION_SCHEMA)
        except (ValueError, jsonschema.ValidationError) as exc:
            logger.warning("Rejected model output: %s", text[:200])
            raise InferenceError("The AI model did not produce a valid output.") from exc
        return Resolution.from_dict(payload)

    # ------------------------------------------------------------------
    # Script assistance
    # ------------------------------------------------------------------

    async def assist_with_script(self, command: str, script_text: str) -> str:
        """Apply an editing command (fix, rewrite, format, cleanup) to text."""
        if command not in ASSIST_INSTRUCTIONS:
            raise ValidationError(
                "Unknown assistant command '{}'. Available: {}".format(
                    command, ", ".join(sorted(ASSIST_INSTRUCTIONS))
                )
            )
        prompt = build_assist_prompt(command, script_text)
        return await self._generate([{"text": prompt}], json_output=False)


def _raise_for_status(resp: httpx.Response) -> None:
    """Map a non-2xx model response onto the error taxonomy."""
    if resp.is_success:
        return
    body = resp.text
    if resp.status_code in (401, 403) or (resp.status_code == 400 and "API key" in body):
        logger.error("Model rejected credentials (%d)", resp.status_code)
        raise ConfigurationError(_CONFIG_MESSAGE)
    logger.warning("Model error %d: %s", resp.status_code, body[:200])
    raise InferenceError(_GENERIC_MESSAGE)
