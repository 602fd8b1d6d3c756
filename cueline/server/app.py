"""FastAPI Control API: session control, presets, assistant, import, mirror.

WHY: The prompter UI runs in a browser and a presenter window mirrors it.
Both need to reach the session core, which lives on one asyncio loop. An
HTTP API gives the UI request/response control with OpenAPI docs, and a
WebSocket carries the one-way mirror stream to secondary displays.

HOW: create_app() builds a FastAPI app whose lifespan creates the session
on the server's running loop (the loop is the session's scheduler), opens
a GeminiClient when an API key is configured, and loads the preset store.
Endpoints translate requests into session Actions; CueLineError subclasses
become HTTP errors with the shared ErrorResponse schema. /mirror forwards
every MirrorBus event to the connected WebSocket.

RULES:
- ValidationError -> 400, InferenceError / DocumentImportError -> 502,
  ConfigurationError -> 503; any other CueLineError -> 400
- A missing API key is not fatal: the server starts and voice control
  reports the configuration error when it is used
- Slide numbers in the API are 1-based, like the voice command
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import Response

from cueline import __version__
from cueline.api.client import GeminiClient
from cueline.assistant import ScriptAssistant
from cueline.config import API_HOST, API_PORT
from cueline.core.bus import MirrorEvent
from cueline.core.resolver import ResolverRequest
from cueline.core.session import Action, ActionType, CaptureFactory, TeleprompterSession
from cueline.errors import (
    ConfigurationError,
    CueLineError,
    DocumentImportError,
    InferenceError,
    ValidationError,
)
from cueline.imports.google import GoogleImporter
from cueline.presets import PresetStore
from cueline.server.models import (
    AssistRequest,
    AssistResponse,
    DeviceResponse,
    DriveFileResponse,
    ErrorResponse,
    ExportFormat,
    GoToSlide,
    HealthResponse,
    LogEntryResponse,
    ModeUpdate,
    NotificationResponse,
    PresetCreate,
    PresetResponse,
    ScriptUpdate,
    SessionResponse,
    SettingsUpdate,
    SlideDisplayUpdate,
    ToggleRequest,
    ViewportUpdate,
    VoiceControlRequest,
)
from cueline.formatters.base import format_timestamp

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (ConfigurationError, 503),
    (InferenceError, 502),
    (DocumentImportError, 502),
)


def _http_error(exc: CueLineError) -> HTTPException:
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=status, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


def _open_gemini() -> GeminiClient:
    return GeminiClient()


def create_app(
    capture_factory: Optional[CaptureFactory] = None,
    presets: Optional[PresetStore] = None,
    gemini_factory: Callable[[], GeminiClient] = _open_gemini,
    importer_factory: Callable[[str], GoogleImporter] = GoogleImporter,
) -> FastAPI:
    """Build the Control API.

    Args:
        capture_factory: Speech capture factory passed to the session
            (tests inject a fake; production uses sounddevice).
        presets: Preset store (defaults to the configured JSON file).
        gemini_factory: Builds the inference client; raising
            ConfigurationError leaves voice control unconfigured.
        importer_factory: Builds a Google importer from an access token.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop = asyncio.get_running_loop()

        gemini: Optional[GeminiClient] = None
        try:
            gemini = await gemini_factory().__aenter__()
        except ConfigurationError as exc:
            logger.warning("Voice control disabled: %s", exc.message)

        resolve = None
        if gemini is not None:
            client = gemini

            async def resolve(request: ResolverRequest):
                return await client.control_teleprompter(
                    request.clip,
                    request.script_text,
                    request.scroll_speed,
                    request.snapshot,
                )

        app.state.gemini = gemini
        app.state.session = TeleprompterSession(
            loop, resolve=resolve, capture_factory=capture_factory
        )
        app.state.presets = presets if presets is not None else PresetStore()
        app.state.importer_factory = importer_factory
        logger.info("Session ready (voice control configured: %s)", gemini is not None)
        try:
            yield
        finally:
            app.state.session.close()
            if gemini is not None:
                await gemini.__aexit__(None, None, None)

    app = FastAPI(
        lifespan=lifespan,
        title="Cue Line Control API",
        description=(
            "Control a Cue Line teleprompter session: script and settings, "
            "playback, slides, voice control, cue directives, the command "
            "log and its CSV/SRT export, presets, AI script assistance, and "
            "Google Docs/Slides import. Secondary displays subscribe to "
            "/mirror over WebSocket."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    _register_routes(app)
    return app


def _session(request: Request) -> TeleprompterSession:
    return request.app.state.session


def _dispatch(request: Request, action_type: ActionType, **payload) -> SessionResponse:
    session = _session(request)
    try:
        session.dispatch(Action(action_type, payload))
    except CueLineError as exc:
        raise _http_error(exc)
    return SessionResponse(**session.to_dict())


def _bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Google access token.")
    return authorization[7:].strip()


_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid value"},
}


def _register_routes(app: FastAPI) -> None:
    # ------------------------------------------------------------------
    # Health and session state
    # ------------------------------------------------------------------

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
    )
    async def health_check(request: Request) -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=__version__,
            voice_configured=request.app.state.gemini is not None,
        )

    @app.get("/session", response_model=SessionResponse, tags=["session"], summary="Session state")
    async def get_session(request: Request) -> SessionResponse:
        return SessionResponse(**_session(request).to_dict())

    @app.put(
        "/session/script",
        response_model=SessionResponse,
        tags=["session"],
        summary="Replace the script text",
    )
    async def put_script(body: ScriptUpdate, request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.SET_TEXT, text=body.text)

    @app.patch(
        "/session/settings",
        response_model=SessionResponse,
        tags=["session"],
        summary="Update sliders",
        description="Values outside their slider range are rejected and the old value is kept.",
        responses=_ERRORS,
    )
    async def patch_settings(body: SettingsUpdate, request: Request) -> SessionResponse:
        values = {k: v for k, v in body.model_dump().items() if v is not None}
        return _dispatch(request, ActionType.UPDATE_SETTINGS, values=values)

    @app.post(
        "/session/settings/reset",
        response_model=SessionResponse,
        tags=["session"],
        summary="Restore default settings",
    )
    async def reset_settings(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.RESET_SETTINGS)

    @app.put("/session/mode", response_model=SessionResponse, tags=["session"], summary="Set mode")
    async def put_mode(body: ModeUpdate, request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.SET_MODE, mode=body.mode.value)

    @app.put(
        "/session/viewport",
        response_model=SessionResponse,
        tags=["session"],
        summary="Report rendered extents",
        description="The front end reports its viewport and content heights for end detection.",
    )
    async def put_viewport(body: ViewportUpdate, request: Request) -> SessionResponse:
        return _dispatch(
            request, ActionType.SET_VIEWPORT, viewport=body.viewport, content=body.content
        )

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    @app.post("/session/play", response_model=SessionResponse, tags=["playback"], summary="Play")
    async def play(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.PLAY)

    @app.post("/session/pause", response_model=SessionResponse, tags=["playback"], summary="Pause")
    async def pause(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.PAUSE)

    @app.post(
        "/session/toggle",
        response_model=SessionResponse,
        tags=["playback"],
        summary="Toggle play/pause",
    )
    async def toggle(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.TOGGLE_PLAY)

    @app.post("/session/rewind", response_model=SessionResponse, tags=["playback"], summary="Rewind")
    async def rewind(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.REWIND)

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    @app.post(
        "/session/slides/next",
        response_model=SessionResponse,
        tags=["slides"],
        summary="Next slide",
        responses=_ERRORS,
    )
    async def next_slide(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.NEXT_SLIDE)

    @app.post(
        "/session/slides/previous",
        response_model=SessionResponse,
        tags=["slides"],
        summary="Previous slide",
        responses=_ERRORS,
    )
    async def previous_slide(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.PREVIOUS_SLIDE)

    @app.post(
        "/session/slides/go",
        response_model=SessionResponse,
        tags=["slides"],
        summary="Go to a slide (1-based)",
        responses=_ERRORS,
    )
    async def go_to_slide(body: GoToSlide, request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.GO_TO_SLIDE, index=body.slide_number - 1)

    @app.put(
        "/session/slides/display",
        response_model=SessionResponse,
        tags=["slides"],
        summary="Show slide image or notes",
    )
    async def put_slide_display(body: SlideDisplayUpdate, request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.SET_SLIDE_DISPLAY, display=body.display.value)

    # ------------------------------------------------------------------
    # Voice control and cues
    # ------------------------------------------------------------------

    @app.post(
        "/session/voice",
        response_model=SessionResponse,
        tags=["voice"],
        summary="Turn voice control on or off",
        description=(
            "Capture starts once playback is running in a scrolling view. A "
            "refused microphone turns voice control back off and queues a "
            "notification."
        ),
    )
    async def set_voice(body: VoiceControlRequest, request: Request) -> SessionResponse:
        return _dispatch(
            request, ActionType.SET_VOICE_CONTROL, enabled=body.enabled, device=body.device
        )

    @app.get(
        "/devices",
        response_model=List[DeviceResponse],
        tags=["voice"],
        summary="List input devices",
    )
    async def list_devices() -> List[DeviceResponse]:
        from cueline.capture.recorder import list_input_devices

        return [DeviceResponse(**vars(device)) for device in list_input_devices()]

    @app.post(
        "/session/cues",
        response_model=SessionResponse,
        tags=["voice"],
        summary="Turn cue directives on or off",
    )
    async def set_cues(body: ToggleRequest, request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.SET_CUES, enabled=body.enabled)

    @app.get(
        "/session/notifications",
        response_model=List[NotificationResponse],
        tags=["session"],
        summary="Drain queued notifications",
    )
    async def get_notifications(request: Request) -> List[NotificationResponse]:
        return [
            NotificationResponse(**note.to_dict())
            for note in _session(request).drain_notifications()
        ]

    # ------------------------------------------------------------------
    # Command log
    # ------------------------------------------------------------------

    @app.post(
        "/session/log/enable",
        response_model=SessionResponse,
        tags=["log"],
        summary="Start logging (clears the log, take 1)",
    )
    async def enable_log(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.ENABLE_LOG)

    @app.post(
        "/session/log/disable",
        response_model=SessionResponse,
        tags=["log"],
        summary="Stop logging",
    )
    async def disable_log(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.DISABLE_LOG)

    @app.get(
        "/session/log",
        response_model=List[LogEntryResponse],
        tags=["log"],
        summary="List log entries",
    )
    async def get_log(request: Request) -> List[LogEntryResponse]:
        return [
            LogEntryResponse(
                take=entry.take,
                timestamp=format_timestamp(entry.timestamp),
                command=entry.command,
                details=entry.details,
            )
            for entry in _session(request).log.entries()
        ]

    @app.delete(
        "/session/log",
        response_model=SessionResponse,
        tags=["log"],
        summary="Clear log entries (keeps the take and logging flag)",
    )
    async def clear_log(request: Request) -> SessionResponse:
        return _dispatch(request, ActionType.CLEAR_LOG)

    @app.get(
        "/session/log/export/{fmt}",
        tags=["log"],
        summary="Download the log as CSV or SRT",
    )
    async def export_log(fmt: ExportFormat, request: Request) -> Response:
        try:
            output = _session(request).export_log(fmt.value)
        except CueLineError as exc:
            raise _http_error(exc)
        return Response(
            content=output.content,
            media_type=output.media_type,
            headers={
                "Content-Disposition": 'attachment; filename="{}"'.format(output.filename)
            },
        )

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    @app.get(
        "/presets",
        response_model=List[PresetResponse],
        tags=["presets"],
        summary="List or search presets",
    )
    async def list_presets(request: Request, search: Optional[str] = None) -> List[PresetResponse]:
        store: PresetStore = request.app.state.presets
        found = store.search(search) if search else store.list()
        return [PresetResponse(**p.to_dict()) for p in found]

    @app.post(
        "/presets",
        response_model=PresetResponse,
        status_code=201,
        tags=["presets"],
        summary="Save a preset",
        responses=_ERRORS,
    )
    async def create_preset(body: PresetCreate, request: Request) -> PresetResponse:
        store: PresetStore = request.app.state.presets
        values = body.settings
        if values is None:
            values = _session(request).state.settings.to_dict()
        try:
            preset = store.save(body.name, values)
        except CueLineError as exc:
            raise _http_error(exc)
        return PresetResponse(**preset.to_dict())

    @app.delete("/presets/{preset_id}", status_code=204, tags=["presets"], summary="Delete a preset")
    async def delete_preset(preset_id: str, request: Request) -> Response:
        if not request.app.state.presets.delete(preset_id):
            raise HTTPException(status_code=404, detail="Preset not found: {}".format(preset_id))
        return Response(status_code=204)

    @app.post(
        "/presets/{preset_id}/apply",
        response_model=SessionResponse,
        tags=["presets"],
        summary="Apply a preset to the session",
    )
    async def apply_preset(preset_id: str, request: Request) -> SessionResponse:
        preset = request.app.state.presets.get(preset_id)
        if preset is None:
            raise HTTPException(status_code=404, detail="Preset not found: {}".format(preset_id))
        return _dispatch(request, ActionType.UPDATE_SETTINGS, values=preset.settings())

    # ------------------------------------------------------------------
    # Script assistant
    # ------------------------------------------------------------------

    @app.post(
        "/script/assist",
        response_model=AssistResponse,
        tags=["script"],
        summary="Fix, rewrite, format, or clean up the script",
        responses={
            400: {"model": ErrorResponse, "description": "Empty selection or script"},
            502: {"model": ErrorResponse, "description": "Model call failed"},
            503: {"model": ErrorResponse, "description": "Inference not configured"},
        },
    )
    async def assist(body: AssistRequest, request: Request) -> AssistResponse:
        gemini: Optional[GeminiClient] = request.app.state.gemini
        if gemini is None:
            raise HTTPException(
                status_code=503,
                detail="AI assistance is not configured. Set GOOGLE_API_KEY in the .env file.",
            )
        session = _session(request)
        text = body.text if body.text is not None else session.state.text
        assistant = ScriptAssistant(gemini)
        try:
            if body.command.value == "cleanup":
                new_text = await assistant.cleanup(text)
                result = AssistResponse(text=new_text, selection_start=0, selection_end=len(new_text))
            else:
                end = body.end if body.end is not None else len(text)
                edited = await assistant.apply(body.command.value, text, body.start, end)
                result = AssistResponse(
                    text=edited.text,
                    selection_start=edited.selection_start,
                    selection_end=edited.selection_end,
                )
        except CueLineError as exc:
            session.notify_error(exc)
            raise _http_error(exc)
        if body.apply:
            _dispatch(request, ActionType.SET_TEXT, text=result.text)
        return result

    # ------------------------------------------------------------------
    # Google import
    # ------------------------------------------------------------------

    @app.get(
        "/import/documents",
        response_model=List[DriveFileResponse],
        tags=["import"],
        summary="List Google Docs",
    )
    async def list_documents(
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ) -> List[DriveFileResponse]:
        try:
            async with request.app.state.importer_factory(_bearer(authorization)) as importer:
                files = await importer.list_documents()
        except CueLineError as exc:
            raise _http_error(exc)
        return [DriveFileResponse(id=f.id, name=f.name) for f in files]

    @app.post(
        "/import/documents/{document_id}",
        response_model=SessionResponse,
        tags=["import"],
        summary="Import a Google Doc as the script",
    )
    async def import_document(
        document_id: str,
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ) -> SessionResponse:
        try:
            async with request.app.state.importer_factory(_bearer(authorization)) as importer:
                text = await importer.fetch_document_text(document_id)
        except CueLineError as exc:
            _session(request).notify_error(exc)
            raise _http_error(exc)
        return _dispatch(request, ActionType.LOAD_DOCUMENT, text=text)

    @app.get(
        "/import/presentations",
        response_model=List[DriveFileResponse],
        tags=["import"],
        summary="List Google Slides presentations",
    )
    async def list_presentations(
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ) -> List[DriveFileResponse]:
        try:
            async with request.app.state.importer_factory(_bearer(authorization)) as importer:
                files = await importer.list_presentations()
        except CueLineError as exc:
            raise _http_error(exc)
        return [DriveFileResponse(id=f.id, name=f.name) for f in files]

    @app.post(
        "/import/presentations/{presentation_id}",
        response_model=SessionResponse,
        tags=["import"],
        summary="Import a Google Slides deck",
    )
    async def import_presentation(
        presentation_id: str,
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ) -> SessionResponse:
        try:
            async with request.app.state.importer_factory(_bearer(authorization)) as importer:
                slides = await importer.fetch_slides(presentation_id)
        except CueLineError as exc:
            _session(request).notify_error(exc)
            raise _http_error(exc)
        return _dispatch(request, ActionType.LOAD_SLIDES, slides=slides)

    # ------------------------------------------------------------------
    # Mirror
    # ------------------------------------------------------------------

    @app.websocket("/mirror")
    async def mirror(websocket: WebSocket) -> None:
        await websocket.accept()
        session: TeleprompterSession = websocket.app.state.session
        queue: asyncio.Queue = asyncio.Queue()

        def forward(event: MirrorEvent) -> None:
            queue.put_nowait(event.to_dict())

        unsubscribe = session.bus.subscribe(forward)
        closed = asyncio.ensure_future(_wait_for_disconnect(websocket))
        try:
            # Late joiners get the current settings before live events
            await websocket.send_json(
                {"type": "settings_update", "payload": session.to_dict()}
            )
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {getter, closed}, return_when=asyncio.FIRST_COMPLETED
                )
                if closed in done:
                    getter.cancel()
                    break
                await websocket.send_json(getter.result())
        except WebSocketDisconnect:
            pass
        finally:
            unsubscribe()
            closed.cancel()
            logger.debug("Mirror client disconnected")


app = create_app()


def run_api(host: str = API_HOST, port: int = API_PORT) -> None:
    """Entry point for ``cueline serve``."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


# ---------------------------------------------------------------------------
# Helpers (private)
# ---------------------------------------------------------------------------


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Discard inbound mirror messages until the client goes away."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
