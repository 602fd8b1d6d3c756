"""Async client for importing scripts from Google Docs and Google Slides.

WHY: Speakers keep their scripts in Docs and their decks in Slides. The
prompter needs plain text from a document, and for a deck the slide
thumbnails, speaker notes, and embedded video lengths (for video cues).

HOW: GoogleImporter wraps httpx.AsyncClient with the caller's OAuth bearer
token, the same async-context-manager shape as GeminiClient. Drive v3 lists
files by MIME type, Docs v1 returns the document body, Slides v1 returns
the presentation and per-page thumbnails.

RULES:
- Use as: async with GoogleImporter(token) as importer: ...
- 401/403 -> DocumentImportError(expired=True) with a "sign in again" message
- Any other failure -> DocumentImportError with a generic message
- Document text is the concatenation of every paragraph text run
- Video duration = (endAt - startAt) in seconds; a missing endAt means
  the video length is unknown and counts as 0
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from cueline.config import GOOGLE_DOCS_URL, GOOGLE_DRIVE_URL, GOOGLE_SLIDES_URL
from cueline.core.state import Slide, SlideVideo
from cueline.errors import DocumentImportError

logger = logging.getLogger(__name__)

_DOC_MIME = "application/vnd.google-apps.document"
_SLIDES_MIME = "application/vnd.google-apps.presentation"
_EXPIRED_MESSAGE = "Access token expired or invalid. Please sign in again."


@dataclass(frozen=True)
class DriveFile:
    id: str
    name: str


class GoogleImporter:
    """Fetches Docs text and Slides content with a user access token."""

    def __init__(
        self,
        access_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not access_token:
            raise DocumentImportError(_EXPIRED_MESSAGE, expired=True)
        self._token = access_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GoogleImporter:
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=httpx.Timeout(30.0, connect=10.0),
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
                "GoogleImporter must be used as an async context manager: "
                "async with GoogleImporter(token) as importer: ..."
            )
        return self._client

    async def _get_json(self, url: str, failure: str, params: Optional[dict] = None) -> dict:
        client = self._ensure_client()
        try:
            resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Google request failed: %s", exc)
            raise DocumentImportError(failure) from exc
        if resp.status_code in (401, 403):
            raise DocumentImportError(_EXPIRED_MESSAGE, expired=True)
        if not resp.is_success:
            logger.warning("Google API error %d: %s", resp.status_code, resp.text[:200])
            raise DocumentImportError(failure)
        try:
            return resp.json()
        except ValueError as exc:
            raise DocumentImportError(failure) from exc

    # ------------------------------------------------------------------
    # Drive listing
    # ------------------------------------------------------------------

    async def _list_files(self, mime_type: str, failure: str) -> List[DriveFile]:
        data = await self._get_json(
            "{}/files".format(GOOGLE_DRIVE_URL),
            failure,
            params={
                "pageSize": 50,
                "fields": "files(id, name)",
                "q": "mimeType='{}'".format(mime_type),
                "orderBy": "modifiedTime desc",
            },
        )
        return [
            DriveFile(id=f["id"], name=f.get("name", ""))
            for f in data.get("files") or []
        ]

    async def list_documents(self) -> List[DriveFile]:
        return await self._list_files(
            _DOC_MIME,
            "Failed to fetch Google Docs. The access token might be expired or invalid.",
        )

    async def list_presentations(self) -> List[DriveFile]:
        return await self._list_files(
            _SLIDES_MIME,
            "Failed to fetch Google Slides. The access token might be expired or invalid.",
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def fetch_document_text(self, document_id: str) -> str:
        data = await self._get_json(
            "{}/documents/{}".format(GOOGLE_DOCS_URL, document_id),
            "Failed to fetch Google Doc content.",
        )
        return document_text(data)

    async def fetch_slides(self, presentation_id: str) -> List[Slide]:
        failure = "Failed to fetch Google Slides content."
        data = await self._get_json(
            "{}/presentations/{}".format(GOOGLE_SLIDES_URL, presentation_id),
            failure,
        )
        pages = data.get("slides") or []
        thumbnails = await asyncio.gather(*[
            self._get_json(
                "{}/presentations/{}/pages/{}/thumbnail".format(
                    GOOGLE_SLIDES_URL, presentation_id, page["objectId"]
                ),
                failure,
            )
            for page in pages
        ])
        slides = [
            Slide(
                image_url=thumb.get("contentUrl", ""),
                speaker_notes=speaker_notes(page),
                videos=tuple(slide_videos(page)),
            )
            for page, thumb in zip(pages, thumbnails)
        ]
        logger.info("Imported %d slides from %s", len(slides), presentation_id)
        return slides


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def document_text(document: dict) -> str:
    """Concatenate every paragraph text run of a Docs API document."""
    parts: List[str] = []
    for element in (document.get("body") or {}).get("content") or []:
        paragraph = element.get("paragraph")
        if not paragraph:
            continue
        for item in paragraph.get("elements") or []:
            content = (item.get("textRun") or {}).get("content")
            if content:
                parts.append(content)
    return "".join(parts)


def _shape_text(shape: dict) -> str:
    parts: List[str] = []
    for item in (shape.get("text") or {}).get("textElements") or []:
        content = (item.get("textRun") or {}).get("content")
        if content:
            parts.append(content)
    return "".join(parts)


def speaker_notes(page: dict) -> str:
    """Text of the speaker-notes shape on a slide's notes page."""
    notes_page = (page.get("slideProperties") or {}).get("notesPage") or {}
    notes_id = (notes_page.get("notesProperties") or {}).get("speakerNotesObjectId")
    for element in notes_page.get("pageElements") or []:
        if element.get("objectId") == notes_id and "shape" in element:
            return _shape_text(element["shape"]).strip()
    return ""


def slide_videos(page: dict) -> List[SlideVideo]:
    """Embedded videos on a slide, in page-element order."""
    videos: List[SlideVideo] = []
    for element in page.get("pageElements") or []:
        video = element.get("video")
        if video is None:
            continue
        props = video.get("videoProperties") or {}
        start = float(props.get("start", 0) or 0)
        end = props.get("end")
        duration = max(0.0, float(end) - start) if end is not None else 0.0
        videos.append(SlideVideo(duration_s=duration))
    return videos
