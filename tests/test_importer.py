"""Tests for Google Docs / Slides import against mocked Google APIs."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from cueline.errors import DocumentImportError
from cueline.imports.google import GoogleImporter, document_text, slide_videos, speaker_notes

DOCUMENT = {
    "body": {"content": [
        {"sectionBreak": {}},
        {"paragraph": {"elements": [
            {"textRun": {"content": "Good evening, "}},
            {"textRun": {"content": "everyone.\n"}},
        ]}},
        {"table": {}},
        {"paragraph": {"elements": [{"textRun": {"content": "[PAUSE 2 SECONDS] Welcome.\n"}}]}},
    ]},
}

PAGE = {
    "objectId": "p1",
    "pageElements": [
        {"objectId": "v1", "video": {"videoProperties": {"start": 5, "end": 20}}},
        {"objectId": "v2", "video": {"videoProperties": {}}},
        {"objectId": "s1", "shape": {}},
    ],
    "slideProperties": {"notesPage": {
        "notesProperties": {"speakerNotesObjectId": "n2"},
        "pageElements": [
            {"objectId": "n1", "shape": {"text": {"textElements": [
                {"textRun": {"content": "slide number"}},
            ]}}},
            {"objectId": "n2", "shape": {"text": {"textElements": [
                {"paragraphMarker": {}},
                {"textRun": {"content": "Open with the story.\n"}},
            ]}}},
        ],
    }},
}


def _run(handler, call, token="token"):
    seen = []

    def recording(request):
        seen.append(request)
        return handler(request)

    async def scenario():
        async with GoogleImporter(token, transport=httpx.MockTransport(recording)) as importer:
            return await call(importer)

    return asyncio.run(scenario()), seen


class TestParsing:
    def test_document_text_concatenates_runs(self):
        assert document_text(DOCUMENT) == "Good evening, everyone.\n[PAUSE 2 SECONDS] Welcome.\n"

    def test_speaker_notes_uses_notes_shape(self):
        assert speaker_notes(PAGE) == "Open with the story."

    def test_speaker_notes_missing(self):
        assert speaker_notes({"objectId": "p"}) == ""

    def test_video_durations(self):
        assert [v.duration_s for v in slide_videos(PAGE)] == [15.0, 0.0]


class TestGoogleImporter:
    def test_list_documents_query(self):
        def handler(request):
            return httpx.Response(200, json={"files": [{"id": "d1", "name": "Keynote"}]})

        files, seen = _run(handler, lambda i: i.list_documents())
        assert [(f.id, f.name) for f in files] == [("d1", "Keynote")]
        params = seen[0].url.params
        assert params["q"] == "mimeType='application/vnd.google-apps.document'"
        assert params["orderBy"] == "modifiedTime desc"
        assert params["pageSize"] == "50"
        assert seen[0].headers["Authorization"] == "Bearer token"

    def test_fetch_document_text(self):
        text, _ = _run(lambda r: httpx.Response(200, json=DOCUMENT), lambda i: i.fetch_document_text("d1"))
        assert text.startswith("Good evening")

    def test_fetch_slides(self):
        def handler(request):
            if request.url.path.endswith("/thumbnail"):
                return httpx.Response(200, json={"contentUrl": "https://thumb/p1.png"})
            return httpx.Response(200, json={"slides": [PAGE]})

        slides, seen = _run(handler, lambda i: i.fetch_slides("deck"))
        assert len(slides) == 1
        assert slides[0].image_url == "https://thumb/p1.png"
        assert slides[0].speaker_notes == "Open with the story."
        assert slides[0].video_durations == [15.0, 0.0]
        assert seen[1].url.path.endswith("/presentations/deck/pages/p1/thumbnail")

    def test_expired_token(self):
        with pytest.raises(DocumentImportError) as excinfo:
            _run(lambda r: httpx.Response(401), lambda i: i.list_presentations())
        assert excinfo.value.expired
        assert "sign in again" in excinfo.value.message

    def test_server_error(self):
        with pytest.raises(DocumentImportError) as excinfo:
            _run(lambda r: httpx.Response(500), lambda i: i.list_presentations())
        assert not excinfo.value.expired
        assert excinfo.value.message.startswith("Failed to fetch Google Slides")

    def test_missing_token(self):
        with pytest.raises(DocumentImportError) as excinfo:
            GoogleImporter("")
        assert excinfo.value.expired
