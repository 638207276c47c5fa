"""Tests for the client upload pipeline.

Tests cover:
- Stage estimates, progress and ETA formatting
- Upload failure aborts the run
- Analysis failure is non-fatal; a 20 MB file still reaches 100%
- Transcript and caption calls settle independently
- Post-pipeline save and publish notifications
- Real HTTP bodies: minimal and malformed replies settle into an outcome
"""

import uuid
from pathlib import Path

import httpx
import pytest

from app.client.api import StudioApiClient
from app.client.frames import ExtractedFrame
from app.client.notifications import NotificationLog
from app.client.upload_orchestrator import (
    PipelineStatus,
    StageState,
    UploadOrchestrator,
    build_stages,
    format_eta,
    summarize_artifacts,
)
from app.exceptions import (
    CollaboratorUnavailableError,
    DuplicateUploadError,
    StaleCredentialsError,
)
from app.schemas.video import (
    AnalysisPayload,
    AnalyzeVideoResponse,
    ThumbnailConcept,
    TranscribeResponse,
    TranscriptionPayload,
    UpdateVideoResponse,
    UploadResponse,
    VideoInfo,
    VideoSummary,
)
from app.schemas.youtube import YouTubeUploadRequest
from app.utils.cli_wrapper import MediaToolError

MIB = 1024 * 1024
VIDEO_ID = uuid.uuid4()


class FakeApi:
    """Answers every pipeline call; any call can be made to fail."""

    def __init__(self, **failures: Exception):
        self.failures = failures
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    async def request_upload(self, file_name, file_type, upload_type="video", video_id=None):
        self._maybe_fail("request_upload")
        return UploadResponse(
            upload_url="https://s3.test/put",
            upload_type="video",
            record_id=VIDEO_ID,
            file_key=f"uploads/u/{file_name}",
            video_file_id=VIDEO_ID,
        )

    async def put_bytes(self, upload_url, data, content_type):
        self._maybe_fail("put_bytes")

    async def analyze_video(self, video_id, frames, transcript_text=None):
        self._maybe_fail("analyze_video")
        return AnalyzeVideoResponse(
            analysis=AnalysisPayload(
                titles=["A"],
                description="",
                thumbnail_concept=ThumbnailConcept(),
                thumbnail_prompt="",
            ),
            screenshots=[],
            video_info=VideoInfo(id=video_id, name="clip.mp4", has_transcript=False),
        )

    async def transcribe(self, file_name, data, content_type, video_id=None):
        self._maybe_fail("transcribe")
        return TranscribeResponse(
            result=TranscriptionPayload(text="hi", confidence=0.9, language="en", word_count=1)
        )

    async def captions(self, file_name, data, content_type, caption_format, video_id=None):
        self._maybe_fail(caption_format)
        return f"{caption_format} body"

    async def update_video(self, video_id, title, thumbnail=None):
        self._maybe_fail("update_video")
        return UpdateVideoResponse(video=VideoSummary(id=video_id, title=title, thumbnail_key=None))

    async def publish(self, request):
        self._maybe_fail("publish")
        raise AssertionError("publish success is not exercised here")


async def three_frames(path: Path) -> list[ExtractedFrame]:
    return [ExtractedFrame(i + 1, float(2 + i), b"\xff\xd8") for i in range(3)]


@pytest.fixture
def video_file(tmp_path: Path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * (20 * MIB))
    return path


def make_orchestrator(api: FakeApi, frame_extractor=three_frames) -> UploadOrchestrator:
    return UploadOrchestrator(api, notify=NotificationLog(), frame_extractor=frame_extractor)


class TestEstimates:
    def test_small_file_uses_minimums(self):
        assert [s.estimate for s in build_stages(1 * MIB)] == [5.0, 5.0, 15.0, 3.0, 15.0, 3.0]

    def test_large_file_scales(self):
        assert [s.estimate for s in build_stages(100 * MIB)] == [50.0, 5.0, 15.0, 20.0, 100.0, 3.0]

    @pytest.mark.parametrize(("seconds", "text"), [(0, "0:00"), (59.2, "1:00"), (125, "2:05")])
    def test_format_eta(self, seconds: float, text: str):
        assert format_eta(seconds) == text

    def test_initial_progress(self):
        orchestrator = make_orchestrator(FakeApi())

        assert orchestrator.progress == 0
        assert orchestrator.eta == "0:46"


class TestSummaries:
    @pytest.mark.parametrize(
        ("flags", "message"),
        [
            ((True, True, True), "Transcript and captions generated"),
            ((True, True, False), "Transcript and captions generated, SRT captions failed"),
            ((True, False, False), "Transcript generated, captions failed"),
            ((False, False, True), "Captions generated, transcription failed"),
            ((False, False, False), "Transcription and captions failed"),
        ],
    )
    def test_messages(self, flags, message: str):
        assert summarize_artifacts(*flags) == message


class TestRun:
    async def test_p0_complete_run(self, video_file: Path):
        api = FakeApi()
        orchestrator = make_orchestrator(api)

        outcome = await orchestrator.run(video_file)

        assert outcome.status == PipelineStatus.COMPLETE
        assert outcome.video_id == VIDEO_ID
        assert outcome.has_transcript
        assert outcome.caption_formats == ["srt", "webvtt"]
        assert orchestrator.progress == 100
        assert orchestrator.eta == "0:00"
        assert orchestrator.notify.last.title == "Processing Complete"

    async def test_p0_upload_failure_aborts(self, video_file: Path):
        api = FakeApi(put_bytes=CollaboratorUnavailableError("storage", "Upload failed"))
        orchestrator = make_orchestrator(api)

        outcome = await orchestrator.run(video_file)

        assert outcome.status == PipelineStatus.FAILED
        assert "upload" in outcome.errors
        assert api.calls == ["request_upload", "put_bytes"]
        assert orchestrator.stages[0].state == StageState.FAILED
        assert orchestrator.progress == 0
        assert orchestrator.notify.last.title == "Upload Failed"

    async def test_p0_analysis_500_still_reaches_100(self, video_file: Path):
        """[P0] A 20 MB upload whose analysis fails still completes, degraded."""
        # GIVEN: Analysis answers 500
        api = FakeApi(
            analyze_video=CollaboratorUnavailableError(
                "analysis", "Failed to analyze video", status_code=500
            )
        )
        orchestrator = make_orchestrator(api)

        # WHEN: The pipeline runs
        outcome = await orchestrator.run(video_file)

        # THEN: Transcript and captions still arrive and progress is full
        assert [s.estimate for s in orchestrator.stages] == [10.0, 5.0, 15.0, 4.0, 20.0, 3.0]
        assert outcome.status == PipelineStatus.DEGRADED
        assert outcome.analysis is None
        assert outcome.has_transcript
        assert "AI analysis unavailable" in outcome.messages
        assert orchestrator.progress == 100

    async def test_p1_frame_extraction_failure_skips_analysis(self, video_file: Path):
        async def broken_extractor(path: Path):
            raise MediaToolError("ffprobe", 1, "invalid data")

        api = FakeApi()
        outcome = await make_orchestrator(api, broken_extractor).run(video_file)

        assert "analyze_video" not in api.calls
        assert outcome.status == PipelineStatus.DEGRADED
        assert "No frames available for AI analysis" in outcome.messages

    async def test_p0_partial_artifacts_are_degraded(self, video_file: Path):
        api = FakeApi(srt=CollaboratorUnavailableError("captions", "boom"))

        outcome = await make_orchestrator(api).run(video_file)

        assert outcome.status == PipelineStatus.DEGRADED
        assert outcome.caption_formats == ["webvtt"]
        assert "srt" in outcome.errors
        assert "Transcript and captions generated, SRT captions failed" in outcome.messages

    async def test_p0_all_artifacts_failed(self, video_file: Path):
        failure = CollaboratorUnavailableError("transcription", "down")
        api = FakeApi(transcribe=failure, webvtt=failure, srt=failure)
        orchestrator = make_orchestrator(api)

        outcome = await orchestrator.run(video_file)

        assert outcome.status == PipelineStatus.FAILED
        assert orchestrator.progress < 100
        assert orchestrator.notify.last.title == "Processing Failed"


class TestAfterPipeline:
    async def test_p1_save_selection_uses_uploaded_video(self, video_file: Path):
        api = FakeApi()
        orchestrator = make_orchestrator(api)
        await orchestrator.run(video_file)

        result = await orchestrator.save_selection("Best Title")

        assert result.video.id == VIDEO_ID
        assert orchestrator.notify.last.title == "Saved"

    async def test_p1_save_without_upload(self):
        orchestrator = make_orchestrator(FakeApi())

        assert await orchestrator.save_selection("Title") is None
        assert orchestrator.notify.last.is_error

    async def test_p0_stale_link_asks_to_reconnect(self):
        api = FakeApi(publish=StaleCredentialsError("expired"))
        orchestrator = make_orchestrator(api)

        result = await orchestrator.publish(YouTubeUploadRequest(video_id=VIDEO_ID, title="T"))

        assert result is None
        assert orchestrator.notify.last.title == "YouTube Not Connected"
        assert "reconnect" in orchestrator.notify.last.description

    async def test_p1_duplicate_shows_existing_url(self):
        api = FakeApi(publish=DuplicateUploadError("dup", existing_url="https://youtu.be/x"))
        orchestrator = make_orchestrator(api)

        await orchestrator.publish(YouTubeUploadRequest(video_id=VIDEO_ID, title="T"))

        assert "https://youtu.be/x" in orchestrator.notify.last.description


VTT_BODY = "WEBVTT\n\n00:00:00.000 --> 00:00:01.000\nhello there\n"


class StudioServer:
    """MockTransport handler serving the pipeline endpoints.

    Each keyword overrides one endpoint with httpx.Response keyword arguments,
    so every request gets a fresh response.
    """

    def __init__(self, **replies: dict):
        self.replies = replies

    def _reply(self, name: str, **default) -> httpx.Response:
        return httpx.Response(**self.replies.get(name, default))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "s3.test":
            return httpx.Response(200)
        if path == "/api/v1/upload":
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "uploadUrl": "https://s3.test/uploads/clip.mp4",
                    "uploadType": "video",
                    "recordId": str(VIDEO_ID),
                    "fileKey": "uploads/u/clip.mp4",
                    "videoFileId": str(VIDEO_ID),
                },
            )
        if path == "/api/v1/analyze-video":
            return self._reply(
                "analyze",
                status_code=200,
                json={
                    "success": True,
                    "analysis": {
                        "titles": ["Sunrise Run", "Morning Miles", "Beach Pace"],
                        "description": "A run at dawn.",
                        "thumbnailConcept": "Runner against the sun",
                        "thumbnailPrompt": "runner, sunrise, beach",
                        "generatedImages": [],
                    },
                },
            )
        if path == "/api/v1/transcribe":
            return self._reply(
                "transcribe",
                status_code=200,
                json={
                    "success": True,
                    "result": {
                        "text": "hello there",
                        "confidence": 0.97,
                        "language": "en",
                        "wordCount": 2,
                    },
                },
            )
        if path == "/api/v1/captions":
            return self._reply("captions", status_code=200, text=VTT_BODY)
        return httpx.Response(404, json={"success": False, "error": "Not found"})


@pytest.fixture
def small_video(tmp_path: Path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 2048)
    return path


def http_orchestrator(server: StudioServer) -> UploadOrchestrator:
    api = StudioApiClient(
        "http://studio.test",
        session_token="sess",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(server)),
    )
    return UploadOrchestrator(api, notify=NotificationLog(), frame_extractor=three_frames)


class TestRunOverHttp:
    """The pipeline driven through StudioApiClient and real response bodies."""

    async def test_p0_minimal_analysis_reply_is_accepted(self, small_video: Path):
        """[P0] An analysis body with only {success, analysis} completes the run."""
        # GIVEN: Every endpoint answers; analysis omits screenshots and videoInfo
        server = StudioServer()
        orchestrator = http_orchestrator(server)

        # WHEN: The pipeline runs
        outcome = await orchestrator.run(small_video)

        # THEN: The analysis is parsed and the run is complete
        assert outcome.status == PipelineStatus.COMPLETE
        assert outcome.analysis.analysis.titles[0] == "Sunrise Run"
        assert outcome.analysis.analysis.thumbnail_concept == "Runner against the sun"
        assert outcome.analysis.screenshots == []
        assert outcome.analysis.video_info is None
        assert orchestrator.progress == 100

    async def test_p0_non_json_transcript_is_degraded(self, small_video: Path):
        """[P0] A 200 transcript reply that is not JSON fails only that artifact."""
        # GIVEN: Analysis answers 500 and the transcript comes back as an HTML page
        server = StudioServer(
            analyze={"status_code": 500, "json": {"success": False, "error": "Failed"}},
            transcribe={"status_code": 200, "text": "<html>gateway</html>"},
        )
        orchestrator = http_orchestrator(server)

        # WHEN: The pipeline runs
        outcome = await orchestrator.run(small_video)

        # THEN: Captions still count and the outcome is degraded, not an exception
        assert outcome.status == PipelineStatus.DEGRADED
        assert outcome.transcript is None
        assert outcome.caption_formats == ["srt", "webvtt"]
        assert set(outcome.errors) == {"analysis", "transcript"}
        assert "Captions generated, transcription failed" in outcome.messages
        assert orchestrator.progress == 100

    async def test_p1_transcript_missing_fields_is_degraded(self, small_video: Path):
        server = StudioServer(
            transcribe={"status_code": 200, "json": {"success": True, "result": {"text": "hi"}}}
        )

        outcome = await http_orchestrator(server).run(small_video)

        assert outcome.status == PipelineStatus.DEGRADED
        assert "transcript" in outcome.errors

    async def test_p1_empty_caption_bodies_fail_only_captions(self, small_video: Path):
        server = StudioServer(captions={"status_code": 200, "text": ""})

        outcome = await http_orchestrator(server).run(small_video)

        assert outcome.status == PipelineStatus.DEGRADED
        assert outcome.has_transcript
        assert outcome.caption_formats == []
        assert "Transcript generated, captions failed" in outcome.messages
