"""Client-side upload pipeline.

Stages, in order:

    Upload -> Screenshot Extraction -> AI Analysis -> Audio Processing
        -> Transcription & Captions -> Finalizing

Only the upload is fatal. Frame extraction and analysis are optional
enrichments; the transcript and the two caption formats are requested
concurrently and each settles on its own. The pipeline reaches 100% when
at least one of those three artifacts succeeded.

Stage estimates are for the progress/ETA display only.
"""

import asyncio
import enum
import math
import mimetypes
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import UUID

from app.client.api import API_ERRORS, StudioApiClient
from app.client.frames import ExtractedFrame, extract_frames
from app.client.notifications import Notification, NotificationLog, Notifier
from app.exceptions import (
    CollaboratorUnavailableError,
    DuplicateUploadError,
    StaleCredentialsError,
)
from app.schemas.video import AnalyzeVideoResponse, TranscribeResponse, UpdateVideoResponse
from app.schemas.youtube import YouTubeUploadRequest, YouTubeUploadResponse
from app.utils.cli_wrapper import MediaToolError
from app.utils.logging import get_logger

log = get_logger(__name__)

MIB = 1024 * 1024
FRAME_ERRORS = (MediaToolError, FileNotFoundError, asyncio.TimeoutError, ValueError, OSError)

FrameExtractor = Callable[[Path], Awaitable[list[ExtractedFrame]]]


class PipelineStatus(str, enum.Enum):
    COMPLETE = "complete"
    DEGRADED = "degraded"
    FAILED = "failed"


class StageState(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Stage:
    name: str
    estimate: float
    state: StageState = StageState.PENDING


def build_stages(size_bytes: int) -> list[Stage]:
    """Six stages with size-derived estimates in seconds.

    Example:
        >>> [s.estimate for s in build_stages(20 * 1024 * 1024)]
        [10.0, 5.0, 15.0, 4.0, 20.0, 3.0]
    """
    mb = size_bytes / MIB
    return [
        Stage("Upload", max(5.0, 0.5 * mb)),
        Stage("Screenshot Extraction", 5.0),
        Stage("AI Analysis", 15.0),
        Stage("Audio Processing", max(3.0, 0.2 * mb)),
        Stage("Transcription & Captions", max(15.0, 1.0 * mb)),
        Stage("Finalizing", 3.0),
    ]


def format_eta(seconds: float) -> str:
    seconds = max(0, math.ceil(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


@dataclass
class PipelineOutcome:
    """Settled result of one run. Artifacts are None when their call failed."""

    status: PipelineStatus
    video_id: UUID | None = None
    file_key: str | None = None
    analysis: AnalyzeVideoResponse | None = None
    transcript: TranscribeResponse | None = None
    captions: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)

    @property
    def has_transcript(self) -> bool:
        return self.transcript is not None

    @property
    def caption_formats(self) -> list[str]:
        return sorted(self.captions)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def summarize_artifacts(transcript_ok: bool, webvtt_ok: bool, srt_ok: bool) -> str:
    """User-facing summary of the fan-out stage."""
    captions_ok = webvtt_ok or srt_ok
    if transcript_ok and webvtt_ok and srt_ok:
        return "Transcript and captions generated"
    if transcript_ok and captions_ok:
        missing = "SRT" if webvtt_ok else "WebVTT"
        return f"Transcript and captions generated, {missing} captions failed"
    if transcript_ok:
        return "Transcript generated, captions failed"
    if captions_ok:
        return "Captions generated, transcription failed"
    return "Transcription and captions failed"


class UploadOrchestrator:
    """Runs the upload pipeline against StudioApiClient.

    Collaborator failures never escape run(); they become a PipelineOutcome
    plus notifications. Pacing delays default to zero.
    """

    def __init__(
        self,
        api: StudioApiClient,
        notify: Notifier | None = None,
        frame_extractor: FrameExtractor | None = None,
        audio_delay: float = 0.0,
        finalize_delay: float = 0.0,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.api = api
        self.notify = notify or NotificationLog()
        self.frame_extractor = frame_extractor or extract_frames
        self.audio_delay = audio_delay
        self.finalize_delay = finalize_delay
        self._sleep = sleep or asyncio.sleep
        self.stages: list[Stage] = build_stages(0)
        self.outcome: PipelineOutcome | None = None

    # Progress

    @property
    def progress(self) -> int:
        done = sum(1 for stage in self.stages if stage.state == StageState.DONE)
        return round(done / len(self.stages) * 100)

    @property
    def eta(self) -> str:
        remaining = sum(stage.estimate for stage in self.stages if stage.state != StageState.DONE)
        return format_eta(remaining)

    @property
    def current_stage(self) -> str | None:
        for stage in self.stages:
            if stage.state == StageState.ACTIVE:
                return stage.name
        return None

    def _set(self, index: int, state: StageState) -> None:
        self.stages[index].state = state
        log.debug(
            "pipeline_stage",
            stage=self.stages[index].name,
            state=state.value,
            progress=self.progress,
        )

    def _toast(self, title: str, description: str, error: bool = False) -> None:
        self.notify(Notification(title, description, "destructive" if error else "default"))

    # Pipeline

    async def run(self, path: Path, content_type: str | None = None) -> PipelineOutcome:
        """Upload the file at path and generate its artifacts."""
        path = Path(path)
        content_type = content_type or mimetypes.guess_type(path.name)[0] or "video/mp4"
        data = await asyncio.to_thread(path.read_bytes)
        self.stages = build_stages(len(data))
        log.info("pipeline_started", file_name=path.name, size_bytes=len(data))

        # Upload
        self._set(0, StageState.ACTIVE)
        try:
            upload = await self.api.request_upload(path.name, content_type, "video")
            await self.api.put_bytes(upload.upload_url, data, content_type)
        except API_ERRORS as e:
            self._set(0, StageState.FAILED)
            log.error("pipeline_upload_failed", file_name=path.name, error=type(e).__name__)
            self._toast("Upload Failed", _describe(e), error=True)
            self.outcome = PipelineOutcome(
                status=PipelineStatus.FAILED,
                errors={"upload": _describe(e)},
                messages=["Upload failed"],
            )
            return self.outcome
        self._set(0, StageState.DONE)
        video_id = upload.video_file_id or upload.record_id

        outcome = PipelineOutcome(
            status=PipelineStatus.FAILED,
            video_id=video_id,
            file_key=upload.file_key,
        )
        self.outcome = outcome

        # Screenshot Extraction
        self._set(1, StageState.ACTIVE)
        frames: list[ExtractedFrame] = []
        try:
            frames = await self.frame_extractor(path)
        except FRAME_ERRORS as e:
            log.warning("pipeline_frames_failed", error=type(e).__name__)
            outcome.errors["frames"] = _describe(e)
        self._set(1, StageState.DONE)

        # AI Analysis
        self._set(2, StageState.ACTIVE)
        if frames:
            try:
                outcome.analysis = await self.api.analyze_video(
                    video_id,
                    [(frame.jpeg_bytes, frame.timestamp) for frame in frames],
                )
            except API_ERRORS as e:
                log.warning("pipeline_analysis_failed", error=type(e).__name__)
                outcome.errors["analysis"] = _describe(e)
                outcome.messages.append("AI analysis unavailable")
        else:
            outcome.messages.append("No frames available for AI analysis")
        self._set(2, StageState.DONE)

        # Audio Processing
        self._set(3, StageState.ACTIVE)
        if self.audio_delay:
            await self._sleep(self.audio_delay)
        self._set(3, StageState.DONE)

        # Transcription & Captions
        self._set(4, StageState.ACTIVE)
        transcript, webvtt, srt = await asyncio.gather(
            self.api.transcribe(path.name, data, content_type, video_id),
            self.api.captions(path.name, data, content_type, "webvtt", video_id),
            self.api.captions(path.name, data, content_type, "srt", video_id),
            return_exceptions=True,
        )
        self._settle(outcome, "transcript", transcript)
        self._settle(outcome, "webvtt", webvtt)
        self._settle(outcome, "srt", srt)

        summary = summarize_artifacts(
            outcome.transcript is not None, "webvtt" in outcome.captions, "srt" in outcome.captions
        )
        outcome.messages.append(summary)

        if outcome.transcript is None and not outcome.captions:
            self._set(4, StageState.FAILED)
            outcome.status = PipelineStatus.FAILED
            log.error("pipeline_failed", video_id=str(video_id), errors=outcome.errors)
            self._toast("Processing Failed", summary, error=True)
            return outcome
        self._set(4, StageState.DONE)

        # Finalizing
        self._set(5, StageState.ACTIVE)
        if self.finalize_delay:
            await self._sleep(self.finalize_delay)
        self._set(5, StageState.DONE)

        outcome.status = PipelineStatus.DEGRADED if outcome.errors else PipelineStatus.COMPLETE
        log.info(
            "pipeline_completed",
            video_id=str(video_id),
            status=outcome.status.value,
            failed=sorted(outcome.errors),
        )
        if outcome.status == PipelineStatus.COMPLETE:
            self._toast("Processing Complete", summary)
        else:
            self._toast("Processing Complete", "; ".join(outcome.messages))
        return outcome

    def _settle(self, outcome: PipelineOutcome, artifact: str, result: Any) -> None:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):  # cancellation propagates
                raise result
            log.warning("pipeline_artifact_failed", artifact=artifact, error=type(result).__name__)
            outcome.errors[artifact] = _describe(result)
            return
        if artifact == "transcript":
            outcome.transcript = result
        else:
            outcome.captions[artifact] = result

    # After the pipeline

    async def save_selection(
        self,
        title: str,
        thumbnail_base64: str | None = None,
        video_id: UUID | None = None,
    ) -> UpdateVideoResponse | None:
        """Persist the chosen title and thumbnail for the uploaded video."""
        video_id = video_id or (self.outcome.video_id if self.outcome else None)
        if video_id is None:
            self._toast("Error", "No uploaded video to update.", error=True)
            return None
        try:
            result = await self.api.update_video(video_id, title, thumbnail_base64)
        except API_ERRORS as e:
            log.warning("save_selection_failed", video_id=str(video_id), error=type(e).__name__)
            self._toast("Save Failed", _describe(e), error=True)
            return None
        self._toast("Saved", "Title and thumbnail saved.")
        return result

    async def publish(self, request: YouTubeUploadRequest) -> YouTubeUploadResponse | None:
        """Publish to YouTube, turning every failure into a notification."""
        try:
            result = await self.api.publish(request)
        except StaleCredentialsError:
            log.info("publish_needs_reconnect", video_id=str(request.video_id))
            self._toast(
                "YouTube Not Connected",
                "Please reconnect your YouTube account and try again.",
                error=True,
            )
            return None
        except DuplicateUploadError as e:
            self._toast(
                "Already Published",
                f"This video is already on YouTube: {e.existing_url}",
                error=True,
            )
            return None
        except CollaboratorUnavailableError as e:
            log.warning("publish_failed", video_id=str(request.video_id), error=str(e))
            self._toast("Publish Failed", "YouTube upload failed. Please try again.", error=True)
            return None
        except API_ERRORS as e:
            self._toast("Publish Failed", _describe(e), error=True)
            return None
        self._toast("Published", f"Your video is live at {result.youtube_url}")
        return result
