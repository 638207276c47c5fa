"""Transcription and caption generation backed by Deepgram.

Key Responsibilities:
- Validate uploaded media (MIME type allow-list, 100MB cap)
- Transcribe media, caching results in a bounded in-memory LRU
- Render WebVTT / SRT captions from utterance segmentation
- Persist Transcript / Subtitles rows and advance the VideoTask status
- Track background transcription jobs for the async endpoint

Cache Key:
    "{file name}:{size}:{sha256 of content}" so two different files that
    happen to share a name and size never collide.

Job Retention:
    Job records are kept in memory for one hour. Polling an older job
    raises JobExpiredError (HTTP 410) and forgets it.
"""

import asyncio
import hashlib
import math
import secrets
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.deepgram import DeepgramClient, TranscriptionResult
from app.constants import (
    ALLOWED_MEDIA_TYPES,
    CAPTION_CONTENT_TYPES,
    CAPTION_EXTENSIONS,
    CAPTION_FORMATS,
    MAX_MEDIA_FILE_SIZE,
    TRANSCRIPTION_CACHE_SIZE,
    TRANSCRIPTION_JOB_TTL_SECONDS,
)
from app.exceptions import (
    CollaboratorUnavailableError,
    ConfigurationError,
    JobExpiredError,
    NotFoundError,
    RequestValidationError,
)
from app.models import Subtitles, Transcript, utcnow
from app.schemas.video import (
    TranscribeResponse,
    TranscriptionJobResponse,
    TranscriptionJobStarted,
    TranscriptionPayload,
)
from app.services.credential_service import Principal
from app.services.task_status import TaskStage, advance_task_status
from app.services.video_service import get_owned_video
from app.utils.captions import render_captions
from app.utils.logging import get_logger

log = get_logger(__name__)


def validate_media(content_type: str | None, size: int) -> None:
    """Reject unsupported or oversized media before any vendor call.

    Raises:
        RequestValidationError: If the file is empty, too large or of a disallowed type.
    """
    if size == 0:
        raise RequestValidationError("No file provided")
    if (content_type or "").lower() not in ALLOWED_MEDIA_TYPES:
        raise RequestValidationError(
            "Invalid file type. Please upload a video or audio file."
        )
    if size > MAX_MEDIA_FILE_SIZE:
        raise RequestValidationError("File too large. Maximum size is 100MB.")


def cache_key(file_name: str, data: bytes) -> str:
    return f"{file_name}:{len(data)}:{hashlib.sha256(data).hexdigest()}"


class TranscriptionCache:
    """Bounded LRU cache of transcription payloads."""

    def __init__(self, max_entries: int = TRANSCRIPTION_CACHE_SIZE):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, TranscriptionPayload] = OrderedDict()

    def get(self, key: str) -> TranscriptionPayload | None:
        payload = self._entries.get(key)
        if payload is not None:
            self._entries.move_to_end(key)
        return payload

    def put(self, key: str, payload: TranscriptionPayload) -> None:
        self._entries[key] = payload
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class TranscriptionJob:
    job_id: str
    owner_id: uuid.UUID
    created_at: datetime = field(default_factory=utcnow)
    status: str = "pending"
    result: TranscriptionPayload | None = None
    error: str | None = None


def _to_payload(result: TranscriptionResult, processing_time: float) -> TranscriptionPayload:
    return TranscriptionPayload(
        text=result.text,
        confidence=result.confidence,
        language=result.language,
        word_count=result.word_count,
        processing_time=round(processing_time, 3),
    )


class TranscriptionService:
    """Service for synchronous, cached and background transcription.

    Example:
        >>> service = TranscriptionService(DeepgramClient(api_key))
        >>> response = await service.transcribe(principal, "clip.mp4", "video/mp4", data, None, db)
        >>> response.result.word_count
        42
    """

    def __init__(self, deepgram: DeepgramClient, cache: TranscriptionCache | None = None):
        self.deepgram = deepgram
        self.cache = cache or TranscriptionCache()
        self.jobs: dict[str, TranscriptionJob] = {}
        self._background: set[asyncio.Task] = set()

    async def transcribe(
        self,
        principal: Principal,
        file_name: str,
        content_type: str | None,
        data: bytes,
        video_id: uuid.UUID | None,
        db: AsyncSession,
    ) -> TranscribeResponse:
        """Transcribe media and, when video_id is given, store the transcript.

        Raises:
            RequestValidationError: On invalid media.
            NotFoundError: If video_id is not owned by the principal.
            CollaboratorUnavailableError / ConfigurationError: If Deepgram is unusable.
        """
        validate_media(content_type, len(data))
        video = await get_owned_video(principal, video_id, db) if video_id else None

        key = cache_key(file_name, data)
        payload = self.cache.get(key)
        cached = payload is not None
        if payload is None:
            started = time.monotonic()
            result = await self.deepgram.transcribe(data, content_type)
            payload = _to_payload(result, time.monotonic() - started)
            self.cache.put(key, payload)
        else:
            log.info("transcription_cache_hit", file_name=file_name)

        if video is not None:
            await self._store_transcript(video.id, payload, db)
            video.is_uploaded = True
            await advance_task_status(video.id, TaskStage.TRANSCRIPTION, db)
            await db.commit()

        log.info(
            "transcription_complete",
            user_id=str(principal.user_id),
            video_id=str(video_id) if video_id else None,
            word_count=payload.word_count,
            cached=cached,
        )
        return TranscribeResponse(result=payload, cached=cached)

    async def _store_transcript(
        self, video_id: uuid.UUID, payload: TranscriptionPayload, db: AsyncSession
    ) -> None:
        result = await db.execute(select(Transcript).where(Transcript.video_id == video_id))
        transcript = result.scalar_one_or_none()
        if transcript is None:
            transcript = Transcript(video_id=video_id)
            db.add(transcript)
        transcript.raw_text = payload.text
        transcript.confidence = payload.confidence
        transcript.language = payload.language
        transcript.word_count = payload.word_count

    async def captions(
        self,
        principal: Principal,
        file_name: str,
        content_type: str | None,
        data: bytes,
        caption_format: str,
        video_id: uuid.UUID | None,
        db: AsyncSession,
    ) -> tuple[str, str, str]:
        """Generate a caption file.

        Returns:
            Tuple of (caption body, response content type, download file name).
        """
        if caption_format not in CAPTION_FORMATS:
            raise RequestValidationError("Invalid format. Must be webvtt or srt")
        validate_media(content_type, len(data))
        video = await get_owned_video(principal, video_id, db) if video_id else None

        result = await self.deepgram.transcribe(data, content_type, utterances=True)
        body = render_captions(result.utterances, caption_format)

        if video is not None:
            existing = await db.execute(
                select(Subtitles).where(
                    Subtitles.video_id == video.id,
                    Subtitles.format == caption_format,
                )
            )
            subtitles = existing.scalar_one_or_none()
            if subtitles is None:
                subtitles = Subtitles(video_id=video.id, format=caption_format)
                db.add(subtitles)
            subtitles.raw_text = body
            video.is_uploaded = True
            await advance_task_status(video.id, TaskStage.CAPTIONING, db)
            await db.commit()

        base = file_name.rsplit(".", 1)[0] or "captions"
        download_name = f"{base}.{CAPTION_EXTENSIONS[caption_format]}"
        log.info(
            "captions_generated",
            user_id=str(principal.user_id),
            format=caption_format,
            cues=len(result.utterances),
        )
        return body, CAPTION_CONTENT_TYPES[caption_format], download_name

    def start_job(
        self,
        principal: Principal,
        file_name: str,
        content_type: str | None,
        data: bytes,
    ) -> TranscriptionJobStarted:
        """Queue a background transcription and return its job id immediately."""
        validate_media(content_type, len(data))
        job_id = f"job_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
        job = TranscriptionJob(job_id=job_id, owner_id=principal.user_id)
        self.jobs[job_id] = job

        task = asyncio.create_task(self._run_job(job, file_name, content_type, data))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        log.info("transcription_job_started", job_id=job_id, user_id=str(principal.user_id))
        return TranscriptionJobStarted(
            job_id=job_id,
            message="Transcription started. Poll GET /api/v1/transcribe-async?jobId= for progress.",
            estimated_time=math.ceil(len(data) / (1024 * 1024)) * 2,
        )

    async def _run_job(
        self,
        job: TranscriptionJob,
        file_name: str,
        content_type: str | None,
        data: bytes,
    ) -> None:
        job.status = "processing"
        started = time.monotonic()
        try:
            result = await self.deepgram.transcribe(data, content_type)
        except (CollaboratorUnavailableError, ConfigurationError) as e:
            job.status = "failed"
            job.error = str(e)
            log.error("transcription_job_failed", job_id=job.job_id, error=str(e))
            return

        job.result = _to_payload(result, time.monotonic() - started)
        job.status = "completed"
        self.cache.put(cache_key(file_name, data), job.result)
        log.info("transcription_job_completed", job_id=job.job_id)

    def get_job(self, principal: Principal, job_id: str) -> TranscriptionJobResponse:
        """Return a job's status.

        Raises:
            NotFoundError: If the job is unknown or owned by another user.
            JobExpiredError: If the job is older than one hour (it is forgotten).
        """
        job = self.jobs.get(job_id)
        if job is None or job.owner_id != principal.user_id:
            raise NotFoundError("Job not found")

        if utcnow() - job.created_at > timedelta(seconds=TRANSCRIPTION_JOB_TTL_SECONDS):
            del self.jobs[job_id]
            log.info("transcription_job_expired", job_id=job_id)
            raise JobExpiredError("Job expired")

        return TranscriptionJobResponse(
            job_id=job.job_id,
            status=job.status,
            result=job.result,
            error=job.error,
            created_at=job.created_at,
        )

    async def close(self) -> None:
        """Wait for in-flight background jobs to settle."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
