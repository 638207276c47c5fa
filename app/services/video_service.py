"""Video asset bookkeeping: upload URLs, metadata and listing.

Key Responsibilities:
- Issue pre-signed upload URLs and create the matching database rows
  (VideoFile + VideoTask for videos, Transcript or Subtitles for text files)
- Persist the user's chosen title and thumbnail
- List and fetch videos owned by the principal

Storage Key Layout:
    uploads/{user_id}/{base}_{uuid}.{ext}
    transcripts/{user_id}/{base}_{uuid}.{ext}
    subtitles/{user_id}/{base}_{uuid}.{ext}
    thumbnails/{user_id}/{video_id}/{uuid}.png
"""

import base64
import binascii
import re
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.clients.storage import StorageClient
from app.constants import THUMBNAIL_KEY_PREFIX, UPLOAD_KEY_PREFIXES
from app.exceptions import (
    CollaboratorUnavailableError,
    ConfigurationError,
    NotFoundError,
    RequestValidationError,
)
from app.models import Subtitles, Transcript, VideoFile, VideoTask, VideoTaskStatus
from app.schemas.video import (
    UpdateVideoRequest,
    UploadRequest,
    UploadResponse,
    VideoDetail,
    VideoSummary,
)
from app.services.credential_service import Principal
from app.utils.logging import get_logger

log = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
SUBTITLE_EXTENSION_FORMATS = {"vtt": "webvtt", "webvtt": "webvtt", "srt": "srt"}


def split_file_name(file_name: str) -> tuple[str, str]:
    """Split a file name into a storage-safe base and a lower-case extension.

    Example:
        >>> split_file_name("My Holiday.MP4")
        ('My_Holiday', 'mp4')
    """
    base, dot, ext = file_name.strip().rpartition(".")
    if not dot:
        base, ext = ext, ""
    safe_base = _UNSAFE_KEY_CHARS.sub("_", base).strip("_") or "file"
    return safe_base[:100], ext.lower()


def build_object_key(upload_type: str, user_id: uuid.UUID, file_name: str) -> str:
    prefix = UPLOAD_KEY_PREFIXES[upload_type]
    base, ext = split_file_name(file_name)
    key = f"{prefix}/{user_id}/{base}_{uuid.uuid4()}"
    return f"{key}.{ext}" if ext else key


def decode_base64_image(data: str) -> bytes:
    """Decode base64 image data, accepting an optional data: URL prefix.

    Raises:
        RequestValidationError: If data is not valid base64.
    """
    if data.startswith("data:"):
        data = data.split(",", 1)[-1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RequestValidationError("Thumbnail must be base64-encoded image data") from e


async def get_owned_video(
    principal: Principal,
    video_id: uuid.UUID,
    db: AsyncSession,
    with_relations: bool = False,
) -> VideoFile:
    """Fetch a video owned by the principal.

    Raises:
        NotFoundError: If the video does not exist or belongs to another user.
    """
    query = select(VideoFile).where(
        VideoFile.id == video_id,
        VideoFile.user_id == principal.user_id,
    )
    if with_relations:
        query = query.options(
            selectinload(VideoFile.transcript),
            selectinload(VideoFile.subtitles),
            selectinload(VideoFile.task),
        )
    result = await db.execute(query)
    video = result.scalar_one_or_none()
    if video is None:
        raise NotFoundError("Video not found or unauthorized")
    return video


class VideoService:
    """Service for video assets and their storage keys."""

    def __init__(self, storage: StorageClient):
        self.storage = storage

    async def create_upload(
        self,
        principal: Principal,
        request: UploadRequest,
        db: AsyncSession,
    ) -> UploadResponse:
        """Issue an upload URL and create the database record it will fill.

        Raises:
            RequestValidationError: On an unknown upload type, or a transcript/subtitle
                upload without a video id or with an unsupported extension.
            NotFoundError: If video_id is not owned by the principal.
            ConfigurationError / CollaboratorUnavailableError: If storage is unusable.
        """
        upload_type = request.upload_type
        if upload_type not in UPLOAD_KEY_PREFIXES:
            raise RequestValidationError(
                "Invalid upload type. Must be video, transcript, or subtitle"
            )

        video: VideoFile | None = None
        if upload_type != "video":
            if request.video_id is None:
                raise RequestValidationError(f"videoId is required for {upload_type} uploads")
            video = await get_owned_video(principal, request.video_id, db)

        subtitle_format: str | None = None
        if upload_type == "subtitle":
            _, ext = split_file_name(request.file_name)
            subtitle_format = SUBTITLE_EXTENSION_FORMATS.get(ext)
            if subtitle_format is None:
                raise RequestValidationError("Subtitle files must be .vtt or .srt")

        file_key = build_object_key(upload_type, principal.user_id, request.file_name)
        upload_url = self.storage.presigned_put_url(file_key, request.file_type)

        if upload_type == "video":
            video = VideoFile(
                user_id=principal.user_id,
                name=request.file_name,
                file_key=file_key,
                is_uploaded=False,
            )
            db.add(video)
            await db.flush()
            db.add(VideoTask(video_id=video.id, status=VideoTaskStatus.NOT_STARTED))
            await db.commit()
            log.info("video_upload_issued", user_id=str(principal.user_id), video_id=str(video.id))
            return UploadResponse(
                upload_url=upload_url,
                upload_type="video",
                record_id=video.id,
                file_key=file_key,
                video_file_id=video.id,
            )

        assert video is not None
        if upload_type == "transcript":
            transcript = await self._get_transcript(video.id, db)
            if transcript is None:
                transcript = Transcript(video_id=video.id)
                db.add(transcript)
            transcript.file_key = file_key
            await db.commit()
            log.info("transcript_upload_issued", video_id=str(video.id))
            return UploadResponse(
                upload_url=upload_url,
                upload_type="transcript",
                record_id=transcript.id,
                file_key=file_key,
                transcript_id=transcript.id,
                video_id=video.id,
            )

        subtitles = await self._get_subtitles(video.id, subtitle_format, db)
        if subtitles is None:
            subtitles = Subtitles(video_id=video.id, format=subtitle_format)
            db.add(subtitles)
        subtitles.file_key = file_key
        await db.commit()
        log.info("subtitle_upload_issued", video_id=str(video.id), format=subtitle_format)
        return UploadResponse(
            upload_url=upload_url,
            upload_type="subtitle",
            record_id=subtitles.id,
            file_key=file_key,
            subtitle_id=subtitles.id,
            video_id=video.id,
        )

    async def _get_transcript(self, video_id: uuid.UUID, db: AsyncSession) -> Transcript | None:
        result = await db.execute(select(Transcript).where(Transcript.video_id == video_id))
        return result.scalar_one_or_none()

    async def _get_subtitles(
        self, video_id: uuid.UUID, caption_format: str, db: AsyncSession
    ) -> Subtitles | None:
        result = await db.execute(
            select(Subtitles).where(
                Subtitles.video_id == video_id,
                Subtitles.format == caption_format,
            )
        )
        return result.scalar_one_or_none()

    async def update_video(
        self,
        principal: Principal,
        request: UpdateVideoRequest,
        db: AsyncSession,
    ) -> VideoSummary:
        """Persist the chosen title and, optionally, a thumbnail image.

        A thumbnail that cannot be stored is skipped; the title is saved regardless.
        """
        video = await get_owned_video(principal, request.video_id, db)
        video.title = request.title

        if request.thumbnail_key:
            image = decode_base64_image(request.thumbnail_key)
            key = f"{THUMBNAIL_KEY_PREFIX}/{principal.user_id}/{video.id}/{uuid.uuid4()}.png"
            try:
                await self.storage.put_object(key, image, "image/png")
            except (CollaboratorUnavailableError, ConfigurationError) as e:
                log.warning("thumbnail_store_failed", video_id=str(video.id), error=str(e))
            else:
                video.thumbnail_key = key

        await db.commit()
        log.info(
            "video_metadata_updated",
            video_id=str(video.id),
            has_thumbnail=video.thumbnail_key is not None,
        )
        return VideoSummary(id=video.id, title=video.title, thumbnail_key=video.thumbnail_key)

    async def list_videos(self, principal: Principal, db: AsyncSession) -> list[VideoDetail]:
        result = await db.execute(
            select(VideoFile)
            .where(VideoFile.user_id == principal.user_id)
            .options(
                selectinload(VideoFile.transcript),
                selectinload(VideoFile.subtitles),
                selectinload(VideoFile.task),
            )
            .order_by(VideoFile.created_at.desc())
        )
        return [to_video_detail(video) for video in result.scalars()]

    async def get_video(
        self, principal: Principal, video_id: uuid.UUID, db: AsyncSession
    ) -> VideoDetail:
        video = await get_owned_video(principal, video_id, db, with_relations=True)
        return to_video_detail(video)


def to_video_detail(video: VideoFile) -> VideoDetail:
    return VideoDetail(
        id=video.id,
        name=video.name,
        file_key=video.file_key,
        title=video.title,
        description=video.description,
        thumbnail_key=video.thumbnail_key,
        is_uploaded=video.is_uploaded,
        created_at=video.created_at,
        task_status=video.task.status.value if video.task else None,
        transcript_text=video.transcript.raw_text if video.transcript else None,
        subtitle_formats=sorted(s.format for s in video.subtitles),
    )
