"""Tests for VideoService: upload URLs, metadata updates and listing.

Tests cover:
- Storage key layout per upload type
- Database rows created for each upload type
- Ownership checks on every video-scoped call
- Thumbnail storage and the title-only fallback
"""

import base64
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.storage import StorageClient
from app.exceptions import NotFoundError, RequestValidationError
from app.models import Subtitles, Transcript, VideoFile, VideoTask, VideoTaskStatus
from app.schemas.video import UpdateVideoRequest, UploadRequest
from app.services.credential_service import Principal
from app.services.video_service import (
    VideoService,
    build_object_key,
    decode_base64_image,
    split_file_name,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


@pytest.fixture
def service(storage: StorageClient) -> VideoService:
    return VideoService(storage)


class TestKeyHelpers:
    def test_split_file_name_sanitizes_base(self):
        assert split_file_name("My Holiday.MP4") == ("My_Holiday", "mp4")

    def test_split_file_name_without_extension(self):
        assert split_file_name("notes") == ("notes", "")

    def test_build_object_key_layout(self):
        user_id = uuid.uuid4()

        key = build_object_key("transcript", user_id, "talk.txt")

        assert key.startswith(f"transcripts/{user_id}/talk_")
        assert key.endswith(".txt")

    def test_decode_base64_image_accepts_data_url(self):
        encoded = base64.b64encode(PNG_BYTES).decode()

        assert decode_base64_image(f"data:image/png;base64,{encoded}") == PNG_BYTES

    def test_decode_base64_image_rejects_garbage(self):
        with pytest.raises(RequestValidationError):
            decode_base64_image("not base64 !!")


class TestCreateUpload:
    async def test_p0_video_upload_creates_file_and_task(
        self,
        service: VideoService,
        principal: Principal,
        async_session: AsyncSession,
        fake_s3,
    ):
        response = await service.create_upload(
            principal,
            UploadRequest(file_name="clip.mp4", file_type="video/mp4"),
            async_session,
        )

        assert response.upload_type == "video"
        assert response.video_file_id == response.record_id
        assert response.file_key.startswith(f"uploads/{principal.user_id}/clip_")
        assert response.upload_url.startswith("https://s3.test/studio-test/uploads/")
        assert fake_s3.presigned[0][1]["ContentType"] == "video/mp4"

        video = await async_session.get(VideoFile, response.record_id)
        assert video.is_uploaded is False
        result = await async_session.execute(
            select(VideoTask.status).where(VideoTask.video_id == video.id)
        )
        assert result.scalar_one() == VideoTaskStatus.NOT_STARTED

    async def test_p1_transcript_upload_reuses_row(
        self,
        service: VideoService,
        principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
    ):
        request = UploadRequest(
            file_name="talk.txt",
            file_type="text/plain",
            upload_type="transcript",
            video_id=video.id,
        )

        first = await service.create_upload(principal, request, async_session)
        second = await service.create_upload(principal, request, async_session)

        assert first.transcript_id == second.transcript_id
        result = await async_session.execute(select(Transcript))
        assert result.scalar_one().file_key == second.file_key

    async def test_p1_subtitle_upload_maps_extension_to_format(
        self,
        service: VideoService,
        principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
    ):
        response = await service.create_upload(
            principal,
            UploadRequest(
                file_name="captions.vtt",
                file_type="text/vtt",
                upload_type="subtitle",
                video_id=video.id,
            ),
            async_session,
        )

        subtitles = await async_session.get(Subtitles, response.subtitle_id)
        assert subtitles.format == "webvtt"
        assert response.file_key.startswith("subtitles/")

    async def test_p1_subtitle_with_unknown_extension_rejected(
        self,
        service: VideoService,
        principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
    ):
        with pytest.raises(RequestValidationError, match=".vtt or .srt"):
            await service.create_upload(
                principal,
                UploadRequest(
                    file_name="captions.ass",
                    file_type="text/plain",
                    upload_type="subtitle",
                    video_id=video.id,
                ),
                async_session,
            )

    async def test_p0_unknown_upload_type_rejected(
        self, service: VideoService, principal: Principal, async_session: AsyncSession
    ):
        with pytest.raises(RequestValidationError, match="Invalid upload type"):
            await service.create_upload(
                principal,
                UploadRequest(file_name="a.bin", file_type="x/y", upload_type="archive"),
                async_session,
            )

    async def test_p0_transcript_requires_video_id(
        self, service: VideoService, principal: Principal, async_session: AsyncSession
    ):
        with pytest.raises(RequestValidationError, match="videoId is required"):
            await service.create_upload(
                principal,
                UploadRequest(file_name="t.txt", file_type="text/plain", upload_type="transcript"),
                async_session,
            )

    async def test_p0_other_users_video_not_found(
        self,
        service: VideoService,
        other_principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
    ):
        with pytest.raises(NotFoundError):
            await service.create_upload(
                other_principal,
                UploadRequest(
                    file_name="t.txt",
                    file_type="text/plain",
                    upload_type="transcript",
                    video_id=video.id,
                ),
                async_session,
            )


class TestUpdateVideo:
    async def test_p0_title_and_thumbnail_saved(
        self,
        service: VideoService,
        principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
        fake_s3,
    ):
        encoded = base64.b64encode(PNG_BYTES).decode()

        summary = await service.update_video(
            principal,
            UpdateVideoRequest(video_id=video.id, title="My Trip", thumbnail_key=encoded),
            async_session,
        )

        assert summary.title == "My Trip"
        assert summary.thumbnail_key.startswith(f"thumbnails/{principal.user_id}/{video.id}/")
        assert fake_s3.objects[summary.thumbnail_key]["Body"] == PNG_BYTES

    async def test_p1_title_saved_when_storage_unconfigured(
        self, principal: Principal, async_session: AsyncSession, video: VideoFile
    ):
        service = VideoService(StorageClient(bucket=None))
        encoded = base64.b64encode(PNG_BYTES).decode()

        summary = await service.update_video(
            principal,
            UpdateVideoRequest(video_id=video.id, title="Still saved", thumbnail_key=encoded),
            async_session,
        )

        assert summary.title == "Still saved"
        assert summary.thumbnail_key is None

    async def test_p0_other_users_video_not_updated(
        self,
        service: VideoService,
        other_principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
    ):
        with pytest.raises(NotFoundError):
            await service.update_video(
                other_principal,
                UpdateVideoRequest(video_id=video.id, title="Hijack"),
                async_session,
            )


class TestListAndGet:
    """Reads go through a fresh session, as each request gets its own."""

    async def test_p1_list_only_own_videos(
        self,
        service: VideoService,
        principal: Principal,
        other_principal: Principal,
        session_factory,
        video: VideoFile,
    ):
        async with session_factory() as db:
            own = await service.list_videos(principal, db)
            others = await service.list_videos(other_principal, db)

        assert [v.id for v in own] == [video.id]
        assert own[0].task_status == "NOT_STARTED"
        assert others == []

    async def test_p1_get_video_detail(
        self,
        service: VideoService,
        principal: Principal,
        async_session: AsyncSession,
        session_factory,
        video: VideoFile,
    ):
        async_session.add(Subtitles(video_id=video.id, format="srt", raw_text="1\n"))
        await async_session.commit()

        async with session_factory() as db:
            detail = await service.get_video(principal, video.id, db)

        assert detail.name == "holiday.mp4"
        assert detail.subtitle_formats == ["srt"]
        assert detail.transcript_text is None
