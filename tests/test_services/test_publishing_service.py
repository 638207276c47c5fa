"""Tests for YouTube linking and publishing.

Tests cover:
- Signed OAuth state: round trip, tampering and expiry
- Completing a connection stores encrypted tokens and keeps one active link
- Status and refresh of the linked channel
- Publishing: success, duplicate protection, stale credentials and failures
"""

import time
import uuid
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.google_oauth import GoogleOAuthClient, OAuthTokens
from app.clients.storage import StorageClient
from app.clients.youtube import ChannelInfo, YouTubeAPIError
from app.exceptions import (
    AuthenticationError,
    DuplicateUploadError,
    RequestValidationError,
    StaleCredentialsError,
)
from app.models import UploadStatus, VideoFile, YouTubeIntegration, YouTubeUpload, utcnow
from app.schemas.youtube import YouTubeUploadRequest
from app.services.credential_service import Principal
from app.services.publishing_service import (
    PublishingService,
    build_state,
    parse_state,
    watch_url,
)
from app.utils.encryption import get_encryption_service


class FakeOAuth(GoogleOAuthClient):
    """Real URL building; token calls answered locally."""

    def __init__(self, refresh_error: Exception | None = None):
        super().__init__("client-id", "client-secret")
        self.refresh_error = refresh_error
        self.refreshed_with: list[str] = []

    async def exchange_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        return OAuthTokens(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_at=utcnow() + timedelta(hours=1),
        )

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        self.refreshed_with.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return OAuthTokens(
            access_token="access-refreshed",
            refresh_token=refresh_token,
            expires_at=utcnow() + timedelta(hours=1),
        )


class FakeYouTube:
    def __init__(self, upload_error: Exception | None = None):
        self.upload_error = upload_error
        self.uploads: list[dict] = []
        self.thumbnails: list[str] = []

    async def get_channel(self, access_token: str) -> ChannelInfo:
        return ChannelInfo(channel_id="UC-test", title="Test Channel")

    async def upload_video(self, access_token, source_url, metadata) -> str:
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append(
            {"access_token": access_token, "source_url": source_url, "metadata": metadata}
        )
        return "yt-abc123"

    async def set_thumbnail(self, access_token, video_id, png_base64) -> None:
        self.thumbnails.append(video_id)


@pytest.fixture
def youtube() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
def service(youtube: FakeYouTube, storage: StorageClient, encryption_env: str) -> PublishingService:
    return PublishingService(FakeOAuth(), youtube, storage)


@pytest_asyncio.fixture
async def integration(
    async_session: AsyncSession, principal: Principal, encryption_env: str
) -> YouTubeIntegration:
    encryption = get_encryption_service()
    integration = YouTubeIntegration(
        user_id=principal.user_id,
        channel_id="UC-test",
        channel_title="Test Channel",
        access_token_encrypted=encryption.encrypt("access-token"),
        refresh_token_encrypted=encryption.encrypt("refresh-token"),
        expires_at=utcnow() + timedelta(hours=1),
        is_active=True,
    )
    async_session.add(integration)
    await async_session.commit()
    return integration


def publish_request(video: VideoFile, **overrides) -> YouTubeUploadRequest:
    return YouTubeUploadRequest(video_id=video.id, title="My Trip", **overrides)


class TestState:
    def test_round_trip(self, encryption_env: str):
        user_id = uuid.uuid4()

        assert parse_state(build_state(user_id)) == user_id

    def test_tampered_user_rejected(self, encryption_env: str):
        state = build_state(uuid.uuid4())
        other = build_state(uuid.uuid4())
        forged = other.rsplit(".", 1)[0] + "." + state.rsplit(".", 1)[1]

        with pytest.raises(AuthenticationError, match="Invalid OAuth state"):
            parse_state(forged)

    def test_stale_state_rejected(self, encryption_env: str, monkeypatch: pytest.MonkeyPatch):
        """[P1] A state older than ten minutes is refused."""
        # GIVEN: A state signed an hour ago
        now = time.time()
        with monkeypatch.context() as patched:
            patched.setattr(time, "time", lambda: now - 3600)
            state = build_state(uuid.uuid4())

        # WHEN/THEN: It no longer verifies
        with pytest.raises(AuthenticationError, match="expired"):
            parse_state(state)

    def test_state_from_other_salt_rejected(self, encryption_env: str):
        token = get_encryption_service().state_serializer("google-sign-in-v1").dumps("nonce")

        with pytest.raises(AuthenticationError, match="Invalid OAuth state"):
            parse_state(token)

    def test_malformed_state_rejected(self, encryption_env: str):
        with pytest.raises(AuthenticationError):
            parse_state("garbage")


class TestConnection:
    def test_p1_connect_url_requests_offline_access(
        self, service: PublishingService, principal: Principal
    ):
        query = parse_qs(urlparse(service.connect_url(principal)).query)

        assert query["access_type"] == ["offline"]
        assert "youtube.upload" in query["scope"][0]
        assert parse_state(query["state"][0]) == principal.user_id

    async def test_p0_complete_connection_deactivates_previous(
        self,
        service: PublishingService,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
    ):
        status = await service.complete_connection(
            "code-1", build_state(principal.user_id), async_session
        )

        assert status.connected is True
        assert status.channel_title == "Test Channel"
        result = await async_session.execute(
            select(YouTubeIntegration.is_active, YouTubeIntegration.access_token_encrypted)
        )
        rows = result.all()
        assert sorted(active for active, _ in rows) == [False, True]
        new_token = next(token for active, token in rows if active)
        assert get_encryption_service().decrypt(new_token) == "access-code-1"

    async def test_p1_status_without_link(
        self, service: PublishingService, principal: Principal, async_session: AsyncSession
    ):
        status = await service.status(principal, async_session)

        assert status.connected is False

    async def test_p1_expired_link_reported_disconnected(
        self,
        service: PublishingService,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
    ):
        integration.expires_at = utcnow() - timedelta(minutes=1)
        await async_session.commit()

        status = await service.status(principal, async_session)

        assert status.connected is False
        assert integration.is_active is False

    async def test_p1_refresh_reactivates_link(
        self,
        service: PublishingService,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
    ):
        integration.is_active = False
        await async_session.commit()

        status = await service.refresh(principal, async_session)

        assert status.connected is True
        assert integration.is_active is True
        assert service.oauth.refreshed_with == ["refresh-token"]

    async def test_p0_refresh_with_unreadable_token_asks_reconnect(
        self,
        service: PublishingService,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
    ):
        integration.refresh_token_encrypted = b"not a fernet token"
        await async_session.commit()

        with pytest.raises(StaleCredentialsError):
            await service.refresh(principal, async_session)

        assert service.oauth.refreshed_with == []

    async def test_p1_refresh_without_link(
        self, service: PublishingService, principal: Principal, async_session: AsyncSession
    ):
        with pytest.raises(RequestValidationError, match="not connected"):
            await service.refresh(principal, async_session)


class TestPublish:
    async def test_p0_publish_records_upload(
        self,
        service: PublishingService,
        youtube: FakeYouTube,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
        video: VideoFile,
    ):
        response = await service.publish(
            principal, publish_request(video, thumbnail_base64="aW1n"), async_session
        )

        assert response.youtube_video_id == "yt-abc123"
        assert response.youtube_url == watch_url("yt-abc123")
        assert response.thumbnail_set is True
        assert response.channel_title == "Test Channel"
        upload = youtube.uploads[0]
        assert upload["access_token"] == "access-token"
        assert video.file_key in upload["source_url"]
        assert upload["metadata"].tags == ["AI Generated"]

        history = await service.upload_history(principal, async_session)
        assert [h.status for h in history] == ["PUBLISHED"]

    async def test_p0_second_publish_is_duplicate(
        self,
        service: PublishingService,
        youtube: FakeYouTube,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
        video: VideoFile,
    ):
        await service.publish(principal, publish_request(video), async_session)

        with pytest.raises(DuplicateUploadError) as exc_info:
            await service.publish(principal, publish_request(video), async_session)

        assert exc_info.value.existing_url == watch_url("yt-abc123")
        assert len(youtube.uploads) == 1

    async def test_p0_publish_without_link_rejected(
        self,
        service: PublishingService,
        principal: Principal,
        async_session: AsyncSession,
        video: VideoFile,
    ):
        with pytest.raises(RequestValidationError, match="not connected"):
            await service.publish(principal, publish_request(video), async_session)

    async def test_p0_unreadable_access_token_never_sent(
        self,
        service: PublishingService,
        youtube: FakeYouTube,
        principal: Principal,
        async_session: AsyncSession,
        integration: YouTubeIntegration,
        video: VideoFile,
    ):
        integration.access_token_encrypted = b"corrupted"
        await async_session.commit()

        with pytest.raises(StaleCredentialsError):
            await service.publish(principal, publish_request(video), async_session)

        assert youtube.uploads == []

    async def test_p0_youtube_failure_recorded(
        self,
        principal: Principal,
        async_session: AsyncSession,
        storage: StorageClient,
        integration: YouTubeIntegration,
        video: VideoFile,
    ):
        error = YouTubeAPIError("YouTube API quota exceeded.", "quotaExceeded", 403)
        service = PublishingService(FakeOAuth(), FakeYouTube(upload_error=error), storage)

        with pytest.raises(YouTubeAPIError):
            await service.publish(principal, publish_request(video), async_session)

        result = await async_session.execute(select(YouTubeUpload))
        record = result.scalar_one()
        assert record.status == UploadStatus.FAILED
        assert record.error_message == "YouTube API quota exceeded."
