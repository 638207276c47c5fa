"""Tests for YouTube linking and publishing routes.

Tests cover:
- Consent URL and the OAuth callback (state identifies the user)
- Status before and after linking
- Publishing: success, duplicate conflict, not connected and YouTube errors
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.clients.google_oauth import GoogleOAuthClient, OAuthTokens
from app.clients.storage import StorageClient
from app.clients.youtube import ERROR_MESSAGES, ChannelInfo, YouTubeAPIError
from app.main import app
from app.models import VideoFile, utcnow
from app.routes import dependencies
from app.services.publishing_service import NOT_CONNECTED_MESSAGE, PublishingService


class FakeOAuth(GoogleOAuthClient):
    def __init__(self):
        super().__init__("client-id", "client-secret")

    async def exchange_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        return OAuthTokens(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_at=utcnow() + timedelta(hours=1),
        )


class FakeYouTube:
    def __init__(self):
        self.upload_error: Exception | None = None
        self.uploaded_titles: list[str] = []

    async def get_channel(self, access_token: str) -> ChannelInfo:
        return ChannelInfo(channel_id="UC-test", title="Test Channel")

    async def upload_video(self, access_token, source_url, metadata) -> str:
        if self.upload_error is not None:
            raise self.upload_error
        self.uploaded_titles.append(metadata.title)
        return "yt-abc123"

    async def set_thumbnail(self, access_token, video_id, png_base64) -> None:
        return None


@pytest.fixture
def youtube(storage: StorageClient, encryption_env: str) -> FakeYouTube:
    youtube = FakeYouTube()
    app.dependency_overrides[dependencies.get_publishing_service] = lambda: PublishingService(
        FakeOAuth(), youtube, storage
    )
    return youtube


async def connect_channel(api_client: httpx.AsyncClient, auth_headers: dict[str, str]) -> dict:
    connect = await api_client.get("/api/v1/youtube/connect", headers=auth_headers)
    state = parse_qs(urlparse(connect.json()["authUrl"]).query)["state"][0]
    response = await api_client.get(
        "/api/v1/youtube/callback", params={"code": "abc", "state": state}
    )
    return response.json()


class TestConnection:
    async def test_p0_status_before_linking(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str], youtube: FakeYouTube
    ):
        response = await api_client.get("/api/v1/youtube/status", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["connected"] is False

    async def test_p0_connect_requests_offline_access(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str], youtube: FakeYouTube
    ):
        response = await api_client.get("/api/v1/youtube/connect", headers=auth_headers)

        query = parse_qs(urlparse(response.json()["authUrl"]).query)
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]

    async def test_p0_callback_links_channel(
        self, api_client: httpx.AsyncClient, auth_headers: dict[str, str], youtube: FakeYouTube
    ):
        """[P0] The callback stores the channel for the user named in the state."""
        # GIVEN/WHEN: The consent flow completes
        linked = await connect_channel(api_client, auth_headers)

        # THEN: The channel is linked and reported by status
        assert linked["connected"] is True
        assert linked["channelId"] == "UC-test"
        status = await api_client.get("/api/v1/youtube/status", headers=auth_headers)
        assert status.json()["channelTitle"] == "Test Channel"

    async def test_p1_consent_denied(self, api_client: httpx.AsyncClient, youtube: FakeYouTube):
        response = await api_client.get(
            "/api/v1/youtube/callback", params={"error": "access_denied"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "access_denied"

    async def test_p0_forged_state_rejected(
        self, api_client: httpx.AsyncClient, youtube: FakeYouTube
    ):
        response = await api_client.get(
            "/api/v1/youtube/callback", params={"code": "abc", "state": "x:1:forged"}
        )

        assert response.status_code == 401


class TestPublish:
    def body(self, video: VideoFile) -> dict:
        return {"videoId": str(video.id), "title": "My Trip"}

    async def test_p0_not_connected_is_400(
        self,
        api_client: httpx.AsyncClient,
        auth_headers: dict[str, str],
        youtube: FakeYouTube,
        video: VideoFile,
    ):
        response = await api_client.post(
            "/api/v1/youtube/upload", json=self.body(video), headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == NOT_CONNECTED_MESSAGE

    async def test_p0_publish_then_duplicate_conflict(
        self,
        api_client: httpx.AsyncClient,
        auth_headers: dict[str, str],
        youtube: FakeYouTube,
        video: VideoFile,
    ):
        await connect_channel(api_client, auth_headers)

        first = await api_client.post(
            "/api/v1/youtube/upload", json=self.body(video), headers=auth_headers
        )
        second = await api_client.post(
            "/api/v1/youtube/upload", json=self.body(video), headers=auth_headers
        )

        watch = "https://www.youtube.com/watch?v=yt-abc123"
        assert first.status_code == 200
        assert first.json()["youtubeUrl"] == watch
        assert second.status_code == 409
        assert second.json()["existingUrl"] == watch
        assert youtube.uploaded_titles == ["My Trip"]

        history = await api_client.get("/api/v1/youtube/upload", headers=auth_headers)
        assert [record["status"] for record in history.json()] == ["PUBLISHED"]

    async def test_p1_youtube_error_is_502_with_message(
        self,
        api_client: httpx.AsyncClient,
        auth_headers: dict[str, str],
        youtube: FakeYouTube,
        video: VideoFile,
    ):
        await connect_channel(api_client, auth_headers)
        youtube.upload_error = YouTubeAPIError(
            ERROR_MESSAGES["quotaExceeded"], "quotaExceeded", 403
        )

        response = await api_client.post(
            "/api/v1/youtube/upload", json=self.body(video), headers=auth_headers
        )

        assert response.status_code == 502
        assert response.json()["error"] == ERROR_MESSAGES["quotaExceeded"]
