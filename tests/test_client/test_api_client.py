"""Tests for StudioApiClient.

Tests cover:
- Classification of error responses into the shared exceptions
- Session token handling
- Multipart bodies for analysis
- Publish 400 responses requiring a reconnect
- 2xx bodies that fail validation
"""

import json
import uuid

import httpx
import pytest

from app.client.api import StudioApiClient, raise_for_api_error
from app.exceptions import (
    AuthenticationError,
    CollaboratorUnavailableError,
    DuplicateUploadError,
    NotFoundError,
    RateLimitedError,
    RequestValidationError,
    StaleCredentialsError,
)
from app.schemas.youtube import YouTubeUploadRequest

BASE = "http://studio.test"


def error(status_code: int, message: str = "boom", **extra) -> httpx.Response:
    return httpx.Response(status_code, json={"success": False, "error": message, **extra})


def make_api(handler, session_token: str | None = None) -> StudioApiClient:
    return StudioApiClient(
        BASE,
        session_token=session_token,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestRaiseForApiError:
    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (400, RequestValidationError),
            (401, AuthenticationError),
            (404, NotFoundError),
            (410, NotFoundError),
            (500, CollaboratorUnavailableError),
            (502, CollaboratorUnavailableError),
        ],
    )
    def test_status_mapping(self, status_code: int, expected: type[Exception]):
        with pytest.raises(expected):
            raise_for_api_error(error(status_code))

    def test_reconnect_flag_is_stale_credentials(self):
        with pytest.raises(StaleCredentialsError):
            raise_for_api_error(error(400, "Token expired", reconnect=True))

    def test_conflict_carries_existing_url(self):
        with pytest.raises(DuplicateUploadError) as exc_info:
            raise_for_api_error(error(409, existingUrl="https://youtu.be/x"))

        assert exc_info.value.existing_url == "https://youtu.be/x"

    def test_rate_limit_reads_retry_after(self):
        response = httpx.Response(429, json={"error": "slow"}, headers={"Retry-After": "6"})

        with pytest.raises(RateLimitedError) as exc_info:
            raise_for_api_error(response)

        assert exc_info.value.retry_after == 6.0

    def test_success_passes(self):
        raise_for_api_error(httpx.Response(200, json={}))


class TestSessionToken:
    async def test_p0_consume_otp_stores_session(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/api/v1/auth/callback/email":
                return httpx.Response(200, json={"success": True, "sessionToken": "tok"})
            return httpx.Response(200, json={"exists": True, "twoFactorEnabled": False})

        api = make_api(handler)

        await api.consume_otp("user@example.com", "123456")
        await api.lookup_account("user@example.com")

        assert "authorization" not in seen[0].headers
        assert seen[0].url.params["token"] == "123456"
        assert seen[1].headers["authorization"] == "Bearer tok"

    async def test_p1_transport_error_is_collaborator_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        with pytest.raises(CollaboratorUnavailableError):
            await make_api(handler).lookup_account("user@example.com")


class TestAnalyzeVideo:
    async def test_p1_sends_frames_and_timestamps(self):
        seen: list[bytes] = []
        video_id = uuid.uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.content)
            return error(500, "Failed to analyze video")

        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            await make_api(handler, "tok").analyze_video(
                video_id, [(b"jpeg-1", 2.5), (b"jpeg-2", 7.0)]
            )

        body = seen[0]
        assert exc_info.value.collaborator == "analysis"
        assert body.count(b'name="screenshots"') == 2
        assert body.count(b'name="timestamps"') == 2
        assert str(video_id).encode() in body


class TestResponseBodies:
    """Successful statuses with bodies that do not validate."""

    async def test_p0_non_json_transcript_is_collaborator_error(self):
        api = make_api(lambda request: httpx.Response(200, text="<html>gateway</html>"), "tok")

        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            await api.transcribe("clip.mp4", b"data", "video/mp4")

        assert exc_info.value.collaborator == "transcription"
        assert exc_info.value.status_code == 200

    async def test_p1_incomplete_upload_reply_is_collaborator_error(self):
        api = make_api(lambda request: httpx.Response(200, json={"success": True}), "tok")

        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            await api.request_upload("clip.mp4", "video/mp4")

        assert exc_info.value.collaborator == "storage"

    async def test_p1_empty_captions_are_collaborator_error(self):
        api = make_api(lambda request: httpx.Response(200, text=""), "tok")

        with pytest.raises(CollaboratorUnavailableError):
            await api.captions("clip.mp4", b"data", "video/mp4", "srt")


class TestPublish:
    async def test_p0_bad_request_means_reconnect(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return error(400, "YouTube account not connected or token expired")

        request = YouTubeUploadRequest(video_id=uuid.uuid4(), title="Trip")

        with pytest.raises(StaleCredentialsError):
            await make_api(handler, "tok").publish(request)

    async def test_p1_body_uses_camel_case(self):
        seen: list[dict] = []
        video_id = uuid.uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "youtubeUrl": "https://www.youtube.com/watch?v=yt1",
                    "youtubeVideoId": "yt1",
                    "uploadId": str(uuid.uuid4()),
                },
            )

        result = await make_api(handler, "tok").publish(
            YouTubeUploadRequest(video_id=video_id, title="Trip", privacy_status="unlisted")
        )

        assert result.youtube_video_id == "yt1"
        assert seen[0]["videoId"] == str(video_id)
        assert seen[0]["privacyStatus"] == "unlisted"
        assert seen[0]["tags"] == ["AI Generated"]
