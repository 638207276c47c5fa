"""YouTube Data API v3 client.

Implements the calls the publishing flow needs:
- channels.list (mine=true) to identify the linked channel
- videos.insert via the resumable upload protocol, streaming the source
  object from a pre-signed storage URL without buffering it in memory
- thumbnails.set for a custom PNG thumbnail

Vendor error reasons are mapped to user-facing messages.

Usage:
    client = YouTubeClient()
    video_id = await client.upload_video(access_token, source_url, metadata)
"""

import base64
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.constants import YOUTUBE_DEFAULT_CATEGORY_ID
from app.exceptions import CollaboratorUnavailableError, StaleCredentialsError
from app.utils.logging import get_logger

log = get_logger(__name__)

API_URL = "https://www.googleapis.com/youtube/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3"

ERROR_MESSAGES: dict[str, str] = {
    "quotaExceeded": "YouTube API quota exceeded. Please try again later.",
    "insufficientPermissions": "Insufficient permissions. Please reconnect your YouTube account.",
    "videoTooLarge": "Video file is too large for upload.",
    "invalidVideoFormat": "Invalid video format. Please use MP4, MOV, or AVI.",
}


class YouTubeAPIError(CollaboratorUnavailableError):
    """Raised for YouTube Data API failures.

    Attributes:
        reason: First error reason from the API body (e.g. "quotaExceeded").
        user_message: Message safe to show to the user.
    """

    def __init__(self, user_message: str, reason: str | None, status_code: int | None):
        self.reason = reason
        self.user_message = user_message
        super().__init__("youtube", user_message, status_code=status_code)


@dataclass
class VideoMetadata:
    title: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    category_id: str = YOUTUBE_DEFAULT_CATEGORY_ID
    privacy_status: str = "private"


@dataclass
class ChannelInfo:
    channel_id: str
    title: str | None


def _error_reason(response: httpx.Response) -> tuple[str | None, str]:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return None, response.text[:200]
    errors = error.get("errors") or [{}]
    return errors[0].get("reason"), str(error.get("message", ""))


def raise_for_youtube_error(response: httpx.Response) -> None:
    """Classify a failed YouTube API response.

    Raises:
        StaleCredentialsError: On 401 (token expired or revoked).
        YouTubeAPIError: On any other error status.
    """
    if response.status_code < 400:
        return
    reason, message = _error_reason(response)
    if response.status_code == 401:
        raise StaleCredentialsError("YouTube access token expired. Please reconnect your account.")
    user_message = ERROR_MESSAGES.get(reason or "", message or "YouTube request failed")
    log.error(
        "youtube_api_error",
        status_code=response.status_code,
        reason=reason,
    )
    raise YouTubeAPIError(user_message, reason, response.status_code)


class YouTubeClient:
    """Async YouTube Data API client. Access tokens are passed per call."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self.client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=600.0))

    @staticmethod
    def _auth(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    async def get_channel(self, access_token: str) -> ChannelInfo:
        """Return the channel owned by the token's account."""
        try:
            response = await self.client.get(
                f"{API_URL}/channels",
                params={"part": "snippet", "mine": "true"},
                headers=self._auth(access_token),
            )
        except httpx.HTTPError as e:
            raise CollaboratorUnavailableError("youtube", "Channel lookup failed") from e
        raise_for_youtube_error(response)

        items = response.json().get("items") or []
        if not items:
            raise YouTubeAPIError("No YouTube channel found for this account.", "noChannel", 404)
        channel = items[0]
        return ChannelInfo(channel_id=channel["id"], title=channel.get("snippet", {}).get("title"))

    async def _start_resumable_session(
        self,
        access_token: str,
        metadata: VideoMetadata,
        content_type: str,
        content_length: str | None,
    ) -> str:
        body: dict[str, Any] = {
            "snippet": {
                "title": metadata.title,
                "description": metadata.description,
                "tags": metadata.tags,
                "categoryId": metadata.category_id,
            },
            "status": {"privacyStatus": metadata.privacy_status},
        }
        headers = {**self._auth(access_token), "X-Upload-Content-Type": content_type}
        if content_length:
            headers["X-Upload-Content-Length"] = content_length

        response = await self.client.post(
            f"{UPLOAD_URL}/videos",
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers=headers,
            json=body,
        )
        raise_for_youtube_error(response)
        session_url = response.headers.get("Location")
        if not session_url:
            raise YouTubeAPIError("YouTube did not start an upload session.", None, None)
        return session_url

    async def upload_video(
        self,
        access_token: str,
        source_url: str,
        metadata: VideoMetadata,
    ) -> str:
        """Upload a video from source_url and return the new YouTube video id.

        Raises:
            StaleCredentialsError: If the access token was rejected.
            YouTubeAPIError: If YouTube refused the upload.
            CollaboratorUnavailableError: If the source object cannot be read.
        """
        try:
            async with self.client.stream("GET", source_url) as source:
                if source.status_code != 200:
                    raise CollaboratorUnavailableError(
                        "s3",
                        f"Failed to fetch video: {source.status_code}",
                        status_code=source.status_code,
                    )
                content_type = source.headers.get("content-type", "video/*")
                content_length = source.headers.get("content-length")

                session_url = await self._start_resumable_session(
                    access_token, metadata, content_type, content_length
                )
                headers = {"Content-Type": content_type}
                if content_length:
                    headers["Content-Length"] = content_length
                response = await self.client.put(
                    session_url, content=source.aiter_bytes(), headers=headers
                )
        except httpx.HTTPError as e:
            log.error("youtube_upload_transport_error", error=type(e).__name__)
            raise CollaboratorUnavailableError("youtube", "Upload interrupted") from e

        raise_for_youtube_error(response)
        video_id = response.json().get("id")
        if not video_id:
            raise YouTubeAPIError("YouTube did not return a video id.", None, response.status_code)
        log.info("youtube_upload_complete", youtube_video_id=video_id)
        return video_id

    async def set_thumbnail(self, access_token: str, video_id: str, png_base64: str) -> None:
        """Set a custom thumbnail from base64 PNG data."""
        data = base64.b64decode(png_base64.split(",", 1)[-1])
        try:
            response = await self.client.post(
                f"{UPLOAD_URL}/thumbnails/set",
                params={"videoId": video_id},
                headers={**self._auth(access_token), "Content-Type": "image/png"},
                content=data,
            )
        except httpx.HTTPError as e:
            raise CollaboratorUnavailableError("youtube", "Thumbnail upload failed") from e
        raise_for_youtube_error(response)

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
