"""Pydantic schemas for YouTube linking and publishing endpoints."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from app.constants import DEFAULT_PUBLISH_TAGS, YOUTUBE_DEFAULT_CATEGORY_ID
from app.schemas.base import CamelModel


class YouTubeConnectResponse(CamelModel):
    success: bool = True
    auth_url: str


class YouTubeStatusResponse(CamelModel):
    connected: bool
    channel_id: str | None = None
    channel_title: str | None = None
    expires_at: datetime | None = None


class YouTubeUploadRequest(CamelModel):
    """Body for POST /api/v1/youtube/upload."""

    video_id: UUID
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=5000)
    thumbnail_base64: str | None = None
    privacy_status: Literal["private", "unlisted", "public"] = "private"
    tags: list[str] = Field(default_factory=lambda: list(DEFAULT_PUBLISH_TAGS))
    category_id: str = YOUTUBE_DEFAULT_CATEGORY_ID


class YouTubeUploadResponse(CamelModel):
    success: bool = True
    youtube_url: str
    youtube_video_id: str
    upload_id: UUID
    channel_title: str | None = None
    thumbnail_set: bool = False


class YouTubeUploadRecord(CamelModel):
    id: UUID
    video_file_id: UUID
    youtube_video_id: str | None
    youtube_url: str | None
    title: str
    privacy_status: str
    status: str
    uploaded_at: datetime
