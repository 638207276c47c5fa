"""Pydantic schemas for upload, transcription and analysis endpoints.

VideoAnalysis mirrors the raw JSON object requested from Gemini
(snake_case keys). AnalysisPayload is the camelCase shape returned to
API callers.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.base import CamelModel

UploadType = Literal["video", "transcript", "subtitle"]
CaptionFormat = Literal["webvtt", "srt"]


class UploadRequest(CamelModel):
    """Body for POST /api/v1/upload.

    video_id is required for transcript and subtitle uploads.
    """

    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1, max_length=100)
    upload_type: str = Field(default="video")
    video_id: UUID | None = None


class UploadResponse(CamelModel):
    success: bool = True
    upload_url: str
    upload_type: UploadType
    record_id: UUID
    file_key: str
    video_file_id: UUID | None = None
    transcript_id: UUID | None = None
    subtitle_id: UUID | None = None
    video_id: UUID | None = None


class TranscriptionPayload(CamelModel):
    text: str
    confidence: float
    language: str
    word_count: int
    processing_time: float = 0.0


class TranscribeResponse(CamelModel):
    success: bool = True
    result: TranscriptionPayload
    cached: bool = False


class TranscriptionJobResponse(CamelModel):
    job_id: str
    status: Literal["pending", "processing", "completed", "failed"]
    result: TranscriptionPayload | None = None
    error: str | None = None
    created_at: datetime


class ThumbnailConcept(BaseModel):
    visual_layout: str = ""
    text_overlay: str = ""
    color_scheme: str = ""
    key_elements: list[str] = Field(default_factory=list)
    mobile_optimization: str = ""


class VideoAnalysis(BaseModel):
    """Structured analysis returned by the media analysis model."""

    titles: list[str] = Field(default_factory=list)
    description: str = ""
    thumbnail_concept: ThumbnailConcept = Field(default_factory=ThumbnailConcept)
    thumbnail_ai_prompt: str = ""
    generated_images: list[str] = Field(default_factory=list)


class AnalysisPayload(CamelModel):
    titles: list[str] = Field(default_factory=list)
    description: str = ""
    thumbnail_concept: ThumbnailConcept | str = Field(default_factory=ThumbnailConcept)
    thumbnail_prompt: str = ""
    generated_images: list[str] = Field(default_factory=list)


class ScreenshotMeta(CamelModel):
    frame_number: int
    timestamp: float
    has_data: bool


class VideoInfo(CamelModel):
    id: UUID
    name: str
    has_transcript: bool


class AnalyzeVideoResponse(CamelModel):
    success: bool = True
    analysis: AnalysisPayload
    screenshots: list[ScreenshotMeta] = Field(default_factory=list)
    video_info: VideoInfo | None = None


class UpdateVideoRequest(CamelModel):
    video_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    thumbnail_key: str | None = Field(
        default=None,
        description="Base64-encoded PNG (optionally a data: URL) to store as the thumbnail",
    )


class VideoSummary(CamelModel):
    id: UUID
    title: str | None
    thumbnail_key: str | None


class UpdateVideoResponse(CamelModel):
    success: bool = True
    video: VideoSummary


class VideoDetail(CamelModel):
    id: UUID
    name: str
    file_key: str
    title: str | None = None
    description: str | None = None
    thumbnail_key: str | None = None
    is_uploaded: bool
    created_at: datetime
    task_status: str | None = None
    transcript_text: str | None = None
    subtitle_formats: list[str] = Field(default_factory=list)


class TranscriptionJobStarted(CamelModel):
    success: bool = True
    job_id: str
    message: str
    estimated_time: int = Field(..., description="Rough seconds until completion (2s per MB)")
