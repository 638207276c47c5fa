"""Pydantic schemas for validation and serialization."""

from app.schemas.auth import (
    EmailRequest,
    LookupResponse,
    OTPConsumeResponse,
    SessionRequest,
    SessionResponse,
    TwoFactorEnableRequest,
    TwoFactorSetupResponse,
    TwoFactorSetupVerifyRequest,
    TwoFactorVerifyRequest,
    TwoFactorVerifyResponse,
)
from app.schemas.base import CamelModel, SuccessResponse
from app.schemas.profile import ProfileResponse, ProfileUpdate
from app.schemas.video import (
    AnalysisPayload,
    AnalyzeVideoResponse,
    TranscribeResponse,
    TranscriptionPayload,
    UpdateVideoRequest,
    UpdateVideoResponse,
    UploadRequest,
    UploadResponse,
    VideoAnalysis,
)
from app.schemas.youtube import (
    YouTubeStatusResponse,
    YouTubeUploadRequest,
    YouTubeUploadResponse,
)

__all__ = [
    "AnalysisPayload",
    "AnalyzeVideoResponse",
    "CamelModel",
    "EmailRequest",
    "LookupResponse",
    "OTPConsumeResponse",
    "ProfileResponse",
    "ProfileUpdate",
    "SessionRequest",
    "SessionResponse",
    "SuccessResponse",
    "TranscribeResponse",
    "TranscriptionPayload",
    "TwoFactorEnableRequest",
    "TwoFactorSetupResponse",
    "TwoFactorSetupVerifyRequest",
    "TwoFactorVerifyRequest",
    "TwoFactorVerifyResponse",
    "UpdateVideoRequest",
    "UpdateVideoResponse",
    "UploadRequest",
    "UploadResponse",
    "VideoAnalysis",
    "YouTubeStatusResponse",
    "YouTubeUploadRequest",
    "YouTubeUploadResponse",
]
