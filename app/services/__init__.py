"""Business logic services for the HTTP layer."""

from app.exceptions import ConfigurationError
from app.services.analysis_service import AnalysisService
from app.services.credential_service import CredentialService, Principal
from app.services.google_sign_in_service import GoogleSignInService
from app.services.otp_service import OTPService
from app.services.publishing_service import PublishingService
from app.services.transcription_service import TranscriptionService
from app.services.two_factor_service import TwoFactorService
from app.services.video_service import VideoService

__all__ = [
    "AnalysisService",
    "ConfigurationError",
    "CredentialService",
    "GoogleSignInService",
    "OTPService",
    "Principal",
    "PublishingService",
    "TranscriptionService",
    "TwoFactorService",
    "VideoService",
]
