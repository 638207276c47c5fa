"""FastAPI dependencies: the current principal, vendor clients and services.

Vendor clients and stateful services are process-wide singletons built
lazily from configuration. Tests replace them with
app.dependency_overrides.
"""

from functools import lru_cache

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.deepgram import DeepgramClient
from app.clients.gemini import GeminiClient
from app.clients.google_oauth import GoogleOAuthClient
from app.clients.storage import StorageClient
from app.clients.youtube import YouTubeClient
from app.config import (
    get_aws_region,
    get_deepgram_api_key,
    get_gemini_api_key,
    get_google_client_id,
    get_google_client_secret,
    get_lookup_rate_limit_per_minute,
    get_s3_bucket_name,
)
from app.database import get_session
from app.exceptions import AuthenticationError
from app.services.analysis_service import AnalysisService
from app.services.credential_service import CredentialService, Principal
from app.services.google_sign_in_service import GoogleSignInService
from app.services.otp_service import OTPService
from app.services.publishing_service import PublishingService
from app.services.transcription_service import TranscriptionService
from app.services.two_factor_service import TwoFactorService
from app.services.video_service import VideoService
from app.utils.rate_limit import KeyedRateLimiter

log = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_storage_client() -> StorageClient:
    return StorageClient(get_s3_bucket_name(), region=get_aws_region())


@lru_cache
def get_deepgram_client() -> DeepgramClient:
    return DeepgramClient(get_deepgram_api_key())


@lru_cache
def get_gemini_client() -> GeminiClient:
    return GeminiClient(get_gemini_api_key())


@lru_cache
def get_google_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient(get_google_client_id(), get_google_client_secret())


@lru_cache
def get_youtube_client() -> YouTubeClient:
    return YouTubeClient()


@lru_cache
def get_credential_service() -> CredentialService:
    return CredentialService()


@lru_cache
def get_otp_service() -> OTPService:
    return OTPService(get_credential_service())


@lru_cache
def get_two_factor_service() -> TwoFactorService:
    return TwoFactorService(get_credential_service())


@lru_cache
def get_video_service() -> VideoService:
    return VideoService(get_storage_client())


@lru_cache
def get_transcription_service() -> TranscriptionService:
    """Singleton: owns the result cache and the background job registry."""
    return TranscriptionService(get_deepgram_client())


@lru_cache
def get_analysis_service() -> AnalysisService:
    return AnalysisService(get_gemini_client())


@lru_cache
def get_publishing_service() -> PublishingService:
    return PublishingService(get_google_oauth_client(), get_youtube_client(), get_storage_client())


@lru_cache
def get_google_sign_in_service() -> GoogleSignInService:
    return GoogleSignInService(get_google_oauth_client(), get_credential_service())


@lru_cache
def get_lookup_rate_limiter() -> KeyedRateLimiter:
    return KeyedRateLimiter(max_rate=get_lookup_rate_limit_per_minute(), time_period=60)


async def enforce_lookup_rate_limit(
    request: Request,
    limiter: KeyedRateLimiter = Depends(get_lookup_rate_limiter),
) -> None:
    """Reject callers that exceeded the per-minute account lookup budget (429)."""
    client_key = request.client.host if request.client else "unknown"
    await limiter.check(client_key)


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    return credentials.credentials


async def get_current_principal(
    token: str = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_session),
    credentials: CredentialService = Depends(get_credential_service),
) -> Principal:
    """Resolve the Authorization: Bearer session token to a Principal (401 otherwise)."""
    return await credentials.resolve_session(token, db)


async def close_clients() -> None:
    """Close vendor clients that were created during the process lifetime."""
    if get_transcription_service.cache_info().currsize:
        await get_transcription_service().close()
    for provider in (get_deepgram_client, get_google_oauth_client, get_youtube_client):
        if provider.cache_info().currsize:
            await provider().close()
            log.info("client_closed", client=provider.__name__.removeprefix("get_"))
