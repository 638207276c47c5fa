"""YouTube channel linking and video publishing.

Key Responsibilities:
- Build the Google consent URL with a timed, signed state carrying the user id
- Exchange the callback code, read the channel and store encrypted tokens
- Report and refresh the linked channel's token status
- Publish a stored video to the linked channel and record the outcome

Token Handling:
    Access and refresh tokens are Fernet-encrypted at rest. A token that
    cannot be decrypted is treated as stale: the user must reconnect, and
    the stale token is never sent to YouTube.

Duplicate Protection:
    A PUBLISHED YouTubeUpload row for (video, integration) makes any repeat
    publish of that video to that channel a DuplicateUploadError carrying
    the existing URL.
"""

import uuid

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.google_oauth import GoogleOAuthClient
from app.clients.storage import StorageClient
from app.clients.youtube import VideoMetadata, YouTubeAPIError, YouTubeClient
from app.config import get_public_base_url
from app.constants import YOUTUBE_SCOPES
from app.exceptions import (
    AuthenticationError,
    CollaboratorUnavailableError,
    DuplicateUploadError,
    RequestValidationError,
    StaleCredentialsError,
)
from app.models import UploadStatus, YouTubeIntegration, YouTubeUpload, as_utc, utcnow
from app.schemas.youtube import (
    YouTubeStatusResponse,
    YouTubeUploadRecord,
    YouTubeUploadRequest,
    YouTubeUploadResponse,
)
from app.services.credential_service import Principal
from app.services.video_service import get_owned_video
from app.utils.encryption import DecryptionError, get_encryption_service
from app.utils.logging import get_logger

log = get_logger(__name__)

STATE_MAX_AGE_SECONDS = 600
STATE_SALT = "youtube-connect-v1"
NOT_CONNECTED_MESSAGE = "YouTube account not connected or token expired"
RECONNECT_MESSAGE = "Stored YouTube credentials are invalid. Please reconnect your account."


def youtube_redirect_uri() -> str:
    return f"{get_public_base_url()}/api/v1/youtube/callback"


def watch_url(youtube_video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={youtube_video_id}"


def _state_serializer() -> URLSafeTimedSerializer:
    return get_encryption_service().state_serializer(STATE_SALT)


def build_state(user_id: uuid.UUID) -> str:
    """Sign user_id with a timestamp for the OAuth round trip."""
    return _state_serializer().dumps({"uid": str(user_id)})


def parse_state(state: str) -> uuid.UUID:
    """Verify a callback state and return the user id it carries.

    Raises:
        AuthenticationError: If the state is malformed, tampered with or stale.
    """
    try:
        payload = _state_serializer().loads(state, max_age=STATE_MAX_AGE_SECONDS)
    except SignatureExpired as e:
        raise AuthenticationError("OAuth state expired. Please try connecting again.") from e
    except BadSignature as e:
        log.warning("youtube_state_signature_mismatch")
        raise AuthenticationError("Invalid OAuth state") from e

    try:
        return uuid.UUID(payload["uid"])
    except (KeyError, TypeError, ValueError) as e:
        raise AuthenticationError("Invalid OAuth state") from e


class PublishingService:
    """Service for YouTube linking and publishing.

    Example:
        >>> service = PublishingService(oauth, youtube, storage)
        >>> url = service.connect_url(principal)
        >>> await service.complete_connection(code, state, db)
        >>> await service.publish(principal, request, db)
    """

    def __init__(
        self,
        oauth: GoogleOAuthClient,
        youtube: YouTubeClient,
        storage: StorageClient,
    ):
        self.oauth = oauth
        self.youtube = youtube
        self.storage = storage

    def connect_url(self, principal: Principal) -> str:
        return self.oauth.authorization_url(
            youtube_redirect_uri(),
            YOUTUBE_SCOPES,
            state=build_state(principal.user_id),
            offline=True,
        )

    async def complete_connection(
        self, code: str, state: str, db: AsyncSession
    ) -> YouTubeStatusResponse:
        """Handle the OAuth callback and store the new active integration."""
        user_id = parse_state(state)
        tokens = await self.oauth.exchange_code(code, youtube_redirect_uri())
        channel = await self.youtube.get_channel(tokens.access_token)

        encryption = get_encryption_service()
        await db.execute(
            update(YouTubeIntegration)
            .where(YouTubeIntegration.user_id == user_id, YouTubeIntegration.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        integration = YouTubeIntegration(
            user_id=user_id,
            channel_id=channel.channel_id,
            channel_title=channel.title,
            access_token_encrypted=encryption.encrypt(tokens.access_token),
            refresh_token_encrypted=(
                encryption.encrypt(tokens.refresh_token) if tokens.refresh_token else None
            ),
            expires_at=tokens.expires_at,
            is_active=True,
        )
        db.add(integration)
        await db.commit()

        log.info("youtube_connected", user_id=str(user_id), channel_id=channel.channel_id)
        return YouTubeStatusResponse(
            connected=True,
            channel_id=channel.channel_id,
            channel_title=channel.title,
            expires_at=integration.expires_at,
        )

    async def _active_integration(
        self, user_id: uuid.UUID, db: AsyncSession
    ) -> YouTubeIntegration | None:
        result = await db.execute(
            select(YouTubeIntegration)
            .where(YouTubeIntegration.user_id == user_id, YouTubeIntegration.is_active.is_(True))
            .order_by(YouTubeIntegration.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def status(self, principal: Principal, db: AsyncSession) -> YouTubeStatusResponse:
        """Report the linked channel; an expired active link is deactivated."""
        integration = await self._active_integration(principal.user_id, db)
        if integration is None:
            return YouTubeStatusResponse(connected=False)

        if as_utc(integration.expires_at) <= utcnow():
            integration.is_active = False
            await db.commit()
            log.info("youtube_integration_expired", user_id=str(principal.user_id))
            return YouTubeStatusResponse(connected=False, channel_title=integration.channel_title)

        return YouTubeStatusResponse(
            connected=True,
            channel_id=integration.channel_id,
            channel_title=integration.channel_title,
            expires_at=integration.expires_at,
        )

    async def refresh(self, principal: Principal, db: AsyncSession) -> YouTubeStatusResponse:
        """Refresh the most recent integration's access token and reactivate it.

        Raises:
            RequestValidationError: If there is nothing to refresh.
            StaleCredentialsError: If the refresh token is unreadable or revoked.
        """
        result = await db.execute(
            select(YouTubeIntegration)
            .where(
                YouTubeIntegration.user_id == principal.user_id,
                YouTubeIntegration.refresh_token_encrypted.is_not(None),
            )
            .order_by(YouTubeIntegration.created_at.desc())
            .limit(1)
        )
        integration = result.scalar_one_or_none()
        if integration is None:
            raise RequestValidationError(NOT_CONNECTED_MESSAGE)

        encryption = get_encryption_service()
        try:
            refresh_token = encryption.decrypt(
                integration.refresh_token_encrypted, user_id=str(principal.user_id)
            )
        except DecryptionError as e:
            raise StaleCredentialsError(RECONNECT_MESSAGE) from e

        tokens = await self.oauth.refresh(refresh_token)

        await db.execute(
            update(YouTubeIntegration)
            .where(
                YouTubeIntegration.user_id == principal.user_id,
                YouTubeIntegration.id != integration.id,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        integration.access_token_encrypted = encryption.encrypt(tokens.access_token)
        if tokens.refresh_token:
            integration.refresh_token_encrypted = encryption.encrypt(tokens.refresh_token)
        integration.expires_at = tokens.expires_at
        integration.is_active = True
        await db.commit()

        log.info("youtube_token_refreshed", user_id=str(principal.user_id))
        return YouTubeStatusResponse(
            connected=True,
            channel_id=integration.channel_id,
            channel_title=integration.channel_title,
            expires_at=integration.expires_at,
        )

    async def publish(
        self,
        principal: Principal,
        request: YouTubeUploadRequest,
        db: AsyncSession,
    ) -> YouTubeUploadResponse:
        """Publish an owned video to the linked channel.

        Raises:
            RequestValidationError: If no active, unexpired channel is linked.
            NotFoundError: If the video is not owned by the principal.
            DuplicateUploadError: If already published to this channel.
            StaleCredentialsError: If the stored token is unreadable or rejected.
            CollaboratorUnavailableError: If YouTube or storage failed.
        """
        integration = await self._active_integration(principal.user_id, db)
        if integration is None or as_utc(integration.expires_at) <= utcnow():
            raise RequestValidationError(NOT_CONNECTED_MESSAGE)

        video = await get_owned_video(principal, request.video_id, db)

        existing = await db.execute(
            select(YouTubeUpload).where(
                YouTubeUpload.video_file_id == video.id,
                YouTubeUpload.youtube_integration_id == integration.id,
                YouTubeUpload.status == UploadStatus.PUBLISHED,
            )
        )
        published = existing.scalars().first()
        if published is not None:
            log.info(
                "youtube_duplicate_upload_blocked",
                video_id=str(video.id),
                youtube_video_id=published.youtube_video_id,
            )
            raise DuplicateUploadError(
                "This video has already been uploaded to this channel",
                existing_url=published.youtube_url,
            )

        try:
            access_token = get_encryption_service().decrypt(
                integration.access_token_encrypted, user_id=str(principal.user_id)
            )
        except DecryptionError as e:
            log.error("youtube_token_decrypt_failed", user_id=str(principal.user_id))
            raise StaleCredentialsError(RECONNECT_MESSAGE) from e

        metadata = VideoMetadata(
            title=request.title,
            description=request.description,
            tags=request.tags,
            category_id=request.category_id,
            privacy_status=request.privacy_status,
        )

        try:
            source_url = self.storage.presigned_get_url(video.file_key)
            youtube_video_id = await self.youtube.upload_video(access_token, source_url, metadata)
        except (CollaboratorUnavailableError, StaleCredentialsError) as e:
            message = e.user_message if isinstance(e, YouTubeAPIError) else str(e)
            await self._record(video.id, integration.id, request, None, message, db)
            log.error(
                "youtube_publish_failed",
                video_id=str(video.id),
                error_type=type(e).__name__,
            )
            raise

        thumbnail_set = False
        if request.thumbnail_base64:
            try:
                await self.youtube.set_thumbnail(
                    access_token, youtube_video_id, request.thumbnail_base64
                )
                thumbnail_set = True
            except (CollaboratorUnavailableError, StaleCredentialsError, ValueError) as e:
                log.warning(
                    "youtube_thumbnail_failed",
                    youtube_video_id=youtube_video_id,
                    error=str(e),
                )

        record = await self._record(video.id, integration.id, request, youtube_video_id, None, db)
        log.info(
            "youtube_published",
            video_id=str(video.id),
            youtube_video_id=youtube_video_id,
            thumbnail_set=thumbnail_set,
        )
        return YouTubeUploadResponse(
            youtube_url=record.youtube_url,
            youtube_video_id=youtube_video_id,
            upload_id=record.id,
            channel_title=integration.channel_title,
            thumbnail_set=thumbnail_set,
        )

    async def _record(
        self,
        video_id: uuid.UUID,
        integration_id: uuid.UUID,
        request: YouTubeUploadRequest,
        youtube_video_id: str | None,
        error_message: str | None,
        db: AsyncSession,
    ) -> YouTubeUpload:
        record = YouTubeUpload(
            video_file_id=video_id,
            youtube_integration_id=integration_id,
            youtube_video_id=youtube_video_id,
            title=request.title,
            description=request.description,
            privacy_status=request.privacy_status,
            status=UploadStatus.PUBLISHED if youtube_video_id else UploadStatus.FAILED,
            youtube_url=watch_url(youtube_video_id) if youtube_video_id else None,
            error_message=error_message,
        )
        db.add(record)
        await db.commit()
        return record

    async def upload_history(
        self, principal: Principal, db: AsyncSession
    ) -> list[YouTubeUploadRecord]:
        result = await db.execute(
            select(YouTubeUpload)
            .join(YouTubeIntegration, YouTubeUpload.youtube_integration_id == YouTubeIntegration.id)
            .where(YouTubeIntegration.user_id == principal.user_id)
            .order_by(YouTubeUpload.uploaded_at.desc())
        )
        return [
            YouTubeUploadRecord(
                id=upload.id,
                video_file_id=upload.video_file_id,
                youtube_video_id=upload.youtube_video_id,
                youtube_url=upload.youtube_url,
                title=upload.title,
                privacy_status=upload.privacy_status,
                status=upload.status.value,
                uploaded_at=upload.uploaded_at,
            )
            for upload in result.scalars()
        ]