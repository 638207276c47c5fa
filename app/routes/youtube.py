"""YouTube linking and publishing routes.

Endpoints:
- GET  /api/v1/youtube/connect              - Consent URL (authenticated)
- GET  /api/v1/youtube/callback             - OAuth callback (state identifies the user)
- GET  /api/v1/youtube/status               - Linked channel and token expiry
- POST /api/v1/youtube/integration/refresh  - Refresh the access token
- POST /api/v1/youtube/upload               - Publish a stored video
- GET  /api/v1/youtube/upload               - Publish history
"""

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.routes.dependencies import get_current_principal, get_publishing_service
from app.schemas.youtube import (
    YouTubeConnectResponse,
    YouTubeStatusResponse,
    YouTubeUploadRecord,
    YouTubeUploadRequest,
    YouTubeUploadResponse,
)
from app.services.credential_service import Principal
from app.services.publishing_service import PublishingService

log = structlog.get_logger()
router = APIRouter(prefix="/api/v1/youtube", tags=["youtube"])


@router.get("/connect", response_model=YouTubeConnectResponse)
async def connect(
    principal: Principal = Depends(get_current_principal),
    publishing: PublishingService = Depends(get_publishing_service),
) -> YouTubeConnectResponse:
    return YouTubeConnectResponse(auth_url=publishing.connect_url(principal))


@router.get("/callback", response_model=YouTubeStatusResponse)
async def callback(
    code: str | None = Query(default=None),
    state: str = Query(default=""),
    error: str | None = Query(default=None),
    db: AsyncSession = Depends(get_session),
    publishing: PublishingService = Depends(get_publishing_service),
):
    """Store the linked channel.

    Returns:
        200 OK: {connected: true, channelId, channelTitle, expiresAt}
        400 Bad Request: Consent denied or code missing
        401 Unauthorized: Invalid or stale state
    """
    if error or not code:
        log.warning("youtube_callback_error", error=error)
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": error or "Authorization code missing"},
        )
    return await publishing.complete_connection(code, state, db)


@router.get("/status", response_model=YouTubeStatusResponse)
async def status(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    publishing: PublishingService = Depends(get_publishing_service),
) -> YouTubeStatusResponse:
    return await publishing.status(principal, db)


@router.post("/integration/refresh", response_model=YouTubeStatusResponse)
async def refresh(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    publishing: PublishingService = Depends(get_publishing_service),
) -> YouTubeStatusResponse:
    return await publishing.refresh(principal, db)


@router.post("/upload", response_model=YouTubeUploadResponse)
async def upload(
    body: YouTubeUploadRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    publishing: PublishingService = Depends(get_publishing_service),
) -> YouTubeUploadResponse:
    """Publish a video.

    Returns:
        200 OK: {success, youtubeUrl, youtubeVideoId, uploadId, channelTitle}
        400 Bad Request: Not connected, token expired or stored token unreadable
        404 Not Found: Video not owned by caller
        409 Conflict: Already published ({existingUrl})
        502 Bad Gateway: YouTube or storage failure
    """
    return await publishing.publish(principal, body, db)


@router.get("/upload", response_model=list[YouTubeUploadRecord])
async def upload_history(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    publishing: PublishingService = Depends(get_publishing_service),
) -> list[YouTubeUploadRecord]:
    return await publishing.upload_history(principal, db)
