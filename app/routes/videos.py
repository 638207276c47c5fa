"""Media pipeline routes (authenticated).

Endpoints:
- POST /api/v1/upload            - Pre-signed upload URL + database record
- POST /api/v1/transcribe        - Transcribe media (multipart: file, videoId?)
- POST /api/v1/captions          - WebVTT/SRT caption file (multipart: file, format, videoId?)
- POST /api/v1/transcribe-async  - Start a background transcription job
- GET  /api/v1/transcribe-async  - Poll a job (?jobId=)
- POST /api/v1/analyze-video     - AI titles/description/thumbnail concept from frames
- POST /api/v1/update-video      - Save chosen title and thumbnail
- GET  /api/v1/videos            - Caller's videos
- GET  /api/v1/videos/{video_id} - One video with transcript/subtitle/task status
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.exceptions import CollaboratorUnavailableError, RequestValidationError
from app.routes.dependencies import (
    get_analysis_service,
    get_current_principal,
    get_transcription_service,
    get_video_service,
)
from app.schemas.video import (
    AnalyzeVideoResponse,
    TranscribeResponse,
    TranscriptionJobResponse,
    TranscriptionJobStarted,
    UpdateVideoRequest,
    UpdateVideoResponse,
    UploadRequest,
    UploadResponse,
    VideoDetail,
)
from app.services.analysis_service import AnalysisService
from app.services.credential_service import Principal
from app.services.transcription_service import TranscriptionService
from app.services.video_service import VideoService

log = structlog.get_logger()
router = APIRouter(prefix="/api/v1", tags=["videos"])


@router.post("/upload", response_model=UploadResponse)
async def create_upload(
    body: UploadRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    videos: VideoService = Depends(get_video_service),
) -> UploadResponse:
    """Issue a pre-signed PUT URL.

    Returns:
        200 OK: {success, uploadUrl, uploadType, recordId, ...}
        400 Bad Request: Missing fields or invalid upload type
        404 Not Found: videoId not owned by caller
    """
    return await videos.create_upload(principal, body, db)


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe(
    file: UploadFile = File(...),
    video_id: UUID | None = Form(default=None, alias="videoId"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    transcription: TranscriptionService = Depends(get_transcription_service),
) -> TranscribeResponse:
    data = await file.read()
    return await transcription.transcribe(
        principal, file.filename or "upload", file.content_type, data, video_id, db
    )


@router.post("/captions")
async def captions(
    file: UploadFile = File(...),
    caption_format: str = Form(default="webvtt", alias="format"),
    video_id: UUID | None = Form(default=None, alias="videoId"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    transcription: TranscriptionService = Depends(get_transcription_service),
) -> Response:
    """Return the caption file body with an attachment disposition."""
    data = await file.read()
    body, media_type, download_name = await transcription.captions(
        principal,
        file.filename or "captions",
        file.content_type,
        data,
        caption_format,
        video_id,
        db,
    )
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{download_name}"'},
    )


@router.post("/transcribe-async", response_model=TranscriptionJobStarted)
async def start_transcription_job(
    file: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    transcription: TranscriptionService = Depends(get_transcription_service),
) -> TranscriptionJobStarted:
    data = await file.read()
    return transcription.start_job(principal, file.filename or "upload", file.content_type, data)


@router.get("/transcribe-async", response_model=TranscriptionJobResponse)
async def get_transcription_job(
    job_id: str | None = Query(default=None, alias="jobId"),
    principal: Principal = Depends(get_current_principal),
    transcription: TranscriptionService = Depends(get_transcription_service),
) -> TranscriptionJobResponse:
    """Poll a background job.

    Returns:
        200 OK: {jobId, status, result?, error?}
        400 Bad Request: jobId missing
        404 Not Found: Unknown job
        410 Gone: Job older than one hour
    """
    if not job_id:
        raise RequestValidationError("Job ID required")
    return transcription.get_job(principal, job_id)


@router.post("/analyze-video", response_model=AnalyzeVideoResponse)
async def analyze_video(
    screenshots: list[UploadFile] = File(...),
    video_id: UUID = Form(..., alias="videoId"),
    transcript_text: str | None = Form(default=None, alias="transcriptText"),
    timestamps: list[float] = Form(default=[]),
    generate_images: bool = Form(default=True, alias="generateImages"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    analysis: AnalysisService = Depends(get_analysis_service),
) -> AnalyzeVideoResponse:
    """Analyze sampled frames.

    Returns:
        200 OK: {success, analysis, screenshots, videoInfo}
        400 Bad Request: No screenshots or videoId
        404 Not Found: Video not owned by caller
        500 Internal Server Error: Analysis could not be produced
    """
    frames = [await screenshot.read() for screenshot in screenshots]
    try:
        return await analysis.analyze(
            principal,
            video_id,
            frames,
            timestamps,
            transcript_text,
            db,
            generate_images=generate_images,
        )
    except CollaboratorUnavailableError as e:
        log.error("video_analysis_failed", video_id=str(video_id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to analyze video") from e


@router.post("/update-video", response_model=UpdateVideoResponse)
async def update_video(
    body: UpdateVideoRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    videos: VideoService = Depends(get_video_service),
) -> UpdateVideoResponse:
    return UpdateVideoResponse(video=await videos.update_video(principal, body, db))


@router.get("/videos", response_model=list[VideoDetail])
async def list_videos(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    videos: VideoService = Depends(get_video_service),
) -> list[VideoDetail]:
    return await videos.list_videos(principal, db)


@router.get("/videos/{video_id}", response_model=VideoDetail)
async def get_video(
    video_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    videos: VideoService = Depends(get_video_service),
) -> VideoDetail:
    return await videos.get_video(principal, video_id, db)
