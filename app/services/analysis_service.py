"""AI analysis of sampled video frames.

Produces suggested titles, a description, a thumbnail concept and
(optionally) rendered thumbnail candidates from three JPEG frames plus the
video's transcript.

Transcript Resolution:
    1. transcriptText supplied by the caller
    2. Transcript row stored for the video
    3. NO_TRANSCRIPT_PLACEHOLDER
"""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.gemini import AnalysisFrame, GeminiClient
from app.constants import NO_TRANSCRIPT_PLACEHOLDER
from app.exceptions import RequestValidationError
from app.schemas.video import (
    AnalysisPayload,
    AnalyzeVideoResponse,
    ScreenshotMeta,
    VideoInfo,
)
from app.services.credential_service import Principal
from app.services.video_service import get_owned_video
from app.utils.logging import get_logger

log = get_logger(__name__)


class AnalysisService:
    """Service wrapping Gemini frame analysis with video ownership checks."""

    def __init__(self, gemini: GeminiClient, thumbnail_count: int = 2):
        self.gemini = gemini
        self.thumbnail_count = thumbnail_count

    async def analyze(
        self,
        principal: Principal,
        video_id: uuid.UUID,
        screenshots: list[bytes],
        timestamps: list[float],
        transcript_text: str | None,
        db: AsyncSession,
        generate_images: bool = True,
    ) -> AnalyzeVideoResponse:
        """Analyze frames for an owned video.

        Args:
            screenshots: JPEG bytes, in frame order. Empty entries are skipped.
            timestamps: Capture time (seconds) per screenshot; missing values are 0.

        Raises:
            RequestValidationError: If no usable screenshot was supplied.
            NotFoundError: If the video is not owned by the principal.
            CollaboratorUnavailableError / ConfigurationError: If analysis failed.
        """
        video = await get_owned_video(principal, video_id, db, with_relations=True)

        frames = [
            AnalysisFrame(
                frame_number=index + 1,
                timestamp=timestamps[index] if index < len(timestamps) else 0.0,
                jpeg_bytes=data,
            )
            for index, data in enumerate(screenshots)
            if data
        ]
        if not frames:
            raise RequestValidationError("Screenshots array is required")

        stored = video.transcript.raw_text if video.transcript else None
        transcript = transcript_text or stored or NO_TRANSCRIPT_PLACEHOLDER

        analysis = await self.gemini.analyze_frames(frames, transcript)
        if generate_images and analysis.thumbnail_ai_prompt:
            analysis.generated_images = await self.gemini.generate_thumbnails(
                analysis.thumbnail_ai_prompt, count=self.thumbnail_count
            )

        log.info(
            "video_analyzed",
            user_id=str(principal.user_id),
            video_id=str(video.id),
            frames=len(frames),
            used_stored_transcript=not transcript_text and bool(stored),
            generated_images=len(analysis.generated_images),
        )
        return AnalyzeVideoResponse(
            analysis=AnalysisPayload(
                titles=analysis.titles,
                description=analysis.description,
                thumbnail_concept=analysis.thumbnail_concept,
                thumbnail_prompt=analysis.thumbnail_ai_prompt,
                generated_images=analysis.generated_images,
            ),
            screenshots=[
                ScreenshotMeta(
                    frame_number=frame.frame_number,
                    timestamp=frame.timestamp,
                    has_data=True,
                )
                for frame in frames
            ],
            video_info=VideoInfo(
                id=video.id,
                name=video.name,
                has_transcript=transcript != NO_TRANSCRIPT_PLACEHOLDER,
            ),
        )
