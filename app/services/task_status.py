"""Per-video processing status ordering.

Transcription and captioning handlers each report completion here. The
resulting status depends on which stage finishes first:

    NOT_STARTED + transcription  → TRANSCRIBING
    NOT_STARTED + captioning     → CAPTIONING
    TRANSCRIBING + captioning    → TRANSCODING
    CAPTIONING + transcription   → TRANSCODING

Any other combination leaves the status unchanged, so re-running a stage
never moves a video backwards.

Concurrency:
    Each advance reads the current status and applies an UPDATE guarded by
    `WHERE status = <observed>`. When a concurrent handler changed the row
    first, the update matches zero rows and the advance is recomputed from
    the fresh status.
"""

import enum
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import VideoTask, VideoTaskStatus, utcnow
from app.utils.logging import get_logger

log = get_logger(__name__)

MAX_ADVANCE_ATTEMPTS = 3


class TaskStage(enum.Enum):
    """Processing stages that report completion."""

    TRANSCRIPTION = "transcription"
    CAPTIONING = "captioning"


def next_task_status(current: VideoTaskStatus, stage: TaskStage) -> VideoTaskStatus:
    """Return the status after stage completes, given the current status.

    Example:
        >>> next_task_status(VideoTaskStatus.CAPTIONING, TaskStage.CAPTIONING)
        <VideoTaskStatus.CAPTIONING: 'CAPTIONING'>
        >>> next_task_status(VideoTaskStatus.CAPTIONING, TaskStage.TRANSCRIPTION)
        <VideoTaskStatus.TRANSCODING: 'TRANSCODING'>
    """
    if current == VideoTaskStatus.NOT_STARTED:
        if stage == TaskStage.TRANSCRIPTION:
            return VideoTaskStatus.TRANSCRIBING
        return VideoTaskStatus.CAPTIONING
    if current == VideoTaskStatus.TRANSCRIBING and stage == TaskStage.CAPTIONING:
        return VideoTaskStatus.TRANSCODING
    if current == VideoTaskStatus.CAPTIONING and stage == TaskStage.TRANSCRIPTION:
        return VideoTaskStatus.TRANSCODING
    return current


async def _read_status(video_id: UUID, db: AsyncSession) -> VideoTaskStatus | None:
    result = await db.execute(select(VideoTask.status).where(VideoTask.video_id == video_id))
    return result.scalar_one_or_none()


async def advance_task_status(
    video_id: UUID,
    stage: TaskStage,
    db: AsyncSession,
) -> VideoTaskStatus:
    """Record that stage finished for video_id and return the resulting status.

    Creates the VideoTask row if the video has none. The caller commits.

    Args:
        video_id: VideoFile id.
        stage: Stage that just completed.
        db: Async database session.

    Returns:
        The status after the advance (unchanged if the stage was a re-run).
    """
    for attempt in range(1, MAX_ADVANCE_ATTEMPTS + 1):
        current = await _read_status(video_id, db)
        if current is None:
            target = next_task_status(VideoTaskStatus.NOT_STARTED, stage)
            db.add(VideoTask(video_id=video_id, status=target))
            await db.flush()
            log.info(
                "video_task_created",
                video_id=str(video_id),
                stage=stage.value,
                status=target.value,
            )
            return target

        target = next_task_status(current, stage)
        if target == current:
            log.info(
                "video_task_unchanged",
                video_id=str(video_id),
                stage=stage.value,
                status=current.value,
            )
            return current

        result = await db.execute(
            update(VideoTask)
            .where(VideoTask.video_id == video_id, VideoTask.status == current)
            .values(status=target, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            log.info(
                "video_task_advanced",
                video_id=str(video_id),
                stage=stage.value,
                from_status=current.value,
                to_status=target.value,
            )
            return target

        log.warning(
            "video_task_advance_conflict",
            video_id=str(video_id),
            stage=stage.value,
            observed=current.value,
            attempt=attempt,
        )

    final = await _read_status(video_id, db)
    log.error("video_task_advance_gave_up", video_id=str(video_id), stage=stage.value)
    return final or VideoTaskStatus.NOT_STARTED
