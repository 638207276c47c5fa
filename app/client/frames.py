"""Representative frame sampling for AI analysis.

Timestamps are drawn at random from the middle of the video (the first and
last FRAME_EDGE_SKIP_SECONDS are skipped when the video is long enough)
and kept at least FRAME_MIN_SPACING_SECONDS apart. Frames are captured as
JPEG with ffmpeg; the duration comes from ffprobe.
"""

import random
from dataclasses import dataclass
from pathlib import Path

from app.constants import FRAME_COUNT, FRAME_EDGE_SKIP_SECONDS, FRAME_MIN_SPACING_SECONDS
from app.utils.cli_wrapper import run_media_tool
from app.utils.logging import get_logger

log = get_logger(__name__)

MAX_DRAWS = 1000


@dataclass(frozen=True)
class ExtractedFrame:
    frame_number: int
    timestamp: float
    jpeg_bytes: bytes


def pick_timestamps(
    duration: float,
    count: int = FRAME_COUNT,
    rng: random.Random | None = None,
) -> list[float]:
    """Choose up to count sorted timestamps, pairwise at least one second apart.

    Example:
        >>> stamps = pick_timestamps(60.0, rng=random.Random(7))
        >>> len(stamps), all(2.0 <= t <= 58.0 for t in stamps)
        (3, True)
    """
    if duration <= 0:
        return []
    rng = rng or random.Random()

    start, end = 0.0, duration
    if duration > 2 * FRAME_EDGE_SKIP_SECONDS + (count - 1) * FRAME_MIN_SPACING_SECONDS:
        start, end = FRAME_EDGE_SKIP_SECONDS, duration - FRAME_EDGE_SKIP_SECONDS

    picked: list[float] = []
    for _ in range(MAX_DRAWS):
        if len(picked) == count:
            break
        candidate = rng.uniform(start, end)
        if all(abs(candidate - t) >= FRAME_MIN_SPACING_SECONDS for t in picked):
            picked.append(round(candidate, 3))
    return sorted(picked)


async def read_duration(path: Path) -> float:
    """Return the container duration in seconds (0.0 if ffprobe reports none)."""
    result = await run_media_tool(
        "ffprobe",
        [
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ],
        timeout=30,
    )
    try:
        return float(result.stdout.strip())
    except ValueError:
        return 0.0


async def capture_frame(path: Path, timestamp: float) -> bytes:
    """Grab one JPEG frame at timestamp (seconds)."""
    result = await run_media_tool(
        "ffmpeg",
        [
            "-ss",
            f"{timestamp:.3f}",
            "-i",
            str(path),
            "-frames:v",
            "1",
            "-q:v",
            "2",
            "-f",
            "image2",
            "-vcodec",
            "mjpeg",
            "pipe:1",
        ],
        timeout=60,
        text=False,
    )
    return result.stdout


async def extract_frames(
    path: Path,
    count: int = FRAME_COUNT,
    rng: random.Random | None = None,
) -> list[ExtractedFrame]:
    """Sample count frames from the video at path."""
    duration = await read_duration(path)
    timestamps = pick_timestamps(duration, count, rng)
    frames = []
    for index, timestamp in enumerate(timestamps):
        frames.append(
            ExtractedFrame(
                frame_number=index + 1,
                timestamp=timestamp,
                jpeg_bytes=await capture_frame(path, timestamp),
            )
        )
    log.info("frames_extracted", path=path.name, duration=duration, frames=len(frames))
    return frames
