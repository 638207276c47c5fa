"""Google Gemini client for multimodal video analysis and thumbnail images.

This module sends sampled video frames plus a transcript to Gemini and
parses the structured JSON it returns (titles, description, thumbnail
concept, image prompt). It can then render thumbnail candidates from the
image prompt with a Gemini image model.

Architecture Pattern:
    google.generativeai is synchronous; every SDK call runs in
    asyncio.to_thread() so the event loop is never blocked.
    Transient SDK errors (quota, 5xx, deadline) are retried with tenacity.

Usage:
    client = GeminiClient(api_key)
    analysis = await client.analyze_frames(frames, transcript)
    images = await client.generate_thumbnails(analysis.thumbnail_ai_prompt)
"""

import asyncio
import base64
import json
import re
from dataclasses import dataclass
from io import BytesIO

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.exceptions import CollaboratorUnavailableError, ConfigurationError
from app.schemas.video import VideoAnalysis
from app.utils.logging import get_logger

log = get_logger(__name__)

TRANSIENT_GOOGLE_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)

_FENCE_START = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```\s*$")

ANALYSIS_PROMPT = """\
You are a world-class videographer, content strategist and social media expert.
You create viral, family-friendly content optimized for YouTube, Instagram,
TikTok and Facebook.

Given a video transcript and {frame_count} key video frames, perform a
multi-modal analysis and generate SEO-optimized titles, an engaging
description, a high-conversion thumbnail concept and a detailed prompt for
an AI image generator.

Transcript: {transcript}
Frames: {frame_list}

Requirements:
- Avoid violent, harmful or inappropriate content; keep it family-friendly.
- Integrate insights from both the transcript and the frames.
- "titles": 3-5 clickable, SEO-optimized options in varied styles.
- "description": hook, key takeaways, call to action and 10-15 hashtags.
- "thumbnail_concept": object with "visual_layout", "text_overlay" (3-6 bold
  words), "color_scheme", "key_elements" (list) and "mobile_optimization".
- "thumbnail_ai_prompt": a detailed 16:9 image prompt covering scene, style,
  palette, text placement, mood and composition.

Respond with a single JSON object containing exactly these keys and no other text.
"""


@dataclass
class AnalysisFrame:
    """A JPEG frame sampled from the video."""

    frame_number: int
    timestamp: float
    jpeg_bytes: bytes


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence from model output.

    Example:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    return _FENCE_END.sub("", _FENCE_START.sub("", text)).strip()


def parse_analysis(text: str) -> VideoAnalysis:
    """Parse model output into a VideoAnalysis.

    Raises:
        CollaboratorUnavailableError: If the output is not the expected JSON object.
    """
    try:
        data = json.loads(strip_code_fences(text))
        return VideoAnalysis.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        log.error("gemini_analysis_parse_failed", error=type(e).__name__, preview=text[:200])
        raise CollaboratorUnavailableError("gemini", "Analysis response was not valid JSON") from e


class GeminiClient:
    """Client for Gemini multimodal analysis and image generation.

    Attributes:
        analysis_model: Model used for frame + transcript analysis.
        image_model: Model used to render thumbnail candidates.
    """

    def __init__(
        self,
        api_key: str | None,
        analysis_model: str = "gemini-2.0-flash",
        image_model: str = "gemini-2.5-flash-image",
    ):
        self.api_key = api_key
        self.analysis_model = analysis_model
        self.image_model = image_model
        self._configured = False

    def _model(self, name: str) -> genai.GenerativeModel:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True
        return genai.GenerativeModel(name)

    @retry(
        retry=retry_if_exception_type(TRANSIENT_GOOGLE_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, min=2, max=8),
        before_sleep=lambda retry_state: log.warning(
            "gemini_retry",
            attempt=retry_state.attempt_number,
        ),
        reraise=True,
    )
    async def _generate(self, model_name: str, contents: list) -> object:
        model = self._model(model_name)
        return await asyncio.to_thread(model.generate_content, contents)

    async def analyze_frames(self, frames: list[AnalysisFrame], transcript: str) -> VideoAnalysis:
        """Produce titles, description and thumbnail concept for a video.

        Args:
            frames: Sampled JPEG frames (typically 3).
            transcript: Transcript text or a placeholder.

        Returns:
            Parsed VideoAnalysis (generated_images left empty).

        Raises:
            ConfigurationError: If GEMINI_API_KEY is not set.
            CollaboratorUnavailableError: If the model fails or returns unusable output.
        """
        images = []
        for frame in frames:
            try:
                images.append(Image.open(BytesIO(frame.jpeg_bytes)))
            except UnidentifiedImageError:
                log.warning("gemini_frame_unreadable", frame_number=frame.frame_number)
        if not images:
            raise CollaboratorUnavailableError("gemini", "No readable frames to analyze")

        prompt = ANALYSIS_PROMPT.format(
            frame_count=len(frames),
            transcript=transcript,
            frame_list=", ".join(
                f"Frame {f.frame_number} at {f.timestamp:.1f}s" for f in frames
            ),
        )

        try:
            response = await self._generate(self.analysis_model, [*images, prompt])
        except google_exceptions.GoogleAPIError as e:
            log.error("gemini_analysis_failed", error=type(e).__name__)
            raise CollaboratorUnavailableError("gemini", "Video analysis failed") from e

        text = "".join(
            part.text for part in getattr(response, "parts", []) if getattr(part, "text", None)
        )
        if not text:
            raise CollaboratorUnavailableError("gemini", "No analysis generated")

        analysis = parse_analysis(text)
        log.info(
            "gemini_analysis_complete",
            frames=len(images),
            titles=len(analysis.titles),
        )
        return analysis

    async def generate_thumbnails(self, prompt: str, count: int = 2) -> list[str]:
        """Render thumbnail candidates from an image prompt.

        Image generation is an optional enrichment: individual failures are
        logged and skipped.

        Returns:
            Base64-encoded PNG images (possibly empty).
        """
        if not prompt:
            return []

        images: list[str] = []
        for index in range(count):
            try:
                response = await self._generate(
                    self.image_model,
                    [f"{prompt}\n\nAspect ratio 16:9, YouTube thumbnail."],
                )
            except google_exceptions.GoogleAPIError as e:
                log.warning("gemini_thumbnail_failed", index=index, error=type(e).__name__)
                continue

            for part in getattr(response, "parts", []):
                inline = getattr(part, "inline_data", None)
                if inline and inline.data:
                    images.append(_to_png_base64(inline.data))
                    break
            else:
                log.warning("gemini_thumbnail_no_image", index=index)

        log.info("gemini_thumbnails_generated", requested=count, generated=len(images))
        return images


def _to_png_base64(image_data: bytes) -> str:
    """Normalize generated image bytes to a base64 PNG."""
    try:
        image = Image.open(BytesIO(image_data))
    except UnidentifiedImageError:
        return base64.b64encode(image_data).decode()
    buffer = BytesIO()
    image.save(buffer, "PNG")
    return base64.b64encode(buffer.getvalue()).decode()
