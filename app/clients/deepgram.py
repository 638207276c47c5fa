"""Deepgram prerecorded transcription client.

This module wraps the Deepgram /v1/listen endpoint for transcription and
caption generation. It implements:
- Automatic retry with exponential backoff for transient errors (429, 5xx, timeouts)
- Proper error classification (retriable vs non-retriable)
- A typed TranscriptionResult parsed from the raw JSON response

Usage:
    client = DeepgramClient(api_key)
    result = await client.transcribe(data, "video/mp4", utterances=True)
    print(result.text, result.confidence)
    await client.close()
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.exceptions import CollaboratorUnavailableError, ConfigurationError
from app.utils.logging import get_logger

log = get_logger(__name__)

RETRIABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class _TransientDeepgramError(Exception):
    """Internal marker for retriable failures (429, 5xx, timeouts)."""


@dataclass
class TranscriptionResult:
    """Parsed Deepgram transcription.

    Attributes:
        text: Full transcript of the first channel's best alternative.
        confidence: Alternative confidence in [0, 1].
        language: Detected or requested language code.
        word_count: Number of recognized words.
        duration: Audio duration in seconds as reported by Deepgram.
        utterances: Utterance dicts (start, end, transcript), when requested.
    """

    text: str
    confidence: float
    language: str
    word_count: int
    duration: float = 0.0
    utterances: list[dict[str, Any]] = field(default_factory=list)


def parse_transcription(payload: dict[str, Any], language: str) -> TranscriptionResult:
    """Build a TranscriptionResult from a Deepgram response body.

    Raises:
        CollaboratorUnavailableError: If the response has no transcript alternative.
    """
    try:
        channel = payload["results"]["channels"][0]
        alternative = channel["alternatives"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise CollaboratorUnavailableError("deepgram", "Malformed transcription response") from e

    words = alternative.get("words") or []
    text = alternative.get("transcript") or ""
    return TranscriptionResult(
        text=text,
        confidence=float(alternative.get("confidence") or 0.0),
        language=channel.get("detected_language") or language,
        word_count=len(words) if words else len(text.split()),
        duration=float((payload.get("metadata") or {}).get("duration") or 0.0),
        utterances=list(payload["results"].get("utterances") or []),
    )


class DeepgramClient:
    """Async client for Deepgram prerecorded transcription.

    Example:
        >>> client = DeepgramClient("dg_key")
        >>> result = await client.transcribe(video_bytes, "video/mp4")
        >>> await client.close()
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "nova",
        language: str = "en-US",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.base_url = "https://api.deepgram.com/v1"
        self.client = http_client or httpx.AsyncClient(timeout=300.0)

    def _get_headers(self, content_type: str) -> dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("DEEPGRAM_API_KEY is not configured")
        return {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": content_type,
        }

    @retry(
        retry=retry_if_exception_type(_TransientDeepgramError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        before_sleep=lambda retry_state: log.warning(
            "deepgram_retry",
            attempt=retry_state.attempt_number,
        ),
        reraise=True,
    )
    async def _listen(self, data: bytes, content_type: str, params: dict[str, str]) -> Any:
        try:
            response = await self.client.post(
                f"{self.base_url}/listen",
                params=params,
                headers=self._get_headers(content_type),
                content=data,
            )
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            raise _TransientDeepgramError(type(e).__name__) from e

        if response.status_code in RETRIABLE_STATUS_CODES:
            raise _TransientDeepgramError(f"HTTP {response.status_code}")
        if response.status_code >= 400:
            log.error(
                "deepgram_non_retriable_error",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise CollaboratorUnavailableError(
                "deepgram",
                f"Transcription request rejected ({response.status_code})",
                status_code=response.status_code,
            )
        return response.json()

    async def transcribe(
        self,
        data: bytes,
        content_type: str,
        utterances: bool = False,
    ) -> TranscriptionResult:
        """Transcribe an audio or video file.

        Args:
            data: Raw file bytes.
            content_type: MIME type of the file.
            utterances: Request utterance segmentation (needed for captions).

        Returns:
            Parsed TranscriptionResult.

        Raises:
            ConfigurationError: If no API key is configured.
            CollaboratorUnavailableError: On non-retriable errors or when
                retries are exhausted.
        """
        params = {
            "model": self.model,
            "language": self.language,
            "smart_format": "true",
            "punctuate": "true",
        }
        if utterances:
            params["utterances"] = "true"

        try:
            payload = await self._listen(data, content_type, params)
        except _TransientDeepgramError as e:
            log.error("deepgram_retries_exhausted", error=str(e))
            raise CollaboratorUnavailableError(
                "deepgram", "Transcription service unavailable"
            ) from e

        result = parse_transcription(payload, self.language)
        log.info(
            "deepgram_transcription_complete",
            word_count=result.word_count,
            duration=result.duration,
            utterances=len(result.utterances),
        )
        return result

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
