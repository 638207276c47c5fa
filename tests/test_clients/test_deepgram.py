"""Tests for DeepgramClient.

Test Coverage:
- Request shape (auth header, model/language/utterance params)
- Response parsing, including the word-count fallback
- Retry on transient errors, no retry on client errors
- Missing API key
"""

import httpx
import pytest
from tenacity import wait_none

from app.clients.deepgram import DeepgramClient, parse_transcription
from app.exceptions import CollaboratorUnavailableError, ConfigurationError

LISTEN_RESPONSE = {
    "metadata": {"duration": 4.2},
    "results": {
        "channels": [
            {
                "detected_language": "en",
                "alternatives": [
                    {
                        "transcript": "Hello world again",
                        "confidence": 0.93,
                        "words": [{"word": "hello"}, {"word": "world"}, {"word": "again"}],
                    }
                ],
            }
        ],
        "utterances": [{"start": 0.0, "end": 1.0, "transcript": "Hello world again"}],
    },
}


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch):
    """Skip exponential backoff between retries."""
    monkeypatch.setattr(DeepgramClient._listen.retry, "wait", wait_none())


def make_client(handler, api_key: str | None = "dg-key") -> DeepgramClient:
    return DeepgramClient(
        api_key, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


class TestParseTranscription:
    def test_parses_first_alternative(self):
        result = parse_transcription(LISTEN_RESPONSE, "en-US")

        assert result.text == "Hello world again"
        assert result.confidence == 0.93
        assert result.language == "en"
        assert result.word_count == 3
        assert result.duration == 4.2
        assert len(result.utterances) == 1

    def test_word_count_falls_back_to_text(self):
        payload = {"results": {"channels": [{"alternatives": [{"transcript": "one two"}]}]}}

        result = parse_transcription(payload, "en-US")

        assert result.word_count == 2
        assert result.language == "en-US"
        assert result.utterances == []

    def test_malformed_payload_raises(self):
        with pytest.raises(CollaboratorUnavailableError, match="Malformed"):
            parse_transcription({"results": {"channels": []}}, "en-US")


class TestTranscribe:
    async def test_p0_sends_auth_and_params(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=LISTEN_RESPONSE)

        client = make_client(handler)
        result = await client.transcribe(b"audio", "video/mp4", utterances=True)
        await client.close()

        request = seen[0]
        assert request.headers["Authorization"] == "Token dg-key"
        assert request.headers["Content-Type"] == "video/mp4"
        assert request.url.params["utterances"] == "true"
        assert request.url.params["smart_format"] == "true"
        assert request.content == b"audio"
        assert result.word_count == 3

    async def test_p0_transient_errors_retried(self):
        responses = iter(
            [httpx.Response(503), httpx.Response(429), httpx.Response(200, json=LISTEN_RESPONSE)]
        )
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return next(responses)

        client = make_client(handler)
        result = await client.transcribe(b"audio", "audio/mpeg")

        assert len(calls) == 3
        assert result.text == "Hello world again"

    async def test_p0_retries_exhausted(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        client = make_client(handler)
        with pytest.raises(CollaboratorUnavailableError, match="unavailable"):
            await client.transcribe(b"audio", "audio/mpeg")

        assert len(calls) == 3

    async def test_p0_client_error_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad audio")

        client = make_client(handler)
        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            await client.transcribe(b"audio", "audio/mpeg")

        assert exc_info.value.status_code == 400
        assert len(calls) == 1

    async def test_p1_timeouts_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=LISTEN_RESPONSE)

        client = make_client(handler)
        await client.transcribe(b"audio", "audio/mpeg")

        assert len(calls) == 2

    async def test_p0_missing_api_key(self):
        client = make_client(lambda request: httpx.Response(200, json=LISTEN_RESPONSE), None)

        with pytest.raises(ConfigurationError, match="DEEPGRAM_API_KEY"):
            await client.transcribe(b"audio", "audio/mpeg")
