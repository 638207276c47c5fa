"""Tests for custom exception classes.

Tests cover:
- Attributes carried by collaborator, rate-limit and duplicate errors
- InvalidStateTransitionError message formatting
- YouTubeAPIError is handled as a collaborator failure
"""

import pytest

from app.clients.youtube import YouTubeAPIError
from app.exceptions import (
    CollaboratorUnavailableError,
    ConfigurationError,
    DuplicateUploadError,
    InvalidStateTransitionError,
    RateLimitedError,
)
from app.models import VideoTaskStatus


class TestConfigurationError:
    def test_configuration_error_message_is_preserved(self) -> None:
        """[P2] ConfigurationError preserves its message."""
        with pytest.raises(ConfigurationError) as exc_info:
            raise ConfigurationError("DEEPGRAM_API_KEY is not configured")

        assert str(exc_info.value) == "DEEPGRAM_API_KEY is not configured"


class TestCollaboratorUnavailableError:
    def test_message_names_collaborator(self) -> None:
        error = CollaboratorUnavailableError("deepgram", "Timed out", status_code=504)

        assert error.collaborator == "deepgram"
        assert error.status_code == 504
        assert str(error) == "deepgram: Timed out"

    def test_youtube_api_error_is_collaborator_error(self) -> None:
        error = YouTubeAPIError("YouTube API quota exceeded.", "quotaExceeded", 403)

        assert isinstance(error, CollaboratorUnavailableError)
        assert error.user_message == "YouTube API quota exceeded."
        assert error.reason == "quotaExceeded"


class TestRateLimitedError:
    def test_default_message_and_retry_after(self) -> None:
        error = RateLimitedError(retry_after=6.0)

        assert str(error) == "Too many requests"
        assert error.retry_after == 6.0


class TestDuplicateUploadError:
    def test_carries_existing_url(self) -> None:
        error = DuplicateUploadError("Already uploaded", existing_url="https://youtu.be/x")

        assert error.existing_url == "https://youtu.be/x"


class TestInvalidStateTransitionError:
    def test_str_includes_from_and_to(self) -> None:
        error = InvalidStateTransitionError(
            "Invalid transition",
            from_status=VideoTaskStatus.TRANSCODING,
            to_status=VideoTaskStatus.CAPTIONING,
        )

        assert "from=TRANSCODING" in str(error)
        assert "to=CAPTIONING" in str(error)
