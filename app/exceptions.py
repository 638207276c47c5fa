"""Shared exceptions for the application.

This module contains exception classes used across services, routes and the
client package so that failures can be classified without cross-domain
imports. The HTTP layer maps each class to a status code in app.main.
"""

from typing import Any


class ConfigurationError(Exception):
    """Raised when required configuration is missing.

    This error indicates a configuration problem that prevents a collaborator
    from being used (e.g., DEEPGRAM_API_KEY not set when transcription is
    requested, or S3_BUCKET_NAME missing when issuing an upload URL).
    """

    pass


class RequestValidationError(Exception):
    """Raised when a request is malformed or missing required fields.

    Rejected before any collaborator is called.
    """

    pass


class AuthenticationError(Exception):
    """Raised for a wrong OTP, TOTP or backup code, or an expired challenge."""

    pass


class NotFoundError(Exception):
    """Raised when a resource does not exist or is not owned by the principal."""

    pass


class RateLimitedError(Exception):
    """Raised when a caller exceeded its request budget.

    Attributes:
        retry_after: Suggested wait in seconds, if known.
    """

    def __init__(self, message: str = "Too many requests", retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class CollaboratorUnavailableError(Exception):
    """Raised when a vendor API (Deepgram, Gemini, YouTube, S3) fails or is unreachable.

    Attributes:
        collaborator: Short collaborator name (e.g., "deepgram").
        status_code: Upstream HTTP status, if any.
    """

    def __init__(self, collaborator: str, message: str, status_code: int | None = None):
        self.collaborator = collaborator
        self.status_code = status_code
        super().__init__(f"{collaborator}: {message}")


class StaleCredentialsError(Exception):
    """Raised when a linked platform account token is expired or cannot be decrypted.

    Never retried with the stale token; the user must re-link the account.
    """

    pass


class DuplicateUploadError(Exception):
    """Raised when a video was already published to the linked channel.

    Attributes:
        existing_url: URL of the previously published video.
    """

    def __init__(self, message: str, existing_url: str | None = None):
        self.existing_url = existing_url
        super().__init__(message)


class InvalidStateTransitionError(Exception):
    """Raised when attempting a transition a state machine does not allow.

    Used by the VideoTask status ordering and by the client-side sign-in
    wizard. Only transitions listed in the owning transition table are allowed.

    Attributes:
        from_status: The current state before the attempted transition.
        to_status: The state that was attempted but is not valid.

    Example:
        >>> controller.step = AuthStep.EMAIL
        >>> controller._transition(AuthStep.SUCCESS)
        InvalidStateTransitionError: Invalid transition: email -> success
    """

    def __init__(self, message: str, from_status: Any, to_status: Any):
        """Initialize InvalidStateTransitionError with transition details.

        Args:
            message: Human-readable error message.
            from_status: Current state before transition attempt.
            to_status: Target state that was attempted.
        """
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)

    def __str__(self) -> str:
        base_message = super().__str__()
        return (
            f"{base_message} (from={_state_value(self.from_status)}, "
            f"to={_state_value(self.to_status)})"
        )


def _state_value(state: Any) -> Any:
    return getattr(state, "value", state)


class JobExpiredError(Exception):
    """Raised when a background job record is older than its retention window."""

    pass
