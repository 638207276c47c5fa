"""Stream Studio service.

This package contains the FastAPI service for passwordless sign-in with
optional TOTP two-factor authentication, the media processing endpoints
(upload URLs, transcription, captions, AI analysis, YouTube publishing),
and the client package in app.client that drives the sign-in wizard and
the upload pipeline against that HTTP surface.
"""

from app.database import async_session_factory, get_session
from app.models import Base, User, VideoFile

__all__ = [
    "Base",
    "User",
    "VideoFile",
    "async_session_factory",
    "get_session",
]
