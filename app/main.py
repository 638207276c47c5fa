"""FastAPI application for Stream Studio.

This is the web service entry point: passwordless sign-in with optional
TOTP two-factor authentication, media upload/transcription/analysis
endpoints and YouTube publishing.

Error bodies share one shape: {"success": false, "error": "<message>"}.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError as FastAPIValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.clients.youtube import YouTubeAPIError
from app.config import get_log_level
from app.exceptions import (
    AuthenticationError,
    CollaboratorUnavailableError,
    ConfigurationError,
    DuplicateUploadError,
    JobExpiredError,
    NotFoundError,
    RateLimitedError,
    RequestValidationError,
    StaleCredentialsError,
)
from app.routes import auth, profile, two_factor, videos, youtube
from app.routes.dependencies import close_clients
from app.utils.encryption import DecryptionError, EncryptionKeyMissing
from app.utils.logging import configure_logging

log = structlog.get_logger()

SERVICE_NAME = "stream-studio"
VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown.

    Startup:
    - Configure structured logging

    Shutdown:
    - Let background transcription jobs settle
    - Close vendor HTTP clients
    """
    configure_logging(get_log_level())
    log.info("application_started", service=SERVICE_NAME, version=VERSION)

    yield  # Application runs here

    await close_clients()
    log.info("application_stopped")


app = FastAPI(
    title="Stream Studio",
    description=(
        "Passwordless sign-in with TOTP two-factor authentication, AI-assisted "
        "video processing and YouTube publishing"
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.include_router(auth.router)
app.include_router(two_factor.router)
app.include_router(profile.router)
app.include_router(videos.router)
app.include_router(youtube.router)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(FastAPIValidationError)
async def handle_schema_validation(request: Request, exc: FastAPIValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    log.info("request_validation_failed", path=request.url.path, errors=len(errors))
    return _error(
        status.HTTP_400_BAD_REQUEST,
        f"{location}: {message}" if location else message,
    )


@app.exception_handler(AuthenticationError)
async def handle_authentication(request: Request, exc: AuthenticationError) -> JSONResponse:
    return _error(status.HTTP_401_UNAUTHORIZED, str(exc))


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(DuplicateUploadError)
async def handle_duplicate_upload(request: Request, exc: DuplicateUploadError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, str(exc), existingUrl=exc.existing_url)


@app.exception_handler(JobExpiredError)
async def handle_job_expired(request: Request, exc: JobExpiredError) -> JSONResponse:
    return _error(status.HTTP_410_GONE, str(exc))


@app.exception_handler(RateLimitedError)
async def handle_rate_limited(request: Request, exc: RateLimitedError) -> JSONResponse:
    response = _error(status.HTTP_429_TOO_MANY_REQUESTS, str(exc))
    if exc.retry_after is not None:
        response.headers["Retry-After"] = str(max(1, round(exc.retry_after)))
    return response


@app.exception_handler(StaleCredentialsError)
async def handle_stale_credentials(request: Request, exc: StaleCredentialsError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc), reconnect=True)


@app.exception_handler(CollaboratorUnavailableError)
async def handle_collaborator(request: Request, exc: CollaboratorUnavailableError) -> JSONResponse:
    log.error(
        "collaborator_unavailable",
        path=request.url.path,
        collaborator=exc.collaborator,
        upstream_status=exc.status_code,
    )
    message = exc.user_message if isinstance(exc, YouTubeAPIError) else str(exc)
    return _error(status.HTTP_502_BAD_GATEWAY, message)


@app.exception_handler(ConfigurationError)
async def handle_configuration(request: Request, exc: ConfigurationError) -> JSONResponse:
    log.error("configuration_error", path=request.url.path, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Service is not configured")


@app.exception_handler(EncryptionKeyMissing)
async def handle_encryption_key(request: Request, exc: EncryptionKeyMissing) -> JSONResponse:
    log.error("encryption_key_missing", path=request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Service is not configured")


@app.exception_handler(DecryptionError)
async def handle_decryption(request: Request, exc: DecryptionError) -> JSONResponse:
    log.error("credential_decryption_failed", path=request.url.path, user_id=exc.user_id)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Stored credentials could not be read")


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> JSONResponse:
    """Health check endpoint for deployment validation.

    Returns:
        JSONResponse: Status and basic system information
    """
    return JSONResponse(
        content={
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": VERSION,
        }
    )


@app.get("/", status_code=status.HTTP_200_OK)
async def root() -> JSONResponse:
    """Root endpoint with API information.

    Returns:
        JSONResponse: API metadata
    """
    return JSONResponse(
        content={
            "service": "Stream Studio",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }
    )


if __name__ == "__main__":
    import uvicorn

    # Binding to 0.0.0.0 is intentional for container deployments
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",  # noqa: S104
        port=8000,
        reload=True,
    )
