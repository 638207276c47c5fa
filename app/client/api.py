"""Typed HTTP client for the Stream Studio API.

Every response is validated into the same pydantic schemas the service
emits, and every failure is classified into the shared exception
hierarchy:

    400 -> RequestValidationError (StaleCredentialsError when the body asks to reconnect)
    401 -> AuthenticationError
    404 -> NotFoundError
    409 -> DuplicateUploadError (carries existingUrl)
    410 -> NotFoundError
    429 -> RateLimitedError
    5xx / transport errors -> CollaboratorUnavailableError
    2xx with a body that does not validate -> CollaboratorUnavailableError

The session token is explicit state on the client instance, never ambient.

Usage:
    async with StudioApiClient("http://localhost:8000") as api:
        lookup = await api.lookup_account("user@example.com")
"""

import base64
from typing import Any, TypeVar
from uuid import UUID

import httpx
from pydantic import BaseModel, ValidationError

from app.exceptions import (
    AuthenticationError,
    CollaboratorUnavailableError,
    DuplicateUploadError,
    NotFoundError,
    RateLimitedError,
    RequestValidationError,
    StaleCredentialsError,
)
from app.schemas.auth import (
    LookupResponse,
    OTPConsumeResponse,
    SessionResponse,
    TwoFactorSetupResponse,
    TwoFactorVerifyResponse,
)
from app.schemas.video import (
    AnalyzeVideoResponse,
    TranscribeResponse,
    UpdateVideoResponse,
    UploadResponse,
)
from app.schemas.youtube import YouTubeUploadRequest, YouTubeUploadResponse
from app.utils.logging import get_logger

log = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

API_ERRORS = (
    RequestValidationError,
    AuthenticationError,
    NotFoundError,
    RateLimitedError,
    CollaboratorUnavailableError,
    StaleCredentialsError,
    DuplicateUploadError,
)


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase, {}
    if not isinstance(body, dict):
        return str(body)[:200], {}
    return str(body.get("error") or body.get("detail") or response.reason_phrase), body


def raise_for_api_error(response: httpx.Response, collaborator: str = "api") -> None:
    """Translate a failed API response into the shared exception hierarchy."""
    if response.is_success:
        return
    message, body = _error_message(response)
    code = response.status_code

    if code == 400:
        if body.get("reconnect"):
            raise StaleCredentialsError(message)
        raise RequestValidationError(message)
    if code == 401:
        raise AuthenticationError(message)
    if code in (404, 410):
        raise NotFoundError(message)
    if code == 409:
        raise DuplicateUploadError(message, existing_url=body.get("existingUrl"))
    if code == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitedError(
            message, retry_after=float(retry_after) if retry_after else None
        )
    raise CollaboratorUnavailableError(collaborator, message, status_code=code)


def parse_response(
    model: type[ModelT], response: httpx.Response, collaborator: str = "api"
) -> ModelT:
    """Validate a successful response body, or report the collaborator as unavailable."""
    try:
        return model.model_validate(response.json())
    except (ValidationError, ValueError) as e:
        log.warning("api_response_invalid", model=model.__name__, error=type(e).__name__)
        raise CollaboratorUnavailableError(
            collaborator, "Unexpected response from server", status_code=response.status_code
        ) from e


class StudioApiClient:
    """Async client for the service's HTTP surface.

    Attributes:
        base_url: Service root, e.g. "http://localhost:8000".
        session_token: Bearer token sent on authenticated calls.
    """

    def __init__(
        self,
        base_url: str,
        session_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "StudioApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        if not self.session_token:
            return {}
        return {"Authorization": f"Bearer {self.session_token}"}

    async def _request(
        self,
        method: str,
        path: str,
        collaborator: str = "api",
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                **kwargs,
            )
        except httpx.HTTPError as e:
            log.warning("api_transport_error", path=path, error=type(e).__name__)
            raise CollaboratorUnavailableError(collaborator, "Network error") from e
        raise_for_api_error(response, collaborator)
        return response

    # Sign-in

    async def lookup_account(self, email: str) -> LookupResponse:
        response = await self._request("POST", "/api/v1/auth/check-user", json={"email": email})
        return parse_response(LookupResponse, response)

    async def request_otp(self, email: str) -> None:
        await self._request("POST", "/api/v1/auth/otp", json={"email": email})

    async def consume_otp(
        self, email: str, code: str, callback_url: str | None = None
    ) -> OTPConsumeResponse:
        params = {"email": email, "token": code}
        if callback_url:
            params["callbackUrl"] = callback_url
        response = await self._request("GET", "/api/v1/auth/callback/email", params=params)
        result = parse_response(OTPConsumeResponse, response)
        self.session_token = result.session_token
        return result

    async def verify_two_factor(
        self, email: str, code: str, is_backup_code: bool = False
    ) -> TwoFactorVerifyResponse:
        response = await self._request(
            "POST",
            "/api/v1/auth/2fa/verify",
            json={"email": email, "code": code, "isBackupCode": is_backup_code},
        )
        return parse_response(TwoFactorVerifyResponse, response)

    async def create_session(self, email: str, ticket: str) -> SessionResponse:
        response = await self._request(
            "POST", "/api/v1/auth/session", json={"email": email, "ticket": ticket}
        )
        result = parse_response(SessionResponse, response)
        self.session_token = result.session_token
        return result

    # Two-factor setup

    async def setup_two_factor(self) -> TwoFactorSetupResponse:
        response = await self._request("POST", "/api/v1/2fa/setup")
        return parse_response(TwoFactorSetupResponse, response)

    async def verify_two_factor_setup(self, secret: str, token: str) -> None:
        await self._request(
            "POST", "/api/v1/2fa/verify-setup", json={"secret": secret, "token": token}
        )

    async def enable_two_factor(self, secret: str, backup_codes: list[str]) -> None:
        await self._request(
            "POST",
            "/api/v1/2fa/enable",
            json={"secret": secret, "backupCodes": backup_codes},
        )

    async def disable_two_factor(self) -> None:
        await self._request("POST", "/api/v1/2fa/disable")

    # Media pipeline

    async def request_upload(
        self,
        file_name: str,
        file_type: str,
        upload_type: str = "video",
        video_id: UUID | None = None,
    ) -> UploadResponse:
        body: dict[str, Any] = {
            "fileName": file_name,
            "fileType": file_type,
            "uploadType": upload_type,
        }
        if video_id is not None:
            body["videoId"] = str(video_id)
        response = await self._request("POST", "/api/v1/upload", collaborator="storage", json=body)
        return parse_response(UploadResponse, response, "storage")

    async def put_bytes(self, upload_url: str, data: bytes, content_type: str) -> None:
        """PUT raw bytes to a pre-signed storage URL (no session header)."""
        try:
            response = await self.client.put(
                upload_url, content=data, headers={"Content-Type": content_type}
            )
        except httpx.HTTPError as e:
            raise CollaboratorUnavailableError("storage", "Upload interrupted") from e
        if not response.is_success:
            raise CollaboratorUnavailableError(
                "storage",
                f"Upload failed with status {response.status_code}",
                status_code=response.status_code,
            )

    def _media_form(self, video_id: UUID | None, **fields: str) -> dict[str, str]:
        data = {key: value for key, value in fields.items() if value is not None}
        if video_id is not None:
            data["videoId"] = str(video_id)
        return data

    async def transcribe(
        self,
        file_name: str,
        data: bytes,
        content_type: str,
        video_id: UUID | None = None,
    ) -> TranscribeResponse:
        response = await self._request(
            "POST",
            "/api/v1/transcribe",
            collaborator="transcription",
            files={"file": (file_name, data, content_type)},
            data=self._media_form(video_id),
        )
        return parse_response(TranscribeResponse, response, "transcription")

    async def captions(
        self,
        file_name: str,
        data: bytes,
        content_type: str,
        caption_format: str,
        video_id: UUID | None = None,
    ) -> str:
        response = await self._request(
            "POST",
            "/api/v1/captions",
            collaborator="captions",
            files={"file": (file_name, data, content_type)},
            data=self._media_form(video_id, format=caption_format),
        )
        if not response.text.strip():
            raise CollaboratorUnavailableError(
                "captions", f"Empty {caption_format} captions", status_code=response.status_code
            )
        return response.text

    async def analyze_video(
        self,
        video_id: UUID,
        frames: list[tuple[bytes, float]],
        transcript_text: str | None = None,
    ) -> AnalyzeVideoResponse:
        """Submit JPEG frames (bytes, timestamp) for analysis."""
        files = [
            ("screenshots", (f"frame_{index + 1}.jpg", jpeg, "image/jpeg"))
            for index, (jpeg, _) in enumerate(frames)
        ]
        form: dict[str, Any] = {
            "videoId": str(video_id),
            "timestamps": [str(timestamp) for _, timestamp in frames],
        }
        if transcript_text:
            form["transcriptText"] = transcript_text
        response = await self._request(
            "POST", "/api/v1/analyze-video", collaborator="analysis", files=files, data=form
        )
        return parse_response(AnalyzeVideoResponse, response, "analysis")

    async def update_video(
        self,
        video_id: UUID,
        title: str,
        thumbnail: bytes | str | None = None,
    ) -> UpdateVideoResponse:
        body: dict[str, Any] = {"videoId": str(video_id), "title": title}
        if thumbnail is not None:
            body["thumbnailKey"] = (
                base64.b64encode(thumbnail).decode() if isinstance(thumbnail, bytes) else thumbnail
            )
        response = await self._request("POST", "/api/v1/update-video", json=body)
        return parse_response(UpdateVideoResponse, response)

    async def publish(self, request: YouTubeUploadRequest) -> YouTubeUploadResponse:
        """Publish to YouTube. A 400 here always means the link must be renewed."""
        try:
            response = await self._request(
                "POST",
                "/api/v1/youtube/upload",
                collaborator="youtube",
                json=request.model_dump(by_alias=True, mode="json"),
            )
        except RequestValidationError as e:
            raise StaleCredentialsError(str(e)) from e
        return parse_response(YouTubeUploadResponse, response, "youtube")

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
