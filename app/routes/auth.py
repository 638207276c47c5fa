"""Sign-in routes.

Endpoints:
- POST /api/v1/auth/check-user       - Account lookup (rate limited per client)
- POST /api/v1/auth/otp              - Email a one-time sign-in code
- GET  /api/v1/auth/callback/email   - Redeem an emailed code for a session
- POST /api/v1/auth/2fa/verify       - Verify a TOTP or backup code
- POST /api/v1/auth/session          - Exchange a 2FA sign-in ticket for a session
- POST /api/v1/auth/logout           - Revoke the caller's session
- GET  /api/v1/auth/google/url       - Google consent URL
- GET  /api/v1/auth/google/callback  - Google sign-in callback

Sessions are returned as opaque bearer tokens; clients send them back as
"Authorization: Bearer <token>".
"""

import structlog
from fastapi import APIRouter, Cookie, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_public_base_url
from app.database import get_session
from app.routes.dependencies import (
    enforce_lookup_rate_limit,
    get_bearer_token,
    get_credential_service,
    get_google_sign_in_service,
    get_otp_service,
    get_two_factor_service,
)
from app.schemas.auth import (
    EmailRequest,
    GoogleAuthUrlResponse,
    LookupResponse,
    OTPConsumeResponse,
    SessionRequest,
    SessionResponse,
    TwoFactorVerifyRequest,
    TwoFactorVerifyResponse,
)
from app.schemas.base import SuccessResponse
from app.services.credential_service import CredentialService
from app.services.google_sign_in_service import (
    GOOGLE_STATE_COOKIE,
    STATE_MAX_AGE_SECONDS,
    GoogleSignInService,
)
from app.services.otp_service import OTPService
from app.services.two_factor_service import TwoFactorService

log = structlog.get_logger()
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

GOOGLE_COOKIE_PATH = "/api/v1/auth/google"


@router.post(
    "/check-user",
    response_model=LookupResponse,
    dependencies=[Depends(enforce_lookup_rate_limit)],
)
async def check_user(
    body: EmailRequest,
    db: AsyncSession = Depends(get_session),
    credentials: CredentialService = Depends(get_credential_service),
) -> LookupResponse:
    """Report whether an account exists and whether it requires 2FA.

    Returns:
        200 OK: {exists, twoFactorEnabled, userId?}
        429 Too Many Requests: Lookup budget for this client exhausted
    """
    return await credentials.lookup_account(body.email, db)


@router.post("/otp", response_model=SuccessResponse)
async def request_otp(
    body: EmailRequest,
    db: AsyncSession = Depends(get_session),
    otp: OTPService = Depends(get_otp_service),
) -> SuccessResponse:
    """Issue and email a fresh 6-digit sign-in code.

    Returns:
        200 OK: Code sent
        401 Unauthorized: Account requires two-factor sign-in
        502 Bad Gateway: Email delivery failed
    """
    await otp.issue(body.email, db)
    return SuccessResponse(message="Verification code sent")


@router.get("/callback/email", response_model=OTPConsumeResponse)
async def consume_otp(
    email: str = Query(..., max_length=320),
    token: str = Query(..., min_length=1, max_length=16),
    callback_url: str | None = Query(default=None, alias="callbackUrl"),
    db: AsyncSession = Depends(get_session),
    otp: OTPService = Depends(get_otp_service),
) -> OTPConsumeResponse:
    """Redeem an emailed code.

    Returns:
        200 OK: {success, sessionToken, callbackUrl}
        401 Unauthorized: Wrong, used or expired code
    """
    session_token, _ = await otp.consume(email, token, db)
    return OTPConsumeResponse(session_token=session_token, callback_url=callback_url)


@router.post("/2fa/verify", response_model=TwoFactorVerifyResponse)
async def verify_two_factor(
    body: TwoFactorVerifyRequest,
    db: AsyncSession = Depends(get_session),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> TwoFactorVerifyResponse:
    """Verify a TOTP or backup code during sign-in.

    A wrong code is answered with 200 {valid: false}.
    """
    return await two_factor.verify_login(body.email, body.code, body.is_backup_code, db)


@router.post("/session", response_model=SessionResponse)
async def create_session(
    body: SessionRequest,
    db: AsyncSession = Depends(get_session),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> SessionResponse:
    """Final credential sign-in after a successful 2FA verification."""
    session_token, expires_at = await two_factor.exchange_ticket(body.email, body.ticket, db)
    return SessionResponse(session_token=session_token, expires_at=expires_at)


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    token: str = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_session),
    credentials: CredentialService = Depends(get_credential_service),
) -> SuccessResponse:
    await credentials.revoke_session(token, db)
    return SuccessResponse(message="Signed out")


@router.get("/google/url", response_model=GoogleAuthUrlResponse)
async def google_auth_url(
    response: Response,
    google: GoogleSignInService = Depends(get_google_sign_in_service),
) -> GoogleAuthUrlResponse:
    """Return the Google consent URL and bind its state to this browser by cookie."""
    challenge = google.authorization_url()
    response.set_cookie(
        GOOGLE_STATE_COOKIE,
        challenge.nonce,
        max_age=STATE_MAX_AGE_SECONDS,
        path=GOOGLE_COOKIE_PATH,
        httponly=True,
        samesite="lax",
        secure=get_public_base_url().startswith("https://"),
    )
    return GoogleAuthUrlResponse(auth_url=challenge.auth_url)


@router.get("/google/callback", response_model=SessionResponse)
async def google_callback(
    response: Response,
    code: str | None = Query(default=None),
    state: str = Query(default=""),
    error: str | None = Query(default=None),
    nonce: str | None = Cookie(default=None, alias=GOOGLE_STATE_COOKIE),
    db: AsyncSession = Depends(get_session),
    google: GoogleSignInService = Depends(get_google_sign_in_service),
):
    """Complete Google sign-in.

    Returns:
        200 OK: {sessionToken, expiresAt}
        400 Bad Request: Google reported an OAuth error or no code was sent
        401 Unauthorized: Invalid or stale state, unverified email or 2FA required
    """
    if error or not code:
        log.warning("google_callback_error", error=error)
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": error or "Authorization code missing"},
        )

    session_token, expires_at = await google.complete(code, state, nonce, db)
    response.delete_cookie(GOOGLE_STATE_COOKIE, path=GOOGLE_COOKIE_PATH)
    return SessionResponse(session_token=session_token, expires_at=expires_at)
