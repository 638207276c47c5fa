"""Two-factor setup routes (authenticated).

Endpoints:
- POST /api/v1/2fa/setup         - Fresh secret, QR code, manual key, backup codes
- POST /api/v1/2fa/verify-setup  - Check a code against the unconfirmed secret
- POST /api/v1/2fa/enable        - Persist secret and backup codes
- POST /api/v1/2fa/disable       - Clear secret and backup codes

Setup and verify-setup never persist anything; only enable does.
"""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.exceptions import RequestValidationError
from app.routes.dependencies import get_current_principal, get_two_factor_service
from app.schemas.auth import (
    TwoFactorEnableRequest,
    TwoFactorSetupResponse,
    TwoFactorSetupVerifyRequest,
)
from app.schemas.base import SuccessResponse
from app.services.credential_service import Principal
from app.services.two_factor_service import TwoFactorService

log = structlog.get_logger()
router = APIRouter(prefix="/api/v1/2fa", tags=["two-factor"])


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def setup(
    principal: Principal = Depends(get_current_principal),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> TwoFactorSetupResponse:
    return two_factor.generate_setup(principal)


@router.post("/verify-setup", response_model=SuccessResponse)
async def verify_setup(
    body: TwoFactorSetupVerifyRequest,
    principal: Principal = Depends(get_current_principal),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> SuccessResponse:
    """Returns 200 when the code matches the unconfirmed secret, 400 otherwise."""
    if not two_factor.verify_setup(body.secret, body.token):
        log.info("two_factor_setup_code_rejected", user_id=str(principal.user_id))
        raise RequestValidationError("Invalid verification code")
    return SuccessResponse(message="Code verified")


@router.post("/enable", response_model=SuccessResponse)
async def enable(
    body: TwoFactorEnableRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> SuccessResponse:
    await two_factor.enable(principal, body.secret, body.backup_codes, db)
    return SuccessResponse(message="Two-factor authentication enabled")


@router.post("/disable", response_model=SuccessResponse)
async def disable(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> SuccessResponse:
    await two_factor.disable(principal, db)
    return SuccessResponse(message="Two-factor authentication disabled")
