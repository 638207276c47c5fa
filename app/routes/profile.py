"""Profile routes (authenticated).

Endpoints:
- GET   /api/v1/profile  - Current user's profile
- PATCH /api/v1/profile  - Partial profile update
"""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models import User
from app.routes.dependencies import get_credential_service, get_current_principal
from app.schemas.profile import ProfileResponse, ProfileUpdate
from app.services.credential_service import CredentialService, Principal

log = structlog.get_logger()
router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


def _to_profile(user: User) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        image=user.image,
        phone_number=user.phone_number,
        role=user.role,
        two_factor_enabled=user.has_active_two_factor,
    )


@router.get("", response_model=ProfileResponse)
async def get_profile(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    credentials: CredentialService = Depends(get_credential_service),
) -> ProfileResponse:
    return _to_profile(await credentials.get_user(principal.user_id, db))


@router.patch("", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
    credentials: CredentialService = Depends(get_credential_service),
) -> ProfileResponse:
    return _to_profile(await credentials.update_profile(principal, body, db))
