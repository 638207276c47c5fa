"""Pydantic schemas for user profile endpoints."""

from uuid import UUID

from pydantic import Field

from app.schemas.base import CamelModel


class ProfileResponse(CamelModel):
    id: UUID
    email: str
    name: str | None = None
    image: str | None = None
    phone_number: str | None = None
    role: str = "user"
    two_factor_enabled: bool = False


class ProfileUpdate(CamelModel):
    """Partial profile update. Omitted fields are left unchanged."""

    name: str | None = Field(default=None, max_length=255)
    phone_number: str | None = Field(default=None, max_length=32, pattern=r"^\+?[0-9 ()-]*$")
    image: str | None = Field(default=None, max_length=2048)
