"""Shared Pydantic base model for the HTTP API.

The wire format uses camelCase keys (e.g. "twoFactorEnabled"); Python code
uses snake_case attributes. populate_by_name lets both spellings validate.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SuccessResponse(CamelModel):
    """Generic acknowledgement body."""

    success: bool = True
    message: str | None = None
