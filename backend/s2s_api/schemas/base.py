"""
Base Schemas
============

Common schema patterns shared by every endpoint.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base Pydantic schema with common configuration.

    Strings are left untouched; passwords and keys must round-trip exactly.
    """

    model_config = ConfigDict(
        # Allow ORM mode for SQLAlchemy models
        from_attributes=True,
        validate_default=True,
        use_enum_values=True,
    )


class EnvelopeSchema(BaseSchema):
    """Every response body carries ``success``."""

    success: bool = True


class MessageResponse(EnvelopeSchema):
    message: str
