"""Account request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from s2s_api.schemas.base import BaseSchema, EnvelopeSchema


class SignupRequest(BaseSchema):
    # Presence and format are checked by the route so it can answer with
    # INVALID_EMAIL / WEAK_PASSWORD instead of a generic validation error.
    email: str | None = None
    password: str | None = None
    full_name: str | None = Field(default=None, max_length=255)
    organization: str | None = Field(default=None, max_length=255)


class LoginRequest(BaseSchema):
    email: str | None = None
    password: str | None = None


class ForgotPasswordRequest(BaseSchema):
    email: str | None = None
    base_url: str | None = None


class ResetPasswordRequest(BaseSchema):
    token: str | None = None
    password: str | None = None


class ResendVerificationRequest(ForgotPasswordRequest):
    pass


class ProfileUpdateRequest(BaseSchema):
    full_name: str | None = Field(default=None, max_length=255)
    organization: str | None = Field(default=None, max_length=255)


class UserSummary(BaseSchema):
    id: str
    email: str
    full_name: str | None = None


class LoginUser(UserSummary):
    organization: str | None = None
    roles: list[str] = []


class UserResponse(LoginUser):
    is_active: bool
    email_verified: bool = False
    created_at: datetime


class ProfileResponseBody(UserResponse):
    last_login_at: datetime | None = None
    active_api_keys: int = 0


class SignupResponse(EnvelopeSchema):
    message: str
    user: UserSummary


class LoginResponse(EnvelopeSchema):
    message: str
    token: str
    token_type: str = "Bearer"
    expires_in: int
    user: LoginUser


class VerifyResponse(EnvelopeSchema):
    user: UserResponse


class ProfileResponse(EnvelopeSchema):
    profile: ProfileResponseBody
