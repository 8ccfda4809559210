"""User account service."""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from s2s_api.core.exceptions import ConflictError, ValidationError
from s2s_api.core.security import PasswordHasher
from s2s_api.models.api_key import ApiKey
from s2s_api.models.base import ensure_utc, utc_now
from s2s_api.models.user import DEFAULT_ROLE, User, UserRole


def normalize_email(email: str) -> str:
    return email.strip().lower()


def token_digest(token: str) -> str:
    """Account tokens are looked up by their SHA-256 digest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserService:
    def __init__(self, session: AsyncSession, hasher: PasswordHasher):
        self.session = session
        self.hasher = hasher

    async def get_by_email(self, email: str) -> Optional[User]:
        res = await self.session.execute(select(User).where(User.email == normalize_email(email)))
        return res.scalar_one_or_none()

    async def get_by_id(self, user_id: str) -> Optional[User]:
        res = await self.session.execute(select(User).where(User.id == user_id))
        return res.scalar_one_or_none()

    async def create_user(
        self,
        *,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        organization: Optional[str] = None,
    ) -> User:
        email = normalize_email(email)
        if await self.get_by_email(email) is not None:
            raise ConflictError("EMAIL_EXISTS", "An account with this email already exists")

        user = User(
            email=email,
            password_hash=await self.hasher.hash(password),
            full_name=full_name,
            organization=organization,
            is_active=True,
            roles=[UserRole(role=DEFAULT_ROLE)],
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same address
            await self.session.rollback()
            raise ConflictError("EMAIL_EXISTS", "An account with this email already exists") from None
        return user

    async def check_password(self, user: User, password: str) -> bool:
        return await self.hasher.verify(password, user.password_hash)

    async def record_login(self, user: User) -> None:
        user.last_login_at = utc_now()
        await self.session.flush()

    async def update_profile(self, user: User, changes: dict) -> User:
        for field in ("full_name", "organization"):
            if field in changes:
                setattr(user, field, changes[field])
        await self.session.flush()
        return user

    async def count_active_keys(self, user_id: str) -> int:
        res = await self.session.execute(
            select(func.count())
            .select_from(ApiKey)
            .where(ApiKey.user_id == user_id, ApiKey.is_active.is_(True))
        )
        return int(res.scalar_one())

    async def issue_verification_token(self, user: User, lifetime: timedelta) -> str:
        """Replace any pending verification token; returns the plaintext."""
        token = secrets.token_urlsafe(32)
        user.verification_token = token_digest(token)
        user.verification_token_expires = utc_now() + lifetime
        await self.session.flush()
        return token

    async def verify_email(self, token: str) -> User:
        res = await self.session.execute(select(User).where(User.verification_token == token_digest(token)))
        user = res.scalar_one_or_none()
        if user is None:
            raise ValidationError("INVALID_TOKEN", "Invalid or expired verification link")
        if ensure_utc(user.verification_token_expires) < utc_now():
            raise ValidationError("TOKEN_EXPIRED", "Verification link has expired. Please request a new one.")

        user.email_verified = True
        user.verification_token = None
        user.verification_token_expires = None
        await self.session.flush()
        return user

    async def issue_reset_token(self, user: User, lifetime: timedelta) -> str:
        token = secrets.token_urlsafe(32)
        user.reset_token = token_digest(token)
        user.reset_token_expires = utc_now() + lifetime
        await self.session.flush()
        return token

    async def reset_password(self, token: str, new_password: str) -> User:
        """Set a new password and burn the reset token so it works once."""
        res = await self.session.execute(select(User).where(User.reset_token == token_digest(token)))
        user = res.scalar_one_or_none()
        if user is None:
            raise ValidationError("INVALID_TOKEN", "Invalid or expired reset link")
        if ensure_utc(user.reset_token_expires) < utc_now():
            raise ValidationError("TOKEN_EXPIRED", "Reset link has expired. Please request a new one.")

        user.password_hash = await self.hasher.hash(new_password)
        user.reset_token = None
        user.reset_token_expires = None
        await self.session.flush()
        return user
