"""API key service.

Creates, validates and manages user-owned API keys. Every query that reads
or mutates a key filters on the owning user.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from s2s_api.core.config import Settings
from s2s_api.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from s2s_api.core.security import PasswordHasher
from s2s_api.models.api_key import KEY_PREFIX_LENGTH, ApiKey, ApiKeyUsage
from s2s_api.models.base import ensure_utc, utc_now
from s2s_api.models.user import User


logger = logging.getLogger(__name__)

KEY_ALPHABET = string.ascii_letters + string.digits
UPDATABLE_FIELDS = ("name", "description", "is_active", "rate_limit_per_hour")


@dataclass(frozen=True)
class ApiKeyIdentity:
    """Programmatic identity resolved from an ``X-API-Key`` header."""

    key_id: str
    user_id: str
    email: str
    name: str
    rate_limit_per_hour: int
    rate_limit_per_day: int
    permissions: dict = field(default_factory=dict)

    @property
    def databases(self) -> list[str]:
        return list(self.permissions.get("databases", []))


class ApiKeyService:
    PREFIX_LEN = KEY_PREFIX_LENGTH
    MAX_GENERATION_ATTEMPTS = 5

    def __init__(self, settings: Settings, hasher: PasswordHasher):
        self.settings = settings
        self.hasher = hasher

    def generate_key(self) -> str:
        body = "".join(secrets.choice(KEY_ALPHABET) for _ in range(self.settings.API_KEY_LENGTH))
        return f"{self.settings.API_KEY_PREFIX}{body}"

    def default_permissions(self) -> dict:
        return {
            "databases": list(self.settings.API_KEY_DEFAULT_DATABASES),
            "operations": ["read"],
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def count_keys(self, session: AsyncSession, user_id: str) -> int:
        res = await session.execute(
            select(func.count()).select_from(ApiKey).where(ApiKey.user_id == user_id)
        )
        return int(res.scalar_one())

    async def _prefix_in_use(self, session: AsyncSession, prefix: str) -> bool:
        res = await session.execute(select(ApiKey.id).where(ApiKey.key_prefix == prefix))
        return res.first() is not None

    async def create_api_key(
        self,
        *,
        session: AsyncSession,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        rate_limit_per_hour: Optional[int] = None,
        expires_in_days: Optional[int] = None,
    ) -> tuple[ApiKey, str]:
        """
        Create a key and return it with its plaintext.

        The plaintext is not stored anywhere; this return value is the only
        place it ever exists.
        """
        # Serialize creates per owner so the count below cannot go stale
        await session.execute(select(User.id).where(User.id == user_id).with_for_update())

        max_keys = self.settings.API_KEY_MAX_PER_USER
        if await self.count_keys(session, user_id) >= max_keys:
            raise ValidationError(
                "KEY_LIMIT_REACHED",
                f"Maximum of {max_keys} API keys allowed per user",
            )

        for _ in range(self.MAX_GENERATION_ATTEMPTS):
            raw = self.generate_key()
            prefix = raw[: self.PREFIX_LEN]
            if not await self._prefix_in_use(session, prefix):
                break
            logger.warning(f"API key prefix collision on {prefix}, regenerating")
        else:
            raise InternalError("CREATE_KEY_ERROR", "Failed to create API key")

        expires_at = None
        if expires_in_days and expires_in_days > 0:
            expires_at = utc_now() + timedelta(days=expires_in_days)

        api_key = ApiKey(
            user_id=user_id,
            key_hash=await self.hasher.hash(raw),
            key_prefix=prefix,
            name=name,
            description=description,
            permissions=self.default_permissions(),
            rate_limit_per_hour=rate_limit_per_hour or self.settings.RATE_LIMIT_AUTHENTICATED_PER_HOUR,
            rate_limit_per_day=self.settings.RATE_LIMIT_AUTHENTICATED_PER_DAY,
            is_active=True,
            total_requests=0,
            expires_at=expires_at,
        )
        session.add(api_key)
        await session.flush()
        return api_key, raw

    async def list_keys(self, session: AsyncSession, user_id: str) -> list[ApiKey]:
        res = await session.execute(
            select(ApiKey)
            .where(ApiKey.user_id == user_id)
            .order_by(ApiKey.created_at.desc())
        )
        return list(res.scalars().all())

    async def get_key(self, session: AsyncSession, user_id: str, key_id: str) -> ApiKey:
        res = await session.execute(
            select(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == user_id)
        )
        api_key = res.scalar_one_or_none()
        if api_key is None:
            raise NotFoundError("KEY_NOT_FOUND", "API key not found")
        return api_key

    async def update_key(
        self,
        session: AsyncSession,
        user_id: str,
        key_id: str,
        changes: dict,
    ) -> tuple[ApiKey, dict]:
        updates = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if not updates:
            raise ValidationError("NO_UPDATES", "No valid fields to update")
        if "name" in updates and not (updates["name"] or "").strip():
            raise ValidationError("VALIDATION_ERROR", "API key name cannot be empty")
        if "name" in updates:
            updates["name"] = updates["name"].strip()
        for required in ("is_active", "rate_limit_per_hour"):
            if required in updates and updates[required] is None:
                raise ValidationError("VALIDATION_ERROR", f"{required} cannot be null")

        api_key = await self.get_key(session, user_id, key_id)
        for attr, value in updates.items():
            setattr(api_key, attr, value)
        await session.flush()
        return api_key, updates

    async def revoke_key(self, session: AsyncSession, user_id: str, key_id: str) -> ApiKey:
        """Soft revoke; the row and its usage history stay."""
        api_key = await self.get_key(session, user_id, key_id)
        api_key.is_active = False
        await session.flush()
        return api_key

    async def usage_stats(
        self,
        session: AsyncSession,
        user_id: str,
        key_id: str,
        days: int = 7,
        now: Optional[datetime] = None,
    ) -> tuple[ApiKey, dict]:
        api_key = await self.get_key(session, user_id, key_id)
        since = (now or utc_now()) - timedelta(days=days)
        scope = (ApiKeyUsage.api_key_id == api_key.id, ApiKeyUsage.created_at >= since)

        count = func.count(ApiKeyUsage.id)
        by_endpoint = await session.execute(
            select(
                ApiKeyUsage.endpoint,
                count.label("count"),
                func.avg(ApiKeyUsage.response_time_ms).label("avg_response_time"),
            )
            .where(*scope)
            .group_by(ApiKeyUsage.endpoint)
            .order_by(count.desc())
            .limit(10)
        )

        day = func.date(ApiKeyUsage.created_at)
        by_day = await session.execute(
            select(day.label("date"), count.label("count"))
            .where(*scope)
            .group_by(day)
            .order_by(day.desc())
        )

        by_status = await session.execute(
            select(ApiKeyUsage.status_code, count.label("count"))
            .where(*scope)
            .group_by(ApiKeyUsage.status_code)
            .order_by(ApiKeyUsage.status_code)
        )

        usage = {
            "by_endpoint": [
                {
                    "endpoint": row.endpoint,
                    "count": int(row.count),
                    "avg_response_time": (
                        round(float(row.avg_response_time), 2)
                        if row.avg_response_time is not None
                        else None
                    ),
                }
                for row in by_endpoint
            ],
            "by_day": [{"date": str(row.date), "count": int(row.count)} for row in by_day],
            "by_status": [
                {"status_code": int(row.status_code), "count": int(row.count)}
                for row in by_status
            ],
        }
        return api_key, usage

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(
        self,
        session: AsyncSession,
        presented_key: str,
        now: Optional[datetime] = None,
    ) -> ApiKeyIdentity:
        """
        Resolve a presented key to its identity.

        Checks, in order: configured prefix, active key by 12-character
        lookup prefix, full-key hash, expiry, owner status.
        """
        if not presented_key.startswith(self.settings.API_KEY_PREFIX):
            raise AuthenticationError("INVALID_API_KEY", "Invalid API key format")

        lookup = presented_key[: self.PREFIX_LEN]
        res = await session.execute(
            select(ApiKey, User)
            .join(User, User.id == ApiKey.user_id)
            .where(ApiKey.key_prefix == lookup, ApiKey.is_active.is_(True))
        )
        row = res.first()
        if row is None:
            raise AuthenticationError("API_KEY_NOT_FOUND", "API key not found or inactive")
        api_key, user = row

        if not await self.hasher.verify(presented_key, api_key.key_hash):
            raise AuthenticationError("INVALID_API_KEY", "Invalid API key")

        now = now or utc_now()
        expires_at = ensure_utc(api_key.expires_at)
        if expires_at is not None and expires_at < now:
            raise AuthenticationError("API_KEY_EXPIRED", "API key has expired")

        if not user.is_active:
            raise AuthorizationError("USER_INACTIVE", "User account is inactive")

        api_key.last_used_at = now
        await session.flush()

        return ApiKeyIdentity(
            key_id=api_key.id,
            user_id=user.id,
            email=user.email,
            name=api_key.name,
            rate_limit_per_hour=api_key.rate_limit_per_hour or self.settings.RATE_LIMIT_AUTHENTICATED_PER_HOUR,
            rate_limit_per_day=api_key.rate_limit_per_day or self.settings.RATE_LIMIT_AUTHENTICATED_PER_DAY,
            permissions=dict(api_key.permissions or {}),
        )
