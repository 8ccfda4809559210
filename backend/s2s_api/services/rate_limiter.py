"""
Rate Limiting Service
=====================

Hourly request quotas kept in the relational store so every API process
sees the same counters.

Each request performs one conditional upsert:

    INSERT ... ON CONFLICT (identifier, window_start, window_type)
    DO UPDATE SET request_count = request_count + 1
    WHERE request_count < :limit
    RETURNING request_count

A returned row means the request was admitted and counted. No row means the
window is already full; nothing is written for rejected requests.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from s2s_api.core.config import Settings
from s2s_api.core.database import Database
from s2s_api.core.metrics import rate_limit_exceeded_total
from s2s_api.models.base import utc_now
from s2s_api.models.rate_limit import WINDOW_API_KEY, WINDOW_IP, RateLimitRecord
from s2s_api.services.api_key_service import ApiKeyIdentity


logger = logging.getLogger(__name__)

WINDOW = timedelta(hours=1)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def window_start_for(now: datetime) -> datetime:
    """Top of the current UTC hour, naive, as stored in ``rate_limit_tracking``."""
    return now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0, tzinfo=None)


@dataclass(frozen=True)
class RateLimitSubject:
    identifier: str
    window_type: str
    limit: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int
    window_type: str

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at.timestamp())),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """Storage-backed hourly limiter keyed by API key id or client IP."""

    def __init__(self, database: Database, settings: Settings):
        if database.dialect_name not in _INSERTS:
            raise RuntimeError(
                f"Rate limiting is not supported on {database.dialect_name}; "
                f"use one of: {', '.join(sorted(_INSERTS))}"
            )
        self.database = database
        self.settings = settings

    def subject_for(self, identity: Optional[ApiKeyIdentity], client_ip: str) -> RateLimitSubject:
        if identity is not None:
            return RateLimitSubject(
                identifier=f"apikey:{identity.key_id}",
                window_type=WINDOW_API_KEY,
                limit=identity.rate_limit_per_hour or self.settings.RATE_LIMIT_AUTHENTICATED_PER_HOUR,
            )
        return RateLimitSubject(
            identifier=f"ip:{client_ip}",
            window_type=WINDOW_IP,
            limit=self.settings.RATE_LIMIT_PUBLIC_PER_HOUR,
        )

    def _upsert(self, subject: RateLimitSubject, window_start: datetime):
        stmt = _INSERTS[self.database.dialect_name](RateLimitRecord).values(
            identifier=subject.identifier,
            window_start=window_start,
            window_type=subject.window_type,
            request_count=1,
        )
        return stmt.on_conflict_do_update(
            index_elements=["identifier", "window_start", "window_type"],
            set_={"request_count": RateLimitRecord.request_count + 1},
            where=RateLimitRecord.request_count < subject.limit,
        ).returning(RateLimitRecord.request_count)

    async def hit(
        self,
        subject: RateLimitSubject,
        now: Optional[datetime] = None,
    ) -> Optional[RateLimitDecision]:
        """
        Count one request against ``subject``.

        Returns None when the counter store failed; callers let the request
        through in that case.
        """
        now = now or utc_now()
        window_start = window_start_for(now)
        reset_at = window_start.replace(tzinfo=timezone.utc) + WINDOW
        retry_after = max(1, math.ceil((reset_at - now).total_seconds()))

        count: Optional[int] = None
        if subject.limit > 0:
            try:
                async with self.database.session() as session:
                    result = await session.execute(self._upsert(subject, window_start))
                    count = result.scalar_one_or_none()
                    await session.commit()
            except Exception as e:
                logger.error(f"Rate limiter storage error for {subject.identifier}, allowing request: {e}")
                return None

        if count is None:
            rate_limit_exceeded_total.labels(window_type=subject.window_type).inc()
            return RateLimitDecision(
                allowed=False,
                limit=subject.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after=retry_after,
                window_type=subject.window_type,
            )

        return RateLimitDecision(
            allowed=True,
            limit=subject.limit,
            remaining=max(0, subject.limit - count),
            reset_at=reset_at,
            retry_after=retry_after,
            window_type=subject.window_type,
        )

    async def cleanup(self, now: Optional[datetime] = None) -> int:
        """Delete counter rows whose window started more than the retention ago."""
        now = now or utc_now()
        cutoff = (now - timedelta(hours=self.settings.RATE_LIMIT_RETENTION_HOURS)).astimezone(
            timezone.utc
        ).replace(tzinfo=None)

        async with self.database.session() as session:
            result = await session.execute(
                delete(RateLimitRecord).where(RateLimitRecord.window_start < cutoff)
            )
            await session.commit()

        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Removed {deleted} expired rate limit records")
        return deleted
