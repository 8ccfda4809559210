"""
Rate Limiter Tests
==================

Service-level checks of the storage-backed hourly counters, with the clock
passed in explicitly.
"""

import asyncio
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from s2s_api.models import RateLimitRecord
from s2s_api.models.rate_limit import WINDOW_API_KEY, WINDOW_IP
from s2s_api.services.api_key_service import ApiKeyIdentity
from s2s_api.services.rate_limiter import RateLimiter, RateLimitSubject, window_start_for


NOW = datetime(2026, 10, 18, 14, 25, 10, tzinfo=timezone.utc)


def _subject(limit: int = 3, identifier: str = "apikey:k1") -> RateLimitSubject:
    return RateLimitSubject(identifier=identifier, window_type=WINDOW_API_KEY, limit=limit)


@pytest.fixture
def limiter(app):
    return app.state.rate_limiter


def test_window_start_is_top_of_utc_hour():
    assert window_start_for(NOW) == datetime(2026, 10, 18, 14, 0, 0)

    eastern = timezone(timedelta(hours=-5))
    assert window_start_for(datetime(2026, 10, 18, 9, 59, 59, tzinfo=eastern)) == datetime(2026, 10, 18, 14, 0, 0)


@pytest.mark.asyncio
async def test_subject_for_api_key_and_ip(limiter, settings):
    identity = ApiKeyIdentity(
        key_id="k1",
        user_id="u1",
        email="a@b.com",
        name="t",
        rate_limit_per_hour=25,
        rate_limit_per_day=100,
    )

    by_key = limiter.subject_for(identity, "10.0.0.1")
    assert by_key == RateLimitSubject(identifier="apikey:k1", window_type=WINDOW_API_KEY, limit=25)

    by_ip = limiter.subject_for(None, "10.0.0.1")
    assert by_ip == RateLimitSubject(
        identifier="ip:10.0.0.1",
        window_type=WINDOW_IP,
        limit=settings.RATE_LIMIT_PUBLIC_PER_HOUR,
    )


@pytest.mark.asyncio
async def test_admits_up_to_limit_then_rejects(limiter):
    subject = _subject(limit=3)

    decisions = [await limiter.hit(subject, now=NOW) for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert all(d.limit == 3 for d in decisions)

    reset_at = datetime(2026, 10, 18, 15, 0, 0, tzinfo=timezone.utc)
    rejected = decisions[-1]
    assert rejected.reset_at == reset_at
    assert rejected.retry_after == int((reset_at - NOW).total_seconds())
    assert rejected.headers() == {
        "X-RateLimit-Limit": "3",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(reset_at.timestamp())),
        "Retry-After": str(rejected.retry_after),
    }
    assert "Retry-After" not in decisions[0].headers()


@pytest.mark.asyncio
async def test_rejections_do_not_increment_counter(limiter, database):
    subject = _subject(limit=2)
    for _ in range(5):
        await limiter.hit(subject, now=NOW)

    async with database.session() as session:
        count = (await session.execute(select(RateLimitRecord.request_count))).scalar_one()
    assert count == 2


@pytest.mark.asyncio
async def test_next_hour_starts_a_fresh_window(limiter):
    subject = _subject(limit=1)

    assert (await limiter.hit(subject, now=NOW)).allowed
    assert not (await limiter.hit(subject, now=NOW + timedelta(minutes=30))).allowed

    next_window = await limiter.hit(subject, now=NOW + timedelta(hours=1))
    assert next_window.allowed
    assert next_window.remaining == 0


@pytest.mark.asyncio
async def test_subjects_are_counted_independently(limiter):
    first = _subject(limit=1, identifier="apikey:k1")
    second = _subject(limit=1, identifier="apikey:k2")
    by_ip = RateLimitSubject(identifier="apikey:k1", window_type=WINDOW_IP, limit=1)

    assert (await limiter.hit(first, now=NOW)).allowed
    assert (await limiter.hit(second, now=NOW)).allowed
    assert (await limiter.hit(by_ip, now=NOW)).allowed
    assert not (await limiter.hit(first, now=NOW)).allowed


@pytest.mark.asyncio
async def test_concurrent_hits_never_exceed_limit(limiter, database):
    subject = _subject(limit=10)

    decisions = await asyncio.gather(*(limiter.hit(subject, now=NOW) for _ in range(50)))

    assert all(d is not None for d in decisions)
    assert sum(d.allowed for d in decisions) == 10
    assert sorted(d.remaining for d in decisions if d.allowed) == list(range(10))

    async with database.session() as session:
        count = (await session.execute(select(RateLimitRecord.request_count))).scalar_one()
    assert count == 10


@pytest.mark.asyncio
async def test_zero_limit_rejects_everything(limiter, database):
    decision = await limiter.hit(_subject(limit=0), now=NOW)

    assert decision.allowed is False
    assert decision.remaining == 0
    async with database.session() as session:
        rows = (await session.execute(select(func.count()).select_from(RateLimitRecord))).scalar_one()
    assert rows == 0


@pytest.mark.asyncio
async def test_storage_failure_fails_open(limiter, database):
    async with database.engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE rate_limit_tracking")

    assert await limiter.hit(_subject(), now=NOW) is None


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired_windows(limiter, database):
    ages = {
        "current": timedelta(0),
        "recent": timedelta(hours=1, minutes=59),
        "stale": timedelta(hours=2, minutes=1),
        "ancient": timedelta(hours=5),
    }
    async with database.session() as session:
        for name, age in ages.items():
            session.add(
                RateLimitRecord(
                    identifier=f"ip:{name}",
                    window_start=(NOW - age).replace(tzinfo=None),
                    window_type=WINDOW_IP,
                    request_count=1,
                )
            )
        await session.commit()

    deleted = await limiter.cleanup(now=NOW)

    assert deleted == 2
    async with database.session() as session:
        remaining = (await session.execute(select(RateLimitRecord.identifier))).scalars().all()
    assert sorted(remaining) == ["ip:current", "ip:recent"]

    # Idempotent
    assert await limiter.cleanup(now=NOW) == 0


def test_unsupported_dialect_fails_at_construction(settings):
    with pytest.raises(RuntimeError, match="not supported on mysql"):
        RateLimiter(SimpleNamespace(dialect_name="mysql"), settings)
