"""Maintenance / scheduled tasks.

Sweeps expired rate-limit windows out of ``rate_limit_tracking``.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from celery.utils.log import get_task_logger

from s2s_api.core.celery_app import celery_app
from s2s_api.core.config import Settings, get_settings
from s2s_api.core.database import Database
from s2s_api.services.rate_limiter import RateLimiter


logger = get_task_logger(__name__)


def _run_async(coro):
    # Celery workers call tasks from plain threads with no running loop
    return asyncio.run(coro)


async def cleanup_rate_limits(settings: Optional[Settings] = None) -> int:
    """Delete counter rows older than the retention window. Idempotent."""
    settings = settings or get_settings()
    database = Database(settings)
    try:
        return await RateLimiter(database, settings).cleanup()
    finally:
        await database.dispose()


@celery_app.task(name="s2s_api.tasks.maintenance.cleanup_rate_limits_task")
def cleanup_rate_limits_task() -> dict:
    deleted = _run_async(cleanup_rate_limits())
    logger.info("Rate limit cleanup removed %s records", deleted)
    return {"deleted": deleted}
