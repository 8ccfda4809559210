"""
Usage Logger
============

Best-effort per-request analytics for API-key traffic. Runs after the
response has been sent; never raises.
"""

import logging

from sqlalchemy import update

from s2s_api.core.database import Database
from s2s_api.core.metrics import usage_events_failed_total
from s2s_api.models.api_key import ApiKey, ApiKeyUsage


logger = logging.getLogger(__name__)


class UsageLogger:
    def __init__(self, database: Database):
        self.database = database

    async def record(
        self,
        key_id: str,
        endpoint: str,
        method: str,
        status_code: int,
        response_time_ms: int,
    ) -> bool:
        """
        Append one usage event and bump the key's lifetime counter.

        Returns False if the write failed; the failure is only logged.
        """
        try:
            async with self.database.session() as session:
                session.add(
                    ApiKeyUsage(
                        api_key_id=key_id,
                        endpoint=endpoint[:500],
                        method=method,
                        status_code=status_code,
                        response_time_ms=max(0, int(response_time_ms)),
                    )
                )
                await session.execute(
                    update(ApiKey)
                    .where(ApiKey.id == key_id)
                    .values(total_requests=ApiKey.total_requests + 1)
                )
                await session.commit()
        except Exception as e:
            usage_events_failed_total.inc()
            logger.error(f"Failed to record API key usage for {key_id}: {e}")
            return False
        return True
