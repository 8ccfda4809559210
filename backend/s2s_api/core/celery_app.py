"""Celery application configuration.

Import-safe defaults (memory broker) keep unit tests free of a real broker.
"""

from __future__ import annotations

from celery import Celery

from s2s_api.core.config import get_settings


settings = get_settings()


def _default_broker() -> str:
    return settings.CELERY_BROKER_URL or "memory://"


def _default_backend() -> str:
    # Cache-like in-memory backend for tests.
    return settings.CELERY_RESULT_BACKEND or "cache+memory://"


celery_app = Celery(
    "summit2shore",
    broker=_default_broker(),
    backend=_default_backend(),
    include=["s2s_api.tasks.maintenance"],
)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="q.maintenance",
    task_routes={
        "s2s_api.tasks.maintenance.cleanup_rate_limits_task": {"queue": "q.maintenance"},
    },
    beat_schedule={
        "cleanup-rate-limits": {
            "task": "s2s_api.tasks.maintenance.cleanup_rate_limits_task",
            "schedule": float(settings.RATE_LIMIT_CLEANUP_INTERVAL_SECONDS),
            "args": (),
        },
    },
)
