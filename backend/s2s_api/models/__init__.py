"""
Database Models
===============

SQLAlchemy models for accounts, API keys, usage, rate limits and audit.
"""

from s2s_api.models.base import (
    Base,
    TimestampMixin,
    UUIDMixin,
    ensure_utc,
    generate_uuid,
    utc_now,
)
from s2s_api.models.user import DEFAULT_ROLE, User, UserRole
from s2s_api.models.api_key import KEY_PREFIX_LENGTH, ApiKey, ApiKeyUsage
from s2s_api.models.rate_limit import WINDOW_API_KEY, WINDOW_IP, RateLimitRecord
from s2s_api.models.audit import AuditAction, AuditLogEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "ensure_utc",
    "generate_uuid",
    "utc_now",
    "DEFAULT_ROLE",
    "User",
    "UserRole",
    "KEY_PREFIX_LENGTH",
    "ApiKey",
    "ApiKeyUsage",
    "WINDOW_API_KEY",
    "WINDOW_IP",
    "RateLimitRecord",
    "AuditAction",
    "AuditLogEntry",
]
