"""
Audit Service
=============

Writes immutable audit entries for account and key actions. Entries join
the caller's transaction; the caller commits.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from s2s_api.models.audit import AuditAction, AuditLogEntry


class AuditService:
    """Audit logging service."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_event(
        self,
        action: AuditAction,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            user_id=user_id,
            action=AuditAction(action).value,
            details=details or {},
            ip_address=ip_address,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def log_login_failure(
        self,
        email: str,
        reason: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLogEntry:
        """Log failed authentication."""
        return await self.log_event(
            AuditAction.LOGIN_FAILED,
            user_id=user_id,
            details={"email": email, "reason": reason},
            ip_address=ip_address,
        )
