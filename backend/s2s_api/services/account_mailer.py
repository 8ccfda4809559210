"""
Account Mailer
==============

Hands verification and password reset tokens to the email sender. The
sender itself lives outside this service; we POST one JSON document per
message to ``ACCOUNT_EMAIL_WEBHOOK_URL``.

Delivery is best-effort. A failed send is logged and the request that
issued the token still succeeds; the user can ask for a new link.
"""

import logging
from typing import Optional

import httpx

from s2s_api.core.config import Settings


logger = logging.getLogger(__name__)

KIND_VERIFICATION = "verification"
KIND_PASSWORD_RESET = "password_reset"


class AccountMailer:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    async def send(
        self,
        kind: str,
        *,
        email: str,
        token: str,
        user_name: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> bool:
        """Returns True when the sender accepted the message."""
        url = self.settings.ACCOUNT_EMAIL_WEBHOOK_URL
        if not url:
            logger.info(f"No account email sender configured; {kind} link for {email} not sent")
            return False

        payload = {
            "type": kind,
            "email": email,
            "token": token,
            "user_name": user_name,
            "base_url": base_url or self.settings.ACCOUNT_EMAIL_BASE_URL,
        }
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {kind} email to {email}: {type(e).__name__}: {e}")
            return False
        return True
