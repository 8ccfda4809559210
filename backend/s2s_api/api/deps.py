"""
Request dependencies that hand out the components built in
``create_application``.
"""

from fastapi import Request

from s2s_api.core.config import Settings
from s2s_api.core.database import Database
from s2s_api.core.security import PasswordHasher, TokenService
from s2s_api.services.account_mailer import AccountMailer
from s2s_api.services.api_key_service import ApiKeyService
from s2s_api.services.rate_limiter import RateLimiter


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_api_key_service(request: Request) -> ApiKeyService:
    return request.app.state.api_keys


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_account_mailer(request: Request) -> AccountMailer:
    return request.app.state.account_mailer


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request.

    X-Forwarded-For is only honoured when the direct peer is listed in
    ``FORWARDED_ALLOW_IPS`` (``*`` trusts every peer). Otherwise the header
    is client-controlled and ignored.
    """
    peer = request.client.host if request.client else None

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        trusted = request.app.state.settings.FORWARDED_ALLOW_IPS
        if "*" in trusted or (peer is not None and peer in trusted):
            # Take the first IP (original client)
            return forwarded_for.split(",")[0].strip()

    return peer or "unknown"
