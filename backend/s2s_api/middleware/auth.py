"""
Authentication Dependencies
===========================

Request-scoped gates that resolve who is calling:

- ``require_session``: ``Authorization: Bearer <token>`` is mandatory
- ``optional_session``: same parsing, but failures mean "anonymous"
- ``resolve_api_key``: ``X-API-Key`` for programmatic data access; absent
  means public access, not an error
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from s2s_api.api.deps import get_api_key_service, get_database, get_token_service
from s2s_api.core.database import Database
from s2s_api.core.exceptions import ApiError, AuthenticationError, InternalError
from s2s_api.core.metrics import auth_attempts_total
from s2s_api.core.security import (
    SessionClaims,
    TokenExpiredError,
    TokenError,
    TokenService,
)
from s2s_api.services.api_key_service import ApiKeyIdentity, ApiKeyService


logger = logging.getLogger(__name__)

ACCESS_PUBLIC = "public"
ACCESS_AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class AccessContext:
    """Normalized identity for data routes."""

    access_level: str
    identity: Optional[ApiKeyIdentity] = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("UNAUTHORIZED", "No authorization token provided")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise AuthenticationError("INVALID_TOKEN_FORMAT", "Invalid token format. Use: Bearer <token>")
    return parts[1]


async def require_session(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    tokens: TokenService = Depends(get_token_service),
) -> SessionClaims:
    token = _bearer_token(authorization)

    try:
        claims = tokens.verify(token)
    except TokenExpiredError:
        auth_attempts_total.labels(method="session", outcome="expired").inc()
        raise AuthenticationError("TOKEN_EXPIRED", "Token has expired. Please log in again.")
    except TokenError:
        auth_attempts_total.labels(method="session", outcome="invalid").inc()
        raise AuthenticationError("INVALID_TOKEN", "Invalid token")
    except Exception as e:
        logger.exception(f"Token verification failed: {e}")
        raise InternalError("AUTH_ERROR", "Authentication error")

    request.state.session = claims
    return claims


async def optional_session(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[SessionClaims]:
    try:
        token = _bearer_token(authorization)
        claims = tokens.verify(token)
    except (ApiError, TokenError):
        return None
    except Exception as e:
        logger.warning(f"Optional token check failed: {e}")
        return None

    request.state.session = claims
    return claims


async def resolve_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    api_keys: ApiKeyService = Depends(get_api_key_service),
    database: Database = Depends(get_database),
) -> AccessContext:
    if not x_api_key:
        request.state.access_level = ACCESS_PUBLIC
        return AccessContext(access_level=ACCESS_PUBLIC)

    try:
        async with database.session() as session:
            identity = await api_keys.authenticate(session, x_api_key)
            await session.commit()
    except ApiError as e:
        auth_attempts_total.labels(method="api_key", outcome=e.code.lower()).inc()
        raise
    except Exception as e:
        logger.exception(f"API key lookup failed: {e}")
        raise InternalError("AUTH_ERROR", "Authentication error")

    auth_attempts_total.labels(method="api_key", outcome="success").inc()
    request.state.api_key = identity
    request.state.access_level = ACCESS_AUTHENTICATED
    return AccessContext(access_level=ACCESS_AUTHENTICATED, identity=identity)
