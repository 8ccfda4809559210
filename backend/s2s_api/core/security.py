"""
Security Utilities
==================

Session token handling and password/API-key hashing.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from s2s_api.core.config import Settings


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    """Signature is valid but the token is past its expiry."""


class TokenInvalidError(TokenError):
    """Signature, issuer or audience check failed."""


class TokenMalformedError(TokenError):
    """Token could not be decoded or is missing required claims."""


class SessionClaims(BaseModel):
    """Decoded session token data for request context."""

    user_id: str
    email: str
    full_name: Optional[str] = None
    issued_at: datetime
    expires_at: datetime


class PasswordHasher:
    """
    bcrypt hashing for passwords and API-key secrets.

    The work happens in a thread so a slow cost factor never stalls the
    event loop.
    """

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )
        self._dummy_hash: Optional[str] = None

    def hash_sync(self, secret: str) -> str:
        return self._context.hash(secret)

    def verify_sync(self, secret: str, hashed: str) -> bool:
        try:
            return self._context.verify(secret, hashed)
        except (ValueError, TypeError):
            # Unrecognised or corrupt stored hash
            return False

    async def hash(self, secret: str) -> str:
        return await asyncio.to_thread(self.hash_sync, secret)

    async def verify(self, secret: str, hashed: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, secret, hashed)

    async def burn(self, secret: str) -> None:
        """Spend one comparison's worth of time when there is nothing to compare against."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash("summit2shore-timing-equalizer")
        await self.verify(secret, self._dummy_hash)


class TokenService:
    """Issues and verifies signed, time-bound session tokens."""

    def __init__(self, settings: Settings):
        self._secret = settings.JWT_SECRET
        self._algorithm = settings.JWT_ALGORITHM
        self._issuer = settings.JWT_ISSUER
        self._audience = settings.JWT_AUDIENCE
        self.lifetime = min(
            timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
            timedelta(seconds=settings.SESSION_MAX_AGE_SECONDS),
        )

    def issue(
        self,
        user_id: str,
        email: str,
        full_name: Optional[str] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Create a signed session token.

        Args:
            user_id: User's UUID
            email: User's email
            full_name: Display name, may be None
            expires_delta: Optional custom lifetime

        Returns:
            str: Encoded JWT
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else self.lifetime)

        payload = {
            "sub": user_id,
            "userId": user_id,
            "email": email,
            "fullName": full_name,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaims:
        """
        Validate signature, issuer, audience and expiry.

        Raises:
            TokenMalformedError: token is not a decodable JWT
            TokenExpiredError: signature is fine but the token has expired
            TokenInvalidError: any other rejection
        """
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenMalformedError(str(exc)) from exc

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except JWTError as exc:
            raise TokenInvalidError(str(exc)) from exc

        try:
            return SessionClaims(
                user_id=payload["userId"],
                email=payload["email"],
                full_name=payload.get("fullName"),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalidError("Token is missing required claims") from exc
