"""
Standardized Error Handling

Provides:
- API error classes grouped by HTTP status
- The ``{success: false, error, message}`` response envelope
- A route decorator that turns unexpected failures into a named 500
"""

import functools
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


# ==================== Custom Exceptions ====================

class ApiError(Exception):
    """Base class for API errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "SERVER_ERROR"

    def __init__(
        self,
        code: Optional[str] = None,
        message: str = "An unexpected error occurred",
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.headers = headers or {}
        self.extra = extra or {}
        super().__init__(message)


class ValidationError(ApiError):
    """Input validation error (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class AuthenticationError(ApiError):
    """Authentication failed (401)."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"


class AuthorizationError(ApiError):
    """Authorization failed (403)."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "ACCESS_DENIED"


class NotFoundError(ApiError):
    """Resource not found (404)."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(ApiError):
    """Resource conflict (409)."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class RateLimitError(ApiError):
    """Rate limit exceeded (429)."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "RATE_LIMIT_EXCEEDED"


class InternalError(ApiError):
    """Unexpected failure (500)."""


# ==================== Error Response Format ====================

def error_body(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "error": code, "message": message, **extra}


def handle_route_errors(code: str, message: str) -> Callable:
    """
    Catch everything a route did not translate itself.

    ``ApiError`` passes through untouched; anything else is logged with its
    traceback and surfaces as ``InternalError(code, message)``.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ApiError:
                raise
            except Exception as exc:
                logger.exception(f"{func.__name__} failed: {exc}")
                raise InternalError(code, message) from exc

        return wrapper

    return decorator


# ==================== Exception Handlers ====================

async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, **exc.extra),
        headers=exc.headers or None,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", message),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        content = error_body("NOT_FOUND", "Endpoint not found")
    elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        content = error_body("METHOD_NOT_ALLOWED", "Method not allowed")
    else:
        content = error_body("HTTP_ERROR", str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("SERVER_ERROR", "An unexpected error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
