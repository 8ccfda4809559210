"""
Access Log Middleware
=====================

Assigns a request ID and writes one structured log line per request.
"""

import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from s2s_api.api.deps import get_client_ip


logger = structlog.get_logger("access")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Captures:
    - Request ID (taken from X-Request-ID or generated)
    - Method, path, client IP
    - Response status and latency
    - Access level resolved for data routes
    """

    # Paths to exclude from logging (e.g., health checks)
    EXCLUDED_PATHS = {"/health", "/metrics", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        if request.url.path in self.EXCLUDED_PATHS:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http_request_failed",
                method=request.method,
                path=request.url.path,
                client_ip=get_client_ip(request),
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            client_ip=get_client_ip(request),
            access_level=getattr(request.state, "access_level", None),
        )

        response.headers["X-Request-ID"] = request_id
        return response
