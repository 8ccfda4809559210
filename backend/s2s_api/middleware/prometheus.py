"""
Prometheus Metrics Middleware
Collects metrics on HTTP requests and responses
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from s2s_api.core.metrics import (
    errors_total,
    http_request_duration_seconds,
    http_requests_total,
)


def _endpoint_label(request: Request) -> str:
    # Route template keeps label cardinality bounded (/api-keys/{key_id})
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect Prometheus metrics for HTTP requests
    """

    # Endpoints to skip (health checks, metrics endpoint, etc)
    SKIP_ENDPOINTS = ['/health', '/metrics', '/docs', '/openapi.json', '/redoc']

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.SKIP_ENDPOINTS:
            return await call_next(request)

        start_time = time.time()
        method = request.method

        try:
            response = await call_next(request)
        except Exception as exc:
            errors_total.labels(
                error_type=type(exc).__name__,
                endpoint=_endpoint_label(request)
            ).inc()
            raise

        duration = time.time() - start_time
        endpoint = _endpoint_label(request)

        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

        return response
