"""
Usage Tracking Middleware
=========================

Times each request and, when it was made with an API key, schedules a usage
event to be written after the response body has gone out.
"""

import time
from typing import Callable

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class UsageTrackingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Shared with the route's Request so resolve_api_key's identity is visible here
        request.state.api_key = None

        start_time = time.perf_counter()
        response = await call_next(request)

        identity = getattr(request.state, "api_key", None)
        if identity is None:
            return response

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        usage_logger = request.app.state.usage_logger
        task = BackgroundTask(
            usage_logger.record,
            identity.key_id,
            request.url.path,
            request.method,
            response.status_code,
            elapsed_ms,
        )

        if response.background is None:
            response.background = task
        else:
            tasks = BackgroundTasks()
            tasks.add_task(response.background)
            tasks.add_task(task)
            response.background = tasks
        return response
