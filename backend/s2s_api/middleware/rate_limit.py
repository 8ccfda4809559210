"""
Rate Limit Dependency
=====================

Applied after ``resolve_api_key`` so the quota is keyed by the resolved
identity rather than raw headers.
"""

import math
from typing import Optional

from fastapi import Depends, Request, Response

from s2s_api.api.deps import get_client_ip, get_rate_limiter
from s2s_api.core.exceptions import RateLimitError
from s2s_api.middleware.auth import AccessContext, resolve_api_key
from s2s_api.services.rate_limiter import RateLimitDecision, RateLimiter


async def enforce_rate_limit(
    request: Request,
    response: Response,
    access: AccessContext = Depends(resolve_api_key),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Optional[RateLimitDecision]:
    subject = limiter.subject_for(access.identity, get_client_ip(request))
    decision = await limiter.hit(subject)

    # Counter store unavailable: let the request through without headers
    if decision is None:
        return None

    if not decision.allowed:
        minutes = max(1, math.ceil(decision.retry_after / 60))
        raise RateLimitError(
            "RATE_LIMIT_EXCEEDED",
            f"Rate limit exceeded. Try again in {minutes} minute{'s' if minutes != 1 else ''}.",
            headers=decision.headers(),
            extra={
                "limit": decision.limit,
                "remaining": 0,
                "resetAt": decision.reset_at.isoformat(),
            },
        )

    for name, value in decision.headers().items():
        response.headers[name] = value
    request.state.rate_limit = decision
    return decision
