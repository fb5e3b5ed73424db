"""
Redis-backed sliding window rate limiter.

Path tiers are matched first, in order; everything else is limited per
caller (requests per minute, from settings):

  email  /api/auth/forgot-password/   sends mail and checks codes
  llm    /api/ai/                     assistant calls
  auth   valid bearer token           keyed by user id
  anon   no valid bearer token        keyed by client IP

One sorted set per tier and caller (``ratelimit:{tier}:{user|ip}``) holds
the request timestamps of the last minute. When Redis is missing or errors,
requests pass through unthrottled.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from services.api.auth.tokens import decode_token, get_token_from_request
from services.api.config import settings

logger = logging.getLogger(__name__)

# (path prefix, tier, settings attribute)
PATH_TIERS = (
    ("/api/auth/forgot-password/", "email", "rate_limit_email_per_min"),
    ("/api/ai/", "llm", "rate_limit_llm_per_min"),
)
EXEMPT_PATHS = {"/health"}

WINDOW_S = 60


def _get_rate_limit(path: str, is_authenticated: bool) -> tuple[int, str]:
    """Return (limit_per_min, tier_name) for the given path and auth state."""
    for prefix, tier, setting in PATH_TIERS:
        if path.startswith(prefix):
            return getattr(settings, setting), tier
    if is_authenticated:
        return settings.rate_limit_auth_per_min, "auth"
    return settings.rate_limit_anon_per_min, "anon"


def _get_client_key(request: Request) -> tuple[str, bool]:
    """Caller identity: the bearer token's user, else the client IP."""
    token = get_token_from_request(request)
    user = decode_token(token) if token else None
    if user is not None:
        return f"user:{user.user_id}", True

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}", False
    return f"ip:{request.client.host if request.client else 'unknown'}", False


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding window rate limiter backed by Redis sorted sets."""

    def __init__(self, app, redis_client=None):
        super().__init__(app)
        self.redis = redis_client

    async def _count_and_record(self, window_key: str, request: Request, now: float) -> int:
        """Drop hits older than the window, count the rest, record this one."""
        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(window_key, 0, now - WINDOW_S)
        pipe.zcard(window_key)
        pipe.zadd(window_key, {f"{now}:{id(request)}": now})
        pipe.expire(window_key, WINDOW_S * 2)
        results = await pipe.execute()
        return results[1]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if self.redis is None or path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_key, is_authenticated = _get_client_key(request)
        limit, tier = _get_rate_limit(path, is_authenticated)
        now = time.time()

        try:
            seen = await self._count_and_record(f"ratelimit:{tier}:{client_key}", request, now)
        except Exception:
            logger.warning("Rate limiter unavailable; passing request through", exc_info=True)
            return await call_next(request)

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(max(0, limit - seen - 1)),
            "X-RateLimit-Reset": str(int(now + WINDOW_S)),
        }

        if seen >= limit:
            logger.info("Rate limited %s on %s tier", client_key, tier)
            headers["Retry-After"] = str(WINDOW_S)
            # runs outside the request-id middleware, so only a client-sent id is known here
            return JSONResponse(
                status_code=429,
                content={
                    "error": "RATE_LIMITED",
                    "message": f"請求過於頻繁，請稍後再試（{tier} 每分鐘最多 {limit} 次）",
                    "requestId": request.headers.get("x-request-id", ""),
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
