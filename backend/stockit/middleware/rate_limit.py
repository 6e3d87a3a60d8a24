"""Rate limiting middleware using Redis.

Each caller gets a sliding window per bucket, stored as a sorted set of
request timestamps under `ratelimit:<bucket>:<subject>`:

  bucket    the AUTH_LIMITS prefix the path starts with,
            "*" for everything else
  subject   user:<id> when a valid session token is presented,
            ip:<addr> otherwise (first X-Forwarded-For hop if present)

If Redis is unreachable the request is allowed (fail open).
"""

import logging
import time
from typing import Awaitable, Callable, NamedTuple, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from stockit.auth.jwt import InvalidTokenError, get_token_service
from stockit.config import settings
from stockit.middleware.exceptions import create_error_response
from stockit.utils.redis_pool import get_redis

logger = logging.getLogger(__name__)


class Limit(NamedTuple):
    requests: int
    window: int  # seconds


# Credential endpoints are the brute-force targets
AUTH_LIMITS = {
    "/api/auth/login": Limit(5, 60),
    "/api/auth/register": Limit(3, 300),
    "/api/auth/accept-invite": Limit(5, 60),
}


class WindowState(NamedTuple):
    allowed: bool
    remaining: int
    reset_at: float


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        default_limit: int = 100,
        default_window: int = 60,
        exempt_paths: Optional[list[str]] = None,
        enabled: Optional[bool] = None,
        redis_factory: Callable[[], Awaitable] = get_redis,
    ):
        super().__init__(app)
        self.default = Limit(default_limit, default_window)
        self.exempt_paths = tuple(exempt_paths or ("/health", "/docs", "/openapi.json"))
        self.enabled = settings.rate_limit_enabled if enabled is None else enabled
        self.redis_factory = redis_factory

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not self.enabled or path.startswith(self.exempt_paths):
            return await call_next(request)

        limit = self.limit_for(path)
        state = await self.hit(self.key_for(request), limit)

        if not state.allowed:
            retry_after = max(int(state.reset_at - time.time()), 1)
            logger.info("Rate limited %s on %s", self.subject_for(request), path)
            return create_error_response(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
                error_code="RATE_LIMITED",
                headers={
                    **self._headers(limit, 0, state.reset_at),
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers.update(self._headers(limit, state.remaining, state.reset_at))
        return response

    # ── Keys ─────────────────────────────────────────────────

    @staticmethod
    def bucket_for(path: str) -> str:
        for prefix in AUTH_LIMITS:
            if path.startswith(prefix):
                return prefix
        return "*"

    def limit_for(self, path: str) -> Limit:
        return AUTH_LIMITS.get(self.bucket_for(path), self.default)

    def subject_for(self, request: Request) -> str:
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            try:
                claims = get_token_service().verify_session_token(auth_header[7:])
                return f"user:{claims.user_id}"
            except InvalidTokenError:
                pass
        return f"ip:{client_ip(request)}"

    def key_for(self, request: Request) -> str:
        bucket = self.bucket_for(request.url.path)
        return f"ratelimit:{bucket}:{self.subject_for(request)}"

    # ── Sliding window ───────────────────────────────────────

    async def hit(self, key: str, limit: Limit) -> WindowState:
        """Record one request against `key` unless the window is full."""
        now = time.time()
        try:
            redis_client = await self.redis_factory()
            await redis_client.zremrangebyscore(key, 0, now - limit.window)
            count = await redis_client.zcard(key)

            if count >= limit.requests:
                oldest = await redis_client.zrange(key, 0, 0, withscores=True)
                reset_at = oldest[0][1] + limit.window if oldest else now + limit.window
                return WindowState(False, 0, reset_at)

            await redis_client.zadd(key, {str(now): now})
            await redis_client.expire(key, limit.window)
            return WindowState(True, limit.requests - count - 1, now + limit.window)
        except Exception as e:
            logger.warning("Rate limit check failed, allowing request: %s", e)
            return WindowState(True, limit.requests, now + limit.window)

    @staticmethod
    def _headers(limit: Limit, remaining: int, reset_at: float) -> dict:
        return {
            "X-RateLimit-Limit": str(limit.requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(int(reset_at)),
        }
