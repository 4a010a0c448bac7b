"""
Rate Limiting Middleware

Fixed-window request counters in Redis, per client IP and endpoint.
Generation calls a paid provider, so it gets a tighter limit.
"""
import time
import logging
from typing import Callable, Dict, Optional, Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.cache import get_redis_client

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/health", "/ping", "/docs", "/openapi.json", "/redoc"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware using fixed-window counters."""

    def __init__(
        self,
        app,
        default_limit: int = 60,
        window: int = 60,
        endpoint_limits: Optional[Dict[str, int]] = None,
        client_getter: Callable = get_redis_client,
    ):
        super().__init__(app)
        self.default_limit = default_limit
        self.window = window  # Time window in seconds
        self.endpoint_limits = endpoint_limits or {}
        self.client_getter = client_getter

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = self._get_client_id(request)
        limit = self._get_endpoint_limit(request.url.path)

        allowed, remaining, reset_time = self._check_rate_limit(
            client_id=client_id,
            endpoint=request.url.path,
            limit=limit,
        )

        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Rate limit exceeded",
                    "code": "rate_limited",
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(max(1, int(reset_time - time.time()))),
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)
        return response

    def _get_client_id(self, request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_endpoint_limit(self, path: str) -> int:
        if path in self.endpoint_limits:
            return self.endpoint_limits[path]
        return self.default_limit

    def _check_rate_limit(self, client_id: str, endpoint: str, limit: int) -> Tuple[bool, int, int]:
        """
        Returns:
            (allowed, remaining, reset_time)
        """
        now = int(time.time())
        window_start = now - (now % self.window)
        reset_time = window_start + self.window

        redis_client = self.client_getter()
        if not redis_client:
            # Fail open
            return True, limit, reset_time

        key = f"rate_limit:{client_id}:{endpoint}:{window_start}"
        try:
            count = int(redis_client.incr(key))
            if count == 1:
                redis_client.expire(key, self.window)
        except Exception as e:
            logger.error(f"Rate limit check error: {e}")
            return True, limit, reset_time

        if count > limit:
            return False, 0, reset_time
        return True, max(0, limit - count), reset_time
