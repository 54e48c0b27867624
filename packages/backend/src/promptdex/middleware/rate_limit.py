"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Uses a per-minute counter stored in Redis. Each IP gets a counter
key like "promptdex:rl:{ip}:{bucket}:{minute}". Login and registration get
a stricter limit (10/min) to slow down password guessing and username
probing.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

import redis.exceptions
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from promptdex.cache import get_redis

AUTH_PATHS = ("/auth/login", "/auth/register")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        # Skip rate limiting when Redis was never initialized
        try:
            counter = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_auth = request.url.path in AUTH_PATHS
        rpm = self.auth_rpm if is_auth else self.default_rpm

        window = int(time.time() // 60)
        bucket = "auth" if is_auth else "api"
        key = f"promptdex:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await counter.incr(key)
            if count == 1:
                await counter.expire(key, 120)  # 2-min TTL for safety
        except redis.exceptions.RedisError:
            # Redis error: don't block the request
            return await call_next(request)

        if count > rpm:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
