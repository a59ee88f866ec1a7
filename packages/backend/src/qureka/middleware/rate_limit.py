"""Rate limiting middleware — Redis-based fixed windows.

Learn: Each IP gets a counter key like "qureka:rl:{ip}:{bucket}:{window}".
Three buckets:
- api:      default_rpm per minute
- auth:     auth_rpm per minute for login and token refresh (brute force)
- register: register_limit per 15 minutes for sign-ups

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

_AUTH_PATHS = ("/api/v1/users/login", "/api/v1/auth/refresh-token")
_REGISTER_PATH = "/api/v1/users/register"
_REGISTER_WINDOW = 15 * 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP."""

    def __init__(
        self,
        app,
        default_rpm: int = 100,
        auth_rpm: int = 10,
        register_limit: int = 5,
    ):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm
        self.register_limit = register_limit

    def _bucket(self, path: str) -> tuple[str, int, int]:
        """(bucket name, limit, window seconds) for a request path."""
        if path.startswith(_REGISTER_PATH):
            return "register", self.register_limit, _REGISTER_WINDOW
        if path.startswith(_AUTH_PATHS):
            return "auth", self.auth_rpm, 60
        return "api", self.default_rpm, 60

    async def dispatch(self, request: Request, call_next) -> Response:
        # Try to get Redis — skip rate limiting if unavailable
        try:
            from qureka.cache import get_redis

            redis = get_redis()
        except Exception:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        bucket, limit, window_seconds = self._bucket(request.url.path)

        window = int(time.time() // window_seconds)
        key = f"qureka:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, window_seconds * 2)
        except Exception:
            # Redis error — don't block the request
            return await call_next(request)

        if count > limit:
            logger.warning("rate_limit.exceeded", ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Try again later."},
                headers={"Retry-After": str(window_seconds)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        return response
