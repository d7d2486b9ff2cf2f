"""Rate limiting middleware — Redis-based fixed window per IP.

Learn: Uses a per-minute counter stored in Redis. Each IP gets a key like
"relay:rl:{ip}:{bucket}:{minute}". Publishing into a channel fans out to
every follower, so POSTs get their own, stricter bucket than reads.

Health checks are never limited. Gracefully skips rate limiting if Redis
is unavailable (e.g., in tests or a single-box dev setup).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from reviewrelay.redis_pool import get_redis

logger = structlog.get_logger()

EXEMPT_PATHS = ("/api/v1/health",)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, publish_rpm: int = 30):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.publish_rpm = publish_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_publish = request.method == "POST"
        rpm = self.publish_rpm if is_publish else self.default_rpm

        window = int(time.time() // 60)
        bucket = "publish" if is_publish else "api"
        key = f"relay:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            # Redis error — don't block the request
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("rate_limit.exceeded", ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
