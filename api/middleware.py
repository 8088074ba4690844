"""Checkout rate limiting middleware.

Counts POST requests to the checkout endpoints per client IP and answers
429 once a client exceeds its window. The client IP comes from (in order):
1. The first entry of X-Forwarded-For
2. X-Real-IP
3. The socket peer address
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from core.resilience import RateLimiter

logger = structlog.get_logger(__name__)

CHECKOUT_PATH_PREFIX = "/api/storefront/checkout/"


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limit on POST /api/storefront/checkout/*.

    Every limited response, allowed or not, carries X-RateLimit-Limit,
    X-RateLimit-Remaining and X-RateLimit-Reset.
    """

    def __init__(
        self,
        app,
        limiter: RateLimiter | None = None,
        path_prefix: str = CHECKOUT_PATH_PREFIX,
    ):
        super().__init__(app)
        self.limiter = limiter or RateLimiter()
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method != "POST" or not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = get_client_ip(request)
        decision = self.limiter.check(client_ip)
        if not decision.allowed:
            logger.warning("rate_limited", client_ip=client_ip, path=request.url.path)
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Too many requests"},
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
