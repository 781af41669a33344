"""
In-memory rate limiting for the Radeo Storefront API.

Guards login, registration and coupon validation against brute force.
Uses a sliding-window counter per (client IP, route) key; a multi-worker
deployment needs a shared store instead.
"""
import time
import logging
from collections import defaultdict

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Tracks request timestamps per key. State is process-local.
    """

    def __init__(self):
        # {key: [timestamp1, timestamp2, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _cleanup(self, key: str, window_seconds: int):
        cutoff = time.time() - window_seconds
        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """
        Record a request and report whether it is within the limit.

        Returns:
            True if allowed, False if rate-limited (the request is not recorded)
        """
        self._cleanup(key, window_seconds)

        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(time.time())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests[key]))

    def reset(self):
        self._requests.clear()


# Global rate limiter instance
limiter = RateLimiter()


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/auth/login")
        async def login(..., _=Depends(rate_limit(10, 300))):
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        route_path = request.url.path
        key = f"{client_ip}:{route_path}"

        if not limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {route_path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Too many requests. Maximum {max_requests} per {window_seconds} seconds.",
                details={"retry_after": window_seconds, "limit": max_requests},
            )

    return _check_rate_limit
