"""
Tests for in-memory rate limiter middleware.

Tests: RateLimiter class — sliding window, cleanup, rate_limit dependency.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import time
import pytest
from unittest.mock import MagicMock

from domain.errors import RateLimitError
from middleware.rate_limit import RateLimiter, limiter, rate_limit


class TestRateLimiter:
    """Tests for the RateLimiter class."""

    @pytest.mark.unit
    def test_allows_requests_under_limit(self):
        """Requests under the limit should be allowed."""
        limiter = RateLimiter()
        for i in range(5):
            assert limiter.check("testkey", max_requests=5, window_seconds=60) is True

    @pytest.mark.unit
    def test_blocks_requests_over_limit(self):
        """Request exceeding the limit should be blocked."""
        limiter = RateLimiter()
        for _ in range(3):
            limiter.check("testkey", max_requests=3, window_seconds=60)
        # 4th request should be blocked
        assert limiter.check("testkey", max_requests=3, window_seconds=60) is False

    @pytest.mark.unit
    def test_different_keys_independent(self):
        """Different keys should have independent limits."""
        limiter = RateLimiter()
        for _ in range(3):
            limiter.check("10.0.0.1:/auth/login", max_requests=3, window_seconds=60)
        assert limiter.check("10.0.0.1:/auth/login", max_requests=3, window_seconds=60) is False
        assert limiter.check("10.0.0.2:/auth/login", max_requests=3, window_seconds=60) is True

    @pytest.mark.unit
    def test_window_expiry(self):
        """Requests should be allowed again after the window expires."""
        limiter = RateLimiter()
        for _ in range(2):
            limiter.check("testkey", max_requests=2, window_seconds=1)
        assert limiter.check("testkey", max_requests=2, window_seconds=1) is False
        time.sleep(1.1)
        assert limiter.check("testkey", max_requests=2, window_seconds=1) is True

    @pytest.mark.unit
    def test_remaining_count(self):
        """remaining() should return correct count."""
        limiter = RateLimiter()
        assert limiter.remaining("testkey", max_requests=5, window_seconds=60) == 5
        limiter.check("testkey", max_requests=5, window_seconds=60)
        assert limiter.remaining("testkey", max_requests=5, window_seconds=60) == 4

    @pytest.mark.unit
    def test_remaining_at_zero(self):
        """remaining() should return 0 when limit is reached, not negative."""
        limiter = RateLimiter()
        for _ in range(6):
            limiter.check("testkey", max_requests=5, window_seconds=60)
        assert limiter.remaining("testkey", max_requests=5, window_seconds=60) == 0

    @pytest.mark.unit
    def test_cleanup_removes_old_entries(self):
        """_cleanup should remove timestamps older than the window."""
        limiter = RateLimiter()
        old_time = time.time() - 120  # 2 minutes ago
        limiter._requests["testkey"] = [old_time, old_time + 1, old_time + 2]
        limiter._cleanup("testkey", 60)
        assert len(limiter._requests["testkey"]) == 0

    @pytest.mark.unit
    def test_reset_clears_all_keys(self):
        limiter = RateLimiter()
        limiter.check("a", max_requests=1, window_seconds=60)
        limiter.reset()
        assert limiter.check("a", max_requests=1, window_seconds=60) is True


class TestRateLimitDependency:
    """Tests for the rate_limit() FastAPI dependency."""

    def _request(self, ip="203.0.113.9", path="/coupons/validate"):
        request = MagicMock()
        request.client.host = ip
        request.url.path = path
        return request

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_raises_429_with_retry_after(self):
        limiter.reset()
        check = rate_limit(max_requests=2, window_seconds=3600)
        await check(self._request())
        await check(self._request())

        with pytest.raises(RateLimitError) as exc_info:
            await check(self._request())
        assert exc_info.value.status_code == 429
        assert exc_info.value.details == {"retry_after": 3600, "limit": 2}
        limiter.reset()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_keyed_by_route(self):
        limiter.reset()
        check = rate_limit(max_requests=1, window_seconds=60)
        await check(self._request(path="/auth/login"))
        await check(self._request(path="/auth/register"))
        limiter.reset()
