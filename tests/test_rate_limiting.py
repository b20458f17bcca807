"""
Tests for rate limiting functionality
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from academy.core.cache import rate_limit_key
from academy.core.rate_limit_middleware import DEFAULT_IP_LIMITS, RATE_LIMITS, RateLimitMiddleware
from academy.core.security import create_access_token


@pytest.fixture
def mock_cache():
    """Mock cache for rate limiting"""
    cache = MagicMock()
    cache.get_int.return_value = 0
    cache.incr.return_value = 1
    return cache


@pytest.fixture
def middleware(mock_cache):
    with patch("academy.core.rate_limit_middleware.get_cache", return_value=mock_cache):
        return RateLimitMiddleware(MagicMock(), enabled=True)


@pytest.fixture
def limited_client(mock_cache):
    """Small app behind the rate limiter with the counters mocked"""
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, enabled=True)

    @app.get("/api/v1/ping")
    async def ping():
        return {"ok": True}

    @app.post("/api/v1/webhooks/stripe")
    async def webhook():
        return {"received": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    with patch("academy.core.rate_limit_middleware.get_cache", return_value=mock_cache):
        yield TestClient(app)


class TestLimitChecks:
    """Minute and hour windows"""

    def test_within_limit_counts_request(self, middleware, mock_cache):
        mock_cache.get_int.return_value = 30

        assert middleware._check_limits("user", "user_123", RATE_LIMITS["free"]) is True
        assert mock_cache.incr.call_count == 2

    def test_first_request_sets_window_expiry(self, middleware, mock_cache):
        middleware._check_limits("ip", "127.0.0.1", DEFAULT_IP_LIMITS)

        ttls = sorted(c.args[1] for c in mock_cache.expire.call_args_list)
        assert ttls == [60, 3600]

    def test_minute_limit_reached(self, middleware, mock_cache):
        mock_cache.get_int.return_value = 60

        assert middleware._check_limits("user", "user_123", RATE_LIMITS["free"]) is False
        mock_cache.incr.assert_not_called()

    def test_hour_limit_reached(self, middleware, mock_cache):
        mock_cache.get_int.side_effect = lambda key: 1000 if ":hour:" in key else 10

        assert middleware._check_limits("user", "user_123", RATE_LIMITS["free"]) is False

    def test_higher_plans_allow_more(self, middleware, mock_cache):
        mock_cache.get_int.return_value = 100

        assert middleware._check_limits("user", "u", RATE_LIMITS["free"]) is False
        assert middleware._check_limits("user", "u", RATE_LIMITS["pro"]) is True

    def test_redis_down_lets_requests_through(self, middleware, mock_cache):
        mock_cache.get_int.return_value = None
        mock_cache.incr.return_value = None

        assert middleware._check_limits("ip", "10.0.0.1", DEFAULT_IP_LIMITS) is True

    def test_key_buckets(self):
        now = datetime(2025, 3, 10, 14, 37, 12)

        assert rate_limit_key("ip", "1.2.3.4", "minute", now) == "rate_limit:ip:1.2.3.4:minute:2025-03-10T14:37:00"
        assert rate_limit_key("ip", "1.2.3.4", "hour", now) == "rate_limit:ip:1.2.3.4:hour:2025-03-10T14:00:00"
        assert rate_limit_key("ip", "1.2.3.4", "minute", now + timedelta(minutes=1)) != \
            rate_limit_key("ip", "1.2.3.4", "minute", now)


class TestClientIp:
    """Client address resolution behind proxies"""

    def test_forwarded_for_first_hop(self, middleware):
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}

        assert middleware._get_client_ip(request) == "203.0.113.9"

    def test_falls_back_to_peer(self, middleware):
        request = MagicMock()
        request.headers = {}
        request.client.host = "127.0.0.1"

        assert middleware._get_client_ip(request) == "127.0.0.1"


class TestMiddlewareDispatch:
    """End to end through a Starlette app"""

    def test_anonymous_over_limit_gets_429(self, limited_client, mock_cache):
        mock_cache.get_int.return_value = DEFAULT_IP_LIMITS["per_minute"]

        response = limited_client.get("/api/v1/ping")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["retry_after"] == 60

    def test_health_and_webhooks_are_not_limited(self, limited_client, mock_cache):
        mock_cache.get_int.return_value = 10_000

        assert limited_client.get("/health").status_code == 200
        assert limited_client.post("/api/v1/webhooks/stripe").status_code == 200

    def test_signed_in_user_gets_plan_limits(self, limited_client, mock_cache, plans, make_user, make_subscription):
        user = make_user()
        make_subscription(user, plans["pro"], period_end=datetime.utcnow() + timedelta(days=10))
        limited_client.cookies.set("auth_token", create_access_token(user.id, user.email))
        mock_cache.get_int.return_value = 5

        response = limited_client.get("/api/v1/ping")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "120"
        assert response.headers["X-RateLimit-Remaining"] == "115"

    def test_signed_in_user_over_limit(self, limited_client, mock_cache, plans, make_user, make_subscription):
        user = make_user()
        make_subscription(user, plans["free"], period_end=datetime.utcnow() + timedelta(days=300))
        limited_client.cookies.set("auth_token", create_access_token(user.id, user.email))
        mock_cache.get_int.return_value = RATE_LIMITS["free"]["per_minute"]

        response = limited_client.get("/api/v1/ping")

        assert response.status_code == 429
        assert "free plan" in response.json()["detail"]
        assert response.headers["X-RateLimit-Limit"] == "60"

    def test_disabled_middleware_passes_everything(self, mock_cache):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, enabled=False)

        @app.get("/api/v1/ping")
        async def ping():
            return {"ok": True}

        mock_cache.get_int.return_value = 10_000
        with patch("academy.core.rate_limit_middleware.get_cache", return_value=mock_cache):
            assert TestClient(app).get("/api/v1/ping").status_code == 200
