"""Tests for CORS, security headers, and rate limiting middleware."""

import time
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from tally_api.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware, get_client_ip

STRICT_PREFIX = "/api/v1/declaration/challenges"


def _create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for middleware testing."""
    app = FastAPI()

    @app.get("/test")
    async def test_route() -> dict:
        return {"ok": True}

    @app.post(STRICT_PREFIX)
    async def challenge_route() -> dict:
        return {"ok": True}

    return app


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = _create_test_app()
        app.add_middleware(SecurityHeadersMiddleware)
        return TestClient(app)

    def test_all_security_headers_present(self, client: TestClient) -> None:
        response = client.get("/test")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert "max-age=31536000" in response.headers["Strict-Transport-Security"]

    def test_responses_not_cached(self, client: TestClient) -> None:
        response = client.get("/test")
        assert response.headers["Cache-Control"] == "no-store"


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = _create_test_app()
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_minute=5,
            strict_prefixes=(STRICT_PREFIX,),
            strict_requests_per_minute=2,
        )
        return TestClient(app)

    def test_requests_within_limit_succeed(self, client: TestClient) -> None:
        for _ in range(5):
            assert client.get("/test").status_code == 200

    def test_request_over_limit_returns_429(self, client: TestClient) -> None:
        for _ in range(5):
            client.get("/test")

        response = client.get("/test")
        assert response.status_code == 429
        assert response.json() == {"detail": "Rate limit exceeded"}

    def test_declaration_paths_have_tighter_budget(self, client: TestClient) -> None:
        assert client.post(STRICT_PREFIX).status_code == 200
        assert client.post(STRICT_PREFIX).status_code == 200
        assert client.post(STRICT_PREFIX).status_code == 429
        # The general budget is tracked separately
        assert client.get("/test").status_code == 200

    def test_rate_limit_window_expires(self) -> None:
        app = _create_test_app()
        app.add_middleware(RateLimitMiddleware, requests_per_minute=2)
        client = TestClient(app)
        base_time = time.time()

        with patch("tally_api.api.middleware.time.time", return_value=base_time):
            assert client.get("/test").status_code == 200
            assert client.get("/test").status_code == 200
            assert client.get("/test").status_code == 429

        with patch("tally_api.api.middleware.time.time", return_value=base_time + 61):
            assert client.get("/test").status_code == 200

    def test_different_proxy_ips_have_separate_limits(self) -> None:
        app = _create_test_app()
        app.add_middleware(RateLimitMiddleware, requests_per_minute=2)
        client = TestClient(app)

        for _ in range(2):
            assert client.get("/test", headers={"CF-Connecting-IP": "203.0.113.1"}).status_code == 200
        assert client.get("/test", headers={"CF-Connecting-IP": "203.0.113.1"}).status_code == 429
        assert client.get("/test", headers={"CF-Connecting-IP": "203.0.113.2"}).status_code == 200


def _make_request(headers: dict[str, str] | None = None, client_host: str | None = "127.0.0.1") -> Request:
    """Build a minimal Starlette Request with given headers and client address."""
    scope: dict = {
        "type": "http",
        "method": "GET",
        "path": "/test",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    if client_host is not None:
        scope["client"] = (client_host, 0)
    return Request(scope)


class TestGetClientIp:
    """Tests for the get_client_ip helper function."""

    def test_cf_connecting_ip_takes_priority(self) -> None:
        request = _make_request(headers={"CF-Connecting-IP": "203.0.113.1", "X-Real-IP": "192.0.2.1"})
        assert get_client_ip(request) == "203.0.113.1"

    def test_x_forwarded_for_uses_leftmost_ip(self) -> None:
        request = _make_request(headers={"X-Forwarded-For": "203.0.113.1, 10.0.0.1"})
        assert get_client_ip(request) == "203.0.113.1"

    def test_falls_back_to_client_host(self) -> None:
        assert get_client_ip(_make_request(client_host="10.0.0.1")) == "10.0.0.1"

    def test_returns_unknown_when_no_client(self) -> None:
        assert get_client_ip(_make_request(client_host=None)) == "unknown"

    def test_empty_header_value_skipped(self) -> None:
        request = _make_request(headers={"CF-Connecting-IP": "  ", "X-Real-IP": "203.0.113.1"})
        assert get_client_ip(request) == "203.0.113.1"
