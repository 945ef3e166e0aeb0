"""Tests for security headers, rate limiting and client IP extraction."""

import time
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from blog_api.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware, get_client_ip


def _create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for middleware testing."""
    app = FastAPI()

    @app.get("/test")
    async def test_route() -> dict:
        return {"ok": True}

    @app.post("/login")
    async def login_route() -> dict:
        return {"ok": True}

    return app


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = _create_test_app()
        app.add_middleware(SecurityHeadersMiddleware)
        return TestClient(app)

    def test_headers_present(self, client: TestClient) -> None:
        response = client.get("/test")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
        assert "max-age=31536000" in response.headers["Strict-Transport-Security"]


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = _create_test_app()
        app.add_middleware(RateLimitMiddleware, requests_per_minute=5)
        return TestClient(app)

    def test_requests_within_limit_succeed(self, client: TestClient) -> None:
        for _ in range(5):
            assert client.get("/test").status_code == 200

    def test_request_over_limit_returns_429(self, client: TestClient) -> None:
        for _ in range(5):
            client.get("/test")

        response = client.get("/test")
        assert response.status_code == 429
        assert response.json() == {"detail": "Rate limit exceeded", "code": "rate_limited"}
        assert 0 < int(response.headers["Retry-After"]) <= 60

    def test_rate_limit_window_expires(self) -> None:
        """Requests older than the 60s window no longer count."""
        app = _create_test_app()
        app.add_middleware(RateLimitMiddleware, requests_per_minute=2)
        client = TestClient(app)

        base_time = time.time()
        with patch("blog_api.api.middleware.time.time", return_value=base_time):
            assert client.get("/test").status_code == 200
            assert client.get("/test").status_code == 200
            assert client.get("/test").status_code == 429

        with patch("blog_api.api.middleware.time.time", return_value=base_time + 61):
            assert client.get("/test").status_code == 200

    def test_credential_paths_have_their_own_budget(self) -> None:
        app = _create_test_app()
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_minute=5,
            credential_requests_per_minute=2,
            credential_paths=frozenset({"/login"}),
        )
        client = TestClient(app)

        assert client.post("/login").status_code == 200
        assert client.post("/login").status_code == 200
        assert client.post("/login").status_code == 429
        assert client.get("/test").status_code == 200


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

    def test_headers_ignored_by_default(self) -> None:
        request = _make_request(headers={"X-Forwarded-For": "198.51.100.1", "X-Real-IP": "192.0.2.1"})
        assert get_client_ip(request) == "127.0.0.1"

    def test_rightmost_forwarded_for_when_trusted(self) -> None:
        request = _make_request(headers={"X-Forwarded-For": "203.0.113.9, 198.51.100.1"})
        assert get_client_ip(request, trusted_headers=["X-Forwarded-For"]) == "198.51.100.1"

    def test_real_ip_when_trusted(self) -> None:
        request = _make_request(headers={"X-Real-IP": "192.0.2.1"})
        assert get_client_ip(request, trusted_headers=["X-Real-IP"]) == "192.0.2.1"

    def test_empty_forwarded_for_falls_through(self) -> None:
        request = _make_request(headers={"X-Forwarded-For": " , "})
        assert get_client_ip(request, trusted_headers=["X-Forwarded-For"]) == "127.0.0.1"

    def test_falls_back_to_client(self) -> None:
        assert get_client_ip(_make_request()) == "127.0.0.1"

    def test_unknown_without_client(self) -> None:
        assert get_client_ip(_make_request(client_host=None)) == "unknown"


class TestClientKeying:
    """The credential budget is keyed on an address the client cannot choose."""

    def _client(self, trusted: list[str] | None = None) -> TestClient:
        app = _create_test_app()
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_minute=100,
            credential_requests_per_minute=3,
            credential_paths=frozenset({"/login"}),
            trusted_proxy_headers=trusted,
        )
        return TestClient(app)

    def test_rotating_forwarded_for_does_not_reset_budget(self) -> None:
        client = self._client()
        codes = [client.post("/login", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code for i in range(10)]
        assert codes[:3] == [200, 200, 200]
        assert set(codes[3:]) == {429}

    def test_spoofed_prefix_ignored_behind_trusted_proxy(self) -> None:
        client = self._client(trusted=["X-Forwarded-For"])
        codes = [
            client.post("/login", headers={"X-Forwarded-For": f"10.0.0.{i}, 198.51.100.7"}).status_code
            for i in range(5)
        ]
        assert codes == [200, 200, 200, 429, 429]


class TestBucketEviction:
    """Idle buckets do not accumulate."""

    def test_idle_buckets_are_dropped(self) -> None:
        app = _create_test_app()
        app.add_middleware(RateLimitMiddleware, requests_per_minute=5, trusted_proxy_headers=["X-Real-IP"])
        client = TestClient(app)

        base_time = time.time()
        with patch("blog_api.api.middleware.time.time", return_value=base_time):
            for i in range(20):
                client.get("/test", headers={"X-Real-IP": f"192.0.2.{i}"})

        middleware = _find_rate_limiter(client.app)
        assert middleware.tracked_keys == 20

        with patch("blog_api.api.middleware.time.time", return_value=base_time + 61):
            client.get("/test", headers={"X-Real-IP": "192.0.2.200"})
        assert middleware.tracked_keys == 1


def _find_rate_limiter(app: object) -> RateLimitMiddleware:
    """Walk the built middleware stack down to the rate limiter instance."""
    node = getattr(app, "middleware_stack", None)
    while node is not None:
        if isinstance(node, RateLimitMiddleware):
            return node
        node = getattr(node, "app", None)
    raise AssertionError("RateLimitMiddleware not found in the middleware stack")
