"""CORS, rate limiting, and security headers middleware."""

import math
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from blog_api.core.config import Settings

_WINDOW_SECONDS = 60.0


def get_client_ip(request: Request, trusted_headers: list[str] | None = None) -> str:
    """Extract the client IP from trusted proxy headers or the direct connection.

    No header is trusted unless listed in ``trusted_headers``. For
    X-Forwarded-For the rightmost address is used, since that is the hop the
    trusted proxy appended; earlier entries are client-supplied. Falls back
    to request.client.host, then "unknown".
    """
    for header in trusted_headers or ():
        value = request.headers.get(header, "").strip()
        if not value:
            continue
        if header.lower() == "x-forwarded-for":
            hops = [hop.strip() for hop in value.split(",") if hop.strip()]
            if hops:
                return hops[-1]
            continue
        return value

    if request.client:
        return request.client.host
    return "unknown"


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Configure CORS middleware on the FastAPI app."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After"],
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Cache-Control"] = "no-store"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory per-IP sliding window rate limit.

    Credential endpoints (``credential_paths``) draw from a second, smaller
    budget so password guessing across many usernames from one address is
    throttled well before the general limit. This complements the
    per-username login lockout. Buckets idle for a whole window are dropped.
    """

    def __init__(
        self,
        app: ASGIApp,
        requests_per_minute: int = 60,
        credential_requests_per_minute: int | None = None,
        credential_paths: frozenset[str] = frozenset(),
        trusted_proxy_headers: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.credential_requests_per_minute = credential_requests_per_minute or requests_per_minute
        self.credential_paths = credential_paths
        self.trusted_proxy_headers = trusted_proxy_headers or []
        self._request_counts: dict[tuple[str, str], list[float]] = {}
        self._last_sweep = 0.0

    def _bucket(self, request: Request, client_ip: str) -> tuple[tuple[str, str], int]:
        if request.method == "POST" and request.url.path in self.credential_paths:
            return (client_ip, "credentials"), self.credential_requests_per_minute
        return (client_ip, "general"), self.requests_per_minute

    def _sweep(self, window_start: float) -> None:
        idle = [key for key, stamps in self._request_counts.items() if stamps[-1] <= window_start]
        for key in idle:
            del self._request_counts[key]

    @property
    def tracked_keys(self) -> int:
        """Number of buckets currently held in memory."""
        return len(self._request_counts)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client_ip = get_client_ip(request, self.trusted_proxy_headers)
        key, limit = self._bucket(request, client_ip)
        now = time.time()
        window_start = now - _WINDOW_SECONDS

        if now - self._last_sweep >= _WINDOW_SECONDS:
            self._sweep(window_start)
            self._last_sweep = now

        recent = [t for t in self._request_counts.get(key, ()) if t > window_start]

        if len(recent) >= limit:
            self._request_counts[key] = recent
            logger.warning(f"Rate limit ({key[1]}) exceeded for {client_ip} on {request.method} {request.url.path}")
            return Response(
                content='{"detail":"Rate limit exceeded","code":"rate_limited"}',
                status_code=429,
                media_type="application/json",
                headers={"Retry-After": str(max(1, math.ceil(recent[0] + _WINDOW_SECONDS - now)))},
            )

        recent.append(now)
        self._request_counts[key] = recent
        return await call_next(request)
