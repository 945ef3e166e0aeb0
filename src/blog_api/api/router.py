"""Root API router with /api/v1 prefix and middleware registration."""

from fastapi import APIRouter, FastAPI

from blog_api.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware, setup_cors
from blog_api.core.config import Settings
from blog_api.schemas.common import ErrorResponse


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from blog_api.api.v1.admin import router as admin_router
    from blog_api.api.v1.auth import router as auth_router
    from blog_api.api.v1.drafts import router as drafts_router

    root_router = APIRouter(
        prefix=settings.api_v1_prefix,
        responses={
            401: {"model": ErrorResponse, "description": "Missing, invalid or expired credentials"},
            403: {"model": ErrorResponse, "description": "Authenticated caller lacks a permission"},
        },
    )
    root_router.include_router(auth_router)
    root_router.include_router(admin_router)
    root_router.include_router(drafts_router)

    return root_router


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware on the FastAPI app.

    Args:
        app: The FastAPI application.
        settings: Application settings.
    """
    setup_cors(app, settings)
    app.add_middleware(SecurityHeadersMiddleware)
    credential_paths = frozenset(
        f"{settings.api_v1_prefix}/auth/{name}"
        for name in ("login", "register", "forgot-password", "reset-password", "change-password")
    )
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
        credential_requests_per_minute=settings.auth_rate_limit_per_minute,
        credential_paths=credential_paths,
        trusted_proxy_headers=settings.trusted_proxy_header_list,
    )
