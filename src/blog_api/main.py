"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from blog_api import __version__
from blog_api.core.config import Settings, get_settings
from blog_api.core.database import dispose_engine, init_engine
from blog_api.core.logging import setup_logging
from blog_api.services.email_service import build_email_sender
from blog_api.services.one_time_token_service import OneTimeTokenGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle: init engine on startup, dispose on shutdown."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, log_dir=settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)
    logger.info(f"Blog API {__version__} starting ({settings.environment})")

    yield

    await dispose_engine()
    logger.info("Blog API stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Blog API",
        description="Identity, access control and draft sharing for the blog platform",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    # One generator and one email sender per application.
    app.state.token_generator = OneTimeTokenGenerator()
    app.state.email_sender = build_email_sender(settings)

    from blog_api.api.errors import register_exception_handlers
    from blog_api.api.router import create_router, setup_middleware

    register_exception_handlers(app)
    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
