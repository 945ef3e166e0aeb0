"""FastAPI dependency injection for database sessions, caller identity and permissions.

Provides get_async_session, get_sessionmaker, the bearer-token extractors
get_current_claims (required) and get_user_context (optional), and the
permission_required factory.
"""

from collections.abc import AsyncGenerator, Callable
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blog_api.core.config import Settings, get_settings
from blog_api.core.database import get_session_factory
from blog_api.core.errors import InvalidOrExpiredTokenError, UnauthenticatedError
from blog_api.core.identity import Authenticated, Guest, UserContext, require_permission
from blog_api.services import token_service
from blog_api.services.email_service import EmailSender
from blog_api.services.one_time_token_service import OneTimeTokenGenerator

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/login", auto_error=False)


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the session factory, for work that outlives the request session."""
    return get_session_factory()


def get_token_generator(request: Request) -> OneTimeTokenGenerator:
    """Return the application's one-time token generator."""
    return request.app.state.token_generator


def get_email_sender(request: Request) -> EmailSender:
    """Return the application's outbound email sender."""
    return request.app.state.email_sender


async def get_current_claims(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Authenticated:
    """Require a valid bearer access token.

    Raises:
        UnauthenticatedError: If no bearer token was sent.
        InvalidOrExpiredTokenError: If the token does not validate.
    """
    if token is None:
        raise UnauthenticatedError
    return Authenticated(token_service.validate_access_token(token, settings))


async def get_user_context(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserContext:
    """Resolve the caller, treating a missing or invalid token as a guest."""
    if token is None:
        return Guest()
    try:
        return Authenticated(token_service.validate_access_token(token, settings))
    except InvalidOrExpiredTokenError:
        logger.debug("Ignoring invalid bearer token on optional-auth route")
        return Guest()


def permission_required(permission: str) -> Callable[..., Any]:
    """Factory that creates a dependency requiring one permission.

    Args:
        permission: Permission name, e.g. "admin:role_management".

    Returns:
        A FastAPI dependency returning the caller's context when permitted.
    """

    async def permission_checker(
        context: Annotated[UserContext, Depends(get_user_context)],
    ) -> UserContext:
        require_permission(context, permission)
        return context

    return permission_checker
