"""Fixtures wiring the FastAPI application to the in-memory test database."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blog_api.core.config import Settings, get_settings
from blog_api.core.dependencies import get_async_session, get_sessionmaker
from blog_api.main import create_app
from blog_api.services.email_service import SmtpEmailSender


@pytest.fixture
def outbox() -> AsyncMock:
    """Email sender double; calls are inspected through ``send_email.await_args``."""
    return AsyncMock(spec=SmtpEmailSender)


@pytest.fixture
def app(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    seeded: AsyncSession,
    outbox: AsyncMock,
) -> FastAPI:
    """Application bound to the seeded test database."""
    application = create_app(settings)

    async def _session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_async_session] = _session
    application.dependency_overrides[get_sessionmaker] = lambda: session_factory
    application.dependency_overrides[get_settings] = lambda: settings
    application.state.email_sender = outbox
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        yield ac

