"""Shared test fixtures for async database, sessions, settings, and users."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime

import pytest
from sqlalchemy import event, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from blog_api.core.config import Settings
from blog_api.core.security import hash_password
from blog_api.models import Base, Role, User, user_roles
from blog_api.services.rbac_service import seed_defaults

TEST_PASSWORD = "Str0ng!Pass"


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key="test-secret-key-not-for-production-0000",
        jwt_algorithm="HS256",
        jwt_access_token_expire_minutes=15,
        jwt_refresh_token_expire_days=7,
        max_login_failures=5,
        lockout_duration_seconds=900,
        frontend_base_url="https://blog.test",
        smtp_host=None,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    _enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:  # type: ignore[no-untyped-def]
    """File-backed SQLite engine for tests that need several real connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}", echo=False)
    _enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(async_session: AsyncSession) -> AsyncSession:
    """Session over a database holding the default roles and permissions."""
    await seed_defaults(async_session)
    await async_session.commit()
    return async_session


async def create_user(
    session: AsyncSession,
    username: str,
    *,
    roles: tuple[str, ...] = ("author",),
    password: str = TEST_PASSWORD,
    verified: bool = True,
) -> User:
    """Insert a user holding the given roles and commit."""
    user = User(
        id=uuid.uuid4(),
        username=username,
        email=f"{username}@example.com",
        hashed_password=hash_password(password),
        email_verified_at=datetime.now(UTC) if verified else None,
    )
    session.add(user)
    await session.flush()
    for role_name in roles:
        role_id = (await session.execute(select(Role.id).where(Role.name == role_name))).scalar_one()
        await session.execute(insert(user_roles).values(user_id=user.id, role_id=role_id))
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
def make_user(seeded: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory fixture creating committed users in the seeded database."""

    async def _make(username: str, **kwargs) -> User:  # type: ignore[no-untyped-def]
        return await create_user(seeded, username, **kwargs)

    return _make
