"""Unit tests for the login lockout tracker."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from blog_api.core.errors import AccountLockedError
from blog_api.models.login_attempt import LoginAttempt
from blog_api.services import lockout_service

MAX_FAILURES = 5
LOCKOUT_SECONDS = 900


async def _fail(session: AsyncSession, username: str, now: datetime) -> int:
    count = await lockout_service.record_failure(
        session,
        username,
        max_failures=MAX_FAILURES,
        lockout_seconds=LOCKOUT_SECONDS,
        now=now,
    )
    await session.commit()
    return count


class TestRecordFailure:
    """Tests for the atomic failure counter."""

    async def test_first_failure_creates_row(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        assert await _fail(async_session, "alice", now) == 1
        row = (await async_session.execute(select(LoginAttempt))).scalar_one()
        assert row.username == "alice"
        assert row.lockout_expires_at is None

    async def test_counter_increments(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        counts = [await _fail(async_session, "alice", now) for _ in range(3)]
        assert counts == [1, 2, 3]

    async def test_counters_are_per_username(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        await _fail(async_session, "alice", now)
        await _fail(async_session, "alice", now)
        assert await _fail(async_session, "bob", now) == 1

    async def test_threshold_sets_lockout(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        for _ in range(MAX_FAILURES):
            await _fail(async_session, "alice", now)

        with pytest.raises(AccountLockedError) as exc_info:
            await lockout_service.check(async_session, "alice", now=now + timedelta(seconds=1))
        assert 0 < exc_info.value.retry_after_seconds <= LOCKOUT_SECONDS

    async def test_below_threshold_not_locked(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        for _ in range(MAX_FAILURES - 1):
            await _fail(async_session, "alice", now)
        await lockout_service.check(async_session, "alice", now=now)

    async def test_failure_after_expiry_restarts_count(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        for _ in range(MAX_FAILURES):
            await _fail(async_session, "alice", now)

        later = now + timedelta(seconds=LOCKOUT_SECONDS + 1)
        assert await _fail(async_session, "alice", later) == 1
        await lockout_service.check(async_session, "alice", now=later)

    async def test_concurrent_failures_are_all_counted(self, file_engine: AsyncEngine) -> None:
        """Failed logins racing on separate connections each increment the counter once."""
        factory = async_sessionmaker(file_engine, expire_on_commit=False)
        now = datetime.now(UTC)
        attempts = 8

        async def attempt() -> int:
            async with factory() as session:
                count = await lockout_service.record_failure(
                    session,
                    "alice",
                    max_failures=100,
                    lockout_seconds=LOCKOUT_SECONDS,
                    now=now,
                )
                await session.commit()
                return count

        counts = await asyncio.gather(*(attempt() for _ in range(attempts)))
        assert sorted(counts) == list(range(1, attempts + 1))

        async with factory() as session:
            row = (await session.execute(select(LoginAttempt))).scalar_one()
        assert row.failure_count == attempts

    async def test_concurrent_failures_reach_lockout(self, file_engine: AsyncEngine) -> None:
        factory = async_sessionmaker(file_engine, expire_on_commit=False)
        now = datetime.now(UTC)

        async def attempt() -> None:
            async with factory() as session:
                await lockout_service.record_failure(
                    session,
                    "alice",
                    max_failures=MAX_FAILURES,
                    lockout_seconds=LOCKOUT_SECONDS,
                    now=now,
                )
                await session.commit()

        await asyncio.gather(*(attempt() for _ in range(MAX_FAILURES)))

        async with factory() as session:
            with pytest.raises(AccountLockedError):
                await lockout_service.check(session, "alice", now=now + timedelta(seconds=1))


class TestCheck:
    """Tests for the lockout gate."""

    async def test_unknown_username_passes(self, async_session: AsyncSession) -> None:
        await lockout_service.check(async_session, "nobody")

    async def test_lockout_expires(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        for _ in range(MAX_FAILURES):
            await _fail(async_session, "alice", now)
        await lockout_service.check(async_session, "alice", now=now + timedelta(seconds=LOCKOUT_SECONDS + 1))


class TestRecordSuccess:
    async def test_success_clears_counter(self, async_session: AsyncSession) -> None:
        now = datetime.now(UTC)
        for _ in range(MAX_FAILURES - 1):
            await _fail(async_session, "alice", now)
        await lockout_service.record_success(async_session, "alice")
        await async_session.commit()

        assert (await async_session.execute(select(LoginAttempt))).scalar_one_or_none() is None
        assert await _fail(async_session, "alice", now) == 1
