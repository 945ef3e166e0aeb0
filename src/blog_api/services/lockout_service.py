"""Login lockout tracking keyed by username.

Clear → Accumulating → Locked → (lockout expires) → Clear. The failure
counter is advanced by a single atomic upsert so concurrent failed logins
for the same username never lose an increment.
"""

from datetime import UTC, datetime, timedelta

from loguru import logger
from sqlalchemy import and_, case, delete, literal, null, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.database import dialect_name
from blog_api.core.errors import AccountLockedError
from blog_api.models.login_attempt import LoginAttempt


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


async def check(session: AsyncSession, username: str, *, now: datetime | None = None) -> None:
    """Reject the login attempt while a lockout is active.

    Args:
        session: The database session.
        username: The username being logged into.
        now: Current time; defaults to UTC now.

    Raises:
        AccountLockedError: If the username is locked and the lockout has not expired.
    """
    now = now or datetime.now(UTC)
    result = await session.execute(
        select(LoginAttempt.lockout_expires_at).where(LoginAttempt.username == username)
    )
    lockout_expires_at = result.scalar_one_or_none()
    if lockout_expires_at is None:
        return
    lockout_expires_at = _as_utc(lockout_expires_at)
    if lockout_expires_at > now:
        remaining = lockout_expires_at - now
        logger.warning(f"Login rejected for locked username '{username}' ({int(remaining.total_seconds())}s remaining)")
        raise AccountLockedError(remaining, context={"username": username})


async def record_failure(
    session: AsyncSession,
    username: str,
    *,
    max_failures: int,
    lockout_seconds: int,
    now: datetime | None = None,
) -> int:
    """Atomically count a failed login and lock the username at the threshold.

    The increment, the lockout decision and the restart after an expired
    lockout all happen inside one INSERT ... ON CONFLICT DO UPDATE statement.

    Args:
        session: The database session.
        username: The username that failed to log in.
        max_failures: Failures that trigger a lockout.
        lockout_seconds: Lockout duration.
        now: Current time; defaults to UTC now.

    Returns:
        The failure count after this attempt.
    """
    now = now or datetime.now(UTC)
    lockout_until = now + timedelta(seconds=lockout_seconds)
    table = LoginAttempt.__table__

    lockout_elapsed = and_(table.c.lockout_expires_at.is_not(None), table.c.lockout_expires_at <= now)
    new_count = case((lockout_elapsed, literal(1)), else_=table.c.failure_count + 1)
    new_lockout = case(
        (new_count >= max_failures, literal(lockout_until, type_=table.c.lockout_expires_at.type)),
        (lockout_elapsed, null()),
        else_=table.c.lockout_expires_at,
    )

    insert = pg_insert if dialect_name(session) == "postgresql" else sqlite_insert
    stmt = (
        insert(LoginAttempt)
        .values(
            username=username,
            failure_count=1,
            lockout_expires_at=lockout_until if max_failures <= 1 else None,
            last_attempt_at=now,
        )
        .on_conflict_do_update(
            index_elements=[LoginAttempt.username],
            set_={
                "failure_count": new_count,
                "lockout_expires_at": new_lockout,
                "last_attempt_at": now,
            },
        )
        .returning(LoginAttempt.failure_count)
    )
    result = await session.execute(stmt)
    failure_count = result.scalar_one()

    if failure_count >= max_failures:
        logger.warning(f"Username '{username}' locked for {lockout_seconds}s after {failure_count} failed logins")
    else:
        logger.info(f"Failed login {failure_count}/{max_failures} for username '{username}'")
    return failure_count


async def record_success(session: AsyncSession, username: str) -> None:
    """Clear the failure counter and any lockout after a successful login."""
    await session.execute(delete(LoginAttempt).where(LoginAttempt.username == username))
