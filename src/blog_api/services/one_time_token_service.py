"""Single-use tokens for email verification and password reset.

Tokens are stored as SHA-256 digests. Consumption is one atomic
``DELETE ... RETURNING`` statement, so of two concurrent attempts with the
same token exactly one can succeed.
"""

import itertools
import secrets
import time
import uuid
from datetime import UTC, datetime, timedelta

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.security import hash_token
from blog_api.models.one_time_token import OneTimeToken, OneTimeTokenType


class OneTimeTokenGenerator:
    """Produces opaque one-time tokens.

    Each token joins a nanosecond timestamp, a per-generator sequence number
    and 24 bytes of CSPRNG output. The generator is created once per
    application and passed to the services that need it.
    """

    def __init__(self, start: int = 0) -> None:
        self._counter = itertools.count(start)

    def generate(self) -> str:
        return f"{time.time_ns()}-{next(self._counter)}-{secrets.token_urlsafe(24)}"


async def issue(
    session: AsyncSession,
    generator: OneTimeTokenGenerator,
    *,
    user_id: uuid.UUID,
    token_type: OneTimeTokenType,
    ttl: timedelta,
    now: datetime | None = None,
) -> str:
    """Persist a new one-time token and return its plaintext value.

    The row is flushed but not committed so it can join the caller's
    transaction.

    Args:
        session: The database session.
        generator: Token generator owned by the application.
        user_id: The user the token acts for.
        token_type: What the token may be used for.
        ttl: Lifetime of the token.
        now: Current time; defaults to UTC now.

    Returns:
        The opaque token to embed in the emailed link.
    """
    now = now or datetime.now(UTC)
    token = generator.generate()
    session.add(
        OneTimeToken(
            token_hash=hash_token(token),
            user_id=user_id,
            token_type=token_type.value,
            expires_at=now + ttl,
        )
    )
    await session.flush()
    logger.info(f"Issued {token_type.value} token for user {user_id} (expires in {int(ttl.total_seconds())}s)")
    return token


async def consume(
    session: AsyncSession,
    token: str,
    token_type: OneTimeTokenType,
    *,
    now: datetime | None = None,
) -> uuid.UUID | None:
    """Atomically redeem a one-time token.

    Args:
        session: The database session.
        token: The opaque token from the link.
        token_type: The purpose the caller is redeeming it for.
        now: Current time; defaults to UTC now.

    Returns:
        The owning user's ID, or None when the token is unknown, expired,
        already used, or was issued for another purpose.
    """
    now = now or datetime.now(UTC)
    stmt = (
        delete(OneTimeToken)
        .where(
            OneTimeToken.token_hash == hash_token(token),
            OneTimeToken.token_type == token_type.value,
            OneTimeToken.expires_at > now,
        )
        .returning(OneTimeToken.user_id)
    )
    result = await session.execute(stmt)
    user_id = result.scalar_one_or_none()
    if user_id is None:
        logger.warning(f"Rejected {token_type.value} token: unknown, expired or already used")
    return user_id


async def revoke_all(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Delete every outstanding one-time token of a user.

    Returns:
        Number of rows removed.
    """
    result = await session.execute(delete(OneTimeToken).where(OneTimeToken.user_id == user_id))
    return result.rowcount or 0


async def purge_expired(session: AsyncSession, *, now: datetime | None = None) -> int:
    """Delete expired one-time tokens.

    Returns:
        Number of rows removed.
    """
    now = now or datetime.now(UTC)
    result = await session.execute(delete(OneTimeToken).where(OneTimeToken.expires_at <= now))
    return result.rowcount or 0
