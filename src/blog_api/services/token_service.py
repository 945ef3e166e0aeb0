"""Access and refresh token lifecycle.

Access tokens are short-lived signed JWTs validated without touching the
database. Refresh tokens are opaque random strings stored only as SHA-256
digests; each is usable exactly once and is rotated on every refresh.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
import pydantic
from loguru import logger
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.config import Settings
from blog_api.core.errors import InvalidOrExpiredTokenError
from blog_api.core.security import (
    ACCESS_TOKEN_TYPE,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_token,
)
from blog_api.models.refresh_token import RefreshToken
from blog_api.models.user import User
from blog_api.schemas.auth import AccessClaims
from blog_api.services import rbac_service


@dataclass(frozen=True)
class IssuedTokens:
    """An access/refresh token pair handed to the client."""

    access_token: str
    refresh_token: str
    expires_in: int


async def issue_tokens(
    session: AsyncSession,
    user: User,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> IssuedTokens:
    """Issue a new token pair for a user.

    Roles and permissions are resolved here and embedded in the access
    token, so later permission checks need no database round trip.

    Args:
        session: The database session.
        user: The authenticated user.
        settings: Application settings.
        now: Issue time; defaults to UTC now.

    Returns:
        The new token pair.
    """
    now = now or datetime.now(UTC)
    roles = await rbac_service.get_user_role_names(session, user.id)
    permissions = await rbac_service.get_user_permission_names(session, user.id)

    access_token = create_access_token(
        subject=str(user.id),
        username=user.username,
        roles=roles,
        permissions=permissions,
        secret_key=settings.jwt_secret_key,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.jwt_access_token_expire_minutes,
        now=now,
    )

    refresh_token = generate_refresh_token()
    session.add(
        RefreshToken(
            token_hash=hash_token(refresh_token),
            user_id=user.id,
            expires_at=now + timedelta(days=settings.jwt_refresh_token_expire_days),
        )
    )
    await session.flush()

    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


def validate_access_token(token: str, settings: Settings) -> AccessClaims:
    """Verify an access token and return its claims.

    Raises:
        InvalidOrExpiredTokenError: If the signature, expiry, issuer, audience,
            claim shape or token type is wrong.
    """
    try:
        payload = decode_access_token(
            token,
            secret_key=settings.jwt_secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.jwt_algorithm,
        )
        claims = AccessClaims.model_validate(payload)
    except jwt.PyJWTError as e:
        logger.debug(f"Access token rejected: {type(e).__name__}")
        raise InvalidOrExpiredTokenError from e
    except pydantic.ValidationError as e:
        logger.debug("Access token rejected: malformed claims")
        raise InvalidOrExpiredTokenError from e
    if claims.type != ACCESS_TOKEN_TYPE:
        logger.debug(f"Access token rejected: wrong type '{claims.type}'")
        raise InvalidOrExpiredTokenError
    return claims


async def refresh(
    session: AsyncSession,
    refresh_token: str,
    settings: Settings,
    *,
    now: datetime | None = None,
) -> IssuedTokens:
    """Rotate a refresh token.

    The presented token is deleted with a single ``DELETE ... RETURNING``
    statement. Only the caller that actually removed the row receives a new
    pair, so a rotated or concurrently replayed token always fails.

    Raises:
        InvalidOrExpiredTokenError: If the token is unknown, expired or already rotated.
    """
    now = now or datetime.now(UTC)
    result = await session.execute(
        delete(RefreshToken)
        .where(RefreshToken.token_hash == hash_token(refresh_token), RefreshToken.expires_at > now)
        .returning(RefreshToken.user_id)
    )
    user_id = result.scalar_one_or_none()
    if user_id is None:
        logger.warning("Refresh rejected: token unknown, expired or already rotated")
        raise InvalidOrExpiredTokenError

    user = await session.get(User, user_id)
    if user is None:
        logger.warning(f"Refresh rejected: user {user_id} no longer exists")
        raise InvalidOrExpiredTokenError(context={"user_id": str(user_id)})

    logger.info(f"Rotated refresh token for user {user.username}")
    return await issue_tokens(session, user, settings, now=now)


async def revoke(session: AsyncSession, refresh_token: str) -> bool:
    """Delete a single refresh token. Revoking an unknown token is a no-op.

    Returns:
        True if a token was removed.
    """
    result = await session.execute(delete(RefreshToken).where(RefreshToken.token_hash == hash_token(refresh_token)))
    return bool(result.rowcount)


async def revoke_all(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Delete every refresh token belonging to a user.

    Returns:
        Number of tokens revoked.
    """
    result = await session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    count = result.rowcount or 0
    logger.info(f"Revoked {count} refresh token(s) for user {user_id}")
    return count


async def purge_expired(session: AsyncSession, *, now: datetime | None = None) -> int:
    """Delete expired refresh tokens.

    Returns:
        Number of rows removed.
    """
    now = now or datetime.now(UTC)
    result = await session.execute(delete(RefreshToken).where(RefreshToken.expires_at <= now))
    return result.rowcount or 0
