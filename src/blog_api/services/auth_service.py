"""Authentication orchestration.

Composes the lockout tracker, password hashing, RBAC resolution, token
lifecycle and one-time tokens into the register, login, refresh, logout,
email verification and password reset flows. Each flow runs inside one
bounded transaction; store failures are re-raised as ``AuthError``
subclasses and never reach the HTTP layer as raw database errors.
"""

import asyncio
import functools
import uuid
from datetime import UTC, datetime, timedelta

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blog_api.core.config import Settings
from blog_api.core.database import unit_of_work
from blog_api.core.errors import (
    AuthError,
    ConflictError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from blog_api.core.identity import Authenticated
from blog_api.core.security import hash_password, validate_password_strength, verify_password
from blog_api.models.one_time_token import OneTimeTokenType
from blog_api.models.post import Post
from blog_api.models.rbac import user_roles
from blog_api.models.user import User
from blog_api.schemas.auth import RegisterRequest, UserPublic
from blog_api.services import lockout_service, one_time_token_service, rbac_service, token_service
from blog_api.services.email_service import (
    EmailDeliveryError,
    EmailSender,
    password_reset_email,
    redact_email,
    verification_email,
)
from blog_api.services.one_time_token_service import OneTimeTokenGenerator
from blog_api.services.token_service import IssuedTokens


@functools.cache
def _dummy_hash() -> str:
    """Hash verified for unknown usernames so both failure paths cost the same."""
    return hash_password("timing-equalizer-Pa55!")


def to_user_public(user: User, roles: list[str]) -> UserPublic:
    """Build the client-safe view of a user."""
    return UserPublic(
        id=user.id,
        username=user.username,
        email=user.email,
        created_at=user.created_at,
        email_verified=user.email_verified_at is not None,
        roles=roles,
    )


async def _get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def _get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def _send_best_effort(email_sender: EmailSender, to: str, subject: str, html_body: str) -> None:
    try:
        await email_sender.send_email(to, subject, html_body)
    except EmailDeliveryError as e:
        logger.warning(f"Could not send '{subject}' to {redact_email(to)}: {e}")


async def _insert_user(
    session: AsyncSession,
    *,
    username: str,
    email: str,
    password: str,
    role_name: str,
    verified: bool,
) -> User:
    """Create a user and attach a role inside the caller's transaction."""
    if await _get_user_by_username(session, username) is not None:
        msg = f"Username '{username}' is already taken"
        raise ConflictError(msg)
    if await _get_user_by_email(session, email) is not None:
        msg = "Email is already registered"
        raise ConflictError(msg)

    hashed = await asyncio.to_thread(hash_password, password)
    user = User(
        username=username,
        email=email,
        hashed_password=hashed,
        email_verified_at=datetime.now(UTC) if verified else None,
    )
    session.add(user)
    await session.flush()
    await rbac_service.assign_default_role(session, user.id, role_name)
    await session.refresh(user, attribute_names=["created_at"])
    return user


async def register(
    session: AsyncSession,
    request: RegisterRequest,
    settings: Settings,
    email_sender: EmailSender,
    generator: OneTimeTokenGenerator,
) -> UserPublic:
    """Register a new account.

    The user row, its default role and the email verification token are
    committed together. The verification email is sent after the commit and
    a delivery failure does not undo the registration.

    Args:
        session: The database session.
        request: Registration data.
        settings: Application settings.
        email_sender: Outbound email collaborator.
        generator: One-time token generator.

    Returns:
        The new user's public profile.

    Raises:
        ValidationError: If the password is too weak.
        ConflictError: If the username or email is taken.
        InternalError: If the default role is missing or the store fails.
    """
    validate_password_strength(request.password)

    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await _insert_user(
            session,
            username=request.username,
            email=str(request.email),
            password=request.password,
            role_name=settings.default_role,
            verified=False,
        )
        token = await one_time_token_service.issue(
            session,
            generator,
            user_id=user.id,
            token_type=OneTimeTokenType.EMAIL_VERIFICATION,
            ttl=timedelta(hours=settings.email_verification_ttl_hours),
        )
        roles = await rbac_service.get_user_role_names(session, user.id)

    logger.info(f"Registered user {user.username} ({user.id})")
    link = f"{settings.frontend_base_url}/verify-email?token={token}"
    await _send_best_effort(
        email_sender,
        user.email,
        *verification_email(user.username, link, settings.email_verification_ttl_hours),
    )
    return to_user_public(user, roles)


async def login(
    session: AsyncSession,
    username: str,
    password: str,
    settings: Settings,
) -> tuple[IssuedTokens, UserPublic]:
    """Authenticate with username and password.

    Unknown usernames and wrong passwords fail identically and both count
    toward the lockout threshold.

    Returns:
        Tuple of (issued tokens, user profile).

    Raises:
        AccountLockedError: If the username is currently locked.
        InvalidCredentialsError: If the username or password is wrong.
    """
    authenticated = False
    async with unit_of_work(session, settings.store_timeout_seconds):
        await lockout_service.check(session, username)

        user = await _get_user_by_username(session, username)
        stored_hash = user.hashed_password if user is not None else _dummy_hash()
        password_ok = await asyncio.to_thread(verify_password, password, stored_hash)

        if user is None or not password_ok:
            await lockout_service.record_failure(
                session,
                username,
                max_failures=settings.max_login_failures,
                lockout_seconds=settings.lockout_duration_seconds,
            )
        else:
            await lockout_service.record_success(session, username)
            tokens = await token_service.issue_tokens(session, user, settings)
            roles = await rbac_service.get_user_role_names(session, user.id)
            authenticated = True

    # The failure count must be committed before the error is raised.
    if not authenticated:
        logger.warning(f"Failed login for username '{username}'")
        raise InvalidCredentialsError(context={"username": username})

    logger.info(f"User {user.username} logged in")
    return tokens, to_user_public(user, roles)


async def refresh(session: AsyncSession, refresh_token: str, settings: Settings) -> IssuedTokens:
    """Rotate a refresh token into a new token pair.

    Raises:
        InvalidOrExpiredTokenError: If the refresh token is not live.
    """
    async with unit_of_work(session, settings.store_timeout_seconds):
        return await token_service.refresh(session, refresh_token, settings)


async def logout(session: AsyncSession, refresh_token: str, settings: Settings) -> None:
    """Revoke a refresh token. Unknown tokens are ignored."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        revoked = await token_service.revoke(session, refresh_token)
    if revoked:
        logger.info("Refresh token revoked on logout")


def validate(access_token: str, settings: Settings) -> Authenticated:
    """Validate an access token and return the caller identity.

    Raises:
        InvalidOrExpiredTokenError: If the token is not valid.
    """
    return Authenticated(token_service.validate_access_token(access_token, settings))


async def verify_email(session: AsyncSession, token: str, settings: Settings) -> None:
    """Redeem an email verification token.

    Raises:
        InvalidOrExpiredTokenError: If the token is unknown, expired or used.
    """
    async with unit_of_work(session, settings.store_timeout_seconds):
        user_id = await one_time_token_service.consume(session, token, OneTimeTokenType.EMAIL_VERIFICATION)
        if user_id is None:
            raise InvalidOrExpiredTokenError
        user = await session.get(User, user_id)
        if user is None:
            raise InvalidOrExpiredTokenError(context={"user_id": str(user_id)})
        if user.email_verified_at is None:
            user.email_verified_at = datetime.now(UTC)
    logger.info(f"Email verified for user {user.username}")


async def request_password_reset(
    session: AsyncSession,
    email: str,
    settings: Settings,
    email_sender: EmailSender,
    generator: OneTimeTokenGenerator,
) -> None:
    """Email a password reset link if the address belongs to an account.

    Unknown addresses are logged and otherwise ignored so the response never
    reveals whether an account exists. Delivery failures are logged.
    """
    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await _get_user_by_email(session, email)
        if user is None:
            logger.info(f"Password reset requested for unknown address {redact_email(email)}")
            return
        token = await one_time_token_service.issue(
            session,
            generator,
            user_id=user.id,
            token_type=OneTimeTokenType.PASSWORD_RESET,
            ttl=timedelta(minutes=settings.password_reset_ttl_minutes),
        )

    link = f"{settings.frontend_base_url}/reset-password?token={token}"
    await _send_best_effort(
        email_sender,
        user.email,
        *password_reset_email(user.username, link, settings.password_reset_ttl_minutes),
    )


async def request_password_reset_in_background(
    session_factory: async_sessionmaker[AsyncSession],
    email: str,
    settings: Settings,
    email_sender: EmailSender,
    generator: OneTimeTokenGenerator,
) -> None:
    """Run ``request_password_reset`` after the response has been sent.

    The HTTP response then takes the same time for known and unknown
    addresses. Failures are logged since no client is waiting for them.
    """
    async with session_factory() as session:
        try:
            await request_password_reset(session, email, settings, email_sender, generator)
        except AuthError as e:
            logger.error(f"Password reset request for {redact_email(email)} failed: {e.message}")


def _check_new_password(new_password: str, confirm_password: str) -> None:
    if new_password != confirm_password:
        msg = "Passwords do not match"
        raise ValidationError(msg)
    validate_password_strength(new_password)


async def reset_password(
    session: AsyncSession,
    token: str,
    new_password: str,
    confirm_password: str,
    settings: Settings,
) -> None:
    """Set a new password using a password reset token.

    Every refresh token of the user is revoked in the same transaction.

    Raises:
        ValidationError: If the passwords differ or the new one is too weak.
        InvalidOrExpiredTokenError: If the token is unknown, expired or used.
    """
    _check_new_password(new_password, confirm_password)
    hashed = await asyncio.to_thread(hash_password, new_password)

    async with unit_of_work(session, settings.store_timeout_seconds):
        user_id = await one_time_token_service.consume(session, token, OneTimeTokenType.PASSWORD_RESET)
        if user_id is None:
            raise InvalidOrExpiredTokenError
        user = await session.get(User, user_id)
        if user is None:
            raise InvalidOrExpiredTokenError(context={"user_id": str(user_id)})
        user.hashed_password = hashed
        await token_service.revoke_all(session, user.id)
    logger.info(f"Password reset for user {user.username}")


async def change_password(
    session: AsyncSession,
    user_id: uuid.UUID,
    current_password: str,
    new_password: str,
    confirm_password: str,
    settings: Settings,
) -> None:
    """Change the password of a logged-in user and end all their sessions.

    Raises:
        ValidationError: If the passwords differ or the new one is too weak.
        InvalidCredentialsError: If the current password is wrong.
        UnauthenticatedError: If the user no longer exists.
    """
    _check_new_password(new_password, confirm_password)

    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await session.get(User, user_id)
        if user is None:
            raise UnauthenticatedError(context={"user_id": str(user_id)})
        if not await asyncio.to_thread(verify_password, current_password, user.hashed_password):
            logger.warning(f"Password change rejected for user {user.username}: wrong current password")
            raise InvalidCredentialsError(context={"user_id": str(user_id)})
        user.hashed_password = await asyncio.to_thread(hash_password, new_password)
        await token_service.revoke_all(session, user.id)
    logger.info(f"Password changed for user {user.username}")


async def get_profile(session: AsyncSession, user_id: uuid.UUID) -> UserPublic:
    """Return the public profile of a user.

    Raises:
        NotFoundError: If the user does not exist.
    """
    user = await session.get(User, user_id)
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    roles = await rbac_service.get_user_role_names(session, user.id)
    return to_user_public(user, roles)


async def update_profile(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    username: str | None,
    email: str | None,
    settings: Settings,
    email_sender: EmailSender,
    generator: OneTimeTokenGenerator,
) -> UserPublic:
    """Change the caller's username and/or email address.

    A new email address starts unverified and a verification link is sent
    to it after the commit.

    Raises:
        UnauthenticatedError: If the user no longer exists.
        ConflictError: If another account holds the username or email.
    """
    token = None
    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await session.get(User, user_id)
        if user is None:
            raise UnauthenticatedError(context={"user_id": str(user_id)})

        if username is not None and username != user.username:
            existing = await _get_user_by_username(session, username)
            if existing is not None and existing.id != user_id:
                msg = f"Username '{username}' is already taken"
                raise ConflictError(msg)
            logger.info(f"User {user.username} renamed to {username}")
            user.username = username

        if email is not None and email.lower() != user.email.lower():
            existing = await _get_user_by_email(session, email)
            if existing is not None and existing.id != user_id:
                msg = "Email is already registered"
                raise ConflictError(msg)
            user.email = email
            user.email_verified_at = None
            token = await one_time_token_service.issue(
                session,
                generator,
                user_id=user.id,
                token_type=OneTimeTokenType.EMAIL_VERIFICATION,
                ttl=timedelta(hours=settings.email_verification_ttl_hours),
            )

        await session.flush()
        roles = await rbac_service.get_user_role_names(session, user.id)
        profile = to_user_public(user, roles)

    if token is not None:
        link = f"{settings.frontend_base_url}/verify-email?token={token}"
        await _send_best_effort(
            email_sender,
            profile.email,
            *verification_email(profile.username, link, settings.email_verification_ttl_hours),
        )
    return profile


async def delete_user(session: AsyncSession, user_id: uuid.UUID, settings: Settings) -> None:
    """Delete an account with its sessions, one-time tokens and role memberships.

    Posts keep existing without an author. Draft access records are kept.

    Raises:
        NotFoundError: If the user does not exist.
    """
    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await session.get(User, user_id)
        if user is None:
            msg = f"User {user_id} not found"
            raise NotFoundError(msg)
        username = user.username
        await token_service.revoke_all(session, user_id)
        await one_time_token_service.revoke_all(session, user_id)
        await session.execute(delete(user_roles).where(user_roles.c.user_id == user_id))
        await session.execute(update(Post).where(Post.author_id == user_id).values(author_id=None))
        await session.execute(delete(User).where(User.id == user_id))
    logger.info(f"Deleted user {username} ({user_id})")


async def admin_reset_password(
    session: AsyncSession,
    user_id: uuid.UUID,
    new_password: str,
    confirm_password: str,
    settings: Settings,
) -> None:
    """Set a user's password on an administrator's behalf and end all their sessions.

    Raises:
        ValidationError: If the passwords differ or the new one is too weak.
        NotFoundError: If the user does not exist.
    """
    _check_new_password(new_password, confirm_password)
    hashed = await asyncio.to_thread(hash_password, new_password)

    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await session.get(User, user_id)
        if user is None:
            msg = f"User {user_id} not found"
            raise NotFoundError(msg)
        user.hashed_password = hashed
        await token_service.revoke_all(session, user.id)
    logger.info(f"Password of user {user.username} reset by an administrator")


async def create_user(
    session: AsyncSession,
    *,
    username: str,
    email: str,
    password: str,
    role_name: str,
    settings: Settings,
) -> UserPublic:
    """Create a pre-verified account for operators (CLI).

    Raises:
        ValidationError: If the password is too weak.
        ConflictError: If the username or email is taken.
        InternalError: If the role does not exist.
    """
    validate_password_strength(password)
    async with unit_of_work(session, settings.store_timeout_seconds):
        user = await _insert_user(
            session,
            username=username,
            email=email,
            password=password,
            role_name=role_name,
            verified=True,
        )
        roles = await rbac_service.get_user_role_names(session, user.id)
    logger.info(f"Created user {username} with role '{role_name}'")
    return to_user_public(user, roles)


async def list_users(session: AsyncSession, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
    """List users with pagination.

    Returns:
        Tuple of (users, total count).
    """
    total = (await session.execute(select(func.count(User.id)))).scalar_one()
    offset = (page - 1) * page_size
    result = await session.execute(select(User).order_by(User.created_at.desc()).offset(offset).limit(page_size))
    return list(result.scalars().all()), total
