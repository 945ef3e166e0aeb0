"""Caller identity and permission checks.

A request is made either by a ``Guest`` or by an ``Authenticated`` caller
whose roles and permissions were resolved at login and embedded in the
access token. Permission checks match on the variant exhaustively.
"""

import uuid
from dataclasses import dataclass

from loguru import logger

from blog_api.core.errors import ForbiddenError, UnauthenticatedError
from blog_api.schemas.auth import AccessClaims

READ_PUBLISHED = "post:read_published"
VIEW_SHARED_DRAFTS = "post:draft:access_shared"


@dataclass(frozen=True)
class Guest:
    """Unauthenticated caller."""


@dataclass(frozen=True)
class Authenticated:
    """Caller holding a valid access token."""

    claims: AccessClaims

    @property
    def user_id(self) -> uuid.UUID:
        return self.claims.sub

    @property
    def username(self) -> str:
        return self.claims.username


UserContext = Guest | Authenticated


def caller_id(context: UserContext) -> uuid.UUID | None:
    """Return the caller's user ID, or None for guests."""
    match context:
        case Guest():
            return None
        case Authenticated():
            return context.user_id


def has_permission(context: UserContext, permission: str) -> bool:
    """Check whether the caller holds a permission.

    Guests hold exactly one implicit capability: reading published posts.
    Authenticated callers hold the union of their roles' permissions.
    """
    match context:
        case Guest():
            return permission == READ_PUBLISHED
        case Authenticated(claims=claims):
            return permission in claims.permissions


def require_permission(context: UserContext, permission: str) -> None:
    """Require a permission, distinguishing 401 from 403 failures.

    Raises:
        UnauthenticatedError: A guest asked for something beyond the implicit read capability.
        ForbiddenError: An authenticated caller lacks the permission.
    """
    if has_permission(context, permission):
        return
    match context:
        case Guest():
            logger.warning(f"Guest denied: permission '{permission}' requires login")
            msg = "Login required to perform this action"
            raise UnauthenticatedError(msg, context={"permission": permission})
        case Authenticated():
            logger.warning(f"User {context.username} ({context.user_id}) denied: missing permission '{permission}'")
            raise ForbiddenError(context={"permission": permission, "user_id": str(context.user_id)})
