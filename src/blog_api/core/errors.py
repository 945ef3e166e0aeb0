"""Authentication and authorization error taxonomy.

Every error that may cross from the service layer into the HTTP layer is an
``AuthError`` subclass carrying an HTTP status code, a stable machine code
and a client-safe message. Store-level exceptions are re-classified into
this taxonomy at the service boundary and never reach the client directly.
"""

import math
from datetime import timedelta


class AuthError(Exception):
    """Base class for service-layer errors mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "bad_request"
    public_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None, *, context: dict | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        # Server-side detail for logs; never serialized to the client.
        self.context = context or {}


class InvalidCredentialsError(AuthError):
    """Wrong username or password. The message never hints which one."""

    status_code = 401
    error_code = "invalid_credentials"
    public_message = "Invalid username or password"

    def __init__(self, *, context: dict | None = None) -> None:
        super().__init__(self.public_message, context=context)


class AccountLockedError(AuthError):
    """Too many failed logins; retry after the lockout expires."""

    status_code = 429
    error_code = "account_locked"
    public_message = "Account temporarily locked"

    def __init__(self, retry_after: timedelta, *, context: dict | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Account temporarily locked, retry in {self.retry_after_seconds} seconds",
            context=context,
        )

    @property
    def retry_after_seconds(self) -> int:
        """Remaining lockout rounded up to whole seconds."""
        return max(1, math.ceil(self.retry_after.total_seconds()))


class InvalidOrExpiredTokenError(AuthError):
    """Expired, garbled or already used access, refresh or one-time token."""

    status_code = 401
    error_code = "invalid_token"
    public_message = "Invalid or expired token"

    def __init__(self, *, context: dict | None = None) -> None:
        super().__init__(self.public_message, context=context)


class UnauthenticatedError(AuthError):
    """Caller must log in to use this operation."""

    status_code = 401
    error_code = "unauthenticated"
    public_message = "Authentication required"


class ForbiddenError(AuthError):
    """Authenticated caller lacks the required permission."""

    status_code = 403
    error_code = "forbidden"
    public_message = "Insufficient permissions"


class NotFoundError(AuthError):
    """Referenced role, permission, user or post does not exist."""

    status_code = 404
    error_code = "not_found"
    public_message = "Resource not found"


class ConflictError(AuthError):
    """Duplicate username, email, role or permission name."""

    status_code = 409
    error_code = "conflict"
    public_message = "Resource already exists"


class ValidationError(AuthError):
    """Weak password, mismatched confirmation or other invalid input."""

    status_code = 422
    error_code = "validation_error"
    public_message = "Invalid input"


class InternalError(AuthError):
    """Configuration or database fault. Details stay in the server log."""

    status_code = 500
    error_code = "internal_error"
    public_message = "Internal server error"
