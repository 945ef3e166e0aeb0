"""Authentication and user Pydantic v2 schemas.

Defines request/response schemas for registration, login, token refresh,
email verification, password reset, profile changes, and the access-token
claim set.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """New account registration."""

    username: str = Field(min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    """Login request with username and password."""

    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Token refresh or logout request."""

    refresh_token: str = Field(min_length=1, max_length=256)


class VerifyEmailRequest(BaseModel):
    """Email verification link payload."""

    token: str = Field(min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    """Password reset link request."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Password reset with a one-time token."""

    token: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    """Password change for the logged-in user."""

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)


class UpdateProfileRequest(BaseModel):
    """Change the caller's username and/or email. Omitted fields stay unchanged."""

    username: str | None = Field(default=None, min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr | None = None


class AdminResetPasswordRequest(BaseModel):
    """Password set by an administrator."""

    new_password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)


class TokenResponse(BaseModel):
    """Access/refresh token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiration in seconds")


class UserPublic(BaseModel):
    """User information safe to return to clients."""

    id: UUID
    username: str
    email: str
    created_at: datetime
    email_verified: bool = False
    roles: list[str] = Field(default_factory=list)


class LoginResponse(TokenResponse):
    """Token pair plus the logged-in user's public profile."""

    user: UserPublic


class AccessClaims(BaseModel):
    """Claims carried by a validated access token."""

    sub: UUID
    username: str
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    jti: str
    iat: int
    exp: int
    iss: str
    aud: str
    type: str = "access"
