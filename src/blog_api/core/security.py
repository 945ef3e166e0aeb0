"""Password hashing, password policy, JWT encoding, and opaque token helpers.

Uses passlib's argon2 handler (Argon2id) for password hashing, PyJWT for
access tokens, and ``secrets``/``hashlib`` for opaque refresh and one-time
tokens, which are only ever stored as SHA-256 digests.
"""

import hashlib
import secrets
import string
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from passlib.context import CryptContext

from blog_api.core.errors import InternalError, ValidationError

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto", argon2__type="ID")

PASSWORD_MIN_LENGTH = 8
REFRESH_TOKEN_LENGTH = 64
ACCESS_TOKEN_TYPE = "access"

_REFRESH_TOKEN_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    """Hash a plaintext password with Argon2id and a fresh random salt.

    Args:
        password: The plaintext password to hash.

    Returns:
        The PHC-formatted hash string.
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored Argon2 hash.

    Args:
        plain_password: The plaintext password to verify.
        hashed_password: The stored hash to verify against.

    Returns:
        True if the password matches, False otherwise.

    Raises:
        InternalError: If the stored hash is malformed or uses an unknown scheme.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        msg = "Stored password hash could not be verified"
        raise InternalError(msg) from e


def validate_password_strength(password: str) -> None:
    """Enforce the password policy.

    At least eight characters with one uppercase letter, one lowercase
    letter, one digit and one non-alphanumeric character.

    Raises:
        ValidationError: Describing the first rule the password violates.
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        msg = f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        raise ValidationError(msg)
    if not any(c.isupper() for c in password):
        msg = "Password must contain at least one uppercase letter"
        raise ValidationError(msg)
    if not any(c.islower() for c in password):
        msg = "Password must contain at least one lowercase letter"
        raise ValidationError(msg)
    if not any(c.isdigit() for c in password):
        msg = "Password must contain at least one digit"
        raise ValidationError(msg)
    if all(c.isalnum() for c in password):
        msg = "Password must contain at least one special character"
        raise ValidationError(msg)


def hash_token(token: str) -> str:
    """Derive the storage key for an opaque token (hex SHA-256)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    """Generate a long, high-entropy alphanumeric refresh token."""
    return "".join(secrets.choice(_REFRESH_TOKEN_ALPHABET) for _ in range(REFRESH_TOKEN_LENGTH))


def create_access_token(
    *,
    subject: str,
    username: str,
    roles: list[str],
    permissions: list[str],
    secret_key: str,
    issuer: str,
    audience: str,
    algorithm: str = "HS256",
    expires_minutes: int = 15,
    now: datetime | None = None,
) -> str:
    """Create a signed JWT access token carrying identity and permission claims.

    Args:
        subject: The user ID.
        username: The user's username.
        roles: Role names held by the user.
        permissions: Resolved permission names.
        secret_key: Secret key for signing.
        issuer: Issuer claim.
        audience: Audience claim.
        algorithm: JWT signing algorithm.
        expires_minutes: Token lifetime in minutes.
        now: Issue time; defaults to the current UTC time.

    Returns:
        The encoded JWT string.
    """
    issued_at = now or datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": subject,
        "username": username,
        "roles": roles,
        "permissions": permissions,
        "jti": uuid.uuid4().hex,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_minutes),
        "iss": issuer,
        "aud": audience,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret_key: str,
    issuer: str,
    audience: str,
    algorithm: str = "HS256",
) -> dict[str, Any]:
    """Decode and validate a JWT access token.

    Verifies signature, expiry, issuer and audience, and requires every
    identity claim to be present.

    Returns:
        The decoded token payload.

    Raises:
        jwt.PyJWTError: If the token is invalid, expired, or bound to another issuer/audience.
    """
    return jwt.decode(
        token,
        secret_key,
        algorithms=[algorithm],
        issuer=issuer,
        audience=audience,
        options={"require": ["exp", "iat", "iss", "aud", "sub", "jti"]},
    )
