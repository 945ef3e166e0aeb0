"""Unit tests for password hashing, password policy and JWT helpers."""

from datetime import UTC, datetime, timedelta

import jwt as pyjwt
import pytest

from blog_api.core.errors import InternalError, ValidationError
from blog_api.core.security import (
    REFRESH_TOKEN_LENGTH,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    hash_token,
    validate_password_strength,
    verify_password,
)


class TestPasswordHashing:
    """Tests for Argon2 password hashing and verification."""

    def test_hash_and_verify(self) -> None:
        """Hashed password can be verified."""
        hashed = hash_password("Str0ng!Pass")
        assert verify_password("Str0ng!Pass", hashed)

    def test_wrong_password_fails(self) -> None:
        """Wrong password fails verification."""
        hashed = hash_password("Str0ng!Pass")
        assert not verify_password("Wr0ng!Pass", hashed)

    def test_hash_is_different_each_time(self) -> None:
        """Same password produces different hashes (salt)."""
        assert hash_password("same") != hash_password("same")

    def test_hash_uses_argon2id(self) -> None:
        assert hash_password("Str0ng!Pass").startswith("$argon2id$")

    def test_malformed_hash_is_internal_error(self) -> None:
        """A corrupt stored hash is a server fault, not a failed login."""
        with pytest.raises(InternalError):
            verify_password("Str0ng!Pass", "not-a-hash")


class TestPasswordStrength:
    """Tests for the password policy."""

    def test_strong_password_accepted(self) -> None:
        validate_password_strength("Str0ng!Pass")

    @pytest.mark.parametrize(
        ("password", "fragment"),
        [
            ("Sh0rt!", "at least 8"),
            ("nouppercase1!", "uppercase"),
            ("NOLOWERCASE1!", "lowercase"),
            ("NoDigitsHere!", "digit"),
            ("NoSpecial123", "special"),
        ],
    )
    def test_weak_password_rejected(self, password: str, fragment: str) -> None:
        with pytest.raises(ValidationError, match=fragment):
            validate_password_strength(password)


class TestOpaqueTokens:
    """Tests for refresh token generation and token hashing."""

    def test_refresh_token_shape(self) -> None:
        token = generate_refresh_token()
        assert len(token) == REFRESH_TOKEN_LENGTH
        assert token.isalnum()

    def test_refresh_tokens_are_unique(self) -> None:
        assert len({generate_refresh_token() for _ in range(50)}) == 50

    def test_hash_token_is_sha256_hex(self) -> None:
        digest = hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class TestJWT:
    """Tests for JWT access token creation and decoding."""

    SECRET = "test-secret-key-not-for-production-0000"

    def _token(self, **overrides) -> str:  # type: ignore[no-untyped-def]
        kwargs = {
            "subject": "5f0c7c1e-4c1b-4b8e-9d1a-2d0f5a7b9c11",
            "username": "alice",
            "roles": ["author"],
            "permissions": ["post:create"],
            "secret_key": self.SECRET,
            "issuer": "blog-api",
            "audience": "blog-clients",
        }
        kwargs.update(overrides)
        return create_access_token(**kwargs)

    def _decode(self, token: str, **overrides) -> dict:  # type: ignore[no-untyped-def]
        kwargs = {"secret_key": self.SECRET, "issuer": "blog-api", "audience": "blog-clients"}
        kwargs.update(overrides)
        return decode_access_token(token, **kwargs)

    def test_create_and_decode_access_token(self) -> None:
        payload = self._decode(self._token())
        assert payload["sub"] == "5f0c7c1e-4c1b-4b8e-9d1a-2d0f5a7b9c11"
        assert payload["username"] == "alice"
        assert payload["roles"] == ["author"]
        assert payload["permissions"] == ["post:create"]
        assert payload["type"] == "access"
        assert payload["jti"]

    def test_expiry_matches_lifetime(self) -> None:
        now = datetime.now(UTC).replace(microsecond=0)
        payload = self._decode(self._token(now=now, expires_minutes=15))
        assert payload["exp"] - payload["iat"] == 15 * 60

    def test_each_token_has_unique_jti(self) -> None:
        assert self._decode(self._token())["jti"] != self._decode(self._token())["jti"]

    def test_wrong_secret_fails(self) -> None:
        with pytest.raises(pyjwt.InvalidSignatureError):
            self._decode(self._token(), secret_key="another-secret-key-of-sufficient-len")

    def test_wrong_audience_fails(self) -> None:
        with pytest.raises(pyjwt.InvalidAudienceError):
            self._decode(self._token(audience="someone-else"))

    def test_wrong_issuer_fails(self) -> None:
        with pytest.raises(pyjwt.InvalidIssuerError):
            self._decode(self._token(issuer="impostor"))

    def test_expired_token_fails(self) -> None:
        issued = datetime.now(UTC) - timedelta(hours=1)
        with pytest.raises(pyjwt.ExpiredSignatureError):
            self._decode(self._token(now=issued, expires_minutes=15))
