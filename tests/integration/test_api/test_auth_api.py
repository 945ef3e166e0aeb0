"""Integration tests for the authentication endpoints."""

import re
from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock

from fastapi import FastAPI
from httpx import AsyncClient

from blog_api.core.config import Settings, get_settings
from blog_api.models.user import User

PASSWORD = "Str0ng!Pass"
NEW_PASSWORD = "N3w!Passw0rd"

UserFactory = Callable[..., Awaitable[User]]


def _last_token(outbox: AsyncMock) -> str:
    match = re.search(r"token=([^\"&<]+)", outbox.send_email.await_args.args[2])
    assert match is not None
    return match.group(1)


async def _login(client: AsyncClient, username: str, password: str = PASSWORD) -> dict:
    response = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def _bearer(body: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {body['access_token']}"}


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestRegisterAndVerify:
    """Registration and email verification over HTTP."""

    async def test_register_then_verify(self, client: AsyncClient, outbox: AsyncMock) -> None:
        response = await client.post(
            "/api/v1/auth/register",
            json={"username": "alice", "email": "alice@example.com", "password": PASSWORD},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["username"] == "alice"
        assert body["roles"] == ["author"]
        assert body["email_verified"] is False
        assert "hashed_password" not in body
        assert outbox.send_email.await_count == 1

        token = _last_token(outbox)
        response = await client.post("/api/v1/auth/verify-email", json={"token": token})
        assert response.status_code == 204

        me = await client.get("/api/v1/auth/me", headers=_bearer(await _login(client, "alice")))
        assert me.json()["email_verified"] is True

        response = await client.post("/api/v1/auth/verify-email", json={"token": token})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"

    async def test_duplicate_username(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        response = await client.post(
            "/api/v1/auth/register",
            json={"username": "alice", "email": "new@example.com", "password": PASSWORD},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    async def test_weak_password(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/register",
            json={"username": "alice", "email": "alice@example.com", "password": "password"},
        )
        assert response.status_code == 422
        assert response.json() == {
            "detail": "Password must contain at least one uppercase letter",
            "code": "validation_error",
        }

    async def test_malformed_email(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/auth/register",
            json={"username": "alice", "email": "not-an-email", "password": PASSWORD},
        )
        assert response.status_code == 422


class TestLogin:
    """Login, lockout, refresh rotation and logout over HTTP."""

    async def test_login_and_me(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")
        assert body["token_type"] == "bearer"
        assert body["user"]["username"] == "alice"

        response = await client.get("/api/v1/auth/me", headers=_bearer(body))
        assert response.status_code == 200
        assert response.json()["username"] == "alice"

    async def test_bad_credentials(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        response = await client.post("/api/v1/auth/login", json={"username": "alice", "password": "Wr0ng!Pass"})
        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid username or password", "code": "invalid_credentials"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_lockout_returns_retry_after(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        for _ in range(5):
            response = await client.post(
                "/api/v1/auth/login",
                json={"username": "alice", "password": "Wr0ng!Pass"},
            )
            assert response.status_code == 401

        response = await client.post("/api/v1/auth/login", json={"username": "alice", "password": PASSWORD})
        assert response.status_code == 429
        assert response.json()["code"] == "account_locked"
        assert 0 < int(response.headers["Retry-After"]) <= 900

    async def test_refresh_rotation(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
        assert response.status_code == 200
        rotated = response.json()
        assert rotated["refresh_token"] != body["refresh_token"]

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
        assert response.status_code == 401

    async def test_logout(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.post("/api/v1/auth/logout", json={"refresh_token": body["refresh_token"]})
        assert response.status_code == 204
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
        assert response.status_code == 401

    async def test_me_requires_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json()["code"] == "unauthenticated"

    async def test_me_rejects_garbage_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"


class TestPasswordFlows:
    """Forgot, reset and change password over HTTP."""

    async def test_forgot_password_same_response_for_unknown(
        self, client: AsyncClient, make_user: UserFactory, outbox: AsyncMock
    ) -> None:
        await make_user("alice")
        known = await client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"})
        unknown = await client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert known.status_code == unknown.status_code == 202
        assert known.json() == unknown.json()
        assert outbox.send_email.await_count == 1

    async def test_reset_password(
        self, client: AsyncClient, make_user: UserFactory, outbox: AsyncMock
    ) -> None:
        await make_user("alice")
        tokens = await _login(client, "alice")
        await client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"})

        response = await client.post(
            "/api/v1/auth/reset-password",
            json={"token": _last_token(outbox), "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
        )
        assert response.status_code == 204

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401
        await _login(client, "alice", NEW_PASSWORD)

    async def test_change_password(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.post(
            "/api/v1/auth/change-password",
            headers=_bearer(body),
            json={"current_password": PASSWORD, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
        )
        assert response.status_code == 204
        await _login(client, "alice", NEW_PASSWORD)

    async def test_change_password_mismatch(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.post(
            "/api/v1/auth/change-password",
            headers=_bearer(body),
            json={"current_password": PASSWORD, "new_password": NEW_PASSWORD, "confirm_password": PASSWORD},
        )
        assert response.status_code == 422
        assert response.json()["detail"] == "Passwords do not match"

    async def test_forgot_password_work_runs_after_response(
        self, client: AsyncClient, make_user: UserFactory, outbox: AsyncMock, app: FastAPI, settings: Settings
    ) -> None:
        await make_user("alice")
        slow = settings.model_copy(update={"store_timeout_seconds": 1e-9})
        app.dependency_overrides[get_settings] = lambda: slow

        response = await client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"})
        assert response.status_code == 202
        outbox.send_email.assert_not_awaited()


class TestProfile:
    """PATCH and DELETE /auth/me."""

    async def test_rename(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.patch("/api/v1/auth/me", headers=_bearer(body), json={"username": "alicia"})
        assert response.status_code == 200
        assert response.json()["username"] == "alicia"
        await _login(client, "alicia")

    async def test_taken_username(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        await make_user("bob")
        body = await _login(client, "alice")

        response = await client.patch("/api/v1/auth/me", headers=_bearer(body), json={"username": "bob"})
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    async def test_email_change_needs_verification(
        self, client: AsyncClient, make_user: UserFactory, outbox: AsyncMock
    ) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.patch(
            "/api/v1/auth/me",
            headers=_bearer(body),
            json={"email": "alice@new.example.com"},
        )
        assert response.status_code == 200
        assert response.json()["email_verified"] is False
        assert outbox.send_email.await_args.args[0] == "alice@new.example.com"

        response = await client.post("/api/v1/auth/verify-email", json={"token": _last_token(outbox)})
        assert response.status_code == 204
        response = await client.get("/api/v1/auth/me", headers=_bearer(body))
        assert response.json()["email_verified"] is True

    async def test_rejects_malformed_email(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")
        response = await client.patch("/api/v1/auth/me", headers=_bearer(body), json={"email": "not-an-email"})
        assert response.status_code == 422

    async def test_delete_account(self, client: AsyncClient, make_user: UserFactory) -> None:
        await make_user("alice")
        body = await _login(client, "alice")

        response = await client.delete("/api/v1/auth/me", headers=_bearer(body))
        assert response.status_code == 204

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
        assert response.status_code == 401
        response = await client.post("/api/v1/auth/login", json={"username": "alice", "password": PASSWORD})
        assert response.status_code == 401

    async def test_delete_requires_token(self, client: AsyncClient) -> None:
        response = await client.delete("/api/v1/auth/me")
        assert response.status_code == 401
