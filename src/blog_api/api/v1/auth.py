"""Authentication API endpoints.

POST /auth/register, /auth/login, /auth/refresh, /auth/logout,
/auth/verify-email, /auth/forgot-password, /auth/reset-password,
/auth/change-password, GET|PATCH|DELETE /auth/me, GET /health.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blog_api import __version__
from blog_api.core.config import Settings, get_settings
from blog_api.core.database import unit_of_work
from blog_api.core.dependencies import (
    get_async_session,
    get_current_claims,
    get_email_sender,
    get_sessionmaker,
    get_token_generator,
)
from blog_api.core.identity import Authenticated
from blog_api.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UpdateProfileRequest,
    UserPublic,
    VerifyEmailRequest,
)
from blog_api.services import auth_service
from blog_api.services.email_service import EmailSender
from blog_api.services.one_time_token_service import OneTimeTokenGenerator

router = APIRouter(tags=["auth"])

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


@router.get("/health", status_code=200)
async def health_check(settings: SettingsDep) -> dict:
    """Health check endpoint (no authentication required)."""
    return {"status": "healthy", "version": __version__, "environment": settings.environment}


@router.post("/auth/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    session: SessionDep,
    settings: SettingsDep,
    email_sender: Annotated[EmailSender, Depends(get_email_sender)],
    generator: Annotated[OneTimeTokenGenerator, Depends(get_token_generator)],
) -> UserPublic:
    """Create an account and email a verification link."""
    return await auth_service.register(session, request, settings, email_sender, generator)


@router.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest, session: SessionDep, settings: SettingsDep) -> LoginResponse:
    """Authenticate with username and password and return a token pair."""
    tokens, user = await auth_service.login(session, request.username, request.password, settings)
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        user=user,
    )


@router.post("/auth/refresh", response_model=TokenResponse)
async def refresh_token(request: RefreshRequest, session: SessionDep, settings: SettingsDep) -> TokenResponse:
    """Exchange a refresh token for a new token pair. The old refresh token stops working."""
    tokens = await auth_service.refresh(session, request.refresh_token, settings)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(request: RefreshRequest, session: SessionDep, settings: SettingsDep) -> Response:
    """Revoke a refresh token."""
    await auth_service.logout(session, request.refresh_token, settings)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/auth/verify-email", status_code=status.HTTP_204_NO_CONTENT)
async def verify_email(request: VerifyEmailRequest, session: SessionDep, settings: SettingsDep) -> Response:
    """Confirm an email address with the token from the verification link."""
    await auth_service.verify_email(session, request.token, settings)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/auth/forgot-password", status_code=status.HTTP_202_ACCEPTED)
async def forgot_password(
    request: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_sessionmaker)],
    settings: SettingsDep,
    email_sender: Annotated[EmailSender, Depends(get_email_sender)],
    generator: Annotated[OneTimeTokenGenerator, Depends(get_token_generator)],
) -> dict:
    """Request a password reset link.

    The lookup and the email run after the response, so neither the body nor
    the timing reveals whether the address is known.
    """
    background_tasks.add_task(
        auth_service.request_password_reset_in_background,
        session_factory,
        str(request.email),
        settings,
        email_sender,
        generator,
    )
    return {"detail": "If the address is registered, a reset link has been sent"}


@router.post("/auth/reset-password", status_code=status.HTTP_204_NO_CONTENT)
async def reset_password(request: ResetPasswordRequest, session: SessionDep, settings: SettingsDep) -> Response:
    """Set a new password with the token from the reset link."""
    await auth_service.reset_password(
        session,
        request.token,
        request.new_password,
        request.confirm_password,
        settings,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/auth/me", response_model=UserPublic)
async def get_me(
    caller: Annotated[Authenticated, Depends(get_current_claims)],
    session: SessionDep,
    settings: SettingsDep,
) -> UserPublic:
    """Get the currently authenticated user's profile."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        return await auth_service.get_profile(session, caller.user_id)


@router.patch("/auth/me", response_model=UserPublic)
async def update_me(
    request: UpdateProfileRequest,
    caller: Annotated[Authenticated, Depends(get_current_claims)],
    session: SessionDep,
    settings: SettingsDep,
    email_sender: Annotated[EmailSender, Depends(get_email_sender)],
    generator: Annotated[OneTimeTokenGenerator, Depends(get_token_generator)],
) -> UserPublic:
    """Change the caller's username or email. A new email must be verified again."""
    return await auth_service.update_profile(
        session,
        caller.user_id,
        username=request.username,
        email=str(request.email) if request.email is not None else None,
        settings=settings,
        email_sender=email_sender,
        generator=generator,
    )


@router.delete("/auth/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    caller: Annotated[Authenticated, Depends(get_current_claims)],
    session: SessionDep,
    settings: SettingsDep,
) -> Response:
    """Delete the caller's account and end every session."""
    await auth_service.delete_user(session, caller.user_id, settings)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/auth/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    request: ChangePasswordRequest,
    caller: Annotated[Authenticated, Depends(get_current_claims)],
    session: SessionDep,
    settings: SettingsDep,
) -> Response:
    """Change the caller's password and sign out every other session."""
    await auth_service.change_password(
        session,
        caller.user_id,
        request.current_password,
        request.new_password,
        request.confirm_password,
        settings,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
