"""Map the service error taxonomy onto JSON HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from blog_api.core.errors import AccountLockedError, AuthError, InternalError


def _error_response(exc: AuthError, headers: dict[str, str] | None = None) -> JSONResponse:
    detail = exc.public_message if isinstance(exc, InternalError) else exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": exc.error_code},
        headers=headers,
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an ``AuthError`` and log it with request context."""
    where = f"{request.method} {request.url.path}"
    if isinstance(exc, InternalError):
        logger.error(f"{where} -> {exc.status_code} {exc.error_code}: {exc.message} {exc.context}")
    else:
        logger.warning(f"{where} -> {exc.status_code} {exc.error_code} {exc.context}")

    headers: dict[str, str] = {}
    if isinstance(exc, AccountLockedError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return _error_response(exc, headers or None)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on the application."""
    app.add_exception_handler(AuthError, auth_error_handler)  # type: ignore[arg-type]
