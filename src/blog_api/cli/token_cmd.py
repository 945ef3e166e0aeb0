"""Token maintenance CLI commands."""

import asyncio

import typer

tokens_app = typer.Typer()


@tokens_app.command("purge")
def purge() -> None:
    """Delete expired refresh tokens and one-time tokens."""
    asyncio.run(_purge())


async def _purge() -> None:
    """Async implementation of the purge."""
    from blog_api.core.config import get_settings
    from blog_api.core.database import bounded_transaction, dispose_engine, get_session_factory, init_engine
    from blog_api.services import one_time_token_service, token_service

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            async with bounded_transaction(session, settings.store_timeout_seconds):
                refresh_count = await token_service.purge_expired(session)
                one_time_count = await one_time_token_service.purge_expired(session)
            typer.echo(f"Purged {refresh_count} refresh token(s) and {one_time_count} one-time token(s)")
    finally:
        await dispose_engine()
