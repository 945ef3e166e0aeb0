"""CLI command that creates the default roles and permissions.

Idempotent: permissions and roles that already exist are left as they are,
so operator changes to existing roles survive a re-run.
"""

import asyncio

import typer


def seed() -> None:
    """Create the default admin, editor and author roles and their permissions."""
    asyncio.run(_seed())


async def _seed() -> None:
    """Async implementation of seeding."""
    from blog_api.core.config import get_settings
    from blog_api.core.database import bounded_transaction, dispose_engine, get_session_factory, init_engine
    from blog_api.services.rbac_service import seed_defaults

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            async with bounded_transaction(session, settings.store_timeout_seconds):
                created = await seed_defaults(session)
            typer.echo(f"Created {created['permissions']} permission(s) and {created['roles']} role(s)")
    finally:
        await dispose_engine()
