"""User management CLI commands."""

import asyncio

import typer

user_app = typer.Typer()


@user_app.command("create")
def create_user(
    username: str = typer.Option(..., prompt=True, help="Username"),
    email: str = typer.Option(..., prompt=True, help="Email address"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password"),
    role: str = typer.Option("author", prompt=True, help="Role name (admin/editor/author)"),
    if_not_exists: bool = typer.Option(
        False,
        "--if-not-exists",
        help="Exit successfully if user already exists (idempotent mode)",
    ),
) -> None:
    """Create a pre-verified user interactively."""
    asyncio.run(_create_user(username, email, password, role, if_not_exists=if_not_exists))


async def _create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    *,
    if_not_exists: bool = False,
) -> None:
    """Async implementation of user creation."""
    from blog_api.core.config import get_settings
    from blog_api.core.database import dispose_engine, get_session_factory, init_engine
    from blog_api.core.errors import AuthError, ConflictError
    from blog_api.services.auth_service import create_user

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            user = await create_user(
                session,
                username=username,
                email=email,
                password=password,
                role_name=role,
                settings=settings,
            )
            typer.echo(f"User '{user.username}' created with roles {', '.join(user.roles)}")
    except ConflictError as e:
        if if_not_exists:
            typer.echo(f"User '{username}' already exists, skipping (--if-not-exists)")
            return
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1) from e
    except AuthError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()


@user_app.command("list")
def list_users(
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    page_size: int = typer.Option(50, "--page-size", min=1, max=500, help="Users per page"),
) -> None:
    """List users with their roles."""
    asyncio.run(_list_users(page, page_size))


async def _list_users(page: int, page_size: int) -> None:
    """Async implementation of user listing."""
    from blog_api.core.config import get_settings
    from blog_api.core.database import dispose_engine, get_session_factory, init_engine
    from blog_api.services.auth_service import list_users
    from blog_api.services.rbac_service import get_user_role_names

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            users, total = await list_users(session, page, page_size)
            typer.echo(f"{'Username':<20} {'Email':<30} {'Roles':<24} {'Verified':<8}")
            typer.echo("-" * 84)
            for user in users:
                roles = ",".join(await get_user_role_names(session, user.id))
                verified = user.email_verified_at is not None
                typer.echo(f"{user.username:<20} {user.email:<30} {roles:<24} {verified!s:<8}")
            typer.echo(f"\nTotal: {total}")
    finally:
        await dispose_engine()


@user_app.command("grant")
def grant_role(
    username: str = typer.Argument(..., help="Username"),
    role: str = typer.Argument(..., help="Role name to add"),
) -> None:
    """Add a role to a user."""
    asyncio.run(_grant_role(username, role))


async def _grant_role(username: str, role: str) -> None:
    """Async implementation of role granting."""
    from blog_api.core.config import get_settings
    from blog_api.core.database import bounded_transaction, dispose_engine, get_session_factory, init_engine
    from blog_api.core.errors import NotFoundError
    from blog_api.services.rbac_service import grant_role_by_name

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            async with bounded_transaction(session, settings.store_timeout_seconds):
                await grant_role_by_name(session, username, role)
            typer.echo(f"User '{username}' now holds role '{role}'")
    except NotFoundError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()
