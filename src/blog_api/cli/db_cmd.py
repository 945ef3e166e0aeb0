"""Database migration CLI commands using Alembic programmatically."""

import typer
from loguru import logger

db_app = typer.Typer()

_CONFIG_OPTION = typer.Option("alembic.ini", "--config", help="Path to alembic.ini")


@db_app.command()
def upgrade(
    revision: str = typer.Argument("head", help="Target revision"),
    config_path: str = _CONFIG_OPTION,
) -> None:
    """Run database migrations up to the target revision."""
    from alembic import command
    from alembic.config import Config

    logger.info(f"Upgrading database to {revision}")
    command.upgrade(Config(config_path), revision)
    logger.info("Database upgrade complete")


@db_app.command()
def downgrade(
    revision: str = typer.Argument("-1", help="Target revision"),
    config_path: str = _CONFIG_OPTION,
) -> None:
    """Roll the schema back to the target revision."""
    from alembic import command
    from alembic.config import Config

    logger.info(f"Downgrading database to {revision}")
    command.downgrade(Config(config_path), revision)
    logger.info("Database downgrade complete")


@db_app.command()
def current(config_path: str = _CONFIG_OPTION) -> None:
    """Show the current database migration revision."""
    from alembic import command
    from alembic.config import Config

    command.current(Config(config_path), verbose=True)
