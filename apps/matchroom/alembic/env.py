"""
Alembic environment configuration for async migrations.

Alembic executes this file for CLI commands (alembic upgrade, etc.).
The database URL comes from DATABASE_URL, not alembic.ini.
"""

from logging.config import fileConfig
import asyncio
import logging
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

# Import all models so Alembic can detect them
from matchroom.database.db import Base, DATABASE_URL
from matchroom.database import models  # noqa: F401

logger = logging.getLogger(__name__)

# Only available when run by Alembic CLI (not when imported programmatically)
config = None
try:
    config = context.config
    if config.config_file_name is not None:
        fileConfig(config.config_file_name)
except AttributeError:
    pass

# Metadata for autogenerate support
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (generates SQL without connecting)."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Execute migrations using the provided connection."""
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations against DATABASE_URL with an async engine."""
    configuration = config.get_section(config.config_ini_section)
    configuration["sqlalchemy.url"] = DATABASE_URL

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    except Exception as e:
        logger.error(f"Error during migration execution: {e}", exc_info=True)
        raise
    finally:
        await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode (called by Alembic CLI)."""
    logger.info(
        f"Migrating database: {DATABASE_URL.split('@')[1] if '@' in DATABASE_URL else 'configured'}"
    )
    asyncio.run(run_async_migrations())
    logger.info("Migrations completed successfully")


# Only execute when run by Alembic CLI (config is set)
if config is not None:
    try:
        if context.is_offline_mode():
            run_migrations_offline()
        else:
            run_migrations_online()
    except AttributeError:
        # Not running via Alembic CLI
        pass
