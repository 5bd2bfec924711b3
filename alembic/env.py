"""Alembic environment for the whale_trades and whale_alerts tables.

The database URL comes from the application's own settings (DATABASE_URL,
read from the environment or `.env`), so the CLI's `init-db` command and
`alembic upgrade head` always target the same database. Migrations run online
through the same async engine the persistence sink uses.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from polymarket_whale_tracker.config import get_settings
from polymarket_whale_tracker.storage.database import normalize_async_database_url
from polymarket_whale_tracker.storage.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

database_url = get_settings().database.url
if database_url:
    config.set_main_option("sqlalchemy.url", normalize_async_database_url(database_url))


def _do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        # SQLite cannot ALTER most constraints in place.
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(_do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    raise RuntimeError("Offline (--sql) migrations are not supported; run against DATABASE_URL")

asyncio.run(run_migrations_online())
