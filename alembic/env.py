import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

from unifood.db.base import Base
from unifood.config import settings
import unifood.models  # noqa: F401  регистрирует таблицы в Base.metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# sqlite+aiosqlite -> sqlite, postgresql+asyncpg -> postgresql
SYNC_DRIVERS = {"aiosqlite": None, "asyncpg": "psycopg2"}


def sync_url(async_url: str) -> str:
    url = make_url(async_url)
    backend, _, driver = url.drivername.partition("+")
    if driver in SYNC_DRIVERS:
        sync_driver = SYNC_DRIVERS[driver]
        url = url.set(drivername=f"{backend}+{sync_driver}" if sync_driver else backend)
    return url.render_as_string(hide_password=False)


def is_sqlite(async_url: str) -> bool:
    return make_url(async_url).get_backend_name() == "sqlite"


def run_migrations_offline():
    """Offline mode: SQL-скрипт без подключения к базе."""
    context.configure(
        url=sync_url(settings.DATABASE_URL),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=is_sqlite(settings.DATABASE_URL),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    # SQLite не умеет ALTER COLUMN, нужен batch-режим
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online():
    """Миграции через async-движок, сами миграции синхронные (run_sync)."""
    connectable = create_async_engine(settings.DATABASE_URL, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
