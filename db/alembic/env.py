"""Alembic environment for the finbuild schema.

Migrations are hand-written ``op.execute`` scripts (there are no ORM models),
so ``target_metadata`` stays None and autogenerate is not used.  Online runs go
through an async SQLAlchemy engine on asyncpg.
"""

import asyncio
import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

# The alembic CLI runs from the repo root without finbuild installed.
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

_ASYNC_SCHEME = "postgresql+asyncpg://"


def database_url() -> str:
    url = os.getenv("DATABASE_URL") or _settings_url()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.  Export it or add it to .env.")
    scheme, sep, rest = url.partition("://")
    if sep and scheme in ("postgres", "postgresql"):
        return _ASYNC_SCHEME + rest
    return url


def _settings_url() -> str:
    from finbuild.config import settings

    return settings.DATABASE_URL


def _configure_and_run(**kwargs) -> None:  # type: ignore[no-untyped-def]
    context.configure(target_metadata=None, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
    _configure_and_run(connection=connection)


async def _run_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = database_url()
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _configure_and_run(url=database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_run_online())
