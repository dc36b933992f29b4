from __future__ import annotations

import asyncio
from logging.config import fileConfig
from typing import Any, Dict

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from trademart.core.config import settings
from trademart.models.base import Base
import trademart.models.models  # noqa: F401

config = context.config

# Alembic runs on psycopg v3 (async mode) for Postgres and aiosqlite locally
_URL_PREFIXES = (
	("postgresql+asyncpg://", "postgresql+psycopg://"),
	("postgresql+psycopg2://", "postgresql+psycopg://"),
	("postgres://", "postgresql+psycopg://"),
	("postgresql://", "postgresql+psycopg://"),
	("sqlite://", "sqlite+aiosqlite://"),
)


def _migration_url() -> str:
	url = settings.DATABASE_URL
	if not url:
		raise RuntimeError("DATABASE_URL is not configured; cannot run migrations.")
	if url.startswith(("postgresql+psycopg://", "sqlite+aiosqlite://")):
		return url
	for prefix, replacement in _URL_PREFIXES:
		if url.startswith(prefix):
			return replacement + url[len(prefix):]
	return url


def _context_options(url: str) -> Dict[str, Any]:
	# SQLite cannot ALTER most constraints in place
	return {
		"target_metadata": Base.metadata,
		"compare_type": True,
		"render_as_batch": url.startswith("sqlite"),
	}


if config.config_file_name is not None:
	fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", _migration_url())


def run_migrations_offline() -> None:
	url = config.get_main_option("sqlalchemy.url")
	context.configure(
		url=url,
		literal_binds=True,
		dialect_opts={"paramstyle": "named"},
		**_context_options(url),
	)

	with context.begin_transaction():
		context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
	context.configure(connection=connection, **_context_options(config.get_main_option("sqlalchemy.url")))

	with context.begin_transaction():
		context.run_migrations()


async def run_migrations_online() -> None:
	section: Dict[str, Any] = config.get_section(config.config_ini_section, {})
	section["sqlalchemy.url"] = config.get_main_option("sqlalchemy.url")

	connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

	async with connectable.connect() as connection:
		await connection.run_sync(do_run_migrations)

	await connectable.dispose()


if context.is_offline_mode():
	run_migrations_offline()
else:
	asyncio.run(run_migrations_online())
