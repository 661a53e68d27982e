"""Alembic environment for the sectorstock schema.

``sqlalchemy.url`` in alembic.ini may name an environment variable as
``env://NAME``; otherwise the application's ``Config`` URL is used so the CLI
and the app always migrate the same database.
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from config import Config
from sectorstock import models  # noqa: F401
from sectorstock.extensions import db

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = db.Model.metadata


def resolve_database_url() -> str:
    configured = (config.get_main_option("sqlalchemy.url") or "").strip()
    if configured.startswith("env://"):
        return os.getenv(configured[len("env://"):]) or Config.SQLALCHEMY_DATABASE_URI
    return configured or Config.SQLALCHEMY_DATABASE_URI


def _configure_options(url: str) -> dict:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_offline() -> None:
    url = resolve_database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    url = resolve_database_url()
    engine = engine_from_config(
        {"sqlalchemy.url": url},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
