"""Alembic migration environment configuration.

This module configures how Alembic runs migrations:
- Loads SQLAlchemy models for autogenerate support
- Configures the database connection from Hydrotrack settings
- Supports both online and offline migration modes
"""

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

# Import all models to register them with metadata
from hydrotrack.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _include_object(
    _obj: Any,
    _name: str | None,
    _type: str,
    _reflected: bool,
    _compare_to: Any | None,
) -> bool:
    """Include all objects in autogenerate comparisons."""
    return True


def get_url() -> str:
    """Get a synchronous database URL.

    Priority:
    1. HYDROTRACK_DATABASE__URL environment variable
    2. sqlalchemy.url from alembic.ini
    3. Hydrotrack settings default

    psycopg (v3) serves both the async engine and migrations, so plain
    postgresql:// URLs are pinned to that driver.
    """
    url = os.environ.get("HYDROTRACK_DATABASE__URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        from hydrotrack.core.config import DatabaseSettings

        url = DatabaseSettings().url
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Generates SQL script without connecting to database.
    """
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=_include_object,
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode within a transaction."""
    # NullPool closes connections immediately after use
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=_include_object,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
