"""
Alembic Environment Configuration
=================================

This module configures Alembic to work with our SQLAlchemy setup.
Uses synchronous operations for migrations.
"""

import os

from logging.config import fileConfig

from sqlalchemy import pool, create_engine

from alembic import context

from s2s_api.core.config import get_settings

# Importing the package registers every model on Base.metadata
from s2s_api.models import Base

# Alembic Config object
config = context.config

# Set SQLAlchemy URL from settings (use sync URL for Alembic)
#
# Tests may override the target DB without mutating app settings by setting:
#   ALEMBIC_DATABASE_URL_SYNC=postgresql://...
config.set_main_option(
    "sqlalchemy.url",
    os.environ.get("ALEMBIC_DATABASE_URL_SYNC") or get_settings().DATABASE_URL_SYNC,
)

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Target metadata for autogenerate
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Configures the context with just a URL, so no DBAPI is needed; calls to
    context.execute() emit SQL to the script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a synchronous Engine."""
    url = config.get_main_option("sqlalchemy.url")
    connectable = create_engine(
        url,
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
