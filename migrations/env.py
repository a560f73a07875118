"""
Alembic migrations environment for FabQuote.

Supports:
- PostgreSQL (production)
- SQLite (development)
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Ensure fabquote package is importable
repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(repo_root, "src"))

# Keep fabquote.database from building its module-level engine
os.environ["ALEMBIC_RUNNING"] = "true"

from fabquote.backoffice.bootstrap import import_all_models  # noqa: E402
from fabquote.models.base import Base  # noqa: E402

import_all_models()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_database_url() -> str:
    """Get database URL from environment or config."""
    url = os.getenv("FABQUOTE_DATABASE_URL")
    if url:
        return url

    config_url = config.get_main_option("sqlalchemy.url", "sqlite:///fabquote_dev.db")
    if config_url.startswith("driver://"):
        return "sqlite:///fabquote_dev.db"
    return config_url


def run_migrations_offline() -> None:
    """Emit SQL to the script output without a DBAPI connection."""
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
