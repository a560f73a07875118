"""
Database configuration and session management.

Kept small and test-friendly:
- Defaults to SQLite for local dev
- Supports Postgres via FABQUOTE_DATABASE_URL
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fabquote.config import get_settings
from fabquote.models.base import Base

SessionFactory = Callable[[], Session]


def get_database_url() -> str:
    return get_settings().DATABASE_URL


def create_db_engine(database_url: Optional[str] = None, *, echo: bool = False) -> Engine:
    url = database_url or get_database_url()

    connect_args: dict = {}
    if "sqlite" in url:
        connect_args["check_same_thread"] = False

    if url.startswith("sqlite:///:memory:") or url == "sqlite://":
        from sqlalchemy.pool import StaticPool

        engine = create_engine(
            url,
            echo=echo,
            connect_args=connect_args,
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args=connect_args,
        )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):  # pragma: no cover
        if "sqlite" in url:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return engine


def build_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


if os.getenv("ALEMBIC_RUNNING") != "true":
    engine = create_db_engine()
    SessionLocal = build_sessionmaker(engine)
else:  # pragma: no cover
    engine = None
    SessionLocal = None


@contextmanager
def session_scope(factory: SessionFactory) -> Generator[Session, None, None]:
    """Commit-on-success unit of work over an arbitrary session factory."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(*, create_tables: bool = False, bind_engine: Optional[Engine] = None) -> None:
    """
    Initialize database schema.

    When SCHEMA_MODE=migrations, this will NOT auto-create tables.
    Use `fabquote db upgrade` for production deployments.
    """
    settings = get_settings()
    target_engine = bind_engine or engine
    if not target_engine:
        raise RuntimeError("Database engine is not initialized")

    if not create_tables:
        return

    if settings.SCHEMA_MODE == "migrations":
        from sqlalchemy import inspect

        if not inspect(target_engine).get_table_names():
            raise RuntimeError(
                "SCHEMA_MODE=migrations: Database is empty. "
                "Run `fabquote db upgrade` first to create tables via Alembic."
            )
        return

    from fabquote.backoffice.bootstrap import import_all_models

    import_all_models()
    Base.metadata.create_all(bind=target_engine, checkfirst=True)
