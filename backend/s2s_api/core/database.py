"""
Database Configuration
======================

SQLAlchemy async engine and session management.

A ``Database`` instance is built once from settings and handed to the
components that need the credential store. Sessions are only ever used
through ``async with`` so the pooled connection is returned on every exit
path, including exceptions.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from s2s_api.core.config import Settings
from s2s_api.models.base import Base


class Database:
    """Owns the async engine and the session factory."""

    def __init__(self, settings: Settings):
        engine_kwargs = dict(echo=settings.DEBUG)

        if settings.DATABASE_URL.startswith("sqlite"):
            engine_kwargs["poolclass"] = NullPool
            engine_kwargs["connect_args"] = {"timeout": 30}
        elif settings.APP_ENV == "test":
            engine_kwargs["poolclass"] = NullPool
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
            engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

        self.engine: AsyncEngine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        if self.engine.dialect.name == "sqlite":
            _use_immediate_transactions(self.engine)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Scoped session.

        Rolls back on error and always releases the connection.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """
        Create tables if they don't exist.

        Note: In production, use Alembic migrations instead.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Creates a new session for each request from the application's
    ``Database`` and releases it when the request is complete.
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make SQLite take the write lock at BEGIN.

    With the driver's deferred BEGIN, two connections upserting the same
    counter row can fail with "database is locked" instead of waiting.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
