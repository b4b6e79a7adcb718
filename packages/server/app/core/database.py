"""
Database engine and session management.

The store is shared by every tenant; tenant separation is logical and is
applied per query by the access layer (see app.core.tenancy).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from app.core.config import get_settings

settings = get_settings()


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine. SQLite engines get real SAVEPOINT support."""
    engine = create_async_engine(url, echo=echo, future=True)
    if url.startswith("sqlite"):
        # aiosqlite emits its own BEGIN which breaks nested transactions;
        # take over transaction control so begin_nested() works.
        @event.listens_for(engine.sync_engine, "connect")
        def _do_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _do_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)

async_session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create all tables (development and tests only; use migrations in production)."""
    import app.models  # noqa: F401  (populate metadata)

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
