# repairhub/db/base.py

from __future__ import annotations

import contextlib
import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError

from repairhub.config import settings

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


# --- Engine & Session factory ---
if settings.ENVIRONMENT == "test":
    log.info("Using in-memory SQLite database (aiosqlite) for tests.")
    # StaticPool keeps a single connection so every session sees the same in-memory DB
    engine: AsyncEngine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # pysqlite defers BEGIN and mishandles SAVEPOINT; let SQLAlchemy emit BEGIN itself
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

else:
    log.info("Using ASYNC PostgreSQL database: %s", settings.DATABASE_URL.split("@")[-1])
    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        raise ValueError("DATABASE_URL must use 'asyncpg' driver for async operations.")
    engine = create_async_engine(
        settings.DATABASE_URL, echo=(settings.ENVIRONMENT == "dev"), pool_pre_ping=True
    )

async_session_factory = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: creates and yields an async session, handling commit/rollback.
    """
    session = async_session_factory()
    session_id_for_log = id(session)
    try:
        log.debug("get_async_db_session: session %s created, yielding...", session_id_for_log)
        yield session
        await session.commit()
        log.debug("get_async_db_session: session %s committed.", session_id_for_log)
    except SQLAlchemyError:
        log.exception("get_async_db_session: SQLAlchemyError in session %s, rolling back...", session_id_for_log)
        await session.rollback()
        raise
    except Exception:
        log.debug("get_async_db_session: exception in session %s scope, rolling back...", session_id_for_log)
        await session.rollback()
        raise
    finally:
        await session.close()


@contextlib.asynccontextmanager
async def async_session_context() -> AsyncGenerator[AsyncSession, None]:
    session: AsyncSession = async_session_factory()
    log.debug("Entering async session context %s", id(session))
    try:
        yield session
        await session.commit()
    except Exception:
        log.exception("Rolling back session %s from context due to exception", id(session))
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_db_and_tables() -> None:
    """Create every table registered on ``Base.metadata`` (tests and local dev)."""
    # models must be imported so their tables are registered
    import repairhub.core.gamification.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.debug("Tables created: %s", sorted(Base.metadata.tables))


async def drop_db_and_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


__all__ = [
    "Base", "engine", "async_session_factory", "AsyncSession",
    "get_async_db_session", "async_session_context",
    "create_db_and_tables", "drop_db_and_tables",
]
