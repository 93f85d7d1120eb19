import os
from typing import Optional

from sqlalchemy import BigInteger, Integer, MetaData, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.orm import DeclarativeBase

from pilates_booking.core.config import Settings, get_settings

DB_SCHEMA = os.getenv("DB_SCHEMA") or None

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = MetaData(schema=DB_SCHEMA)


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN so writers serialize and SAVEPOINT works."""

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        # IMMEDIATE takes the write lock up front: one booking writer at a time
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    url = url or get_settings().database_url
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo, connect_args={"timeout": 30})
        _enable_sqlite_transactions(engine)
        return engine
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def engine_from_settings(settings: Settings) -> AsyncEngine:
    return create_engine(settings.database_url, echo=settings.db_echo)


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables."""
    import pilates_booking.models  # noqa: F401  registers every mapper on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
