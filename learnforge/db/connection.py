"""
Database Connection Manager
===========================

Builds the async engine and session factory for the enforcement store.

There is no process-wide session maker: `init_db()` returns a `Database`
that the caller owns and passes to whoever needs sessions.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from learnforge.db.models import Base


def sqlite_url(db_path: Union[str, Path]) -> str:
    """Return an aiosqlite URL for a database file, creating its directory."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{db_path}"


@dataclass
class Database:
    """An engine plus its session factory."""
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a request-scoped session."""
        async with self.session_maker() as session:
            yield session

    async def dispose(self) -> None:
        await self.engine.dispose()


async def init_db(db_url: str, echo: bool = False) -> Database:
    """
    Connect to the database and create tables if they don't exist.

    Args:
        db_url: SQLAlchemy async URL, e.g. "sqlite+aiosqlite:///path/to.db"
        echo: Log emitted SQL

    Returns:
        A Database owning the engine and session maker
    """
    engine = create_async_engine(db_url, echo=echo)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    return Database(engine=engine, session_maker=session_maker)


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit everything staged inside the block at once.

    On any exception the session is rolled back and the error re-raised,
    so a half-applied batch is never visible.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself so SAVEPOINT and rollback behave
    (the sqlite3 driver otherwise defers BEGIN until the first write).
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")
