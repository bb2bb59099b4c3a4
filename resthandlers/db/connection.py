"""SQLAlchemy-backed connection pool and transaction handle.

EngineDataSource hands out AsyncConnections from an AsyncEngine's pool
and takes them back; SqlAlchemyTransaction wraps the connection's
transaction for the orchestrator.

Usage:
    from resthandlers.db.connection import create_data_source

    data_source = create_data_source(settings.database)
    connection = await data_source.acquire()
    tx = SqlAlchemyTransaction(connection)
    await tx.start()
    ...
    await tx.commit(result)
    await data_source.release(connection)
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction, create_async_engine

from resthandlers.errors.domain import UsageError

if TYPE_CHECKING:
    from resthandlers.config import DatabaseConfig

logger = logging.getLogger(__name__)

_transaction_ids = itertools.count(1)


def get_async_database_url(url: str) -> str:
    """Convert a sync SQLite URL to its aiosqlite form; other URLs pass through."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, enabling foreign keys on SQLite."""
    engine = create_async_engine(get_async_database_url(url), echo=echo)
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


class EngineDataSource:
    """Connection pool over a SQLAlchemy AsyncEngine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def acquire(self) -> AsyncConnection:
        """Check a connection out of the engine's pool."""
        connection = self._engine.connect()
        await connection.start()
        return connection

    async def release(self, connection: AsyncConnection, error: BaseException | None = None) -> None:
        """Return a connection to the pool.

        A connection invalidated by a disconnect error is discarded by the
        pool instead of being handed out again.
        """
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            logger.warning("Releasing connection invalidated by disconnect: %s", error)
        await connection.close()

    async def dispose(self) -> None:
        """Dispose of the engine's pool."""
        await self._engine.dispose()


class SqlAlchemyTransaction:
    """Transaction handle over an AsyncConnection."""

    def __init__(self, connection: AsyncConnection) -> None:
        self.id = next(_transaction_ids)
        self.connection = connection
        self._transaction: AsyncTransaction | None = None

    async def start(self) -> None:
        if self._transaction is not None:
            raise UsageError(f"Transaction #{self.id} already started.")
        self._transaction = await self.connection.begin()

    def is_active(self) -> bool:
        return self._transaction is not None and self._transaction.is_active

    async def commit(self, result: Any) -> Any:
        """Commit and pass the result through."""
        if not self.is_active():
            raise UsageError(f"Transaction #{self.id} is not active.")
        await self._transaction.commit()
        return result

    async def rollback(self, error: BaseException) -> None:
        """Roll back; the triggering error is only logged."""
        if not self.is_active():
            raise UsageError(f"Transaction #{self.id} is not active.")
        logger.debug("Rolling back transaction #%d after: %s", self.id, error)
        await self._transaction.rollback()


def create_data_source(config: DatabaseConfig) -> EngineDataSource:
    """Create the data source described by the database configuration."""
    return EngineDataSource(create_engine(config.url, echo=config.echo))
