"""Database resource handle.

The engine and session factory live on a ``Database`` object that the
application lifespan constructs and disposes. Request handlers obtain a
session through the ``get_db`` dependency, which reads the handle from
``request.app.state``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import cast

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import QueuePool

from orgflow.core.metrics import (
    db_pool_checked_in,
    db_pool_checked_out,
    db_pool_overflow,
    db_pool_size,
)


def _update_pool_metrics(pool: QueuePool) -> None:
    """Snapshot current pool state into Prometheus gauges."""
    db_pool_size.set(pool.size())
    db_pool_checked_in.set(pool.checkedin())
    db_pool_checked_out.set(pool.checkedout())
    db_pool_overflow.set(pool.overflow())


class Database:
    """Owns one async engine and the session factory bound to it."""

    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs) -> None:
        engine_kwargs.setdefault("pool_size", 20)
        engine_kwargs.setdefault("max_overflow", 10)
        engine_kwargs.setdefault("pool_timeout", 30)
        engine_kwargs.setdefault("pool_recycle", 1800)
        engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self._instrument_pool()

    def _instrument_pool(self) -> None:
        pool = self.engine.sync_engine.pool
        if not isinstance(pool, QueuePool):
            return

        # Update pool metrics on every checkout / checkin
        @event.listens_for(self.engine.sync_engine, "checkout")
        def _on_checkout(dbapi_conn, connection_record, connection_proxy):
            _update_pool_metrics(cast(QueuePool, self.engine.sync_engine.pool))

        @event.listens_for(self.engine.sync_engine, "checkin")
        def _on_checkin(dbapi_conn, connection_record):
            _update_pool_metrics(cast(QueuePool, self.engine.sync_engine.pool))

    def session(self) -> AsyncSession:
        return self.sessionmaker()

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
