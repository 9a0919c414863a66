from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from ..config import DatabaseConfig
from .tables import step_table, workflow_table

if TYPE_CHECKING:
    from ..dialects import Dialect


class Database:
    """Async engine wrapper owning the connection pool for one tracker."""

    def __init__(self, config: DatabaseConfig, dialect: Dialect) -> None:
        self.config = config
        self.dialect = dialect
        self.engine: AsyncEngine = create_async_engine(
            config.to_url(dialect.driver),
            echo=False,
            future=True,
            **dialect.engine_options(),
        )
        self._disposed = False

    async def init_db(self) -> None:
        """Create the workflow tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(
                SQLModel.metadata.create_all, tables=[workflow_table, step_table]
            )

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Connection for reads."""
        async with self.engine.connect() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Connection inside a transaction committed on success."""
        async with self.engine.begin() as conn:
            yield conn

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        await self.engine.dispose()
