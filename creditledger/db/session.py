"""Database session management for async SQLAlchemy."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


class DatabaseManager:
    """Manages async database connections and sessions.

    Every ``session()`` is one atomic unit of work: it commits when the block
    exits normally and rolls back on any exception, including task
    cancellation. Credit mutations rely on this for all-or-nothing semantics.

    Pool settings are tuned for parallel API traffic:
    - pool_size=10: Base number of persistent connections
    - max_overflow=20: Extra connections under load (up to 30 total)
    - pool_pre_ping=True: Verify connections are alive before use
    """

    def __init__(
        self,
        database_url: str,
        *,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 20,
    ):
        self._database_url = database_url
        self._echo = echo
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._logger = logging.getLogger(__name__)

    async def connect(self) -> None:
        """Initialize the database engine, session factory, and verify connection."""
        if self._engine is not None:
            return

        self._engine = create_async_engine(
            self._database_url,
            echo=self._echo,
            pool_pre_ping=True,
            pool_size=self._pool_size,
            max_overflow=self._max_overflow,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

        # Verify connection works
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        self._logger.info("Connected to PostgreSQL database")

    async def disconnect(self) -> None:
        """Close the database engine and cleanup resources."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._logger.info("Disconnected from PostgreSQL database")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Get a transactional database session.

        Auto-commits on success, rolls back on error.

        Usage:
            async with db.session() as session:
                await consume_user_credits(session, ...)
        """
        factory = await self._get_factory()

        async with factory() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        """Get a read-only session optimized for queries.

        Uses autoflush=False and never commits. Results may be stale by the
        time they are used, which is fine for advisory reads like history.

        Usage:
            async with db.read_session() as session:
                rows = await get_user_transactions(session, ...)
        """
        factory = await self._get_factory()

        async with factory() as session:
            session.autoflush = False
            yield session
            # No commit needed for read-only operations

    async def _get_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            await self.connect()

        if self._session_factory is None:
            raise RuntimeError("Failed to initialize database session factory")
        return self._session_factory

    @property
    def engine(self) -> AsyncEngine:
        """Get the underlying engine (for Alembic migrations and tests)."""
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._engine
