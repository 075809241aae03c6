"""Database connection and schema management.

Results live in SQLite under the data directory by default; set DATABASE_URL
(e.g. ``postgresql+asyncpg://...``) to point at a server database instead.
The same models and queries run on either backend.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """Enable WAL mode for concurrent reads during writes, and enforce foreign keys."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the async engine and session factory for one process.

    Nothing connects until first use. The engine is then reused until close().
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            url = make_url(self.url)
            if self.is_sqlite and url.database:
                Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_async_engine(self.url, echo=self._echo, pool_pre_ping=not self.is_sqlite)
            if self.is_sqlite:
                event.listen(self._engine.sync_engine, "connect", _set_sqlite_pragmas)
            logger.info("Database engine created (%s)", url.render_as_string(hide_password=True))
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        return self._session_factory

    async def init(self) -> None:
        """Create all tables if they don't exist. Safe to call repeatedly."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            from .sqlmodels import Base

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._initialized = True
            logger.info("Database initialized")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a new session, creating the schema first if needed."""
        await self.init()
        async with self.session_factory() as session:
            yield session

    async def close(self) -> None:
        """Dispose of the engine. A later call to any method reconnects lazily."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine closed")
        self._engine = None
        self._session_factory = None
        self._initialized = False
        self._init_lock = asyncio.Lock()
