import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import StaticPool


class LedgerDatabase:
    """Thin async wrapper around a SQLAlchemy engine.

    Queries are plain SQL with ``:name`` parameters. Every call to
    :meth:`execute` and the fetch helpers runs in its own transaction;
    use :meth:`connect` to group several statements atomically.

    An in-memory SQLite database lives on one connection that every
    checkout shares, so transactions on it are run one at a time.
    """

    def __init__(self, url: str):
        self.url = make_url(url)
        memory = False
        if self.url.get_backend_name() == "sqlite":
            database = self.url.database
            memory = (
                not database
                or database == ":memory:"
                or self.url.query.get("mode") == "memory"
            )
            if not memory:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_async_engine(self.url)
        self.shared_connection = memory or isinstance(self.engine.pool, StaticPool)
        self._lock = asyncio.Lock() if self.shared_connection else None

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        if self._lock is None:
            async with self.engine.begin() as conn:
                yield conn
            return
        async with self._lock:
            async with self.engine.begin() as conn:
                yield conn

    async def execute(self, query: str, values: Optional[dict] = None) -> int:
        async with self.connect() as conn:
            result = await conn.execute(text(query), values or {})
            return result.rowcount

    async def fetchone(
        self, query: str, values: Optional[dict] = None
    ) -> Optional[dict[str, Any]]:
        async with self.connect() as conn:
            result = await conn.execute(text(query), values or {})
            row = result.mappings().first()
            return dict(row) if row else None

    async def fetchall(
        self, query: str, values: Optional[dict] = None
    ) -> list[dict[str, Any]]:
        async with self.connect() as conn:
            result = await conn.execute(text(query), values or {})
            return [dict(row) for row in result.mappings().all()]

    async def close(self) -> None:
        await self.engine.dispose()
