"""
Database manager for the scoring store.

Works against Postgres (asyncpg) in production and SQLite (aiosqlite) for
single-node deployments and tests. All statements must be SQLAlchemy
constructs; raw SQL strings are rejected.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

from sqlalchemy import event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.sql.elements import ClauseElement, TextClause

from .schema import metadata

logger = logging.getLogger(__name__)


# WAL mode and busy timeout are per-connection pragmas, so they are set on
# each connect. Registered on sqlite engines only.
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
    finally:
        cursor.close()


def dialect_insert(dialect: str, table: Any):
    """INSERT construct with ON CONFLICT support for the given dialect."""
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Unsupported database dialect: {dialect}")


def _check_statement(query: Any) -> None:
    if isinstance(query, str):
        raise TypeError("Raw SQL strings are disallowed. Use sqlalchemy.text() or Core constructs.")
    if not isinstance(query, (TextClause, ClauseElement)):
        raise TypeError("Query must be a SQLAlchemy TextClause or ClauseElement.")


class DBM:
    def __init__(self, database_url: str, *, echo: bool = False):
        self.database_url = database_url

        if database_url.startswith("sqlite") and ":///" in database_url:
            path = database_url.split(":///", 1)[-1]
            if path and path != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

        self.engine: AsyncEngine = create_async_engine(
            database_url,
            echo=echo,
            future=True,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", set_sqlite_pragma)

        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            yield session

    async def create_schema(self) -> None:
        """Create every table that does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info(f"Schema ready on {self.engine.url.render_as_string(hide_password=True)}")

    async def read(
        self,
        query: Any,
        params: dict | None = None,
        mappings: bool = True,
    ) -> list[Any]:
        """Execute a read-only statement and return all rows."""
        _check_statement(query)

        async with self.session() as session:
            result: Result = await session.execute(query, params or {})
            if mappings:
                return list(result.mappings().all())
            return list(result.all())

    async def write(
        self,
        query: Any,
        params: dict | None = None,
        return_rows: bool = False,
        mappings: bool = True,
    ) -> Any:
        """Execute a write statement inside a transaction.

        Returns the row count, or the RETURNING rows when ``return_rows`` is set.
        """
        _check_statement(query)
        if isinstance(query, TextClause) and not params:
            raise ValueError("Parameterized writes are required. Provide a params mapping.")

        async with self.session() as session:
            async with session.begin():
                result: Result = await session.execute(query, params or {})
                if return_rows:
                    return list(result.mappings().all()) if mappings else list(result.all())
                return result.rowcount or 0

    async def write_many(self, statements: Sequence[Any]) -> list[int]:
        """Execute several writes in one transaction; all or nothing."""
        for stmt in statements:
            _check_statement(stmt)

        counts: list[int] = []
        async with self.session() as session:
            async with session.begin():
                for stmt in statements:
                    result: Result = await session.execute(stmt)
                    counts.append(result.rowcount or 0)
        return counts

    async def dispose(self) -> None:
        await self.engine.dispose()


__all__ = ["DBM", "dialect_insert"]
