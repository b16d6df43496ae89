"""
Async database access (raw SQL) using asyncpg.

`PgPool` owns the connection pool. The app lifespan creates it on startup and
closes it on shutdown (see `api/main.py`). Repositories depend on the narrow
`PoolConnector` protocol instead of asyncpg directly, so they can be driven by
a scripted fake in tests.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import asyncpg

from .settings import Settings

# Faults raised by the driver or the network (timeouts included).
STORE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class PoolConnector(Protocol):
    async def execute(self, sql: str, *args: Any) -> str:
        """Run a statement and return its command tag, e.g. "DELETE 1"."""

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        ...

    async def fetchrow(self, sql: str, *args: Any) -> dict[str, Any] | None:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...


def rows_affected(command_tag: str) -> int:
    """
    Parse the row count from a PostgreSQL command tag.

    "DELETE 3" -> 3, "INSERT 0 1" -> 1, "CREATE TABLE" -> 0
    """
    parts = (command_tag or "").split()
    if not parts or not parts[-1].isdigit():
        return 0
    return int(parts[-1])


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


class PgPool:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, settings: Settings, logger: logging.Logger) -> "PgPool":
        """
        Create the pool and make sure the server answers before returning.
        """
        address = settings.db.redacted_dsn()
        try:
            pool = await asyncpg.create_pool(
                dsn=settings.db.dsn(),
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
                command_timeout=settings.command_timeout,
            )
        except STORE_ERRORS:
            logger.exception("db_connect_failed address=%s", address)
            raise

        connector = cls(pool)
        try:
            await connector.ping()
        except STORE_ERRORS:
            logger.exception("db_ping_failed address=%s", address)
            await connector.close()
            raise

        logger.info("db_connected address=%s", address)
        return connector

    def acquire(self) -> Any:
        """
        Borrow a dedicated connection: `async with pool.acquire() as conn`.
        """
        return self._pool.acquire()

    async def execute(self, sql: str, *args: Any) -> str:
        return await self._pool.execute(sql, *args)

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        rows = await self._pool.fetch(sql, *args)
        return [_record_to_dict(r) for r in rows]

    async def fetchrow(self, sql: str, *args: Any) -> dict[str, Any] | None:
        row = await self._pool.fetchrow(sql, *args)
        return _record_to_dict(row) if row is not None else None

    async def ping(self) -> None:
        await self._pool.fetchval("SELECT 1")

    async def close(self) -> None:
        await self._pool.close()
