"""
Thin query helpers shared by the notification repositories.

All SQL uses psycopg `%s` placeholders. Driver errors surface as `DatabaseError`
so callers can decide whether a failure is worth degrading around.
"""

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from smart_notify.db.pool import get_db_connection, get_db_transaction
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Params = Sequence[Any]


class DatabaseError(Exception):
    """A query failed at the driver level."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _cursor(
    operation: str, query: str, connection: psycopg.AsyncConnection | None
) -> AsyncGenerator[psycopg.AsyncCursor, None]:
    try:
        if connection is not None:
            async with connection.cursor() as cur:
                yield cur
        else:
            async with await get_db_connection() as conn:
                async with conn.cursor() as cur:
                    yield cur
    except psycopg.Error as e:
        logger.error("Query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"{operation} failed: {e}", operation=operation) from e


async def fetch_one(
    query: str, params: Params = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    async with _cursor("fetch_one", query, connection) as cur:
        await cur.execute(query, params)
        return await cur.fetchone()


async def fetch_all(
    query: str, params: Params = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    async with _cursor("fetch_all", query, connection) as cur:
        await cur.execute(query, params)
        return await cur.fetchall()


async def fetch_val(
    query: str, params: Params = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """First column of the first row, or None."""
    row = await fetch_one(query, params, connection=connection)
    return next(iter(row.values())) if row else None


async def execute_query(
    query: str, params: Params = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    async with _cursor("execute", query, connection) as cur:
        await cur.execute(query, params)
        return cur.rowcount


async def execute_many(query: str, params_seq: list[Params]) -> int:
    """Run one statement per params entry inside a single transaction."""
    if not params_seq:
        return 0

    try:
        async with await get_db_transaction() as conn:
            async with conn.cursor() as cur:
                await cur.executemany(query, params_seq)
    except psycopg.Error as e:
        logger.error(
            "Batch failed", query=query[:100], batch=len(params_seq), error=str(e)
        )
        raise DatabaseError(f"execute_many failed: {e}", operation="execute_many") from e
    return len(params_seq)
