"""
Process-wide PostgreSQL pool for the notification store.

Every repository reaches the database through `db_pool`; the API lifespan and
the worker own its open/close cycle.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from smart_notify.config import settings
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
UTILIZATION_WARN_PERCENT = 80
UTILIZATION_FAIL_PERCENT = 90


class DatabasePoolManager:
    """Owns the single AsyncConnectionPool for the process."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._ready = False
        self._closed = False

    @property
    def ready(self) -> bool:
        return self._ready and not self._closed

    async def initialize(self) -> None:
        if self._ready:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = settings.get_db_pool_config()
        logger.info("Opening database pool", **pool_config)

        self.pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )
        try:
            await self.pool.open()
            await self.pool.wait()
            self._ready = True
            await self._ping()
        except Exception as e:
            logger.error("Database pool failed to open", error=str(e))
            self._ready = False
            await self._discard_pool()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready")

    async def _discard_pool(self) -> None:
        if not self.pool:
            return
        try:
            await self.pool.close()
        except Exception as e:
            logger.warning("Error closing half-open pool", error=str(e))
        self.pool = None

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        # dict rows everywhere; autocommit so idle pooled connections never sit INTRANS
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"smart-notify-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(settings.DB_STATEMENT_TIMEOUT)
            )
        )

    async def _ping(self) -> float:
        """Round-trip a trivial query and return the latency in ms."""
        started = time.perf_counter()
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database ping returned an unexpected result")
        return (time.perf_counter() - started) * 1000

    async def close(self) -> None:
        if not self.ready:
            return

        logger.info("Closing database pool")
        self._ready = False
        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out")
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if not self.ready:
            raise RuntimeError("Database pool is not available")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside a transaction; commits on exit, rolls back on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if not self.ready:
            return {"healthy": False, "service": "database_pool", "error": "Pool not available"}

        try:
            latency_ms = await self._ping()
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        waiting = stats.get("requests_waiting", 0)
        utilization = (size - available) / size * 100 if size else 0.0

        health = {
            "healthy": utilization < UTILIZATION_FAIL_PERCENT,
            "service": "database_pool",
            "connection_time_ms": round(latency_ms, 2),
            "pool_stats": {
                "pool_size": size,
                "pool_available": available,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": waiting,
            },
        }
        warnings = []
        if utilization > UTILIZATION_WARN_PERCENT:
            warnings.append(f"High pool utilization: {utilization:.1f}%")
        if waiting:
            warnings.append(f"Requests waiting for connections: {waiting}")
        if warnings:
            health["warnings"] = warnings
        return health


db_pool = DatabasePoolManager()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
