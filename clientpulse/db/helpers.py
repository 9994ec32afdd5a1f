"""
Query helpers shared by the repositories.

Each helper either borrows a pooled connection for a single statement or runs
on the connection passed as ``connection=``, so a repository can group several
statements inside one ``get_db_transaction()`` block.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from clientpulse.db.pool import get_db_connection
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Storage failure surfaced to the pipeline and the API."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _borrowed(
    connection: psycopg.AsyncConnection | None,
) -> AsyncIterator[psycopg.AsyncConnection]:
    if connection is not None:
        yield connection
        return
    async with await get_db_connection() as conn:
        yield conn


def _wrap(e: psycopg.Error, query: str, operation: str) -> DatabaseError:
    logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
    return DatabaseError(f"Query failed: {e}", operation=operation)


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """Run ``query`` and return its first row, or None."""
    try:
        async with _borrowed(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone() or None
    except psycopg.Error as e:
        raise _wrap(e, query, "fetch_one") from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    try:
        async with _borrowed(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
    except psycopg.Error as e:
        raise _wrap(e, query, "fetch_all") from e


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """
    Run a write and return the number of affected rows.

    Conditional updates rely on this count: zero means the guard did not match.
    """
    try:
        async with _borrowed(connection) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap(e, query, "execute") from e
