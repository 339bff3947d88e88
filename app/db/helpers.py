"""
Query helpers over the shared pool.

Repositories pass SQL with %s placeholders and get dict rows back. Any
psycopg failure surfaces as DatabaseError tagged with the helper that hit it.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A query failed; `recoverable` hints whether a retry could succeed."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _use_connection(
    connection: psycopg.AsyncConnection | None,
) -> AsyncIterator[psycopg.AsyncConnection]:
    """Borrow a pooled connection unless the caller is already holding one."""
    if connection is not None:
        yield connection
        return
    async with await get_db_connection() as conn:
        yield conn


def _wrap(operation: str, query: str, error: psycopg.Error) -> DatabaseError:
    logger.error(
        "Database query failed",
        operation=operation,
        query=query[:100],
        error=str(error),
        error_type=type(error).__name__,
    )
    # Constraint and syntax errors will fail the same way again
    recoverable = not isinstance(error, (psycopg.IntegrityError, psycopg.ProgrammingError))
    return DatabaseError(f"Query failed: {error}", operation=operation, recoverable=recoverable)


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Execute query and return the first row, or None.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Optional connection to run on (e.g. inside a transaction)
    """
    try:
        async with _use_connection(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()
    except psycopg.Error as e:
        raise _wrap("fetch_one", query, e) from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Execute query and return every row."""
    try:
        async with _use_connection(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
    except psycopg.Error as e:
        raise _wrap("fetch_all", query, e) from e


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Execute a write and return the number of affected rows."""
    try:
        async with _use_connection(connection) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap("execute", query, e) from e
