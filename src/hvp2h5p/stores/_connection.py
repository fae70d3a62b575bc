"""
Connection handling helper for the SQL stores.

The stores accept either an AsyncEngine or an AsyncConnection. The
`execute_with_connection` async context manager:
- Opens a connection (or a transaction) when given an AsyncEngine
- Passes an AsyncConnection through so the caller owns the transaction
- Translates SQLAlchemy errors into StoreError
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from hvp2h5p.exceptions import StoreError


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
    operation: str = "query",
) -> AsyncIterator[AsyncConnection]:
    """
    Context manager for executing store operations.

    Args:
        conn: Database connection or engine
        transactional: If True, wrap in transaction (begin).
                       If False, use bare connection (connect).
                       Only applies when conn is an AsyncEngine.
        operation: Name of the store operation, used in error messages

    Yields:
        AsyncConnection ready for execute() calls

    Raises:
        StoreError: If the database raises a SQLAlchemyError

    Example:
        >>> async with execute_with_connection(self.conn, operation="add_legacy") as conn:
        ...     await conn.execute(query, params)
    """
    try:
        if isinstance(conn, AsyncEngine):
            if transactional:
                async with conn.begin() as connection:
                    yield connection
            else:
                async with conn.connect() as connection:
                    yield connection
        else:
            yield conn
    except SQLAlchemyError as e:
        raise StoreError(f"Database error during {operation}: {e}") from e
