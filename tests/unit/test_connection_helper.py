"""
Unit tests for the connection handling helper.

Tests the execute_with_connection async context manager for:
- Handling AsyncEngine inputs in transactional mode
- Handling AsyncEngine inputs in read-only mode
- Passing through AsyncConnection inputs directly
- Translating SQLAlchemy errors into StoreError
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from hvp2h5p.exceptions import StoreError
from hvp2h5p.stores._connection import execute_with_connection


def _mock_engine(method: str, connection: AsyncMock) -> MagicMock:
    engine = MagicMock()
    context = AsyncMock()
    context.__aenter__.return_value = connection
    context.__aexit__.return_value = None
    getattr(engine, method).return_value = context
    return engine


class TestExecuteWithConnection:
    """Tests for execute_with_connection context manager."""

    @pytest.mark.asyncio
    async def test_with_async_engine_transactional(self):
        """AsyncEngine input with transactional=True uses begin()."""
        mock_connection = AsyncMock()
        mock_engine = _mock_engine("begin", mock_connection)

        with patch(
            "hvp2h5p.stores._connection.isinstance",
            side_effect=lambda obj, cls: obj is mock_engine,
            create=True,
        ):
            async with execute_with_connection(mock_engine, transactional=True) as conn:
                assert conn is mock_connection

        mock_engine.begin.assert_called_once()
        mock_engine.connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_with_async_engine_read_only(self):
        """AsyncEngine input with transactional=False uses connect()."""
        mock_connection = AsyncMock()
        mock_engine = _mock_engine("connect", mock_connection)

        with patch(
            "hvp2h5p.stores._connection.isinstance",
            side_effect=lambda obj, cls: obj is mock_engine,
            create=True,
        ):
            async with execute_with_connection(mock_engine, transactional=False) as conn:
                assert conn is mock_connection

        mock_engine.connect.assert_called_once()
        mock_engine.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_with_async_connection(self):
        """AsyncConnection input is used directly without creating new connection."""
        mock_connection = AsyncMock()

        async with execute_with_connection(mock_connection, transactional=True) as conn:
            assert conn is mock_connection

    @pytest.mark.asyncio
    async def test_sqlalchemy_error_becomes_store_error(self):
        """Database errors leave the helper as StoreError naming the operation."""
        mock_connection = AsyncMock()
        error = OperationalError("SELECT 1", {}, Exception("database is locked"))

        with pytest.raises(StoreError, match="during add_legacy") as exc_info:
            async with execute_with_connection(mock_connection, operation="add_legacy"):
                raise error

        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        """Non-database errors are not translated."""
        mock_connection = AsyncMock()

        with pytest.raises(ValueError):
            async with execute_with_connection(mock_connection):
                raise ValueError("boom")
