"""
Shared pytest fixtures for integration tests.

This module provides a SQLite database (through aiosqlite) with the
migration schema, and SQL store fixtures bound to it. Each test gets its
own database file under ``tmp_path``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hvp2h5p.models import HvpActivity
from hvp2h5p.stores import SQLAssetStore, SQLRecordStore, create_schema
from tests.helpers import seed_legacy

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every test below this directory as an integration test."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Database
# ============================================================================


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return sqlite_url(tmp_path / "site.db")


@pytest_asyncio.fixture
async def sql_engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Engine on a fresh database with every migration table created."""
    engine = create_async_engine(database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_records(sql_engine: AsyncEngine) -> SQLRecordStore:
    return SQLRecordStore(sql_engine, enable_tracing=False)


@pytest.fixture
def sql_assets(sql_engine: AsyncEngine) -> SQLAssetStore:
    return SQLAssetStore(sql_engine, enable_tracing=False)


# ============================================================================
# Seeding
# ============================================================================


@pytest.fixture
def make_sql_legacy(
    sql_records: SQLRecordStore, sql_assets: SQLAssetStore
) -> Callable[..., Awaitable[HvpActivity]]:
    async def _make(**kwargs: object) -> HvpActivity:
        return await seed_legacy(sql_records, sql_assets, **kwargs)  # type: ignore[arg-type]

    return _make


