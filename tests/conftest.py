"""
Shared pytest fixtures for the hvp2h5p tests.

This module provides:
- Store fixtures (records, assets) backed by the in-memory implementations
- Component fixtures (selector, linker, retention, engine, driver)
- Seeding helpers (make_course, make_legacy) that create legacy activities
  together with their content package
- A MockTracer fixture for span assertions

All stores are created with tracing disabled unless a test passes a tracer.
"""

from __future__ import annotations

from typing import Any

import pytest

from hvp2h5p.batch import BatchDriver
from hvp2h5p.engine import MigrationEngine
from hvp2h5p.linker import ContentBankLinker
from hvp2h5p.models import Course, HvpActivity
from hvp2h5p.observability import MockTracer
from hvp2h5p.retention import RetentionManager
from hvp2h5p.selector import Selector
from hvp2h5p.stores import InMemoryAssetStore, InMemoryRecordStore
from tests.helpers import FIXED_NOW, MakeCourse, MakeLegacy, seed_legacy


# ============================================================================
# Stores
# ============================================================================


@pytest.fixture
def records() -> InMemoryRecordStore:
    """Fresh in-memory record store."""
    return InMemoryRecordStore(enable_tracing=False)


@pytest.fixture
def assets() -> InMemoryAssetStore:
    """Fresh in-memory asset store."""
    return InMemoryAssetStore(enable_tracing=False)


@pytest.fixture
def tracer() -> MockTracer:
    """Tracer recording every span."""
    return MockTracer()


# ============================================================================
# Seeding helpers
# ============================================================================


@pytest.fixture
def make_course(records: InMemoryRecordStore) -> MakeCourse:
    """Factory adding a course to the record store."""

    async def _make(shortname: str = "PHYS101", **overrides: Any) -> Course:
        return await records.add_course(Course(shortname=shortname, **overrides))

    return _make


@pytest.fixture
def make_legacy(records: InMemoryRecordStore, assets: InMemoryAssetStore) -> MakeLegacy:
    """
    Factory adding a legacy activity and, unless disabled, its package.

    Keyword arguments:
        package: Package bytes, or None for an activity without a package
        filename: Package file name
        any other HvpActivity field
    """

    async def _make(**kwargs: Any) -> HvpActivity:
        return await seed_legacy(records, assets, **kwargs)

    return _make


# ============================================================================
# Components
# ============================================================================


@pytest.fixture
def selector(records: InMemoryRecordStore) -> Selector:
    return Selector(records, enable_tracing=False)


@pytest.fixture
def linker(records: InMemoryRecordStore, assets: InMemoryAssetStore) -> ContentBankLinker:
    return ContentBankLinker(records, assets, enable_tracing=False)


@pytest.fixture
def retention(records: InMemoryRecordStore, assets: InMemoryAssetStore) -> RetentionManager:
    return RetentionManager(records, assets, enable_tracing=False)


@pytest.fixture
def engine(
    records: InMemoryRecordStore,
    assets: InMemoryAssetStore,
    linker: ContentBankLinker,
    retention: RetentionManager,
) -> MigrationEngine:
    return MigrationEngine(
        records,
        assets,
        linker=linker,
        retention=retention,
        clock=lambda: FIXED_NOW,
        enable_tracing=False,
    )


@pytest.fixture
def driver(
    selector: Selector,
    engine: MigrationEngine,
    records: InMemoryRecordStore,
) -> BatchDriver:
    return BatchDriver(selector, engine, records, enable_tracing=False)
