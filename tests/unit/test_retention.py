"""Unit tests for RetentionManager."""

from unittest.mock import AsyncMock

import pytest

from hvp2h5p.exceptions import RetentionError, StoreError
from hvp2h5p.models import HvpActivity, RetentionPolicy
from hvp2h5p.retention import RetentionManager
from hvp2h5p.stores import InMemoryAssetStore, InMemoryRecordStore
from tests.helpers import MakeLegacy


class TestDispose:
    """Tests for RetentionManager.dispose."""

    @pytest.mark.asyncio
    async def test_keep_changes_nothing(
        self,
        retention: RetentionManager,
        records: InMemoryRecordStore,
        assets: InMemoryAssetStore,
        make_legacy: MakeLegacy,
    ) -> None:
        legacy = await make_legacy()

        await retention.dispose(legacy, RetentionPolicy.KEEP)

        assert await records.get_legacy(legacy.id or 0) == legacy
        assert len(assets) == 1

    @pytest.mark.asyncio
    async def test_hide_sets_invisible(
        self,
        retention: RetentionManager,
        records: InMemoryRecordStore,
        assets: InMemoryAssetStore,
        make_legacy: MakeLegacy,
    ) -> None:
        legacy = await make_legacy()

        await retention.dispose(legacy, RetentionPolicy.HIDE)

        stored = await records.get_legacy(legacy.id or 0)
        assert stored is not None
        assert stored.visible is False
        assert len(assets) == 1

    @pytest.mark.asyncio
    async def test_remove_deletes_record_files_and_context(
        self,
        retention: RetentionManager,
        records: InMemoryRecordStore,
        assets: InMemoryAssetStore,
        make_legacy: MakeLegacy,
    ) -> None:
        legacy = await make_legacy()
        other = await make_legacy(name="Other")
        assert legacy.id is not None

        await retention.dispose(legacy, RetentionPolicy.REMOVE)

        assert await records.get_legacy(legacy.id) is None
        assert await records.find_context_id("mod_hvp", legacy.id) is None
        assert await records.get_legacy(other.id or 0) is not None
        assert len(assets) == 1

    @pytest.mark.asyncio
    async def test_hide_missing_record_raises(self, retention: RetentionManager) -> None:
        ghost = HvpActivity(id=404, course=1, name="Ghost", timecreated=1, main_library_id=1)

        with pytest.raises(RetentionError):
            await retention.dispose(ghost, RetentionPolicy.HIDE)

    @pytest.mark.asyncio
    async def test_store_failure_becomes_retention_error(
        self,
        assets: InMemoryAssetStore,
        make_legacy: MakeLegacy,
    ) -> None:
        legacy = await make_legacy()
        records = AsyncMock()
        records.set_legacy_visibility.side_effect = StoreError("database is locked")
        manager = RetentionManager(records, assets, enable_tracing=False)

        with pytest.raises(RetentionError, match="database is locked") as exc_info:
            await manager.dispose(legacy, RetentionPolicy.HIDE)

        assert exc_info.value.record_id == legacy.id
        assert isinstance(exc_info.value.__cause__, StoreError)

    @pytest.mark.asyncio
    async def test_foreign_failure_becomes_retention_error(
        self,
        records: InMemoryRecordStore,
        assets: InMemoryAssetStore,
        make_legacy: MakeLegacy,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        legacy = await make_legacy()
        monkeypatch.setattr(
            assets, "delete_area_files", AsyncMock(side_effect=OSError("disk quota exceeded"))
        )
        manager = RetentionManager(records, assets, enable_tracing=False)

        with pytest.raises(RetentionError) as exc_info:
            await manager.dispose(legacy, RetentionPolicy.REMOVE)

        assert exc_info.value.message == (
            "Could not remove the original activity: disk quota exceeded"
        )
        assert isinstance(exc_info.value.__cause__, OSError)
        assert await records.get_legacy(legacy.id or 0) is not None
