"""
Disposition of legacy activities after migration.
"""

from __future__ import annotations

import logging

from hvp2h5p.exceptions import RetentionError, describe_error
from hvp2h5p.models import HvpActivity, RetentionPolicy
from hvp2h5p.observability import ATTR_LEGACY_ID, ATTR_RETENTION_POLICY, Tracer, create_tracer
from hvp2h5p.stores.interface import COMPONENT_LEGACY, AssetStore, RecordStore

logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Applies a retention policy to a migrated legacy activity.

    KEEP leaves the activity untouched, HIDE makes it invisible, and REMOVE
    deletes its files, its context and the record itself.

    Example:
        >>> retention = RetentionManager(record_store, asset_store)
        >>> await retention.dispose(legacy, RetentionPolicy.HIDE)
    """

    def __init__(
        self,
        records: RecordStore,
        assets: AssetStore,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._records = records
        self._assets = assets
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def dispose(self, legacy: HvpActivity, policy: RetentionPolicy) -> None:
        """
        Apply ``policy`` to ``legacy``.

        Args:
            legacy: The migrated legacy activity
            policy: Retention policy to apply

        Raises:
            RetentionError: If the activity cannot be hidden or removed, whatever
                the underlying exception
        """
        if policy is RetentionPolicy.KEEP:
            return
        assert legacy.id is not None

        with self._tracer.span(
            "hvp2h5p.retention.dispose",
            {ATTR_LEGACY_ID: legacy.id, ATTR_RETENTION_POLICY: policy.name},
        ):
            try:
                if policy is RetentionPolicy.HIDE:
                    await self._hide(legacy.id)
                else:
                    await self._remove(legacy.id)
            except RetentionError:
                raise
            except Exception as e:
                raise RetentionError(
                    f"Could not {policy.name.lower()} the original activity: {describe_error(e)}",
                    record_id=legacy.id,
                ) from e

    async def _hide(self, legacy_id: int) -> None:
        if not await self._records.set_legacy_visibility(legacy_id, False):
            raise RetentionError(
                "Could not hide the original activity: record not found",
                record_id=legacy_id,
            )
        logger.info("Hid original activity %d", legacy_id)

    async def _remove(self, legacy_id: int) -> None:
        removed_files = 0
        context_id = await self._records.find_context_id(COMPONENT_LEGACY, legacy_id)
        if context_id is not None:
            removed_files = await self._assets.delete_area_files(context_id, COMPONENT_LEGACY)
            await self._records.delete_context(COMPONENT_LEGACY, legacy_id)
        if not await self._records.delete_legacy(legacy_id):
            raise RetentionError(
                "Could not remove the original activity: record not found",
                record_id=legacy_id,
            )
        logger.info("Removed original activity %d and %d file(s)", legacy_id, removed_files)
