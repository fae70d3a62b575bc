"""
Content bank linking for migrated packages.

Depending on the copy policy, the new activity's package is also added to
the course content bank, either as an independent copy or as a copy the
activity's own package follows.
"""

from __future__ import annotations

import logging
import time

from hvp2h5p.exceptions import AssetWriteError, describe_error
from hvp2h5p.models import (
    CONTENT_TYPE_H5P,
    AssetCoordinates,
    ContentBankEntry,
    ContentBankReference,
    CopyPolicy,
    H5PActivity,
    StoredAsset,
)
from hvp2h5p.observability import (
    ATTR_ACTIVITY_ID,
    ATTR_CONTENT_BANK_ID,
    ATTR_COPY_POLICY,
    ATTR_COURSE_ID,
    Tracer,
    create_tracer,
)
from hvp2h5p.stores.interface import (
    COMPONENT_CONTENT_BANK,
    COMPONENT_COURSE,
    AssetStore,
    RecordStore,
)

logger = logging.getLogger(__name__)

CONTENT_BANK_FILEAREA = "public"


class ContentBankLinker:
    """
    Adds a migrated package to the content bank.

    Policies:
        - NONE: nothing is written
        - LINKED_COPY: the package is copied to the content bank and the
          activity's package becomes an alias of that copy
        - COPY: the package is copied to the content bank, no alias

    The activity keeps its own bytes in every case, so a content bank
    failure never leaves it without a package.

    Example:
        >>> linker = ContentBankLinker(record_store, asset_store)
        >>> reference = await linker.attach(package, activity, CopyPolicy.LINKED_COPY)
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

    async def attach(
        self,
        asset: StoredAsset,
        new_record: H5PActivity,
        policy: CopyPolicy,
    ) -> ContentBankReference | None:
        """
        Apply a copy policy to a migrated activity's package.

        Args:
            asset: The package stored in the new activity's own file area
            new_record: The persisted new activity
            policy: Copy policy to apply

        Returns:
            The content bank copy, or None for CopyPolicy.NONE

        Raises:
            AssetWriteError: If any content bank write fails, whatever the
                underlying exception
        """
        if policy is CopyPolicy.NONE:
            return None
        if new_record.id is None:
            raise ValueError("new_record must be persisted before linking")

        with self._tracer.span(
            "hvp2h5p.linker.attach",
            {
                ATTR_ACTIVITY_ID: new_record.id,
                ATTR_COURSE_ID: new_record.course,
                ATTR_COPY_POLICY: policy.name,
            },
        ):
            now = int(time.time())
            try:
                entry = await self._records.add_content_bank_entry(
                    ContentBankEntry(
                        course=new_record.course,
                        name=new_record.name,
                        contenttype=CONTENT_TYPE_H5P,
                        timecreated=now,
                        timemodified=now,
                    )
                )
            except Exception as e:
                raise AssetWriteError(
                    f"Could not create a content bank entry: {describe_error(e)}",
                    record_id=new_record.id,
                ) from e
            assert entry.id is not None
            linked = policy is CopyPolicy.LINKED_COPY
            target: AssetCoordinates | None = None

            try:
                course_context = await self._records.get_context_id(
                    COMPONENT_COURSE, new_record.course
                )
                target = AssetCoordinates(
                    context_id=course_context,
                    component=COMPONENT_CONTENT_BANK,
                    filearea=CONTENT_BANK_FILEAREA,
                    itemid=entry.id,
                    filepath="/",
                    filename=asset.coordinates.filename,
                )
                await self._assets.put(target, asset.content)
                if linked:
                    await self._assets.set_reference(asset.coordinates, target)
            except Exception as e:
                await self._discard(entry.id, target)
                raise AssetWriteError(
                    f"Could not add package to the content bank: {describe_error(e)}",
                    record_id=new_record.id,
                ) from e

            logger.info(
                "Added package of activity %d to content bank entry %d (%s)",
                new_record.id,
                entry.id,
                "linked" if linked else "copy",
            )
            return ContentBankReference(entry_id=entry.id, coordinates=target, linked=linked)

    async def _discard(self, entry_id: int, target: AssetCoordinates | None) -> None:
        """Remove a half-created content bank entry and its file."""
        with self._tracer.span(
            "hvp2h5p.linker.discard", {ATTR_CONTENT_BANK_ID: entry_id}
        ):
            try:
                if target is not None:
                    await self._assets.delete(target)
                await self._records.delete_content_bank_entry(entry_id)
            except Exception:
                logger.exception(
                    "Failed to remove content bank entry %d after a write failure", entry_id
                )
