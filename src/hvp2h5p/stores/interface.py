"""
Protocols for the record and asset stores.

The migration core depends only on these protocols. Concrete backends are
injected by the caller: in-memory implementations for tests and previews,
SQLAlchemy implementations for real databases.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from hvp2h5p.models import (
    AssetCoordinates,
    ContentBankEntry,
    Course,
    H5PActivity,
    HvpActivity,
    StoredAsset,
)

COMPONENT_COURSE = "course"
COMPONENT_LEGACY = "mod_hvp"
COMPONENT_ACTIVITY = "mod_h5pactivity"
COMPONENT_CONTENT_BANK = "contentbank"


@runtime_checkable
class RecordStore(Protocol):
    """
    Protocol for record persistence.

    Implementations must:
    - Assign integer ids on insert and return the stored record
    - Return records ordered by ascending id from every list query
    - Allocate context ids from one sequence shared by all components
    """

    async def schema_ready(self) -> bool:
        """Return True when every table the migration needs exists."""
        ...

    # Courses

    async def add_course(self, course: Course) -> Course: ...

    async def get_course(self, course_id: int) -> Course | None: ...

    # Contexts

    async def get_context_id(self, component: str, instance_id: int) -> int:
        """
        Get the context id of a component instance, allocating it on first use.

        Args:
            component: Owning component ("course", "mod_hvp", ...)
            instance_id: Id of the instance within the component

        Returns:
            A stable context id, distinct from ``instance_id``
        """
        ...

    async def find_context_id(self, component: str, instance_id: int) -> int | None:
        """Get the context id of a component instance without allocating one."""
        ...

    async def delete_context(self, component: str, instance_id: int) -> None: ...

    # Legacy activities

    async def add_legacy(self, record: HvpActivity) -> HvpActivity: ...

    async def get_legacy(self, legacy_id: int) -> HvpActivity | None: ...

    async def list_legacy(self) -> list[HvpActivity]: ...

    async def set_legacy_visibility(self, legacy_id: int, visible: bool) -> bool:
        """
        Show or hide a legacy activity.

        Returns:
            True if the record exists
        """
        ...

    async def delete_legacy(self, legacy_id: int) -> bool: ...

    async def find_unmigrated(self, library_ids: set[int], limit: int) -> list[HvpActivity]:
        """
        Find legacy activities without a migrated counterpart.

        A legacy activity is migrated when an h5pactivity with the same
        name, course and timecreated exists.

        Args:
            library_ids: Main library ids to keep; empty keeps all
            limit: Maximum number of records to return

        Returns:
            Unmigrated legacy activities, ascending id
        """
        ...

    # New activities

    async def add_activity(self, record: H5PActivity) -> H5PActivity: ...

    async def get_activity(self, activity_id: int) -> H5PActivity | None: ...

    async def delete_activity(self, activity_id: int) -> bool: ...

    async def find_activity_by_key(
        self, name: str, course: int, timecreated: int
    ) -> list[H5PActivity]: ...

    async def find_migrated_pairs(self) -> list[tuple[HvpActivity, H5PActivity]]:
        """
        Join legacy and new activities on the correlation key.

        Returns:
            (legacy, new) pairs ordered by legacy id, then new id
        """
        ...

    # Content bank

    async def add_content_bank_entry(self, entry: ContentBankEntry) -> ContentBankEntry: ...

    async def get_content_bank_entry(self, entry_id: int) -> ContentBankEntry | None: ...

    async def delete_content_bank_entry(self, entry_id: int) -> bool: ...

    async def list_content_bank_entries(self, course: int) -> list[ContentBankEntry]: ...


@runtime_checkable
class AssetStore(Protocol):
    """
    Protocol for binary asset persistence.

    Files are addressed by AssetCoordinates. Stored content is never
    modified in place: ``put`` on an existing address replaces the file.
    """

    async def put(
        self,
        coordinates: AssetCoordinates,
        content: bytes,
        reference: AssetCoordinates | None = None,
    ) -> StoredAsset: ...

    async def get(self, coordinates: AssetCoordinates) -> StoredAsset | None: ...

    async def read(self, coordinates: AssetCoordinates) -> bytes:
        """
        Read a file's bytes, following an alias reference when its target exists.

        Raises:
            NotFoundError: If no file exists at the coordinates
        """
        ...

    async def get_area_files(
        self,
        context_id: int,
        component: str,
        filearea: str,
        itemid: int | None = None,
    ) -> list[StoredAsset]:
        """
        List the files of an area, ordered by (itemid, filepath, filename).
        """
        ...

    async def set_reference(
        self, coordinates: AssetCoordinates, target: AssetCoordinates
    ) -> StoredAsset:
        """
        Turn an existing file into an alias of ``target``.

        Raises:
            NotFoundError: If either file does not exist
        """
        ...

    async def delete(self, coordinates: AssetCoordinates) -> bool: ...

    async def delete_area_files(
        self,
        context_id: int,
        component: str,
        filearea: str | None = None,
    ) -> int:
        """
        Delete every file of a component in a context, optionally one area only.

        Returns:
            Number of deleted files
        """
        ...


__all__ = [
    "AssetStore",
    "COMPONENT_ACTIVITY",
    "COMPONENT_CONTENT_BANK",
    "COMPONENT_COURSE",
    "COMPONENT_LEGACY",
    "RecordStore",
]
