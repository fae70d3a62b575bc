"""
In-memory implementations of the record and asset stores.

Provides simple, fast stores for testing and previews. All data is stored
in memory and lost when the process terminates.
"""

from __future__ import annotations

import asyncio

from hvp2h5p.exceptions import NotFoundError, StoreError
from hvp2h5p.models import (
    AssetCoordinates,
    ContentBankEntry,
    Course,
    H5PActivity,
    HvpActivity,
    StoredAsset,
)
from hvp2h5p.observability import (
    ATTR_ACTIVITY_ID,
    ATTR_ASSET_COMPONENT,
    ATTR_ASSET_CONTEXT,
    ATTR_ASSET_FILEAREA,
    ATTR_ASSET_SIZE,
    ATTR_BATCH_LIMIT,
    ATTR_CONTENT_BANK_ID,
    ATTR_COURSE_ID,
    ATTR_LEGACY_ID,
    Tracer,
    create_tracer,
)


class InMemoryRecordStore:
    """
    In-memory implementation of RecordStore.

    Each table is a dict keyed by id with its own id sequence; context ids
    come from a single shared sequence. Records are copied on the way in
    and out so callers never share mutable state with the store.

    Attributes:
        fail_activity_writes: When True, ``add_activity`` raises ``fail_with``.
            Used by tests to simulate a failing database.
        fail_with: Exception type raised by simulated failures (StoreError
            unless a test needs a foreign exception such as OSError).

    Example:
        >>> store = InMemoryRecordStore()
        >>> legacy = await store.add_legacy(HvpActivity(course=2, name="Quiz", ...))
        >>> await store.find_unmigrated(set(), limit=10)
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory record store.

        Args:
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._courses: dict[int, Course] = {}
        self._legacy: dict[int, HvpActivity] = {}
        self._activities: dict[int, H5PActivity] = {}
        self._content_bank: dict[int, ContentBankEntry] = {}
        self._contexts: dict[tuple[str, int], int] = {}
        self._sequences: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.fail_activity_writes = False
        self.fail_with: type[Exception] = StoreError

    def _next_id(self, table: str, start: int = 1) -> int:
        value = self._sequences.get(table, start - 1) + 1
        self._sequences[table] = value
        return value

    async def schema_ready(self) -> bool:
        return True

    # Courses

    async def add_course(self, course: Course) -> Course:
        with self._tracer.span("hvp2h5p.records.add_course"):
            async with self._lock:
                stored = course.model_copy()
                if stored.id is None:
                    stored.id = self._next_id("course")
                else:
                    self._sequences["course"] = max(self._sequences.get("course", 0), stored.id)
                self._courses[stored.id] = stored
                return stored.model_copy()

    async def get_course(self, course_id: int) -> Course | None:
        with self._tracer.span("hvp2h5p.records.get_course", {ATTR_COURSE_ID: course_id}):
            async with self._lock:
                course = self._courses.get(course_id)
                return course.model_copy() if course else None

    # Contexts

    async def get_context_id(self, component: str, instance_id: int) -> int:
        async with self._lock:
            key = (component, instance_id)
            if key not in self._contexts:
                # Offset keeps context ids visibly distinct from record ids.
                self._contexts[key] = self._next_id("context", start=1000)
            return self._contexts[key]

    async def find_context_id(self, component: str, instance_id: int) -> int | None:
        async with self._lock:
            return self._contexts.get((component, instance_id))

    async def delete_context(self, component: str, instance_id: int) -> None:
        async with self._lock:
            self._contexts.pop((component, instance_id), None)

    # Legacy activities

    async def add_legacy(self, record: HvpActivity) -> HvpActivity:
        with self._tracer.span("hvp2h5p.records.add_legacy"):
            async with self._lock:
                stored = record.model_copy()
                if stored.id is None:
                    stored.id = self._next_id("hvp")
                else:
                    self._sequences["hvp"] = max(self._sequences.get("hvp", 0), stored.id)
                self._legacy[stored.id] = stored
                return stored.model_copy()

    async def get_legacy(self, legacy_id: int) -> HvpActivity | None:
        with self._tracer.span("hvp2h5p.records.get_legacy", {ATTR_LEGACY_ID: legacy_id}):
            async with self._lock:
                record = self._legacy.get(legacy_id)
                return record.model_copy() if record else None

    async def list_legacy(self) -> list[HvpActivity]:
        async with self._lock:
            return [self._legacy[key].model_copy() for key in sorted(self._legacy)]

    async def set_legacy_visibility(self, legacy_id: int, visible: bool) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.set_legacy_visibility", {ATTR_LEGACY_ID: legacy_id}
        ):
            async with self._lock:
                record = self._legacy.get(legacy_id)
                if record is None:
                    return False
                record.visible = visible
                return True

    async def delete_legacy(self, legacy_id: int) -> bool:
        with self._tracer.span("hvp2h5p.records.delete_legacy", {ATTR_LEGACY_ID: legacy_id}):
            async with self._lock:
                return self._legacy.pop(legacy_id, None) is not None

    async def find_unmigrated(self, library_ids: set[int], limit: int) -> list[HvpActivity]:
        with self._tracer.span("hvp2h5p.records.find_unmigrated", {ATTR_BATCH_LIMIT: limit}):
            async with self._lock:
                migrated = {activity.correlation_key for activity in self._activities.values()}
                result: list[HvpActivity] = []
                for legacy_id in sorted(self._legacy):
                    record = self._legacy[legacy_id]
                    if record.correlation_key in migrated:
                        continue
                    if library_ids and record.main_library_id not in library_ids:
                        continue
                    result.append(record.model_copy())
                    if len(result) >= limit:
                        break
                return result

    # New activities

    async def add_activity(self, record: H5PActivity) -> H5PActivity:
        with self._tracer.span("hvp2h5p.records.add_activity"):
            async with self._lock:
                if self.fail_activity_writes:
                    raise self.fail_with("Simulated failure writing h5pactivity")
                stored = record.model_copy()
                stored.id = self._next_id("h5pactivity")
                self._activities[stored.id] = stored
                return stored.model_copy()

    async def get_activity(self, activity_id: int) -> H5PActivity | None:
        with self._tracer.span("hvp2h5p.records.get_activity", {ATTR_ACTIVITY_ID: activity_id}):
            async with self._lock:
                record = self._activities.get(activity_id)
                return record.model_copy() if record else None

    async def delete_activity(self, activity_id: int) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.delete_activity", {ATTR_ACTIVITY_ID: activity_id}
        ):
            async with self._lock:
                return self._activities.pop(activity_id, None) is not None

    async def find_activity_by_key(
        self, name: str, course: int, timecreated: int
    ) -> list[H5PActivity]:
        async with self._lock:
            key = (name, course, timecreated)
            return [
                self._activities[activity_id].model_copy()
                for activity_id in sorted(self._activities)
                if self._activities[activity_id].correlation_key == key
            ]

    async def find_migrated_pairs(self) -> list[tuple[HvpActivity, H5PActivity]]:
        with self._tracer.span("hvp2h5p.records.find_migrated_pairs"):
            async with self._lock:
                pairs: list[tuple[HvpActivity, H5PActivity]] = []
                for legacy_id in sorted(self._legacy):
                    legacy = self._legacy[legacy_id]
                    for activity_id in sorted(self._activities):
                        activity = self._activities[activity_id]
                        if activity.correlation_key == legacy.correlation_key:
                            pairs.append((legacy.model_copy(), activity.model_copy()))
                return pairs

    # Content bank

    async def add_content_bank_entry(self, entry: ContentBankEntry) -> ContentBankEntry:
        with self._tracer.span("hvp2h5p.records.add_content_bank_entry"):
            async with self._lock:
                stored = entry.model_copy()
                stored.id = self._next_id("contentbank_content")
                self._content_bank[stored.id] = stored
                return stored.model_copy()

    async def get_content_bank_entry(self, entry_id: int) -> ContentBankEntry | None:
        async with self._lock:
            entry = self._content_bank.get(entry_id)
            return entry.model_copy() if entry else None

    async def delete_content_bank_entry(self, entry_id: int) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.delete_content_bank_entry", {ATTR_CONTENT_BANK_ID: entry_id}
        ):
            async with self._lock:
                return self._content_bank.pop(entry_id, None) is not None

    async def list_content_bank_entries(self, course: int) -> list[ContentBankEntry]:
        async with self._lock:
            return [
                self._content_bank[entry_id].model_copy()
                for entry_id in sorted(self._content_bank)
                if self._content_bank[entry_id].course == course
            ]

    async def clear(self) -> None:
        """Remove every record. Useful for test teardown."""
        async with self._lock:
            self._courses.clear()
            self._legacy.clear()
            self._activities.clear()
            self._content_bank.clear()
            self._contexts.clear()
            self._sequences.clear()

    def __repr__(self) -> str:
        return (
            f"InMemoryRecordStore(legacy={len(self._legacy)}, "
            f"activities={len(self._activities)}, content_bank={len(self._content_bank)})"
        )


def _sort_key(coordinates: AssetCoordinates) -> tuple[int, str, str]:
    return (coordinates.itemid, coordinates.filepath, coordinates.filename)


class InMemoryAssetStore:
    """
    In-memory implementation of AssetStore.

    Attributes:
        fail_writes_for: Components whose writes raise ``fail_with``. Used
            by tests to simulate quota or I/O failures in one storage area.
        fail_with: Exception type raised by simulated failures (StoreError
            unless a test needs a foreign exception such as OSError).

    Example:
        >>> assets = InMemoryAssetStore()
        >>> await assets.put(coordinates, b"PK...")
        >>> await assets.read(coordinates)
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory asset store.

        Args:
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._files: dict[AssetCoordinates, StoredAsset] = {}
        self._lock = asyncio.Lock()
        self.fail_writes_for: set[str] = set()
        self.fail_with: type[Exception] = StoreError

    def _check_writable(self, coordinates: AssetCoordinates) -> None:
        if coordinates.component in self.fail_writes_for:
            raise self.fail_with(f"Simulated write failure in component {coordinates.component}")

    async def put(
        self,
        coordinates: AssetCoordinates,
        content: bytes,
        reference: AssetCoordinates | None = None,
    ) -> StoredAsset:
        with self._tracer.span(
            "hvp2h5p.assets.put",
            {
                ATTR_ASSET_CONTEXT: coordinates.context_id,
                ATTR_ASSET_COMPONENT: coordinates.component,
                ATTR_ASSET_FILEAREA: coordinates.filearea,
                ATTR_ASSET_SIZE: len(content),
            },
        ):
            async with self._lock:
                self._check_writable(coordinates)
                asset = StoredAsset(coordinates=coordinates, content=content, reference=reference)
                self._files[coordinates] = asset
                return asset.model_copy()

    async def get(self, coordinates: AssetCoordinates) -> StoredAsset | None:
        async with self._lock:
            asset = self._files.get(coordinates)
            return asset.model_copy() if asset else None

    async def read(self, coordinates: AssetCoordinates) -> bytes:
        with self._tracer.span(
            "hvp2h5p.assets.read",
            {
                ATTR_ASSET_CONTEXT: coordinates.context_id,
                ATTR_ASSET_COMPONENT: coordinates.component,
            },
        ):
            async with self._lock:
                asset = self._files.get(coordinates)
                if asset is None:
                    raise NotFoundError(f"File not found: {coordinates.pathname}")
                if asset.reference is not None:
                    target = self._files.get(asset.reference)
                    if target is not None:
                        return target.content
                return asset.content

    async def get_area_files(
        self,
        context_id: int,
        component: str,
        filearea: str,
        itemid: int | None = None,
    ) -> list[StoredAsset]:
        async with self._lock:
            matches = [
                asset
                for coordinates, asset in self._files.items()
                if coordinates.context_id == context_id
                and coordinates.component == component
                and coordinates.filearea == filearea
                and (itemid is None or coordinates.itemid == itemid)
            ]
            matches.sort(key=lambda asset: _sort_key(asset.coordinates))
            return [asset.model_copy() for asset in matches]

    async def set_reference(
        self, coordinates: AssetCoordinates, target: AssetCoordinates
    ) -> StoredAsset:
        with self._tracer.span(
            "hvp2h5p.assets.set_reference",
            {
                ATTR_ASSET_CONTEXT: coordinates.context_id,
                ATTR_ASSET_COMPONENT: coordinates.component,
            },
        ):
            async with self._lock:
                self._check_writable(coordinates)
                asset = self._files.get(coordinates)
                if asset is None:
                    raise NotFoundError(f"File not found: {coordinates.pathname}")
                if target not in self._files:
                    raise NotFoundError(f"Reference target not found: {target.pathname}")
                updated = asset.model_copy(update={"reference": target})
                self._files[coordinates] = updated
                return updated.model_copy()

    async def delete(self, coordinates: AssetCoordinates) -> bool:
        async with self._lock:
            return self._files.pop(coordinates, None) is not None

    async def delete_area_files(
        self,
        context_id: int,
        component: str,
        filearea: str | None = None,
    ) -> int:
        with self._tracer.span(
            "hvp2h5p.assets.delete_area_files",
            {ATTR_ASSET_CONTEXT: context_id, ATTR_ASSET_COMPONENT: component},
        ):
            async with self._lock:
                doomed = [
                    coordinates
                    for coordinates in self._files
                    if coordinates.context_id == context_id
                    and coordinates.component == component
                    and (filearea is None or coordinates.filearea == filearea)
                ]
                for coordinates in doomed:
                    del self._files[coordinates]
                return len(doomed)

    async def clear(self) -> None:
        """Remove every file. Useful for test teardown."""
        async with self._lock:
            self._files.clear()

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"InMemoryAssetStore(files={len(self._files)})"


__all__ = ["InMemoryAssetStore", "InMemoryRecordStore"]
