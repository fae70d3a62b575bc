"""
Per-record migration of legacy activities.

The MigrationEngine migrates one legacy activity end to end:

1. Load the legacy activity and its package
2. Transform it into a new activity and persist it
3. Copy the package into the new activity's own file area
4. Add the package to the content bank (copy policy)
5. Hide or remove the legacy activity (retention policy)

Steps 1-3 are fatal: any failure, whatever its exception type, returns a
failed outcome and leaves no new activity behind. Steps 4-5 are best
effort: any failure there is recorded as a warning on an otherwise
successful outcome, so once the new activity exists ``migrate()`` only
raises MigrationStateError.

Example:
    >>> engine = MigrationEngine(record_store, asset_store)
    >>> outcome = await engine.migrate(42, RetentionPolicy.KEEP, CopyPolicy.LINKED_COPY)
    >>> outcome.success, outcome.warnings
    (True, [])
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from hvp2h5p.exceptions import (
    Hvp2H5PError,
    MigrationStateError,
    NotFoundError,
    StoreError,
    TransformError,
    describe_error,
)
from hvp2h5p.linker import ContentBankLinker
from hvp2h5p.models import (
    VALID_TRANSITIONS,
    AssetCoordinates,
    ContentBankReference,
    CopyPolicy,
    H5PActivity,
    HvpActivity,
    MigrationOutcome,
    MigrationState,
    RetentionPolicy,
    StoredAsset,
)
from hvp2h5p.observability import (
    ATTR_ACTIVITY_ID,
    ATTR_COPY_POLICY,
    ATTR_LEGACY_ID,
    ATTR_MIGRATION_STATE,
    ATTR_RETENTION_POLICY,
    ATTR_WARNING_COUNT,
    Tracer,
    create_tracer,
)
from hvp2h5p.retention import RetentionManager
from hvp2h5p.stores.interface import (
    COMPONENT_ACTIVITY,
    COMPONENT_LEGACY,
    AssetStore,
    RecordStore,
)
from hvp2h5p.transform import transform_legacy

logger = logging.getLogger(__name__)

PACKAGE_FILEAREA = "package"


class _RecordProgress:
    """State machine and warning log of one record's migration."""

    def __init__(self, legacy_id: int) -> None:
        self.legacy_id = legacy_id
        self.state = MigrationState.SELECTED
        self.warnings: list[str] = []

    def advance(self, new_state: MigrationState) -> None:
        if new_state not in VALID_TRANSITIONS.get(self.state, set()):
            raise MigrationStateError(self.state, new_state, record_id=self.legacy_id)
        logger.debug(
            "Legacy activity %d: %s -> %s", self.legacy_id, self.state.value, new_state.value
        )
        self.state = new_state

    def warn(self, error: Exception) -> None:
        message = describe_error(error)
        logger.warning("Legacy activity %d: %s", self.legacy_id, message)
        self.warnings.append(message)


class MigrationEngine:
    """
    Migrates single legacy activities.

    Collaborators are injected; the linker and retention manager default to
    instances built on the same stores.
    """

    def __init__(
        self,
        records: RecordStore,
        assets: AssetStore,
        linker: ContentBankLinker | None = None,
        retention: RetentionManager | None = None,
        clock: Callable[[], int] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the engine.

        Args:
            records: Record store
            assets: Asset store
            linker: Content bank linker (built from the stores if omitted)
            retention: Retention manager (built from the stores if omitted)
            clock: Returns the current Unix time; used for ``timemodified``
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._records = records
        self._assets = assets
        self._linker = linker or ContentBankLinker(records, assets, tracer=self._tracer)
        self._retention = retention or RetentionManager(records, assets, tracer=self._tracer)
        self._clock = clock or (lambda: int(time.time()))

    async def migrate(
        self,
        legacy_id: int,
        retention: RetentionPolicy,
        copy: CopyPolicy,
    ) -> MigrationOutcome:
        """
        Migrate one legacy activity.

        Args:
            legacy_id: Id of the legacy activity
            retention: What to do with the legacy activity afterwards
            copy: Whether to add the package to the content bank

        Returns:
            The outcome. Fatal errors produce ``success=False`` with the
            error message as the only warning.

        Raises:
            MigrationStateError: On an invalid state transition
        """
        with self._tracer.span(
            "hvp2h5p.engine.migrate",
            {
                ATTR_LEGACY_ID: legacy_id,
                ATTR_RETENTION_POLICY: retention.name,
                ATTR_COPY_POLICY: copy.name,
            },
        ) as span:
            progress = _RecordProgress(legacy_id)

            try:
                legacy = await self._load_legacy(legacy_id)
                package = await self._load_package(legacy)
                activity = await self._create_activity(legacy)
                progress.advance(MigrationState.CONTENT_TRANSFORMED)
                own_package = await self._store_package(activity, package)
                progress.advance(MigrationState.ASSET_LINKED)
            except MigrationStateError:
                raise
            except Exception as e:
                progress.advance(MigrationState.FAILED)
                if span is not None:
                    span.set_attribute(ATTR_MIGRATION_STATE, progress.state.value)
                logger.error(
                    "Migration of legacy activity %d failed: %s",
                    legacy_id,
                    e,
                    exc_info=not isinstance(e, Hvp2H5PError),
                )
                return MigrationOutcome.failed(legacy_id, describe_error(e))

            assert activity.id is not None
            content_bank = await self._link(progress, own_package, activity, copy)
            await self._dispose(progress, legacy, retention)
            progress.advance(MigrationState.DONE)
            if span is not None:
                span.set_attribute(ATTR_MIGRATION_STATE, progress.state.value)
                span.set_attribute(ATTR_WARNING_COUNT, len(progress.warnings))

            logger.info(
                "Migrated legacy activity %d to activity %d with %d warning(s)",
                legacy_id,
                activity.id,
                len(progress.warnings),
            )
            return MigrationOutcome(
                legacy_id=legacy_id,
                success=True,
                warnings=progress.warnings,
                new_record_id=activity.id,
                state=progress.state,
                content_bank=content_bank,
            )

    async def _load_legacy(self, legacy_id: int) -> HvpActivity:
        legacy = await self._records.get_legacy(legacy_id)
        if legacy is None:
            raise NotFoundError("Legacy activity not found", record_id=legacy_id)
        existing = await self._records.find_activity_by_key(*legacy.correlation_key)
        if existing:
            raise TransformError(
                f"Already migrated to activity {existing[0].id}", record_id=legacy_id
            )
        return legacy

    async def _load_package(self, legacy: HvpActivity) -> StoredAsset:
        """Return the legacy package with its resolved content."""
        assert legacy.id is not None
        context_id = await self._records.find_context_id(COMPONENT_LEGACY, legacy.id)
        files = []
        if context_id is not None:
            files = await self._assets.get_area_files(
                context_id, COMPONENT_LEGACY, PACKAGE_FILEAREA
            )
        if not files:
            raise TransformError("Legacy activity has no content package", record_id=legacy.id)
        package = files[0]
        content = await self._assets.read(package.coordinates)
        if not content:
            raise TransformError("Legacy content package is empty", record_id=legacy.id)
        return package.model_copy(update={"content": content})

    async def _create_activity(self, legacy: HvpActivity) -> H5PActivity:
        draft = transform_legacy(legacy, now=self._clock())
        try:
            return await self._records.add_activity(draft)
        except Exception as e:
            raise StoreError(
                f"Could not create the new activity: {describe_error(e)}", record_id=legacy.id
            ) from e

    async def _store_package(self, activity: H5PActivity, package: StoredAsset) -> StoredAsset:
        """Copy the package into the activity's own area, undoing the activity on failure."""
        assert activity.id is not None
        try:
            context_id = await self._records.get_context_id(COMPONENT_ACTIVITY, activity.id)
            coordinates = AssetCoordinates(
                context_id=context_id,
                component=COMPONENT_ACTIVITY,
                filearea=PACKAGE_FILEAREA,
                itemid=0,
                filepath="/",
                filename=package.coordinates.filename,
            )
            return await self._assets.put(coordinates, package.content)
        except Exception as e:
            message = f"Could not store the package of the new activity: {describe_error(e)}"
            leftover = await self._discard_activity(activity.id)
            if leftover is not None:
                message = f"{message}. Cleanup failed, remove {leftover} manually"
            raise StoreError(message) from e

    async def _discard_activity(self, activity_id: int) -> str | None:
        """
        Remove a new activity whose package could not be stored.

        Returns:
            None once everything is removed, otherwise a description of
            what was left behind
        """
        leftover = f"{COMPONENT_ACTIVITY} activity {activity_id}"
        with self._tracer.span("hvp2h5p.engine.discard_activity", {ATTR_ACTIVITY_ID: activity_id}):
            try:
                context_id = await self._records.find_context_id(COMPONENT_ACTIVITY, activity_id)
                if context_id is not None:
                    leftover = f"{leftover} (context {context_id})"
                    await self._assets.delete_area_files(context_id, COMPONENT_ACTIVITY)
                    await self._records.delete_context(COMPONENT_ACTIVITY, activity_id)
                await self._records.delete_activity(activity_id)
            except Exception:
                logger.exception("Failed to discard %s", leftover)
                return leftover
        return None

    async def _link(
        self,
        progress: _RecordProgress,
        package: StoredAsset,
        activity: H5PActivity,
        copy: CopyPolicy,
    ) -> ContentBankReference | None:
        try:
            return await self._linker.attach(package, activity, copy)
        except Exception as e:
            progress.warn(e)
            return None

    async def _dispose(
        self,
        progress: _RecordProgress,
        legacy: HvpActivity,
        retention: RetentionPolicy,
    ) -> None:
        try:
            await self._retention.dispose(legacy, retention)
        except Exception as e:
            progress.warn(e)
        if retention is RetentionPolicy.REMOVE:
            progress.advance(MigrationState.DISPOSED)
        else:
            progress.advance(MigrationState.RETAINED)
