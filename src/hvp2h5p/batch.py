"""
Batch migration driver.

Selects unmigrated legacy activities once and migrates them one at a time.
A failing record never stops the batch: every exception raised while
migrating a record becomes a failed outcome for that record.

Example:
    >>> driver = BatchDriver(selector, engine, record_store)
    >>> report = await driver.run(
    ...     content_types=None,
    ...     limit=100,
    ...     retention=RetentionPolicy.KEEP,
    ...     copy=CopyPolicy.LINKED_COPY,
    ...     dry_run=False,
    ... )
    >>> report.succeeded, report.failed
    (98, 2)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Iterable

from hvp2h5p.engine import MigrationEngine
from hvp2h5p.exceptions import ConfigurationError, Hvp2H5PError, describe_error
from hvp2h5p.models import (
    BatchEntry,
    BatchReport,
    CopyPolicy,
    Course,
    HvpActivity,
    MigrationOutcome,
    RetentionPolicy,
    Skipped,
)
from hvp2h5p.observability import (
    ATTR_BATCH_LIMIT,
    ATTR_COPY_POLICY,
    ATTR_DRY_RUN,
    ATTR_LEGACY_ID,
    ATTR_RETENTION_POLICY,
    Tracer,
    create_tracer,
)
from hvp2h5p.selector import Selector
from hvp2h5p.stores.interface import RecordStore

logger = logging.getLogger(__name__)


class BatchDriver:
    """
    Runs a migration batch.

    The batch can be stopped between records with ``request_stop()``;
    records already migrated stay migrated.
    """

    def __init__(
        self,
        selector: Selector,
        engine: MigrationEngine,
        records: RecordStore,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the driver.

        Args:
            selector: Finds the records to migrate
            engine: Migrates single records
            records: Record store, used to look up course names for log lines
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._selector = selector
        self._engine = engine
        self._records = records
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._stop_requested = False
        self._stopped = False

    def request_stop(self) -> None:
        """Stop the running batch before its next record."""
        self._stop_requested = True
        logger.info("Batch stop requested")

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def run(
        self,
        content_types: Iterable[int] | None,
        limit: int,
        retention: RetentionPolicy,
        copy: CopyPolicy,
        dry_run: bool,
    ) -> BatchReport:
        """
        Run a batch and collect every entry.

        Args:
            content_types: Main library ids to migrate; None or empty for all
            limit: Maximum number of records
            retention: Retention policy for migrated records
            copy: Copy policy for migrated records
            dry_run: Select only, producing a Skipped entry per record

        Returns:
            Entries in selection order

        Raises:
            ConfigurationError: On invalid arguments, before any record is processed
        """
        report = BatchReport(dry_run=dry_run)
        async for entry in self.stream(content_types, limit, retention, copy, dry_run):
            report.entries.append(entry)
        report.stopped = self._stopped
        return report

    async def stream(
        self,
        content_types: Iterable[int] | None,
        limit: int,
        retention: RetentionPolicy,
        copy: CopyPolicy,
        dry_run: bool,
    ) -> AsyncGenerator[BatchEntry, None]:
        """
        Run a batch, yielding each entry as soon as its record is done.

        Takes the same arguments as ``run()``. Spans cover the selection and
        each record's migration but are never open across a ``yield``, so
        a consumer may stop iterating early.
        """
        if not isinstance(retention, RetentionPolicy):
            raise ConfigurationError(f"Invalid retention policy: {retention!r}")
        if not isinstance(copy, CopyPolicy):
            raise ConfigurationError(f"Invalid copy policy: {copy!r}")
        self._stop_requested = False
        self._stopped = False

        with self._tracer.span(
            "hvp2h5p.batch.select",
            {
                ATTR_BATCH_LIMIT: limit,
                ATTR_DRY_RUN: dry_run,
                ATTR_RETENTION_POLICY: retention.name,
                ATTR_COPY_POLICY: copy.name,
            },
        ):
            candidates = await self._selector.find_eligible(content_types, limit)
        if not candidates:
            logger.info("No unmigrated activities found")
            return

        logger.info(
            "%s %d activities", "Previewing" if dry_run else "Migrating", len(candidates)
        )
        for legacy in candidates:
            if self._stop_requested:
                self._stopped = True
                logger.info("Batch stopped before legacy activity %s", legacy.id)
                return
            course = await self._lookup_course(legacy)
            if dry_run:
                result: MigrationOutcome | Skipped = Skipped(legacy_id=legacy.id or 0)
            else:
                result = await self._migrate_one(legacy, retention, copy)
            yield BatchEntry(legacy=legacy, result=result, course=course)

    async def _migrate_one(
        self,
        legacy: HvpActivity,
        retention: RetentionPolicy,
        copy: CopyPolicy,
    ) -> MigrationOutcome:
        assert legacy.id is not None
        with self._tracer.span("hvp2h5p.batch.migrate_one", {ATTR_LEGACY_ID: legacy.id}):
            try:
                return await self._engine.migrate(legacy.id, retention, copy)
            except Exception as e:
                # Programming errors fail the record too; the batch goes on.
                logger.exception("Unexpected error migrating legacy activity %d", legacy.id)
                return MigrationOutcome.failed(legacy.id, describe_error(e))

    async def _lookup_course(self, legacy: HvpActivity) -> Course | None:
        try:
            return await self._records.get_course(legacy.course)
        except Hvp2H5PError as e:
            logger.warning("Could not look up course %d: %s", legacy.course, e)
            return None
