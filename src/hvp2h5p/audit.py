"""
Reconciliation report of migrated activities.

Pairs every legacy activity with its migrated counterpart and rebuilds the
embed link of both sides, so links in course content can be rewritten.
The two link schemes differ on purpose: the legacy embed page takes the
activity id, the new one takes the URL of the stored package.

The reporter only reads from the stores.

Example:
    >>> reporter = AuditReporter(record_store, asset_store, "https://lms.example.org")
    >>> rows = await reporter.reconcile()
    >>> reporter.write_csv(rows, "migrated.csv")
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO
from urllib.parse import quote, urlencode, urlparse

from hvp2h5p.models import AUDIT_CSV_HEADER, AssetCoordinates, AuditRow, H5PActivity
from hvp2h5p.observability import ATTR_AUDIT_ROWS, Tracer, create_tracer
from hvp2h5p.stores.interface import COMPONENT_ACTIVITY, AssetStore, RecordStore

logger = logging.getLogger(__name__)

PACKAGE_FILEAREA = "package"


def site_path(site_url: str) -> str:
    """Return the path part of the site URL without a trailing slash."""
    return urlparse(site_url).path.rstrip("/")


def legacy_embed_link(site_url: str, legacy_id: int) -> str:
    """Relative embed link of a legacy activity."""
    return f"{site_path(site_url)}/mod/hvp/embed.php?{urlencode({'id': legacy_id})}"


def pluginfile_url(site_url: str, coordinates: AssetCoordinates) -> str:
    """Absolute download URL of a stored file."""
    return (
        f"{site_url.rstrip('/')}/pluginfile.php/{coordinates.context_id}/"
        f"{coordinates.component}/{coordinates.filearea}{coordinates.pathname}"
    )


def package_embed_link(site_url: str, coordinates: AssetCoordinates) -> str:
    """Relative embed link of a package, addressed by its file URL."""
    url = quote(pluginfile_url(site_url, coordinates), safe="")
    return f"{site_path(site_url)}/h5p/embed.php?url={url}"


class AuditReporter:
    """
    Builds the legacy/new link table of already migrated activities.
    """

    def __init__(
        self,
        records: RecordStore,
        assets: AssetStore,
        site_url: str,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the reporter.

        Args:
            records: Record store
            assets: Asset store
            site_url: Public base URL of the site, e.g. "https://lms.example.org/moodle"
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._records = records
        self._assets = assets
        self._site_url = site_url
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def reconcile(self) -> list[AuditRow]:
        """
        Pair legacy and new activities on (name, course, timecreated).

        Returns:
            One row per pair, ordered by legacy id. Pairs whose new package
            is missing get an empty ``newembed``.
        """
        with self._tracer.span("hvp2h5p.audit.reconcile") as span:
            rows: list[AuditRow] = []
            for legacy, activity in await self._records.find_migrated_pairs():
                assert legacy.id is not None and activity.id is not None
                rows.append(
                    AuditRow(
                        oldcmid=legacy.id,
                        oldname=legacy.name,
                        oldembed=legacy_embed_link(self._site_url, legacy.id),
                        newcmid=activity.id,
                        newname=activity.name,
                        newembed=await self._new_embed_link(activity),
                    )
                )
            if span is not None:
                span.set_attribute(ATTR_AUDIT_ROWS, len(rows))
            logger.info("Reconciled %d migrated activities", len(rows))
            return rows

    async def _new_embed_link(self, activity: H5PActivity) -> str:
        assert activity.id is not None
        context_id = await self._records.find_context_id(COMPONENT_ACTIVITY, activity.id)
        files = []
        if context_id is not None:
            files = await self._assets.get_area_files(
                context_id, COMPONENT_ACTIVITY, PACKAGE_FILEAREA, itemid=0
            )
        if not files:
            logger.warning("Activity %d has no package, leaving its embed link empty", activity.id)
            return ""
        return package_embed_link(self._site_url, files[0].coordinates)

    @staticmethod
    def write_csv(rows: Iterable[AuditRow], destination: str | Path | TextIO) -> int:
        """
        Write rows as CSV with an ``oldcmid,...,newembed`` header.

        Args:
            rows: Rows to write
            destination: File path or open text stream

        Returns:
            Number of rows written, header excluded
        """
        if isinstance(destination, str | Path):
            with open(destination, "w", newline="", encoding="utf-8") as stream:
                return AuditReporter.write_csv(rows, stream)

        writer = csv.writer(destination)
        writer.writerow(AUDIT_CSV_HEADER)
        count = 0
        for row in rows:
            writer.writerow(row.as_csv_row())
            count += 1
        return count
