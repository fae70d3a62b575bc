"""
Selection of legacy activities that still need migrating.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from hvp2h5p.exceptions import ConfigurationError
from hvp2h5p.models import HvpActivity
from hvp2h5p.observability import (
    ATTR_BATCH_LIMIT,
    ATTR_BATCH_SIZE,
    ATTR_CONTENT_TYPES,
    Tracer,
    create_tracer,
)
from hvp2h5p.stores.interface import RecordStore

logger = logging.getLogger(__name__)


class Selector:
    """
    Finds unmigrated legacy activities.

    A legacy activity is eligible when no new activity shares its
    (name, course, timecreated) key and, if a content type filter is
    given, its main library is in the filter. Selection is read-only, so
    running it twice without migrating in between returns the same list.

    Example:
        >>> selector = Selector(record_store)
        >>> batch = await selector.find_eligible({12, 34}, limit=100)
    """

    def __init__(
        self,
        records: RecordStore,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._records = records
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def find_eligible(
        self,
        content_types: Iterable[int] | None,
        limit: int,
    ) -> list[HvpActivity]:
        """
        Return up to ``limit`` unmigrated legacy activities, ascending id.

        Args:
            content_types: Main library ids to keep; None or empty keeps all
            limit: Maximum number of records

        Returns:
            Eligible legacy activities

        Raises:
            ConfigurationError: If limit is not positive
        """
        if limit <= 0:
            raise ConfigurationError(f"limit must be a positive integer, got {limit}.")
        library_ids = set(content_types or ())

        with self._tracer.span(
            "hvp2h5p.selector.find_eligible",
            {
                ATTR_BATCH_LIMIT: limit,
                ATTR_CONTENT_TYPES: ",".join(str(i) for i in sorted(library_ids)),
            },
        ) as span:
            records = await self._records.find_unmigrated(library_ids, limit)
            if span is not None:
                span.set_attribute(ATTR_BATCH_SIZE, len(records))
            logger.debug(
                "Selected %d unmigrated activities (limit=%d, content types=%s)",
                len(records),
                limit,
                sorted(library_ids) or "all",
            )
            return records
