"""
Observability utilities for hvp2h5p.

Provides the composition-based Tracer abstraction and the standard span
attribute names shared by every component.

Example:
    >>> from hvp2h5p.observability import create_tracer
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from hvp2h5p.observability.attributes import (
    ATTR_ACTIVITY_ID,
    ATTR_ASSET_COMPONENT,
    ATTR_ASSET_CONTEXT,
    ATTR_ASSET_FILEAREA,
    ATTR_ASSET_SIZE,
    ATTR_AUDIT_ROWS,
    ATTR_BATCH_LIMIT,
    ATTR_BATCH_SIZE,
    ATTR_CONTENT_BANK_ID,
    ATTR_CONTENT_TYPES,
    ATTR_COPY_POLICY,
    ATTR_COURSE_ID,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DRY_RUN,
    ATTR_LEGACY_ID,
    ATTR_MIGRATION_STATE,
    ATTR_RETENTION_POLICY,
    ATTR_WARNING_COUNT,
)
from hvp2h5p.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
    "ATTR_ACTIVITY_ID",
    "ATTR_ASSET_COMPONENT",
    "ATTR_ASSET_CONTEXT",
    "ATTR_ASSET_FILEAREA",
    "ATTR_ASSET_SIZE",
    "ATTR_AUDIT_ROWS",
    "ATTR_BATCH_LIMIT",
    "ATTR_BATCH_SIZE",
    "ATTR_CONTENT_BANK_ID",
    "ATTR_CONTENT_TYPES",
    "ATTR_COPY_POLICY",
    "ATTR_COURSE_ID",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_DRY_RUN",
    "ATTR_LEGACY_ID",
    "ATTR_MIGRATION_STATE",
    "ATTR_RETENTION_POLICY",
    "ATTR_WARNING_COUNT",
]
