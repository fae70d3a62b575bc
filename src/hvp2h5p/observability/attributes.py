"""
Standard span attributes for hvp2h5p.

Attribute names follow OpenTelemetry semantic conventions where one
exists (``db.*``) and use the ``hvp2h5p.`` namespace otherwise.
"""

# =============================================================================
# Record Attributes
# =============================================================================

ATTR_LEGACY_ID = "hvp2h5p.legacy.id"
"""Id of the legacy hvp activity (integer)."""

ATTR_ACTIVITY_ID = "hvp2h5p.activity.id"
"""Id of the migrated h5pactivity (integer)."""

ATTR_COURSE_ID = "hvp2h5p.course.id"
"""Id of the owning course (integer)."""

ATTR_CONTENT_BANK_ID = "hvp2h5p.contentbank.id"
"""Id of a content bank entry (integer)."""

# =============================================================================
# Asset Attributes
# =============================================================================

ATTR_ASSET_CONTEXT = "hvp2h5p.asset.context_id"
"""Context id of a stored file (integer)."""

ATTR_ASSET_COMPONENT = "hvp2h5p.asset.component"
"""Component owning a stored file (string)."""

ATTR_ASSET_FILEAREA = "hvp2h5p.asset.filearea"
"""File area of a stored file (string)."""

ATTR_ASSET_SIZE = "hvp2h5p.asset.size"
"""Size of a stored file in bytes (integer)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_RETENTION_POLICY = "hvp2h5p.policy.retention"
"""Retention policy name (string)."""

ATTR_COPY_POLICY = "hvp2h5p.policy.copy"
"""Content bank copy policy name (string)."""

ATTR_MIGRATION_STATE = "hvp2h5p.migration.state"
"""Final per-record migration state (string)."""

ATTR_WARNING_COUNT = "hvp2h5p.migration.warnings"
"""Number of warnings collected for a record (integer)."""

ATTR_BATCH_LIMIT = "hvp2h5p.batch.limit"
"""Selector limit for a batch (integer)."""

ATTR_BATCH_SIZE = "hvp2h5p.batch.size"
"""Number of records selected for a batch (integer)."""

ATTR_DRY_RUN = "hvp2h5p.batch.dry_run"
"""Whether the batch runs without migrating (boolean)."""

ATTR_CONTENT_TYPES = "hvp2h5p.selector.content_types"
"""Comma separated library id filter (string)."""

ATTR_AUDIT_ROWS = "hvp2h5p.audit.rows"
"""Number of reconciled pairs (integer)."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite', 'postgresql')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name (e.g., 'SELECT', 'INSERT')."""


__all__ = [
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
