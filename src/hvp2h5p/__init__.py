"""
hvp2h5p - Migrate mod_hvp activities to mod_h5pactivity.

This library provides:
- Selection of legacy activities that have not been migrated yet
- Per-record migration with retention and content bank copy policies
- A batch driver that isolates per-record failures
- A read-only reconciliation report of migrated pairs
- In-memory and SQLAlchemy record and asset stores
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hvp2h5p")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from hvp2h5p.audit import AuditReporter
from hvp2h5p.batch import BatchDriver
from hvp2h5p.engine import MigrationEngine
from hvp2h5p.exceptions import (
    AssetWriteError,
    ConfigurationError,
    Hvp2H5PError,
    MigrationStateError,
    NotFoundError,
    RetentionError,
    StoreError,
    TransformError,
)
from hvp2h5p.linker import ContentBankLinker
from hvp2h5p.models import (
    AssetCoordinates,
    AuditRow,
    BatchEntry,
    BatchReport,
    ContentBankEntry,
    ContentBankReference,
    CopyPolicy,
    Course,
    H5PActivity,
    HvpActivity,
    MigrationOutcome,
    MigrationState,
    RetentionPolicy,
    Skipped,
    StoredAsset,
)
from hvp2h5p.retention import RetentionManager
from hvp2h5p.selector import Selector
from hvp2h5p.stores import (
    AssetStore,
    InMemoryAssetStore,
    InMemoryRecordStore,
    RecordStore,
    SQLAssetStore,
    SQLRecordStore,
    create_schema,
)
from hvp2h5p.transform import transform_legacy

__all__ = [
    "__version__",
    # Components
    "AuditReporter",
    "BatchDriver",
    "ContentBankLinker",
    "MigrationEngine",
    "RetentionManager",
    "Selector",
    "transform_legacy",
    # Models
    "AssetCoordinates",
    "AuditRow",
    "BatchEntry",
    "BatchReport",
    "ContentBankEntry",
    "ContentBankReference",
    "CopyPolicy",
    "Course",
    "H5PActivity",
    "HvpActivity",
    "MigrationOutcome",
    "MigrationState",
    "RetentionPolicy",
    "Skipped",
    "StoredAsset",
    # Stores
    "AssetStore",
    "InMemoryAssetStore",
    "InMemoryRecordStore",
    "RecordStore",
    "SQLAssetStore",
    "SQLRecordStore",
    "create_schema",
    # Exceptions
    "AssetWriteError",
    "ConfigurationError",
    "Hvp2H5PError",
    "MigrationStateError",
    "NotFoundError",
    "RetentionError",
    "StoreError",
    "TransformError",
]
