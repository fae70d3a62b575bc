"""
Record and asset stores.

The migration core talks to two collaborators:
- RecordStore: courses, contexts, legacy and new activities, content bank entries
- AssetStore: binary files addressed by AssetCoordinates

Both come in an in-memory flavour (tests, previews) and a SQLAlchemy
flavour (SQLite via aiosqlite, PostgreSQL via asyncpg).
"""

from hvp2h5p.stores.in_memory import InMemoryAssetStore, InMemoryRecordStore
from hvp2h5p.stores.interface import (
    COMPONENT_ACTIVITY,
    COMPONENT_CONTENT_BANK,
    COMPONENT_COURSE,
    COMPONENT_LEGACY,
    AssetStore,
    RecordStore,
)
from hvp2h5p.stores.schema import (
    POSTGRESQL_SCHEMA_STATEMENTS,
    REQUIRED_TABLES,
    SQLITE_SCHEMA_STATEMENTS,
    create_schema,
    get_schema_statements,
    missing_tables,
)
from hvp2h5p.stores.sql import SQLAssetStore, SQLRecordStore

__all__ = [
    # Protocols
    "AssetStore",
    "RecordStore",
    # Components
    "COMPONENT_ACTIVITY",
    "COMPONENT_CONTENT_BANK",
    "COMPONENT_COURSE",
    "COMPONENT_LEGACY",
    # Implementations
    "InMemoryAssetStore",
    "InMemoryRecordStore",
    "SQLAssetStore",
    "SQLRecordStore",
    # Schema
    "POSTGRESQL_SCHEMA_STATEMENTS",
    "REQUIRED_TABLES",
    "SQLITE_SCHEMA_STATEMENTS",
    "create_schema",
    "get_schema_statements",
    "missing_tables",
]
