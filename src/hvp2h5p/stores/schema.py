"""
Database schema for the SQL stores.

Statements are kept as lists and executed one at a time, since asyncpg
refuses multi-statement strings.

Example:
    >>> engine = create_async_engine("sqlite+aiosqlite:///hvp2h5p.db")
    >>> await create_schema(engine)
"""

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from hvp2h5p.exceptions import ConfigurationError
from hvp2h5p.stores._connection import execute_with_connection

REQUIRED_TABLES = frozenset(
    {"course", "context", "hvp", "h5pactivity", "contentbank_content", "files"}
)

SQLITE_SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS course (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        shortname TEXT NOT NULL,
        fullname TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS context (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        component TEXT NOT NULL,
        instanceid INTEGER NOT NULL,
        UNIQUE (component, instanceid)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hvp (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        course INTEGER NOT NULL,
        name TEXT NOT NULL,
        intro TEXT NOT NULL DEFAULT '',
        introformat INTEGER NOT NULL DEFAULT 1,
        timecreated INTEGER NOT NULL,
        timemodified INTEGER NOT NULL DEFAULT 0,
        main_library_id INTEGER NOT NULL,
        json_content TEXT NOT NULL DEFAULT '{}',
        disable INTEGER NOT NULL DEFAULT 0,
        grade INTEGER NOT NULL DEFAULT 100,
        visible INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS h5pactivity (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        course INTEGER NOT NULL,
        name TEXT NOT NULL,
        intro TEXT NOT NULL DEFAULT '',
        introformat INTEGER NOT NULL DEFAULT 1,
        timecreated INTEGER NOT NULL,
        timemodified INTEGER NOT NULL DEFAULT 0,
        displayoptions INTEGER NOT NULL DEFAULT 0,
        enabletracking INTEGER NOT NULL DEFAULT 1,
        grade INTEGER NOT NULL DEFAULT 100,
        grademethod INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_h5pactivity_correlation
    ON h5pactivity (name, course, timecreated)
    """,
    """
    CREATE TABLE IF NOT EXISTS contentbank_content (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        course INTEGER NOT NULL,
        name TEXT NOT NULL,
        contenttype TEXT NOT NULL,
        timecreated INTEGER NOT NULL,
        timemodified INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        contextid INTEGER NOT NULL,
        component TEXT NOT NULL,
        filearea TEXT NOT NULL,
        itemid INTEGER NOT NULL,
        filepath TEXT NOT NULL,
        filename TEXT NOT NULL,
        contenthash TEXT NOT NULL,
        filesize INTEGER NOT NULL,
        content BLOB NOT NULL,
        ref_contextid INTEGER,
        ref_component TEXT,
        ref_filearea TEXT,
        ref_itemid INTEGER,
        ref_filepath TEXT,
        ref_filename TEXT,
        UNIQUE (contextid, component, filearea, itemid, filepath, filename)
    )
    """,
]

POSTGRESQL_SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS course (
        id BIGSERIAL PRIMARY KEY,
        shortname VARCHAR(255) NOT NULL,
        fullname VARCHAR(255) NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS context (
        id BIGSERIAL PRIMARY KEY,
        component VARCHAR(100) NOT NULL,
        instanceid BIGINT NOT NULL,
        UNIQUE (component, instanceid)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hvp (
        id BIGSERIAL PRIMARY KEY,
        course BIGINT NOT NULL,
        name VARCHAR(255) NOT NULL,
        intro TEXT NOT NULL DEFAULT '',
        introformat SMALLINT NOT NULL DEFAULT 1,
        timecreated BIGINT NOT NULL,
        timemodified BIGINT NOT NULL DEFAULT 0,
        main_library_id BIGINT NOT NULL,
        json_content TEXT NOT NULL DEFAULT '{}',
        disable INTEGER NOT NULL DEFAULT 0,
        grade INTEGER NOT NULL DEFAULT 100,
        visible BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS h5pactivity (
        id BIGSERIAL PRIMARY KEY,
        course BIGINT NOT NULL,
        name VARCHAR(255) NOT NULL,
        intro TEXT NOT NULL DEFAULT '',
        introformat SMALLINT NOT NULL DEFAULT 1,
        timecreated BIGINT NOT NULL,
        timemodified BIGINT NOT NULL DEFAULT 0,
        displayoptions INTEGER NOT NULL DEFAULT 0,
        enabletracking BOOLEAN NOT NULL DEFAULT TRUE,
        grade INTEGER NOT NULL DEFAULT 100,
        grademethod SMALLINT NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_h5pactivity_correlation
    ON h5pactivity (name, course, timecreated)
    """,
    """
    CREATE TABLE IF NOT EXISTS contentbank_content (
        id BIGSERIAL PRIMARY KEY,
        course BIGINT NOT NULL,
        name VARCHAR(255) NOT NULL,
        contenttype VARCHAR(100) NOT NULL,
        timecreated BIGINT NOT NULL,
        timemodified BIGINT NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id BIGSERIAL PRIMARY KEY,
        contextid BIGINT NOT NULL,
        component VARCHAR(100) NOT NULL,
        filearea VARCHAR(50) NOT NULL,
        itemid BIGINT NOT NULL,
        filepath VARCHAR(255) NOT NULL,
        filename VARCHAR(255) NOT NULL,
        contenthash VARCHAR(40) NOT NULL,
        filesize BIGINT NOT NULL,
        content BYTEA NOT NULL,
        ref_contextid BIGINT,
        ref_component VARCHAR(100),
        ref_filearea VARCHAR(50),
        ref_itemid BIGINT,
        ref_filepath VARCHAR(255),
        ref_filename VARCHAR(255),
        UNIQUE (contextid, component, filearea, itemid, filepath, filename)
    )
    """,
]


def get_schema_statements(backend: str) -> list[str]:
    """
    Get the DDL statements for a database backend.

    Args:
        backend: 'sqlite' or 'postgresql'

    Returns:
        CREATE statements in execution order

    Raises:
        ConfigurationError: If the backend is not supported
    """
    if backend == "sqlite":
        return list(SQLITE_SCHEMA_STATEMENTS)
    if backend == "postgresql":
        return list(POSTGRESQL_SCHEMA_STATEMENTS)
    raise ConfigurationError(f"Unsupported database backend: {backend}")


async def create_schema(engine: AsyncEngine, backend: str | None = None) -> None:
    """
    Create every table the migration needs. Existing tables are kept.

    Args:
        engine: Database engine
        backend: Backend name; defaults to the engine's dialect
    """
    statements = get_schema_statements(backend or engine.dialect.name)
    async with execute_with_connection(engine, operation="create_schema") as conn:
        for statement in statements:
            await conn.execute(text(statement))


async def missing_tables(conn: AsyncConnection | AsyncEngine) -> set[str]:
    """Return the required tables that do not exist yet."""
    async with execute_with_connection(
        conn, transactional=False, operation="inspect_schema"
    ) as connection:
        existing = await connection.run_sync(
            lambda sync_conn: inspect(sync_conn).get_table_names()
        )
    return set(REQUIRED_TABLES) - set(existing)


__all__ = [
    "POSTGRESQL_SCHEMA_STATEMENTS",
    "REQUIRED_TABLES",
    "SQLITE_SCHEMA_STATEMENTS",
    "create_schema",
    "get_schema_statements",
    "missing_tables",
]
