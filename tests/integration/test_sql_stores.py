"""
Integration tests for the SQL stores on SQLite.

Covers the same contract as the in-memory stores plus the parts only the
database does: schema detection, upserts and error translation.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hvp2h5p.audit import AuditReporter
from hvp2h5p.batch import BatchDriver
from hvp2h5p.engine import MigrationEngine
from hvp2h5p.exceptions import ConfigurationError, NotFoundError, StoreError
from hvp2h5p.models import (
    ContentBankEntry,
    Course,
    CopyPolicy,
    H5PActivity,
    HvpActivity,
    RetentionPolicy,
)
from hvp2h5p.selector import Selector
from hvp2h5p.stores import (
    REQUIRED_TABLES,
    SQLAssetStore,
    SQLRecordStore,
    get_schema_statements,
    missing_tables,
)
from tests.helpers import PACKAGE_BYTES, activity_package_coordinates

MakeSQLLegacy = Callable[..., Awaitable[HvpActivity]]


class TestSchema:
    @pytest.mark.asyncio
    async def test_fresh_database_is_not_ready(self, database_url: str) -> None:
        engine = create_async_engine(database_url)
        try:
            records = SQLRecordStore(engine, enable_tracing=False)

            assert await records.schema_ready() is False
            assert await missing_tables(engine) == set(REQUIRED_TABLES)
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_created_schema_is_ready(self, sql_records: SQLRecordStore) -> None:
        assert await sql_records.schema_ready() is True

    @pytest.mark.asyncio
    async def test_partial_schema_is_not_ready(
        self, sql_engine: AsyncEngine, sql_records: SQLRecordStore
    ) -> None:
        async with sql_engine.begin() as conn:
            await conn.execute(text("DROP TABLE contentbank_content"))

        assert await sql_records.schema_ready() is False

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError):
            get_schema_statements("oracle")

    def test_backends_create_same_tables(self) -> None:
        for backend in ("sqlite", "postgresql"):
            statements = " ".join(get_schema_statements(backend))
            for table in REQUIRED_TABLES:
                assert f"CREATE TABLE IF NOT EXISTS {table} " in statements


class TestSQLRecordStore:
    @pytest.mark.asyncio
    async def test_course_round_trip(self, sql_records: SQLRecordStore) -> None:
        course = await sql_records.add_course(Course(shortname="BIO200", fullname="Biology"))
        assert course.id is not None

        assert await sql_records.get_course(course.id) == course
        assert await sql_records.get_course(404) is None

    @pytest.mark.asyncio
    async def test_explicit_ids_are_kept(self, sql_records: SQLRecordStore) -> None:
        legacy = await sql_records.add_legacy(
            HvpActivity(id=42, course=2, name="Quiz", timecreated=100, main_library_id=1)
        )
        course = await sql_records.add_course(Course(id=7, shortname="GEO"))

        assert legacy.id == 42
        assert course.id == 7
        stored = await sql_records.get_legacy(42)
        assert stored is not None
        assert stored.name == "Quiz"

    @pytest.mark.asyncio
    async def test_context_ids(self, sql_records: SQLRecordStore) -> None:
        assert await sql_records.find_context_id("mod_hvp", 1) is None

        first = await sql_records.get_context_id("mod_hvp", 1)
        again = await sql_records.get_context_id("mod_hvp", 1)
        other = await sql_records.get_context_id("mod_h5pactivity", 1)

        assert first == again
        assert other != first
        assert await sql_records.find_context_id("mod_hvp", 1) == first

        await sql_records.delete_context("mod_hvp", 1)

        assert await sql_records.find_context_id("mod_hvp", 1) is None

    @pytest.mark.asyncio
    async def test_visibility_and_delete(
        self, sql_records: SQLRecordStore, make_sql_legacy: MakeSQLLegacy
    ) -> None:
        legacy = await make_sql_legacy()
        assert legacy.id is not None

        assert await sql_records.set_legacy_visibility(legacy.id, False) is True
        stored = await sql_records.get_legacy(legacy.id)
        assert stored is not None
        assert stored.visible is False

        assert await sql_records.delete_legacy(legacy.id) is True
        assert await sql_records.delete_legacy(legacy.id) is False
        assert await sql_records.set_legacy_visibility(legacy.id, True) is False

    @pytest.mark.asyncio
    async def test_find_unmigrated(
        self, sql_records: SQLRecordStore, make_sql_legacy: MakeSQLLegacy
    ) -> None:
        migrated = await make_sql_legacy(name="Done", timecreated=500)
        video = await make_sql_legacy(name="Video", main_library_id=12)
        quiz = await make_sql_legacy(name="Quiz", main_library_id=34)
        await sql_records.add_activity(
            H5PActivity(name="Done", course=migrated.course, timecreated=500)
        )

        everything = await sql_records.find_unmigrated(set(), limit=10)
        filtered = await sql_records.find_unmigrated({34, 99}, limit=10)
        limited = await sql_records.find_unmigrated(set(), limit=1)

        assert [r.id for r in everything] == [video.id, quiz.id]
        assert [r.id for r in filtered] == [quiz.id]
        assert [r.id for r in limited] == [video.id]

    @pytest.mark.asyncio
    async def test_activities(
        self, sql_records: SQLRecordStore, make_sql_legacy: MakeSQLLegacy
    ) -> None:
        legacy = await make_sql_legacy(name="Quiz", course=3, timecreated=700)
        activity = await sql_records.add_activity(
            H5PActivity(name="Quiz", course=3, timecreated=700, displayoptions=5)
        )
        assert activity.id is not None

        stored = await sql_records.get_activity(activity.id)
        assert stored == activity
        assert stored.enabletracking is True
        assert [a.id for a in await sql_records.find_activity_by_key("Quiz", 3, 700)] == [
            activity.id
        ]
        pairs = await sql_records.find_migrated_pairs()
        assert [(h.id, a.id) for h, a in pairs] == [(legacy.id, activity.id)]

        assert await sql_records.delete_activity(activity.id) is True
        assert await sql_records.find_migrated_pairs() == []

    @pytest.mark.asyncio
    async def test_content_bank(self, sql_records: SQLRecordStore) -> None:
        entry = await sql_records.add_content_bank_entry(
            ContentBankEntry(course=4, name="Quiz", timecreated=1)
        )
        await sql_records.add_content_bank_entry(
            ContentBankEntry(course=5, name="Other", timecreated=1)
        )
        assert entry.id is not None

        assert await sql_records.get_content_bank_entry(entry.id) == entry
        assert await sql_records.list_content_bank_entries(4) == [entry]
        assert await sql_records.delete_content_bank_entry(entry.id) is True
        assert await sql_records.list_content_bank_entries(4) == []

    @pytest.mark.asyncio
    async def test_database_errors_become_store_errors(self, database_url: str) -> None:
        engine = create_async_engine(database_url)
        try:
            records = SQLRecordStore(engine, enable_tracing=False)

            with pytest.raises(StoreError):
                await records.list_legacy()
        finally:
            await engine.dispose()


class TestSQLAssetStore:
    @pytest.mark.asyncio
    async def test_put_get_and_upsert(self, sql_assets: SQLAssetStore) -> None:
        coordinates = activity_package_coordinates(1001)

        first = await sql_assets.put(coordinates, b"one")
        await sql_assets.put(coordinates, PACKAGE_BYTES)

        stored = await sql_assets.get(coordinates)
        assert stored is not None
        assert stored.content == PACKAGE_BYTES
        assert stored.contenthash != first.contenthash
        assert stored.filesize == len(PACKAGE_BYTES)
        assert await sql_assets.get_area_files(1001, "mod_h5pactivity", "package") == [stored]

    @pytest.mark.asyncio
    async def test_read_missing_raises(self, sql_assets: SQLAssetStore) -> None:
        with pytest.raises(NotFoundError):
            await sql_assets.read(activity_package_coordinates(1))

    @pytest.mark.asyncio
    async def test_reference_follows_target_then_falls_back(
        self, sql_assets: SQLAssetStore
    ) -> None:
        own = activity_package_coordinates(1001)
        bank = own.with_location(context_id=50, component="contentbank", filearea="public", itemid=3)
        await sql_assets.put(own, b"own copy")
        await sql_assets.put(bank, b"bank copy")

        alias = await sql_assets.set_reference(own, bank)

        assert alias.reference == bank
        assert await sql_assets.read(own) == b"bank copy"
        assert await sql_assets.delete(bank) is True
        assert await sql_assets.read(own) == b"own copy"

    @pytest.mark.asyncio
    async def test_reference_to_missing_target(self, sql_assets: SQLAssetStore) -> None:
        own = activity_package_coordinates(1001)
        await sql_assets.put(own, b"own copy")

        with pytest.raises(NotFoundError):
            await sql_assets.set_reference(own, own.with_location(filename="missing.h5p"))

    @pytest.mark.asyncio
    async def test_delete_area_files(self, sql_assets: SQLAssetStore) -> None:
        await sql_assets.put(activity_package_coordinates(1001, "a.h5p"), b"a")
        await sql_assets.put(activity_package_coordinates(1001, "b.h5p"), b"b")
        await sql_assets.put(activity_package_coordinates(1002, "c.h5p"), b"c")

        assert await sql_assets.delete_area_files(1001, "mod_h5pactivity") == 2
        assert await sql_assets.get_area_files(1001, "mod_h5pactivity", "package") == []
        assert len(await sql_assets.get_area_files(1002, "mod_h5pactivity", "package")) == 1


class TestMigrationOnSQL:
    """End-to-end runs of the engine and batch driver on the SQL stores."""

    @pytest.mark.asyncio
    async def test_linked_copy_and_remove(
        self,
        sql_records: SQLRecordStore,
        sql_assets: SQLAssetStore,
        make_sql_legacy: MakeSQLLegacy,
    ) -> None:
        legacy = await make_sql_legacy(course=6)
        assert legacy.id is not None
        engine = MigrationEngine(sql_records, sql_assets, enable_tracing=False)

        outcome = await engine.migrate(legacy.id, RetentionPolicy.REMOVE, CopyPolicy.LINKED_COPY)

        assert outcome.success is True, outcome.warnings
        assert outcome.warnings == []
        assert await sql_records.get_legacy(legacy.id) is None
        assert await sql_records.find_context_id("mod_hvp", legacy.id) is None
        assert len(await sql_records.list_content_bank_entries(6)) == 1
        assert outcome.new_record_id is not None
        context_id = await sql_records.find_context_id("mod_h5pactivity", outcome.new_record_id)
        assert context_id is not None
        files = await sql_assets.get_area_files(context_id, "mod_h5pactivity", "package")
        assert files[0].reference is not None
        assert await sql_assets.read(files[0].coordinates) == PACKAGE_BYTES

    @pytest.mark.asyncio
    async def test_batch_then_audit(
        self,
        sql_records: SQLRecordStore,
        sql_assets: SQLAssetStore,
        make_sql_legacy: MakeSQLLegacy,
    ) -> None:
        for i in range(3):
            await make_sql_legacy(name=f"Activity {i}", json_content="{broken" if i == 1 else "{}")
        driver = BatchDriver(
            Selector(sql_records, enable_tracing=False),
            MigrationEngine(sql_records, sql_assets, enable_tracing=False),
            sql_records,
            enable_tracing=False,
        )

        report = await driver.run(None, 10, RetentionPolicy.KEEP, CopyPolicy.NONE, False)
        rows = await AuditReporter(
            sql_records, sql_assets, "https://lms.example.org", enable_tracing=False
        ).reconcile()

        assert (report.succeeded, report.failed) == (2, 1)
        assert [row.oldname for row in rows] == ["Activity 0", "Activity 2"]
        assert all(row.newembed for row in rows)
        again = await driver.run(None, 10, RetentionPolicy.KEEP, CopyPolicy.NONE, False)
        assert [entry.legacy.name for entry in again.entries] == ["Activity 1"]
