"""
SQLAlchemy implementations of the record and asset stores.

Queries are plain SQL through ``text()`` and run against SQLite (aiosqlite)
or PostgreSQL (asyncpg). Both stores accept an AsyncEngine, in which case
every call runs in its own connection, or an AsyncConnection whose
transaction the caller controls.

Example:
    >>> from sqlalchemy.ext.asyncio import create_async_engine
    >>> engine = create_async_engine("sqlite+aiosqlite:///hvp2h5p.db")
    >>> await create_schema(engine)
    >>> records = SQLRecordStore(engine)
    >>> assets = SQLAssetStore(engine)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from hvp2h5p.exceptions import NotFoundError
from hvp2h5p.models import (
    AssetCoordinates,
    ContentBankEntry,
    Course,
    H5PActivity,
    HvpActivity,
    StoredAsset,
)
from hvp2h5p.observability import (
    ATTR_ACTIVITY_ID,
    ATTR_ASSET_COMPONENT,
    ATTR_ASSET_CONTEXT,
    ATTR_ASSET_FILEAREA,
    ATTR_ASSET_SIZE,
    ATTR_BATCH_LIMIT,
    ATTR_CONTENT_BANK_ID,
    ATTR_COURSE_ID,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LEGACY_ID,
    Tracer,
    create_tracer,
)
from hvp2h5p.stores._connection import execute_with_connection
from hvp2h5p.stores.schema import missing_tables

logger = logging.getLogger(__name__)

_HVP_COLUMNS = (
    "id, course, name, intro, introformat, timecreated, timemodified, "
    "main_library_id, json_content, disable, grade, visible"
)
_ACTIVITY_COLUMNS = (
    "id, course, name, intro, introformat, timecreated, timemodified, "
    "displayoptions, enabletracking, grade, grademethod"
)
_CONTENT_BANK_COLUMNS = "id, course, name, contenttype, timecreated, timemodified"
_FILE_COLUMNS = (
    "contextid, component, filearea, itemid, filepath, filename, contenthash, content, "
    "ref_contextid, ref_component, ref_filearea, ref_itemid, ref_filepath, ref_filename"
)


class _SQLStore:
    """Shared connection and tracing setup."""

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the store.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.conn = conn
        self._db_system = conn.dialect.name

    def _span_attributes(self, operation: str, **extra: Any) -> dict[str, Any]:
        attributes: dict[str, Any] = {
            ATTR_DB_SYSTEM: self._db_system,
            ATTR_DB_OPERATION: operation,
        }
        attributes.update(extra)
        return attributes


class SQLRecordStore(_SQLStore):
    """
    SQL implementation of RecordStore.

    Uses the ``course``, ``context``, ``hvp``, ``h5pactivity`` and
    ``contentbank_content`` tables created by ``create_schema``.
    """

    async def schema_ready(self) -> bool:
        missing = await missing_tables(self.conn)
        if missing:
            logger.warning("Missing tables: %s", ", ".join(sorted(missing)))
        return not missing

    async def _insert(self, operation: str, query: Any, params: dict[str, Any]) -> int:
        async with execute_with_connection(self.conn, operation=operation) as conn:
            result = await conn.execute(query, params)
            return int(result.scalar_one())

    async def _fetch_one(
        self, operation: str, query: Any, params: dict[str, Any]
    ) -> Mapping[str, Any] | None:
        async with execute_with_connection(
            self.conn, transactional=False, operation=operation
        ) as conn:
            result = await conn.execute(query, params)
            return result.mappings().fetchone()

    async def _fetch_all(
        self, operation: str, query: Any, params: dict[str, Any] | None = None
    ) -> list[Mapping[str, Any]]:
        async with execute_with_connection(
            self.conn, transactional=False, operation=operation
        ) as conn:
            result = await conn.execute(query, params or {})
            return list(result.mappings().fetchall())

    async def _delete(self, operation: str, table: str, record_id: int) -> bool:
        query = text(f"DELETE FROM {table} WHERE id = :id")  # nosec B608 - fixed table names
        async with execute_with_connection(self.conn, operation=operation) as conn:
            result = await conn.execute(query, {"id": record_id})
            return result.rowcount > 0

    # Courses

    async def add_course(self, course: Course) -> Course:
        with self._tracer.span(
            "hvp2h5p.records.add_course", self._span_attributes("INSERT")
        ):
            params = course.model_dump(exclude={"id"})
            if course.id is None:
                query = text("""
                    INSERT INTO course (shortname, fullname)
                    VALUES (:shortname, :fullname)
                    RETURNING id
                """)
            else:
                params["id"] = course.id
                query = text("""
                    INSERT INTO course (id, shortname, fullname)
                    VALUES (:id, :shortname, :fullname)
                    RETURNING id
                """)
            course_id = await self._insert("add_course", query, params)
            return course.model_copy(update={"id": course_id})

    async def get_course(self, course_id: int) -> Course | None:
        with self._tracer.span(
            "hvp2h5p.records.get_course",
            self._span_attributes("SELECT", **{ATTR_COURSE_ID: course_id}),
        ):
            row = await self._fetch_one(
                "get_course",
                text("SELECT id, shortname, fullname FROM course WHERE id = :id"),
                {"id": course_id},
            )
            return Course.model_validate(dict(row)) if row else None

    # Contexts

    async def get_context_id(self, component: str, instance_id: int) -> int:
        params = {"component": component, "instanceid": instance_id}
        async with execute_with_connection(self.conn, operation="get_context_id") as conn:
            result = await conn.execute(
                text("""
                    SELECT id FROM context
                    WHERE component = :component AND instanceid = :instanceid
                """),
                params,
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                return int(existing)
            result = await conn.execute(
                text("""
                    INSERT INTO context (component, instanceid)
                    VALUES (:component, :instanceid)
                    RETURNING id
                """),
                params,
            )
            return int(result.scalar_one())

    async def find_context_id(self, component: str, instance_id: int) -> int | None:
        row = await self._fetch_one(
            "find_context_id",
            text("""
                SELECT id FROM context
                WHERE component = :component AND instanceid = :instanceid
            """),
            {"component": component, "instanceid": instance_id},
        )
        return int(row["id"]) if row else None

    async def delete_context(self, component: str, instance_id: int) -> None:
        async with execute_with_connection(self.conn, operation="delete_context") as conn:
            await conn.execute(
                text("""
                    DELETE FROM context
                    WHERE component = :component AND instanceid = :instanceid
                """),
                {"component": component, "instanceid": instance_id},
            )

    # Legacy activities

    async def add_legacy(self, record: HvpActivity) -> HvpActivity:
        with self._tracer.span(
            "hvp2h5p.records.add_legacy", self._span_attributes("INSERT")
        ):
            params = record.model_dump(exclude={"id"})
            columns = _HVP_COLUMNS
            values = (
                ":id, :course, :name, :intro, :introformat, :timecreated, :timemodified, "
                ":main_library_id, :json_content, :disable, :grade, :visible"
            )
            if record.id is None:
                columns = columns.removeprefix("id, ")
                values = values.removeprefix(":id, ")
            else:
                params["id"] = record.id
            query = text(
                f"INSERT INTO hvp ({columns}) VALUES ({values}) RETURNING id"  # nosec B608
            )
            legacy_id = await self._insert("add_legacy", query, params)
            return record.model_copy(update={"id": legacy_id})

    async def get_legacy(self, legacy_id: int) -> HvpActivity | None:
        with self._tracer.span(
            "hvp2h5p.records.get_legacy",
            self._span_attributes("SELECT", **{ATTR_LEGACY_ID: legacy_id}),
        ):
            row = await self._fetch_one(
                "get_legacy",
                text(f"SELECT {_HVP_COLUMNS} FROM hvp WHERE id = :id"),  # nosec B608
                {"id": legacy_id},
            )
            return HvpActivity.model_validate(dict(row)) if row else None

    async def list_legacy(self) -> list[HvpActivity]:
        rows = await self._fetch_all(
            "list_legacy",
            text(f"SELECT {_HVP_COLUMNS} FROM hvp ORDER BY id"),  # nosec B608
        )
        return [HvpActivity.model_validate(dict(row)) for row in rows]

    async def set_legacy_visibility(self, legacy_id: int, visible: bool) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.set_legacy_visibility",
            self._span_attributes("UPDATE", **{ATTR_LEGACY_ID: legacy_id}),
        ):
            async with execute_with_connection(
                self.conn, operation="set_legacy_visibility"
            ) as conn:
                result = await conn.execute(
                    text("UPDATE hvp SET visible = :visible WHERE id = :id"),
                    {"visible": visible, "id": legacy_id},
                )
                return result.rowcount > 0

    async def delete_legacy(self, legacy_id: int) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.delete_legacy",
            self._span_attributes("DELETE", **{ATTR_LEGACY_ID: legacy_id}),
        ):
            return await self._delete("delete_legacy", "hvp", legacy_id)

    async def find_unmigrated(self, library_ids: set[int], limit: int) -> list[HvpActivity]:
        with self._tracer.span(
            "hvp2h5p.records.find_unmigrated",
            self._span_attributes("SELECT", **{ATTR_BATCH_LIMIT: limit}),
        ):
            library_filter = ""
            params: dict[str, Any] = {"limit": limit}
            if library_ids:
                library_filter = "AND h.main_library_id IN :library_ids"
                params["library_ids"] = sorted(library_ids)
            query = text(f"""
                SELECT h.id, h.course, h.name, h.intro, h.introformat, h.timecreated,
                       h.timemodified, h.main_library_id, h.json_content, h.disable,
                       h.grade, h.visible
                FROM hvp h
                LEFT JOIN h5pactivity a
                    ON a.name = h.name
                    AND a.course = h.course
                    AND a.timecreated = h.timecreated
                WHERE a.id IS NULL
                {library_filter}
                ORDER BY h.id
                LIMIT :limit
            """)  # nosec B608 - filter clause is a fixed string
            if library_ids:
                query = query.bindparams(bindparam("library_ids", expanding=True))
            rows = await self._fetch_all("find_unmigrated", query, params)
            return [HvpActivity.model_validate(dict(row)) for row in rows]

    # New activities

    async def add_activity(self, record: H5PActivity) -> H5PActivity:
        with self._tracer.span(
            "hvp2h5p.records.add_activity", self._span_attributes("INSERT")
        ):
            query = text("""
                INSERT INTO h5pactivity
                    (course, name, intro, introformat, timecreated, timemodified,
                     displayoptions, enabletracking, grade, grademethod)
                VALUES
                    (:course, :name, :intro, :introformat, :timecreated, :timemodified,
                     :displayoptions, :enabletracking, :grade, :grademethod)
                RETURNING id
            """)
            activity_id = await self._insert(
                "add_activity", query, record.model_dump(exclude={"id"})
            )
            return record.model_copy(update={"id": activity_id})

    async def get_activity(self, activity_id: int) -> H5PActivity | None:
        with self._tracer.span(
            "hvp2h5p.records.get_activity",
            self._span_attributes("SELECT", **{ATTR_ACTIVITY_ID: activity_id}),
        ):
            row = await self._fetch_one(
                "get_activity",
                text(f"SELECT {_ACTIVITY_COLUMNS} FROM h5pactivity WHERE id = :id"),  # nosec B608
                {"id": activity_id},
            )
            return H5PActivity.model_validate(dict(row)) if row else None

    async def delete_activity(self, activity_id: int) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.delete_activity",
            self._span_attributes("DELETE", **{ATTR_ACTIVITY_ID: activity_id}),
        ):
            return await self._delete("delete_activity", "h5pactivity", activity_id)

    async def find_activity_by_key(
        self, name: str, course: int, timecreated: int
    ) -> list[H5PActivity]:
        rows = await self._fetch_all(
            "find_activity_by_key",
            text(f"""
                SELECT {_ACTIVITY_COLUMNS} FROM h5pactivity
                WHERE name = :name AND course = :course AND timecreated = :timecreated
                ORDER BY id
            """),  # nosec B608
            {"name": name, "course": course, "timecreated": timecreated},
        )
        return [H5PActivity.model_validate(dict(row)) for row in rows]

    async def find_migrated_pairs(self) -> list[tuple[HvpActivity, H5PActivity]]:
        with self._tracer.span(
            "hvp2h5p.records.find_migrated_pairs", self._span_attributes("SELECT")
        ):
            rows = await self._fetch_all(
                "find_migrated_pairs",
                text("""
                    SELECT h.id AS h_id, h.course AS h_course, h.name AS h_name,
                           h.intro AS h_intro, h.introformat AS h_introformat,
                           h.timecreated AS h_timecreated, h.timemodified AS h_timemodified,
                           h.main_library_id AS h_main_library_id,
                           h.json_content AS h_json_content, h.disable AS h_disable,
                           h.grade AS h_grade, h.visible AS h_visible,
                           a.id AS a_id, a.course AS a_course, a.name AS a_name,
                           a.intro AS a_intro, a.introformat AS a_introformat,
                           a.timecreated AS a_timecreated, a.timemodified AS a_timemodified,
                           a.displayoptions AS a_displayoptions,
                           a.enabletracking AS a_enabletracking, a.grade AS a_grade,
                           a.grademethod AS a_grademethod
                    FROM hvp h
                    JOIN h5pactivity a
                        ON a.name = h.name
                        AND a.course = h.course
                        AND a.timecreated = h.timecreated
                    ORDER BY h.id, a.id
                """),
            )
            return [
                (
                    HvpActivity.model_validate(_strip_prefix(row, "h_")),
                    H5PActivity.model_validate(_strip_prefix(row, "a_")),
                )
                for row in rows
            ]

    # Content bank

    async def add_content_bank_entry(self, entry: ContentBankEntry) -> ContentBankEntry:
        with self._tracer.span(
            "hvp2h5p.records.add_content_bank_entry", self._span_attributes("INSERT")
        ):
            query = text("""
                INSERT INTO contentbank_content
                    (course, name, contenttype, timecreated, timemodified)
                VALUES (:course, :name, :contenttype, :timecreated, :timemodified)
                RETURNING id
            """)
            entry_id = await self._insert(
                "add_content_bank_entry", query, entry.model_dump(exclude={"id"})
            )
            return entry.model_copy(update={"id": entry_id})

    async def get_content_bank_entry(self, entry_id: int) -> ContentBankEntry | None:
        row = await self._fetch_one(
            "get_content_bank_entry",
            text(
                f"SELECT {_CONTENT_BANK_COLUMNS} FROM contentbank_content WHERE id = :id"  # nosec B608
            ),
            {"id": entry_id},
        )
        return ContentBankEntry.model_validate(dict(row)) if row else None

    async def delete_content_bank_entry(self, entry_id: int) -> bool:
        with self._tracer.span(
            "hvp2h5p.records.delete_content_bank_entry",
            self._span_attributes("DELETE", **{ATTR_CONTENT_BANK_ID: entry_id}),
        ):
            return await self._delete(
                "delete_content_bank_entry", "contentbank_content", entry_id
            )

    async def list_content_bank_entries(self, course: int) -> list[ContentBankEntry]:
        rows = await self._fetch_all(
            "list_content_bank_entries",
            text(f"""
                SELECT {_CONTENT_BANK_COLUMNS} FROM contentbank_content
                WHERE course = :course
                ORDER BY id
            """),  # nosec B608
            {"course": course},
        )
        return [ContentBankEntry.model_validate(dict(row)) for row in rows]


def _strip_prefix(row: Mapping[str, Any], prefix: str) -> dict[str, Any]:
    return {key[len(prefix) :]: value for key, value in row.items() if key.startswith(prefix)}


def _row_to_asset(row: Mapping[str, Any]) -> StoredAsset:
    reference = None
    if row["ref_contextid"] is not None:
        reference = AssetCoordinates(
            context_id=row["ref_contextid"],
            component=row["ref_component"],
            filearea=row["ref_filearea"],
            itemid=row["ref_itemid"],
            filepath=row["ref_filepath"],
            filename=row["ref_filename"],
        )
    return StoredAsset(
        coordinates=AssetCoordinates(
            context_id=row["contextid"],
            component=row["component"],
            filearea=row["filearea"],
            itemid=row["itemid"],
            filepath=row["filepath"],
            filename=row["filename"],
        ),
        content=bytes(row["content"]),
        contenthash=row["contenthash"],
        reference=reference,
    )


def _location_params(coordinates: AssetCoordinates) -> dict[str, Any]:
    return {
        "contextid": coordinates.context_id,
        "component": coordinates.component,
        "filearea": coordinates.filearea,
        "itemid": coordinates.itemid,
        "filepath": coordinates.filepath,
        "filename": coordinates.filename,
    }


def _reference_params(reference: AssetCoordinates | None) -> dict[str, Any]:
    if reference is None:
        return {
            f"ref_{key}": None
            for key in ("contextid", "component", "filearea", "itemid", "filepath", "filename")
        }
    return {f"ref_{key}": value for key, value in _location_params(reference).items()}


_LOCATION_FILTER = """
    contextid = :contextid AND component = :component AND filearea = :filearea
    AND itemid = :itemid AND filepath = :filepath AND filename = :filename
"""


class SQLAssetStore(_SQLStore):
    """
    SQL implementation of AssetStore.

    Files live in the ``files`` table, one row per coordinates, with the
    content stored inline. Alias references are stored as ``ref_*`` columns.
    """

    async def put(
        self,
        coordinates: AssetCoordinates,
        content: bytes,
        reference: AssetCoordinates | None = None,
    ) -> StoredAsset:
        with self._tracer.span(
            "hvp2h5p.assets.put",
            self._span_attributes(
                "UPSERT",
                **{
                    ATTR_ASSET_CONTEXT: coordinates.context_id,
                    ATTR_ASSET_COMPONENT: coordinates.component,
                    ATTR_ASSET_FILEAREA: coordinates.filearea,
                    ATTR_ASSET_SIZE: len(content),
                },
            ),
        ):
            asset = StoredAsset(coordinates=coordinates, content=content, reference=reference)
            query = text("""
                INSERT INTO files
                    (contextid, component, filearea, itemid, filepath, filename,
                     contenthash, filesize, content,
                     ref_contextid, ref_component, ref_filearea, ref_itemid,
                     ref_filepath, ref_filename)
                VALUES
                    (:contextid, :component, :filearea, :itemid, :filepath, :filename,
                     :contenthash, :filesize, :content,
                     :ref_contextid, :ref_component, :ref_filearea, :ref_itemid,
                     :ref_filepath, :ref_filename)
                ON CONFLICT (contextid, component, filearea, itemid, filepath, filename)
                DO UPDATE SET
                    contenthash = EXCLUDED.contenthash,
                    filesize = EXCLUDED.filesize,
                    content = EXCLUDED.content,
                    ref_contextid = EXCLUDED.ref_contextid,
                    ref_component = EXCLUDED.ref_component,
                    ref_filearea = EXCLUDED.ref_filearea,
                    ref_itemid = EXCLUDED.ref_itemid,
                    ref_filepath = EXCLUDED.ref_filepath,
                    ref_filename = EXCLUDED.ref_filename
            """)
            params = {
                **_location_params(coordinates),
                **_reference_params(reference),
                "contenthash": asset.contenthash,
                "filesize": asset.filesize,
                "content": content,
            }
            async with execute_with_connection(self.conn, operation="put") as conn:
                await conn.execute(query, params)
            return asset

    async def get(self, coordinates: AssetCoordinates) -> StoredAsset | None:
        async with execute_with_connection(
            self.conn, transactional=False, operation="get"
        ) as conn:
            result = await conn.execute(
                text(f"SELECT {_FILE_COLUMNS} FROM files WHERE {_LOCATION_FILTER}"),  # nosec B608
                _location_params(coordinates),
            )
            row = result.mappings().fetchone()
            return _row_to_asset(row) if row else None

    async def read(self, coordinates: AssetCoordinates) -> bytes:
        with self._tracer.span(
            "hvp2h5p.assets.read",
            self._span_attributes(
                "SELECT",
                **{
                    ATTR_ASSET_CONTEXT: coordinates.context_id,
                    ATTR_ASSET_COMPONENT: coordinates.component,
                },
            ),
        ):
            asset = await self.get(coordinates)
            if asset is None:
                raise NotFoundError(f"File not found: {coordinates.pathname}")
            if asset.reference is not None:
                target = await self.get(asset.reference)
                if target is not None:
                    return target.content
            return asset.content

    async def get_area_files(
        self,
        context_id: int,
        component: str,
        filearea: str,
        itemid: int | None = None,
    ) -> list[StoredAsset]:
        item_filter = "AND itemid = :itemid" if itemid is not None else ""
        query = text(f"""
            SELECT {_FILE_COLUMNS} FROM files
            WHERE contextid = :contextid AND component = :component AND filearea = :filearea
            {item_filter}
            ORDER BY itemid, filepath, filename
        """)  # nosec B608 - filter clause is a fixed string
        params: dict[str, Any] = {
            "contextid": context_id,
            "component": component,
            "filearea": filearea,
        }
        if itemid is not None:
            params["itemid"] = itemid
        async with execute_with_connection(
            self.conn, transactional=False, operation="get_area_files"
        ) as conn:
            result = await conn.execute(query, params)
            return [_row_to_asset(row) for row in result.mappings().fetchall()]

    async def set_reference(
        self, coordinates: AssetCoordinates, target: AssetCoordinates
    ) -> StoredAsset:
        with self._tracer.span(
            "hvp2h5p.assets.set_reference",
            self._span_attributes(
                "UPDATE",
                **{
                    ATTR_ASSET_CONTEXT: coordinates.context_id,
                    ATTR_ASSET_COMPONENT: coordinates.component,
                },
            ),
        ):
            asset = await self.get(coordinates)
            if asset is None:
                raise NotFoundError(f"File not found: {coordinates.pathname}")
            if await self.get(target) is None:
                raise NotFoundError(f"Reference target not found: {target.pathname}")
            query = text(f"""
                UPDATE files SET
                    ref_contextid = :ref_contextid,
                    ref_component = :ref_component,
                    ref_filearea = :ref_filearea,
                    ref_itemid = :ref_itemid,
                    ref_filepath = :ref_filepath,
                    ref_filename = :ref_filename
                WHERE {_LOCATION_FILTER}
            """)  # nosec B608
            params = {**_location_params(coordinates), **_reference_params(target)}
            async with execute_with_connection(self.conn, operation="set_reference") as conn:
                await conn.execute(query, params)
            return asset.model_copy(update={"reference": target})

    async def delete(self, coordinates: AssetCoordinates) -> bool:
        async with execute_with_connection(self.conn, operation="delete") as conn:
            result = await conn.execute(
                text(f"DELETE FROM files WHERE {_LOCATION_FILTER}"),  # nosec B608
                _location_params(coordinates),
            )
            return result.rowcount > 0

    async def delete_area_files(
        self,
        context_id: int,
        component: str,
        filearea: str | None = None,
    ) -> int:
        with self._tracer.span(
            "hvp2h5p.assets.delete_area_files",
            self._span_attributes(
                "DELETE",
                **{ATTR_ASSET_CONTEXT: context_id, ATTR_ASSET_COMPONENT: component},
            ),
        ):
            area_filter = "AND filearea = :filearea" if filearea is not None else ""
            params: dict[str, Any] = {"contextid": context_id, "component": component}
            if filearea is not None:
                params["filearea"] = filearea
            query = text(f"""
                DELETE FROM files
                WHERE contextid = :contextid AND component = :component
                {area_filter}
            """)  # nosec B608 - filter clause is a fixed string
            async with execute_with_connection(
                self.conn, operation="delete_area_files"
            ) as conn:
                result = await conn.execute(query, params)
                return int(result.rowcount)


__all__ = ["SQLAssetStore", "SQLRecordStore"]
