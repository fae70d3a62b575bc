"""Constants and helpers shared by the test modules."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from hvp2h5p.models import AssetCoordinates, Course, HvpActivity
from hvp2h5p.stores import AssetStore, RecordStore

FIXED_NOW = 1_700_000_000
PACKAGE_BYTES = b"PK\x03\x04 interactive video package"

MakeCourse = Callable[..., Awaitable[Course]]
MakeLegacy = Callable[..., Awaitable[HvpActivity]]


def legacy_package_coordinates(context_id: int, filename: str = "content.h5p") -> AssetCoordinates:
    """Coordinates of a legacy activity's package."""
    return AssetCoordinates(
        context_id=context_id,
        component="mod_hvp",
        filearea="package",
        itemid=0,
        filepath="/",
        filename=filename,
    )


def activity_package_coordinates(
    context_id: int, filename: str = "content.h5p"
) -> AssetCoordinates:
    """Coordinates of a migrated activity's package."""
    return AssetCoordinates(
        context_id=context_id,
        component="mod_h5pactivity",
        filearea="package",
        itemid=0,
        filepath="/",
        filename=filename,
    )


async def seed_legacy(
    records: RecordStore,
    assets: AssetStore,
    name: str = "Interactive video",
    course: int = 2,
    timecreated: int = 1_600_000_000,
    main_library_id: int = 10,
    package: bytes | None = PACKAGE_BYTES,
    filename: str = "content.h5p",
    **overrides: Any,
) -> HvpActivity:
    """Add a legacy activity and, unless ``package`` is None, its package."""
    legacy = await records.add_legacy(
        HvpActivity(
            name=name,
            course=course,
            timecreated=timecreated,
            main_library_id=main_library_id,
            **overrides,
        )
    )
    assert legacy.id is not None
    if package is not None:
        context_id = await records.get_context_id("mod_hvp", legacy.id)
        await assets.put(legacy_package_coordinates(context_id, filename), package)
    return legacy
