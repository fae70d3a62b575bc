"""Unit tests for Selector."""

import pytest

from hvp2h5p.exceptions import ConfigurationError
from hvp2h5p.models import H5PActivity
from hvp2h5p.observability import MockTracer
from hvp2h5p.selector import Selector
from hvp2h5p.stores import InMemoryRecordStore
from tests.helpers import MakeLegacy


class TestFindEligible:
    """Tests for Selector.find_eligible."""

    @pytest.mark.asyncio
    async def test_returns_unmigrated_in_ascending_id(
        self, selector: Selector, make_legacy: MakeLegacy
    ) -> None:
        first = await make_legacy(name="A")
        second = await make_legacy(name="B")

        result = await selector.find_eligible(None, limit=10)

        assert [r.id for r in result] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_excludes_records_with_matching_new_activity(
        self,
        selector: Selector,
        records: InMemoryRecordStore,
        make_legacy: MakeLegacy,
    ) -> None:
        migrated = await make_legacy(name="Done", course=3, timecreated=500)
        pending = await make_legacy(name="Pending", course=3, timecreated=500)
        await records.add_activity(H5PActivity(name="Done", course=3, timecreated=500))

        result = await selector.find_eligible(None, limit=10)

        assert [r.id for r in result] == [pending.id]
        assert migrated.id not in [r.id for r in result]

    @pytest.mark.asyncio
    async def test_partial_key_match_is_not_migrated(
        self,
        selector: Selector,
        records: InMemoryRecordStore,
        make_legacy: MakeLegacy,
    ) -> None:
        legacy = await make_legacy(name="Same", course=3, timecreated=500)
        await records.add_activity(H5PActivity(name="Same", course=3, timecreated=501))
        await records.add_activity(H5PActivity(name="Same", course=4, timecreated=500))

        result = await selector.find_eligible(None, limit=10)

        assert [r.id for r in result] == [legacy.id]

    @pytest.mark.asyncio
    async def test_content_type_filter(
        self, selector: Selector, make_legacy: MakeLegacy
    ) -> None:
        video = await make_legacy(name="Video", main_library_id=12)
        await make_legacy(name="Quiz", main_library_id=34)
        course_presentation = await make_legacy(name="Slides", main_library_id=56)

        result = await selector.find_eligible({12, 56}, limit=10)

        assert [r.id for r in result] == [video.id, course_presentation.id]

    @pytest.mark.asyncio
    async def test_empty_filter_keeps_all(
        self, selector: Selector, make_legacy: MakeLegacy
    ) -> None:
        await make_legacy(name="A", main_library_id=1)
        await make_legacy(name="B", main_library_id=2)

        assert len(await selector.find_eligible([], limit=10)) == 2

    @pytest.mark.asyncio
    async def test_limit(self, selector: Selector, make_legacy: MakeLegacy) -> None:
        created = [await make_legacy(name=f"Activity {i}") for i in range(5)]

        result = await selector.find_eligible(None, limit=3)

        assert [r.id for r in result] == [r.id for r in created[:3]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1])
    async def test_non_positive_limit_raises(self, selector: Selector, limit: int) -> None:
        with pytest.raises(ConfigurationError):
            await selector.find_eligible(None, limit=limit)

    @pytest.mark.asyncio
    async def test_selection_is_read_only(
        self, selector: Selector, make_legacy: MakeLegacy
    ) -> None:
        await make_legacy(name="A")

        first = await selector.find_eligible(None, limit=10)
        second = await selector.find_eligible(None, limit=10)

        assert first == second

    @pytest.mark.asyncio
    async def test_opens_span(self, records: InMemoryRecordStore) -> None:
        tracer = MockTracer()
        selector = Selector(records, tracer=tracer)

        await selector.find_eligible([3, 1], limit=5)

        name, attributes = tracer.spans[0]
        assert name == "hvp2h5p.selector.find_eligible"
        assert attributes is not None
        assert attributes["hvp2h5p.batch.limit"] == 5
        assert attributes["hvp2h5p.selector.content_types"] == "1,3"
