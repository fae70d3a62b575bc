"""Unit tests for transform_legacy."""

import pytest

from hvp2h5p.exceptions import TransformError
from hvp2h5p.models import HvpActivity
from hvp2h5p.transform import transform_legacy


def _legacy(**overrides: object) -> HvpActivity:
    fields: dict[str, object] = {
        "id": 8,
        "course": 4,
        "name": "Solar system",
        "intro": "<p>Watch and answer</p>",
        "introformat": 1,
        "timecreated": 1_500_000_000,
        "timemodified": 1_500_000_100,
        "main_library_id": 12,
        "json_content": '{"interactiveVideo": {}}',
        "disable": 5,
        "grade": 80,
    }
    fields.update(overrides)
    return HvpActivity(**fields)  # type: ignore[arg-type]


class TestTransformLegacy:
    """Tests for transform_legacy."""

    def test_copies_correlation_key_verbatim(self) -> None:
        legacy = _legacy()

        activity = transform_legacy(legacy, now=1)

        assert activity.correlation_key == legacy.correlation_key
        assert activity.id is None

    def test_copies_intro_grade_and_display_options(self) -> None:
        activity = transform_legacy(_legacy(), now=1)

        assert activity.intro == "<p>Watch and answer</p>"
        assert activity.introformat == 1
        assert activity.grade == 80
        assert activity.displayoptions == 5

    def test_new_activity_defaults(self) -> None:
        activity = transform_legacy(_legacy(), now=1_700_000_000)

        assert activity.enabletracking is True
        assert activity.grademethod == 1
        assert activity.timemodified == 1_700_000_000

    @pytest.mark.parametrize("json_content", ["not json", "[1, 2]", '"text"', ""])
    def test_rejects_malformed_content(self, json_content: str) -> None:
        with pytest.raises(TransformError) as exc_info:
            transform_legacy(_legacy(json_content=json_content))
        assert exc_info.value.record_id == 8

    @pytest.mark.parametrize("disable", [-1, 32, 255])
    def test_rejects_out_of_range_display_options(self, disable: int) -> None:
        with pytest.raises(TransformError, match="Display options"):
            transform_legacy(_legacy(disable=disable))

    def test_accepts_full_display_option_mask(self) -> None:
        assert transform_legacy(_legacy(disable=31), now=1).displayoptions == 31
