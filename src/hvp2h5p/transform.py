"""
Conversion of a legacy activity into a new activity record.
"""

from __future__ import annotations

import json
import time

from hvp2h5p.exceptions import TransformError
from hvp2h5p.models import DISPLAY_OPTIONS_MASK, H5PActivity, HvpActivity

GRADEMETHOD_HIGHEST = 1
"""Grade the highest attempt."""


def transform_legacy(legacy: HvpActivity, now: int | None = None) -> H5PActivity:
    """
    Build the unsaved H5PActivity for a legacy activity.

    The correlation key fields (name, course, timecreated) are copied
    verbatim so the pair can be found again later.

    Args:
        legacy: The legacy activity
        now: Timestamp for ``timemodified``; defaults to the current time

    Returns:
        A new H5PActivity without an id

    Raises:
        TransformError: If the legacy content or display options are invalid
    """
    try:
        content = json.loads(legacy.json_content)
    except (TypeError, ValueError) as e:
        raise TransformError(
            f"Invalid json_content: {e}", record_id=legacy.id
        ) from e
    if not isinstance(content, dict):
        raise TransformError(
            f"json_content must be a JSON object, got {type(content).__name__}",
            record_id=legacy.id,
        )

    if legacy.disable < 0 or legacy.disable & ~DISPLAY_OPTIONS_MASK:
        raise TransformError(
            f"Display options {legacy.disable} are outside 0..{DISPLAY_OPTIONS_MASK}",
            record_id=legacy.id,
        )

    return H5PActivity(
        course=legacy.course,
        name=legacy.name,
        intro=legacy.intro,
        introformat=legacy.introformat,
        timecreated=legacy.timecreated,
        timemodified=int(time.time()) if now is None else now,
        displayoptions=legacy.disable,
        enabletracking=True,
        grade=legacy.grade,
        grademethod=GRADEMETHOD_HIGHEST,
    )
