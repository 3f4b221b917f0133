"""Maps raw schedule features onto the bounded [0, 1] range."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from timetable_quality.domain.models import DAYS, TIME_SLOTS


MISSING_VALUE = 0.5

# Domain maximum per scaled feature; value / max is clamped to [0, 1].
FEATURE_MAXIMA: dict[str, float] = {
    "course_duration": 120.0,
    "course_capacity": 100.0,
    "teacher_experience": 10.0,
    "teacher_workload": 40.0,
    "student_count": 50.0,
    "course_priority": 10.0,
    "room_distance": 1000.0,
    "course_difficulty": 10.0,
}

# Features already expressed as fractions.
FRACTION_FEATURES = frozenset(
    {
        "time_slot_preference",
        "room_type_match",
        "teacher_availability",
        "semester_progress",
        "historical_success_rate",
    }
)

TIME_OF_DAY_TABLE: dict[int, float] = {
    index: round(0.1 * (index + 1), 1) for index in range(len(TIME_SLOTS))
}
DAY_OF_WEEK_TABLE: dict[int, float] = {
    index: round(0.1 * (index + 1), 1) for index in range(len(DAYS))
}
ORDINAL_TABLES: dict[str, dict[int, float]] = {
    "time_of_day": TIME_OF_DAY_TABLE,
    "day_of_week": DAY_OF_WEEK_TABLE,
}


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def normalize_value(name: str, value: Optional[float]) -> float:
    """Normalize one named raw feature.

    Missing inputs map to the 0.5 midpoint rather than 0 so sparse records
    are not scored as worst case.
    """
    if _is_missing(value):
        return MISSING_VALUE

    table = ORDINAL_TABLES.get(name)
    if table is not None:
        return table.get(int(value), MISSING_VALUE)

    if name in FEATURE_MAXIMA:
        return clamp_unit(float(value) / FEATURE_MAXIMA[name])

    if name in FRACTION_FEATURES:
        return clamp_unit(float(value))

    raise KeyError(f"unknown feature: {name}")


class FeatureNormalizer:
    """Applies the fixed per-feature rules to a raw feature mapping."""

    def __init__(self, feature_columns: tuple[str, ...]) -> None:
        self._feature_columns = feature_columns

    @property
    def feature_columns(self) -> tuple[str, ...]:
        return self._feature_columns

    def normalize(self, raw: dict[str, Optional[float]]) -> np.ndarray:
        return np.array(
            [normalize_value(name, raw.get(name)) for name in self._feature_columns],
            dtype=float,
        )
