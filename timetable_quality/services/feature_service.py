"""Feature extraction for schedule items."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from timetable_quality.domain.models import (
    DAYS,
    TIME_SLOTS,
    WEEKLY_SLOT_COUNT,
    ScheduleItem,
    ScoringContext,
    Teacher,
    normalize_day,
    normalize_time_slot,
    room_suits_lecture,
)
from timetable_quality.services.normalization import FeatureNormalizer, clamp_unit


DEFAULT_HISTORICAL_SUCCESS_RATE = 0.5
_EMPTY_CONTEXT = ScoringContext()


@dataclass(frozen=True)
class FeatureVector:
    """Raw (un-normalized) features in model input order."""

    course_duration: Optional[float]
    course_capacity: Optional[float]
    teacher_experience: Optional[float]
    time_slot_preference: Optional[float]
    room_type_match: Optional[float]
    teacher_workload: Optional[float]
    student_count: Optional[float]
    course_priority: Optional[float]
    room_distance: Optional[float]
    teacher_availability: Optional[float]
    course_difficulty: Optional[float]
    time_of_day: Optional[float]
    day_of_week: Optional[float]
    semester_progress: Optional[float]
    historical_success_rate: Optional[float]

    def as_dict(self) -> dict[str, Optional[float]]:
        return {name: getattr(self, name) for name in FEATURE_COLUMNS}


FEATURE_COLUMNS: tuple[str, ...] = tuple(item.name for item in fields(FeatureVector))


def teacher_availability_score(
    teacher: Teacher,
    day: Optional[str],
    time_slot: Optional[str],
) -> Optional[float]:
    """Availability of a teacher for a slot, or across the week.

    Returns None when the teacher has no availability grid at all.
    """
    if not teacher.availability:
        return None

    slot = normalize_time_slot(time_slot)
    day_slots = teacher.availability_for(day)
    if slot is not None and day_slots is not None:
        return 1.0 if day_slots.get(slot, False) else 0.0

    available = sum(
        1
        for slots in teacher.availability.values()
        for is_available in slots.values()
        if is_available
    )
    return clamp_unit(available / WEEKLY_SLOT_COUNT)


def time_slot_preference(preferred: Sequence[str], time_slot: Optional[str]) -> float:
    if not preferred:
        return 0.5
    slot = normalize_time_slot(time_slot)
    if slot is None:
        return 0.5
    return 1.0 if slot in preferred else 0.0


def semester_progress_on(current: date, start: date, end: date) -> float:
    """Fraction of the term elapsed on ``current``, clamped to [0, 1]."""
    total_days = (end - start).days
    if total_days <= 0:
        return 1.0 if current >= end else 0.0
    return clamp_unit((current - start).days / total_days)


class FeatureExtractor:
    """Turns schedule items into raw feature vectors and normalized frames."""

    def __init__(self, normalizer: Optional[FeatureNormalizer] = None) -> None:
        self._normalizer = normalizer or FeatureNormalizer(FEATURE_COLUMNS)

    @property
    def feature_columns(self) -> tuple[str, ...]:
        return FEATURE_COLUMNS

    def extract(
        self,
        item: ScheduleItem,
        context: Optional[ScoringContext] = None,
    ) -> FeatureVector:
        context = context or _EMPTY_CONTEXT
        course, teacher, room = item.course, item.teacher, item.room

        slot = normalize_time_slot(item.time_slot)
        day = normalize_day(item.day)
        room_match = room_suits_lecture(room.room_type, course.lecture_type)

        return FeatureVector(
            course_duration=float(course.duration),
            course_capacity=float(course.capacity),
            teacher_experience=float(len(teacher.teachable_years)),
            time_slot_preference=time_slot_preference(course.preferred_time_slots, slot),
            room_type_match=None if room_match is None else float(room_match),
            teacher_workload=float(teacher.current_workload or 0.0),
            student_count=float(context.student_count or 0.0),
            course_priority=float(course.priority),
            room_distance=float(context.room_distance or 0.0),
            teacher_availability=teacher_availability_score(teacher, day, slot),
            course_difficulty=float(course.difficulty),
            time_of_day=None if slot is None else float(TIME_SLOTS.index(slot)),
            day_of_week=None if day is None else float(DAYS.index(day)),
            semester_progress=float(context.semester_progress or 0.0),
            historical_success_rate=(
                DEFAULT_HISTORICAL_SUCCESS_RATE
                if context.historical_success_rate is None
                else float(context.historical_success_rate)
            ),
        )

    def normalize(self, vector: FeatureVector) -> np.ndarray:
        return self._normalizer.normalize(vector.as_dict())

    def build_frame(
        self,
        items: Sequence[ScheduleItem],
        contexts: Optional[Sequence[Optional[ScoringContext]]] = None,
    ) -> pd.DataFrame:
        """Normalized model input, one row per item in input order."""
        if contexts is not None and len(contexts) != len(items):
            raise ValueError("contexts must align with items")

        rows = [
            self.normalize(self.extract(item, contexts[index] if contexts else None))
            for index, item in enumerate(items)
        ]
        if not rows:
            return pd.DataFrame(columns=list(FEATURE_COLUMNS), dtype=float)
        return pd.DataFrame(np.vstack(rows), columns=list(FEATURE_COLUMNS))
