from __future__ import annotations

import math
from datetime import date

import pytest

from timetable_quality.domain.models import Course, Room, ScheduleItem, ScoringContext, Teacher
from timetable_quality.services.feature_service import (
    FEATURE_COLUMNS,
    FeatureExtractor,
    semester_progress_on,
    teacher_availability_score,
)
from timetable_quality.services.normalization import MISSING_VALUE, normalize_value


def _item(**overrides) -> ScheduleItem:
    values = {
        "course": Course(
            "C1",
            "Data Structures",
            duration=90,
            capacity=40,
            year=2,
            credits=4,
            preferred_time_slots=("09:00", "10:00"),
            category="CORE",
        ),
        "teacher": Teacher(
            "T1",
            "Ada",
            teachable_years=frozenset({1, 2, 3}),
            expertise=("data",),
            current_workload=20,
        ),
        "room": Room("R1", 50, "classroom"),
        "day": "Wednesday",
        "time_slot": "10:00",
    }
    values.update(overrides)
    return ScheduleItem(**values)


def test_feature_columns_have_fixed_order_and_arity() -> None:
    assert len(FEATURE_COLUMNS) == 15
    assert FEATURE_COLUMNS[0] == "course_duration"
    assert FEATURE_COLUMNS[3] == "time_slot_preference"
    assert FEATURE_COLUMNS[-1] == "historical_success_rate"


def test_extract_raw_features() -> None:
    vector = FeatureExtractor().extract(_item())

    assert vector.course_duration == 90
    assert vector.course_capacity == 40
    assert vector.teacher_experience == 3
    assert vector.time_slot_preference == 1.0
    assert vector.room_type_match == 1.0
    assert vector.teacher_workload == 20
    assert vector.student_count == 0
    assert vector.course_priority == 8
    assert vector.room_distance == 0
    assert vector.teacher_availability is None
    assert vector.course_difficulty == pytest.approx(3 + 1.0 + 0.8)
    assert vector.time_of_day == 1
    assert vector.day_of_week == 2
    assert vector.semester_progress == 0
    assert vector.historical_success_rate == 0.5


def test_time_slot_preference_without_list_is_midpoint() -> None:
    item = _item(course=Course("C2", "Poetry", preferred_time_slots=()))
    assert FeatureExtractor().extract(item).time_slot_preference == 0.5


def test_time_slot_preference_miss_is_zero() -> None:
    assert FeatureExtractor().extract(_item(time_slot="15:00")).time_slot_preference == 0.0


def test_normalized_vector_is_bounded() -> None:
    extractor = FeatureExtractor()
    item = _item(
        course=Course("C3", "Huge Lecture", duration=600, capacity=900, year=9, credits=12),
        teacher=Teacher("T9", "Busy", frozenset(range(1, 30)), current_workload=90),
    )
    normalized = extractor.normalize(extractor.extract(item, ScoringContext(room_distance=5000)))

    assert normalized.shape == (15,)
    assert all(0.0 <= value <= 1.0 for value in normalized)


def test_missing_categorical_values_normalize_to_midpoint() -> None:
    extractor = FeatureExtractor()
    item = _item(day=None, time_slot=None, room=Room("R2", 30, "auditorium"))
    row = dict(zip(FEATURE_COLUMNS, extractor.normalize(extractor.extract(item))))

    assert row["day_of_week"] == MISSING_VALUE
    assert row["time_of_day"] == MISSING_VALUE
    assert row["room_type_match"] == MISSING_VALUE
    assert row["teacher_availability"] == MISSING_VALUE


def test_unknown_day_spelling_is_treated_as_missing() -> None:
    vector = FeatureExtractor().extract(_item(day="Someday"))
    assert vector.day_of_week is None


def test_ordinal_tables_are_evenly_spaced() -> None:
    assert normalize_value("time_of_day", 0) == pytest.approx(0.1)
    assert normalize_value("time_of_day", 7) == pytest.approx(0.8)
    assert normalize_value("day_of_week", 4) == pytest.approx(0.5)
    assert normalize_value("day_of_week", 12) == MISSING_VALUE


def test_numeric_normalization_clamps_and_handles_nan() -> None:
    assert normalize_value("course_duration", 60) == pytest.approx(0.5)
    assert normalize_value("course_duration", 240) == 1.0
    assert normalize_value("teacher_workload", -4) == 0.0
    assert normalize_value("course_capacity", math.nan) == MISSING_VALUE


def test_teacher_availability_uses_slot_then_week() -> None:
    teacher = Teacher(
        "T1",
        "Ada",
        availability={"monday": {"09:00": True, "10:00": False}, "Tuesday": {"09:00": True}},
    )

    assert teacher_availability_score(teacher, "Monday", "09:00") == 1.0
    assert teacher_availability_score(teacher, "Monday", "10:00") == 0.0
    assert teacher_availability_score(teacher, None, None) == pytest.approx(2 / 40)
    assert teacher_availability_score(Teacher("T2", "Bob"), "Monday", "09:00") is None


def test_build_frame_preserves_input_order() -> None:
    extractor = FeatureExtractor()
    items = [_item(time_slot="09:00"), _item(time_slot="16:00"), _item(time_slot=None)]
    frame = extractor.build_frame(items)

    assert list(frame.columns) == list(FEATURE_COLUMNS)
    assert frame["time_of_day"].tolist() == pytest.approx([0.1, 0.8, 0.5])


def test_build_frame_rejects_misaligned_contexts() -> None:
    with pytest.raises(ValueError):
        FeatureExtractor().build_frame([_item()], [None, None])


def test_semester_progress_on() -> None:
    start, end = date(2026, 1, 1), date(2026, 1, 11)
    assert semester_progress_on(date(2026, 1, 6), start, end) == pytest.approx(0.5)
    assert semester_progress_on(date(2027, 1, 1), start, end) == 1.0
    assert semester_progress_on(date(2025, 1, 1), start, end) == 0.0
