from __future__ import annotations

from dataclasses import replace

from timetable_quality.domain.models import DAYS, TIME_SLOTS, Course, Room, ScheduleEntry, Teacher
from timetable_quality.services.recommendation_service import (
    RecommendationConstraints,
    RecommendationService,
    confidence_from_score,
    is_room_suitable,
    is_teacher_suitable,
)
from timetable_quality.services.scoring_service import ScoringService
from timetable_quality.utils.config import get_settings


def _build_service(tmp_path) -> RecommendationService:
    settings = replace(get_settings(), model_path=tmp_path / "absent.joblib")
    return RecommendationService(scoring_service=ScoringService(settings=settings), settings=settings)


def _course(**overrides) -> Course:
    values = {"course_id": "CS201", "name": "Data Structures", "capacity": 30, "year": 2}
    values.update(overrides)
    return Course(**values)


def _teachers() -> list[Teacher]:
    return [
        Teacher("T2", "Grace", frozenset({2}), ("data",)),
        Teacher("T1", "Ada", frozenset({2}), ("data",)),
        Teacher("T3", "Linus", frozenset({1}), ("data",)),
        Teacher("T4", "Edsger", frozenset({2}), ("compilers",)),
    ]


def _rooms() -> list[Room]:
    return [
        Room("R1", 40, "classroom"),
        Room("R2", 20, "classroom"),
        Room("R3", 60, "lab"),
    ]


def test_eligibility_filters():
    course = _course()
    teachers = _teachers()
    rooms = _rooms()

    assert [teacher.teacher_id for teacher in teachers if is_teacher_suitable(course, teacher)] == [
        "T2",
        "T1",
    ]
    assert [room.room_id for room in rooms if is_room_suitable(course, room)] == ["R1"]
    assert is_room_suitable(_course(lecture_type="lab"), rooms[2])


def test_recommend_returns_top_five_sorted_by_score(tmp_path):
    recommendations = _build_service(tmp_path).recommend(_course(), _teachers(), _rooms())

    assert len(recommendations) == 5
    scores = [recommendation.score for recommendation in recommendations]
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= score <= 1.0 for score in scores)


def test_ties_break_by_teacher_then_room_then_slot(tmp_path):
    recommendations = _build_service(tmp_path).recommend(_course(), _teachers(), _rooms())

    ordering = [(rec.teacher.teacher_id, rec.time_slot) for rec in recommendations]
    assert ordering == [
        ("T1", "09:00"),
        ("T1", "10:00"),
        ("T2", "09:00"),
        ("T2", "10:00"),
        ("T1", "11:00"),
    ]
    assert [rec.confidence for rec in recommendations] == [100, 100, 100, 100, 90]


def test_recommend_is_deterministic(tmp_path):
    service = _build_service(tmp_path)

    first = service.recommend(_course(), _teachers(), _rooms())
    second = service.recommend(_course(), _teachers(), _rooms())

    assert [rec.to_dict() for rec in first] == [rec.to_dict() for rec in second]


def test_empty_teacher_list_returns_empty(tmp_path):
    assert _build_service(tmp_path).recommend(_course(), [], _rooms()) == []


def test_no_suitable_room_returns_empty(tmp_path):
    course = _course(capacity=200)
    assert _build_service(tmp_path).recommend(course, _teachers(), _rooms()) == []


def test_day_choice_prefers_least_loaded_free_day(tmp_path):
    constraints = RecommendationConstraints(
        existing_schedule=(
            ScheduleEntry("OTHER", "T1", "R9", "Monday", "09:00"),
            ScheduleEntry("OTHER", "T1", "R9", "Tuesday", "13:00"),
        ),
    )

    recommendations = _build_service(tmp_path).recommend(
        _course(), [Teacher("T1", "Ada", frozenset({2}), ("data",))], _rooms(), constraints
    )

    assert recommendations
    assert {rec.day for rec in recommendations} == {"Wednesday"}


def test_unavailable_cells_are_never_recommended(tmp_path):
    availability = {day: {slot: False for slot in TIME_SLOTS} for day in DAYS}
    availability["Thursday"]["14:00"] = True
    teacher = Teacher("T1", "Ada", frozenset({2}), ("data",), availability)

    recommendations = _build_service(tmp_path).recommend(_course(), [teacher], _rooms())

    assert [(rec.day, rec.time_slot) for rec in recommendations] == [("Thursday", "14:00")]


def test_top_k_is_capped_at_five(tmp_path):
    constraints = RecommendationConstraints(top_k=12)
    recommendations = _build_service(tmp_path).recommend(_course(), _teachers(), _rooms(), constraints)
    assert len(recommendations) == 5

    smaller = _build_service(tmp_path).recommend(
        _course(), _teachers(), _rooms(), RecommendationConstraints(top_k=2)
    )
    assert len(smaller) == 2


def test_restricted_slots_and_days(tmp_path):
    constraints = RecommendationConstraints(days=("friday",), time_slots=("15:00", "bogus"))
    recommendations = _build_service(tmp_path).recommend(_course(), _teachers(), _rooms(), constraints)

    assert {(rec.day, rec.time_slot) for rec in recommendations} == {("Friday", "15:00")}
    assert len(recommendations) == 2


def test_recommend_all_keys_by_course(tmp_path):
    courses = [_course(), _course(course_id="BIO101", name="Botany", year=1)]
    guidance = _build_service(tmp_path).recommend_all(courses, _teachers(), _rooms())

    assert set(guidance) == {"CS201", "BIO101"}
    assert guidance["BIO101"] == []
    assert len(guidance["CS201"]) == 5


def test_confidence_rounds_half_up():
    assert confidence_from_score(0.875) == 88
    assert confidence_from_score(0.0) == 0
    assert confidence_from_score(1.0) == 100


def test_zero_top_k_returns_nothing(tmp_path):
    constraints = RecommendationConstraints(top_k=0)
    assert _build_service(tmp_path).recommend(_course(), _teachers(), _rooms(), constraints) == []


def test_unset_top_k_uses_configured_default(tmp_path):
    settings = replace(get_settings(), model_path=tmp_path / "absent.joblib", recommendation_top_k=3)
    service = RecommendationService(scoring_service=ScoringService(settings=settings), settings=settings)

    assert len(service.recommend(_course(), _teachers(), _rooms())) == 3
