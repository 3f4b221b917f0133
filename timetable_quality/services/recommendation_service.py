"""Ranked (teacher, room, day, slot) recommendations per course."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

from timetable_quality.domain.models import (
    DAYS,
    TIME_SLOTS,
    Course,
    Recommendation,
    Room,
    ScheduleEntry,
    ScheduleItem,
    Teacher,
    normalize_day,
    normalize_time_slot,
    room_suits_lecture,
)
from timetable_quality.services.scoring_service import ScoringService
from timetable_quality.utils.config import Settings, get_settings
from timetable_quality.utils.logger import get_logger


logger = get_logger(__name__)

MAX_RECOMMENDATIONS = 5


@dataclass(frozen=True)
class RecommendationConstraints:
    existing_schedule: tuple[ScheduleEntry, ...] = ()
    days: tuple[str, ...] = DAYS
    time_slots: tuple[str, ...] = TIME_SLOTS
    top_k: Optional[int] = None


@dataclass(frozen=True)
class _Candidate:
    teacher: Teacher
    room: Room
    day: str
    time_slot: str


def confidence_from_score(score: float) -> int:
    """Score as a whole percentage, rounding halves up."""
    return int(math.floor(score * 100 + 0.5))


def is_teacher_suitable(course: Course, teacher: Teacher) -> bool:
    return course.year in teacher.teachable_years and teacher.matches_course(course)


def is_room_suitable(course: Course, room: Room) -> bool:
    return room.capacity >= course.capacity and bool(
        room_suits_lecture(room.room_type, course.lecture_type)
    )


class _Occupancy:
    """Booked (day, slot) cells and per-day load for teachers and rooms."""

    def __init__(self, schedule: Sequence[ScheduleEntry]) -> None:
        self._teacher_cells: set[tuple[str, str, str]] = set()
        self._room_cells: set[tuple[str, str, str]] = set()
        self._teacher_load: Counter[tuple[str, str]] = Counter()
        self._room_load: Counter[tuple[str, str]] = Counter()
        for entry in schedule:
            day = normalize_day(entry.day)
            if day is None:
                continue
            self._teacher_load[(entry.teacher_id, day)] += 1
            self._room_load[(entry.room_id, day)] += 1
            slot = normalize_time_slot(entry.time_slot)
            if slot is not None:
                self._teacher_cells.add((entry.teacher_id, day, slot))
                self._room_cells.add((entry.room_id, day, slot))

    def is_free(self, teacher: Teacher, room: Room, day: str, slot: str) -> bool:
        if (teacher.teacher_id, day, slot) in self._teacher_cells:
            return False
        if (room.room_id, day, slot) in self._room_cells:
            return False
        day_slots = teacher.availability_for(day)
        if day_slots is not None and day_slots.get(slot) is False:
            return False
        return True

    def load(self, teacher: Teacher, room: Room, day: str) -> int:
        return self._teacher_load[(teacher.teacher_id, day)] + self._room_load[(room.room_id, day)]


def choose_day(
    teacher: Teacher,
    room: Room,
    slot: str,
    days: Sequence[str],
    occupancy: _Occupancy,
) -> Optional[str]:
    """Least-loaded free weekday for the pair; ties go to the earlier day."""
    free_days = [day for day in days if occupancy.is_free(teacher, room, day, slot)]
    if not free_days:
        return None
    return min(free_days, key=lambda day: (occupancy.load(teacher, room, day), DAYS.index(day)))


class RecommendationService:
    """Enumerates eligible assignments for a course and ranks them by score."""

    def __init__(
        self,
        scoring_service: Optional[ScoringService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._scoring_service = scoring_service or ScoringService(settings=self._settings)

    def _top_k(self, constraints: RecommendationConstraints) -> int:
        requested = (
            self._settings.recommendation_top_k
            if constraints.top_k is None
            else constraints.top_k
        )
        return max(0, min(requested, MAX_RECOMMENDATIONS))

    def recommend(
        self,
        course: Course,
        teachers: Sequence[Teacher],
        rooms: Sequence[Room],
        constraints: Optional[RecommendationConstraints] = None,
    ) -> list[Recommendation]:
        constraints = constraints or RecommendationConstraints()
        eligible_teachers = [teacher for teacher in teachers if is_teacher_suitable(course, teacher)]
        eligible_rooms = [room for room in rooms if is_room_suitable(course, room)]
        if not eligible_teachers or not eligible_rooms:
            logger.info(
                "No eligible resources for course | course_id=%s | teachers=%s | rooms=%s",
                course.course_id,
                len(eligible_teachers),
                len(eligible_rooms),
            )
            return []

        days = [day for day in (normalize_day(value) for value in constraints.days) if day]
        slots = [
            slot for slot in (normalize_time_slot(value) for value in constraints.time_slots) if slot
        ]
        occupancy = _Occupancy(constraints.existing_schedule)

        candidates: list[_Candidate] = []
        for teacher in eligible_teachers:
            for room in eligible_rooms:
                for slot in slots:
                    day = choose_day(teacher, room, slot, days, occupancy)
                    if day is None:
                        continue
                    candidates.append(_Candidate(teacher, room, day, slot))

        if not candidates:
            return []

        scores = self._scoring_service.score_batch(
            [
                ScheduleItem(course, candidate.teacher, candidate.room, candidate.day, candidate.time_slot)
                for candidate in candidates
            ]
        )
        ranked = sorted(
            zip(candidates, scores),
            key=lambda pair: (
                -pair[1],
                pair[0].teacher.teacher_id,
                pair[0].room.room_id,
                TIME_SLOTS.index(pair[0].time_slot),
            ),
        )
        recommendations = [
            Recommendation(
                course_id=course.course_id,
                teacher=candidate.teacher,
                room=candidate.room,
                day=candidate.day,
                time_slot=candidate.time_slot,
                score=score,
                confidence=confidence_from_score(score),
            )
            for candidate, score in ranked[: self._top_k(constraints)]
        ]
        logger.debug(
            "Recommendations ranked | course_id=%s | candidates=%s | returned=%s",
            course.course_id,
            len(candidates),
            len(recommendations),
        )
        return recommendations

    def recommend_all(
        self,
        courses: Sequence[Course],
        teachers: Sequence[Teacher],
        rooms: Sequence[Room],
        constraints: Optional[RecommendationConstraints] = None,
    ) -> dict[str, list[Recommendation]]:
        """Guidance map keyed by course id, handed to the schedule builder."""
        guidance = {
            course.course_id: self.recommend(course, teachers, rooms, constraints)
            for course in courses
        }
        logger.info(
            "Recommendations generated | courses=%s | backend=%s",
            len(guidance),
            self._scoring_service.active_backend(),
        )
        return guidance
