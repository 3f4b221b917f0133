"""Domain models for timetable quality scoring and optimization guidance."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional


TIME_SLOTS: tuple[str, ...] = (
    "09:00",
    "10:00",
    "11:00",
    "12:00",
    "13:00",
    "14:00",
    "15:00",
    "16:00",
)
DAYS: tuple[str, ...] = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
WEEKLY_SLOT_COUNT = len(TIME_SLOTS) * len(DAYS)

LECTURE_TYPE_THEORY = "theory"
LECTURE_TYPE_LAB = "lab"

# Room type -> lecture type it is suited for.
ROOM_LECTURE_TYPES: dict[str, str] = {
    "classroom": LECTURE_TYPE_THEORY,
    "lab": LECTURE_TYPE_LAB,
    "lecture-hall": LECTURE_TYPE_THEORY,
}

_DAY_LOOKUP = {day.lower(): day for day in DAYS}


def normalize_day(value: Optional[str]) -> Optional[str]:
    """Return the canonical weekday name, or None when unknown."""
    if not value:
        return None
    return _DAY_LOOKUP.get(str(value).strip().lower())


def normalize_time_slot(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    slot = str(value).strip()
    return slot if slot in TIME_SLOTS else None


def room_suits_lecture(room_type: Optional[str], lecture_type: Optional[str]) -> Optional[bool]:
    """True/False when both types are known, None otherwise."""
    if not room_type or not lecture_type:
        return None
    expected = ROOM_LECTURE_TYPES.get(room_type.strip().lower())
    if expected is None:
        return None
    return expected == lecture_type.strip().lower()


@dataclass(frozen=True)
class Course:
    course_id: str
    name: str
    duration: int = 60
    capacity: int = 30
    year: int = 1
    branch: str = ""
    program: str = ""
    credits: int = 3
    preferred_time_slots: tuple[str, ...] = ()
    prerequisites: tuple[str, ...] = ()
    lecture_type: str = LECTURE_TYPE_THEORY
    category: str = ""
    is_elective: bool = False

    @property
    def difficulty(self) -> float:
        value = 3.0 + self.year * 0.5 + self.credits * 0.2 + len(self.prerequisites) * 0.3
        return min(value, 10.0)

    @property
    def priority(self) -> int:
        value = 5
        if self.category.upper() == "CORE":
            value += 2
        if self.is_elective:
            value -= 1
        if self.credits >= 4:
            value += 1
        return max(value, 1)


@dataclass(frozen=True)
class Teacher:
    teacher_id: str
    name: str
    teachable_years: frozenset[int] = frozenset()
    expertise: tuple[str, ...] = ()
    # day -> slot -> available
    availability: Mapping[str, Mapping[str, bool]] = field(default_factory=dict)
    current_workload: float = 0.0
    historical_assignments: int = 0

    # The availability grid is a plain mapping, so hash on identity fields only.
    def __hash__(self) -> int:
        return hash((self.teacher_id, self.name, self.teachable_years, self.expertise))

    def matches_course(self, course: Course) -> bool:
        """True when any expertise keyword occurs in the course name."""
        course_name = course.name.lower()
        return any(
            keyword.strip() and keyword.strip().lower() in course_name
            for keyword in self.expertise
        )

    def availability_for(self, day: Optional[str]) -> Optional[Mapping[str, bool]]:
        canonical = normalize_day(day)
        if canonical is None:
            return None
        for key, slots in self.availability.items():
            if normalize_day(key) == canonical:
                return slots
        return None


@dataclass(frozen=True)
class Room:
    room_id: str
    capacity: int
    room_type: str = "classroom"
    utilization_rate: float = 0.0


@dataclass(frozen=True)
class ScheduleItem:
    """One resolved assignment, the unit every scorer works on."""

    course: Course
    teacher: Teacher
    room: Room
    day: Optional[str] = None
    time_slot: Optional[str] = None


@dataclass(frozen=True)
class ScheduleEntry:
    """Id-based assignment as supplied by the timetable builder."""

    course_id: str
    teacher_id: str
    room_id: str
    day: Optional[str] = None
    time_slot: Optional[str] = None
    entry_id: Optional[str] = None


@dataclass(frozen=True)
class ScoringContext:
    student_count: Optional[float] = None
    room_distance: Optional[float] = None
    semester_progress: Optional[float] = None
    historical_success_rate: Optional[float] = None


@dataclass(frozen=True)
class Recommendation:
    course_id: str
    teacher: Teacher
    room: Room
    day: str
    time_slot: str
    score: float
    confidence: int

    def to_dict(self) -> dict[str, str | float | int]:
        return {
            "course_id": self.course_id,
            "teacher_id": self.teacher.teacher_id,
            "room_id": self.room.room_id,
            "day": self.day,
            "time_slot": self.time_slot,
            "score": self.score,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Suggestion:
    kind: str
    priority: str
    entry: ScheduleEntry
    current_score: float
    reason: str
    factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class Insight:
    kind: str
    message: str
    score: float
    subject_id: Optional[str] = None


@dataclass(frozen=True)
class ScheduleConflict:
    resource: str
    resource_id: str
    day: str
    time_slot: str
    entries: tuple[ScheduleEntry, ...]


@dataclass(frozen=True)
class DiagnosisReport:
    suggestions: list[Suggestion]
    overall_score: float
    insights: list[Insight]
    total_entries: int
    scored_entries: int
    skipped_entries: int
    items_below_average: int
    teacher_scores: dict[str, float]
    room_scores: dict[str, float]
    conflicts: list[ScheduleConflict]
    backend: str
