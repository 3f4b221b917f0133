"""Schedule diagnostics: per-entry suggestions, aggregate insights, conflicts."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Optional, Sequence

from timetable_quality.domain.constraints import (
    SuggestionThresholds,
    validate_suggestion_thresholds,
)
from timetable_quality.domain.models import (
    Course,
    DiagnosisReport,
    Insight,
    Room,
    ScheduleConflict,
    ScheduleEntry,
    ScheduleItem,
    Suggestion,
    Teacher,
    normalize_day,
    normalize_time_slot,
)
from timetable_quality.services.scoring_service import HeuristicQualityScorer, ScoringService
from timetable_quality.utils.config import Settings, get_settings
from timetable_quality.utils.logger import get_logger


logger = get_logger(__name__)

SUGGESTION_RESCHEDULE = "reschedule"
SUGGESTION_IMPROVE = "improve"
PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"


def _slot_key(entry: ScheduleEntry) -> Optional[tuple[str, str]]:
    day = normalize_day(entry.day)
    slot = normalize_time_slot(entry.time_slot)
    if day is None or slot is None:
        return None
    return day, slot


def find_conflicts(schedule: Sequence[ScheduleEntry]) -> list[ScheduleConflict]:
    """Teacher and room double-bookings, in first-seen order.

    Entries without a known day and slot cannot clash and are ignored.
    """
    groups: dict[tuple[str, str, str, str], list[ScheduleEntry]] = defaultdict(list)
    for entry in schedule:
        key = _slot_key(entry)
        if key is None:
            continue
        day, slot = key
        groups[("teacher", entry.teacher_id, day, slot)].append(entry)
        groups[("room", entry.room_id, day, slot)].append(entry)

    return [
        ScheduleConflict(
            resource=resource,
            resource_id=resource_id,
            day=day,
            time_slot=slot,
            entries=tuple(entries),
        )
        for (resource, resource_id, day, slot), entries in groups.items()
        if len(entries) > 1
    ]


def count_entry_conflicts(schedule: Sequence[ScheduleEntry]) -> list[int]:
    """Number of other entries clashing with each entry (teacher + room)."""
    teacher_counts: dict[tuple[str, str, str], int] = defaultdict(int)
    room_counts: dict[tuple[str, str, str], int] = defaultdict(int)
    keys = [_slot_key(entry) for entry in schedule]
    for entry, key in zip(schedule, keys):
        if key is None:
            continue
        teacher_counts[(entry.teacher_id, *key)] += 1
        room_counts[(entry.room_id, *key)] += 1

    counts: list[int] = []
    for entry, key in zip(schedule, keys):
        if key is None:
            counts.append(0)
            continue
        counts.append(
            teacher_counts[(entry.teacher_id, *key)] - 1
            + room_counts[(entry.room_id, *key)] - 1
        )
    return counts


@dataclass(frozen=True)
class _ResolvedEntry:
    entry: ScheduleEntry
    item: ScheduleItem


class DiagnosticsService:
    """Scores an existing timetable and explains its weak assignments."""

    def __init__(
        self,
        scoring_service: Optional[ScoringService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._scoring_service = scoring_service or ScoringService(settings=self._settings)
        self._explainer = HeuristicQualityScorer()
        self._thresholds = SuggestionThresholds(
            reschedule=self._settings.reschedule_threshold,
            improve=self._settings.improve_threshold,
            very_poor=self._settings.very_poor_threshold,
            below_average=self._settings.below_average_threshold,
        )
        validate_suggestion_thresholds(self._thresholds)

    def _resolve(
        self,
        schedule: Sequence[ScheduleEntry],
        courses: Sequence[Course],
        teachers: Sequence[Teacher],
        rooms: Sequence[Room],
    ) -> list[_ResolvedEntry]:
        course_by_id = {course.course_id: course for course in courses}
        teacher_by_id = {teacher.teacher_id: teacher for teacher in teachers}
        room_by_id = {room.room_id: room for room in rooms}

        resolved: list[_ResolvedEntry] = []
        for entry in schedule:
            course = course_by_id.get(entry.course_id)
            teacher = teacher_by_id.get(entry.teacher_id)
            room = room_by_id.get(entry.room_id)
            if course is None or teacher is None or room is None:
                logger.debug(
                    "Skipping unresolved schedule entry | course_id=%s | teacher_id=%s | room_id=%s",
                    entry.course_id,
                    entry.teacher_id,
                    entry.room_id,
                )
                continue
            resolved.append(
                _ResolvedEntry(
                    entry=entry,
                    item=ScheduleItem(course, teacher, room, entry.day, entry.time_slot),
                )
            )
        return resolved

    def optimization_reason(self, item: ScheduleItem, score: float) -> str:
        reasons: list[str] = []
        if score < self._thresholds.very_poor:
            reasons.append("Very poor schedule quality")
        elif score < self._thresholds.below_average:
            reasons.append("Below average schedule quality")

        if item.room.capacity < item.course.capacity:
            reasons.append("Room capacity mismatch")

        if item.teacher.teachable_years and item.course.year not in item.teacher.teachable_years:
            reasons.append("Teacher not suitable for course level")

        return ", ".join(reasons) or "General optimization needed"

    def contributing_factors(self, item: ScheduleItem) -> tuple[str, ...]:
        """Negative rule adjustments, most harmful first."""
        penalties = [
            (delta, index, name)
            for index, (name, delta) in enumerate(self._explainer.explain(item))
            if delta < 0
        ]
        return tuple(name for _, _, name in sorted(penalties))

    def _classify(self, resolved: _ResolvedEntry, score: float) -> Optional[Suggestion]:
        if score < self._thresholds.reschedule:
            kind, priority = SUGGESTION_RESCHEDULE, PRIORITY_HIGH
        elif score < self._thresholds.improve:
            kind, priority = SUGGESTION_IMPROVE, PRIORITY_MEDIUM
        else:
            return None
        return Suggestion(
            kind=kind,
            priority=priority,
            entry=resolved.entry,
            current_score=score,
            reason=self.optimization_reason(resolved.item, score),
            factors=self.contributing_factors(resolved.item),
        )

    def _insights(
        self,
        resolved: list[_ResolvedEntry],
        scores: list[float],
    ) -> tuple[list[Insight], dict[str, float], dict[str, float]]:
        insights: list[Insight] = []
        if not resolved:
            return insights, {}, {}

        ranked = sorted(zip(resolved, scores), key=lambda pair: pair[1], reverse=True)
        best, best_score = ranked[0]
        worst, worst_score = ranked[-1]
        if best_score > self._settings.excellent_insight_threshold:
            insights.append(
                Insight(
                    kind="excellent",
                    message=(
                        f"Excellent scheduling for {best.item.course.name} "
                        f"with {best.item.teacher.name}"
                    ),
                    score=best_score,
                    subject_id=best.item.course.course_id,
                )
            )
        if worst_score < self._thresholds.reschedule:
            insights.append(
                Insight(
                    kind="warning",
                    message=f"Poor scheduling for {worst.item.course.name} - consider rescheduling",
                    score=worst_score,
                    subject_id=worst.item.course.course_id,
                )
            )

        teacher_totals: dict[str, list[float]] = defaultdict(list)
        room_totals: dict[str, list[float]] = defaultdict(list)
        teacher_names: dict[str, str] = {}
        for entry, score in zip(resolved, scores):
            teacher_totals[entry.item.teacher.teacher_id].append(score)
            room_totals[entry.item.room.room_id].append(score)
            teacher_names[entry.item.teacher.teacher_id] = entry.item.teacher.name

        teacher_scores = {key: sum(values) / len(values) for key, values in teacher_totals.items()}
        room_scores = {key: sum(values) / len(values) for key, values in room_totals.items()}

        threshold = self._settings.aggregate_insight_threshold
        for teacher_id, average in teacher_scores.items():
            if average < threshold:
                insights.append(
                    Insight(
                        kind="teacher_workload",
                        message=f"{teacher_names[teacher_id]} has challenging schedule assignments",
                        score=average,
                        subject_id=teacher_id,
                    )
                )
        for room_id, average in room_scores.items():
            if average < threshold:
                insights.append(
                    Insight(
                        kind="room_utilization",
                        message=f"Room {room_id} hosts poorly matched sessions",
                        score=average,
                        subject_id=room_id,
                    )
                )
        return insights, teacher_scores, room_scores

    def diagnose(
        self,
        schedule: Sequence[ScheduleEntry],
        courses: Sequence[Course],
        teachers: Sequence[Teacher],
        rooms: Sequence[Room],
    ) -> DiagnosisReport:
        resolved = self._resolve(schedule, courses, teachers, rooms)
        scores = self._scoring_service.score_batch([entry.item for entry in resolved])

        suggestions = [
            suggestion
            for suggestion in (
                self._classify(entry, score) for entry, score in zip(resolved, scores)
            )
            if suggestion is not None
        ]
        insights, teacher_scores, room_scores = self._insights(resolved, scores)
        overall_score = sum(scores) / len(scores) if scores else 0.0
        conflicts = find_conflicts(schedule)

        report = DiagnosisReport(
            suggestions=suggestions,
            overall_score=overall_score,
            insights=insights,
            total_entries=len(schedule),
            scored_entries=len(resolved),
            skipped_entries=len(schedule) - len(resolved),
            items_below_average=sum(
                1 for score in scores if score < self._thresholds.below_average
            ),
            teacher_scores=teacher_scores,
            room_scores=room_scores,
            conflicts=conflicts,
            backend=self._scoring_service.active_backend(),
        )
        logger.info(
            (
                "Schedule diagnosed | entries=%s | scored=%s | skipped=%s | "
                "overall_score=%.4f | suggestions=%s | conflicts=%s | backend=%s"
            ),
            report.total_entries,
            report.scored_entries,
            report.skipped_entries,
            overall_score,
            len(suggestions),
            len(conflicts),
            report.backend,
        )
        return report

    def score_schedule(
        self,
        schedule: Sequence[ScheduleEntry],
        courses: Sequence[Course],
        teachers: Sequence[Teacher],
        rooms: Sequence[Room],
    ) -> tuple[float, list[Insight]]:
        """Overall score and insights only, without per-entry suggestions."""
        report = self.diagnose(schedule, courses, teachers, rooms)
        return report.overall_score, report.insights
