"""Training pipeline for the schedule quality regressor."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.special import logit
from sklearn.metrics import mean_absolute_error, mean_squared_error
from sklearn.neural_network import MLPRegressor

from timetable_quality.domain.constraints import TrainingConfig, validate_training_config
from timetable_quality.domain.models import (
    DAYS,
    TIME_SLOTS,
    Course,
    Room,
    ScheduleEntry,
    ScheduleItem,
    ScoringContext,
    Teacher,
)
from timetable_quality.services.diagnostics_service import count_entry_conflicts
from timetable_quality.services.feature_service import (
    FEATURE_COLUMNS,
    FeatureExtractor,
    teacher_availability_score,
)
from timetable_quality.services.normalization import clamp_unit
from timetable_quality.services.scoring_service import ModelBundle, predict_quality, save_bundle
from timetable_quality.utils.config import Settings, get_settings
from timetable_quality.utils.logger import get_logger


logger = get_logger(__name__)

LABEL_COLUMN = "quality_score"
# Labels are squashed away from 0/1 before the logit transform.
_LABEL_EPSILON = 1e-3


class TrainingError(Exception):
    """Base exception for model training failures."""


class InsufficientTrainingDataError(TrainingError):
    """Raised when too few labelled samples are available."""


class TrainingConfigError(TrainingError):
    """Raised when training settings are inconsistent."""


@dataclass(frozen=True)
class HistoricalSchedule:
    """A past timetable together with the records it references."""

    entries: Sequence[ScheduleEntry]
    courses: Sequence[Course]
    teachers: Sequence[Teacher]
    rooms: Sequence[Room]
    semester_progress: Optional[float] = None


@dataclass(frozen=True)
class DatasetSplit:
    training: pd.DataFrame
    validation: pd.DataFrame
    test: pd.DataFrame


@dataclass(frozen=True)
class TrainingReport:
    mse: float
    mae: float
    accuracy: float
    validation_mse: Optional[float]
    training_rows: int
    validation_rows: int
    test_rows: int
    epochs: int
    data_source: str
    model_path: Path
    model_version: str
    trained_at: str
    loss_history: list[float] = field(default_factory=list)
    validation_history: list[float] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mse": self.mse,
            "mae": self.mae,
            "accuracy": self.accuracy,
            "validation_mse": self.validation_mse,
            "training_rows": self.training_rows,
            "validation_rows": self.validation_rows,
            "test_rows": self.test_rows,
            "epochs": self.epochs,
            "data_source": self.data_source,
            "model_path": str(self.model_path),
            "model_version": self.model_version,
            "trained_at": self.trained_at,
        }


def split_dataset(
    frame: pd.DataFrame,
    train_ratio: float = 0.7,
    validation_ratio: float = 0.15,
    random_state: Optional[int] = None,
) -> DatasetSplit:
    """Shuffle, then cut into train/validation/test; the remainder goes to test."""
    shuffled = frame.sample(frac=1.0, random_state=random_state).reset_index(drop=True)
    total = len(shuffled)
    train_size = int(round(total * train_ratio, 6))
    validation_size = int(round(total * validation_ratio, 6))
    return DatasetSplit(
        training=shuffled.iloc[:train_size].reset_index(drop=True),
        validation=shuffled.iloc[train_size : train_size + validation_size].reset_index(drop=True),
        test=shuffled.iloc[train_size + validation_size :].reset_index(drop=True),
    )


def _full_week(fraction: float) -> dict[str, dict[str, bool]]:
    """Availability grid with the first ``fraction`` of the week open."""
    open_cells = int(round(fraction * len(DAYS) * len(TIME_SLOTS)))
    grid: dict[str, dict[str, bool]] = {}
    index = 0
    for day in DAYS:
        grid[day] = {}
        for slot in TIME_SLOTS:
            grid[day][slot] = index < open_cells
            index += 1
    return grid


_SYNTHETIC_COURSES = (
    Course("SYN-MATH", "Mathematics", duration=60, capacity=30, year=2, credits=4, category="CORE"),
    Course("SYN-PHYS", "Physics", duration=90, capacity=25, year=2, credits=3),
    Course("SYN-CHEM", "Chemistry", duration=60, capacity=30, year=1, credits=3, lecture_type="lab"),
    Course("SYN-CS", "Computer Science", duration=90, capacity=20, year=3, credits=4, category="CORE"),
    Course("SYN-ENG", "English", duration=60, capacity=35, year=1, credits=2, is_elective=True),
)

_SYNTHETIC_TEACHERS = (
    Teacher("SYN-T1", "Teacher 1", frozenset(range(1, 6)), ("mathematics",), _full_week(0.8), 15),
    Teacher("SYN-T2", "Teacher 2", frozenset(range(1, 9)), ("physics",), _full_week(0.9), 20),
    Teacher("SYN-T3", "Teacher 3", frozenset(range(1, 4)), ("chemistry",), _full_week(0.7), 10),
    Teacher("SYN-T4", "Teacher 4", frozenset(range(1, 11)), ("computer",), _full_week(0.85), 25),
)

_SYNTHETIC_ROOMS = (
    Room("SYN-R1", 30, "classroom", 0.6),
    Room("SYN-R2", 25, "lab", 0.4),
    Room("SYN-R3", 50, "lecture-hall", 0.8),
)


class TrainingService:
    """Builds datasets, fits the regressor, evaluates it and persists it."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractor: Optional[FeatureExtractor] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._extractor = extractor or FeatureExtractor()
        self._training_lock = RLock()

    def training_config(self) -> TrainingConfig:
        return TrainingConfig(
            epochs=self._settings.training_epochs,
            learning_rate=self._settings.training_learning_rate,
            l2_penalty=self._settings.training_l2_penalty,
            batch_size=self._settings.training_batch_size,
            hidden_layers=tuple(self._settings.training_hidden_layers),
            train_ratio=self._settings.training_train_ratio,
            validation_ratio=self._settings.training_validation_ratio,
            min_samples=self._settings.training_min_samples,
            accuracy_tolerance=self._settings.training_accuracy_tolerance,
        )

    def _frame(
        self,
        items: list[ScheduleItem],
        contexts: list[ScoringContext],
        labels: list[float],
    ) -> pd.DataFrame:
        frame = self._extractor.build_frame(items, contexts)
        frame[LABEL_COLUMN] = np.asarray(labels, dtype=float)
        return frame

    def generate_synthetic_samples(
        self,
        count: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> pd.DataFrame:
        """Random assignments from fixed pools, labelled by a noisy quality rule."""
        sample_count = self._settings.synthetic_sample_count if count is None else count
        rng = np.random.default_rng(
            self._settings.training_random_state if seed is None else seed
        )

        items: list[ScheduleItem] = []
        contexts: list[ScoringContext] = []
        labels: list[float] = []
        for _ in range(sample_count):
            course = _SYNTHETIC_COURSES[rng.integers(len(_SYNTHETIC_COURSES))]
            teacher = _SYNTHETIC_TEACHERS[rng.integers(len(_SYNTHETIC_TEACHERS))]
            room = _SYNTHETIC_ROOMS[rng.integers(len(_SYNTHETIC_ROOMS))]
            slot = TIME_SLOTS[rng.integers(len(TIME_SLOTS))]
            day = DAYS[rng.integers(len(DAYS))]

            quality = 0.5
            quality += (len(teacher.teachable_years) / 10) * 0.2
            if room.capacity >= course.capacity:
                quality += 0.1
            if slot in TIME_SLOTS[:2]:
                quality += 0.1
            quality += (teacher_availability_score(teacher, day, slot) or 0.0) * 0.1
            quality += rng.uniform(-0.1, 0.1)

            items.append(ScheduleItem(course, teacher, room, day, slot))
            contexts.append(
                ScoringContext(
                    student_count=float(rng.integers(10, course.capacity + 1)),
                    semester_progress=float(rng.random()),
                    historical_success_rate=0.5 + float(rng.random()) * 0.3,
                )
            )
            labels.append(clamp_unit(quality))

        logger.info("Synthetic training samples generated | rows=%s", sample_count)
        return self._frame(items, contexts, labels)

    def build_samples_from_history(self, histories: Sequence[HistoricalSchedule]) -> pd.DataFrame:
        """Label historical entries with the rule-based quality score."""
        items: list[ScheduleItem] = []
        contexts: list[ScoringContext] = []
        labels: list[float] = []
        skipped = 0

        for history in histories:
            courses = {course.course_id: course for course in history.courses}
            teachers = {teacher.teacher_id: teacher for teacher in history.teachers}
            rooms = {room.room_id: room for room in history.rooms}
            conflicts = count_entry_conflicts(history.entries)

            workload: dict[str, float] = {}
            for entry in history.entries:
                course = courses.get(entry.course_id)
                if course is not None:
                    workload[entry.teacher_id] = workload.get(entry.teacher_id, 0.0) + course.duration / 60

            for entry, conflict_count in zip(history.entries, conflicts):
                course = courses.get(entry.course_id)
                teacher = teachers.get(entry.teacher_id)
                room = rooms.get(entry.room_id)
                if course is None or teacher is None or room is None:
                    skipped += 1
                    continue

                teacher = replace(teacher, current_workload=workload.get(entry.teacher_id, 0.0))
                quality = 0.5
                if teacher.expertise:
                    quality += 0.2 if teacher.matches_course(course) else -0.1
                quality += 0.1 if room.capacity >= course.capacity else -0.2
                if entry.time_slot and entry.time_slot in course.preferred_time_slots:
                    quality += 0.1
                quality -= conflict_count * 0.1

                items.append(ScheduleItem(course, teacher, room, entry.day, entry.time_slot))
                contexts.append(ScoringContext(semester_progress=history.semester_progress))
                labels.append(clamp_unit(quality))

        logger.info(
            "Historical training samples built | rows=%s | skipped=%s | schedules=%s",
            len(items),
            skipped,
            len(histories),
        )
        return self._frame(items, contexts, labels)

    def evaluate(self, estimator: Any, frame: pd.DataFrame, tolerance: float) -> tuple[float, float, float]:
        """Return (mse, mae, accuracy) where accuracy counts |error| < tolerance."""
        if frame.empty:
            return 0.0, 0.0, 0.0
        actual = frame[LABEL_COLUMN].to_numpy(dtype=float)
        predicted = predict_quality(estimator, frame[list(FEATURE_COLUMNS)])
        mse = float(mean_squared_error(actual, predicted))
        mae = float(mean_absolute_error(actual, predicted))
        accuracy = float(np.mean(np.abs(predicted - actual) < tolerance))
        return mse, mae, accuracy

    def train(
        self,
        samples: Optional[pd.DataFrame] = None,
        model_path: Optional[Path] = None,
    ) -> TrainingReport:
        """Fit, evaluate and persist a new model bundle."""
        config = self.training_config()
        try:
            validate_training_config(config)
        except ValueError as exc:
            raise TrainingConfigError(str(exc)) from exc

        with self._training_lock:
            logger.info("Model training started | epochs=%s", config.epochs)
            data_source = "provided"
            if samples is None:
                samples = self.generate_synthetic_samples()
                data_source = "synthetic"

            missing = [
                column
                for column in (*FEATURE_COLUMNS, LABEL_COLUMN)
                if column not in samples.columns
            ]
            if missing:
                raise TrainingError(f"training samples are missing columns: {missing}")

            samples = samples.dropna(subset=[*FEATURE_COLUMNS, LABEL_COLUMN])
            if len(samples) < config.min_samples:
                raise InsufficientTrainingDataError(
                    f"Insufficient training samples: {len(samples)} < {config.min_samples}"
                )

            split = split_dataset(
                samples,
                train_ratio=config.train_ratio,
                validation_ratio=config.validation_ratio,
                random_state=self._settings.training_random_state,
            )
            x_train = split.training[list(FEATURE_COLUMNS)]
            y_train = split.training[LABEL_COLUMN].to_numpy(dtype=float)
            y_train_logit = logit(np.clip(y_train, _LABEL_EPSILON, 1.0 - _LABEL_EPSILON))

            estimator = MLPRegressor(
                hidden_layer_sizes=config.hidden_layers,
                activation="relu",
                solver="adam",
                alpha=config.l2_penalty,
                batch_size=min(config.batch_size, len(split.training)),
                learning_rate_init=config.learning_rate,
                shuffle=True,
                random_state=self._settings.training_random_state,
            )

            loss_history: list[float] = []
            validation_history: list[float] = []
            for epoch in range(config.epochs):
                estimator.partial_fit(x_train, y_train_logit)
                loss_history.append(float(estimator.loss_))
                if not split.validation.empty:
                    validation_mse, _, _ = self.evaluate(
                        estimator, split.validation, config.accuracy_tolerance
                    )
                    validation_history.append(validation_mse)
                logger.debug(
                    "Training epoch completed | epoch=%s | loss=%.6f",
                    epoch + 1,
                    loss_history[-1],
                )

            mse, mae, accuracy = self.evaluate(estimator, split.test, config.accuracy_tolerance)
            trained_at = datetime.now(timezone.utc).isoformat()
            bundle = ModelBundle(
                estimator=estimator,
                feature_columns=FEATURE_COLUMNS,
                model_version=self._settings.model_version,
                trained_at=trained_at,
                training_rows=len(split.training),
            )
            saved_path = save_bundle(bundle, model_path or self._settings.model_path)

            report = TrainingReport(
                mse=mse,
                mae=mae,
                accuracy=accuracy,
                validation_mse=validation_history[-1] if validation_history else None,
                training_rows=len(split.training),
                validation_rows=len(split.validation),
                test_rows=len(split.test),
                epochs=config.epochs,
                data_source=data_source,
                model_path=saved_path,
                model_version=self._settings.model_version,
                trained_at=trained_at,
                loss_history=loss_history,
                validation_history=validation_history,
            )
            logger.info(
                (
                    "Model training completed | source=%s | rows=%s/%s/%s | "
                    "mse=%.6f | mae=%.6f | accuracy=%.4f | path=%s"
                ),
                data_source,
                report.training_rows,
                report.validation_rows,
                report.test_rows,
                mse,
                mae,
                accuracy,
                saved_path,
            )
            return report
