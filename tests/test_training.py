from __future__ import annotations

from dataclasses import replace

import pytest

from timetable_quality.domain.models import Course, Room, ScheduleEntry, Teacher
from timetable_quality.services.feature_service import FEATURE_COLUMNS
from timetable_quality.services.training_service import (
    LABEL_COLUMN,
    HistoricalSchedule,
    InsufficientTrainingDataError,
    TrainingConfigError,
    TrainingError,
    TrainingService,
    split_dataset,
)
from timetable_quality.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str = "training_model.joblib", **overrides):
    base = get_settings()
    values = {
        "model_path": tmp_path / filename,
        "training_epochs": 3,
        "synthetic_sample_count": 300,
    }
    values.update(overrides)
    return replace(base, **values)


def test_synthetic_split_is_seventy_fifteen_fifteen(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    samples = service.generate_synthetic_samples(count=1000, seed=7)

    split = split_dataset(samples, train_ratio=0.7, validation_ratio=0.15, random_state=7)

    assert len(samples) == 1000
    assert (len(split.training), len(split.validation), len(split.test)) == (700, 150, 150)


def test_split_shuffles_before_cutting(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    samples = service.generate_synthetic_samples(count=100, seed=3)
    samples["row_id"] = range(len(samples))

    split = split_dataset(samples, random_state=11)

    assert split.training["row_id"].tolist() != list(range(70))
    combined = (
        split.training["row_id"].tolist()
        + split.validation["row_id"].tolist()
        + split.test["row_id"].tolist()
    )
    assert sorted(combined) == list(range(100))


def test_synthetic_samples_are_normalized_and_labelled(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    samples = service.generate_synthetic_samples(count=50, seed=1)

    assert list(samples.columns) == [*FEATURE_COLUMNS, LABEL_COLUMN]
    assert samples.to_numpy().min() >= 0.0
    assert samples.to_numpy().max() <= 1.0


def test_synthetic_samples_are_reproducible_for_seed(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    first = service.generate_synthetic_samples(count=40, seed=5)
    second = service.generate_synthetic_samples(count=40, seed=5)

    assert first.equals(second)


def test_train_reports_metrics_and_saves_bundle(tmp_path):
    settings = _build_test_settings(tmp_path)
    service = TrainingService(settings=settings)

    report = service.train()

    assert report.data_source == "synthetic"
    assert (report.training_rows, report.validation_rows, report.test_rows) == (210, 45, 45)
    assert report.epochs == 3
    assert len(report.loss_history) == 3
    assert len(report.validation_history) == 3
    assert report.mse >= 0.0
    assert report.mae >= 0.0
    assert 0.0 <= report.accuracy <= 1.0
    assert report.model_path.exists()
    assert report.to_dict()["model_version"] == settings.model_version


def test_train_rejects_too_few_samples(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    samples = service.generate_synthetic_samples(count=5, seed=2)

    with pytest.raises(InsufficientTrainingDataError):
        service.train(samples)


def test_train_rejects_missing_columns(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    samples = service.generate_synthetic_samples(count=50, seed=2).drop(columns=[LABEL_COLUMN])

    with pytest.raises(TrainingError):
        service.train(samples)


def test_train_rejects_invalid_config(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path, training_epochs=0))

    with pytest.raises(TrainingConfigError):
        service.train()


def test_historical_samples_apply_conflict_penalty(tmp_path):
    service = TrainingService(settings=_build_test_settings(tmp_path))
    course = Course("C1", "Algorithms", capacity=30, preferred_time_slots=("09:00",))
    teacher = Teacher("T1", "Ada", frozenset({1}), ("algorithms",))
    history = HistoricalSchedule(
        entries=[
            ScheduleEntry("C1", "T1", "R1", "Monday", "09:00"),
            ScheduleEntry("C1", "T1", "R2", "Monday", "09:00"),
            ScheduleEntry("C1", "T1", "R1", "Tuesday", "11:00"),
            ScheduleEntry("MISSING", "T1", "R1", "Wednesday", "09:00"),
        ],
        courses=[course],
        teachers=[teacher],
        rooms=[Room("R1", 40), Room("R2", 40)],
        semester_progress=0.25,
    )

    samples = service.build_samples_from_history([history])

    assert len(samples) == 3
    assert samples[LABEL_COLUMN].tolist() == pytest.approx([0.8, 0.8, 0.8])
    # three one-hour sessions for the teacher in this schedule
    assert samples["teacher_workload"].tolist() == pytest.approx([3 / 40] * 3)
    assert samples["semester_progress"].tolist() == pytest.approx([0.25] * 3)


def test_train_on_history_samples(tmp_path):
    settings = _build_test_settings(tmp_path, training_min_samples=5)
    service = TrainingService(settings=settings)
    course = Course("C1", "Algorithms", capacity=30)
    teacher = Teacher("T1", "Ada", frozenset({1}), ("algorithms",))
    entries = [
        ScheduleEntry("C1", "T1", "R1", day, slot)
        for day in ("Monday", "Tuesday", "Wednesday")
        for slot in ("09:00", "10:00", "11:00", "12:00")
    ]
    history = HistoricalSchedule(entries, [course], [teacher], [Room("R1", 20)])

    report = service.train(service.build_samples_from_history([history]))

    assert report.data_source == "provided"
    assert report.training_rows + report.validation_rows + report.test_rows == 12
