"""Domain-level validation rules for training and diagnostics configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TrainingConfig:
    epochs: int
    learning_rate: float
    l2_penalty: float
    batch_size: int
    hidden_layers: tuple[int, ...]
    train_ratio: float
    validation_ratio: float
    min_samples: int
    accuracy_tolerance: float


@dataclass(frozen=True)
class SuggestionThresholds:
    reschedule: float
    improve: float
    very_poor: float
    below_average: float


def validate_training_config(config: TrainingConfig) -> None:
    if config.epochs <= 0:
        raise ValueError("epochs must be > 0")
    if config.learning_rate <= 0.0:
        raise ValueError("learning_rate must be > 0")
    if config.l2_penalty < 0.0:
        raise ValueError("l2_penalty must be >= 0")
    if config.batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    if not config.hidden_layers or any(units <= 0 for units in config.hidden_layers):
        raise ValueError("hidden_layers must be non-empty positive unit counts")
    if not 0.0 < config.train_ratio < 1.0:
        raise ValueError("train_ratio must be in (0, 1)")
    if not 0.0 <= config.validation_ratio < 1.0:
        raise ValueError("validation_ratio must be in [0, 1)")
    if config.train_ratio + config.validation_ratio >= 1.0:
        raise ValueError("train_ratio + validation_ratio must leave room for a test split")
    if config.min_samples <= 0:
        raise ValueError("min_samples must be > 0")
    if not 0.0 < config.accuracy_tolerance <= 1.0:
        raise ValueError("accuracy_tolerance must be in (0, 1]")


def validate_suggestion_thresholds(thresholds: SuggestionThresholds) -> None:
    values = (
        thresholds.reschedule,
        thresholds.improve,
        thresholds.very_poor,
        thresholds.below_average,
    )
    if any(not 0.0 <= value <= 1.0 for value in values):
        raise ValueError("suggestion thresholds must be between 0 and 1")
    if thresholds.reschedule > thresholds.improve:
        raise ValueError("reschedule threshold must not exceed improve threshold")
    if thresholds.very_poor > thresholds.below_average:
        raise ValueError("very_poor threshold must not exceed below_average threshold")
