"""Runtime settings for scoring, recommendation, diagnostics and training."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path


_ENV_PREFIX = "TIMETABLE_QUALITY_"
_PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str = "Timetable Quality Engine"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Model artifact
    model_path: Path = _PROJECT_ROOT / "models" / "schedule_quality.joblib"
    model_version: str = "mlp-v1"
    load_model_on_startup: bool = True

    # Training
    training_epochs: int = 50
    training_learning_rate: float = 0.001
    training_l2_penalty: float = 0.001
    training_batch_size: int = 32
    training_hidden_layers: tuple[int, ...] = field(default=(128, 64, 32))
    training_random_state: int = 42
    training_train_ratio: float = 0.7
    training_validation_ratio: float = 0.15
    training_min_samples: int = 20
    training_accuracy_tolerance: float = 0.1
    synthetic_sample_count: int = 1000

    # Recommendations
    recommendation_top_k: int = 5

    # Diagnostics
    reschedule_threshold: float = 0.4
    improve_threshold: float = 0.6
    very_poor_threshold: float = 0.3
    below_average_threshold: float = 0.5
    excellent_insight_threshold: float = 0.8
    aggregate_insight_threshold: float = 0.5


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process, honouring environment overrides."""
    defaults = Settings()
    return Settings(
        app_name=_env_str("APP_NAME", defaults.app_name),
        app_version=_env_str("APP_VERSION", defaults.app_version),
        log_level=_env_str("LOG_LEVEL", defaults.log_level),
        model_path=Path(_env_str("MODEL_PATH", str(defaults.model_path))),
        model_version=_env_str("MODEL_VERSION", defaults.model_version),
        load_model_on_startup=_env_bool(
            "LOAD_MODEL_ON_STARTUP", defaults.load_model_on_startup
        ),
        training_epochs=_env_int("TRAINING_EPOCHS", defaults.training_epochs),
        training_learning_rate=_env_float(
            "TRAINING_LEARNING_RATE", defaults.training_learning_rate
        ),
        training_l2_penalty=_env_float("TRAINING_L2_PENALTY", defaults.training_l2_penalty),
        training_batch_size=_env_int("TRAINING_BATCH_SIZE", defaults.training_batch_size),
        training_random_state=_env_int("TRAINING_RANDOM_STATE", defaults.training_random_state),
        training_min_samples=_env_int("TRAINING_MIN_SAMPLES", defaults.training_min_samples),
        synthetic_sample_count=_env_int(
            "SYNTHETIC_SAMPLE_COUNT", defaults.synthetic_sample_count
        ),
        recommendation_top_k=_env_int("RECOMMENDATION_TOP_K", defaults.recommendation_top_k),
    )
