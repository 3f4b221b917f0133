"""Schedule quality scorers and the service that selects between them."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any, Optional, Sequence

import joblib
import numpy as np
from scipy.special import expit

from timetable_quality.domain.models import (
    TIME_SLOTS,
    ScheduleItem,
    ScoringContext,
    normalize_day,
    normalize_time_slot,
    room_suits_lecture,
)
from timetable_quality.services.feature_service import (
    FEATURE_COLUMNS,
    FeatureExtractor,
    teacher_availability_score,
)
from timetable_quality.services.normalization import clamp_unit
from timetable_quality.utils.config import Settings, get_settings
from timetable_quality.utils.logger import get_logger

if TYPE_CHECKING:
    from timetable_quality.services.training_service import TrainingReport, TrainingService
    import pandas as pd


logger = get_logger(__name__)

BACKEND_TRAINED = "trained"
BACKEND_HEURISTIC = "heuristic"

_BUNDLE_KEYS = ("estimator", "feature_columns", "model_version", "trained_at", "training_rows")


class ScoringError(Exception):
    """Base exception for scorer failures."""


class ModelNotReadyError(ScoringError):
    """Raised when the trained scorer is used before a model is loaded."""


class IncompatibleModelError(ScoringError):
    """Raised when a persisted model bundle cannot serve this feature layout."""


@dataclass(frozen=True)
class ModelBundle:
    """Trained regressor plus the metadata needed to serve it."""

    estimator: Any
    feature_columns: tuple[str, ...]
    model_version: str
    trained_at: str
    training_rows: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "estimator": self.estimator,
            "feature_columns": list(self.feature_columns),
            "model_version": self.model_version,
            "trained_at": self.trained_at,
            "training_rows": self.training_rows,
        }


def save_bundle(bundle: ModelBundle, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(bundle.to_dict(), path)
    return path


def load_bundle(path: Path) -> ModelBundle:
    """Read and validate a bundle; raises on any incompatibility."""
    payload = joblib.load(Path(path))
    if not isinstance(payload, dict) or any(key not in payload for key in _BUNDLE_KEYS):
        raise IncompatibleModelError("model bundle is missing required keys")

    feature_columns = tuple(payload["feature_columns"])
    if feature_columns != FEATURE_COLUMNS:
        raise IncompatibleModelError("model bundle feature columns do not match extractor")

    estimator = payload["estimator"]
    if not hasattr(estimator, "predict"):
        raise IncompatibleModelError("model bundle estimator cannot predict")
    if getattr(estimator, "n_features_in_", len(FEATURE_COLUMNS)) != len(FEATURE_COLUMNS):
        raise IncompatibleModelError("model bundle estimator expects a different input width")

    return ModelBundle(
        estimator=estimator,
        feature_columns=feature_columns,
        model_version=str(payload["model_version"]),
        trained_at=str(payload["trained_at"]),
        training_rows=int(payload["training_rows"]),
    )


def predict_quality(estimator: Any, frame: "pd.DataFrame") -> np.ndarray:
    """Forward pass through the logit-space regressor, bounded to [0, 1]."""
    raw = np.asarray(estimator.predict(frame), dtype=float).reshape(-1)
    return np.clip(expit(raw), 0.0, 1.0)


class QualityScorer(ABC):
    """Contract shared by every schedule quality backend."""

    backend: str

    @abstractmethod
    def score_batch(
        self,
        items: Sequence[ScheduleItem],
        contexts: Optional[Sequence[Optional[ScoringContext]]] = None,
    ) -> list[float]:
        """Score items as one unit, preserving input order."""

    def score(self, item: ScheduleItem, context: Optional[ScoringContext] = None) -> float:
        return self.score_batch([item], [context])[0]

    @abstractmethod
    def load(self, path: Optional[Path]) -> bool:
        ...

    @abstractmethod
    def is_ready(self) -> bool:
        ...


class HeuristicQualityScorer(QualityScorer):
    """Deterministic rule-based scorer with no numeric backend."""

    backend = BACKEND_HEURISTIC
    BASE_SCORE = 0.5

    def explain(self, item: ScheduleItem) -> list[tuple[str, float]]:
        """Ordered rule adjustments applied on top of the base score."""
        course, teacher, room = item.course, item.teacher, item.room
        adjustments: list[tuple[str, float]] = []

        if teacher.expertise:
            if teacher.matches_course(course):
                adjustments.append(("teacher_expertise_match", 0.2))
            else:
                adjustments.append(("teacher_expertise_mismatch", -0.1))

        if teacher.teachable_years:
            bonus = min(len(teacher.teachable_years) * 0.05, 0.15)
            adjustments.append(("teacher_experience", bonus))

        if room.capacity >= course.capacity:
            adjustments.append(("room_capacity_sufficient", 0.1))
        else:
            adjustments.append(("room_capacity_insufficient", -0.2))

        if room_suits_lecture(room.room_type, course.lecture_type):
            adjustments.append(("room_type_match", 0.1))

        slot = normalize_time_slot(item.time_slot)
        if slot in TIME_SLOTS[:2]:
            adjustments.append(("morning_slot", 0.1))
        elif slot == TIME_SLOTS[-1]:
            adjustments.append(("late_slot", -0.05))

        if normalize_day(item.day) in ("Monday", "Friday"):
            adjustments.append(("edge_of_week_day", -0.05))

        availability = teacher_availability_score(teacher, item.day, slot)
        if availability is not None:
            adjustments.append(("teacher_availability", availability * 0.1))

        return adjustments

    def score_batch(
        self,
        items: Sequence[ScheduleItem],
        contexts: Optional[Sequence[Optional[ScoringContext]]] = None,
    ) -> list[float]:
        del contexts
        scores: list[float] = []
        for item in items:
            total = self.BASE_SCORE
            for _, delta in self.explain(item):
                total += delta
            scores.append(clamp_unit(total))
        return scores

    def load(self, path: Optional[Path]) -> bool:
        del path
        return True

    def is_ready(self) -> bool:
        return True


class TrainedQualityScorer(QualityScorer):
    """Serves a persisted MLP regressor over normalized features."""

    backend = BACKEND_TRAINED

    def __init__(self, extractor: Optional[FeatureExtractor] = None) -> None:
        self._extractor = extractor or FeatureExtractor()
        self._bundle: Optional[ModelBundle] = None
        self._loaded_at: Optional[str] = None

    @property
    def bundle(self) -> Optional[ModelBundle]:
        return self._bundle

    @property
    def loaded_at(self) -> Optional[str]:
        return self._loaded_at

    def use_bundle(self, bundle: ModelBundle) -> None:
        self._bundle = bundle
        self._loaded_at = datetime.now(timezone.utc).isoformat()

    def load(self, path: Optional[Path]) -> bool:
        if path is None:
            return False
        model_path = Path(path)
        if not model_path.exists():
            logger.info("Trained model not found | path=%s", model_path)
            return False
        try:
            bundle = load_bundle(model_path)
        except Exception as exc:
            logger.warning(
                "Trained model could not be loaded | path=%s | error=%s",
                model_path,
                exc,
            )
            return False

        self.use_bundle(bundle)
        logger.info(
            "Trained model loaded | path=%s | version=%s | trained_at=%s",
            model_path,
            bundle.model_version,
            bundle.trained_at,
        )
        return True

    def is_ready(self) -> bool:
        return self._bundle is not None

    def score_batch(
        self,
        items: Sequence[ScheduleItem],
        contexts: Optional[Sequence[Optional[ScoringContext]]] = None,
    ) -> list[float]:
        bundle = self._bundle
        if bundle is None:
            raise ModelNotReadyError("Model is not loaded; call load() first")
        if not items:
            return []
        frame = self._extractor.build_frame(items, contexts)
        return [float(value) for value in predict_quality(bundle.estimator, frame)]


def _trained_at(scorer: QualityScorer) -> Optional[datetime]:
    """Training timestamp of a trained scorer's bundle, None when unknown."""
    if not isinstance(scorer, TrainedQualityScorer) or scorer.bundle is None:
        return None
    try:
        trained_at = datetime.fromisoformat(scorer.bundle.trained_at)
    except ValueError:
        return None
    if trained_at.tzinfo is None:
        trained_at = trained_at.replace(tzinfo=timezone.utc)
    return trained_at


def create_quality_scorer(
    settings: Optional[Settings] = None,
    model_path: Optional[Path] = None,
    extractor: Optional[FeatureExtractor] = None,
) -> QualityScorer:
    """Try the trained backend first; fall back to the heuristic."""
    settings = settings or get_settings()
    trained = TrainedQualityScorer(extractor=extractor)
    if trained.load(model_path or settings.model_path):
        return trained
    logger.warning("Falling back to heuristic quality scorer")
    return HeuristicQualityScorer()


class ScoringService:
    """Owns the active scorer and keeps scoring available at all times.

    Callers never branch on the backend: until a trained model is loaded (or
    if loading fails) every request is answered by the heuristic scorer.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractor: Optional[FeatureExtractor] = None,
        heuristic: Optional[HeuristicQualityScorer] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._extractor = extractor or FeatureExtractor()
        self._heuristic = heuristic or HeuristicQualityScorer()
        self._active: QualityScorer = self._heuristic
        self._swap_lock = RLock()
        self._initialize_started = False
        self._initialized = threading.Event()
        self._training_executor: Optional[ThreadPoolExecutor] = None

    @property
    def heuristic(self) -> HeuristicQualityScorer:
        return self._heuristic

    def initialize(self, background: bool = True) -> None:
        """Load the trained model once; later calls are no-ops."""
        with self._swap_lock:
            if self._initialize_started:
                return
            self._initialize_started = True

        if not self._settings.load_model_on_startup:
            logger.info("Model loading disabled; heuristic scorer active")
            self._initialized.set()
            return

        if background:
            thread = threading.Thread(
                target=self._initialize_model,
                name="quality-model-loader",
                daemon=True,
            )
            thread.start()
        else:
            self._initialize_model()

    def _initialize_model(self) -> None:
        try:
            self.load(self._settings.model_path)
        finally:
            self._initialized.set()

    def wait_until_initialized(self, timeout: Optional[float] = None) -> bool:
        return self._initialized.wait(timeout)

    def load(self, path: Optional[Path]) -> bool:
        trained = TrainedQualityScorer(extractor=self._extractor)
        if not trained.load(path):
            logger.warning(
                "Trained scorer unavailable | path=%s | active_backend=%s",
                path,
                self.active_backend(),
            )
            return False
        return self.install(trained)

    def install(self, scorer: QualityScorer) -> bool:
        """Make ``scorer`` active unless it carries an older model than the current one."""
        if not scorer.is_ready():
            raise ModelNotReadyError("Refusing to install a scorer that is not ready")
        with self._swap_lock:
            incoming = _trained_at(scorer)
            current = _trained_at(self._active)
            if incoming is not None and current is not None and incoming < current:
                logger.warning(
                    "Stale model not installed | trained_at=%s | active_trained_at=%s",
                    incoming.isoformat(),
                    current.isoformat(),
                )
                return False
            self._active = scorer
        logger.info("Quality scorer installed | backend=%s", scorer.backend)
        return True

    def is_ready(self) -> bool:
        return self._active.is_ready()

    def active_backend(self) -> str:
        return self._active.backend

    def score(self, item: ScheduleItem, context: Optional[ScoringContext] = None) -> float:
        return self.score_batch([item], [context])[0]

    def score_batch(
        self,
        items: Sequence[ScheduleItem],
        contexts: Optional[Sequence[Optional[ScoringContext]]] = None,
    ) -> list[float]:
        scorer = self._active
        if scorer is self._heuristic:
            return self._heuristic.score_batch(items, contexts)
        try:
            return scorer.score_batch(items, contexts)
        except Exception as exc:
            logger.warning(
                "Trained scorer failed, using heuristic for batch | items=%s | error=%s",
                len(items),
                exc,
            )
            return self._heuristic.score_batch(items, contexts)

    def status(self) -> dict[str, Any]:
        scorer = self._active
        payload: dict[str, Any] = {
            "backend": scorer.backend,
            "ready": scorer.is_ready(),
            "initialized": self._initialized.is_set(),
            "model_path": str(self._settings.model_path),
            "model_version": None,
            "trained_at": None,
            "loaded_at": None,
        }
        if isinstance(scorer, TrainedQualityScorer) and scorer.bundle is not None:
            payload["model_version"] = scorer.bundle.model_version
            payload["trained_at"] = scorer.bundle.trained_at
            payload["loaded_at"] = scorer.loaded_at
        return payload

    def retrain_in_background(
        self,
        training_service: "TrainingService",
        samples: Optional["pd.DataFrame"] = None,
    ) -> "Future[TrainingReport]":
        """Train on a worker thread and hot-swap the model on success.

        Scoring keeps using the current backend while training runs. Training
        failures are delivered through the returned future.
        """
        with self._swap_lock:
            if self._training_executor is None:
                self._training_executor = ThreadPoolExecutor(
                    max_workers=1,
                    thread_name_prefix="quality-training",
                )
            executor = self._training_executor

        def _run() -> "TrainingReport":
            report = training_service.train(samples)
            self.load(report.model_path)
            return report

        logger.info("Background model training requested")
        return executor.submit(_run)

    def shutdown(self) -> None:
        with self._swap_lock:
            executor = self._training_executor
            self._training_executor = None
        if executor is not None:
            executor.shutdown(wait=True)
