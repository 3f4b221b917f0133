"""
app.py: Service factory and startup lifecycle.

Builds every service with explicit dependency injection and exposes one
module-level container for callers that embed the engine in a larger
timetable-construction process.

Usage:
    from app import services, startup
    startup(services)
    services.recommendation_service.recommend(course, teachers, rooms)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from timetable_quality.services.diagnostics_service import DiagnosticsService
from timetable_quality.services.feature_service import FeatureExtractor
from timetable_quality.services.recommendation_service import RecommendationService
from timetable_quality.services.scoring_service import ScoringService
from timetable_quality.services.training_service import TrainingService
from timetable_quality.utils.config import Settings, get_settings
from timetable_quality.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceContainer:
    settings: Settings
    extractor: FeatureExtractor
    scoring_service: ScoringService
    recommendation_service: RecommendationService
    diagnostics_service: DiagnosticsService
    training_service: TrainingService


def create_services(settings: Optional[Settings] = None) -> ServiceContainer:
    """
    Build and wire the engine.

    One scoring service is shared by recommendations and diagnostics, so a
    model loaded or retrained once is seen by both.
    """
    settings = settings or get_settings()

    extractor = FeatureExtractor()
    scoring_service = ScoringService(settings=settings, extractor=extractor)
    recommendation_service = RecommendationService(
        scoring_service=scoring_service,
        settings=settings,
    )
    diagnostics_service = DiagnosticsService(
        scoring_service=scoring_service,
        settings=settings,
    )
    training_service = TrainingService(settings=settings, extractor=extractor)

    return ServiceContainer(
        settings=settings,
        extractor=extractor,
        scoring_service=scoring_service,
        recommendation_service=recommendation_service,
        diagnostics_service=diagnostics_service,
        training_service=training_service,
    )


def startup(container: ServiceContainer, background: bool = True) -> None:
    """
    Idempotent startup sequence. Safe to call more than once.

    Model loading runs on a background thread by default; until it completes
    the heuristic scorer answers every request.
    """
    logger.info(
        "Startup: initializing quality scorer | model_path=%s | background=%s",
        container.settings.model_path,
        background,
    )
    container.scoring_service.initialize(background=background)
    logger.info(
        "Startup complete | active_backend=%s",
        container.scoring_service.active_backend(),
    )


services = create_services()
