#!/usr/bin/env python3
"""Validate local timetable quality engine readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from timetable_quality.domain.models import Course, Room, ScheduleItem, Teacher
from timetable_quality.services.scoring_service import BACKEND_TRAINED, ScoringService
from timetable_quality.services.training_service import TrainingService
from timetable_quality.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="timetable-quality-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("numpy", "numpy"),
        ("pandas", "pandas"),
        ("scipy", "scipy"),
        ("sklearn", "scikit-learn"),
        ("joblib", "joblib"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    from importlib.metadata import version

    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            _ = version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            model_path=Path(temp_dir) / "validation_model.joblib",
            training_epochs=5,
            synthetic_sample_count=200,
        )

        # CHECK 3: Model training on synthetic data
        training_service = TrainingService(settings=validation_settings)
        report = None
        try:
            report = training_service.train()
            ok, line = _print_result(
                "Model training",
                True,
                f": mse={report.mse:.4f} accuracy={report.accuracy:.2%}",
            )
        except Exception as exc:
            ok, line = _print_result("Model training", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Trained model loads and scores within bounds
        scoring_service = ScoringService(settings=validation_settings)
        item = ScheduleItem(
            course=Course("VAL-1", "Mathematics", capacity=30),
            teacher=Teacher("VAL-T", "Validator", frozenset({1, 2}), ("mathematics",)),
            room=Room("VAL-R", 40, "classroom"),
            day="Tuesday",
            time_slot="09:00",
        )
        try:
            loaded = report is not None and scoring_service.load(report.model_path)
            if not loaded or scoring_service.active_backend() != BACKEND_TRAINED:
                raise RuntimeError("trained backend did not become active")
            score = scoring_service.score(item)
            if not 0.0 <= score <= 1.0:
                raise RuntimeError("score out of [0,1] bounds")
            ok, line = _print_result("Trained inference", True, f": score={score:.4f}")
        except Exception as exc:
            ok, line = _print_result("Trained inference", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Heuristic fallback
        fallback_service = ScoringService(settings=validation_settings)
        try:
            if fallback_service.load(Path(temp_dir) / "missing.joblib"):
                raise RuntimeError("missing model unexpectedly loaded")
            score = fallback_service.score(item)
            ok, line = _print_result("Heuristic fallback", True, f": score={score:.4f}")
        except Exception as exc:
            ok, line = _print_result("Heuristic fallback", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Timetable Quality Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
