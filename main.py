"""
main.py: Command-line entry point.

    python main.py train     # train on synthetic data and save the model
    python main.py status    # load the saved model and report the active backend

This file does NOT contain scoring logic. See app.py for service wiring.
"""

from __future__ import annotations

import argparse
import json

from app import services, startup
from timetable_quality.services.training_service import TrainingError


def _train() -> int:
    print("=" * 60)
    print("  Timetable Quality model training")
    print("=" * 60)
    try:
        report = services.training_service.train()
    except TrainingError as exc:
        print(f"  Training failed: {exc}")
        return 1

    print(f"  Rows (train/val/test): {report.training_rows}/{report.validation_rows}/{report.test_rows}")
    print(f"  Test MSE      : {report.mse:.6f}")
    print(f"  Test MAE      : {report.mae:.6f}")
    print(f"  Accuracy ±0.1 : {report.accuracy * 100:.2f}%")
    print(f"  Saved to      : {report.model_path}")
    print("=" * 60)
    return 0


def _status() -> int:
    startup(services, background=False)
    print(json.dumps(services.scoring_service.status(), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Timetable quality engine")
    parser.add_argument("command", choices=("train", "status"))
    args = parser.parse_args()
    if args.command == "train":
        return _train()
    return _status()


if __name__ == "__main__":
    raise SystemExit(main())
