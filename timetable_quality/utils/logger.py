"""Logging setup shared by the scorers, training and diagnostics."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from timetable_quality.utils.config import get_settings


_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once per process.

    ``warnings`` raised by scikit-learn (convergence notices from per-epoch
    ``partial_fit``) are captured into the ``py.warnings`` logger so they land
    next to the training progress lines.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()

    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    logging.captureWarnings(True)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Module logger, configuring the process on first use."""
    configure_logging()
    return logging.getLogger(name)
