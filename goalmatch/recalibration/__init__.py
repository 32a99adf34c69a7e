"""Feedback-driven goal weight recalibration."""

from .weights import (
    GRADE_FACTORS,
    RecalibrationConfig,
    WeightRecalibrator,
    recalibrate,
    create_recalibrator_from_config,
)

__all__ = [
    "GRADE_FACTORS",
    "RecalibrationConfig",
    "WeightRecalibrator",
    "recalibrate",
    "create_recalibrator_from_config",
]
