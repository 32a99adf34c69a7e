"""Evaluation module: score diagnostics, symmetry and path agreement."""

from .metrics import (
    ScoreDistributionStats,
    SymmetryCheck,
    RankAgreement,
    EvaluationReport,
    pairwise_scores,
    compute_score_distribution_stats,
    check_symmetry,
    compare_rankings,
    create_evaluation_report,
)

__all__ = [
    "ScoreDistributionStats",
    "SymmetryCheck",
    "RankAgreement",
    "EvaluationReport",
    "pairwise_scores",
    "compute_score_distribution_stats",
    "check_symmetry",
    "compare_rankings",
    "create_evaluation_report",
]
