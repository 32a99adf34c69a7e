"""Pairwise goal-tree compatibility scoring."""

from .compatibility import CompatibilityScorer, ScoreBreakdown

__all__ = ["CompatibilityScorer", "ScoreBreakdown"]
