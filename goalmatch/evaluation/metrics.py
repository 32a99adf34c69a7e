"""
Diagnostics for the compatibility scorer and match ranker.

There is no ground truth for compatibility, so these checks describe
behaviour rather than accuracy:
1. Score distribution over all pairs of a population
2. Symmetry: score(A, B) should equal score(B, A)
3. Path agreement: how closely the fast (vector index) ranking follows the
   slow (exhaustive) ranking for the same user
"""

import json
import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy.stats import spearmanr

from ..domain.schema import GoalTree, MatchResult
from ..scoring.compatibility import CompatibilityScorer

logger = logging.getLogger(__name__)


@dataclass
class ScoreDistributionStats:
    """Statistics about score distribution."""
    n_pairs: int
    mean: float
    std: float
    min: float
    max: float
    quantiles: Dict[str, float]  # e.g., {"p10": 0.2, "p50": 0.5, "p90": 0.8}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_pairs": int(self.n_pairs),
            "mean": float(self.mean),
            "std": float(self.std),
            "min": float(self.min),
            "max": float(self.max),
            "quantiles": {k: float(v) for k, v in self.quantiles.items()}
        }


@dataclass
class SymmetryCheck:
    """Largest asymmetry observed over all ordered pairs."""
    n_pairs: int
    max_abs_difference: float
    tolerance: float
    worst_pair: Optional[List[str]] = None

    @property
    def passed(self) -> bool:
        return self.max_abs_difference <= self.tolerance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_pairs": int(self.n_pairs),
            "max_abs_difference": float(self.max_abs_difference),
            "tolerance": float(self.tolerance),
            "passed": bool(self.passed),
            "worst_pair": self.worst_pair,
        }


@dataclass
class RankAgreement:
    """Agreement between two rankings of candidates for one user."""
    user_id: str
    n_common: int
    spearman: float
    top_k: int
    top_k_jaccard: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "n_common": int(self.n_common),
            "spearman": float(self.spearman),
            "top_k": int(self.top_k),
            "top_k_jaccard": float(self.top_k_jaccard),
        }


@dataclass
class EvaluationReport:
    """
    Diagnostics for one population of goal trees.

    Documents scorer behaviour WITHOUT claiming real-world match quality.
    """
    name: str
    distribution_stats: ScoreDistributionStats
    symmetry_check: Optional[SymmetryCheck] = None
    rank_agreements: List[RankAgreement] = field(default_factory=list)
    additional_metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "distribution_stats": self.distribution_stats.to_dict(),
            "additional_metrics": self.additional_metrics
        }
        if self.symmetry_check:
            result["symmetry_check"] = self.symmetry_check.to_dict()
        if self.rank_agreements:
            result["rank_agreements"] = [r.to_dict() for r in self.rank_agreements]
        return result

    def save(self, filepath: str) -> None:
        """Save report to JSON file."""
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved evaluation report to {filepath}")

    def summary(self) -> str:
        """Generate text summary of the report."""
        stats = self.distribution_stats
        lines = [
            f"Evaluation Report: {self.name}",
            "=" * 50,
            "",
            f"Score Distribution ({stats.n_pairs} pairs):",
            f"  Mean: {stats.mean:.4f}",
            f"  Std:  {stats.std:.4f}",
            f"  Min:  {stats.min:.4f}",
            f"  Max:  {stats.max:.4f}",
        ]
        for q_name, q_value in stats.quantiles.items():
            lines.append(f"  {q_name}: {q_value:.4f}")

        if self.symmetry_check:
            lines.extend([
                "",
                "Symmetry Check:",
                f"  Max |s(A,B) - s(B,A)|: {self.symmetry_check.max_abs_difference:.2e}",
                f"  Passed: {self.symmetry_check.passed}",
            ])

        if self.rank_agreements:
            spearman = np.nanmean([r.spearman for r in self.rank_agreements])
            jaccard = np.mean([r.top_k_jaccard for r in self.rank_agreements])
            lines.extend([
                "",
                f"Path Agreement ({len(self.rank_agreements)} users):",
                f"  Spearman (mean): {spearman:.4f}",
                f"  Top-k Jaccard (mean): {jaccard:.4f}",
            ])

        return "\n".join(lines)


def pairwise_scores(trees: Sequence[GoalTree], scorer: Optional[CompatibilityScorer] = None) -> np.ndarray:
    """Scores for every unordered pair of trees, in ``combinations`` order."""
    scorer = scorer or CompatibilityScorer()
    return np.array([scorer.score(a, b) for a, b in combinations(trees, 2)], dtype=np.float64)


def compute_score_distribution_stats(
    scores: np.ndarray,
    quantiles: List[float] = [0.1, 0.5, 0.9]
) -> ScoreDistributionStats:
    """
    Compute distribution statistics for scores.

    Args:
        scores: Array of compatibility scores
        quantiles: Quantile values to compute (default: p10, p50, p90)

    Returns:
        ScoreDistributionStats instance (all zeros for an empty array)
    """
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        logger.warning("No scores to summarize")
        return ScoreDistributionStats(
            n_pairs=0, mean=0.0, std=0.0, min=0.0, max=0.0,
            quantiles={f"p{int(q * 100)}": 0.0 for q in quantiles}
        )

    quantile_dict = {
        f"p{int(q * 100)}": float(np.percentile(scores, q * 100))
        for q in quantiles
    }

    return ScoreDistributionStats(
        n_pairs=int(scores.size),
        mean=float(np.mean(scores)),
        std=float(np.std(scores)),
        min=float(np.min(scores)),
        max=float(np.max(scores)),
        quantiles=quantile_dict
    )


def check_symmetry(
    trees: Sequence[GoalTree],
    scorer: Optional[CompatibilityScorer] = None,
    tolerance: float = 1e-9
) -> SymmetryCheck:
    """
    Score every pair in both argument orders and report the worst gap.

    Args:
        trees: Population of goal trees
        scorer: CompatibilityScorer to check
        tolerance: Largest acceptable |score(A,B) - score(B,A)|

    Returns:
        SymmetryCheck instance
    """
    scorer = scorer or CompatibilityScorer()
    worst = 0.0
    worst_pair = None
    n_pairs = 0
    for a, b in combinations(trees, 2):
        n_pairs += 1
        diff = abs(scorer.score(a, b) - scorer.score(b, a))
        if diff > worst:
            worst = diff
            worst_pair = [a.user_id, b.user_id]

    check = SymmetryCheck(n_pairs=n_pairs, max_abs_difference=worst,
                          tolerance=tolerance, worst_pair=worst_pair)
    if not check.passed:
        logger.warning(f"Asymmetric scores for {worst_pair}: difference {worst:.3e}")
    return check


def compare_rankings(
    user_id: str,
    reference: List[MatchResult],
    candidate: List[MatchResult],
    top_k: int = 10
) -> RankAgreement:
    """
    Compare two rankings of the same user's candidates.

    Spearman correlation is computed over the candidates both rankings
    contain (NaN if fewer than two). Jaccard overlap uses each ranking's
    first ``top_k`` candidates.

    Args:
        user_id: The requesting user
        reference: Ranking treated as ground reference (usually the slow path)
        candidate: Ranking being evaluated (usually the fast path)
        top_k: Cut-off for the overlap measure

    Returns:
        RankAgreement instance
    """
    ref_rank = {r.candidate_user_id: i for i, r in enumerate(reference)}
    cand_rank = {r.candidate_user_id: i for i, r in enumerate(candidate)}
    common = sorted(set(ref_rank) & set(cand_rank))

    spearman = float("nan")
    if len(common) > 1:
        corr, _ = spearmanr([ref_rank[u] for u in common], [cand_rank[u] for u in common])
        spearman = float(corr)

    top_ref = {r.candidate_user_id for r in reference[:top_k]}
    top_cand = {r.candidate_user_id for r in candidate[:top_k]}
    union = len(top_ref | top_cand)
    jaccard = len(top_ref & top_cand) / union if union > 0 else 1.0

    return RankAgreement(
        user_id=user_id,
        n_common=len(common),
        spearman=spearman,
        top_k=top_k,
        top_k_jaccard=jaccard,
    )


def create_evaluation_report(
    name: str,
    trees: Sequence[GoalTree],
    scorer: Optional[CompatibilityScorer] = None,
    rank_agreements: Optional[List[RankAgreement]] = None,
    quantiles: List[float] = [0.1, 0.5, 0.9],
    tolerance: float = 1e-9
) -> EvaluationReport:
    """
    Create a complete evaluation report for a population.

    Args:
        name: Report name
        trees: Population of goal trees
        scorer: CompatibilityScorer to evaluate
        rank_agreements: Precomputed path agreements to include
        quantiles: Quantiles to compute
        tolerance: Symmetry tolerance

    Returns:
        EvaluationReport instance
    """
    scorer = scorer or CompatibilityScorer()
    scores = pairwise_scores(trees, scorer)
    return EvaluationReport(
        name=name,
        distribution_stats=compute_score_distribution_stats(scores, quantiles),
        symmetry_check=check_symmetry(trees, scorer, tolerance),
        rank_agreements=list(rank_agreements or []),
        additional_metrics={
            "n_users": len(trees),
            "n_nodes": int(sum(len(t) for t in trees)),
            "nonzero_fraction": float(np.mean(scores > 0)) if scores.size else 0.0,
        },
    )
