"""
Compatibility scoring between two users' goal trees.

Every node counts, root goals and sub-goals alike; the hierarchy is not
consulted.

Score Formula:
    S_AB = sum_i sum_j delta(i, j) * sim(i, j) * W_i * W_j
           -----------------------------------------------
                   (sum_i W_i) * (sum_j W_j)

    delta(i, j) = 1 if the two nodes share a domain, else 0

An empty tree or a zero weight sum gives 0. A non-finite result (weights
that overflowed after long runs of unbounded feedback) is logged and also
reported as 0.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from ..domain.schema import Domain, GoalTree, sort_domains
from ..similarity.resolver import SimilarityResolver

logger = logging.getLogger(__name__)


@dataclass
class ScoreBreakdown:
    """
    Score together with the terms it was computed from.

    Attributes:
        score: Normalized compatibility score
        matched_domains: Shared domains with at least one positive-similarity pair
        numerator: Weighted, domain-gated similarity sum
        denominator: Product of the two trees' weight sums
    """
    score: float
    matched_domains: List[Domain] = field(default_factory=list)
    numerator: float = 0.0
    denominator: float = 0.0


class CompatibilityScorer:
    """
    Weighted bag-of-nodes scorer.

    The computation always runs with the two trees in a canonical order
    (by user id), so score(A, B) and score(B, A) are bit-for-bit equal.

    Attributes:
        resolver: SimilarityResolver used for node similarities
    """

    def __init__(self, resolver: Optional[SimilarityResolver] = None):
        self.resolver = resolver or SimilarityResolver()

    def score(self, tree_a: GoalTree, tree_b: GoalTree) -> float:
        """Compatibility score of two trees."""
        return self.score_with_breakdown(tree_a, tree_b).score

    def score_with_breakdown(self, tree_a: GoalTree, tree_b: GoalTree) -> ScoreBreakdown:
        """
        Compute the compatibility score and the domains that contributed.

        Args:
            tree_a: First user's goal tree
            tree_b: Second user's goal tree

        Returns:
            ScoreBreakdown
        """
        if tree_a.is_empty or tree_b.is_empty:
            return ScoreBreakdown(score=0.0)

        if tree_b.user_id < tree_a.user_id:
            tree_a, tree_b = tree_b, tree_a

        nodes_a = tree_a.node_list
        nodes_b = tree_b.node_list

        weights_a = np.array([n.weight for n in nodes_a], dtype=np.float64)
        weights_b = np.array([n.weight for n in nodes_b], dtype=np.float64)
        with np.errstate(over="ignore"):
            denominator = float(weights_a.sum() * weights_b.sum())
        if denominator == 0:
            return ScoreBreakdown(score=0.0)

        domains_a = np.array([n.domain.name for n in nodes_a], dtype=object)
        domains_b = np.array([n.domain.name for n in nodes_b], dtype=object)
        domain_match = domains_a[:, None] == domains_b[None, :]
        if not domain_match.any():
            return ScoreBreakdown(score=0.0, denominator=denominator)

        similarity = self.resolver.similarity_matrix(nodes_a, nodes_b)
        gated = np.where(domain_match, similarity, 0.0)

        contributing_rows, _ = np.nonzero(domain_match & (similarity > 0))
        matched_domains = sort_domains(nodes_a[i].domain for i in contributing_rows)

        with np.errstate(over="ignore", invalid="ignore"):
            numerator = float(weights_a @ gated @ weights_b)
            score = numerator / denominator

        if not np.isfinite(score):
            logger.warning(
                f"Non-finite score for {tree_a.user_id} / {tree_b.user_id} "
                f"(weight sums overflowed); reporting 0"
            )
            return ScoreBreakdown(score=0.0, matched_domains=matched_domains,
                                  numerator=numerator, denominator=denominator)

        return ScoreBreakdown(
            score=float(score),
            matched_domains=matched_domains,
            numerator=numerator,
            denominator=denominator,
        )
