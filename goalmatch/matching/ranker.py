"""
Match ranking for one requesting user.

Flow:
1. Fast path: ask the vector index for the top-k owners nearest to the
   requester's embedded nodes; each owner's raw cosine, clamped to [0, 1],
   is taken as its score directly.
2. Slow path (index not configured, unavailable or empty): load every other tree
   and score it exhaustively, in parallel batches; non-positive scores are
   dropped.
3. Optional domain filter on the matched domains (both paths).
4. Rank by score descending, then candidate user id ascending.

The slow path is read-only, so a cancelled request leaves nothing behind;
cancellation is checked between batches.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from joblib import Parallel, delayed

from ..domain.schema import Domain, GoalTree, MatchResult
from ..errors import InvalidInputError, MatchCancelledError, NoGoalsConfiguredError
from ..index.vector_index import IndexHit, IndexQueryResult, IndexStatus, VectorIndex
from ..scoring.compatibility import CompatibilityScorer
from ..store.tree_store import GoalTreeStore

logger = logging.getLogger(__name__)

DomainFilter = Union[None, str, Domain, Iterable[Union[str, Domain]]]


class CancellationToken:
    """
    Request-scoped cancellation with an optional deadline.

    Args:
        timeout: Seconds from now after which the token counts as cancelled
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            reason = "cancelled" if self._event.is_set() else "deadline exceeded"
            raise MatchCancelledError(f"Match computation {reason}")


@dataclass
class RankerConfig:
    """
    Configuration for the match ranker.

    Attributes:
        top_k: Owners requested from the vector index
        fast_path: Whether to try the vector index at all
        n_workers: Slow-path worker threads (None = CPU count)
        batch_size: Candidates scored between cancellation checks
    """
    top_k: int = 20
    fast_path: bool = True
    n_workers: Optional[int] = None
    batch_size: int = 64

    def validate(self) -> None:
        if self.top_k <= 0:
            raise ValueError(f"top_k must be positive, got {self.top_k}")
        if self.n_workers is not None and self.n_workers <= 0:
            raise ValueError(f"n_workers must be positive, got {self.n_workers}")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RankerConfig":
        section = config.get("matching", {}) or {}
        return cls(
            top_k=section.get("top_k", 20),
            fast_path=section.get("fast_path", True),
            n_workers=section.get("n_workers"),
            batch_size=section.get("batch_size", 64),
        )


def parse_domain_filter(domain_filter: DomainFilter) -> Set[Domain]:
    """Normalize a domain filter to a set of Domains (empty = no filter)."""
    if domain_filter is None:
        return set()
    if isinstance(domain_filter, (str, Domain)):
        return {Domain.parse(domain_filter)}
    return {Domain.parse(d) for d in domain_filter}


def rank_results(results: Iterable[MatchResult]) -> List[MatchResult]:
    """Sort by score descending, ties broken by candidate id ascending."""
    return sorted(results, key=lambda r: (-r.score, r.candidate_user_id))


class MatchRanker:
    """
    Orchestrates candidate retrieval, scoring, filtering and ranking.

    Attributes:
        store: GoalTreeStore with every user's tree
        scorer: CompatibilityScorer for the slow path
        index: Optional VectorIndex for the fast path
        config: RankerConfig
    """

    def __init__(
        self,
        store: GoalTreeStore,
        scorer: Optional[CompatibilityScorer] = None,
        index: Optional[VectorIndex] = None,
        config: Optional[RankerConfig] = None
    ):
        self.store = store
        self.scorer = scorer or CompatibilityScorer()
        self.index = index
        self.config = config or RankerConfig()
        self.config.validate()
        self.n_workers = self.config.n_workers or os.cpu_count() or 1
        logger.info(
            f"Initialized MatchRanker with top_k={self.config.top_k}, "
            f"fast_path={self.config.fast_path and index is not None}, n_workers={self.n_workers}"
        )

    def get_matches(
        self,
        user_id: str,
        domain_filter: DomainFilter = None,
        limit: Optional[int] = None,
        token: Optional[CancellationToken] = None
    ) -> List[MatchResult]:
        """
        Rank every other user by compatibility with ``user_id``.

        Args:
            user_id: Requesting user
            domain_filter: Domain or domains a match must share
            limit: Optional page size
            token: Optional CancellationToken for this request

        Returns:
            Ranked MatchResult list (possibly empty)

        Raises:
            InvalidInputError: Missing user id or unknown domain in the filter
            NoGoalsConfiguredError: The user has no goal tree
            MatchCancelledError: The token was cancelled or timed out
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInputError("user_id is required")
        if limit is not None and limit < 0:
            raise InvalidInputError(f"limit must be >= 0, got {limit}")
        domains = parse_domain_filter(domain_filter)
        token = token or CancellationToken()
        token.raise_if_cancelled()

        tree = self.store.get(user_id)
        if tree is None:
            raise NoGoalsConfiguredError(user_id)

        results = None
        if self.config.fast_path and self.index is not None:
            outcome = self._query_index(tree)
            if outcome.status is IndexStatus.OK:
                # Final even when every hit is non-positive; only EMPTY or UNAVAILABLE fall through
                results = self._results_from_hits(outcome.hits)
            elif outcome.status is IndexStatus.UNAVAILABLE:
                logger.warning(
                    f"Vector index unavailable ({outcome.reason}); "
                    f"degrading to exhaustive scoring for {user_id}"
                )
            else:
                logger.debug(f"Vector index returned no candidates for {user_id}")

        if results is None:
            results = self._score_exhaustively(tree, token)
        token.raise_if_cancelled()

        if domains:
            results = [r for r in results if domains.intersection(r.matched_domains)]

        ranked = rank_results(results)
        if limit is not None:
            ranked = ranked[:limit]
        logger.info(f"Ranked {len(ranked)} matches for {user_id} via {self._path_label(ranked)} path")
        return ranked

    @staticmethod
    def _path_label(results: List[MatchResult]) -> str:
        return results[0].path if results else "no-result"

    def _query_index(self, tree: GoalTree) -> IndexQueryResult:
        if self.index is None:
            return IndexQueryResult.unavailable("no vector index configured")

        vectors = []
        domains = []
        for node in tree.node_list:
            vector = self.scorer.resolver.embedding_for(node)
            if vector is not None:
                vectors.append(vector)
                domains.append(node.domain)
        if not vectors:
            return IndexQueryResult.empty()

        try:
            return self.index.query(
                vectors, self.config.top_k, exclude_owner_id=tree.user_id, domains=domains
            )
        except Exception as e:
            return IndexQueryResult.unavailable(f"query raised {type(e).__name__}: {e}")

    @staticmethod
    def _results_from_hits(hits: List[IndexHit]) -> List[MatchResult]:
        results = []
        for hit in hits:
            score = min(max(hit.score, 0.0), 1.0)
            if score > 0:
                results.append(MatchResult(
                    candidate_user_id=hit.owner_id,
                    score=score,
                    matched_domains=list(hit.domains),
                    path="fast",
                ))
        return results

    def _score_exhaustively(self, tree: GoalTree, token: CancellationToken) -> List[MatchResult]:
        others = [t for t in self.store.get_many(exclude_user_id=tree.user_id)
                  if t.user_id != tree.user_id]
        logger.debug(f"Scoring {len(others)} candidates for {tree.user_id}")

        results = []
        batch_size = self.config.batch_size
        with Parallel(n_jobs=self.n_workers, prefer="threads") as parallel:
            for start in range(0, len(others), batch_size):
                token.raise_if_cancelled()
                batch = others[start:start + batch_size]
                breakdowns = parallel(
                    delayed(self.scorer.score_with_breakdown)(tree, other) for other in batch
                )
                for other, breakdown in zip(batch, breakdowns):
                    if breakdown.score > 0:
                        results.append(MatchResult(
                            candidate_user_id=other.user_id,
                            score=breakdown.score,
                            matched_domains=breakdown.matched_domains,
                            path="slow",
                        ))
        return results
