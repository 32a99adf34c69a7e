"""
Matching engine facade.

Wires the goal tree store, embedding cache, vector index, embedding
worker, scorer, ranker and feedback service together, and exposes the
operations the surrounding application calls:

- save_tree / on_tree_saved: persist a tree, schedule its embeddings
- get_matches / get_matches_wire: ranked matches for a user
- apply_feedback / submit_feedback: feedback-driven recalibration
- complete_goal: mark a verified goal complete
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .configs.loader import with_defaults
from .domain.schema import FeedbackEvent, GoalNode, GoalTree, MatchResult
from .embeddings.providers import EmbeddingProvider, create_provider_from_config
from .embeddings.worker import EmbeddingWorker
from .errors import InvalidInputError
from .feedback.service import DEFAULT_LOG_SIZE, FeedbackResult, FeedbackService
from .index.vector_index import InMemoryVectorIndex, VectorIndex
from .matching.ranker import CancellationToken, DomainFilter, MatchRanker, RankerConfig
from .recalibration.weights import create_recalibrator_from_config
from .scoring.compatibility import CompatibilityScorer
from .similarity.resolver import SimilarityResolver
from .store.embedding_store import EmbeddingStore
from .store.tree_store import GoalTreeStore, create_store_from_config

logger = logging.getLogger(__name__)


class MatchingEngine:
    """
    Entry point for matching, feedback and tree saves.

    Attributes:
        store: GoalTreeStore
        ranker: MatchRanker
        feedback: FeedbackService
        embeddings: EmbeddingStore shared by the worker and the resolver
        worker: Optional EmbeddingWorker (None disables embeddings)
        index: Optional VectorIndex
        page_size: Default result limit for get_matches
        snapshot_path: Where close() saves the index, if set
    """

    def __init__(
        self,
        store: GoalTreeStore,
        ranker: MatchRanker,
        feedback: FeedbackService,
        embeddings: EmbeddingStore,
        worker: Optional[EmbeddingWorker] = None,
        index: Optional[VectorIndex] = None,
        page_size: Optional[int] = None,
        snapshot_path: Optional[str] = None
    ):
        self.store = store
        self.ranker = ranker
        self.feedback = feedback
        self.embeddings = embeddings
        self.worker = worker
        self.index = index
        self.page_size = page_size
        self.snapshot_path = snapshot_path

    def __enter__(self) -> "MatchingEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def save_tree(self, user_id: str, tree: Union[GoalTree, Dict[str, Any]]) -> GoalTree:
        """
        Replace a user's tree and schedule embedding of its nodes.

        Args:
            user_id: Owner of the tree
            tree: GoalTree or its dictionary form

        Returns:
            The stored GoalTree
        """
        if isinstance(tree, dict):
            tree = GoalTree.from_dict({"userId": user_id, **tree})
        self.store.put(user_id, tree)
        self.on_tree_saved(user_id, tree.node_list)
        return tree

    def get_tree(self, user_id: str) -> Optional[GoalTree]:
        return self.store.get(user_id)

    def on_tree_saved(self, user_id: str, nodes: Iterable[GoalNode]) -> None:
        """Fire-and-forget embedding trigger; a no-op when embeddings are off."""
        if self.worker is not None:
            self.worker.on_tree_saved(user_id, nodes)

    def flush_embeddings(self, timeout: Optional[float] = None) -> bool:
        if self.worker is None:
            return True
        return self.worker.flush(timeout)

    def get_matches(
        self,
        user_id: str,
        domain_filter: DomainFilter = None,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
        token: Optional[CancellationToken] = None
    ) -> List[MatchResult]:
        """
        Ranked matches for a user.

        Args:
            user_id: Requesting user
            domain_filter: Optional domain(s) a match must share
            limit: Page size (defaults to the configured page size)
            timeout: Seconds before the request is abandoned
            token: Caller-owned CancellationToken (overrides ``timeout``)

        Raises:
            NoGoalsConfiguredError: The user has no goal tree
        """
        if token is None and timeout is not None:
            token = CancellationToken(timeout)
        return self.ranker.get_matches(
            user_id,
            domain_filter=domain_filter,
            limit=limit if limit is not None else self.page_size,
            token=token,
        )

    def get_matches_wire(self, user_id: str, domain_filter: DomainFilter = None,
                         limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Matches as a ``[{userId, score}]`` list, best first."""
        return [m.to_wire() for m in self.get_matches(user_id, domain_filter, limit)]

    def apply_feedback(self, event: FeedbackEvent) -> FeedbackResult:
        return self.feedback.apply_feedback(event)

    def submit_feedback(self, payload: Dict[str, Any]) -> FeedbackResult:
        return self.feedback.submit(payload)

    def complete_goal(self, user_id: str, node_id: str) -> FeedbackResult:
        return self.feedback.apply_completion(user_id, node_id)

    def close(self) -> None:
        """Stop the embedding worker and save the index snapshot if configured."""
        if self.worker is not None:
            self.worker.shutdown(wait=True)
        if self.snapshot_path and isinstance(self.index, InMemoryVectorIndex):
            self.index.save(self.snapshot_path)


def create_engine_from_config(
    config: Optional[Dict[str, Any]] = None,
    store: Optional[GoalTreeStore] = None,
    index: Optional[VectorIndex] = None,
    provider: Optional[EmbeddingProvider] = None
) -> MatchingEngine:
    """
    Factory function to build a MatchingEngine from configuration.

    Components passed explicitly take precedence over the configured ones.

    Args:
        config: Main configuration dictionary (defaults fill missing keys)
        store: Optional pre-built GoalTreeStore
        index: Optional pre-built VectorIndex
        provider: Optional EmbeddingProvider (e.g. a hosted model adapter)

    Returns:
        Configured MatchingEngine
    """
    config = with_defaults(config)
    store = store or create_store_from_config(config)

    snapshot_path = config["index"].get("snapshot_path")
    if index is None and config["index"].get("enabled", True):
        if snapshot_path and Path(snapshot_path).exists():
            index = InMemoryVectorIndex.load(snapshot_path)
        else:
            index = InMemoryVectorIndex()

    embeddings = EmbeddingStore()
    worker = None
    if config["embeddings"].get("enabled", True):
        worker = EmbeddingWorker(
            provider or create_provider_from_config(config),
            embeddings,
            index=index,
            max_workers=config["embeddings"].get("max_workers", 4),
        )

    scorer = CompatibilityScorer(SimilarityResolver(embeddings))
    ranker = MatchRanker(store, scorer, index=index, config=RankerConfig.from_config(config))
    feedback = FeedbackService(
        store,
        create_recalibrator_from_config(config),
        log_size=config["feedback"].get("log_size", DEFAULT_LOG_SIZE),
    )

    page_size = config["matching"].get("page_size")
    if page_size is not None and page_size < 0:
        raise InvalidInputError(f"matching.page_size must be >= 0, got {page_size}")

    return MatchingEngine(
        store=store,
        ranker=ranker,
        feedback=feedback,
        embeddings=embeddings,
        worker=worker,
        index=index,
        page_size=page_size,
        snapshot_path=snapshot_path,
    )
