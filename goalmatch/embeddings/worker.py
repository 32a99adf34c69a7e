"""
Background embedding generation after a goal tree is saved.

``on_tree_saved`` only schedules work and returns immediately. Each node is
embedded independently. A later save of the same tree supersedes work
still running for an earlier one, so a slow embedding never publishes a
vector for a goal that has since been removed or renamed. A failure is
logged and leaves that node without an embedding, which makes the
similarity resolver fall back to name matching for it. Nothing in
matching waits on this worker.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, Optional, Set

from ..domain.schema import EmbeddingRecord, GoalNode, embedding_text, text_fingerprint
from ..index.vector_index import VectorIndex
from ..store.embedding_store import EmbeddingStore
from .providers import EmbeddingProvider

logger = logging.getLogger(__name__)


class EmbeddingWorker:
    """
    Thread-pool worker that embeds goal nodes and publishes the vectors.

    Attributes:
        provider: Embedding backend
        embeddings: Cache the vectors are written to
        index: Optional vector index kept in sync with the cache
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        embeddings: EmbeddingStore,
        index: Optional[VectorIndex] = None,
        max_workers: int = 4
    ):
        self.provider = provider
        self.embeddings = embeddings
        self.index = index
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="embedding")
        self._pending: Set[Future] = set()
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()
        self.failures = 0
        logger.info(
            f"Initialized EmbeddingWorker with provider={provider.name}, max_workers={max_workers}"
        )

    def on_tree_saved(self, user_id: str, nodes: Iterable[GoalNode]) -> None:
        """
        Schedule embedding of a freshly saved tree's nodes.

        Records for nodes no longer in the tree are dropped first, and
        embeddings still running for an earlier save of the same tree will
        not publish. Never raises and never waits for the embeddings.
        """
        nodes = list(nodes)
        with self._lock:
            generation = self._generations.get(user_id, 0) + 1
            self._generations[user_id] = generation

        dropped = self.embeddings.retain(user_id, [n.id for n in nodes])
        if dropped and self.index is not None:
            try:
                self.index.delete(user_id, dropped)
            except Exception as e:
                logger.warning(f"Failed to drop {len(dropped)} index vectors for {user_id}: {e}")

        for node in nodes:
            try:
                future = self._executor.submit(self._embed_node, node, generation)
            except RuntimeError as e:
                logger.warning(f"Embedding worker not accepting work for {user_id}: {e}")
                return
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._discard)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _embed_node(self, node: GoalNode, generation: int) -> bool:
        fingerprint = text_fingerprint(node)
        try:
            existing = self.embeddings.get(node.owner_id, node.id, fingerprint)
            if existing is not None and existing.fingerprint == fingerprint:
                vector = existing.vector
            else:
                vector = self.provider.embed(embedding_text(node))

            record = EmbeddingRecord(
                owner_id=node.owner_id,
                goal_node_id=node.id,
                domain=node.domain,
                vector=vector,
                fingerprint=fingerprint,
            )
            # Publish only while this save is still the owner's latest one
            with self._lock:
                if self._generations.get(node.owner_id) != generation:
                    logger.debug(f"Discarding superseded embedding for {node.owner_id}/{node.id}")
                    return False
                self.embeddings.put(record)
                if self.index is not None:
                    self.index.upsert(node.owner_id, node.id, node.domain, record.vector)
            return True
        except Exception as e:
            with self._lock:
                self.failures += 1
            logger.warning(f"Embedding failed for {node.owner_id}/{node.id}: {e}")
            return False

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for scheduled embeddings to finish.

        Returns:
            True if nothing is left pending
        """
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
