"""
Similarity between goal nodes.

Two strategies, tried in order:
- Embedding: cosine(v1, v2) = dot(v1, v2) / (|v1| * |v2|) when both nodes
  have a live embedding. A zero-magnitude vector gives 0.
- Fallback: 1.0 if the names are exactly equal (case-sensitive), else 0.0.

Domain gating is not applied here; the scorer multiplies by the domain
match indicator.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..domain.schema import GoalNode
from ..store.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, in [-1, 1].

    Returns 0.0 when either vector has zero magnitude or when the
    dimensions differ.
    """
    a = np.asarray(v1, dtype=np.float64).ravel()
    b = np.asarray(v2, dtype=np.float64).ravel()
    if a.shape != b.shape:
        logger.debug(f"Embedding dimensions differ: {a.shape[0]} vs {b.shape[0]}")
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = np.dot(a, b) / (norm_a * norm_b)
    return float(np.clip(similarity, -1.0, 1.0))


def name_similarity(node_a: GoalNode, node_b: GoalNode) -> float:
    """Fallback similarity: exact, case-sensitive name match."""
    return 1.0 if node_a.name == node_b.name else 0.0


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize rows; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)
    return matrix / norms


class SimilarityResolver:
    """
    Resolves node-to-node similarity from cached embeddings or names.

    Attributes:
        embeddings: Optional EmbeddingStore consulted for nodes that carry
            no embedding of their own
    """

    def __init__(self, embeddings: Optional[EmbeddingStore] = None):
        self.embeddings = embeddings

    def embedding_for(self, node: GoalNode) -> Optional[np.ndarray]:
        """Node's own embedding, else its live cached record, else None."""
        if node.embedding is not None:
            return node.embedding
        if self.embeddings is not None:
            return self.embeddings.lookup(node)
        return None

    def similarity(self, node_a: GoalNode, node_b: GoalNode) -> float:
        """
        Similarity of two nodes.

        Args:
            node_a: First node
            node_b: Second node

        Returns:
            Cosine similarity in [-1, 1] if both are embedded, else 1.0 / 0.0
            by exact name match
        """
        vec_a = self.embedding_for(node_a)
        vec_b = self.embedding_for(node_b)
        if vec_a is not None and vec_b is not None:
            return cosine_similarity(vec_a, vec_b)
        return name_similarity(node_a, node_b)

    def similarity_matrix(
        self,
        nodes_a: List[GoalNode],
        nodes_b: List[GoalNode]
    ) -> np.ndarray:
        """
        Pairwise similarities between two node lists.

        Equivalent to calling ``similarity`` for every pair, computed with
        one matrix product for the embedded pairs.

        Args:
            nodes_a: Nodes of the first tree (N)
            nodes_b: Nodes of the second tree (M)

        Returns:
            Array of similarities (N x M)
        """
        names_a = np.array([n.name for n in nodes_a], dtype=object)
        names_b = np.array([n.name for n in nodes_b], dtype=object)
        sim = (names_a[:, None] == names_b[None, :]).astype(np.float64)

        vectors_a = [self.embedding_for(n) for n in nodes_a]
        vectors_b = [self.embedding_for(n) for n in nodes_b]
        idx_a = [i for i, v in enumerate(vectors_a) if v is not None]
        idx_b = [j for j, v in enumerate(vectors_b) if v is not None]
        if not idx_a or not idx_b:
            return sim

        dims = {vectors_a[i].shape[0] for i in idx_a} | {vectors_b[j].shape[0] for j in idx_b}
        if len(dims) > 1:
            # Mixed dimensions: resolve pair by pair
            for i in idx_a:
                for j in idx_b:
                    sim[i, j] = cosine_similarity(vectors_a[i], vectors_b[j])
            return sim

        matrix_a = _normalize_rows(np.vstack([vectors_a[i] for i in idx_a]))
        matrix_b = _normalize_rows(np.vstack([vectors_b[j] for j in idx_b]))
        cosine = np.clip(matrix_a @ matrix_b.T, -1.0, 1.0)
        sim[np.ix_(idx_a, idx_b)] = cosine
        return sim
