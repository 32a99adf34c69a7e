"""
Embedding providers.

A provider turns goal text into a fixed-length dense vector. The default
provider hashes character n-grams locally (no model download, no network),
which is enough for near-duplicate goal phrasings to land close together.
A hosted text-embedding model is plugged in with CallableEmbeddingProvider.
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np
from sklearn.feature_extraction.text import HashingVectorizer

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_DIM = 768


class EmbeddingProvider:
    """Interface for text embedding backends."""

    name = "base"

    @property
    def dimension(self) -> Optional[int]:
        raise NotImplementedError

    def embed(self, text: str) -> np.ndarray:
        raise NotImplementedError

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Embed several texts (N x D); one call per text unless overridden."""
        return np.vstack([self.embed(t) for t in texts])


class HashingEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic local embedder over hashed character n-grams.

    Vectors are L2-normalized and non-negative, so cosine similarity between
    two of them lies in [0, 1]. Empty text embeds to the zero vector.

    Attributes:
        vectorizer: Stateless scikit-learn HashingVectorizer
    """

    name = "hashing"

    def __init__(self, dimension: int = DEFAULT_EMBEDDING_DIM, ngram_range: tuple = (2, 4)):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension
        self.vectorizer = HashingVectorizer(
            n_features=dimension,
            analyzer="char_wb",
            ngram_range=ngram_range,
            alternate_sign=False,
            norm="l2",
            lowercase=True,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        return self.vectorizer.transform(list(texts)).toarray().astype(np.float64)


class CallableEmbeddingProvider(EmbeddingProvider):
    """
    Adapter for an external embedding service.

    Args:
        embed_fn: Function mapping text to a list of floats (e.g. a client
            call to a hosted embedding model)
        dimension: Expected vector length; checked on every call when given
        name: Provider label used in logs
    """

    def __init__(
        self,
        embed_fn: Callable[[str], List[float]],
        dimension: Optional[int] = None,
        name: str = "remote"
    ):
        self._embed_fn = embed_fn
        self._dimension = dimension
        self.name = name

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        vector = np.asarray(self._embed_fn(text), dtype=np.float64).ravel()
        if self._dimension is not None and vector.shape[0] != self._dimension:
            raise ValueError(
                f"{self.name} returned {vector.shape[0]} dimensions, expected {self._dimension}"
            )
        return vector


def create_provider_from_config(config: dict) -> EmbeddingProvider:
    """
    Factory function to create the configured embedding provider.

    Only the local hashing provider can be built from configuration;
    remote providers need a client function and are passed in directly.
    """
    section = config.get("embeddings", {}) or {}
    provider = section.get("provider", "hashing")
    if provider != "hashing":
        raise ValueError(f"Unknown embedding provider: {provider}")
    return HashingEmbeddingProvider(dimension=section.get("dimension", DEFAULT_EMBEDDING_DIM))
