"""Embedding providers and the background embedding worker."""

from .providers import (
    DEFAULT_EMBEDDING_DIM,
    EmbeddingProvider,
    HashingEmbeddingProvider,
    CallableEmbeddingProvider,
    create_provider_from_config,
)
from .worker import EmbeddingWorker

__all__ = [
    "DEFAULT_EMBEDDING_DIM",
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "CallableEmbeddingProvider",
    "create_provider_from_config",
    "EmbeddingWorker",
]
