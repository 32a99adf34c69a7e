"""Goal tree stores and the embedding cache."""

from .tree_store import (
    GoalTreeStore,
    InMemoryGoalTreeStore,
    JsonGoalTreeStore,
    create_store_from_config,
)
from .embedding_store import EmbeddingStore

__all__ = [
    "GoalTreeStore",
    "InMemoryGoalTreeStore",
    "JsonGoalTreeStore",
    "create_store_from_config",
    "EmbeddingStore",
]
