"""
Pytest fixtures shared by the goalmatch tests.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from goalmatch.domain import GoalNode, GoalTree
from goalmatch.embeddings import EmbeddingWorker, HashingEmbeddingProvider
from goalmatch.index import InMemoryVectorIndex
from goalmatch.store import EmbeddingStore, InMemoryGoalTreeStore

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def project_root() -> Path:
    return PROJECT_ROOT


@pytest.fixture
def sample_trees_path() -> Path:
    return PROJECT_ROOT / "data" / "sample_trees.json"


@pytest.fixture
def make_node():
    """Factory for GoalNode with sensible defaults."""

    def _make(
        owner_id: str,
        node_id: str,
        domain: str = "Fitness",
        name: str = "Run a marathon",
        weight: float = 1.0,
        embedding: Optional[List[float]] = None,
        **kwargs: Any
    ) -> GoalNode:
        return GoalNode(
            id=node_id,
            owner_id=owner_id,
            domain=domain,
            name=name,
            weight=weight,
            embedding=embedding,
            **kwargs
        )

    return _make


@pytest.fixture
def make_tree(make_node):
    """
    Factory for GoalTree from compact node descriptions.

    Each description is a dict of GoalNode keyword arguments; ``id`` defaults to
    ``<user>-<position>``.
    """

    def _make(user_id: str, *fields_list: Dict[str, Any]) -> GoalTree:
        nodes = []
        for i, fields in enumerate(fields_list):
            fields = dict(fields)
            node_id = fields.pop("id", f"{user_id}-{i}")
            nodes.append(make_node(user_id, node_id, **fields))
        return GoalTree.from_nodes(user_id, nodes)

    return _make


@pytest.fixture
def store():
    return InMemoryGoalTreeStore()


@pytest.fixture
def embeddings():
    return EmbeddingStore()


@pytest.fixture
def index():
    return InMemoryVectorIndex()


@pytest.fixture
def worker(embeddings, index):
    """Hashing-provider worker wired to the shared embedding store and index."""
    w = EmbeddingWorker(HashingEmbeddingProvider(dimension=256), embeddings, index=index, max_workers=2)
    yield w
    w.shutdown(wait=True)


@pytest.fixture
def rng():
    return np.random.default_rng(7)
