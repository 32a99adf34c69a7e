"""
Vector index client for the matching fast path.

The index stores one embedding per goal node and answers "which other
users own the nodes nearest to these query vectors". Queries never raise:
they return an IndexQueryResult tagged OK, EMPTY or UNAVAILABLE, and the
ranker dispatches on the tag.

The in-memory implementation performs an exact cosine search with
scikit-learn; a hosted ANN service can be plugged in by subclassing
VectorIndex.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import joblib
import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from ..domain.schema import Domain, sort_domains

logger = logging.getLogger(__name__)


class IndexStatus(Enum):
    """Outcome of an index query."""
    OK = "ok"
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"


@dataclass
class IndexHit:
    """
    One candidate owner returned by the index.

    Attributes:
        owner_id: Candidate user
        score: Best raw cosine between any query vector and the owner's nodes
        domains: Domains where a query node and an owner node agree with
            positive similarity (empty when the query carried no domains)
    """
    owner_id: str
    score: float
    domains: List[Domain] = field(default_factory=list)


@dataclass
class IndexQueryResult:
    """Tagged query result: hits on OK, a reason on UNAVAILABLE."""
    status: IndexStatus
    hits: List[IndexHit] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def ok(cls, hits: List[IndexHit]) -> "IndexQueryResult":
        return cls(status=IndexStatus.OK, hits=hits)

    @classmethod
    def empty(cls) -> "IndexQueryResult":
        return cls(status=IndexStatus.EMPTY)

    @classmethod
    def unavailable(cls, reason: str) -> "IndexQueryResult":
        return cls(status=IndexStatus.UNAVAILABLE, reason=reason)


class VectorIndex:
    """Interface every vector index client implements."""

    def upsert(self, owner_id: str, goal_node_id: str, domain: Domain, vector: Sequence[float]) -> None:
        raise NotImplementedError

    def delete(self, owner_id: str, goal_node_ids: Sequence[str]) -> int:
        raise NotImplementedError

    def query(
        self,
        vectors: Sequence[Sequence[float]],
        k: int,
        exclude_owner_id: Optional[str] = None,
        domains: Optional[Sequence[Domain]] = None
    ) -> IndexQueryResult:
        raise NotImplementedError


class InMemoryVectorIndex(VectorIndex):
    """
    Exact cosine search over vectors held in process memory.

    Attributes:
        dimension: Vector length, fixed by the first upsert
        available: When False every query reports UNAVAILABLE
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self.available = True
        self._records: Dict[Tuple[str, str], Tuple[Domain, np.ndarray]] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def upsert(self, owner_id: str, goal_node_id: str, domain: Domain, vector: Sequence[float]) -> None:
        """
        Insert or overwrite the vector of one goal node.

        Raises:
            ValueError: If the vector length differs from the index dimension
        """
        vec = np.asarray(vector, dtype=np.float64).ravel()
        with self._lock:
            if self.dimension is None:
                self.dimension = vec.shape[0]
            elif vec.shape[0] != self.dimension:
                raise ValueError(
                    f"Vector for {owner_id}/{goal_node_id} has dimension {vec.shape[0]}, "
                    f"index expects {self.dimension}"
                )
            self._records[(owner_id, goal_node_id)] = (Domain.parse(domain), vec)

    def delete(self, owner_id: str, goal_node_ids: Sequence[str]) -> int:
        with self._lock:
            removed = 0
            for node_id in goal_node_ids:
                if self._records.pop((owner_id, node_id), None) is not None:
                    removed += 1
        return removed

    def query(
        self,
        vectors: Sequence[Sequence[float]],
        k: int,
        exclude_owner_id: Optional[str] = None,
        domains: Optional[Sequence[Domain]] = None
    ) -> IndexQueryResult:
        """
        Find the top-k owners nearest to any of the query vectors.

        Args:
            vectors: Query embeddings (the requester's embedded nodes)
            k: Maximum number of owners to return
            exclude_owner_id: Owner left out of the results (the requester)
            domains: Optional domain per query vector, parallel to ``vectors``

        Returns:
            IndexQueryResult; UNAVAILABLE if the index is switched off or the
            search fails
        """
        if not self.available:
            return IndexQueryResult.unavailable("index marked unavailable")
        try:
            return self._search(vectors, k, exclude_owner_id, domains)
        except Exception as e:
            logger.warning(f"Vector index query failed: {e}")
            return IndexQueryResult.unavailable(str(e))

    def _search(
        self,
        vectors: Sequence[Sequence[float]],
        k: int,
        exclude_owner_id: Optional[str],
        domains: Optional[Sequence[Domain]]
    ) -> IndexQueryResult:
        if len(vectors) == 0 or k <= 0:
            return IndexQueryResult.empty()
        if domains is not None and len(domains) != len(vectors):
            raise ValueError(f"Got {len(domains)} domains for {len(vectors)} query vectors")

        with self._lock:
            entries = [
                (owner, domain, vec)
                for (owner, _), (domain, vec) in self._records.items()
                if owner != exclude_owner_id
            ]
        if not entries:
            return IndexQueryResult.empty()

        owners = [e[0] for e in entries]
        matrix = np.vstack([e[2] for e in entries])
        queries = np.vstack([np.asarray(v, dtype=np.float64).ravel() for v in vectors])
        similarities = cosine_similarity(queries, matrix)

        best_per_record = similarities.max(axis=0)
        if domains is not None:
            query_domains = np.array([Domain.parse(d).name for d in domains], dtype=object)
            record_domains = np.array([e[1].name for e in entries], dtype=object)
            shared = (query_domains[:, None] == record_domains[None, :]) & (similarities > 0)
            record_matched = shared.any(axis=0)
        else:
            record_matched = np.zeros(len(entries), dtype=bool)

        best_per_owner: Dict[str, float] = {}
        domains_per_owner: Dict[str, set] = {}
        for idx, owner in enumerate(owners):
            score = float(best_per_record[idx])
            if owner not in best_per_owner or score > best_per_owner[owner]:
                best_per_owner[owner] = score
            matched = domains_per_owner.setdefault(owner, set())
            if record_matched[idx]:
                matched.add(entries[idx][1])

        ranked = sorted(best_per_owner.items(), key=lambda item: (-item[1], item[0]))[:k]
        hits = [
            IndexHit(owner_id=owner, score=score, domains=sort_domains(domains_per_owner[owner]))
            for owner, score in ranked
        ]
        return IndexQueryResult.ok(hits)

    def save(self, filepath: str) -> None:
        """Save a snapshot of the index with joblib."""
        with self._lock:
            snapshot = {
                "dimension": self.dimension,
                "records": [
                    (owner, node_id, domain.name, vec)
                    for (owner, node_id), (domain, vec) in self._records.items()
                ],
            }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(snapshot, filepath)
        logger.info(f"Saved vector index snapshot ({len(snapshot['records'])} vectors) to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "InMemoryVectorIndex":
        """Load a snapshot written by ``save``."""
        snapshot = joblib.load(filepath)
        index = cls(dimension=snapshot["dimension"])
        for owner, node_id, domain_name, vec in snapshot["records"]:
            index.upsert(owner, node_id, Domain[domain_name], vec)
        logger.info(f"Loaded vector index snapshot ({len(index)} vectors) from {filepath}")
        return index
