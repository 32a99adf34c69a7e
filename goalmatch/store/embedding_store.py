"""
In-process cache of live embedding records.

At most one record is kept per (owner, goal node); writing a new record
overwrites the old one. A record only counts for a node while its
fingerprint matches the node's current text, so renaming a goal or
editing its details invalidates the cached vector without an explicit
delete.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..domain.schema import EmbeddingRecord, GoalNode, text_fingerprint

logger = logging.getLogger(__name__)


class EmbeddingStore:
    """Thread-safe map of (owner_id, goal_node_id) -> EmbeddingRecord."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], EmbeddingRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def put(self, record: EmbeddingRecord) -> None:
        with self._lock:
            self._records[record.key] = record

    def get(
        self,
        owner_id: str,
        goal_node_id: str,
        fingerprint: Optional[str] = None
    ) -> Optional[EmbeddingRecord]:
        """
        Get the live record for a node.

        Args:
            owner_id: Node owner
            goal_node_id: Node id
            fingerprint: If given, records embedded from different text are ignored

        Returns:
            The record, or None if absent or stale
        """
        with self._lock:
            record = self._records.get((owner_id, goal_node_id))
        if record is None:
            return None
        if fingerprint is not None and record.fingerprint is not None \
                and record.fingerprint != fingerprint:
            return None
        return record

    def lookup(self, node: GoalNode) -> Optional[np.ndarray]:
        """Vector for a node's current text, or None."""
        record = self.get(node.owner_id, node.id, text_fingerprint(node))
        return record.vector if record is not None else None

    def records_for(self, owner_id: str) -> List[EmbeddingRecord]:
        with self._lock:
            return [r for (owner, _), r in self._records.items() if owner == owner_id]

    def retain(self, owner_id: str, node_ids: Iterable[str]) -> List[str]:
        """
        Drop an owner's records for nodes no longer in their tree.

        Returns:
            Ids of the dropped nodes
        """
        keep = set(node_ids)
        with self._lock:
            stale = [k for k in self._records if k[0] == owner_id and k[1] not in keep]
            for key in stale:
                del self._records[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} stale embeddings for {owner_id}")
        return [node_id for _, node_id in stale]

    def delete_owner(self, owner_id: str) -> int:
        return len(self.retain(owner_id, ()))
