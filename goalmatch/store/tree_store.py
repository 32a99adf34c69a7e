"""
Goal tree stores.

A store holds at most one GoalTree per user and replaces it wholesale on
every write. Reads must tolerate concurrent readers; writes are
read-modify-write of a whole tree and are serialized per store.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from ..domain.schema import GoalTree
from ..errors import InvalidGoalTreeError, InvalidInputError, StoreError

logger = logging.getLogger(__name__)


class GoalTreeStore:
    """Interface for durable per-user goal tree storage."""

    def get(self, user_id: str) -> Optional[GoalTree]:
        """Return the user's tree, or None if they have none."""
        raise NotImplementedError

    def get_many(self, exclude_user_id: Optional[str] = None) -> List[GoalTree]:
        """Bulk read of every tree except ``exclude_user_id``'s."""
        raise NotImplementedError

    def put(self, user_id: str, tree: GoalTree) -> None:
        """Create or replace the user's tree."""
        raise NotImplementedError

    def delete(self, user_id: str) -> bool:
        raise NotImplementedError

    @staticmethod
    def _check_owner(user_id: str, tree: GoalTree) -> None:
        if not user_id:
            raise InvalidInputError("user_id is required")
        if tree.user_id != user_id:
            raise InvalidInputError(f"Tree belongs to {tree.user_id!r}, not {user_id!r}")


class InMemoryGoalTreeStore(GoalTreeStore):
    """Dictionary-backed store, for tests and single-process use."""

    def __init__(self, trees: Optional[List[GoalTree]] = None):
        self._trees: Dict[str, GoalTree] = {}
        self._lock = threading.RLock()
        for tree in trees or []:
            self.put(tree.user_id, tree)

    def __len__(self) -> int:
        with self._lock:
            return len(self._trees)

    def get(self, user_id: str) -> Optional[GoalTree]:
        with self._lock:
            return self._trees.get(user_id)

    def get_many(self, exclude_user_id: Optional[str] = None) -> List[GoalTree]:
        with self._lock:
            return [t for uid, t in self._trees.items() if uid != exclude_user_id]

    def put(self, user_id: str, tree: GoalTree) -> None:
        self._check_owner(user_id, tree)
        with self._lock:
            self._trees[user_id] = tree

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._trees.pop(user_id, None) is not None


class JsonGoalTreeStore(GoalTreeStore):
    """
    One JSON document per user under a directory.

    Writes go to a temporary file that is then renamed over the target,
    so readers never see a half-written tree.

    Attributes:
        root: Directory holding ``<quoted user id>.json`` files
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        logger.info(f"Initialized JsonGoalTreeStore at {self.root}")

    def _path(self, user_id: str) -> Path:
        return self.root / f"{quote(user_id, safe='')}.json"

    def _read(self, path: Path) -> GoalTree:
        with open(path, "r") as f:
            document = json.load(f)
        if not isinstance(document, dict):
            raise ValueError(f"Expected a goal tree object in {path.name}")
        return GoalTree.from_dict(document)

    def get(self, user_id: str) -> Optional[GoalTree]:
        path = self._path(user_id)
        if not path.exists():
            return None
        return self._read(path)

    def get_many(self, exclude_user_id: Optional[str] = None) -> List[GoalTree]:
        """Every readable tree except ``exclude_user_id``'s; unreadable files are skipped."""
        trees = []
        for path in sorted(self.root.glob("*.json")):
            if unquote(path.stem) == exclude_user_id:
                continue
            try:
                trees.append(self._read(path))
            except (OSError, ValueError, InvalidGoalTreeError) as e:
                logger.warning(f"Skipping unreadable goal tree {path.name}: {e}")
        return trees

    def put(self, user_id: str, tree: GoalTree) -> None:
        self._check_owner(user_id, tree)
        path = self._path(user_id)
        tmp_path = path.with_suffix(".json.tmp")
        with self._lock:
            try:
                with open(tmp_path, "w") as f:
                    json.dump(tree.to_dict(), f, indent=2)
                os.replace(tmp_path, path)
            except OSError as e:
                raise StoreError(f"Failed to write goal tree for {user_id!r}: {e}") from e

    def delete(self, user_id: str) -> bool:
        path = self._path(user_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
            return True


def create_store_from_config(config: Dict) -> GoalTreeStore:
    """
    Factory function to create a GoalTreeStore from config.

    Args:
        config: Main configuration dictionary (``store`` section)

    Returns:
        InMemoryGoalTreeStore or JsonGoalTreeStore
    """
    section = config.get("store", {}) or {}
    store_type = section.get("type", "memory")
    if store_type == "memory":
        return InMemoryGoalTreeStore()
    if store_type == "json":
        if not section.get("path"):
            raise ValueError("store.path is required for the json store")
        return JsonGoalTreeStore(section["path"])
    raise ValueError(f"Unknown store type: {store_type}")
