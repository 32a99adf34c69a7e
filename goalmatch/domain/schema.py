"""
Data model for goal trees, feedback and match results.

Field names follow Python conventions internally; ``to_dict`` and
``from_dict`` use the camelCase keys of the JSON documents exchanged with
the surrounding application (``ownerId``, ``parentId``, ``rootNodes`` ...).

Domains (closed set, display strings as shown to users):
- Career
- Investing / Financial Growth
- Fitness
- Academics
- Mental Health
- Philosophical Development
- Culture / Hobbies / Creative Pursuits
- Intimacy / Romantic Exploration
- Friendship / Social Engagement
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Iterable, Tuple

import numpy as np

from ..errors import InvalidInputError, InvalidGoalTreeError


def _normalize_token(value: str) -> str:
    return " ".join(value.strip().lower().replace("-", " ").replace("_", " ").split())


class Domain(Enum):
    """Life domains that categorize every goal node."""
    CAREER = "Career"
    INVESTING = "Investing / Financial Growth"
    FITNESS = "Fitness"
    ACADEMICS = "Academics"
    MENTAL_HEALTH = "Mental Health"
    PHILOSOPHICAL_DEVELOPMENT = "Philosophical Development"
    CREATIVE_PURSUITS = "Culture / Hobbies / Creative Pursuits"
    ROMANTIC_EXPLORATION = "Intimacy / Romantic Exploration"
    SOCIAL_ENGAGEMENT = "Friendship / Social Engagement"

    @classmethod
    def parse(cls, value: Any) -> "Domain":
        """
        Parse a domain from its display string, enum name or short alias.

        Args:
            value: Domain instance or string such as "Fitness", "MENTAL_HEALTH",
                "mental-health" or "creative"

        Returns:
            Matching Domain

        Raises:
            InvalidInputError: If the value names no known domain
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"Invalid domain: {value!r}")

        token = _normalize_token(value)
        for domain in cls:
            if token in (_normalize_token(domain.value), _normalize_token(domain.name)):
                return domain
        if token in _DOMAIN_ALIASES:
            return _DOMAIN_ALIASES[token]
        raise InvalidInputError(f"Unknown domain: {value!r}")

    @property
    def slug(self) -> str:
        """Lowercase hyphenated name, e.g. ``mental-health``."""
        return self.name.lower().replace("_", "-")


_DOMAIN_ALIASES = {
    "investing": Domain.INVESTING,
    "finance": Domain.INVESTING,
    "financial growth": Domain.INVESTING,
    "philosophy": Domain.PHILOSOPHICAL_DEVELOPMENT,
    "creative": Domain.CREATIVE_PURSUITS,
    "creativity": Domain.CREATIVE_PURSUITS,
    "hobbies": Domain.CREATIVE_PURSUITS,
    "culture": Domain.CREATIVE_PURSUITS,
    "romantic": Domain.ROMANTIC_EXPLORATION,
    "romance": Domain.ROMANTIC_EXPLORATION,
    "intimacy": Domain.ROMANTIC_EXPLORATION,
    "social": Domain.SOCIAL_ENGAGEMENT,
    "friendship": Domain.SOCIAL_ENGAGEMENT,
}

_DOMAIN_ORDER = {domain: i for i, domain in enumerate(Domain)}


def sort_domains(domains: Iterable[Domain]) -> List[Domain]:
    """Sort domains in declaration order, dropping duplicates."""
    return sorted(set(domains), key=_DOMAIN_ORDER.__getitem__)


class FeedbackGrade(Enum):
    """Peer feedback grades (closed set)."""
    SUCCEEDED = "Succeeded"
    DISTRACTED = "Distracted"
    LEARNED = "Learned"
    ADAPTED = "Adapted"
    NOT_APPLICABLE = "Not Applicable"

    @classmethod
    def parse(cls, value: Any) -> "FeedbackGrade":
        """
        Parse a grade from "Succeeded", "succeeded", "not-applicable",
        "NOT_APPLICABLE" and similar spellings.

        Raises:
            InvalidInputError: If the value is outside the closed set
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"Invalid feedback grade: {value!r}")

        token = _normalize_token(value)
        for grade in cls:
            if token in (_normalize_token(grade.value), _normalize_token(grade.name)):
                return grade
        raise InvalidInputError(f"Unknown feedback grade: {value!r}")


def _require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{name} must be a non-empty string, got {value!r}")
    return value


@dataclass
class GoalNode:
    """
    One declared or derived life-goal.

    Attributes:
        id: Identifier, unique within the owner's tree
        owner_id: User the node belongs to
        domain: Life domain
        name: Short human label, used as the fallback similarity key
        weight: Priority weight (>= 0), starts at 1.0 and changes only via feedback
        progress: Completion fraction in [0, 1]
        parent_id: Parent node id in the same tree, None for root goals
        custom_details: Free text appended to ``name`` when embedding
        category: Optional sub-domain label
        prerequisite_goal_ids: Goals to finish first (informational)
        embedding: Cached embedding vector, if already computed
    """
    id: str
    owner_id: str
    domain: Domain
    name: str
    weight: float = 1.0
    progress: float = 0.0
    parent_id: Optional[str] = None
    custom_details: Optional[str] = None
    category: Optional[str] = None
    prerequisite_goal_ids: List[str] = field(default_factory=list)
    embedding: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        """Validate identifiers and numeric ranges, coerce the domain."""
        _require_id(self.id, "id")
        _require_id(self.owner_id, "owner_id")
        self.domain = Domain.parse(self.domain)
        if not isinstance(self.name, str):
            raise InvalidInputError(f"name must be a string, got {type(self.name)}")

        self.weight = float(self.weight)
        if np.isnan(self.weight) or self.weight < 0:
            raise InvalidInputError(f"weight must be >= 0, got {self.weight}")

        self.progress = float(self.progress)
        if not 0.0 <= self.progress <= 1.0:
            raise InvalidInputError(f"progress must be in [0, 1], got {self.progress}")

        if self.embedding is not None:
            self.embedding = np.asarray(self.embedding, dtype=np.float64).ravel()

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary (embedding omitted)."""
        result = {
            "id": self.id,
            "ownerId": self.owner_id,
            "domain": self.domain.value,
            "name": self.name,
            "weight": self.weight,
            "progress": self.progress,
        }
        if self.parent_id is not None:
            result["parentId"] = self.parent_id
        if self.custom_details:
            result["customDetails"] = self.custom_details
        if self.category:
            result["category"] = self.category
        if self.prerequisite_goal_ids:
            result["prerequisiteGoalIds"] = list(self.prerequisite_goal_ids)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], owner_id: Optional[str] = None) -> "GoalNode":
        """
        Create from a dictionary.

        Args:
            data: Node document (camelCase keys)
            owner_id: Owner to use when the document has no ``ownerId``
        """
        return cls(
            id=data.get("id"),
            owner_id=data.get("ownerId") or owner_id,
            domain=data.get("domain"),
            name=data.get("name", ""),
            weight=data.get("weight", 1.0),
            progress=data.get("progress", 0.0),
            parent_id=data.get("parentId"),
            custom_details=data.get("customDetails"),
            category=data.get("category"),
            prerequisite_goal_ids=list(data.get("prerequisiteGoalIds") or []),
            embedding=data.get("embedding"),
        )


def embedding_text(node: GoalNode) -> str:
    """Text basis for a node's embedding: name, then custom details."""
    if node.custom_details:
        return f"{node.name}\n{node.custom_details}"
    return node.name


def text_fingerprint(node: GoalNode) -> str:
    """Digest of the embedding text; changes whenever name or details change."""
    return hashlib.sha1(embedding_text(node).encode("utf-8")).hexdigest()


@dataclass
class GoalTree:
    """
    The full goal forest for one user.

    Nodes are held flat, keyed by id; the hierarchy is only the
    ``parent_id`` of each node. ``root_ids`` is the distinguished subset
    of top-level goals.

    Attributes:
        user_id: Owner of every node in the tree
        nodes: Node id -> GoalNode, in insertion order
        root_ids: Ids of root goals (subset of ``nodes``)
        id: Optional storage identifier of the tree document
    """
    user_id: str
    nodes: Dict[str, GoalNode] = field(default_factory=dict)
    root_ids: Optional[List[str]] = None
    id: Optional[str] = None

    def __post_init__(self):
        """Validate ownership, parent links and the root subset."""
        _require_id(self.user_id, "user_id")
        if not isinstance(self.nodes, dict):
            self.nodes = self._index_nodes(self.nodes)

        for node_id, node in self.nodes.items():
            if node_id != node.id:
                raise InvalidGoalTreeError(f"Node key {node_id!r} does not match node id {node.id!r}")
            if node.owner_id != self.user_id:
                raise InvalidGoalTreeError(
                    f"Node {node.id!r} belongs to {node.owner_id!r}, not {self.user_id!r}"
                )
            if node.parent_id is not None and node.parent_id not in self.nodes:
                raise InvalidGoalTreeError(
                    f"Node {node.id!r} has parent {node.parent_id!r} outside the tree"
                )

        self._check_acyclic()

        if self.root_ids is None:
            self.root_ids = [n.id for n in self.nodes.values() if n.parent_id is None]
        else:
            self.root_ids = list(dict.fromkeys(self.root_ids))
            missing = [r for r in self.root_ids if r not in self.nodes]
            if missing:
                raise InvalidGoalTreeError(f"Root nodes not in tree: {missing}")

    @staticmethod
    def _index_nodes(nodes: Iterable[GoalNode]) -> Dict[str, GoalNode]:
        indexed = {}
        for node in nodes:
            if node.id in indexed:
                raise InvalidGoalTreeError(f"Duplicate node id: {node.id!r}")
            indexed[node.id] = node
        return indexed

    def _check_acyclic(self) -> None:
        """Walk each parent chain; revisiting a node on the chain is a cycle."""
        resolved = set()
        for start in self.nodes:
            chain = []
            on_chain = set()
            current = start
            while current is not None and current not in resolved:
                if current in on_chain:
                    raise InvalidGoalTreeError(f"Cycle in parent links at node {current!r}")
                on_chain.add(current)
                chain.append(current)
                current = self.nodes[current].parent_id
            resolved.update(chain)

    @classmethod
    def from_nodes(
        cls,
        user_id: str,
        nodes: Iterable[GoalNode],
        root_ids: Optional[Iterable[str]] = None,
        tree_id: Optional[str] = None
    ) -> "GoalTree":
        """Build a tree from a node list, rejecting duplicate ids."""
        return cls(
            user_id=user_id,
            nodes=cls._index_nodes(nodes),
            root_ids=list(root_ids) if root_ids is not None else None,
            id=tree_id,
        )

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def node_list(self) -> List[GoalNode]:
        return list(self.nodes.values())

    @property
    def root_nodes(self) -> List[GoalNode]:
        return [self.nodes[r] for r in self.root_ids]

    @property
    def total_weight(self) -> float:
        return float(sum(n.weight for n in self.nodes.values()))

    @property
    def domains(self) -> List[Domain]:
        return sort_domains(n.domain for n in self.nodes.values())

    def get_node(self, node_id: str) -> Optional[GoalNode]:
        return self.nodes.get(node_id)

    def children_of(self, node_id: str) -> List[GoalNode]:
        return [n for n in self.nodes.values() if n.parent_id == node_id]

    def replace_node(self, node: GoalNode) -> "GoalTree":
        """
        Return a new tree with one node replaced, keeping node order and roots.

        Raises:
            KeyError: If the tree has no node with ``node.id``
        """
        if node.id not in self.nodes:
            raise KeyError(node.id)
        nodes = dict(self.nodes)
        nodes[node.id] = node
        return GoalTree(user_id=self.user_id, nodes=nodes, root_ids=list(self.root_ids), id=self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary; ``rootNodes`` holds root node ids."""
        result = {
            "userId": self.user_id,
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "rootNodes": list(self.root_ids),
        }
        if self.id is not None:
            result["id"] = self.id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoalTree":
        """
        Create from dictionary.

        ``rootNodes`` may list ids or full node documents; only the ids are kept.
        """
        user_id = data.get("userId")
        nodes = [GoalNode.from_dict(n, owner_id=user_id) for n in data.get("nodes") or []]
        root_ids = None
        if data.get("rootNodes") is not None:
            root_ids = [r["id"] if isinstance(r, dict) else r for r in data["rootNodes"]]
        return cls.from_nodes(user_id, nodes, root_ids=root_ids, tree_id=data.get("id"))


@dataclass(frozen=True)
class FeedbackEvent:
    """
    Peer feedback on one of the receiver's goal nodes.

    Immutable once created; consumed once by the feedback service.
    """
    giver_id: str
    receiver_id: str
    target_goal_node_id: str
    grade: FeedbackGrade
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        _require_id(self.giver_id, "giver_id")
        _require_id(self.receiver_id, "receiver_id")
        _require_id(self.target_goal_node_id, "target_goal_node_id")
        object.__setattr__(self, "grade", FeedbackGrade.parse(self.grade))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "giverId": self.giver_id,
            "receiverId": self.receiver_id,
            "goalNodeId": self.target_goal_node_id,
            "grade": self.grade.value,
            "comment": self.comment,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackEvent":
        kwargs = {
            "giver_id": data.get("giverId"),
            "receiver_id": data.get("receiverId"),
            "target_goal_node_id": data.get("goalNodeId"),
            "grade": data.get("grade"),
            "comment": data.get("comment"),
        }
        if data.get("id"):
            kwargs["id"] = data["id"]
        if data.get("createdAt"):
            created = data["createdAt"]
            kwargs["created_at"] = (
                created if isinstance(created, datetime) else datetime.fromisoformat(created)
            )
        return cls(**kwargs)


@dataclass
class MatchResult:
    """
    One ranked candidate.

    Attributes:
        candidate_user_id: The matched user
        score: Compatibility score, nominally in [0, 1]
        matched_domains: Domains that contributed non-zero similarity
        path: "fast" (vector index) or "slow" (exhaustive scoring)
    """
    candidate_user_id: str
    score: float
    matched_domains: List[Domain] = field(default_factory=list)
    path: str = "slow"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.candidate_user_id,
            "score": float(self.score),
            "matchedDomains": [d.value for d in self.matched_domains],
            "path": self.path,
        }

    def to_wire(self) -> Dict[str, Any]:
        """The ``{userId, score}`` shape returned to API clients."""
        return {"userId": self.candidate_user_id, "score": float(self.score)}


@dataclass
class EmbeddingRecord:
    """
    Live embedding of one goal node.

    Attributes:
        owner_id: Node owner
        goal_node_id: Node id
        domain: Node domain at embedding time
        vector: Dense embedding
        fingerprint: ``text_fingerprint`` of the node text that was embedded
        updated_at: When the record was written
    """
    owner_id: str
    goal_node_id: str
    domain: Domain
    vector: np.ndarray
    fingerprint: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.domain = Domain.parse(self.domain)
        self.vector = np.asarray(self.vector, dtype=np.float64).ravel()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_id, self.goal_node_id)
