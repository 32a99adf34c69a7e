"""
Feedback intake.

Feedback payloads are validated here, before any pure computation runs.
An accepted event is consumed once: the receiver's tree is loaded, the
target node is recalibrated, and the whole tree is written back. A target
that does not exist is reported as an outcome, not raised.
"""

import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from ..domain.schema import FeedbackEvent, GoalTree
from ..errors import InvalidInputError
from ..recalibration.weights import WeightRecalibrator
from ..store.tree_store import GoalTreeStore

logger = logging.getLogger(__name__)

REQUIRED_FEEDBACK_FIELDS = ("giverId", "receiverId", "goalNodeId", "grade")
DEFAULT_LOG_SIZE = 10000


class FeedbackOutcome(Enum):
    """Result of applying a feedback event or completion."""
    UPDATED = "updated"
    TARGET_NOT_FOUND = "target-not-found"
    DUPLICATE = "duplicate"


@dataclass
class FeedbackResult:
    """
    Attributes:
        outcome: What happened
        event: The event that was applied (None for completions)
        tree: The receiver's tree after the write, when updated
        old_weight: Target weight before recalibration
        new_weight: Target weight after recalibration
    """
    outcome: FeedbackOutcome
    event: Optional[FeedbackEvent] = None
    tree: Optional[GoalTree] = None
    old_weight: Optional[float] = None
    new_weight: Optional[float] = None

    @property
    def updated(self) -> bool:
        return self.outcome is FeedbackOutcome.UPDATED


def parse_feedback_event(payload: Dict[str, Any]) -> FeedbackEvent:
    """
    Validate a feedback request body and build the event.

    Raises:
        InvalidInputError: Missing fields or a grade outside the closed set
    """
    if not isinstance(payload, dict):
        raise InvalidInputError("Feedback payload must be an object")
    missing = [k for k in REQUIRED_FEEDBACK_FIELDS if not payload.get(k)]
    if missing:
        raise InvalidInputError(f"Missing required feedback fields: {', '.join(missing)}")
    return FeedbackEvent.from_dict(payload)


class FeedbackService:
    """
    Applies feedback events and completions to stored goal trees.

    Writes are serialized so two feedback events on the same receiver
    cannot lose each other's update. The event log and the replay check
    only remember the most recent ``log_size`` events; a deployment that
    must reject replays older than that keeps event ids in its own store.

    Attributes:
        store: GoalTreeStore holding receivers' trees
        recalibrator: WeightRecalibrator applying the grade factors
        log_size: Number of recent events kept for the log and replay check
    """

    def __init__(
        self,
        store: GoalTreeStore,
        recalibrator: Optional[WeightRecalibrator] = None,
        log_size: int = DEFAULT_LOG_SIZE
    ):
        if log_size <= 0:
            raise ValueError(f"log_size must be positive, got {log_size}")
        self.store = store
        self.recalibrator = recalibrator or WeightRecalibrator()
        self.log_size = log_size
        self._log: Deque[FeedbackEvent] = deque(maxlen=log_size)
        self._consumed: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def log(self) -> List[FeedbackEvent]:
        """Accepted events, oldest first."""
        with self._lock:
            return list(self._log)

    def submit(self, payload: Dict[str, Any]) -> FeedbackResult:
        """Parse a raw payload and apply it."""
        return self.apply_feedback(parse_feedback_event(payload))

    def apply_feedback(self, event: FeedbackEvent) -> FeedbackResult:
        """
        Recalibrate the target node of one feedback event.

        Args:
            event: Validated FeedbackEvent

        Returns:
            FeedbackResult with outcome UPDATED, TARGET_NOT_FOUND or DUPLICATE
        """
        if not isinstance(event, FeedbackEvent):
            raise InvalidInputError(f"Expected FeedbackEvent, got {type(event).__name__}")

        with self._lock:
            if event.id in self._consumed:
                logger.info(f"Feedback {event.id} already applied; ignoring replay")
                return FeedbackResult(outcome=FeedbackOutcome.DUPLICATE, event=event)

            tree = self.store.get(event.receiver_id)
            node = tree.get_node(event.target_goal_node_id) if tree is not None else None
            if node is None:
                logger.warning(
                    f"Feedback target {event.receiver_id}/{event.target_goal_node_id} not found"
                )
                self._consume(event)
                return FeedbackResult(outcome=FeedbackOutcome.TARGET_NOT_FOUND, event=event)

            updated = self.recalibrator.apply_to_tree(tree, node.id, event.grade)
            self.store.put(event.receiver_id, updated)
            self._consume(event)

        return FeedbackResult(
            outcome=FeedbackOutcome.UPDATED,
            event=event,
            tree=updated,
            old_weight=node.weight,
            new_weight=updated.get_node(node.id).weight,
        )

    def _consume(self, event: FeedbackEvent) -> None:
        self._consumed[event.id] = None
        if len(self._consumed) > self.log_size:
            self._consumed.popitem(last=False)
        self._log.append(event)

    def apply_completion(self, user_id: str, node_id: str) -> FeedbackResult:
        """
        Mark a verified goal complete (progress 1.0) and persist the tree.

        Returns:
            FeedbackResult with outcome UPDATED or TARGET_NOT_FOUND
        """
        if not user_id or not node_id:
            raise InvalidInputError("user_id and node_id are required")

        with self._lock:
            tree = self.store.get(user_id)
            node = tree.get_node(node_id) if tree is not None else None
            if node is None:
                logger.warning(f"Completion target {user_id}/{node_id} not found")
                return FeedbackResult(outcome=FeedbackOutcome.TARGET_NOT_FOUND)
            updated = tree.replace_node(replace(node, progress=1.0))
            self.store.put(user_id, updated)

        logger.info(f"Marked {user_id}/{node_id} complete")
        return FeedbackResult(outcome=FeedbackOutcome.UPDATED, tree=updated)
