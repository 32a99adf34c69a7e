"""
Goal weight recalibration from peer feedback.

Each feedback grade multiplies the target node's weight by a fixed factor:

    succeeded       0.8   (goal is getting easier, lower its priority)
    distracted      1.2   (goal needs more attention)
    learned         0.9
    adapted         1.05
    not applicable  1.0   (no-op)

Repeated feedback compounds multiplicatively, so weights are unbounded by
default. Two optional bound modes are available:

- clamp: new_weight = clip(weight * factor, min_weight, max_weight)
- decay: new_weight = (weight * factor) ** (1 - decay_rate)
  A log-space pull toward 1.0; the weight converges to at most
  max_factor ** ((1 - decay_rate) / decay_rate) however often the same
  grade repeats.
"""

import json
import logging
from dataclasses import dataclass, asdict, replace
from typing import Dict, Any, Optional

import numpy as np

from ..domain.schema import FeedbackGrade, GoalNode, GoalTree

logger = logging.getLogger(__name__)

GRADE_FACTORS: Dict[FeedbackGrade, float] = {
    FeedbackGrade.SUCCEEDED: 0.8,
    FeedbackGrade.DISTRACTED: 1.2,
    FeedbackGrade.LEARNED: 0.9,
    FeedbackGrade.ADAPTED: 1.05,
    FeedbackGrade.NOT_APPLICABLE: 1.0,
}

RECALIBRATION_MODES = ("unbounded", "clamp", "decay")


@dataclass
class RecalibrationConfig:
    """
    Configuration for weight bounds.

    Attributes:
        mode: "unbounded", "clamp" or "decay"
        min_weight: Lower bound for clamp mode
        max_weight: Upper bound for clamp mode
        decay_rate: Pull toward 1.0 for decay mode, in (0, 1)
    """
    mode: str = "unbounded"
    min_weight: float = 0.1
    max_weight: float = 10.0
    decay_rate: float = 0.1

    def validate(self) -> None:
        """Validate configuration values."""
        if self.mode not in RECALIBRATION_MODES:
            raise ValueError(f"Unknown recalibration mode: {self.mode}")
        if not 0 <= self.min_weight <= self.max_weight:
            raise ValueError(
                f"Need 0 <= min_weight <= max_weight, got {self.min_weight}, {self.max_weight}"
            )
        if not 0 < self.decay_rate < 1:
            raise ValueError(f"decay_rate must be in (0, 1), got {self.decay_rate}")

    def bound(self, weight: float) -> float:
        """Apply the configured bound to a freshly multiplied weight."""
        if self.mode == "clamp":
            return float(np.clip(weight, self.min_weight, self.max_weight))
        if self.mode == "decay":
            if weight <= 0:
                return 0.0
            return float(weight ** (1.0 - self.decay_rate))
        return float(weight)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RecalibrationConfig":
        return cls(**d)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RecalibrationConfig":
        """Create from main config dictionary."""
        section = config.get("recalibration", {}) or {}
        return cls(
            mode=section.get("mode", "unbounded"),
            min_weight=section.get("min_weight", 0.1),
            max_weight=section.get("max_weight", 10.0),
            decay_rate=section.get("decay_rate", 0.1),
        )

    def save(self, filepath: str) -> None:
        """Save to JSON file."""
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved recalibration config to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "RecalibrationConfig":
        """Load from JSON file."""
        with open(filepath, "r") as f:
            return cls.from_dict(json.load(f))


def recalibrate(
    node: GoalNode,
    grade: FeedbackGrade,
    config: Optional[RecalibrationConfig] = None
) -> GoalNode:
    """
    Apply one feedback grade to a node's weight.

    Pure and total: the input node is not modified, and a grade outside
    the factor table leaves the weight unchanged (boundary validation is
    the caller's job).

    Args:
        node: Node receiving feedback
        grade: Feedback grade
        config: Optional bound configuration (unbounded when omitted)

    Returns:
        New GoalNode with the updated weight
    """
    factor = GRADE_FACTORS.get(grade, 1.0)
    if factor == 1.0:
        return replace(node)

    weight = node.weight * factor
    if config is not None:
        weight = config.bound(weight)
    return replace(node, weight=weight)


class WeightRecalibrator:
    """
    Applies feedback grades to nodes inside goal trees.

    Attributes:
        config: RecalibrationConfig with the weight bound settings
    """

    def __init__(self, config: Optional[RecalibrationConfig] = None):
        self.config = config or RecalibrationConfig()
        self.config.validate()
        logger.info(f"Initialized WeightRecalibrator with mode={self.config.mode}")

    def apply(self, node: GoalNode, grade: FeedbackGrade) -> GoalNode:
        return recalibrate(node, grade, self.config)

    def apply_to_tree(
        self,
        tree: GoalTree,
        node_id: str,
        grade: FeedbackGrade
    ) -> Optional[GoalTree]:
        """
        Recalibrate one node and return the full replacement tree.

        Args:
            tree: Receiver's goal tree
            node_id: Target node id
            grade: Feedback grade

        Returns:
            New GoalTree, or None if the tree has no such node
        """
        node = tree.get_node(node_id)
        if node is None:
            return None
        updated = self.apply(node, grade)
        logger.info(
            f"Recalibrated {tree.user_id}/{node_id} ({grade.value}): "
            f"{node.weight:.4f} -> {updated.weight:.4f}"
        )
        return tree.replace_node(updated)


def create_recalibrator_from_config(config: Dict[str, Any]) -> WeightRecalibrator:
    """
    Factory function to create a WeightRecalibrator from config.

    Args:
        config: Main configuration dictionary

    Returns:
        Configured WeightRecalibrator instance
    """
    return WeightRecalibrator(RecalibrationConfig.from_config(config))
