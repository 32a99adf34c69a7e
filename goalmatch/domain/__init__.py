"""Data model for goal trees, feedback events and match results."""

from .schema import (
    Domain,
    FeedbackGrade,
    GoalNode,
    GoalTree,
    FeedbackEvent,
    MatchResult,
    EmbeddingRecord,
    embedding_text,
    text_fingerprint,
    sort_domains,
)

__all__ = [
    "Domain",
    "FeedbackGrade",
    "GoalNode",
    "GoalTree",
    "FeedbackEvent",
    "MatchResult",
    "EmbeddingRecord",
    "embedding_text",
    "text_fingerprint",
    "sort_domains",
]
