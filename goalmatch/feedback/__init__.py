"""Feedback intake and goal completion."""

from .service import (
    FeedbackOutcome,
    FeedbackResult,
    FeedbackService,
    parse_feedback_event,
)

__all__ = ["FeedbackOutcome", "FeedbackResult", "FeedbackService", "parse_feedback_event"]
