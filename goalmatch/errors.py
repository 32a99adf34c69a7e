"""
Error taxonomy for the matching engine.

Operational errors carry an HTTP-style status code so the surrounding
application can map them to client or server responses without
inspecting messages.
"""


class GoalMatchError(Exception):
    """Base class for anticipated, handled engine errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(GoalMatchError, ValueError):
    """Client input rejected at the boundary (missing ids, malformed grades)."""

    status_code = 400


class InvalidGoalTreeError(InvalidInputError):
    """A goal tree violates its structural rules."""


class NoGoalsConfiguredError(GoalMatchError):
    """The requesting user has not set up a goal tree."""

    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(f"No goal tree configured for user {user_id!r}")
        self.user_id = user_id


class MatchCancelledError(GoalMatchError):
    """A match computation was cancelled or ran past its deadline."""

    status_code = 499


class StoreError(GoalMatchError):
    """A goal tree store failed to persist a write."""
