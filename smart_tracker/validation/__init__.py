"""Input validation package."""

from smart_tracker.validation.validator import GoalInputValidator, ParsedGoalUpdate

__all__ = ["GoalInputValidator", "ParsedGoalUpdate"]
