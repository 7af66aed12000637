"""Goal reconciliation package."""

from smart_tracker.goals.locks import GoalLockRegistry, guarded_operation
from smart_tracker.goals.reconciler import GoalReconciler

__all__ = ["GoalLockRegistry", "GoalReconciler", "guarded_operation"]
