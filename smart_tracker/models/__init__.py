"""
Data Models Package

This package contains all Pydantic models used in the Smart Tracker core.
All data flowing through the system must conform to these schemas.
"""

from smart_tracker.models.ledger import (
    Goal,
    GoalStatus,
    GoalUpdate,
    GoalView,
    MonthlyAggregate,
    ReconciliationIntent,
    Recurrence,
    Transaction,
    TransactionType,
    ValidationIssue,
)
from smart_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Goal",
    "GoalStatus",
    "GoalUpdate",
    "GoalView",
    "MonthlyAggregate",
    "ReconciliationIntent",
    "Recurrence",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
