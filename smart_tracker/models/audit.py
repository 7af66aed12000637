"""
Audit Models for Smart Tracker

Every mutation of the ledger or of a goal is logged for audit purposes.
This provides:
1. Complete traceability of all balance-affecting operations
2. Debugging information when a goal drifts from its ledger entries
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from smart_tracker.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every goal and ledger mutation has its own event type.
    """
    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    GOAL_CONTRIBUTION_RECORDED = "goal_contribution_recorded"
    GOAL_REPAIRED = "goal_repaired"

    # Goal <-> ledger linkage
    GOAL_LEDGER_RELINKED = "goal_ledger_relinked"
    GOAL_LEDGER_RELINK_ABORTED = "goal_ledger_relink_aborted"

    # Ledger entries
    TRANSACTION_ADDED = "transaction_added"
    MONTHLY_SUMMARY_ADDED = "monthly_summary_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Rejections and failures
    OPERATION_REJECTED = "operation_rejected"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who
    user_id: Optional[str] = Field(
        default=None,
        description="User whose data was touched"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'goal', 'transaction')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one goal update)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.goal_created(goal_id, user_id, "Bike", "500")
        event = AuditEventBuilder.operation_rejected("contribute", user_id, ...)
    """

    @staticmethod
    def goal_created(
        goal_id: UUID,
        user_id: str,
        description: str,
        target_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal created: {description}",
            details={
                "description": description,
                "target_amount": target_amount,
            },
        )

    @staticmethod
    def goal_updated(
        goal_id: UUID,
        user_id: str,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_UPDATED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal updated ({', '.join(sorted(changes)) or 'no changes'})",
            details=changes,
        )

    @staticmethod
    def goal_deleted(
        goal_id: UUID,
        user_id: str,
        description: str,
        transactions_removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_DELETED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal deleted: {description}",
            details={
                "description": description,
                "transactions_removed": transactions_removed,
            },
        )

    @staticmethod
    def contribution_recorded(
        goal_id: UUID,
        user_id: str,
        requested: str,
        applied: str,
        saved_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION_RECORDED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Contribution of {applied} recorded",
            details={
                "requested": requested,
                "applied": applied,
                "saved_amount": saved_amount,
            },
        )

    @staticmethod
    def ledger_relinked(
        goal_id: UUID,
        user_id: str,
        original_description: str,
        new_description: str,
        removed_total: str,
        new_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_LEDGER_RELINKED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal savings rewritten as one entry of {new_amount}",
            details={
                "original_description": original_description,
                "new_description": new_description,
                "removed_total": removed_total,
                "new_amount": new_amount,
            },
        )

    @staticmethod
    def ledger_relink_aborted(
        goal_id: UUID,
        user_id: str,
        intent_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_LEDGER_RELINK_ABORTED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Goal relink aborted after linked transactions were removed",
            details={
                "intent_id": str(intent_id),
            },
            error_message=reason,
        )

    @staticmethod
    def goal_repaired(
        goal_id: UUID,
        user_id: str,
        intent_id: UUID,
        saved_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_REPAIRED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal saved amount resynced to ledger: {saved_amount}",
            details={
                "intent_id": str(intent_id),
                "saved_amount": saved_amount,
            },
        )

    @staticmethod
    def transaction_added(
        transaction_id: UUID,
        user_id: str,
        kind: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.MONTHLY_SUMMARY_ADDED
            if kind == "monthly_savings"
            else AuditEventType.TRANSACTION_ADDED
        )
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{kind.replace('_', ' ').capitalize()} of {amount} added",
            details={
                "kind": kind,
                "amount": amount,
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        user_id: str,
        changes: dict[str, Any],
        goal_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated ({', '.join(sorted(changes)) or 'no changes'})",
            details={
                "changes": changes,
                "goal_id": str(goal_id) if goal_id else None,
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        user_id: str,
        amount: str,
        goal_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction of {amount} deleted",
            details={
                "amount": amount,
                "goal_id": str(goal_id) if goal_id else None,
            },
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        user_id: str,
        error_code: str,
        error_message: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation} rejected",
            details={
                "operation": operation,
            },
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
