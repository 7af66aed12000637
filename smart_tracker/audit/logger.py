"""
Audit Logger

DESIGN DECISION: Every mutation of the ledger or of a goal is logged,
and so is every rejected request. This provides:
1. Complete traceability of balance-affecting operations
2. A record of relinks that were aborted half-way
3. User can see history of their goals

The audit logger:
- Is async so it composes with the storage calls around it
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from smart_tracker.errors import LedgerError
from smart_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from smart_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_goal_created(
        self,
        goal_id: UUID,
        user_id: str,
        description: str,
        target_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log goal creation."""
        await self.log(AuditEventBuilder.goal_created(
            goal_id=goal_id,
            user_id=user_id,
            description=description,
            target_amount=str(target_amount),
            correlation_id=correlation_id,
        ))

    async def log_goal_updated(
        self,
        goal_id: UUID,
        user_id: str,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a goal edit. `changes` maps field name to {old, new}."""
        await self.log(AuditEventBuilder.goal_updated(
            goal_id=goal_id,
            user_id=user_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_goal_deleted(
        self,
        goal_id: UUID,
        user_id: str,
        description: str,
        transactions_removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_deleted(
            goal_id=goal_id,
            user_id=user_id,
            description=description,
            transactions_removed=transactions_removed,
            correlation_id=correlation_id,
        ))

    async def log_contribution(
        self,
        goal_id: UUID,
        user_id: str,
        requested: Decimal,
        applied: Decimal,
        saved_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a contribution, including how much of the request was applied."""
        await self.log(AuditEventBuilder.contribution_recorded(
            goal_id=goal_id,
            user_id=user_id,
            requested=str(requested),
            applied=str(applied),
            saved_amount=str(saved_amount),
            correlation_id=correlation_id,
        ))

    async def log_ledger_relinked(
        self,
        goal_id: UUID,
        user_id: str,
        original_description: str,
        new_description: str,
        removed_total: Decimal,
        new_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_relinked(
            goal_id=goal_id,
            user_id=user_id,
            original_description=original_description,
            new_description=new_description,
            removed_total=str(removed_total),
            new_amount=str(new_amount),
            correlation_id=correlation_id,
        ))

    async def log_relink_aborted(
        self,
        goal_id: UUID,
        user_id: str,
        intent_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a relink that stopped after linked transactions were deleted."""
        await self.log(AuditEventBuilder.ledger_relink_aborted(
            goal_id=goal_id,
            user_id=user_id,
            intent_id=intent_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_goal_repaired(
        self,
        goal_id: UUID,
        user_id: str,
        intent_id: UUID,
        saved_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_repaired(
            goal_id=goal_id,
            user_id=user_id,
            intent_id=intent_id,
            saved_amount=str(saved_amount),
            correlation_id=correlation_id,
        ))

    async def log_transaction_added(
        self,
        transaction_id: UUID,
        user_id: str,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            user_id=user_id,
            kind=kind,
            amount=str(amount),
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        user_id: str,
        changes: dict[str, Any],
        goal_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            user_id=user_id,
            changes=changes,
            goal_id=goal_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        user_id: str,
        amount: Decimal,
        goal_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            user_id=user_id,
            amount=str(amount),
            goal_id=goal_id,
            correlation_id=correlation_id,
        ))

    async def log_rejection(
        self,
        operation: str,
        user_id: str,
        error: LedgerError,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected request. The error code is the exception class name."""
        await self.log(AuditEventBuilder.operation_rejected(
            operation=operation,
            user_id=user_id,
            error_code=type(error).__name__,
            error_message=error.message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a goal update).
    Pass it through all subsequent operations.
    """
    return uuid4()
