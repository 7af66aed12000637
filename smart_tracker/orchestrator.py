"""
Main Orchestrator for Smart Tracker

This module ties together all the components of the savings core:
1. Ledger (reader, goal-linked writer, manual entries)
2. Goals (reconciler, per-user locks)
3. Storage and audit backends

DESIGN DECISION: Components never construct their own storage. The
orchestrator picks one backend and hands the same instances, the same
lock registry and the same clock to every component, so goal mutations
and manual entries for a user are serialized against each other.
"""

from datetime import datetime
from typing import Callable, NamedTuple, Optional

import structlog

from smart_tracker.audit import AuditLogger
from smart_tracker.config import get_settings
from smart_tracker.goals import GoalLockRegistry, GoalReconciler
from smart_tracker.ledger import GoalTransactionWriter, LedgerEntryService, LedgerReader
from smart_tracker.models.ledger import utc_now
from smart_tracker.services.storage import (
    AuditStorageInterface,
    GoalStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGoalStorage,
    GoogleSheetsIntentStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryGoalStorage,
    InMemoryIntentStorage,
    InMemoryTransactionStorage,
    IntentStorageInterface,
    TransactionStorageInterface,
)
from smart_tracker.validation import GoalInputValidator


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    """Everything a caller (HTTP layer, CLI, tests) needs."""

    goals: GoalReconciler
    entries: LedgerEntryService
    reader: LedgerReader
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


def build_components(
    transaction_storage: TransactionStorageInterface,
    goal_storage: GoalStorageInterface,
    intent_storage: IntentStorageInterface,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Callable[[], datetime] = utc_now,
    sheets_client: Optional[GoogleSheetsClient] = None,
) -> AppComponents:
    """Wire the services over an already chosen set of storage backends."""
    settings = get_settings()
    ledger_settings = settings.ledger

    audit_logger = AuditLogger(audit_storage)
    locks = GoalLockRegistry()
    validator = GoalInputValidator(settings)
    reader = LedgerReader(transaction_storage)
    writer = GoalTransactionWriter(transaction_storage, ledger_settings, clock)

    goals = GoalReconciler(
        goal_storage=goal_storage,
        reader=reader,
        writer=writer,
        intent_storage=intent_storage,
        validator=validator,
        audit_logger=audit_logger,
        locks=locks,
        clock=clock,
        settings=ledger_settings,
    )
    entries = LedgerEntryService(
        transaction_storage=transaction_storage,
        goal_storage=goal_storage,
        reader=reader,
        writer=writer,
        validator=validator,
        audit_logger=audit_logger,
        locks=locks,
        clock=clock,
        settings=ledger_settings,
    )
    return AppComponents(goals, entries, reader, audit_logger, sheets_client)


def create_app_components(
    use_storage: bool = True,
    clock: Callable[[], datetime] = utc_now,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured persistent backend.
                    Set to False for testing without storage; the
                    in-memory backend is used instead.
        clock: Source of the current UTC time.
    """
    if use_storage and get_settings().app.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e), fallback="memory")
        else:
            return build_components(
                transaction_storage=GoogleSheetsTransactionStorage(sheets_client),
                goal_storage=GoogleSheetsGoalStorage(sheets_client),
                intent_storage=GoogleSheetsIntentStorage(sheets_client),
                audit_storage=GoogleSheetsAuditStorage(sheets_client),
                clock=clock,
                sheets_client=sheets_client,
            )

    return build_components(
        transaction_storage=InMemoryTransactionStorage(),
        goal_storage=InMemoryGoalStorage(),
        intent_storage=InMemoryIntentStorage(),
        audit_storage=InMemoryAuditStorage(),
        clock=clock,
    )
