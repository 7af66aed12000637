"""
In-Memory Storage Implementation

Process-local backend used by the test suite and by
create_app_components(use_storage=False).

Records are copied on the way in and on the way out, so callers can
never mutate stored state through a reference they hold.
"""

from typing import Optional
from uuid import UUID

from smart_tracker.models.audit import AuditEvent
from smart_tracker.models.ledger import (
    Goal,
    ReconciliationIntent,
    Transaction,
    normalize_description,
    utc_now,
)
from smart_tracker.services.storage.interface import (
    AuditStorageInterface,
    GoalStorageInterface,
    IntentStorageInterface,
    MissingRecordError,
    StaleWriteError,
    TransactionFilter,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions kept in insertion order."""

    def __init__(self):
        self._transactions: list[Transaction] = []

    async def find_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        filter = filter or TransactionFilter()
        return [
            tx.model_copy()
            for tx in self._transactions
            if tx.user_id == user_id and filter.matches(tx)
        ]

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions.append(transaction.model_copy())
        return transaction.model_copy()

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        for i, stored in enumerate(self._transactions):
            if stored.id == transaction.id:
                self._transactions[i] = transaction.model_copy()
                return transaction.model_copy()
        raise MissingRecordError(f"Transaction not found: {transaction.id}")

    async def delete_transactions(
        self,
        user_id: str,
        filter: TransactionFilter,
    ) -> int:
        kept = [
            tx for tx in self._transactions
            if not (tx.user_id == user_id and filter.matches(tx))
        ]
        deleted = len(self._transactions) - len(kept)
        self._transactions = kept
        return deleted


class InMemoryGoalStorage(GoalStorageInterface):
    """Goals keyed by ID, with version-checked updates."""

    def __init__(self):
        self._goals: dict[UUID, Goal] = {}

    async def find_goal(self, goal_id: UUID) -> Optional[Goal]:
        goal = self._goals.get(goal_id)
        return goal.model_copy() if goal else None

    async def find_goal_by_description(
        self,
        user_id: str,
        description: str,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Goal]:
        key = normalize_description(description)
        for goal in self._goals.values():
            if goal.user_id != user_id or goal.id == exclude_id:
                continue
            if goal.description_key == key:
                return goal.model_copy()
        return None

    async def list_goals(self, user_id: str) -> list[Goal]:
        return [
            goal.model_copy()
            for goal in self._goals.values()
            if goal.user_id == user_id
        ]

    async def insert_goal(self, goal: Goal) -> Goal:
        self._goals[goal.id] = goal.model_copy()
        return goal.model_copy()

    async def update_goal(self, goal: Goal) -> Goal:
        stored = self._goals.get(goal.id)
        if stored is None:
            raise MissingRecordError(f"Goal not found: {goal.id}")
        if stored.version != goal.version:
            raise StaleWriteError(
                f"Goal {goal.id} is at version {stored.version}, "
                f"write was based on version {goal.version}"
            )
        updated = goal.model_copy(
            update={"version": goal.version + 1, "updated_at": utc_now()}
        )
        self._goals[goal.id] = updated
        return updated.model_copy()

    async def delete_goal(self, goal_id: UUID) -> bool:
        return self._goals.pop(goal_id, None) is not None


class InMemoryIntentStorage(IntentStorageInterface):
    """Reconciliation intents keyed by ID."""

    def __init__(self):
        self._intents: dict[UUID, ReconciliationIntent] = {}

    async def record_intent(self, intent: ReconciliationIntent) -> ReconciliationIntent:
        self._intents[intent.id] = intent.model_copy()
        return intent.model_copy()

    async def resolve_intent(self, intent_id: UUID) -> bool:
        intent = self._intents.get(intent_id)
        if intent is None:
            return False
        self._intents[intent_id] = intent.model_copy(update={"resolved_at": utc_now()})
        return True

    async def get_intent(self, intent_id: UUID) -> Optional[ReconciliationIntent]:
        intent = self._intents.get(intent_id)
        return intent.model_copy() if intent else None

    async def list_open_intents(self, user_id: str) -> list[ReconciliationIntent]:
        intents = [
            intent.model_copy()
            for intent in self._intents.values()
            if intent.user_id == user_id and intent.is_open
        ]
        intents.sort(key=lambda i: i.created_at)
        return intents


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
