"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the find/insert/update/delete operations the savings core needs.

IMPORTANT: No backend is assumed to support multi-record transactions.
Callers order their writes so that a failure between two calls leaves
recoverable state, and record a ReconciliationIntent where it cannot.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from smart_tracker.models.audit import AuditEvent
from smart_tracker.models.ledger import (
    Goal,
    ReconciliationIntent,
    Transaction,
    TransactionType,
    ensure_utc,
)


class TransactionFilter(BaseModel):
    """
    Filter for transaction queries. Unset fields do not constrain.

    occurred_from is inclusive, occurred_to exclusive.
    """

    transaction_id: Optional[UUID] = None
    kind: Optional[TransactionType] = None
    category: Optional[str] = None
    description: Optional[str] = None
    occurred_from: Optional[datetime] = None
    occurred_to: Optional[datetime] = None

    @field_validator("occurred_from", "occurred_to")
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @classmethod
    def for_month(cls, month: str, **fields) -> "TransactionFilter":
        """Filter on one UTC calendar month ("YYYY-MM")."""
        start = datetime.strptime(month, "%Y-%m").replace(tzinfo=timezone.utc)
        end = (start + timedelta(days=32)).replace(day=1)
        return cls(occurred_from=start, occurred_to=end, **fields)

    def matches(self, tx: Transaction) -> bool:
        """Evaluate the filter against one transaction (exact matches)."""
        if self.transaction_id is not None and tx.id != self.transaction_id:
            return False
        if self.kind is not None and tx.kind != self.kind:
            return False
        if self.category is not None and tx.category != self.category:
            return False
        if self.description is not None and tx.description != self.description:
            return False
        if self.occurred_from is not None and tx.occurred_at < self.occurred_from:
            return False
        if self.occurred_to is not None and tx.occurred_at >= self.occurred_to:
            return False
        return True


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Any storage implementation (Google Sheets, MongoDB, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def find_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        Find a user's transactions.

        Args:
            user_id: Owning user
            filter: Optional constraints; None returns everything

        Returns:
            Matching transactions, oldest first

        Raises:
            StorageError: If the backend fails
        """
        pass

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction.

        Returns:
            The stored transaction

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace the stored transaction with the same ID.

        Returns:
            The stored transaction

        Raises:
            MissingRecordError: If no transaction has that ID
        """
        pass

    @abstractmethod
    async def delete_transactions(
        self,
        user_id: str,
        filter: TransactionFilter,
    ) -> int:
        """
        Delete a user's transactions matching the filter.

        Returns:
            Number of transactions deleted
        """
        pass


class GoalStorageInterface(ABC):
    """Abstract interface for goal storage operations."""

    @abstractmethod
    async def find_goal(self, goal_id: UUID) -> Optional[Goal]:
        """Retrieve a goal by ID, regardless of owner."""
        pass

    @abstractmethod
    async def find_goal_by_description(
        self,
        user_id: str,
        description: str,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Goal]:
        """
        Find a user's goal by description, case-insensitively.

        Matching is on the normalized description key, never on
        pattern evaluation of user input.

        Args:
            user_id: Owning user
            description: Description to look up
            exclude_id: Goal to ignore (the one being renamed)
        """
        pass

    @abstractmethod
    async def list_goals(self, user_id: str) -> list[Goal]:
        """All goals of a user, in no particular order."""
        pass

    @abstractmethod
    async def insert_goal(self, goal: Goal) -> Goal:
        """Insert a new goal."""
        pass

    @abstractmethod
    async def update_goal(self, goal: Goal) -> Goal:
        """
        Write a goal back.

        The goal's version must equal the stored version; the stored
        copy gets version + 1.

        Returns:
            The goal as stored (new version)

        Raises:
            MissingRecordError: If the goal doesn't exist
            StaleWriteError: If the stored version moved on
        """
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: UUID) -> bool:
        """
        Delete a goal by ID.

        Returns:
            True if a goal was deleted
        """
        pass


class IntentStorageInterface(ABC):
    """
    Abstract interface for the reconciliation intent log.

    Intents are written before a destructive relink and resolved after
    it commits. Open intents are how interrupted relinks are found.
    """

    @abstractmethod
    async def record_intent(self, intent: ReconciliationIntent) -> ReconciliationIntent:
        pass

    @abstractmethod
    async def resolve_intent(self, intent_id: UUID) -> bool:
        """Mark an intent resolved. Returns False if it doesn't exist."""
        pass

    @abstractmethod
    async def get_intent(self, intent_id: UUID) -> Optional[ReconciliationIntent]:
        pass

    @abstractmethod
    async def list_open_intents(self, user_id: str) -> list[ReconciliationIntent]:
        """Unresolved intents of a user, oldest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one goal update).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'goal', 'transaction')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class MissingRecordError(StorageError):
    """Record to update is not in storage."""
    pass


class StaleWriteError(StorageError):
    """A goal was written by someone else since it was read."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
