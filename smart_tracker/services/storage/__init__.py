"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves
tests and storage-less runs. Both are swappable behind the interfaces.
"""

from smart_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    GoalStorageInterface,
    IntentStorageInterface,
    MissingRecordError,
    StaleWriteError,
    StorageError,
    TransactionFilter,
    TransactionStorageInterface,
)
from smart_tracker.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGoalStorage,
    GoogleSheetsIntentStorage,
    GoogleSheetsTransactionStorage,
)
from smart_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryGoalStorage,
    InMemoryIntentStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "GoalStorageInterface",
    "IntentStorageInterface",
    "TransactionFilter",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "MissingRecordError",
    "StaleWriteError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGoalStorage",
    "GoogleSheetsIntentStorage",
    "GoogleSheetsTransactionStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryGoalStorage",
    "InMemoryIntentStorage",
    "InMemoryTransactionStorage",
]
