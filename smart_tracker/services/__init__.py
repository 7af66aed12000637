"""Services package."""

from smart_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
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
    MissingRecordError,
    StaleWriteError,
    StorageError,
    TransactionFilter,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoalStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGoalStorage",
    "GoogleSheetsIntentStorage",
    "GoogleSheetsTransactionStorage",
    "InMemoryAuditStorage",
    "InMemoryGoalStorage",
    "InMemoryIntentStorage",
    "InMemoryTransactionStorage",
    "IntentStorageInterface",
    "MissingRecordError",
    "StaleWriteError",
    "StorageError",
    "TransactionFilter",
    "TransactionStorageInterface",
]
