"""Ledger package: cumulative savings, goal-linked entries, manual entries."""

from smart_tracker.ledger.reader import LedgerReader, fold_transactions
from smart_tracker.ledger.writer import GoalTransactionWriter
from smart_tracker.ledger.entries import LedgerEntryService

__all__ = [
    "GoalTransactionWriter",
    "LedgerEntryService",
    "LedgerReader",
    "fold_transactions",
]
