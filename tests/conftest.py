"""
Shared fixtures.

Every service runs over the in-memory backend with a fixed clock, so the
"current month" is always March 2026. Async code is driven with
asyncio.run; no event loop plugin is needed.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from smart_tracker.models.ledger import Transaction, TransactionType
from smart_tracker.orchestrator import build_components
from smart_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryGoalStorage,
    InMemoryIntentStorage,
    InMemoryTransactionStorage,
)


FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
USER = "user-1"
OTHER_USER = "user-2"


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    def _run(coro):
        return asyncio.run(coro)
    return _run


@pytest.fixture
def app():
    """Wired services plus direct handles on their storage."""
    transactions = InMemoryTransactionStorage()
    goals = InMemoryGoalStorage()
    intents = InMemoryIntentStorage()
    audit = InMemoryAuditStorage()
    components = build_components(
        transaction_storage=transactions,
        goal_storage=goals,
        intent_storage=intents,
        audit_storage=audit,
        clock=lambda: FIXED_NOW,
    )
    return SimpleNamespace(
        goals=components.goals,
        entries=components.entries,
        reader=components.reader,
        transactions=transactions,
        goal_storage=goals,
        intents=intents,
        audit=audit,
    )


async def seed(
    storage,
    kind: str,
    amount: str,
    when: datetime,
    user_id: str = USER,
    description: str = "Seeded",
    category: str = "General",
) -> Transaction:
    """Insert a transaction directly, bypassing the entry checks."""
    return await storage.insert_transaction(Transaction(
        user_id=user_id,
        kind=TransactionType(kind),
        amount=Decimal(amount),
        description=description,
        category=category,
        occurred_at=when,
    ))


def utc(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
