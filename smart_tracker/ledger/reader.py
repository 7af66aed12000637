"""
Ledger Reader

Folds a user's transactions into monthly buckets and a cumulative
savings figure.

ALGORITHM:
1. Load every transaction of the user (no date filter)
2. Bucket by UTC calendar month, key "YYYY-MM"
3. Accumulate income and expense per bucket; remember the monthly summary
4. Month net = summary amount if present, else income - expense
5. Sum the nets in chronological order

The result may be negative. Callers that move money decide whether a
negative figure is acceptable; the reader never does.
"""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from smart_tracker.models.ledger import MonthlyAggregate, Transaction, TransactionType
from smart_tracker.services.storage import TransactionStorageInterface


logger = structlog.get_logger(__name__)


def fold_transactions(transactions: Iterable[Transaction]) -> list[MonthlyAggregate]:
    """
    Bucket transactions by month. Pure function, no I/O.

    When a month holds more than one monthly summary, the most recently
    created one wins (ties broken by id) and a warning is logged.
    """
    income: dict[str, Decimal] = {}
    expense: dict[str, Decimal] = {}
    summaries: dict[str, Transaction] = {}

    for tx in transactions:
        key = tx.month
        income.setdefault(key, Decimal("0"))
        expense.setdefault(key, Decimal("0"))

        if tx.kind == TransactionType.INCOME:
            income[key] += tx.amount
        elif tx.kind == TransactionType.EXPENSE:
            expense[key] += tx.amount
        else:
            current = summaries.get(key)
            if current is None:
                summaries[key] = tx
                continue
            logger.warning(
                "duplicate_monthly_summary",
                user_id=tx.user_id,
                month=key,
                kept=str(max(current, tx, key=_summary_rank).id),
                dropped=str(min(current, tx, key=_summary_rank).id),
            )
            summaries[key] = max(current, tx, key=_summary_rank)

    return [
        MonthlyAggregate(
            month=key,
            total_income=income[key],
            total_expense=expense[key],
            summary_amount=summaries[key].amount if key in summaries else None,
        )
        for key in sorted(income)
    ]


def _summary_rank(tx: Transaction) -> tuple:
    return (tx.created_at, str(tx.id))


class LedgerReader:
    """
    Read-side view of a user's ledger.

    Storage errors propagate unmodified.
    """

    def __init__(self, transaction_storage: TransactionStorageInterface):
        self._storage = transaction_storage

    async def monthly_aggregates(self, user_id: str) -> list[MonthlyAggregate]:
        """All months the user has activity in, oldest first."""
        transactions = await self._storage.find_transactions(user_id)
        return fold_transactions(transactions)

    async def cumulative_savings(self, user_id: str) -> Decimal:
        """All-time net savings of the user. May be negative."""
        return self._sum_nets(await self.monthly_aggregates(user_id))

    async def cumulative_savings_before(self, user_id: str, month: str) -> Decimal:
        """Net savings over the months strictly before `month` ("YYYY-MM")."""
        return self._sum_nets(await self.monthly_aggregates(user_id), before=month)

    @staticmethod
    def _sum_nets(
        aggregates: list[MonthlyAggregate],
        before: Optional[str] = None,
    ) -> Decimal:
        total = Decimal("0")
        for aggregate in aggregates:
            # "YYYY-MM" keys sort chronologically
            if before is not None and aggregate.month >= before:
                break
            total += aggregate.net
        return total
