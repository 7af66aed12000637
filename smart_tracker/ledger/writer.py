"""
Goal Transaction Writer

Owns the ledger side of goal linkage. A goal's savings exist in the
ledger as ordinary expense transactions:

    category    = "Goal Savings"
    description = "Saving for: <goal description>"

The description is the ONLY link between a goal and its transactions, and
it is matched exactly. Renaming a goal therefore means rewriting its
transactions (see GoalReconciler.update_goal).
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from smart_tracker.config import LedgerSettings, get_settings
from smart_tracker.models.ledger import (
    Recurrence,
    Transaction,
    TransactionType,
    month_key,
    utc_now,
)
from smart_tracker.services.storage import TransactionFilter, TransactionStorageInterface


class GoalTransactionWriter:
    """Creates, sums and deletes goal-linked transactions."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        settings: Optional[LedgerSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = transaction_storage
        self._settings = settings or get_settings().ledger
        self._clock = clock

    def contribution_description(self, goal_description: str) -> str:
        return f"{self._settings.contribution_prefix}{goal_description}"

    def _contribution_filter(self, goal_description: str) -> TransactionFilter:
        return TransactionFilter(
            kind=TransactionType.EXPENSE,
            category=self._settings.goal_savings_category,
            description=self.contribution_description(goal_description),
        )

    def goal_description_for(self, transaction: Transaction) -> Optional[str]:
        """The goal description a transaction is linked to, or None."""
        prefix = self._settings.contribution_prefix
        if (
            transaction.kind == TransactionType.EXPENSE
            and transaction.category == self._settings.goal_savings_category
            and transaction.description.startswith(prefix)
        ):
            return transaction.description[len(prefix):]
        return None

    async def sum_contributions(self, user_id: str, goal_description: str) -> Decimal:
        """Sum of the user's transactions linked to a goal description."""
        transactions = await self._storage.find_transactions(
            user_id, self._contribution_filter(goal_description)
        )
        return sum((tx.amount for tx in transactions), Decimal("0"))

    async def delete_contributions(self, user_id: str, goal_description: str) -> int:
        """Delete every transaction linked to a goal description."""
        return await self._storage.delete_transactions(
            user_id, self._contribution_filter(goal_description)
        )

    async def record_contribution(
        self,
        user_id: str,
        goal_description: str,
        amount: Decimal,
        icon: Optional[str] = None,
    ) -> Transaction:
        """Insert one expense, dated now, linked to the goal description."""
        transaction = Transaction(
            user_id=user_id,
            kind=TransactionType.EXPENSE,
            amount=amount,
            description=self.contribution_description(goal_description),
            category=self._settings.goal_savings_category,
            icon=icon or self._settings.default_contribution_icon,
            occurred_at=self._clock(),
            recurrence=Recurrence.ONCE,
        )
        return await self._storage.insert_transaction(transaction)

    async def create_consolidated_contribution(
        self,
        user_id: str,
        goal_description: str,
        amount: Decimal,
        icon: Optional[str] = None,
    ) -> Optional[Transaction]:
        """
        Insert a single transaction carrying a goal's whole saved amount.

        Nothing is written for a zero amount.
        """
        if amount <= 0:
            return None
        return await self.record_contribution(user_id, goal_description, amount, icon)

    async def has_monthly_summary(self, user_id: str, month: str) -> bool:
        """True if the user entered a monthly summary for `month` ("YYYY-MM")."""
        summaries = await self._storage.find_transactions(
            user_id,
            TransactionFilter.for_month(month, kind=TransactionType.MONTHLY_SAVINGS),
        )
        return bool(summaries)

    async def has_monthly_summary_for_current_month(self, user_id: str) -> bool:
        """
        Monthly-summary guard.

        Once a summary closes the current month, nothing may add goal
        savings to it: the summary would hide the new expense.
        """
        return await self.has_monthly_summary(user_id, month_key(self._clock()))
