"""
Ledger Entry Service

Adds, edits and removes the user-entered side of the ledger: income and
expense transactions, and monthly summaries.

Each write is checked against the cumulative savings it would produce, so
the ledger never projects negative savings because of a manual entry.
Editing or deleting a goal contribution also moves the goal it funded,
keeping the goal's saved amount equal to its linked transactions.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog

from smart_tracker.audit import AuditLogger
from smart_tracker.config import LedgerSettings, get_settings
from smart_tracker.errors import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from smart_tracker.goals.locks import GoalLockRegistry, guarded_operation
from smart_tracker.ledger.reader import LedgerReader, fold_transactions
from smart_tracker.ledger.writer import GoalTransactionWriter
from smart_tracker.models.ledger import (
    Goal,
    GoalStatus,
    Recurrence,
    Transaction,
    TransactionType,
    ValidationIssue,
    format_money,
    utc_now,
)
from smart_tracker.services.storage import (
    GoalStorageInterface,
    TransactionFilter,
    TransactionStorageInterface,
)
from smart_tracker.validation import GoalInputValidator


logger = structlog.get_logger(__name__)


def _display_month(month: str) -> str:
    """'2026-01' -> 'January 2026'."""
    return datetime.strptime(month, "%Y-%m").strftime("%B %Y")


class LedgerEntryService:
    """Income, expense and monthly-summary entry."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        goal_storage: GoalStorageInterface,
        reader: LedgerReader,
        writer: GoalTransactionWriter,
        validator: Optional[GoalInputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[GoalLockRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[LedgerSettings] = None,
    ):
        self._transactions = transaction_storage
        self._goals = goal_storage
        self._reader = reader
        self._writer = writer
        self._validator = validator or GoalInputValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._locks = locks or GoalLockRegistry()
        self._clock = clock
        self._settings = settings or get_settings().ledger

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self._settings.currency_symbol)

    def _reserved_category(self, category: str) -> ValidationError:
        return ValidationError(
            f'Category "{category}" is reserved for goal contributions',
            issues=[ValidationIssue(
                field="category",
                issue_type="reserved",
                message="Goal savings are added through the goal itself",
                suggested_fix="Contribute to the goal instead",
            )],
        )

    def _first_breach(
        self,
        transactions: list[Transaction],
        from_month: str,
    ) -> Optional[tuple[str, Decimal]]:
        """First (month, running total) below zero at or after from_month."""
        running = Decimal("0")
        for aggregate in fold_transactions(transactions):
            running += aggregate.net
            if running < 0 and aggregate.month >= from_month:
                return aggregate.month, running
        return None

    async def _linked_goal(self, user_id: str, transaction: Transaction) -> Optional[Goal]:
        """The goal a contribution funds, if it still exists."""
        goal_description = self._writer.goal_description_for(transaction)
        if goal_description is None:
            return None
        goal = next(
            (g for g in await self._goals.list_goals(user_id)
             if g.description == goal_description),
            None,
        )
        if goal is None:
            logger.warning(
                "goal_contribution_without_goal",
                user_id=user_id,
                transaction_id=str(transaction.id),
                description=transaction.description,
            )
        return goal

    async def add_transaction(
        self,
        user_id: str,
        kind: Any,
        amount: Any,
        description: Any,
        category: Any,
        occurred_at: Any,
        icon: str = "",
        recurrence: Any = Recurrence.ONCE,
    ) -> Transaction:
        """
        Record an income or expense.

        Rejected when the month is closed by a monthly summary, or when an
        expense would leave cumulative savings negative at the end of its
        month.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "add_transaction", user_id
        ) as correlation_id:
            transaction = self._validator.validate_transaction(
                user_id, kind, amount, description, category, occurred_at, icon, recurrence
            )
            if transaction.category == self._settings.goal_savings_category:
                raise self._reserved_category(transaction.category)

            month = transaction.month
            if await self._writer.has_monthly_summary(user_id, month):
                raise ConflictError(
                    f"Cannot add individual transaction. A monthly total savings "
                    f"entry already exists for {_display_month(month)}."
                )

            if transaction.kind == TransactionType.EXPENSE:
                aggregates = await self._reader.monthly_aggregates(user_id)
                through_month = sum(
                    (a.net for a in aggregates if a.month <= month), Decimal("0")
                )
                projected = through_month - transaction.amount
                if projected < 0:
                    raise InsufficientFundsError(
                        f"Adding this expense would make cumulative savings negative "
                        f"by the end of {_display_month(month)}. Projected cumulative: "
                        f"{self._money(projected)}",
                        requested=transaction.amount,
                        available=through_month,
                    )

            stored = await self._transactions.insert_transaction(transaction)
            await self._audit_logger.log_transaction_added(
                transaction_id=stored.id,
                user_id=user_id,
                kind=stored.kind.value,
                amount=stored.amount,
                correlation_id=correlation_id,
            )
            return stored

    async def add_monthly_savings(
        self,
        user_id: str,
        month: Any,
        amount: Any,
    ) -> Transaction:
        """
        Close a month with a manually entered net savings total.

        The month must not already hold individual transactions or a summary.
        The amount may be negative, as long as cumulative savings stays
        non-negative.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "add_monthly_savings", user_id
        ) as correlation_id:
            month, amount = self._validator.validate_monthly_savings(month, amount)
            display = _display_month(month)

            in_month = await self._transactions.find_transactions(
                user_id, TransactionFilter.for_month(month)
            )
            if any(tx.kind != TransactionType.MONTHLY_SAVINGS for tx in in_month):
                raise ConflictError(
                    f"Cannot add monthly total. Individual transactions already "
                    f"exist for {display}. Please delete them first."
                )
            if in_month:
                raise ConflictError(
                    f"A monthly total savings entry already exists for {display}."
                )

            before = await self._reader.cumulative_savings_before(user_id, month)
            if before + amount < 0:
                raise InsufficientFundsError(
                    f"Adding this saving of {self._money(amount)} for {display} would "
                    f"make cumulative savings negative (to {self._money(before + amount)}). "
                    f"Current cumulative before this month is {self._money(before)}.",
                    requested=-amount,
                    available=before,
                )

            start = datetime.strptime(month, "%Y-%m").replace(tzinfo=timezone.utc)
            stored = await self._transactions.insert_transaction(Transaction(
                user_id=user_id,
                kind=TransactionType.MONTHLY_SAVINGS,
                amount=amount,
                description=f"Total Savings for {display}",
                category=self._settings.monthly_summary_category,
                icon=self._settings.monthly_summary_icon,
                occurred_at=start,
                recurrence=Recurrence.ONCE,
            ))
            await self._audit_logger.log_transaction_added(
                transaction_id=stored.id,
                user_id=user_id,
                kind=stored.kind.value,
                amount=stored.amount,
                correlation_id=correlation_id,
            )
            return stored

    async def update_transaction(
        self,
        user_id: str,
        transaction_id: Any,
        amount: Any = None,
        description: Any = None,
        category: Any = None,
        icon: Optional[str] = None,
    ) -> Transaction:
        """
        Edit a transaction's amount, description, category or icon.

        A new amount is rejected when the running cumulative total would
        dip below zero in the transaction's month or later. Editing a goal
        contribution moves the goal's saved amount by the same difference;
        its description and category stay fixed, since they are the link
        to the goal.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "update_transaction", user_id
        ) as correlation_id:
            transaction_id = self._validator.validate_id(transaction_id, "transaction_id")
            transactions = await self._transactions.find_transactions(user_id)
            target = next((tx for tx in transactions if tx.id == transaction_id), None)
            if target is None:
                raise NotFoundError(
                    "Transaction not found or not authorized for this user.",
                    transaction_id=str(transaction_id),
                )

            edited = self._validator.validate_transaction_edit(
                target, amount, description, category, icon
            )
            if edited.kind == TransactionType.MONTHLY_SAVINGS:
                edited = edited.model_copy(update={
                    "description": f"Total Savings for {_display_month(edited.month)}",
                    "category": self._settings.monthly_summary_category,
                })

            linked = self._writer.goal_description_for(target) is not None
            if linked and (
                edited.description != target.description
                or edited.category != target.category
            ):
                raise ValidationError(
                    "The description and category of a goal contribution cannot be changed",
                    issues=[ValidationIssue(
                        field="description",
                        issue_type="linked",
                        message="This transaction is linked to a goal by its description",
                        suggested_fix="Rename the goal instead",
                    )],
                )
            if (
                not linked
                and edited.category != target.category
                and edited.category == self._settings.goal_savings_category
            ):
                raise self._reserved_category(edited.category)

            delta = edited.amount - target.amount
            if delta:
                breach = self._first_breach(
                    [edited if tx.id == target.id else tx for tx in transactions],
                    target.month,
                )
                if breach is not None:
                    month, running = breach
                    raise InsufficientFundsError(
                        f"Updating amount to {self._money(edited.amount)} would make "
                        f"overall cumulative savings negative ({self._money(running)}) "
                        f"by {_display_month(month)}.",
                        requested=abs(delta),
                        available=running + abs(delta),
                    )

            goal = await self._linked_goal(user_id, target) if linked and delta else None
            if goal is not None:
                saved = goal.saved_amount + delta
                if saved < 0:
                    raise ConflictError(
                        f"Editing this contribution to {self._money(edited.amount)} "
                        f"would make the goal's saved amount negative.",
                        goal_id=str(goal.id),
                    )
                if saved > goal.target_amount:
                    raise ConflictError(
                        f'Editing this contribution to {self._money(edited.amount)} would '
                        f'take "{goal.description}" past its target of '
                        f'{self._money(goal.target_amount)}. At most '
                        f'{self._money(goal.target_amount - goal.saved_amount)} more '
                        f'can be added.',
                        goal_id=str(goal.id),
                    )

            stored = await self._transactions.update_transaction(edited)

            if goal is not None:
                status = goal.status
                if status == GoalStatus.ACTIVE and saved == goal.target_amount:
                    status = GoalStatus.ACHIEVED
                elif status == GoalStatus.ACHIEVED and saved < goal.target_amount:
                    status = GoalStatus.ACTIVE
                await self._goals.update_goal(
                    goal.model_copy(update={"saved_amount": saved, "status": status})
                )

            await self._audit_logger.log_transaction_updated(
                transaction_id=stored.id,
                user_id=user_id,
                changes=_diff(target, stored),
                goal_id=goal.id if goal else None,
                correlation_id=correlation_id,
            )
            return stored

    async def delete_transaction(self, user_id: str, transaction_id: Any) -> Transaction:
        """
        Delete one transaction and return it.

        Rejected when the running cumulative total would dip below zero in
        the transaction's month or any later month.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "delete_transaction", user_id
        ) as correlation_id:
            transaction_id = self._validator.validate_id(transaction_id, "transaction_id")
            transactions = await self._transactions.find_transactions(user_id)
            target = next((tx for tx in transactions if tx.id == transaction_id), None)
            if target is None:
                raise NotFoundError(
                    "Transaction not found or not authorized for this user.",
                    transaction_id=str(transaction_id),
                )

            breach = self._first_breach(
                [tx for tx in transactions if tx.id != transaction_id], target.month
            )
            if breach is not None:
                month, running = breach
                raise InsufficientFundsError(
                    f"Deleting this transaction would make overall cumulative "
                    f"savings negative ({self._money(running)}) by "
                    f"{_display_month(month)}.",
                    requested=target.amount,
                    available=running + target.amount,
                )

            goal = await self._linked_goal(user_id, target)

            await self._transactions.delete_transactions(
                user_id, TransactionFilter(transaction_id=target.id)
            )

            if goal is not None:
                saved = max(Decimal("0"), goal.saved_amount - target.amount)
                status = goal.status
                if status == GoalStatus.ACHIEVED and saved < goal.target_amount:
                    status = GoalStatus.ACTIVE
                await self._goals.update_goal(
                    goal.model_copy(update={"saved_amount": saved, "status": status})
                )

            await self._audit_logger.log_transaction_deleted(
                transaction_id=target.id,
                user_id=user_id,
                amount=target.amount,
                goal_id=goal.id if goal else None,
                correlation_id=correlation_id,
            )
            return target


def _diff(before: Transaction, after: Transaction) -> dict[str, Any]:
    changes = {}
    for field in ("amount", "description", "category", "icon"):
        old, new = getattr(before, field), getattr(after, field)
        if old != new:
            changes[field] = {"old": str(old), "new": str(new)}
    return changes
