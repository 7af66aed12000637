"""
Goal Reconciler

Keeps every goal's cached saved_amount equal to the sum of its linked
"Saving for: <description>" transactions across create, contribute,
update and delete.

CRITICAL: update_goal is NOT atomic. When a goal's savings have to be
rewritten, the old linked transactions are deleted before the new amount
is checked against the user's cumulative savings. A rejection (or a
storage failure) after that point leaves the goal's saved amount ahead of
the ledger. To make that window detectable, a ReconciliationIntent is
recorded before the deletion and resolved only once the goal is
committed. open_intents() lists the goals that need attention and
repair_goal() resyncs them to the ledger.

All mutations of one user run under that user's lock.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

from smart_tracker.audit import AuditLogger
from smart_tracker.config import LedgerSettings, get_settings
from smart_tracker.errors import (
    AuthorizationError,
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
)
from smart_tracker.goals.locks import GoalLockRegistry, guarded_operation
from smart_tracker.ledger.reader import LedgerReader
from smart_tracker.ledger.writer import GoalTransactionWriter
from smart_tracker.models.ledger import (
    Goal,
    GoalStatus,
    GoalUpdate,
    GoalView,
    ReconciliationIntent,
    format_money,
    month_key,
    utc_now,
)
from smart_tracker.services.storage import GoalStorageInterface, IntentStorageInterface
from smart_tracker.validation import GoalInputValidator


STATUS_ORDER = {
    GoalStatus.ACTIVE: 0,
    GoalStatus.ACHIEVED: 1,
    GoalStatus.ARCHIVED: 2,
}


class GoalReconciler:
    """
    Orchestrates goal mutations against the ledger.

    Flow for a contribution:
    1. Validate → parse the amount
    2. Load → goal must exist, belong to the caller and be active
    3. Cap → never beyond the remaining amount
    4. Check → cumulative savings and the monthly-summary guard
    5. Write → one linked expense, then the goal
    """

    def __init__(
        self,
        goal_storage: GoalStorageInterface,
        reader: LedgerReader,
        writer: GoalTransactionWriter,
        intent_storage: IntentStorageInterface,
        validator: Optional[GoalInputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[GoalLockRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[LedgerSettings] = None,
    ):
        self._goals = goal_storage
        self._reader = reader
        self._writer = writer
        self._intents = intent_storage
        self._validator = validator or GoalInputValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._locks = locks or GoalLockRegistry()
        self._clock = clock
        self._settings = settings or get_settings().ledger

    def _today(self) -> date:
        return self._clock().date()

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self._settings.currency_symbol)

    async def _load_owned_goal(self, user_id: str, goal_id: UUID) -> Goal:
        goal = await self._goals.find_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Goal not found: {goal_id}", goal_id=str(goal_id))
        if goal.user_id != user_id:
            raise AuthorizationError(
                "Not authorized to modify this goal", goal_id=str(goal_id)
            )
        return goal

    # =========================================================================
    # READS
    # =========================================================================

    async def get_user_cumulative_savings(self, user_id: str) -> Decimal:
        """All-time net savings of the user."""
        return await self._reader.cumulative_savings(user_id)

    async def list_goals(self, user_id: str) -> list[GoalView]:
        """Goals of a user: active first, then by target date."""
        goals = await self._goals.list_goals(user_id)
        goals.sort(key=lambda g: (STATUS_ORDER[g.status], g.target_date))
        return [GoalView.from_goal(goal) for goal in goals]

    async def open_intents(self, user_id: str) -> list[ReconciliationIntent]:
        """Relinks that never completed, oldest first."""
        return await self._intents.list_open_intents(user_id)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_goal(
        self,
        user_id: str,
        description: Any,
        target_amount: Any,
        target_date: Any,
        icon: Optional[str] = None,
    ) -> GoalView:
        """Create an active goal with nothing saved yet."""
        async with guarded_operation(
            self._locks, self._audit_logger, "create_goal", user_id
        ) as correlation_id:
            description, target_amount, target_date = self._validator.validate_new_goal(
                description, target_amount, target_date, self._today(), icon
            )

            existing = await self._goals.find_goal_by_description(user_id, description)
            if existing is not None:
                raise ConflictError(
                    f'A goal named "{existing.description}" already exists',
                    goal_id=str(existing.id),
                )

            goal = await self._goals.insert_goal(Goal(
                user_id=user_id,
                description=description,
                target_amount=target_amount,
                target_date=target_date,
                icon=icon or self._settings.default_goal_icon,
            ))

            await self._audit_logger.log_goal_created(
                goal_id=goal.id,
                user_id=user_id,
                description=goal.description,
                target_amount=goal.target_amount,
                correlation_id=correlation_id,
            )
            return GoalView.from_goal(goal)

    # =========================================================================
    # CONTRIBUTE
    # =========================================================================

    async def contribute_to_goal(
        self,
        user_id: str,
        goal_id: Any,
        amount: Any,
    ) -> GoalView:
        """
        Move savings into a goal.

        The applied amount is capped at what the goal still needs; the
        caller sees the actual figure in the returned saved amount.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "contribute_to_goal", user_id, _as_entity(goal_id)
        ) as correlation_id:
            amount = self._validator.validate_contribution(amount)
            goal_id = self._validator.validate_id(goal_id, "goal_id")
            goal = await self._load_owned_goal(user_id, goal_id)
            if goal.status != GoalStatus.ACTIVE:
                raise ConflictError(
                    f"Goal is {goal.status.value}; only active goals accept contributions",
                    goal_id=str(goal.id),
                )

            remaining = goal.target_amount - goal.saved_amount
            if remaining <= 0:
                raise ConflictError("Goal is already fully funded", goal_id=str(goal.id))

            actual = min(amount, remaining)

            available = await self._reader.cumulative_savings(user_id)
            if actual > available:
                raise InsufficientFundsError(
                    f"Cannot contribute {self._money(actual)}. Your current total "
                    f"cumulative savings is only {self._money(available)}.",
                    requested=actual,
                    available=available,
                )

            if await self._writer.has_monthly_summary_for_current_month(user_id):
                raise ConflictError(
                    f"A monthly summary already exists for {month_key(self._clock())}. "
                    f"Goal contributions cannot be added to a closed month.",
                    goal_id=str(goal.id),
                )

            await self._writer.record_contribution(
                user_id, goal.description, actual, icon=goal.icon
            )

            saved = min(goal.saved_amount + actual, goal.target_amount)
            status = GoalStatus.ACHIEVED if saved == goal.target_amount else goal.status
            updated = await self._goals.update_goal(
                goal.model_copy(update={"saved_amount": saved, "status": status})
            )

            await self._audit_logger.log_contribution(
                goal_id=goal.id,
                user_id=user_id,
                requested=amount,
                applied=actual,
                saved_amount=updated.saved_amount,
                correlation_id=correlation_id,
            )
            return GoalView.from_goal(updated)

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update_goal(
        self,
        user_id: str,
        goal_id: Any,
        changes: GoalUpdate,
    ) -> GoalView:
        """
        Apply a partial edit to a goal and rewrite its ledger entries if needed.

        The linked transactions are rewritten (deleted, then re-created as one
        consolidated entry) when the saved amount changes, or when the
        description changes while anything is saved.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "update_goal", user_id, _as_entity(goal_id)
        ) as correlation_id:
            goal_id = self._validator.validate_id(goal_id, "goal_id")
            goal = await self._load_owned_goal(user_id, goal_id)
            parsed = self._validator.validate_goal_update(goal, changes, self._today())

            if parsed.description is not None:
                clash = await self._goals.find_goal_by_description(
                    user_id, parsed.description, exclude_id=goal.id
                )
                if clash is not None:
                    raise ConflictError(
                        f'A goal named "{clash.description}" already exists',
                        goal_id=str(clash.id),
                    )

            description = parsed.description or goal.description
            target_amount = parsed.target_amount or goal.target_amount
            target_date = parsed.target_date or goal.target_date
            status = parsed.status or goal.status
            icon = parsed.icon or goal.icon

            # Effective saved amount, with the status clamps folded in so the
            # ledger is rewritten to the value that is finally stored
            if status == GoalStatus.ACHIEVED:
                saved = target_amount
            elif parsed.saved_amount is not None:
                saved = min(parsed.saved_amount, target_amount)
            else:
                saved = min(goal.saved_amount, target_amount)
            if status == GoalStatus.ACTIVE and saved >= target_amount:
                status = GoalStatus.ACHIEVED
                saved = target_amount

            description_changed = description != goal.description
            intent = None
            if saved != goal.saved_amount or (description_changed and goal.saved_amount > 0):
                intent = await self._relink(goal, description, saved, icon, correlation_id)

            updated = await self._goals.update_goal(goal.model_copy(update={
                "description": description,
                "target_amount": target_amount,
                "target_date": target_date,
                "saved_amount": saved,
                "status": status,
                "icon": icon,
            }))

            if intent is not None:
                await self._intents.resolve_intent(intent.id)
                await self._audit_logger.log_ledger_relinked(
                    goal_id=goal.id,
                    user_id=user_id,
                    original_description=goal.description,
                    new_description=description,
                    removed_total=intent.removed_total,
                    new_amount=saved,
                    correlation_id=correlation_id,
                )

            await self._audit_logger.log_goal_updated(
                goal_id=goal.id,
                user_id=user_id,
                changes=_diff(goal, updated),
                correlation_id=correlation_id,
            )
            return GoalView.from_goal(updated)

    async def _relink(
        self,
        goal: Goal,
        description: str,
        saved: Decimal,
        icon: str,
        correlation_id: UUID,
    ) -> ReconciliationIntent:
        """
        Replace a goal's linked transactions with one entry for `saved`.

        Returns the open intent; the caller resolves it after the goal
        is committed.
        """
        user_id = goal.user_id
        prior = await self._writer.sum_contributions(user_id, goal.description)
        intent = await self._intents.record_intent(ReconciliationIntent(
            user_id=user_id,
            goal_id=goal.id,
            original_description=goal.description,
            new_description=description,
            removed_total=prior,
            target_saved_amount=saved,
        ))

        removed = await self._writer.delete_contributions(user_id, goal.description)
        if saved <= 0:
            return intent

        if removed:
            notice = (
                f' Prior linked transactions for "{goal.description}" totalling '
                f"{self._money(prior)} were removed; manual correction may be required."
            )
        else:
            notice = ""

        if await self._writer.has_monthly_summary_for_current_month(user_id):
            error = ConflictError(
                f"A monthly summary already exists for {month_key(self._clock())}, "
                f"so this goal's saved amount cannot be changed this month.{notice}",
                goal_id=str(goal.id),
                ledger_modified=bool(removed),
                intent_id=str(intent.id),
            )
            await self._abort_relink(goal, intent, removed, error.message, correlation_id)
            raise error

        available = await self._reader.cumulative_savings(user_id)
        if saved > available:
            error = InsufficientFundsError(
                f"Cannot set saved amount to {self._money(saved)}. Your available "
                f"cumulative savings is only {self._money(available)}.{notice}",
                requested=saved,
                available=available,
                ledger_modified=bool(removed),
            )
            await self._abort_relink(goal, intent, removed, error.message, correlation_id)
            raise error

        await self._writer.create_consolidated_contribution(
            user_id, description, saved, icon=icon
        )
        return intent

    async def _abort_relink(
        self,
        goal: Goal,
        intent: ReconciliationIntent,
        removed: int,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        if not removed:
            # Nothing was deleted, so the ledger still matches the goal
            await self._intents.resolve_intent(intent.id)
            return
        await self._audit_logger.log_relink_aborted(
            goal_id=goal.id,
            user_id=goal.user_id,
            intent_id=intent.id,
            reason=reason,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete_goal(self, user_id: str, goal_id: Any) -> int:
        """
        Delete a goal and its linked transactions.

        Transactions go first: a failure in between leaves an orphaned goal,
        never orphaned savings entries. Returns the number of transactions
        removed.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "delete_goal", user_id, _as_entity(goal_id)
        ) as correlation_id:
            goal_id = self._validator.validate_id(goal_id, "goal_id")
            goal = await self._load_owned_goal(user_id, goal_id)
            removed = await self._writer.delete_contributions(user_id, goal.description)
            await self._goals.delete_goal(goal.id)

            await self._audit_logger.log_goal_deleted(
                goal_id=goal.id,
                user_id=user_id,
                description=goal.description,
                transactions_removed=removed,
                correlation_id=correlation_id,
            )
            return removed

    # =========================================================================
    # REPAIR
    # =========================================================================

    async def repair_goal(self, user_id: str, intent_id: Any) -> Optional[GoalView]:
        """
        Resync a goal left behind by an interrupted relink.

        The goal's saved amount is reset to the sum of the transactions
        linked to its current description, and the intent is resolved.
        Returns None when the goal has since been deleted.
        """
        async with guarded_operation(
            self._locks, self._audit_logger, "repair_goal", user_id, _as_entity(intent_id)
        ) as correlation_id:
            intent_id = self._validator.validate_id(intent_id, "intent_id")
            intent = await self._intents.get_intent(intent_id)
            if intent is None:
                raise NotFoundError(f"Intent not found: {intent_id}")
            if intent.user_id != user_id:
                raise AuthorizationError("Not authorized to repair this goal")
            if not intent.is_open:
                raise ConflictError("This intent has already been resolved")

            goal = await self._goals.find_goal(intent.goal_id)
            if goal is None:
                await self._intents.resolve_intent(intent.id)
                return None

            ledger_total = await self._writer.sum_contributions(user_id, goal.description)
            saved = min(ledger_total, goal.target_amount)
            status = goal.status
            if status == GoalStatus.ACHIEVED and saved < goal.target_amount:
                status = GoalStatus.ACTIVE
            elif status == GoalStatus.ACTIVE and saved == goal.target_amount:
                status = GoalStatus.ACHIEVED

            updated = await self._goals.update_goal(
                goal.model_copy(update={"saved_amount": saved, "status": status})
            )
            await self._intents.resolve_intent(intent.id)

            await self._audit_logger.log_goal_repaired(
                goal_id=goal.id,
                user_id=user_id,
                intent_id=intent.id,
                saved_amount=saved,
                correlation_id=correlation_id,
            )
            return GoalView.from_goal(updated)


def _diff(before: Goal, after: Goal) -> dict[str, Any]:
    """Field-level changes between two versions of a goal, for the audit log."""
    fields = ("description", "target_amount", "target_date", "saved_amount", "status", "icon")
    changes = {}
    for field in fields:
        old, new = getattr(before, field), getattr(after, field)
        if old != new:
            changes[field] = {
                "old": getattr(old, "value", str(old)),
                "new": getattr(new, "value", str(new)),
            }
    return changes


def _as_entity(value: Any) -> Optional[UUID]:
    return value if isinstance(value, UUID) else None
