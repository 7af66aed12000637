"""Tests for manual ledger entries: income, expense, monthly summaries, edits, deletion."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from smart_tracker.errors import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from smart_tracker.models.audit import AuditEventType
from smart_tracker.models.ledger import GoalStatus, Recurrence, TransactionType
from smart_tracker.services.storage import TransactionFilter

from conftest import OTHER_USER, USER, seed, utc


class TestAddTransaction:

    def test_add_income(self, app, run):
        async def scenario():
            tx = await app.entries.add_transaction(
                USER, "income", "1500.50", "Salary", "Work", "2026-01-05", icon="💼",
                recurrence="monthly",
            )
            return tx, await app.reader.cumulative_savings(USER)

        tx, cumulative = run(scenario())
        assert tx.kind == TransactionType.INCOME
        assert tx.recurrence == Recurrence.MONTHLY
        assert tx.occurred_at == datetime(2026, 1, 5, tzinfo=timezone.utc)
        assert cumulative == Decimal("1500.50")

    def test_expense_cannot_make_month_negative(self, app, run):
        async def scenario():
            await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            await app.entries.add_transaction(USER, "expense", "150", "Rent", "Home", utc(2026, 1, 20))

        with pytest.raises(InsufficientFundsError) as exc_info:
            run(scenario())
        assert "January 2026" in exc_info.value.message
        assert "-$50.00" in exc_info.value.message

    def test_expense_counts_earlier_months(self, app, run):
        async def scenario():
            await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            return await app.entries.add_transaction(
                USER, "expense", "80", "Rent", "Home", utc(2026, 2, 1)
            )

        assert run(scenario()).amount == Decimal("80")

    def test_closed_month_rejects_entries(self, app, run):
        async def scenario():
            await seed(app.transactions, "monthly_savings", "100", utc(2026, 2, 1, 0))
            await app.entries.add_transaction(USER, "income", "10", "Gift", "Other", utc(2026, 2, 14))

        with pytest.raises(ConflictError):
            run(scenario())

    def test_monthly_savings_kind_is_rejected(self, app, run):
        with pytest.raises(ValidationError):
            run(app.entries.add_transaction(
                USER, "monthly_savings", "10", "Total", "Monthly Summary", "2026-01-01"
            ))

    def test_goal_savings_category_is_reserved(self, app, run):
        with pytest.raises(ValidationError):
            run(app.entries.add_transaction(
                USER, "income", "10", "Saving for: Bike", "Goal Savings", "2026-01-01"
            ))

    def test_missing_fields(self, app, run):
        with pytest.raises(ValidationError) as exc_info:
            run(app.entries.add_transaction(USER, "income", "", " ", "", None))
        fields = {issue.field for issue in exc_info.value.issues}
        assert fields == {"amount", "description", "category", "occurred_at"}

    def test_addition_is_audited(self, app, run):
        async def scenario():
            await app.entries.add_transaction(USER, "income", "10", "Gift", "Other", "2026-01-02")
            return await app.audit.get_recent_events()

        (event,) = run(scenario())
        assert event.event_type == AuditEventType.TRANSACTION_ADDED


class TestAddMonthlySavings:

    def test_add_summary(self, app, run):
        async def scenario():
            tx = await app.entries.add_monthly_savings(USER, "2026-01", "250")
            return tx, await app.reader.cumulative_savings(USER)

        tx, cumulative = run(scenario())
        assert tx.kind == TransactionType.MONTHLY_SAVINGS
        assert tx.description == "Total Savings for January 2026"
        assert tx.category == "Monthly Summary"
        assert tx.icon == "💰"
        assert tx.occurred_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert cumulative == Decimal("250")

    def test_negative_summary_within_savings(self, app, run):
        async def scenario():
            await app.entries.add_monthly_savings(USER, "2026-01", "300")
            await app.entries.add_monthly_savings(USER, "2026-02", "-100")
            return await app.reader.cumulative_savings(USER)

        assert run(scenario()) == Decimal("200")

    def test_negative_summary_beyond_savings(self, app, run):
        async def scenario():
            await app.entries.add_monthly_savings(USER, "2026-01", "50")
            await app.entries.add_monthly_savings(USER, "2026-02", "-100")

        with pytest.raises(InsufficientFundsError) as exc_info:
            run(scenario())
        assert "Current cumulative before this month is $50.00" in exc_info.value.message

    def test_month_with_transactions(self, app, run):
        async def scenario():
            await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            await app.entries.add_monthly_savings(USER, "2026-01", "50")

        with pytest.raises(ConflictError) as exc_info:
            run(scenario())
        assert "Individual transactions already exist" in exc_info.value.message

    def test_second_summary_for_month(self, app, run):
        async def scenario():
            await app.entries.add_monthly_savings(USER, "2026-01", "50")
            await app.entries.add_monthly_savings(USER, "2026-01", "60")

        with pytest.raises(ConflictError):
            run(scenario())

    @pytest.mark.parametrize("month", ["2026-13", "2026-1", "January", None])
    def test_invalid_month(self, app, run, month):
        with pytest.raises(ValidationError):
            run(app.entries.add_monthly_savings(USER, month, "50"))


class TestDeleteTransaction:

    def test_delete_transaction(self, app, run):
        async def scenario():
            tx = await seed(app.transactions, "expense", "30", utc(2026, 1, 6))
            await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            deleted = await app.entries.delete_transaction(USER, str(tx.id))
            return deleted, tx, await app.reader.cumulative_savings(USER)

        deleted, tx, cumulative = run(scenario())
        assert deleted.id == tx.id
        assert cumulative == Decimal("100")

    def test_delete_that_drives_later_months_negative(self, app, run):
        async def scenario():
            income = await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            await seed(app.transactions, "expense", "60", utc(2026, 2, 5))
            await app.entries.delete_transaction(USER, income.id)

        with pytest.raises(InsufficientFundsError) as exc_info:
            run(scenario())
        assert "February 2026" in exc_info.value.message

    def test_delete_missing(self, app, run):
        with pytest.raises(NotFoundError):
            run(app.entries.delete_transaction(USER, uuid4()))

    def test_delete_other_users_transaction(self, app, run):
        async def scenario():
            tx = await seed(app.transactions, "income", "100", utc(2026, 1, 5), user_id=OTHER_USER)
            await app.entries.delete_transaction(USER, tx.id)

        with pytest.raises(NotFoundError):
            run(scenario())

    def test_deleting_contribution_reopens_goal(self, app, run):
        async def scenario():
            await seed(app.transactions, "income", "1000", utc(2026, 1, 5))
            goal = await app.goals.create_goal(USER, "Bike", "500", date(2026, 4, 15))
            await app.goals.contribute_to_goal(USER, goal.id, "200")
            await app.goals.contribute_to_goal(USER, goal.id, "300")
            contributions = await app.transactions.find_transactions(USER)
            last = contributions[-1]
            await app.entries.delete_transaction(USER, last.id)
            return await app.goal_storage.find_goal(goal.id)

        goal = run(scenario())
        assert goal.saved_amount == Decimal("200")
        assert goal.status == GoalStatus.ACTIVE


class TestUpdateTransaction:

    async def _contribution(self, app, saved: str, target: str = "500"):
        await seed(app.transactions, "income", "1000", utc(2026, 1, 5))
        goal = await app.goals.create_goal(USER, "Bike", target, date(2026, 4, 15))
        await app.goals.contribute_to_goal(USER, goal.id, saved)
        (tx,) = await app.transactions.find_transactions(
            USER, TransactionFilter(category="Goal Savings")
        )
        return goal, tx

    def test_update_fields(self, app, run):
        async def scenario():
            tx = await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            updated = await app.entries.update_transaction(
                USER, str(tx.id), amount="150", description=" Bonus ", icon="🎉"
            )
            events = await app.audit.get_recent_events()
            return updated, await app.reader.cumulative_savings(USER), events

        updated, cumulative, events = run(scenario())
        assert updated.amount == Decimal("150")
        assert updated.description == "Bonus"
        assert updated.category == "General"
        assert updated.icon == "🎉"
        assert cumulative == Decimal("150")
        assert events[0].event_type == AuditEventType.TRANSACTION_UPDATED
        assert set(events[0].details["changes"]) == {"amount", "description", "icon"}

    def test_amount_that_drives_later_month_negative(self, app, run):
        async def scenario():
            income = await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            await seed(app.transactions, "expense", "60", utc(2026, 2, 5))
            await app.entries.update_transaction(USER, income.id, amount="50")

        with pytest.raises(InsufficientFundsError) as exc_info:
            run(scenario())
        assert "Updating amount to $50.00" in exc_info.value.message
        assert "(-$10.00) by February 2026" in exc_info.value.message

    def test_rejected_amount_leaves_transaction_unchanged(self, app, run):
        async def scenario():
            income = await seed(app.transactions, "income", "100", utc(2026, 1, 5))
            await seed(app.transactions, "expense", "60", utc(2026, 2, 5))
            with pytest.raises(InsufficientFundsError):
                await app.entries.update_transaction(USER, income.id, amount="50")
            return await app.reader.cumulative_savings(USER)

        assert run(scenario()) == Decimal("40")

    def test_shrinking_contribution_reopens_goal(self, app, run):
        async def scenario():
            goal, tx = await self._contribution(app, "500")
            achieved = await app.goal_storage.find_goal(goal.id)
            await app.entries.update_transaction(USER, tx.id, amount="200")
            return achieved, await app.goal_storage.find_goal(goal.id)

        achieved, goal = run(scenario())
        assert achieved.status == GoalStatus.ACHIEVED
        assert goal.saved_amount == Decimal("200")
        assert goal.status == GoalStatus.ACTIVE

    def test_growing_contribution_completes_goal(self, app, run):
        async def scenario():
            goal, tx = await self._contribution(app, "300")
            await app.entries.update_transaction(USER, tx.id, amount="500")
            return await app.goal_storage.find_goal(goal.id), await app.reader.cumulative_savings(USER)

        goal, cumulative = run(scenario())
        assert goal.saved_amount == Decimal("500")
        assert goal.status == GoalStatus.ACHIEVED
        assert cumulative == Decimal("500")

    def test_contribution_cannot_pass_goal_target(self, app, run):
        async def scenario():
            goal, tx = await self._contribution(app, "300")
            with pytest.raises(ConflictError) as exc_info:
                await app.entries.update_transaction(USER, tx.id, amount="600")
            stored = await app.transactions.find_transactions(
                USER, TransactionFilter(transaction_id=tx.id)
            )
            return exc_info.value, await app.goal_storage.find_goal(goal.id), stored

        error, goal, (tx,) = run(scenario())
        assert "At most $200.00 more can be added" in error.message
        assert goal.saved_amount == Decimal("300")
        assert tx.amount == Decimal("300")

    @pytest.mark.parametrize("changes", [
        {"description": "Saving for: Car"},
        {"category": "Travel"},
    ])
    def test_contribution_link_is_fixed(self, app, run, changes):
        async def scenario():
            _, tx = await self._contribution(app, "100")
            await app.entries.update_transaction(USER, tx.id, **changes)

        with pytest.raises(ValidationError):
            run(scenario())

    def test_cannot_move_into_goal_savings_category(self, app, run):
        async def scenario():
            tx = await seed(app.transactions, "expense", "10", utc(2026, 1, 5))
            await app.entries.update_transaction(USER, tx.id, category="Goal Savings")

        with pytest.raises(ValidationError):
            run(scenario())

    def test_monthly_summary_amount(self, app, run):
        async def scenario():
            summary = await app.entries.add_monthly_savings(USER, "2026-01", "250")
            updated = await app.entries.update_transaction(USER, summary.id, amount="100")
            return updated, await app.reader.cumulative_savings(USER)

        updated, cumulative = run(scenario())
        assert updated.description == "Total Savings for January 2026"
        assert updated.category == "Monthly Summary"
        assert cumulative == Decimal("100")

    def test_monthly_summary_description_is_derived(self, app, run):
        async def scenario():
            summary = await app.entries.add_monthly_savings(USER, "2026-01", "250")
            await app.entries.update_transaction(USER, summary.id, description="Other")

        with pytest.raises(ValidationError) as exc_info:
            run(scenario())
        assert exc_info.value.issues[0].issue_type == "derived"

    def test_update_other_users_transaction(self, app, run):
        async def scenario():
            tx = await seed(app.transactions, "income", "100", utc(2026, 1, 5), user_id=OTHER_USER)
            await app.entries.update_transaction(USER, tx.id, amount="5")

        with pytest.raises(NotFoundError):
            run(scenario())
