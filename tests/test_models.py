"""
Tests for Smart Tracker models

Test strategy:
1. Unit tests for individual components (models, validators, reader)
2. Scenario tests for the goal and ledger services over in-memory storage
3. No real API calls in tests (the Sheets worksheet is faked)
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from smart_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from smart_tracker.models.ledger import (
    Goal,
    GoalStatus,
    GoalView,
    MonthlyAggregate,
    Transaction,
    TransactionType,
    format_money,
    month_key,
)


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_transaction_creation(self):
        tx = Transaction(
            user_id="u1",
            kind=TransactionType.INCOME,
            amount=Decimal("1000"),
            description="  Salary  ",
            category="Work",
            occurred_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
        )
        assert tx.description == "Salary"
        assert tx.month == "2026-01"

    def test_naive_datetime_is_utc(self):
        tx = Transaction(
            user_id="u1",
            kind=TransactionType.EXPENSE,
            amount=Decimal("5"),
            description="Coffee",
            category="Food",
            occurred_at=datetime(2026, 1, 31, 23, 30),
        )
        assert tx.occurred_at.tzinfo == timezone.utc
        assert tx.month == "2026-01"

    def test_month_uses_utc_not_local_offset(self):
        # 01:00 on Feb 1st at UTC+5 is still January in UTC
        local = timezone(timedelta(hours=5))
        assert month_key(datetime(2026, 2, 1, 1, 0, tzinfo=local)) == "2026-01"

    def test_income_rejects_non_positive_amount(self):
        with pytest.raises(PydanticValidationError):
            Transaction(
                user_id="u1",
                kind=TransactionType.INCOME,
                amount=Decimal("0"),
                description="Nothing",
                category="Work",
                occurred_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
            )

    def test_monthly_savings_may_be_negative(self):
        tx = Transaction(
            user_id="u1",
            kind=TransactionType.MONTHLY_SAVINGS,
            amount=Decimal("-50"),
            description="Total Savings for January 2026",
            category="Monthly Summary",
            occurred_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        assert tx.amount == Decimal("-50")

    def test_description_length_limit(self):
        with pytest.raises(PydanticValidationError):
            Transaction(
                user_id="u1",
                kind=TransactionType.EXPENSE,
                amount=Decimal("1"),
                description="x" * 101,
                category="Food",
                occurred_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
            )


class TestMonthlyAggregate:

    def test_net_without_summary(self):
        agg = MonthlyAggregate(
            month="2026-01",
            total_income=Decimal("1000"),
            total_expense=Decimal("200"),
        )
        assert not agg.has_summary
        assert agg.net == Decimal("800")

    def test_summary_overrides_net(self):
        agg = MonthlyAggregate(
            month="2026-01",
            total_income=Decimal("1000"),
            total_expense=Decimal("200"),
            summary_amount=Decimal("50"),
        )
        assert agg.net == Decimal("50")


class TestGoalModels:
    """Tests for Goal and GoalView."""

    def _goal(self, **overrides) -> Goal:
        fields = dict(
            user_id="u1",
            description="Bike",
            target_amount=Decimal("500"),
            target_date=date(2026, 4, 15),
        )
        fields.update(overrides)
        return Goal(**fields)

    def test_saved_cannot_exceed_target(self):
        with pytest.raises(PydanticValidationError):
            self._goal(saved_amount=Decimal("600"))

    def test_achieved_must_be_fully_funded(self):
        with pytest.raises(PydanticValidationError):
            self._goal(saved_amount=Decimal("100"), status=GoalStatus.ACHIEVED)

    def test_description_key_is_case_insensitive(self):
        assert self._goal(description="  New BIKE ").description_key == "new bike"

    def test_goal_view_progress(self):
        view = GoalView.from_goal(self._goal(saved_amount=Decimal("100")))
        assert view.progress == Decimal("20.00")
        assert view.remaining_amount == Decimal("400")

    def test_goal_view_progress_rounds_to_two_places(self):
        view = GoalView.from_goal(self._goal(
            target_amount=Decimal("3"), saved_amount=Decimal("1")
        ))
        assert view.progress == Decimal("33.33")


class TestFormatMoney:

    def test_positive(self):
        assert format_money(Decimal("1000")) == "$1,000.00"

    def test_negative(self):
        assert format_money(Decimal("-5.005")) == "-$5.01"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            description="Goal created: Bike",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo is not None

    def test_audit_event_to_log_dict(self):
        goal_id = uuid4()
        event = AuditEventBuilder.goal_created(goal_id, "u1", "Bike", "500")
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "goal_created"
        assert log_dict["entity_id"] == str(goal_id)
        assert log_dict["details"]["target_amount"] == "500"

    def test_audit_event_to_sheets_row(self):
        event = AuditEventBuilder.transaction_added(uuid4(), "u1", "income", "10")
        row = event.to_sheets_row()

        assert len(row) == 12
        assert row[2] == "transaction_added"
        assert row[4] == "u1"

    def test_monthly_summary_has_own_event_type(self):
        event = AuditEventBuilder.transaction_added(uuid4(), "u1", "monthly_savings", "10")
        assert event.event_type == AuditEventType.MONTHLY_SUMMARY_ADDED

    def test_rejection_is_warning(self):
        event = AuditEventBuilder.operation_rejected(
            "contribute_to_goal", "u1", "ConflictError", "Goal is archived"
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "ConflictError"

    def test_relink_aborted_is_error(self):
        event = AuditEventBuilder.ledger_relink_aborted(uuid4(), "u1", uuid4(), "no funds")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "no funds"
