"""
Tests for the Google Sheets backend.

The gspread worksheet is replaced by an in-memory fake, so no API calls
are made and no credentials are needed.
"""

import re
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from smart_tracker.models.audit import AuditEventBuilder
from smart_tracker.models.ledger import Goal, ReconciliationIntent, TransactionType
from smart_tracker.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsGoalStorage,
    GoogleSheetsIntentStorage,
    GoogleSheetsTransactionStorage,
    MissingRecordError,
    StaleWriteError,
    StorageError,
    TransactionFilter,
)
from smart_tracker.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    GOAL_COLUMNS,
    INTENT_COLUMNS,
    TRANSACTION_COLUMNS,
)

from conftest import USER, seed, utc


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage classes."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]
        self.deleted: list[int] = []

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def delete_rows(self, index: int):
        self.deleted.append(index)
        del self.rows[index - 1]

    def update(self, range_name=None, values=None, value_input_option=None):
        index = int(re.match(r"A(\d+)", range_name).group(1))
        self.rows[index - 1] = [str(v) for v in values[0]]

    def update_cell(self, row: int, col: int, value):
        self.rows[row - 1][col - 1] = str(value)


class FailingWorksheet(FakeWorksheet):

    def append_row(self, values, value_input_option=None):
        raise RuntimeError("quota exceeded")


class FakeClient:

    def __init__(self):
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.goals = FakeWorksheet(GOAL_COLUMNS)
        self.intents = FakeWorksheet(INTENT_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_transactions_sheet(self):
        return self.transactions

    def get_goals_sheet(self):
        return self.goals

    def get_intents_sheet(self):
        return self.intents

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeClient()


class TestTransactionSheet:

    def test_find_parses_rows(self, client, run):
        storage = GoogleSheetsTransactionStorage(client)

        async def scenario():
            await seed(storage, "income", "1000.10", utc(2026, 1, 5))
            await seed(storage, "expense", "5", utc(2026, 1, 6), user_id="someone-else")
            return await storage.find_transactions(USER)

        (tx,) = run(scenario())
        assert tx.kind == TransactionType.INCOME
        assert tx.amount == Decimal("1000.10")
        assert tx.occurred_at == utc(2026, 1, 5)

    def test_unparseable_date_is_skipped(self, client, run):
        storage = GoogleSheetsTransactionStorage(client)

        async def scenario():
            await seed(storage, "income", "100", utc(2026, 1, 5))
            client.transactions.append_row([
                str(uuid4()), USER, "income", "999", "Broken", "General", "",
                "31/31/2026", "once", "",
            ])
            return await storage.find_transactions(USER)

        assert [tx.amount for tx in run(scenario())] == [Decimal("100")]

    def test_delete_bottom_up(self, client, run):
        storage = GoogleSheetsTransactionStorage(client)

        async def scenario():
            await seed(storage, "expense", "1", utc(2026, 1, 5), description="Saving for: Bike")
            await seed(storage, "income", "2", utc(2026, 1, 6))
            await seed(storage, "expense", "3", utc(2026, 1, 7), description="Saving for: Bike")
            removed = await storage.delete_transactions(
                USER, TransactionFilter(description="Saving for: Bike")
            )
            return removed, await storage.find_transactions(USER)

        removed, remaining = run(scenario())
        assert removed == 2
        assert client.transactions.deleted == [4, 2]
        assert [tx.amount for tx in remaining] == [Decimal("2")]

    def test_month_filter(self, client, run):
        storage = GoogleSheetsTransactionStorage(client)

        async def scenario():
            await seed(storage, "income", "1", utc(2026, 1, 31, 23))
            await seed(storage, "income", "2", utc(2026, 2, 1, 0))
            await seed(storage, "income", "3", utc(2026, 2, 28, 23))
            await seed(storage, "income", "4", utc(2026, 3, 1, 0))
            return await storage.find_transactions(USER, TransactionFilter.for_month("2026-02"))

        assert [tx.amount for tx in run(scenario())] == [Decimal("2"), Decimal("3")]

    def test_month_filter_crosses_year(self):
        december = TransactionFilter.for_month("2025-12")
        assert december.occurred_from == utc(2025, 12, 1, 0)
        assert december.occurred_to == utc(2026, 1, 1, 0)

    def test_update_transaction(self, client, run):
        storage = GoogleSheetsTransactionStorage(client)

        async def scenario():
            await seed(storage, "income", "1", utc(2026, 1, 5))
            tx = await seed(storage, "income", "2", utc(2026, 1, 6))
            await storage.update_transaction(tx.model_copy(update={"amount": Decimal("20")}))
            return await storage.find_transactions(USER)

        assert [tx.amount for tx in run(scenario())] == [Decimal("1"), Decimal("20")]

    def test_update_missing_transaction(self, client, run):
        storage = GoogleSheetsTransactionStorage(client)

        async def scenario():
            tx = await seed(storage, "income", "1", utc(2026, 1, 5))
            await storage.delete_transactions(USER, TransactionFilter(transaction_id=tx.id))
            await storage.update_transaction(tx)

        with pytest.raises(MissingRecordError):
            run(scenario())


class TestGoalSheet:

    def _goal(self, **overrides) -> Goal:
        fields = dict(
            user_id=USER,
            description="New Bike",
            target_amount=Decimal("500"),
            target_date=date.today() + timedelta(days=30),
        )
        fields.update(overrides)
        return Goal(**fields)

    def test_lookup_by_description_key(self, client, run):
        storage = GoogleSheetsGoalStorage(client)

        async def scenario():
            goal = await storage.insert_goal(self._goal())
            return (
                goal,
                await storage.find_goal_by_description(USER, "  new BIKE "),
                await storage.find_goal_by_description(USER, "new bike", exclude_id=goal.id),
                await storage.find_goal_by_description(USER, "new.*"),
            )

        goal, found, excluded, pattern = run(scenario())
        assert found.id == goal.id
        assert excluded is None
        assert pattern is None

    def test_update_bumps_version(self, client, run):
        storage = GoogleSheetsGoalStorage(client)

        async def scenario():
            goal = await storage.insert_goal(self._goal())
            await storage.update_goal(goal.model_copy(update={"saved_amount": Decimal("20")}))
            return await storage.find_goal(goal.id)

        stored = run(scenario())
        assert stored.saved_amount == Decimal("20")
        assert stored.version == 1

    def test_stale_update_is_rejected(self, client, run):
        storage = GoogleSheetsGoalStorage(client)

        async def scenario():
            goal = await storage.insert_goal(self._goal())
            await storage.update_goal(goal)
            await storage.update_goal(goal)

        with pytest.raises(StaleWriteError):
            run(scenario())

    def test_update_missing_goal(self, client, run):
        storage = GoogleSheetsGoalStorage(client)
        with pytest.raises(MissingRecordError):
            run(storage.update_goal(self._goal()))

    def test_delete_goal(self, client, run):
        storage = GoogleSheetsGoalStorage(client)

        async def scenario():
            goal = await storage.insert_goal(self._goal())
            return await storage.delete_goal(goal.id), await storage.delete_goal(goal.id)

        assert run(scenario()) == (True, False)

    def test_malformed_row_raises_storage_error(self, client, run):
        storage = GoogleSheetsGoalStorage(client)
        goal_id = str(uuid4())
        client.goals.append_row([
            goal_id, USER, "Bike", "bike", "not-a-number", "0", "2026-04-15",
            "active", "", "0", "2026-01-01T00:00:00+00:00", "2026-01-01T00:00:00+00:00",
        ])

        with pytest.raises(StorageError):
            run(storage.find_goal(goal_id))
        with pytest.raises(StorageError):
            run(storage.find_goal_by_description(USER, "Bike"))


class TestIntentSheet:

    def test_resolve_intent(self, client, run):
        storage = GoogleSheetsIntentStorage(client)

        async def scenario():
            intent = await storage.record_intent(ReconciliationIntent(
                user_id=USER,
                goal_id=uuid4(),
                original_description="Bike",
                new_description="Car",
                removed_total=Decimal("300"),
                target_saved_amount=Decimal("300"),
            ))
            before = await storage.list_open_intents(USER)
            await storage.resolve_intent(intent.id)
            return before, await storage.list_open_intents(USER), await storage.get_intent(intent.id)

        before, after, stored = run(scenario())
        assert len(before) == 1
        assert after == []
        assert stored.resolved_at is not None


class TestAuditSheet:

    def test_append_and_query(self, client, run):
        storage = GoogleSheetsAuditStorage(client)
        goal_id = uuid4()
        event = AuditEventBuilder.goal_created(goal_id, USER, "Bike", "500")

        async def scenario():
            await storage.append_event(event)
            return await storage.get_events_by_entity("goal", goal_id)

        (stored,) = run(scenario())
        assert stored.event_id == event.event_id
        assert stored.details == {"description": "Bike", "target_amount": "500"}

    def test_append_failure_is_not_raised(self, client, run):
        client.audit = FailingWorksheet(AUDIT_COLUMNS)
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.system_error("test", "boom")

        assert run(storage.append_event(event)) is False
