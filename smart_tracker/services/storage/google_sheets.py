"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the default storage backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No multi-row transactions (callers order writes and keep an intent log)
- Limited query capabilities (we filter in Python)

Connection and read calls are retried with backoff. Writes are NOT
retried: a retried append whose first attempt actually landed would
double-count money in the ledger.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from smart_tracker.config import get_settings
from smart_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from smart_tracker.models.ledger import (
    Goal,
    GoalStatus,
    ReconciliationIntent,
    Recurrence,
    Transaction,
    TransactionType,
    normalize_description,
    utc_now,
)
from smart_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    GoalStorageInterface,
    IntentStorageInterface,
    MissingRecordError,
    StaleWriteError,
    StorageError,
    TransactionFilter,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "kind",
    "amount",
    "description",
    "category",
    "icon",
    "occurred_at",
    "recurrence",
    "created_at",
]

# Column mappings for Goals sheet
GOAL_COLUMNS = [
    "id",
    "user_id",
    "description",
    "description_key",
    "target_amount",
    "saved_amount",
    "target_date",
    "status",
    "icon",
    "version",
    "created_at",
    "updated_at",
]

# Column mappings for ReconciliationIntents sheet
INTENT_COLUMNS = [
    "id",
    "user_id",
    "goal_id",
    "original_description",
    "new_description",
    "removed_total",
    "target_saved_amount",
    "created_at",
    "resolved_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 5000
        )

    def get_goals_sheet(self) -> gspread.Worksheet:
        """Get or create the Goals worksheet."""
        return self._get_or_create_sheet(
            self._settings.goals_sheet_name, GOAL_COLUMNS, 500
        )

    def get_intents_sheet(self) -> gspread.Worksheet:
        """Get or create the ReconciliationIntents worksheet."""
        return self._get_or_create_sheet(
            self._settings.intents_sheet_name, INTENT_COLUMNS, 500
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
def _read_rows(sheet: gspread.Worksheet) -> list[list]:
    """All data rows of a sheet, header excluded."""
    return sheet.get_all_values()[1:]


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row. Amounts are stored as Decimal strings.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            str(tx.id),
            tx.user_id,
            tx.kind.value,
            str(tx.amount),
            tx.description,
            tx.category,
            tx.icon,
            tx.occurred_at.isoformat(),
            tx.recurrence.value,
            tx.created_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Optional[Transaction]:
        """
        Convert a spreadsheet row to a Transaction.

        Returns None for a row whose date cannot be parsed; such rows are
        left out of every ledger computation.
        """
        try:
            occurred_at = datetime.fromisoformat(_cell(row, 7))
        except ValueError:
            logger.warning(
                "transaction_date_unparseable",
                transaction_id=_cell(row, 0),
                raw_date=_cell(row, 7),
            )
            return None

        created_raw = _cell(row, 9)
        return Transaction(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1),
            kind=TransactionType(_cell(row, 2)),
            amount=Decimal(_cell(row, 3)),
            description=_cell(row, 4),
            category=_cell(row, 5),
            icon=_cell(row, 6),
            occurred_at=occurred_at,
            recurrence=Recurrence(_cell(row, 8, Recurrence.ONCE.value)),
            created_at=datetime.fromisoformat(created_raw) if created_raw else occurred_at,
        )

    def _parse_rows(self, rows: list[list], user_id: str) -> list[tuple[int, Transaction]]:
        """(sheet row number, transaction) pairs for one user's valid rows."""
        parsed = []
        for idx, row in enumerate(rows, start=2):  # Row 1 is header
            if not row or not row[0] or _cell(row, 1) != user_id:
                continue
            try:
                tx = self._row_to_transaction(row)
            except Exception as e:
                logger.warning(
                    "transaction_row_malformed",
                    row_number=idx,
                    error=str(e),
                )
                continue
            if tx is not None:
                parsed.append((idx, tx))
        return parsed

    async def find_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """Find a user's transactions."""
        filter = filter or TransactionFilter()
        try:
            sheet = self._client.get_transactions_sheet()
            rows = _read_rows(sheet)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read transactions: {e}")

        return [
            tx for _, tx in self._parse_rows(rows, user_id)
            if filter.matches(tx)
        ]

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """Append a transaction row."""
        try:
            sheet = self._client.get_transactions_sheet()
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return transaction
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """Rewrite the row holding the transaction's ID."""
        try:
            sheet = self._client.get_transactions_sheet()
            rows = _read_rows(sheet)
            for idx, row in enumerate(rows, start=2):
                if row and row[0] == str(transaction.id):
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[self._transaction_to_row(transaction)],
                        value_input_option="RAW",
                    )
                    return transaction
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")
        raise MissingRecordError(f"Transaction not found: {transaction.id}")

    async def delete_transactions(
        self,
        user_id: str,
        filter: TransactionFilter,
    ) -> int:
        """Delete matching rows, bottom-up so row numbers stay valid."""
        try:
            sheet = self._client.get_transactions_sheet()
            rows = _read_rows(sheet)
            doomed = [
                idx for idx, tx in self._parse_rows(rows, user_id)
                if filter.matches(tx)
            ]
            for idx in reversed(doomed):
                sheet.delete_rows(idx)
            return len(doomed)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transactions: {e}")


class GoogleSheetsGoalStorage(GoalStorageInterface):
    """
    Google Sheets implementation of goal storage.

    The normalized description key is stored in its own column so
    uniqueness lookups never evaluate user input as a pattern.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _goal_to_row(self, goal: Goal) -> list:
        """Convert a Goal to a spreadsheet row."""
        return [
            str(goal.id),
            goal.user_id,
            goal.description,
            goal.description_key,
            str(goal.target_amount),
            str(goal.saved_amount),
            goal.target_date.isoformat(),
            goal.status.value,
            goal.icon,
            str(goal.version),
            goal.created_at.isoformat(),
            goal.updated_at.isoformat(),
        ]

    def _row_to_goal(self, row: list) -> Goal:
        """Convert a spreadsheet row to a Goal."""
        return Goal(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1),
            description=_cell(row, 2),
            target_amount=Decimal(_cell(row, 4)),
            saved_amount=Decimal(_cell(row, 5, "0")),
            target_date=date.fromisoformat(_cell(row, 6)),
            status=GoalStatus(_cell(row, 7, GoalStatus.ACTIVE.value)),
            icon=_cell(row, 8),
            version=int(_cell(row, 9, "0")),
            created_at=datetime.fromisoformat(_cell(row, 10)),
            updated_at=datetime.fromisoformat(_cell(row, 11)),
        )

    def _load(self) -> tuple[gspread.Worksheet, list[tuple[int, list]]]:
        try:
            sheet = self._client.get_goals_sheet()
            rows = _read_rows(sheet)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read goals: {e}")
        return sheet, [
            (idx, row) for idx, row in enumerate(rows, start=2)
            if row and row[0]
        ]

    def _parse_goal(self, idx: int, row: list) -> Goal:
        try:
            return self._row_to_goal(row)
        except Exception as e:
            raise StorageError(f"Malformed goal row {idx}: {e}")

    async def find_goal(self, goal_id: UUID) -> Optional[Goal]:
        """Retrieve a goal by its ID."""
        _, rows = self._load()
        for idx, row in rows:
            if row[0] == str(goal_id):
                return self._parse_goal(idx, row)
        return None

    async def find_goal_by_description(
        self,
        user_id: str,
        description: str,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Goal]:
        """Find by normalized description key."""
        key = normalize_description(description)
        excluded = str(exclude_id) if exclude_id else None
        _, rows = self._load()
        for idx, row in rows:
            if row[0] == excluded or _cell(row, 1) != user_id:
                continue
            if _cell(row, 3) == key:
                return self._parse_goal(idx, row)
        return None

    async def list_goals(self, user_id: str) -> list[Goal]:
        """All goals of a user."""
        _, rows = self._load()
        goals = []
        for idx, row in rows:
            if _cell(row, 1) != user_id:
                continue
            try:
                goals.append(self._row_to_goal(row))
            except Exception as e:
                logger.warning("goal_row_malformed", row_number=idx, error=str(e))
        return goals

    async def insert_goal(self, goal: Goal) -> Goal:
        """Append a goal row."""
        try:
            sheet = self._client.get_goals_sheet()
            sheet.append_row(self._goal_to_row(goal), value_input_option="RAW")
            return goal
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save goal: {e}")

    async def update_goal(self, goal: Goal) -> Goal:
        """Rewrite a goal row after checking its version."""
        sheet, rows = self._load()
        for idx, row in rows:
            if row[0] != str(goal.id):
                continue
            stored_version = int(_cell(row, 9, "0"))
            if stored_version != goal.version:
                raise StaleWriteError(
                    f"Goal {goal.id} is at version {stored_version}, "
                    f"write was based on version {goal.version}"
                )
            updated = goal.model_copy(
                update={"version": goal.version + 1, "updated_at": utc_now()}
            )
            try:
                sheet.update(
                    range_name=f"A{idx}",
                    values=[self._goal_to_row(updated)],
                    value_input_option="RAW",
                )
            except Exception as e:
                raise StorageError(f"Failed to update goal: {e}")
            return updated

        raise MissingRecordError(f"Goal not found: {goal.id}")

    async def delete_goal(self, goal_id: UUID) -> bool:
        """Delete a goal row by ID."""
        sheet, rows = self._load()
        for idx, row in rows:
            if row[0] == str(goal_id):
                try:
                    sheet.delete_rows(idx)
                except Exception as e:
                    raise StorageError(f"Failed to delete goal: {e}")
                return True
        return False


class GoogleSheetsIntentStorage(IntentStorageInterface):
    """Google Sheets implementation of the reconciliation intent log."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _intent_to_row(self, intent: ReconciliationIntent) -> list:
        return [
            str(intent.id),
            intent.user_id,
            str(intent.goal_id),
            intent.original_description,
            intent.new_description,
            str(intent.removed_total),
            str(intent.target_saved_amount),
            intent.created_at.isoformat(),
            intent.resolved_at.isoformat() if intent.resolved_at else "",
        ]

    def _row_to_intent(self, row: list) -> ReconciliationIntent:
        resolved_raw = _cell(row, 8)
        return ReconciliationIntent(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1),
            goal_id=UUID(_cell(row, 2)),
            original_description=_cell(row, 3),
            new_description=_cell(row, 4),
            removed_total=Decimal(_cell(row, 5, "0")),
            target_saved_amount=Decimal(_cell(row, 6, "0")),
            created_at=datetime.fromisoformat(_cell(row, 7)),
            resolved_at=datetime.fromisoformat(resolved_raw) if resolved_raw else None,
        )

    def _load(self) -> tuple[gspread.Worksheet, list[tuple[int, list]]]:
        try:
            sheet = self._client.get_intents_sheet()
            rows = _read_rows(sheet)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read intents: {e}")
        return sheet, [
            (idx, row) for idx, row in enumerate(rows, start=2)
            if row and row[0]
        ]

    async def record_intent(self, intent: ReconciliationIntent) -> ReconciliationIntent:
        try:
            sheet = self._client.get_intents_sheet()
            sheet.append_row(self._intent_to_row(intent), value_input_option="RAW")
            return intent
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to record intent: {e}")

    async def resolve_intent(self, intent_id: UUID) -> bool:
        sheet, rows = self._load()
        resolved_col = INTENT_COLUMNS.index("resolved_at") + 1
        for idx, row in rows:
            if row[0] == str(intent_id):
                try:
                    sheet.update_cell(idx, resolved_col, utc_now().isoformat())
                except Exception as e:
                    raise StorageError(f"Failed to resolve intent: {e}")
                return True
        return False

    async def get_intent(self, intent_id: UUID) -> Optional[ReconciliationIntent]:
        _, rows = self._load()
        for _, row in rows:
            if row[0] == str(intent_id):
                return self._row_to_intent(row)
        return None

    async def list_open_intents(self, user_id: str) -> list[ReconciliationIntent]:
        _, rows = self._load()
        intents = [
            self._row_to_intent(row)
            for _, row in rows
            if _cell(row, 1) == user_id and not _cell(row, 8)
        ]
        intents.sort(key=lambda i: i.created_at)
        return intents


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_code=_cell(row, 10) or None,
            error_message=_cell(row, 11) or None,
        )

    def _load_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            rows = _read_rows(sheet)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.error(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._load_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = self._load_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
