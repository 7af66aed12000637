"""
Goal and Ledger Input Validation

DESIGN DECISION: Every raw input is parsed and checked here, BEFORE any
storage call. Checks that need storage (description collisions, funds,
monthly summaries) belong to the reconciler and the entry service.

Checks for one request are collected into a list of ValidationIssue and
raised together, so a form with three bad fields reports all three.

IMPORTANT: Validation NEVER silently fixes issues. Clamping a saved amount
to the target is a business rule applied later, not a repair.
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from smart_tracker.config import Settings, get_settings
from smart_tracker.errors import ValidationError
from smart_tracker.models.ledger import (
    Goal,
    GoalStatus,
    GoalUpdate,
    Recurrence,
    Transaction,
    TransactionType,
    ValidationIssue,
    ensure_utc,
)


MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


class ParsedGoalUpdate(BaseModel):
    """A GoalUpdate after parsing. None still means "not supplied"."""

    description: Optional[str] = None
    target_amount: Optional[Decimal] = None
    target_date: Optional[date] = None
    saved_amount: Optional[Decimal] = None
    status: Optional[GoalStatus] = None
    icon: Optional[str] = None


def _raise_if_errors(issues: list[ValidationIssue], message: str) -> None:
    errors = [issue for issue in issues if issue.severity == "error"]
    if errors:
        detail = "; ".join(issue.message for issue in errors)
        raise ValidationError(f"{message}: {detail}", issues=issues)


class GoalInputValidator:
    """
    Parses and validates goal and transaction inputs.

    Amounts accept Decimal, int, float or numeric strings. Dates accept
    date, datetime or ISO-8601 strings.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._app = settings.app
        self._ledger = settings.ledger

    # =========================================================================
    # FIELD PARSERS
    # Each appends to `issues` and returns None when the value is unusable.
    # =========================================================================

    def _parse_amount(
        self,
        value: Any,
        field: str,
        issues: list[ValidationIssue],
        allow_zero: bool = False,
        allow_negative: bool = False,
    ) -> Optional[Decimal]:
        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field} is required",
            ))
            return None

        if isinstance(value, bool):
            amount = None
        else:
            try:
                amount = Decimal(str(value).strip())
            except (InvalidOperation, ValueError):
                amount = None

        if amount is None or not amount.is_finite():
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field} must be a number, got {value!r}",
                suggested_fix="Enter an amount such as 250 or 99.50",
            ))
            return None

        if allow_negative:
            return amount
        if amount < 0 or (amount == 0 and not allow_zero):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=(
                    f"{field} cannot be negative" if allow_zero
                    else f"{field} must be greater than zero"
                ),
            ))
            return None
        return amount

    def _parse_date(
        self,
        value: Any,
        field: str,
        issues: list[ValidationIssue],
    ) -> Optional[date]:
        if isinstance(value, datetime):
            return ensure_utc(value).date()
        if isinstance(value, date):
            return value
        if isinstance(value, str) and value.strip():
            text = value.strip()
            try:
                return date.fromisoformat(text)
            except ValueError:
                pass
            try:
                return ensure_utc(datetime.fromisoformat(text)).date()
            except ValueError:
                pass

        issues.append(ValidationIssue(
            field=field,
            issue_type="invalid_value" if value else "missing",
            message=f"{field} must be a date (YYYY-MM-DD), got {value!r}",
        ))
        return None

    def _parse_datetime(
        self,
        value: Any,
        field: str,
        issues: list[ValidationIssue],
    ) -> Optional[datetime]:
        if isinstance(value, datetime):
            return ensure_utc(value)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if isinstance(value, str) and value.strip():
            try:
                return ensure_utc(datetime.fromisoformat(value.strip()))
            except ValueError:
                pass

        issues.append(ValidationIssue(
            field=field,
            issue_type="invalid_value" if value else "missing",
            message=f"{field} must be a date or ISO-8601 timestamp, got {value!r}",
        ))
        return None

    def _parse_text(
        self,
        value: Any,
        field: str,
        max_length: int,
        issues: list[ValidationIssue],
    ) -> Optional[str]:
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field} cannot be empty",
            ))
            return None
        if len(text) > max_length:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"{field} cannot be more than {max_length} characters",
            ))
            return None
        return text

    def _parse_goal_description(
        self,
        value: Any,
        issues: list[ValidationIssue],
    ) -> Optional[str]:
        # The linked transactions carry the prefix, and must fit too
        limit = self._app.max_description_length - len(self._ledger.contribution_prefix)
        return self._parse_text(value, "description", limit, issues)

    def _parse_status(
        self,
        value: Any,
        issues: list[ValidationIssue],
    ) -> Optional[GoalStatus]:
        try:
            return GoalStatus(str(getattr(value, "value", value)).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in GoalStatus)
            issues.append(ValidationIssue(
                field="status",
                issue_type="invalid_value",
                message=f"status must be one of {allowed}, got {value!r}",
            ))
            return None

    def _check_future(
        self,
        target_date: date,
        today: date,
        issues: list[ValidationIssue],
    ) -> None:
        if target_date <= today:
            issues.append(ValidationIssue(
                field="target_date",
                issue_type="past_date",
                message=f"target_date ({target_date}) must be after today ({today})",
                suggested_fix="Pick a date in the future",
            ))

    def _check_icon(self, icon: Optional[str], issues: list[ValidationIssue]) -> None:
        if icon and len(icon) > 5:
            issues.append(ValidationIssue(
                field="icon",
                issue_type="too_long",
                message="icon cannot be more than 5 characters",
            ))

    # =========================================================================
    # REQUEST VALIDATORS
    # =========================================================================

    def validate_new_goal(
        self,
        description: Any,
        target_amount: Any,
        target_date: Any,
        today: date,
        icon: Optional[str] = None,
    ) -> tuple[str, Decimal, date]:
        """Validate a create-goal request. Returns parsed values."""
        issues: list[ValidationIssue] = []
        self._check_icon(icon, issues)
        parsed_description = self._parse_goal_description(description, issues)
        parsed_amount = self._parse_amount(target_amount, "target_amount", issues)
        parsed_date = self._parse_date(target_date, "target_date", issues)
        if parsed_date is not None:
            self._check_future(parsed_date, today, issues)

        _raise_if_errors(issues, "Invalid goal")
        return parsed_description, parsed_amount, parsed_date

    def validate_contribution(self, amount: Any) -> Decimal:
        issues: list[ValidationIssue] = []
        parsed = self._parse_amount(amount, "amount", issues)
        _raise_if_errors(issues, "Invalid contribution")
        return parsed

    def validate_goal_update(
        self,
        goal: Goal,
        changes: GoalUpdate,
        today: date,
    ) -> ParsedGoalUpdate:
        """
        Validate a partial goal update against the goal's current state.

        Target date rules:
        - A supplied date must be in the future, unless the goal ends up
          achieved or archived
        - Moving an achieved or archived goal back to active requires a
          supplied future date
        """
        issues: list[ValidationIssue] = []
        parsed = ParsedGoalUpdate(icon=changes.icon)

        if changes.description is not None:
            parsed.description = self._parse_goal_description(changes.description, issues)
        if changes.target_amount is not None:
            parsed.target_amount = self._parse_amount(
                changes.target_amount, "target_amount", issues
            )
        if changes.saved_amount is not None:
            parsed.saved_amount = self._parse_amount(
                changes.saved_amount, "saved_amount", issues, allow_zero=True
            )
        if changes.status is not None:
            parsed.status = self._parse_status(changes.status, issues)
        if changes.target_date is not None:
            parsed.target_date = self._parse_date(changes.target_date, "target_date", issues)

        new_status = parsed.status or goal.status
        if new_status == GoalStatus.ACTIVE:
            if parsed.target_date is not None:
                self._check_future(parsed.target_date, today, issues)
            elif goal.status != GoalStatus.ACTIVE and changes.target_date is None:
                issues.append(ValidationIssue(
                    field="target_date",
                    issue_type="missing",
                    message=(
                        f"Reactivating a {goal.status.value} goal requires "
                        f"a new target date in the future"
                    ),
                ))

        _raise_if_errors(issues, "Invalid goal update")
        return parsed

    def validate_transaction(
        self,
        user_id: str,
        kind: Any,
        amount: Any,
        description: Any,
        category: Any,
        occurred_at: Any,
        icon: Optional[str] = None,
        recurrence: Any = Recurrence.ONCE,
    ) -> Transaction:
        """Validate a regular income/expense entry and build it."""
        issues: list[ValidationIssue] = []

        parsed_kind = None
        try:
            parsed_kind = TransactionType(str(getattr(kind, "value", kind)).strip().lower())
        except ValueError:
            pass
        if parsed_kind not in (TransactionType.INCOME, TransactionType.EXPENSE):
            issues.append(ValidationIssue(
                field="kind",
                issue_type="invalid_value",
                message=f"kind must be income or expense, got {kind!r}",
                suggested_fix="Use add_monthly_savings for monthly summaries",
            ))

        parsed_recurrence = None
        try:
            parsed_recurrence = Recurrence(str(getattr(recurrence, "value", recurrence)))
        except ValueError:
            issues.append(ValidationIssue(
                field="recurrence",
                issue_type="invalid_value",
                message=f"recurrence must be one of {', '.join(r.value for r in Recurrence)}",
            ))

        parsed_amount = self._parse_amount(amount, "amount", issues)
        parsed_description = self._parse_text(
            description, "description", self._app.max_description_length, issues
        )
        parsed_category = self._parse_text(
            category, "category", self._app.max_category_length, issues
        )
        parsed_occurred = self._parse_datetime(occurred_at, "occurred_at", issues)

        self._check_icon(icon, issues)

        _raise_if_errors(issues, "Invalid transaction")
        return Transaction(
            user_id=user_id,
            kind=parsed_kind,
            amount=parsed_amount,
            description=parsed_description,
            category=parsed_category,
            icon=icon or "",
            occurred_at=parsed_occurred,
            recurrence=parsed_recurrence,
        )

    def validate_transaction_edit(
        self,
        transaction: Transaction,
        amount: Any = None,
        description: Any = None,
        category: Any = None,
        icon: Optional[str] = None,
    ) -> Transaction:
        """
        Apply an edit to a stored transaction and return the edited copy.

        None leaves a field unchanged. A monthly summary only takes a new
        amount (which may be negative); its description and category are
        derived from its month.
        """
        issues: list[ValidationIssue] = []
        summary = transaction.kind == TransactionType.MONTHLY_SAVINGS
        updates: dict[str, Any] = {}

        if amount is not None:
            updates["amount"] = self._parse_amount(
                amount, "amount", issues, allow_negative=summary
            )

        if summary:
            for field, value in (("description", description), ("category", category), ("icon", icon)):
                if value is not None:
                    issues.append(ValidationIssue(
                        field=field,
                        issue_type="derived",
                        message=f"{field} of a monthly summary cannot be set directly",
                    ))
        else:
            if description is not None:
                updates["description"] = self._parse_text(
                    description, "description", self._app.max_description_length, issues
                )
            if category is not None:
                updates["category"] = self._parse_text(
                    category, "category", self._app.max_category_length, issues
                )
            if icon is not None:
                self._check_icon(icon, issues)
                updates["icon"] = icon

        _raise_if_errors(issues, "Invalid transaction edit")
        return transaction.model_copy(update=updates)

    def validate_monthly_savings(self, month: Any, amount: Any) -> tuple[str, Decimal]:
        """Validate a monthly summary. The amount may be negative."""
        issues: list[ValidationIssue] = []

        parsed_month = None
        match = MONTH_PATTERN.match(month.strip()) if isinstance(month, str) else None
        if match and 1 <= int(match.group(2)) <= 12:
            parsed_month = match.group(0)
        else:
            issues.append(ValidationIssue(
                field="month",
                issue_type="invalid_value",
                message=f"month must be YYYY-MM, got {month!r}",
            ))

        parsed_amount = self._parse_amount(amount, "amount", issues, allow_negative=True)
        _raise_if_errors(issues, "Invalid monthly summary")
        return parsed_month, parsed_amount

    def validate_id(self, value: Any, field: str) -> UUID:
        """Parse an identifier passed as a UUID or its string form."""
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            raise ValidationError(
                f"Invalid {field}: {value!r}",
                issues=[ValidationIssue(
                    field=field,
                    issue_type="invalid_value",
                    message=f"{field} is not a valid identifier",
                )],
            )
