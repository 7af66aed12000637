"""
Core Data Models for the Savings Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce the ledger and goal invariants at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always Decimal. Binary floats drift across
repeated additions, and a goal's saved amount must equal the sum of its
ledger entries exactly.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_key(value: datetime) -> str:
    """`YYYY-MM` bucket key of a datetime, in UTC."""
    value = ensure_utc(value)
    return f"{value.year:04d}-{value.month:02d}"


def normalize_description(description: str) -> str:
    """Key used for case-insensitive description uniqueness."""
    return description.strip().casefold()


def format_money(amount: Decimal, symbol: str = "$") -> str:
    """Two-place presentation of an amount, for messages only."""
    rounded = amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if rounded < 0:
        return f"-{symbol}{-rounded:,.2f}"
    return f"{symbol}{rounded:,.2f}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Kinds of ledger entries.

    MONTHLY_SAVINGS is a manually entered total that REPLACES the
    income/expense computation for its calendar month.
    """
    INCOME = "income"
    EXPENSE = "expense"
    MONTHLY_SAVINGS = "monthly_savings"


class Recurrence(str, Enum):
    """Recurrence tag. Informational only, nothing is scheduled from it."""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class GoalStatus(str, Enum):
    """
    Goal lifecycle status.

    active -> achieved happens automatically when the goal is fully funded.
    active <-> archived is a direct edit.
    """
    ACTIVE = "active"
    ACHIEVED = "achieved"
    ARCHIVED = "archived"


# =============================================================================
# LEDGER
# =============================================================================

class Transaction(BaseModel):
    """
    A single financial event in a user's ledger.

    Goal contributions are ordinary expenses whose category and
    description follow the "Saving for: <goal>" convention.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning user"
    )
    kind: TransactionType
    amount: Decimal = Field(
        ...,
        description="Amount; positive for income/expense, any sign for monthly savings"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=50,
    )
    icon: str = Field(
        default="",
        max_length=5,
    )
    occurred_at: datetime = Field(
        ...,
        description="When the transaction happened (UTC)"
    )
    recurrence: Recurrence = Recurrence.ONCE
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was written"
    )

    @field_validator('occurred_at', 'created_at')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_amount(self) -> 'Transaction':
        """Income and expense amounts must be strictly positive."""
        if self.kind != TransactionType.MONTHLY_SAVINGS and self.amount <= 0:
            raise ValueError(
                f"Amount must be positive for {self.kind.value} transactions"
            )
        return self

    @property
    def month(self) -> str:
        return month_key(self.occurred_at)


class MonthlyAggregate(BaseModel):
    """Income/expense totals for one calendar month of one user."""

    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="YYYY-MM (UTC)"
    )
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    summary_amount: Optional[Decimal] = Field(
        default=None,
        description="Manual monthly total, if one was entered"
    )

    @property
    def has_summary(self) -> bool:
        return self.summary_amount is not None

    @property
    def net(self) -> Decimal:
        """The month's contribution to cumulative savings."""
        if self.summary_amount is not None:
            return self.summary_amount
        return self.total_income - self.total_expense


# =============================================================================
# GOALS
# =============================================================================

class Goal(BaseModel):
    """
    A savings target owned by one user.

    CRITICAL: saved_amount is a cache. After every mutation it must equal
    the sum of the owner's "Saving for: <description>" transactions.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique goal ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique per user, case-insensitive"
    )
    target_amount: Decimal = Field(
        ...,
        gt=0,
    )
    saved_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
    )
    target_date: date
    status: GoalStatus = GoalStatus.ACTIVE
    icon: str = Field(
        default="🎯",
        max_length=5,
    )
    version: int = Field(
        default=0,
        ge=0,
        description="Bumped on every write, for optimistic concurrency"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_funding(self) -> 'Goal':
        """Saved never exceeds target; achieved means exactly funded."""
        if self.saved_amount > self.target_amount:
            raise ValueError("Saved amount cannot exceed target amount")
        if self.status == GoalStatus.ACHIEVED and self.saved_amount != self.target_amount:
            raise ValueError("An achieved goal must be exactly funded")
        return self

    @property
    def description_key(self) -> str:
        return normalize_description(self.description)


class GoalView(Goal):
    """A goal as returned to callers, with computed progress fields."""

    progress: Decimal = Field(
        ...,
        ge=0,
        le=100,
        description="Percent funded, two places"
    )
    remaining_amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount still needed to reach the target"
    )

    @classmethod
    def from_goal(cls, goal: Goal) -> 'GoalView':
        progress = min(goal.saved_amount / goal.target_amount * HUNDRED, HUNDRED)
        return cls(
            **goal.model_dump(),
            progress=progress.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            remaining_amount=max(Decimal("0"), goal.target_amount - goal.saved_amount),
        )


class GoalUpdate(BaseModel):
    """
    Partial goal update request.

    Every field is optional; None means "not supplied". Amounts and dates
    may arrive as raw strings from a form and are parsed by the validator.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: Optional[str] = None
    target_amount: Optional[Union[Decimal, str]] = None
    target_date: Optional[Union[date, str]] = None
    saved_amount: Optional[Union[Decimal, str]] = None
    status: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=5)


class ReconciliationIntent(BaseModel):
    """
    Compensating-action record for a goal relink.

    Written BEFORE a goal's linked transactions are deleted and resolved
    AFTER the replacement state is committed. An intent that stays open
    marks a goal whose saved amount may no longer match the ledger.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    goal_id: UUID
    original_description: str
    new_description: str
    removed_total: Decimal = Field(
        ...,
        description="Sum of the linked transactions that were deleted"
    )
    target_saved_amount: Decimal = Field(
        ...,
        ge=0,
        description="Saved amount the relink was trying to establish"
    )
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'past_date')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )
