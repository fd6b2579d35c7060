"""
Stored Records for Cycletrack

Read-only shapes returned by the data store. The engine never writes
these, except for per-cycle notes and overrides which are persisted
through the storage interface.

DESIGN DECISION: Records carry no free-form "metadata" bag. It is
replaced by typed fields: cycle_notes and cycle_overrides are keyed by
cycle number, and the few loose keys the engine reads (custom frequency
unit/interval, cycle number links, minimum amounts) are explicit
optional fields.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cycletrack.models.cycle import CycleOverride


# Bill statuses that still expect a payment
OPEN_BILL_STATUSES = frozenset({"upcoming", "due_today", "overdue", "postponed"})

# Bill statuses that waive the cycle
WAIVED_BILL_STATUSES = frozenset({"skipped", "cancelled"})


class CycleAnnotations(BaseModel):
    """Per-cycle notes and overrides shared by every record kind."""
    model_config = ConfigDict(str_strip_whitespace=True)

    cycle_notes: dict[int, str] = Field(
        default_factory=dict,
        description="Free-text notes keyed by cycle number"
    )
    cycle_overrides: dict[int, CycleOverride] = Field(
        default_factory=dict,
        description="Expected amount/date/minimum corrections keyed by cycle number"
    )


# =============================================================================
# LIABILITIES
# =============================================================================

class LiabilityRecord(CycleAnnotations):
    """A loan or other interest-bearing debt."""

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=200)
    current_balance: Decimal = Field(default=Decimal("0"), ge=0)
    periodical_payment: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Scheduled payment per cycle"
    )
    periodical_frequency: Optional[str] = Field(
        default="monthly",
        description="Stored frequency token (monthly, biweekly, custom, ...)"
    )
    custom_frequency_unit: Optional[str] = None
    custom_frequency_interval: int = Field(default=1)
    start_date: date
    targeted_payoff_date: Optional[date] = None
    due_day_of_month: Optional[int] = None
    next_due_date: Optional[date] = None
    interest_rate_apy: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Annual interest rate in percent"
    )


class LiabilityPayment(BaseModel):
    """A payment recorded against a liability."""

    id: UUID = Field(default_factory=uuid4)
    liability_id: UUID
    amount: Decimal
    payment_date: date
    principal_component: Optional[Decimal] = None
    interest_component: Optional[Decimal] = None
    cycle_number: Optional[int] = None
    bill_id: Optional[UUID] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScheduledBill(BaseModel):
    """
    A bill generated for a liability installment.

    An open bill's due date and amount replace the generated expected
    date and amount for the cycle it is linked to.
    """

    id: UUID = Field(default_factory=uuid4)
    liability_id: Optional[UUID] = None
    title: Optional[str] = None
    due_date: date
    amount: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    status: str = Field(default="upcoming")
    cycle_number: Optional[int] = None
    minimum_amount: Optional[Decimal] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator('status')
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def billed_amount(self) -> Optional[Decimal]:
        """total_amount wins over amount."""
        return self.total_amount if self.total_amount is not None else self.amount

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_BILL_STATUSES

    @property
    def is_waived(self) -> bool:
        return self.status in WAIVED_BILL_STATUSES


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetRecord(CycleAnnotations):
    """A spending limit that renews every period."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    category_id: Optional[UUID] = None
    target_amount: Decimal = Field(..., ge=0)
    recurrence: Optional[str] = Field(
        default="monthly",
        description="Stored recurrence token (weekly, biweekly, monthly, ...)"
    )
    start_date: date
    end_date: Optional[date] = None


class BudgetTransaction(BaseModel):
    """A spending transaction in a budget's category."""

    id: UUID = Field(default_factory=uuid4)
    category_id: Optional[UUID] = None
    amount: Decimal
    transaction_date: date
    description: Optional[str] = None


# =============================================================================
# GOALS
# =============================================================================

class GoalRecord(CycleAnnotations):
    """A savings target funded by periodic contributions."""

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., ge=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    target_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class GoalTransfer(BaseModel):
    """A transfer into (contribution) or out of (withdrawal) a goal fund."""

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    amount: Decimal
    transfer_date: date
    is_withdrawal: bool = False
    cycle_number: Optional[int] = None
    description: Optional[str] = None
