"""
Cycle Models for Cycletrack

These models describe the recurring schedule and its reconciliation:
1. RecurrenceConfig - the parameters a schedule is generated from
2. Cycle - one scheduled period with its expected and actual amounts
3. Event - an actual payment, transaction or transfer
4. MatchResult / CycleOverview - what the engine hands back to callers

DESIGN DECISION: Money is Decimal everywhere. Cents are rounded
half-up at the points where the engine computes a new amount.

Cycles are never stored. They are recomputed from the recurrence
parameters and the live event history on every read. Only notes and
per-cycle overrides are persisted, keyed by cycle number.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """How often a cycle repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class CustomUnit(str, Enum):
    """Calendar unit for the custom frequency."""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class CycleStatus(str, Enum):
    """
    Terminal status of a cycle after matching.

    Derived in priority order: skipped, upcoming/overdue (no events),
    then by comparing the actual amount to the expected amount.
    """
    UPCOMING = "upcoming"
    PAID_ON_TIME = "paid_on_time"
    PARTIAL = "partial"
    OVERPAID = "overpaid"
    OVERDUE = "overdue"
    SKIPPED = "skipped"


class TimingStatus(str, Enum):
    """When matched events happened relative to the expected date."""
    EARLY = "early"
    ON_TIME = "on_time"
    WITHIN_WINDOW = "within_window"  # Events on both sides of the due date
    LATE = "late"
    NONE = "none"


class AmountStatus(str, Enum):
    """How the actual amount compares to the expected amount."""
    EXACT = "exact"
    OVER = "over"
    PARTIAL = "partial"
    MINIMUM_MET = "minimum_met"
    BELOW_MINIMUM = "below_minimum"
    NONE = "none"


# =============================================================================
# RECURRENCE CONFIG
# =============================================================================

class RecurrenceConfig(BaseModel):
    """
    Parameters a cycle schedule is generated from.

    Immutable. Field values are checked by the generator rather than at
    construction time, so a malformed config surfaces as
    InvalidConfigError when generation is attempted.
    """
    model_config = ConfigDict(frozen=True)

    start_date: date = Field(
        ...,
        description="First day of the first cycle"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Last day covered by the schedule (inclusive)"
    )
    frequency: Frequency = Field(
        default=Frequency.MONTHLY,
        description="Recurrence frequency"
    )
    interval: int = Field(
        default=1,
        description="Multiplier on the frequency (2 = every other period)"
    )
    custom_unit: Optional[CustomUnit] = Field(
        default=None,
        description="Unit for the custom frequency (required iff custom)"
    )
    due_day: Optional[int] = Field(
        default=None,
        description="Anchor day-of-month for monthly-family frequencies (1-31)"
    )
    expected_amount: Decimal = Field(
        default=Decimal("0"),
        description="Expected amount per cycle"
    )
    max_cycles: int = Field(
        default=12,
        description="Upper bound on the number of generated cycles"
    )

    # Interest parameters (liabilities)
    interest_rate: Optional[Decimal] = Field(
        default=None,
        description="Annual interest rate in percent (12 = 12%)"
    )
    starting_balance: Optional[Decimal] = Field(
        default=None,
        description="Outstanding balance at the start of the first cycle"
    )
    interest_included: bool = Field(
        default=True,
        description="Whether expected_amount already contains the interest"
    )

    @property
    def has_interest(self) -> bool:
        """Interest is only accrued with a positive rate and balance."""
        return (
            self.interest_rate is not None
            and self.starting_balance is not None
            and self.interest_rate > 0
            and self.starting_balance > 0
        )


# =============================================================================
# EVENTS
# =============================================================================

class Event(BaseModel):
    """
    An actual monetary event considered for matching.

    Payments, spending transactions and goal transfers are all converted
    to this shape before they reach the matcher.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Event identifier"
    )
    event_date: date = Field(
        ...,
        description="Date the money moved"
    )
    amount: Decimal = Field(
        ...,
        description="Amount (sign is ignored when matching)"
    )
    cycle_number: Optional[int] = Field(
        default=None,
        description="Explicit link to a cycle, honoured before date matching"
    )
    principal_component: Optional[Decimal] = None
    interest_component: Optional[Decimal] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.amount)


class MatchedEvent(BaseModel):
    """An event as recorded on the cycle it was matched to."""

    event_id: UUID
    event_date: date
    amount: Decimal
    days_from_due: int = Field(
        ...,
        description="Signed days from the expected date (negative = early)"
    )
    timing: TimingStatus
    linked: bool = Field(
        default=False,
        description="Matched through an explicit cycle number"
    )
    within_window: bool = Field(
        default=True,
        description="Event date lies inside the tolerance window of the due date"
    )


class UnmatchedEvent(BaseModel):
    """An event that fell outside every cycle's tolerance window."""

    event: Event
    reason: str
    nearest_cycle_number: Optional[int] = None
    nearest_distance_days: Optional[int] = None


# =============================================================================
# CYCLE METADATA - tagged by kind
# =============================================================================

class AmortizationSummary(BaseModel):
    """Interest bookkeeping for a liability cycle."""
    kind: Literal["amortization"] = "amortization"
    negative_amortization: bool = False
    unpaid_interest: Decimal = Decimal("0")


class BudgetUsage(BaseModel):
    """Spending against a budget period."""
    kind: Literal["budget"] = "budget"
    budget_amount: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float


class GoalProgress(BaseModel):
    """Contributions and withdrawals for a goal period."""
    kind: Literal["goal"] = "goal"
    contributions: Decimal
    withdrawals: Decimal
    net: Decimal


CycleMetadata = Annotated[
    Union[AmortizationSummary, BudgetUsage, GoalProgress],
    Field(discriminator="kind"),
]


class CycleBill(BaseModel):
    """A scheduled bill linked to a cycle."""
    id: UUID
    title: Optional[str] = None
    due_date: date
    amount: Decimal
    status: str


class CycleOverride(BaseModel):
    """
    A persisted correction to one generated cycle.

    Every field is optional; a value that is set wins over the generated
    one when merged.
    """
    expected_amount: Optional[Decimal] = Field(default=None, ge=0)
    expected_date: Optional[date] = None
    minimum_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.expected_amount,
                self.expected_date,
                self.minimum_amount,
                self.notes,
            )
        )


# =============================================================================
# CORE CYCLE MODEL
# =============================================================================

class Cycle(BaseModel):
    """
    One scheduled period.

    The period is the half-open range [start_date, end_date): end_date is
    the start of the next cycle. expected_date is the due date inside it.
    """

    cycle_number: int = Field(
        ...,
        ge=1,
        description="1-based position in the schedule"
    )
    start_date: date
    end_date: date = Field(
        ...,
        description="Exclusive end (first day of the next cycle)"
    )
    expected_date: date
    expected_amount: Decimal
    minimum_amount: Optional[Decimal] = None

    # Interest breakdown (only when interest parameters are supplied)
    principal_component: Optional[Decimal] = None
    interest_component: Optional[Decimal] = None
    projected_remaining_balance: Optional[Decimal] = None

    # Reconciliation
    actual_amount: Decimal = Decimal("0")
    status: CycleStatus = CycleStatus.UPCOMING
    timing_status: TimingStatus = TimingStatus.NONE
    amount_status: AmountStatus = AmountStatus.NONE
    matched_events: list[MatchedEvent] = Field(default_factory=list)
    days_from_due: Optional[int] = None
    first_event_date: Optional[date] = None
    last_event_date: Optional[date] = None
    amount_short: Optional[Decimal] = None
    amount_over: Optional[Decimal] = None
    actual_principal: Optional[Decimal] = None
    actual_interest: Optional[Decimal] = None

    bills: list[CycleBill] = Field(default_factory=list)
    notes: Optional[str] = None
    metadata: Optional[CycleMetadata] = None

    @model_validator(mode='after')
    def validate_period(self) -> 'Cycle':
        """A cycle must cover at least one day."""
        if self.end_date <= self.start_date:
            raise ValueError("Cycle end must be after cycle start")
        return self

    @property
    def matched_event_ids(self) -> list[UUID]:
        return [event.event_id for event in self.matched_events]

    @property
    def payment_count(self) -> int:
        return len(self.matched_events)

    @property
    def is_within_window(self) -> Optional[bool]:
        """All matched events lie inside the tolerance window; None without events."""
        if not self.matched_events:
            return None
        return all(m.within_window for m in self.matched_events)

    @property
    def days_in_period(self) -> int:
        return (self.end_date - self.start_date).days

    def contains(self, day: date) -> bool:
        """Is ``day`` inside [start_date, end_date)?"""
        return self.start_date <= day < self.end_date


# =============================================================================
# ENGINE RESULTS
# =============================================================================

class PaymentBreakdown(BaseModel):
    """Split of one payment into interest and principal."""

    principal: Decimal
    interest: Decimal
    total_amount: Decimal
    remaining_balance: Decimal
    unpaid_interest: Decimal = Decimal("0")
    elapsed_days: int = Field(ge=1)

    @property
    def is_negative_amortization(self) -> bool:
        """The payment did not cover the accrued interest."""
        return self.unpaid_interest > 0


class AmortizationEntry(BaseModel):
    """One scheduled installment of a fixed-rate loan."""

    payment_number: int = Field(ge=1)
    due_date: date
    amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal
    paid: bool = False


class ExtraPaymentKind(str, Enum):
    """Ways to apply a lump sum paid on top of the schedule."""
    REDUCE_PAYMENT = "reduce_payment"
    REDUCE_TERM = "reduce_term"
    SKIP_PAYMENTS = "skip_payments"
    REDUCE_PRINCIPAL = "reduce_principal"


class ExtraPaymentOption(BaseModel):
    """Outcome of applying an extra payment one particular way."""

    kind: ExtraPaymentKind
    new_payment: Optional[Decimal] = None
    new_end_date: Optional[date] = None
    interest_saved: Decimal = Decimal("0")
    payments_saved: Optional[int] = None
    payments_skipped: Optional[int] = None
    next_due_date: Optional[date] = Field(
        default=None,
        description="First due date after the skipped payments"
    )


class MatchResult(BaseModel):
    """Cycles annotated with their events, plus what could not be matched."""

    cycles: list[Cycle]
    unmatched: list[UnmatchedEvent] = Field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return sum(cycle.payment_count for cycle in self.cycles)


class CycleStatistics(BaseModel):
    """Summary counts over a matched cycle list."""

    total_cycles: int = 0
    upcoming_count: int = 0
    on_time_count: int = 0
    overdue_count: int = 0
    overpaid_count: int = 0
    partial_count: int = 0
    skipped_count: int = 0
    paid_count: int = Field(
        default=0,
        description="Cycles settled in full (paid_on_time or overpaid)"
    )
    on_time_rate: float = Field(
        default=0.0,
        description="paid_on_time cycles as a percentage of due cycles"
    )
    completion_rate: float = Field(
        default=0.0,
        description="Settled cycles as a percentage of due cycles"
    )
    total_expected: Decimal = Decimal("0")
    total_actual: Decimal = Decimal("0")
    current_streak: int = Field(
        default=0,
        description="Consecutive settled cycles counting back from the latest due one"
    )
    average_usage: Optional[float] = Field(
        default=None,
        description="Average percent of budget used (budget cycles only)"
    )
    average_payment: Decimal = Field(
        default=Decimal("0"),
        description="Actual amount per settled cycle"
    )
    window_compliance_rate: float = Field(
        default=100.0,
        description="Paid cycles whose events all fell inside the tolerance window, in percent"
    )


class CycleOverview(BaseModel):
    """Everything a caller needs to render a cycle view."""

    cycles: list[Cycle] = Field(default_factory=list)
    current_cycle: Optional[Cycle] = None
    upcoming_cycles: list[Cycle] = Field(default_factory=list)
    past_cycles: list[Cycle] = Field(default_factory=list)
    statistics: CycleStatistics = Field(default_factory=CycleStatistics)
    unmatched_events: list[UnmatchedEvent] = Field(default_factory=list)
