"""
Main Orchestrator for Cycletrack

This module ties the pure engine to storage and defines the three
domain flows:
1. Liability (loan installments with interest, bills and overrides)
2. Budget (spending limits that renew every period)
3. Goal (savings contributions toward a target)

Each flow reads a record and its event history, runs
generate -> correct -> match -> summarize, and hands back a
CycleOverview. Cycles are never stored; every load recomputes them.
The only writes are per-cycle notes and overrides, after which the
overview is recomputed from fresh reads.

DESIGN DECISION: The orchestrator owns the boundary to storage:
- Missing records and storage failures are audited, then raised
- The engine below never sees I/O and never retries
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from cycletrack.audit import AuditLogger, configure_logging, create_correlation_id
from cycletrack.config import EngineSettings, get_settings
from cycletrack.engine import (
    apply_overrides,
    assign_to_periods,
    attach_bills,
    breakdown,
    derive_status,
    generate_cycles,
    match_events,
    round_currency,
    summarize,
)
from cycletrack.engine.errors import InvalidConfigError
from cycletrack.models.cycle import (
    AmortizationSummary,
    BudgetUsage,
    CustomUnit,
    Cycle,
    CycleOverride,
    CycleOverview,
    CycleStatus,
    Event,
    Frequency,
    GoalProgress,
    MatchedEvent,
    PaymentBreakdown,
    RecurrenceConfig,
    TimingStatus,
)
from cycletrack.models.records import (
    BudgetRecord,
    GoalRecord,
    LiabilityRecord,
)
from cycletrack.services.storage import (
    CycleStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCycleStorage,
    InMemoryCycleStorage,
    RecordNotFoundError,
    StorageError,
)

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


# =============================================================================
# Frequency vocabulary
# =============================================================================

# Stored token -> (frequency, interval multiplier)
FREQUENCY_TOKENS: dict[str, tuple[Frequency, int]] = {
    "day": (Frequency.DAILY, 1),
    "days": (Frequency.DAILY, 1),
    "daily": (Frequency.DAILY, 1),
    "week": (Frequency.WEEKLY, 1),
    "weeks": (Frequency.WEEKLY, 1),
    "weekly": (Frequency.WEEKLY, 1),
    "biweekly": (Frequency.WEEKLY, 2),
    "bi-weekly": (Frequency.WEEKLY, 2),
    "month": (Frequency.MONTHLY, 1),
    "months": (Frequency.MONTHLY, 1),
    "monthly": (Frequency.MONTHLY, 1),
    "bimonthly": (Frequency.MONTHLY, 2),
    "bi-monthly": (Frequency.MONTHLY, 2),
    "quarter": (Frequency.QUARTERLY, 1),
    "quarters": (Frequency.QUARTERLY, 1),
    "quarterly": (Frequency.QUARTERLY, 1),
    "halfyearly": (Frequency.MONTHLY, 6),
    "half-yearly": (Frequency.MONTHLY, 6),
    "year": (Frequency.YEARLY, 1),
    "years": (Frequency.YEARLY, 1),
    "yearly": (Frequency.YEARLY, 1),
}

# Custom unit token -> (unit, interval multiplier)
CUSTOM_UNIT_TOKENS: dict[str, tuple[CustomUnit, int]] = {
    "day": (CustomUnit.DAYS, 1),
    "days": (CustomUnit.DAYS, 1),
    "daily": (CustomUnit.DAYS, 1),
    "week": (CustomUnit.WEEKS, 1),
    "weeks": (CustomUnit.WEEKS, 1),
    "weekly": (CustomUnit.WEEKS, 1),
    "month": (CustomUnit.MONTHS, 1),
    "months": (CustomUnit.MONTHS, 1),
    "monthly": (CustomUnit.MONTHS, 1),
    "quarter": (CustomUnit.MONTHS, 3),
    "quarters": (CustomUnit.MONTHS, 3),
    "quarterly": (CustomUnit.MONTHS, 3),
    "year": (CustomUnit.MONTHS, 12),
    "years": (CustomUnit.MONTHS, 12),
    "yearly": (CustomUnit.MONTHS, 12),
}


def map_frequency(
    token: Optional[str],
    custom_unit: Optional[str] = None,
    custom_interval: int = 1,
) -> tuple[Frequency, int, Optional[CustomUnit]]:
    """
    Translate a stored frequency token into engine terms.

    Unknown or missing tokens fall back to monthly. A custom frequency
    keeps its unit; an unknown unit is left as None so the generator
    rejects the record instead of guessing.

    Returns:
        (frequency, interval, custom unit)
    """
    key = (token or "monthly").strip().lower()

    if key == "custom":
        interval = custom_interval if custom_interval and custom_interval > 0 else 1
        unit_key = (custom_unit or "").strip().lower()
        if unit_key not in CUSTOM_UNIT_TOKENS:
            return Frequency.CUSTOM, interval, None
        unit, multiplier = CUSTOM_UNIT_TOKENS[unit_key]
        return Frequency.CUSTOM, interval * multiplier, unit

    frequency, interval = FREQUENCY_TOKENS.get(key, (Frequency.MONTHLY, 1))
    return frequency, interval, None


# =============================================================================
# Flows
# =============================================================================

class CycleFlow(ABC):
    """
    Shared plumbing for the domain flows.

    Subclasses set ``entity_type`` and implement ``load``.
    """

    entity_type = "record"

    def __init__(
        self,
        storage: CycleStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().engine

    @abstractmethod
    async def load(
        self,
        record_id: UUID,
        today: Optional[date] = None,
        max_cycles: Optional[int] = None,
    ) -> CycleOverview:
        """Compute the current overview for one record."""
        pass

    async def update_cycle_note(
        self,
        record_id: UUID,
        cycle_number: int,
        note: Optional[str],
        today: Optional[date] = None,
    ) -> CycleOverview:
        """
        Persist a note for one cycle, then recompute.

        An empty note clears the stored one.
        """
        correlation_id = create_correlation_id()
        await self._call_storage(
            "update_cycle_note",
            record_id,
            correlation_id,
            self._storage.update_cycle_note(
                self.entity_type, record_id, cycle_number, note
            ),
        )

        if self._audit_logger:
            await self._audit_logger.log_note_updated(
                entity_type=self.entity_type,
                entity_id=record_id,
                cycle_number=cycle_number,
                correlation_id=correlation_id,
            )

        return await self.load(record_id, today=today)

    async def _call_storage(self, operation: str, record_id: UUID, correlation_id, awaitable):
        """Await a storage call, auditing failures before they propagate."""
        try:
            return await awaitable
        except RecordNotFoundError:
            await self._audit_not_found(record_id, correlation_id)
            raise
        except StorageError as e:
            logger.error("storage_call_failed", operation=operation, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=operation,
                    error_message=str(e),
                    entity_type=self.entity_type,
                    entity_id=record_id,
                    correlation_id=correlation_id,
                )
            raise

    async def _require(self, record, record_id: UUID, correlation_id):
        if record is None:
            await self._audit_not_found(record_id, correlation_id)
            raise RecordNotFoundError(self.entity_type, record_id)
        return record

    async def _audit_not_found(self, record_id: UUID, correlation_id) -> None:
        if self._audit_logger:
            await self._audit_logger.log_record_not_found(
                entity_type=self.entity_type,
                entity_id=record_id,
                correlation_id=correlation_id,
            )

    async def _generate(
        self,
        config: RecurrenceConfig,
        record_id: UUID,
        correlation_id,
    ) -> list[Cycle]:
        try:
            return generate_cycles(config, days_in_year=self._settings.days_in_year)
        except InvalidConfigError as e:
            logger.warning(
                "invalid_recurrence",
                entity_type=self.entity_type,
                record_id=str(record_id),
                issues=e.issues,
            )
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="invalid_recurrence",
                    error_message=str(e),
                    details={
                        "entity_type": self.entity_type,
                        "record_id": str(record_id),
                        "issues": e.issues,
                    },
                    correlation_id=correlation_id,
                )
            raise

    async def _finish(
        self,
        record_id: UUID,
        cycles: list[Cycle],
        today: date,
        correlation_id,
        unmatched=None,
    ) -> CycleOverview:
        overview = summarize(cycles, today, unmatched)

        if self._audit_logger:
            await self._audit_logger.log_cycles_computed(
                entity_type=self.entity_type,
                entity_id=record_id,
                cycle_count=len(cycles),
                unmatched_count=len(overview.unmatched_events),
                correlation_id=correlation_id,
            )
            if overview.unmatched_events:
                await self._audit_logger.log_events_unmatched(
                    entity_type=self.entity_type,
                    entity_id=record_id,
                    event_ids=[str(u.event.id) for u in overview.unmatched_events],
                    correlation_id=correlation_id,
                )

        return overview


class LiabilityCycleFlow(CycleFlow):
    """
    Installment cycles for a loan or other interest-bearing debt.

    Flow:
    1. Read the liability, its payments and its scheduled bills
    2. Generate cycles (amortized when rate and balance are positive)
    3. Take open bills' due dates and amounts, then apply overrides/notes
    4. Match payments with the liability tolerances
    5. Summarize
    """

    entity_type = "liability"

    def build_config(
        self,
        liability: LiabilityRecord,
        max_cycles: Optional[int] = None,
    ) -> RecurrenceConfig:
        """Recurrence parameters for a liability."""
        frequency, interval, custom_unit = map_frequency(
            liability.periodical_frequency,
            liability.custom_frequency_unit,
            liability.custom_frequency_interval,
        )

        due_day = liability.due_day_of_month
        if not due_day and liability.next_due_date:
            due_day = liability.next_due_date.day

        has_interest = liability.interest_rate_apy > 0 and liability.current_balance > 0

        return RecurrenceConfig(
            start_date=liability.start_date,
            end_date=liability.targeted_payoff_date,
            frequency=frequency,
            interval=interval,
            custom_unit=custom_unit,
            due_day=due_day or 1,
            expected_amount=liability.periodical_payment,
            max_cycles=max_cycles or self._settings.default_max_cycles,
            interest_rate=liability.interest_rate_apy if has_interest else None,
            starting_balance=liability.current_balance if has_interest else None,
            interest_included=True,
        )

    async def load(
        self,
        record_id: UUID,
        today: Optional[date] = None,
        max_cycles: Optional[int] = None,
    ) -> CycleOverview:
        today = today or date.today()
        correlation_id = create_correlation_id()

        liability = await self._require(
            await self._call_storage(
                "get_liability", record_id, correlation_id,
                self._storage.get_liability(record_id),
            ),
            record_id,
            correlation_id,
        )

        if liability.periodical_payment <= 0:
            logger.info("liability_without_payment", liability_id=str(record_id))
            return CycleOverview()

        payments = await self._call_storage(
            "list_liability_payments", record_id, correlation_id,
            self._storage.list_liability_payments(record_id),
        )
        bills = await self._call_storage(
            "list_liability_bills", record_id, correlation_id,
            self._storage.list_liability_bills(record_id),
        )

        cycles = await self._generate(
            self.build_config(liability, max_cycles), record_id, correlation_id
        )
        cycles = attach_bills(cycles, bills, self._settings.liability_tolerance_days)
        cycles = apply_overrides(cycles, liability.cycle_overrides, liability.cycle_notes)

        events = [
            Event(
                id=payment.id,
                event_date=payment.payment_date,
                amount=payment.amount,
                cycle_number=payment.cycle_number,
                principal_component=payment.principal_component,
                interest_component=payment.interest_component,
                description=payment.description,
            )
            for payment in payments
        ]
        result = match_events(
            cycles,
            events,
            tolerance_days=self._settings.liability_tolerance_days,
            amount_tolerance=self._settings.liability_amount_tolerance,
            today=today,
        )

        underwater = [
            cycle.cycle_number for cycle in result.cycles
            if isinstance(cycle.metadata, AmortizationSummary)
            and cycle.metadata.negative_amortization
        ]
        if underwater and self._audit_logger:
            await self._audit_logger.log_negative_amortization(
                entity_id=record_id,
                cycle_numbers=underwater,
                correlation_id=correlation_id,
            )

        return await self._finish(
            record_id, result.cycles, today, correlation_id, result.unmatched
        )

    async def preview_payment(
        self,
        liability_id: UUID,
        amount: Decimal,
        payment_date: date,
    ) -> PaymentBreakdown:
        """
        Interest/principal split for a payment about to be made.

        Interest accrues from the latest recorded payment before
        ``payment_date``, or one period back when there is none.
        """
        correlation_id = create_correlation_id()
        liability = await self._require(
            await self._call_storage(
                "get_liability", liability_id, correlation_id,
                self._storage.get_liability(liability_id),
            ),
            liability_id,
            correlation_id,
        )
        payments = await self._call_storage(
            "list_liability_payments", liability_id, correlation_id,
            self._storage.list_liability_payments(liability_id),
        )

        earlier = [p.payment_date for p in payments if p.payment_date < payment_date]
        frequency, interval, custom_unit = map_frequency(
            liability.periodical_frequency,
            liability.custom_frequency_unit,
            liability.custom_frequency_interval,
        )

        return breakdown(
            Decimal(amount),
            liability.current_balance,
            liability.interest_rate_apy,
            payment_date,
            max(earlier) if earlier else None,
            frequency=frequency,
            interval=interval,
            custom_unit=custom_unit,
            days_in_year=self._settings.days_in_year,
        )

    async def update_cycle_target(
        self,
        liability_id: UUID,
        cycle_number: int,
        expected_amount: Optional[Decimal] = None,
        expected_date: Optional[date] = None,
        minimum_amount: Optional[Decimal] = None,
        today: Optional[date] = None,
    ) -> CycleOverview:
        """
        Override the expected amount, date and/or minimum of one cycle.

        Fields left as None keep their stored override values.
        """
        correlation_id = create_correlation_id()
        override = CycleOverride(
            expected_amount=expected_amount,
            expected_date=expected_date,
            minimum_amount=minimum_amount,
        )

        await self._call_storage(
            "update_cycle_override", liability_id, correlation_id,
            self._storage.update_cycle_override(
                self.entity_type, liability_id, cycle_number, override
            ),
        )

        if self._audit_logger:
            await self._audit_logger.log_override_updated(
                entity_type=self.entity_type,
                entity_id=liability_id,
                cycle_number=cycle_number,
                fields=override.model_dump(mode="json", exclude_none=True),
                correlation_id=correlation_id,
            )

        return await self.load(liability_id, today=today)


class BudgetCycleFlow(CycleFlow):
    """
    Spending periods for a budget.

    Spending counts toward the period that contains it (no tolerance
    window). Status is judged against the limit rather than a payment:
    - closed period within budget -> paid_on_time, over budget -> overpaid
    - open period over budget -> overpaid, above the warning threshold
      -> partial, otherwise upcoming
    """

    entity_type = "budget"

    def build_config(
        self,
        budget: BudgetRecord,
        max_cycles: Optional[int] = None,
    ) -> RecurrenceConfig:
        frequency, interval, custom_unit = map_frequency(budget.recurrence)
        return RecurrenceConfig(
            start_date=budget.start_date,
            end_date=budget.end_date,
            frequency=frequency,
            interval=interval,
            custom_unit=custom_unit,
            due_day=1,
            expected_amount=budget.target_amount,
            max_cycles=max_cycles or self._settings.default_max_cycles,
        )

    async def load(
        self,
        record_id: UUID,
        today: Optional[date] = None,
        max_cycles: Optional[int] = None,
    ) -> CycleOverview:
        today = today or date.today()
        correlation_id = create_correlation_id()

        budget = await self._require(
            await self._call_storage(
                "get_budget", record_id, correlation_id,
                self._storage.get_budget(record_id),
            ),
            record_id,
            correlation_id,
        )

        cycles = await self._generate(
            self.build_config(budget, max_cycles), record_id, correlation_id
        )
        cycles = apply_overrides(cycles, budget.cycle_overrides, budget.cycle_notes)
        if not cycles:
            return await self._finish(record_id, cycles, today, correlation_id)

        transactions = await self._call_storage(
            "list_budget_transactions", record_id, correlation_id,
            self._storage.list_budget_transactions(
                budget.category_id,
                date_from=cycles[0].start_date,
                date_to=cycles[-1].end_date,
            ),
        )
        events = [
            Event(
                id=t.id,
                event_date=t.transaction_date,
                amount=t.amount,
                description=t.description,
            )
            for t in transactions
        ]

        assigned, outside = assign_to_periods(cycles, events)
        cycles = [
            self._settle(cycle, assigned[cycle.cycle_number], today)
            for cycle in cycles
        ]

        return await self._finish(record_id, cycles, today, correlation_id, outside)

    def _settle(self, cycle: Cycle, events: list[Event], today: date) -> Cycle:
        spent = sum((e.absolute_amount for e in events), ZERO)
        limit = cycle.expected_amount
        percent_used = float(spent / limit * 100) if limit > 0 else 0.0

        if cycle.end_date <= today:
            status = CycleStatus.PAID_ON_TIME if spent <= limit else CycleStatus.OVERPAID
        elif spent > limit:
            status = CycleStatus.OVERPAID
        elif percent_used > self._settings.budget_warning_percent:
            status = CycleStatus.PARTIAL
        else:
            status = CycleStatus.UPCOMING

        matched = [
            MatchedEvent(
                event_id=e.id,
                event_date=e.event_date,
                amount=e.absolute_amount,
                days_from_due=(e.event_date - cycle.expected_date).days,
                timing=TimingStatus.NONE,
            )
            for e in events
        ]

        return cycle.model_copy(update={
            "actual_amount": spent,
            "status": status,
            "matched_events": matched,
            "first_event_date": events[0].event_date if events else None,
            "last_event_date": events[-1].event_date if events else None,
            "amount_over": spent - limit if spent > limit else None,
            "metadata": BudgetUsage(
                budget_amount=limit,
                spent=spent,
                remaining=max(ZERO, limit - spent),
                percent_used=round(percent_used, 1),
            ),
        })


class GoalCycleFlow(CycleFlow):
    """
    Monthly contribution cycles toward a savings goal.

    The per-cycle target spreads what is left over the months until the
    target date (30-day months, at least one), or is a twelfth of the
    target when there is no date. Contributions are matched by date
    window; withdrawals count against the period that contains them.
    """

    entity_type = "goal"

    def contribution_amount(self, goal: GoalRecord) -> Decimal:
        remaining = max(ZERO, goal.target_amount - goal.current_amount)
        if goal.target_date:
            days = (goal.target_date - goal.created_at.date()).days
            months = max(1, days // 30)
            return round_currency(remaining / months)
        return round_currency(goal.target_amount / 12)

    def build_config(
        self,
        goal: GoalRecord,
        max_cycles: Optional[int] = None,
    ) -> RecurrenceConfig:
        start = goal.created_at.date()
        end = goal.target_date if goal.target_date and goal.target_date >= start else None
        return RecurrenceConfig(
            start_date=start,
            end_date=end,
            frequency=Frequency.MONTHLY,
            due_day=1,
            expected_amount=self.contribution_amount(goal),
            max_cycles=max_cycles or self._settings.default_max_cycles,
        )

    async def load(
        self,
        record_id: UUID,
        today: Optional[date] = None,
        max_cycles: Optional[int] = None,
    ) -> CycleOverview:
        today = today or date.today()
        correlation_id = create_correlation_id()

        goal = await self._require(
            await self._call_storage(
                "get_goal", record_id, correlation_id,
                self._storage.get_goal(record_id),
            ),
            record_id,
            correlation_id,
        )
        transfers = await self._call_storage(
            "list_goal_transfers", record_id, correlation_id,
            self._storage.list_goal_transfers(record_id),
        )

        cycles = await self._generate(
            self.build_config(goal, max_cycles), record_id, correlation_id
        )
        cycles = apply_overrides(cycles, goal.cycle_overrides, goal.cycle_notes)

        def to_event(transfer) -> Event:
            return Event(
                id=transfer.id,
                event_date=transfer.transfer_date,
                amount=transfer.amount,
                cycle_number=transfer.cycle_number,
                description=transfer.description,
            )

        contributions = [to_event(t) for t in transfers if not t.is_withdrawal]
        withdrawals = [to_event(t) for t in transfers if t.is_withdrawal]

        amount_tolerance = self._settings.goal_amount_tolerance
        result = match_events(
            cycles,
            contributions,
            tolerance_days=self._settings.goal_tolerance_days,
            amount_tolerance=amount_tolerance,
            today=today,
        )
        taken, stray_withdrawals = assign_to_periods(result.cycles, withdrawals)

        cycles = []
        for cycle in result.cycles:
            contributed = cycle.actual_amount
            withdrawn = sum(
                (e.absolute_amount for e in taken[cycle.cycle_number]), ZERO
            )
            net = contributed - withdrawn
            netted = cycle.model_copy(update={
                "actual_amount": net,
                "metadata": GoalProgress(
                    contributions=contributed,
                    withdrawals=withdrawn,
                    net=net,
                ),
            })
            cycles.append(derive_status(netted, today, amount_tolerance))

        return await self._finish(
            record_id, cycles, today, correlation_id,
            result.unmatched + stray_withdrawals,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[LiabilityCycleFlow, BudgetCycleFlow, GoalCycleFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run against in-memory storage.

    Returns:
        (liability_flow, budget_flow, goal_flow, sheets_client)
    """
    configure_logging()

    sheets_client = None
    storage: CycleStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsCycleStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage = InMemoryCycleStorage()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        storage = InMemoryCycleStorage()
        audit_logger = AuditLogger()  # Local-only logging

    settings = get_settings().engine

    return (
        LiabilityCycleFlow(storage, audit_logger, settings),
        BudgetCycleFlow(storage, audit_logger, settings),
        GoalCycleFlow(storage, audit_logger, settings),
        sheets_client,
    )
