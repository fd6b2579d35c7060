"""
Cycle Aggregator

Partitions a matched cycle list around a reference date and summarises
it. Nothing here re-runs matching; statistics are one pass over the
cycles as given.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from cycletrack.models.cycle import (
    BudgetUsage,
    Cycle,
    CycleOverview,
    CycleStatistics,
    CycleStatus,
    UnmatchedEvent,
)

SETTLED_STATUSES = frozenset({CycleStatus.PAID_ON_TIME, CycleStatus.OVERPAID})

# Cycles that are not yet (or never) due are left out of the rates
NOT_DUE_STATUSES = frozenset({CycleStatus.UPCOMING, CycleStatus.SKIPPED})


def current_cycle(cycles: list[Cycle], today: date) -> Optional[Cycle]:
    """The cycle whose [start, end) contains ``today``, if any."""
    return next((cycle for cycle in cycles if cycle.contains(today)), None)


def upcoming_cycles(cycles: list[Cycle], today: date) -> list[Cycle]:
    """Cycles starting after ``today``, soonest first."""
    return sorted(
        (cycle for cycle in cycles if cycle.start_date > today),
        key=lambda c: c.start_date,
    )


def past_cycles(cycles: list[Cycle], today: date) -> list[Cycle]:
    """Cycles that ended on or before ``today``, most recent first."""
    return sorted(
        (cycle for cycle in cycles if cycle.end_date <= today),
        key=lambda c: c.start_date,
        reverse=True,
    )


def get_cycle_by_number(cycles: list[Cycle], cycle_number: int) -> Optional[Cycle]:
    return next((c for c in cycles if c.cycle_number == cycle_number), None)


def cycle_statistics(cycles: list[Cycle]) -> CycleStatistics:
    """
    Counts, totals and rates over ``cycles``.

    on_time_rate and completion_rate are percentages of due cycles
    (everything except upcoming and skipped), rounded to one decimal.
    current_streak counts settled cycles back from the latest due one.
    average_usage is only set when cycles carry budget usage.
    average_payment is the actual total over settled cycles.
    window_compliance_rate is the share of cycles with payments whose
    events all fell inside the tolerance window (100 when none were paid).
    """
    counts = {status: 0 for status in CycleStatus}
    total_expected = Decimal("0")
    total_actual = Decimal("0")
    usages: list[float] = []
    within_window = 0
    outside_window = 0

    for cycle in cycles:
        counts[cycle.status] += 1
        total_expected += cycle.expected_amount
        total_actual += cycle.actual_amount
        if isinstance(cycle.metadata, BudgetUsage):
            usages.append(cycle.metadata.percent_used)
        if cycle.is_within_window:
            within_window += 1
        elif cycle.is_within_window is False and cycle.actual_amount > 0:
            outside_window += 1

    due = len(cycles) - counts[CycleStatus.UPCOMING] - counts[CycleStatus.SKIPPED]
    paid = counts[CycleStatus.PAID_ON_TIME] + counts[CycleStatus.OVERPAID]

    return CycleStatistics(
        total_cycles=len(cycles),
        upcoming_count=counts[CycleStatus.UPCOMING],
        on_time_count=counts[CycleStatus.PAID_ON_TIME],
        overdue_count=counts[CycleStatus.OVERDUE],
        overpaid_count=counts[CycleStatus.OVERPAID],
        partial_count=counts[CycleStatus.PARTIAL],
        skipped_count=counts[CycleStatus.SKIPPED],
        paid_count=paid,
        on_time_rate=_percent(counts[CycleStatus.PAID_ON_TIME], due),
        completion_rate=_percent(paid, due),
        total_expected=total_expected,
        total_actual=total_actual,
        current_streak=_streak(cycles),
        average_usage=_one_decimal(sum(usages) / len(usages)) if usages else None,
        average_payment=(
            (total_actual / paid).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            if paid else Decimal("0")
        ),
        window_compliance_rate=(
            _percent(within_window, within_window + outside_window)
            if within_window + outside_window else 100.0
        ),
    )


def summarize(
    cycles: list[Cycle],
    today: date,
    unmatched: Optional[list[UnmatchedEvent]] = None,
) -> CycleOverview:
    """Bundle the partitions and statistics for a caller."""
    return CycleOverview(
        cycles=cycles,
        current_cycle=current_cycle(cycles, today),
        upcoming_cycles=upcoming_cycles(cycles, today),
        past_cycles=past_cycles(cycles, today),
        statistics=cycle_statistics(cycles),
        unmatched_events=unmatched or [],
    )


def _streak(cycles: list[Cycle]) -> int:
    streak = 0
    for cycle in sorted(cycles, key=lambda c: c.cycle_number, reverse=True):
        if cycle.status in SETTLED_STATUSES:
            streak += 1
        elif cycle.status not in NOT_DUE_STATUSES:
            break
    return streak


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return _one_decimal(part / whole * 100)


def _one_decimal(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
