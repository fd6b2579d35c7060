"""
Transaction Matcher

Reconciles actual events (payments, transactions, contributions) with
generated cycles.

MATCHING RULES:
- An event carrying an explicit cycle number is matched to that cycle
  when the schedule contains it.
- Otherwise the event goes to the cycle whose expected date is within
  tolerance_days of the event date. Closest expected date wins; on a tie
  the earliest cycle wins.
- An event inside no window is reported as unmatched. It is never
  forced onto the nearest cycle.
- Each event is matched to at most one cycle. A cycle may collect many.

STATUS (per cycle, in priority order):
- no events, skipped bill                  -> skipped
- no events, expected date today or later  -> upcoming
- no events, expected date in the past     -> overdue
- actual within amount tolerance           -> paid_on_time
- actual above expected beyond tolerance   -> overpaid
- actual below expected beyond tolerance   -> partial
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from cycletrack.engine.amortization import round_currency
from cycletrack.engine.dates import add_days, days_between
from cycletrack.models.cycle import (
    AmountStatus,
    Cycle,
    CycleStatus,
    Event,
    MatchedEvent,
    MatchResult,
    TimingStatus,
    UnmatchedEvent,
)

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_DAYS = 7
DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


def match_events(
    cycles: list[Cycle],
    events: list[Event],
    tolerance_days: int = DEFAULT_TOLERANCE_DAYS,
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE,
    today: Optional[date] = None,
) -> MatchResult:
    """
    Match ``events`` to ``cycles`` and derive each cycle's status.

    Args:
        cycles: Generated cycles (any previous matching is replaced)
        events: Actual events to reconcile
        tolerance_days: Max distance between event date and expected date
        amount_tolerance: Fractional slack on the expected amount (0.01 = 1%)
        today: Reference date for upcoming/overdue (defaults to today)

    Returns:
        MatchResult with annotated cycles and the unmatched events
    """
    if tolerance_days < 0:
        raise ValueError("Tolerance days cannot be negative")
    amount_tolerance = Decimal(str(amount_tolerance))
    if amount_tolerance < 0:
        raise ValueError("Amount tolerance cannot be negative")

    today = today or date.today()
    by_number = {cycle.cycle_number: cycle for cycle in cycles}
    matched: dict[int, list[tuple[Event, MatchedEvent]]] = {
        number: [] for number in by_number
    }
    unmatched: list[UnmatchedEvent] = []

    for event in sorted(events, key=lambda e: (e.event_date, str(e.id))):
        target, linked = _select_cycle(cycles, by_number, event, tolerance_days)
        if target is None:
            unmatched.append(_describe_unmatched(cycles, event))
            continue

        days_from_due = days_between(target.expected_date, event.event_date)
        matched[target.cycle_number].append((
            event,
            MatchedEvent(
                event_id=event.id,
                event_date=event.event_date,
                amount=event.absolute_amount,
                days_from_due=days_from_due,
                timing=_event_timing(days_from_due),
                linked=linked,
                within_window=abs(days_from_due) <= tolerance_days,
            ),
        ))

    result = [
        _settle(cycle, matched[cycle.cycle_number], today, amount_tolerance)
        for cycle in cycles
    ]

    if unmatched:
        logger.info(
            "events_unmatched",
            count=len(unmatched),
            event_ids=[str(u.event.id) for u in unmatched],
        )

    return MatchResult(cycles=result, unmatched=unmatched)


def derive_status(
    cycle: Cycle,
    today: date,
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE,
) -> Cycle:
    """
    Classify the amount and derive the status from ``cycle.actual_amount``.

    Used after matching, and again by callers that adjust the actual
    amount afterwards (goal withdrawals).
    """
    amount_tolerance = Decimal(str(amount_tolerance))
    expected = cycle.expected_amount
    actual = cycle.actual_amount

    nothing_paid = not cycle.matched_events or (actual <= 0 and expected > 0)
    if nothing_paid:
        if cycle.status == CycleStatus.SKIPPED and not cycle.matched_events:
            status = CycleStatus.SKIPPED
        elif cycle.expected_date >= today:
            status = CycleStatus.UPCOMING
        else:
            status = CycleStatus.OVERDUE
        return cycle.model_copy(update={
            "status": status,
            "amount_status": AmountStatus.NONE,
            "amount_short": None,
            "amount_over": None,
        })

    floor = expected * (1 - amount_tolerance)
    ceiling = expected * (1 + amount_tolerance)
    update = {"amount_short": None, "amount_over": None}

    if actual > ceiling:
        update["status"] = CycleStatus.OVERPAID
        update["amount_status"] = AmountStatus.OVER
        update["amount_over"] = actual - expected
    elif actual >= floor:
        update["status"] = CycleStatus.PAID_ON_TIME
        update["amount_status"] = AmountStatus.EXACT
    else:
        update["status"] = CycleStatus.PARTIAL
        update["amount_short"] = expected - actual
        minimum = cycle.minimum_amount
        if minimum is not None and minimum > 0:
            update["amount_status"] = (
                AmountStatus.MINIMUM_MET if actual >= minimum
                else AmountStatus.BELOW_MINIMUM
            )
        else:
            update["amount_status"] = AmountStatus.PARTIAL

    return cycle.model_copy(update=update)


def assign_to_periods(
    cycles: list[Cycle],
    events: list[Event],
) -> tuple[dict[int, list[Event]], list[UnmatchedEvent]]:
    """
    Assign events to the cycle whose [start, end) period contains them.

    Used where the whole period counts rather than the due date (budget
    spending, goal withdrawals).

    Returns:
        (events by cycle number, events outside every period)
    """
    assigned: dict[int, list[Event]] = {cycle.cycle_number: [] for cycle in cycles}
    outside: list[UnmatchedEvent] = []

    for event in sorted(events, key=lambda e: (e.event_date, str(e.id))):
        owner = next((c for c in cycles if c.contains(event.event_date)), None)
        if owner is None:
            outside.append(
                _describe_unmatched(cycles, event, reason="Outside every cycle period")
            )
        else:
            assigned[owner.cycle_number].append(event)

    if outside:
        logger.debug("events_outside_periods", count=len(outside))
    return assigned, outside


def find_cycle_for_date(
    cycles: list[Cycle],
    on: date,
    tolerance_days: int = DEFAULT_TOLERANCE_DAYS,
) -> Optional[int]:
    """
    Cycle number for a date, or None.

    The period that contains the date wins; failing that, the first
    cycle whose period widened by tolerance_days on both sides does.
    """
    for cycle in cycles:
        if cycle.contains(on):
            return cycle.cycle_number

    for cycle in cycles:
        window_start = add_days(cycle.start_date, -tolerance_days)
        window_end = add_days(cycle.end_date, tolerance_days)
        if window_start <= on < window_end:
            return cycle.cycle_number

    return None


# =============================================================================
# Internals
# =============================================================================

def _select_cycle(
    cycles: list[Cycle],
    by_number: dict[int, Cycle],
    event: Event,
    tolerance_days: int,
) -> tuple[Optional[Cycle], bool]:
    """Pick the cycle for one event. Returns (cycle, matched_by_link)."""
    if event.cycle_number is not None and event.cycle_number in by_number:
        return by_number[event.cycle_number], True

    candidates = []
    for cycle in cycles:
        distance = abs(days_between(cycle.expected_date, event.event_date))
        if distance <= tolerance_days:
            candidates.append((distance, cycle.expected_date, cycle.cycle_number, cycle))

    if not candidates:
        return None, False
    return min(candidates, key=lambda c: c[:3])[3], False


def _describe_unmatched(
    cycles: list[Cycle],
    event: Event,
    reason: str = "Outside every cycle's tolerance window",
) -> UnmatchedEvent:
    if not cycles:
        return UnmatchedEvent(event=event, reason="No cycles to match against")

    nearest = min(
        cycles,
        key=lambda c: (
            abs(days_between(c.expected_date, event.event_date)),
            c.cycle_number,
        ),
    )
    distance = abs(days_between(nearest.expected_date, event.event_date))
    return UnmatchedEvent(
        event=event,
        reason=reason,
        nearest_cycle_number=nearest.cycle_number,
        nearest_distance_days=distance,
    )


def _event_timing(days_from_due: int) -> TimingStatus:
    if days_from_due < 0:
        return TimingStatus.EARLY
    if days_from_due == 0:
        return TimingStatus.ON_TIME
    return TimingStatus.LATE


def _cycle_timing(matched: list[MatchedEvent]) -> TimingStatus:
    """Common direction of all matched events, or within_window if mixed."""
    if not matched:
        return TimingStatus.NONE

    has_early = any(m.days_from_due < 0 for m in matched)
    has_late = any(m.days_from_due > 0 for m in matched)

    if has_early and has_late:
        return TimingStatus.WITHIN_WINDOW
    if has_early:
        return TimingStatus.EARLY
    if has_late:
        return TimingStatus.LATE
    return TimingStatus.ON_TIME


def _settle(
    cycle: Cycle,
    pairs: list[tuple[Event, MatchedEvent]],
    today: date,
    amount_tolerance: Decimal,
) -> Cycle:
    """Record matched events on a cycle and derive its status."""
    events = [event for event, _ in pairs]
    matched = [m for _, m in pairs]
    total = sum((m.amount for m in matched), ZERO)

    actual_principal, actual_interest = _actual_components(cycle, events, total)

    update = {
        "matched_events": matched,
        "actual_amount": total,
        "timing_status": _cycle_timing(matched),
        "days_from_due": matched[0].days_from_due if matched else None,
        "first_event_date": matched[0].event_date if matched else None,
        "last_event_date": matched[-1].event_date if matched else None,
        "actual_principal": actual_principal,
        "actual_interest": actual_interest,
    }
    return derive_status(cycle.model_copy(update=update), today, amount_tolerance)


def _actual_components(
    cycle: Cycle,
    events: list[Event],
    total: Decimal,
) -> tuple[Optional[Decimal], Optional[Decimal]]:
    """
    Principal and interest actually paid.

    Components recorded on the events are summed. Without any, the total
    is split in proportion to the cycle's expected components.
    """
    if not events:
        return None, None

    recorded = [
        e for e in events
        if e.principal_component is not None or e.interest_component is not None
    ]
    if recorded:
        principal = sum((e.principal_component or ZERO for e in recorded), ZERO)
        interest = sum((e.interest_component or ZERO for e in recorded), ZERO)
        return round_currency(principal), round_currency(interest)

    if (
        cycle.principal_component is None
        or cycle.interest_component is None
        or cycle.expected_amount <= 0
    ):
        return None, None

    ratio = total / cycle.expected_amount
    return (
        round_currency(cycle.principal_component * ratio),
        round_currency(cycle.interest_component * ratio),
    )
