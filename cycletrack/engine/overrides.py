"""
Persisted corrections merged into a generated schedule.

Two sources adjust generated cycles before matching:
1. Scheduled bills linked to a liability. An open bill's due date and
   amount replace the generated expected date and amount.
2. User overrides and notes keyed by cycle number. An override value
   that is set wins over both the generated value and the bill.

Both are applied before matching so events are matched against the
corrected expected dates and classified against the corrected amounts.
"""

from typing import Optional

import structlog

from cycletrack.engine.matcher import DEFAULT_TOLERANCE_DAYS, find_cycle_for_date
from cycletrack.models.cycle import Cycle, CycleBill, CycleOverride, CycleStatus
from cycletrack.models.records import ScheduledBill

logger = structlog.get_logger(__name__)


def apply_overrides(
    cycles: list[Cycle],
    overrides: Optional[dict[int, CycleOverride]] = None,
    notes: Optional[dict[int, str]] = None,
) -> list[Cycle]:
    """
    Merge overrides and notes into ``cycles`` by cycle number.

    A stored note wins over an override's note. Entries for cycle numbers
    outside the schedule are ignored.
    """
    overrides = overrides or {}
    notes = notes or {}
    merged = []

    for cycle in cycles:
        update = {}
        override = overrides.get(cycle.cycle_number)

        if override is not None and not override.is_empty:
            if override.expected_amount is not None:
                update["expected_amount"] = override.expected_amount
            if override.expected_date is not None:
                update["expected_date"] = override.expected_date
            if override.minimum_amount is not None:
                update["minimum_amount"] = override.minimum_amount
            if override.notes is not None:
                update["notes"] = override.notes

        note = notes.get(cycle.cycle_number)
        if note:
            update["notes"] = note

        merged.append(cycle.model_copy(update=update) if update else cycle)

    return merged


def attach_bills(
    cycles: list[Cycle],
    bills: list[ScheduledBill],
    tolerance_days: int = DEFAULT_TOLERANCE_DAYS,
) -> list[Cycle]:
    """
    Link scheduled bills to cycles and take their dates and amounts.

    A bill carrying a cycle number is linked to that cycle. Otherwise it
    goes to the cycle whose period (widened by tolerance_days) holds its
    due date. Bills that fit no cycle are dropped from the view.

    Per cycle:
    - an open bill (upcoming, due today, overdue, postponed) sets the
      expected date and, when billed, the expected amount
    - without an open bill, a paid bill's due date sets the expected date
    - the smallest minimum amount across its bills becomes the minimum
    - if every linked bill is skipped or cancelled the cycle is skipped
    """
    numbers = {cycle.cycle_number for cycle in cycles}
    linked: dict[int, list[ScheduledBill]] = {number: [] for number in numbers}

    for bill in sorted(bills, key=lambda b: (b.due_date, str(b.id))):
        if bill.cycle_number is not None:
            number = bill.cycle_number if bill.cycle_number in numbers else None
        else:
            number = find_cycle_for_date(cycles, bill.due_date, tolerance_days)

        if number is None:
            logger.debug("bill_not_linked", bill_id=str(bill.id))
            continue
        linked[number].append(bill)

    return [_with_bills(cycle, linked[cycle.cycle_number]) for cycle in cycles]


def _with_bills(cycle: Cycle, bills: list[ScheduledBill]) -> Cycle:
    if not bills:
        return cycle

    update = {
        "bills": [
            CycleBill(
                id=bill.id,
                title=bill.title,
                due_date=bill.due_date,
                amount=bill.billed_amount if bill.billed_amount is not None else cycle.expected_amount,
                status=bill.status,
            )
            for bill in bills
        ],
    }

    minimums = [b.minimum_amount for b in bills if b.minimum_amount is not None]
    if minimums:
        update["minimum_amount"] = min(minimums)

    scheduled = next((b for b in bills if b.is_open), None)
    paid = next((b for b in bills if b.status == "paid"), None)

    if scheduled is not None:
        update["expected_date"] = scheduled.due_date
        if scheduled.billed_amount is not None:
            update["expected_amount"] = scheduled.billed_amount
    elif paid is not None:
        update["expected_date"] = paid.due_date

    if all(b.is_waived for b in bills):
        update["status"] = CycleStatus.SKIPPED

    return cycle.model_copy(update=update)
