"""
Cycle Generator

Produces the ordered schedule of cycles for a RecurrenceConfig.

Boundaries are computed from the anchor start date (start + k periods),
and each cycle ends where the next one starts. Generation stops at
max_cycles, when a cycle would start after end_date, or once an
interest-bearing balance is paid off. A cycle truncated by end_date is
shorter than a full period.

With interest parameters every cycle is amortized in order: the
projected remaining balance of cycle i is the balance cycle i+1 accrues
interest on. The accrual window is the literal number of calendar days
in the cycle, whatever the frequency.

The generator is a pure function: no I/O, no clock.
"""

from decimal import Decimal

import structlog

from cycletrack.engine.amortization import accrue_interest, breakdown
from cycletrack.engine.dates import (
    add_days,
    advance,
    days_between,
    is_monthly_family,
    on_day,
)
from cycletrack.engine.errors import InvalidConfigError
from cycletrack.models.cycle import (
    AmortizationSummary,
    Cycle,
    Frequency,
    RecurrenceConfig,
)

logger = structlog.get_logger(__name__)


def validate_recurrence(config: RecurrenceConfig) -> None:
    """
    Check recurrence parameters before generating.

    Day-of-month clamping is not an error: a due day of 31 lands on the
    last day of shorter months.

    Raises:
        InvalidConfigError: With every issue found
    """
    issues = []

    if config.interval < 1:
        issues.append(f"interval must be at least 1 (got {config.interval})")

    if config.frequency == Frequency.CUSTOM and config.custom_unit is None:
        issues.append("custom frequency requires a custom unit")

    if config.due_day is not None and not 1 <= config.due_day <= 31:
        issues.append(f"due day must be between 1 and 31 (got {config.due_day})")

    if config.expected_amount < 0:
        issues.append("expected amount cannot be negative")

    if config.max_cycles < 1:
        issues.append(f"max cycles must be at least 1 (got {config.max_cycles})")

    if config.end_date is not None and config.end_date < config.start_date:
        issues.append("end date cannot be before start date")

    if config.interest_rate is not None and config.interest_rate < 0:
        issues.append("interest rate cannot be negative")

    if config.starting_balance is not None and config.starting_balance < 0:
        issues.append("starting balance cannot be negative")

    if issues:
        raise InvalidConfigError(issues)


def generate_cycles(
    config: RecurrenceConfig,
    days_in_year: int = 365,
) -> list[Cycle]:
    """
    Generate the cycle schedule for ``config``.

    Returns:
        Cycles numbered 1..N, contiguous and in chronological order

    Raises:
        InvalidConfigError: If the recurrence parameters are malformed
    """
    validate_recurrence(config)

    # end_date is inclusive; cycle ends are exclusive
    limit = add_days(config.end_date, 1) if config.end_date else None

    has_interest = config.has_interest
    balance = config.starting_balance if has_interest else None
    cycles: list[Cycle] = []

    for index in range(config.max_cycles):
        start = _boundary(config, index)
        if config.end_date is not None and start > config.end_date:
            break

        end = _boundary(config, index + 1)
        if limit is not None and end > limit:
            end = limit

        fields = {
            "cycle_number": index + 1,
            "start_date": start,
            "end_date": end,
            "expected_date": _expected_date(config, start, end),
            "expected_amount": config.expected_amount,
        }

        if has_interest:
            fields.update(_amortize(config, balance, start, end, days_in_year))
            balance = fields["projected_remaining_balance"]

        cycles.append(Cycle(**fields))

        if has_interest and balance <= 0:
            logger.debug("balance_paid_off", cycle_number=index + 1)
            break

    logger.debug(
        "cycles_generated",
        frequency=config.frequency.value,
        interval=config.interval,
        count=len(cycles),
        has_interest=has_interest,
    )
    return cycles


def _boundary(config: RecurrenceConfig, index: int):
    """Start date of the cycle at zero-based ``index``."""
    return advance(
        config.start_date,
        config.frequency,
        index,
        config.interval,
        config.custom_unit,
    )


def _expected_date(config: RecurrenceConfig, start, end):
    """
    Due date within [start, end).

    Monthly-family cycles use the due day clamped into the start month;
    if that day already passed it moves to the next month. Daily and
    weekly cycles (and cycles without a due day) are due on their start.
    """
    if config.due_day is None or not is_monthly_family(
        config.frequency, config.custom_unit
    ):
        return start

    expected = on_day(start, config.due_day)
    if expected < start:
        expected = on_day(start, config.due_day, months=1)

    if expected >= end:
        expected = add_days(end, -1)
    return expected


def _amortize(
    config: RecurrenceConfig,
    balance: Decimal,
    start,
    end,
    days_in_year: int,
) -> dict:
    """Interest/principal split for one cycle, seeded by ``balance``."""
    amount = config.expected_amount
    rate = config.interest_rate

    if config.interest_included:
        payment = amount
    else:
        # Interest comes on top of the scheduled principal
        elapsed = max(1, days_between(start, end))
        payment = amount + accrue_interest(balance, rate, elapsed, days_in_year)

    split = breakdown(
        payment,
        balance,
        rate,
        payment_date=end,
        last_payment_date=start,
        days_in_year=days_in_year,
    )

    expected_amount = split.total_amount if split.total_amount < payment else payment
    if split.is_negative_amortization:
        expected_amount = payment
        logger.debug(
            "negative_amortization",
            start_date=start.isoformat(),
            unpaid_interest=str(split.unpaid_interest),
        )

    return {
        "expected_amount": expected_amount,
        "principal_component": split.principal,
        "interest_component": split.interest,
        "projected_remaining_balance": split.remaining_balance,
        "metadata": AmortizationSummary(
            negative_amortization=split.is_negative_amortization,
            unpaid_interest=split.unpaid_interest,
        ),
    }
