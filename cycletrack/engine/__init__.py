"""
Recurring cycle engine.

Pure functions over in-memory data: no I/O, no clock reads except where
a caller omits ``today``.
"""

from cycletrack.engine.aggregator import (
    current_cycle,
    cycle_statistics,
    get_cycle_by_number,
    past_cycles,
    summarize,
    upcoming_cycles,
)
from cycletrack.engine.amortization import (
    accrue_interest,
    amortization_schedule,
    breakdown,
    extra_payment_options,
    interest_paid,
    monthly_payment,
    nominal_period_start,
    principal_paid,
    remaining_payments,
    round_currency,
    total_interest,
)
from cycletrack.engine.errors import CycleEngineError, InvalidConfigError
from cycletrack.engine.generator import generate_cycles, validate_recurrence
from cycletrack.engine.matcher import (
    assign_to_periods,
    derive_status,
    find_cycle_for_date,
    match_events,
)
from cycletrack.engine.overrides import apply_overrides, attach_bills

__all__ = [
    # Generator
    "generate_cycles",
    "validate_recurrence",
    # Amortization
    "accrue_interest",
    "amortization_schedule",
    "breakdown",
    "extra_payment_options",
    "interest_paid",
    "monthly_payment",
    "nominal_period_start",
    "principal_paid",
    "remaining_payments",
    "round_currency",
    "total_interest",
    # Matcher
    "assign_to_periods",
    "derive_status",
    "find_cycle_for_date",
    "match_events",
    # Overrides
    "apply_overrides",
    "attach_bills",
    # Aggregator
    "current_cycle",
    "cycle_statistics",
    "get_cycle_by_number",
    "past_cycles",
    "summarize",
    "upcoming_cycles",
    # Errors
    "CycleEngineError",
    "InvalidConfigError",
]
