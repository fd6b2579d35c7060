"""
Amortization Calculator

Splits a payment on an interest-bearing balance into interest and
principal. Interest accrues simple and daily-proportional:

    interest = balance x (annual_rate / 100) x (elapsed_days / 365)

Elapsed days are literal calendar days since the last payment (or since
one nominal period before the payment date), so the same formula serves
every frequency. Interest is rounded to cents half-up.

IMPORTANT: A payment that does not cover the accrued interest is not an
error. Principal is clamped to zero, the balance does not grow, and the
shortfall is reported as unpaid interest.
"""

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from cycletrack.engine.dates import advance, days_between, effective_frequency
from cycletrack.models.cycle import (
    AmortizationEntry,
    CustomUnit,
    ExtraPaymentKind,
    ExtraPaymentOption,
    Frequency,
    PaymentBreakdown,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")
DAYS_IN_YEAR = 365

# Installments per year for one period of each calendar frequency
PERIODS_PER_YEAR = {
    Frequency.DAILY: 365,
    Frequency.WEEKLY: 52,
    Frequency.MONTHLY: 12,
    Frequency.QUARTERLY: 4,
    Frequency.YEARLY: 1,
}

# Upper bound on generated installments (50 years of monthly payments)
MAX_SCHEDULE_PAYMENTS = 600


def round_currency(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def nominal_period_start(
    payment_date: date,
    frequency: Frequency = Frequency.MONTHLY,
    interval: int = 1,
    custom_unit: Optional[CustomUnit] = None,
) -> date:
    """The date one nominal period before ``payment_date``."""
    return advance(payment_date, frequency, -1, interval, custom_unit)


def accrue_interest(
    balance: Decimal,
    annual_rate_percent: Decimal,
    elapsed_days: int,
    days_in_year: int = DAYS_IN_YEAR,
) -> Decimal:
    """Simple interest on ``balance`` over ``elapsed_days``."""
    if balance <= 0 or annual_rate_percent <= 0:
        return ZERO.quantize(CENT)
    interest = (
        Decimal(balance)
        * Decimal(annual_rate_percent) / Decimal(100)
        * Decimal(elapsed_days) / Decimal(days_in_year)
    )
    return round_currency(interest)


def breakdown(
    payment_amount: Decimal,
    current_balance: Decimal,
    annual_rate_percent: Decimal,
    payment_date: date,
    last_payment_date: Optional[date] = None,
    *,
    frequency: Frequency = Frequency.MONTHLY,
    interval: int = 1,
    custom_unit: Optional[CustomUnit] = None,
    days_in_year: int = DAYS_IN_YEAR,
) -> PaymentBreakdown:
    """
    Split ``payment_amount`` into interest and principal.

    Args:
        payment_amount: Amount being paid
        current_balance: Outstanding balance before the payment
        annual_rate_percent: Annual rate in percent (12 = 12%)
        payment_date: Date of this payment
        last_payment_date: Date of the previous payment. When omitted the
            window is one nominal period (frequency x interval) long.

    Returns:
        PaymentBreakdown with principal, interest, total_amount,
        remaining_balance and unpaid_interest.

    Raises:
        ValueError: If the payment, balance or rate is negative
    """
    payment_amount = Decimal(payment_amount)
    current_balance = Decimal(current_balance)
    annual_rate_percent = Decimal(annual_rate_percent)

    if payment_amount < 0:
        raise ValueError("Payment amount cannot be negative")
    if current_balance < 0:
        raise ValueError("Balance cannot be negative")
    if annual_rate_percent < 0:
        raise ValueError("Interest rate cannot be negative")

    window_start = last_payment_date or nominal_period_start(
        payment_date, frequency, interval, custom_unit
    )
    elapsed_days = max(1, days_between(window_start, payment_date))

    interest = accrue_interest(
        current_balance, annual_rate_percent, elapsed_days, days_in_year
    )

    if payment_amount < interest:
        principal = ZERO
        unpaid_interest = interest - payment_amount
    else:
        principal = min(payment_amount - interest, current_balance)
        unpaid_interest = ZERO

    remaining_balance = max(ZERO, current_balance - principal)

    return PaymentBreakdown(
        principal=principal,
        interest=interest,
        total_amount=principal + interest,
        remaining_balance=remaining_balance,
        unpaid_interest=unpaid_interest,
        elapsed_days=elapsed_days,
    )


def remaining_payments(
    balance: Decimal,
    payment_amount: Decimal,
    annual_rate_percent: Decimal,
    periods_per_year: int = 12,
) -> Optional[int]:
    """
    Number of payments left to clear ``balance``.

    Uses the annuity formula n = -ln(1 - B*r/A) / ln(1 + r) with the
    per-period rate r. Returns None when the payment never covers the
    per-period interest (the balance would never be paid off).
    """
    if balance <= 0:
        return 0
    if payment_amount <= 0:
        return None

    balance_f = float(balance)
    payment_f = float(payment_amount)
    rate = float(annual_rate_percent) / 100 / periods_per_year

    if rate <= 0:
        return math.ceil(balance_f / payment_f)

    ratio = balance_f * rate / payment_f
    if ratio >= 1:
        return None

    return math.ceil(-math.log(1 - ratio) / math.log(1 + rate))


def monthly_payment(
    principal: Decimal,
    annual_rate_percent: Decimal,
    months: int,
) -> Decimal:
    """
    Fixed installment that clears ``principal`` in ``months`` payments.

    Annuity formula P * r(1+r)^n / ((1+r)^n - 1) with the monthly rate r.
    A zero rate splits the principal evenly.
    """
    if months < 1:
        raise ValueError("Term must be at least one month")
    principal = Decimal(principal)
    if principal <= 0:
        return ZERO.quantize(CENT)

    rate = Decimal(annual_rate_percent) / Decimal(100) / Decimal(12)
    if rate <= 0:
        return round_currency(principal / months)

    growth = (1 + rate) ** months
    return round_currency(principal * rate * growth / (growth - 1))


def amortization_schedule(
    principal: Decimal,
    annual_rate_percent: Decimal,
    payment_amount: Decimal,
    first_due_date: date,
    *,
    interest_included: bool = True,
    frequency: Frequency = Frequency.MONTHLY,
    interval: int = 1,
    custom_unit: Optional[CustomUnit] = None,
    first_payment_number: int = 1,
    max_payments: int = MAX_SCHEDULE_PAYMENTS,
) -> list[AmortizationEntry]:
    """
    Installments that pay ``principal`` down to zero.

    Interest per installment is the balance times the period rate (annual
    rate over installments per year). Due dates step from
    ``first_due_date`` by whole periods. The last installment shrinks to
    what is left; a residual of one cent or less counts as paid. A payment
    that never covers the interest stops at ``max_payments``.

    With ``interest_included`` the payment covers interest first and the
    rest is principal; otherwise the payment is all principal and the
    interest is due on top of it.
    """
    balance = Decimal(principal)
    payment = Decimal(payment_amount)
    if payment <= 0:
        raise ValueError("Payment amount must be positive")

    per_year = Decimal(PERIODS_PER_YEAR[effective_frequency(frequency, custom_unit)]) / interval
    period_rate = Decimal(annual_rate_percent) / Decimal(100) / per_year

    entries: list[AmortizationEntry] = []
    while balance > CENT and len(entries) < max_payments:
        interest = round_currency(balance * period_rate) if period_rate > 0 else ZERO
        principal_part = max(ZERO, payment - interest) if interest_included else payment
        principal_part = min(principal_part, balance)
        balance = round_currency(balance - principal_part)

        step = len(entries)
        entries.append(AmortizationEntry(
            payment_number=first_payment_number + step,
            due_date=advance(first_due_date, frequency, step, interval, custom_unit),
            amount=principal_part + interest,
            principal=principal_part,
            interest=interest,
            remaining_balance=balance,
        ))

    return entries


def total_interest(schedule: list[AmortizationEntry]) -> Decimal:
    return sum((entry.interest for entry in schedule), ZERO)


def interest_paid(schedule: list[AmortizationEntry]) -> Decimal:
    return sum((entry.interest for entry in schedule if entry.paid), ZERO)


def principal_paid(schedule: list[AmortizationEntry]) -> Decimal:
    return sum((entry.principal for entry in schedule if entry.paid), ZERO)


def extra_payment_options(
    schedule: list[AmortizationEntry],
    current_balance: Decimal,
    annual_rate_percent: Decimal,
    payment_amount: Decimal,
    extra_amount: Decimal,
) -> list[ExtraPaymentOption]:
    """
    Ways to apply a lump sum on top of a monthly schedule.

    Options, each only when it changes something:
    - reduce_payment: same end date, smaller installment
    - reduce_term: same installment, fewer payments
    - skip_payments: prepay whole installments
    - reduce_principal: keep the schedule, owe less (always offered)

    Interest saved compares the unpaid installments of ``schedule`` with a
    fresh schedule on the reduced balance. Returns an empty list when
    nothing is left to pay.
    """
    remaining = [entry for entry in schedule if not entry.paid]
    if not remaining:
        return []

    extra = Decimal(extra_amount)
    if extra <= 0:
        raise ValueError("Extra payment must be positive")

    payment = Decimal(payment_amount)
    rate = Decimal(annual_rate_percent)
    new_balance = max(ZERO, Decimal(current_balance) - extra)
    months = len(remaining)
    first_due = remaining[0].due_date
    end_date = remaining[-1].due_date
    old_interest = total_interest(remaining)

    def interest_saved(new_payment: Decimal) -> Decimal:
        if new_balance <= 0:
            return old_interest
        return old_interest - total_interest(
            amortization_schedule(new_balance, rate, new_payment, first_due)
        )

    options: list[ExtraPaymentOption] = []

    reduced = monthly_payment(new_balance, rate, months)
    if reduced < payment:
        options.append(ExtraPaymentOption(
            kind=ExtraPaymentKind.REDUCE_PAYMENT,
            new_payment=reduced,
            new_end_date=end_date,
            interest_saved=interest_saved(reduced),
        ))

    term = remaining_payments(new_balance, payment, rate)
    if term is not None and term < months:
        options.append(ExtraPaymentOption(
            kind=ExtraPaymentKind.REDUCE_TERM,
            new_payment=payment,
            new_end_date=advance(first_due, Frequency.MONTHLY, term - 1) if term else None,
            payments_saved=months - term,
            interest_saved=interest_saved(payment),
        ))

    skipped = int(extra // payment) if payment > 0 else 0
    if 0 < skipped < months:
        options.append(ExtraPaymentOption(
            kind=ExtraPaymentKind.SKIP_PAYMENTS,
            new_end_date=end_date,
            payments_skipped=skipped,
            next_due_date=advance(first_due, Frequency.MONTHLY, skipped),
        ))

    options.append(ExtraPaymentOption(
        kind=ExtraPaymentKind.REDUCE_PRINCIPAL,
        new_payment=payment,
        new_end_date=end_date,
    ))
    return options
