"""
Calendar arithmetic for cycle boundaries.

All values are plain ``datetime.date`` objects. Period steps are
``dateutil.relativedelta`` offsets, which clamp the day-of-month to the
length of the target month (Jan 31 + 1 month is Feb 28/29, never a date
in March).
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from cycletrack.models.cycle import CustomUnit, Frequency


def on_day(value: date, day: int, months: int = 0) -> date:
    """``day`` of the month ``months`` after ``value``, clamped to its length."""
    return value + relativedelta(months=months, day=day)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """Signed number of calendar days from ``start`` to ``end``."""
    return (end - start).days


def to_date(value: Union[date, datetime, str]) -> date:
    """
    Normalise a stored date value.

    Accepts ``date``, ``datetime`` and ISO strings, including full
    timestamps such as ``2024-01-05T10:30:00Z`` (the time part is dropped).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("Empty date value")
    return date.fromisoformat(text[:10])


# Frequencies whose due day is a day-of-month
MONTHLY_FAMILY = (Frequency.MONTHLY, Frequency.QUARTERLY, Frequency.YEARLY)


def effective_frequency(
    frequency: Frequency,
    custom_unit: Optional[CustomUnit] = None,
) -> Frequency:
    """Resolve the custom frequency to the calendar frequency it steps by."""
    if frequency != Frequency.CUSTOM:
        return frequency
    if custom_unit == CustomUnit.DAYS:
        return Frequency.DAILY
    if custom_unit == CustomUnit.WEEKS:
        return Frequency.WEEKLY
    return Frequency.MONTHLY


def is_monthly_family(
    frequency: Frequency,
    custom_unit: Optional[CustomUnit] = None,
) -> bool:
    return effective_frequency(frequency, custom_unit) in MONTHLY_FAMILY


def period_delta(
    frequency: Frequency,
    units: int,
    custom_unit: Optional[CustomUnit] = None,
) -> relativedelta:
    """Offset covering ``units`` periods of ``frequency``."""
    resolved = effective_frequency(frequency, custom_unit)
    if resolved == Frequency.DAILY:
        return relativedelta(days=units)
    if resolved == Frequency.WEEKLY:
        return relativedelta(weeks=units)
    if resolved == Frequency.QUARTERLY:
        return relativedelta(months=units * 3)
    if resolved == Frequency.YEARLY:
        return relativedelta(years=units)
    return relativedelta(months=units)


def advance(
    anchor: date,
    frequency: Frequency,
    steps: int,
    interval: int = 1,
    custom_unit: Optional[CustomUnit] = None,
) -> date:
    """
    Move ``anchor`` by ``steps`` periods of ``interval`` x ``frequency``.

    ``steps`` may be negative. Month-based steps are always taken from
    the anchor in one go (anchor + k months), so a Jan 31 anchor yields
    Feb 29, Mar 31, Apr 30 rather than drifting to the 29th.
    """
    return anchor + period_delta(frequency, steps * interval, custom_unit)
