"""
Tests for the Cycle Generator.

Covers schedule shape (numbering, contiguity, truncation), due date
placement, validation, and the amortized liability schedule.
"""

import pytest
from datetime import date
from decimal import Decimal

from cycletrack.engine.errors import InvalidConfigError
from cycletrack.engine.generator import generate_cycles, validate_recurrence
from cycletrack.models.cycle import (
    AmortizationSummary,
    CustomUnit,
    CycleStatus,
    Frequency,
    RecurrenceConfig,
)


def monthly_config(**overrides) -> RecurrenceConfig:
    fields = {
        "start_date": date(2024, 1, 1),
        "frequency": Frequency.MONTHLY,
        "interval": 1,
        "due_day": 1,
        "expected_amount": Decimal("1000"),
        "max_cycles": 3,
    }
    fields.update(overrides)
    return RecurrenceConfig(**fields)


class TestScheduleShape:
    """Tests for numbering, boundaries and caps."""

    def test_monthly_schedule_without_interest(self):
        """Three monthly cycles due on the 1st with the flat amount."""
        cycles = generate_cycles(monthly_config())

        assert [c.cycle_number for c in cycles] == [1, 2, 3]
        assert [c.expected_date for c in cycles] == [
            date(2024, 1, 1),
            date(2024, 2, 1),
            date(2024, 3, 1),
        ]
        assert all(c.expected_amount == Decimal("1000") for c in cycles)
        assert all(c.status == CycleStatus.UPCOMING for c in cycles)
        assert all(c.principal_component is None for c in cycles)
        assert cycles[-1].end_date == date(2024, 4, 1)

    @pytest.mark.parametrize("frequency,interval,unit", [
        (Frequency.DAILY, 3, None),
        (Frequency.WEEKLY, 2, None),
        (Frequency.MONTHLY, 1, None),
        (Frequency.QUARTERLY, 1, None),
        (Frequency.YEARLY, 1, None),
        (Frequency.CUSTOM, 10, CustomUnit.DAYS),
        (Frequency.CUSTOM, 2, CustomUnit.MONTHS),
    ])
    def test_cycles_are_contiguous(self, frequency, interval, unit):
        """Each cycle starts where the previous one ended."""
        cycles = generate_cycles(RecurrenceConfig(
            start_date=date(2024, 1, 31),
            frequency=frequency,
            interval=interval,
            custom_unit=unit,
            due_day=31,
            max_cycles=8,
        ))

        assert len(cycles) == 8
        assert [c.cycle_number for c in cycles] == list(range(1, 9))
        for previous, following in zip(cycles, cycles[1:]):
            assert following.start_date == previous.end_date
        for cycle in cycles:
            assert cycle.start_date <= cycle.expected_date < cycle.end_date

    def test_max_cycles_caps_open_schedule(self):
        """Without an end date the cap decides the length."""
        cycles = generate_cycles(monthly_config(max_cycles=12))
        assert len(cycles) == 12

    def test_end_date_truncates_last_cycle(self):
        """The last cycle stops the day after the inclusive end date."""
        cycles = generate_cycles(monthly_config(end_date=date(2024, 3, 15), max_cycles=12))

        assert len(cycles) == 3
        assert cycles[-1].start_date == date(2024, 3, 1)
        assert cycles[-1].end_date == date(2024, 3, 16)

    def test_end_date_on_boundary(self):
        """An end date on the last day of a period does not start another cycle."""
        cycles = generate_cycles(monthly_config(end_date=date(2024, 2, 29), max_cycles=12))

        assert len(cycles) == 2
        assert cycles[-1].end_date == date(2024, 3, 1)

    def test_max_cycles_wins_over_later_end_date(self):
        cycles = generate_cycles(monthly_config(end_date=date(2030, 1, 1), max_cycles=4))
        assert len(cycles) == 4

    def test_generation_is_deterministic(self):
        """The same config always gives the same schedule."""
        config = monthly_config(
            interest_rate=Decimal("12"),
            starting_balance=Decimal("10000"),
            max_cycles=6,
        )
        assert generate_cycles(config) == generate_cycles(config)


class TestDueDates:
    """Tests for expected date placement."""

    def test_due_day_clamps_in_february(self):
        """A 31st due day falls on Feb 29 in 2024."""
        cycles = generate_cycles(RecurrenceConfig(
            start_date=date(2024, 1, 31),
            frequency=Frequency.MONTHLY,
            due_day=31,
            expected_amount=Decimal("100"),
            max_cycles=2,
        ))

        assert cycles[0].expected_date == date(2024, 1, 31)
        assert cycles[1].expected_date == date(2024, 2, 29)

    def test_due_day_already_passed_moves_to_next_month(self):
        """A due day before the cycle start falls in the following month."""
        cycles = generate_cycles(monthly_config(start_date=date(2024, 1, 15), due_day=10))

        assert cycles[0].expected_date == date(2024, 2, 10)
        assert cycles[0].end_date == date(2024, 2, 15)

    def test_weekly_cycles_are_due_on_start(self):
        """Due day only applies to month-based frequencies."""
        cycles = generate_cycles(RecurrenceConfig(
            start_date=date(2024, 1, 3),
            frequency=Frequency.WEEKLY,
            due_day=20,
            max_cycles=2,
        ))

        assert [c.expected_date for c in cycles] == [date(2024, 1, 3), date(2024, 1, 10)]

    def test_no_due_day_means_start_date(self):
        cycles = generate_cycles(monthly_config(start_date=date(2024, 1, 20), due_day=None))
        assert cycles[0].expected_date == date(2024, 1, 20)


class TestValidation:
    """Tests for InvalidConfigError."""

    def test_zero_interval(self):
        with pytest.raises(InvalidConfigError, match="interval"):
            generate_cycles(monthly_config(interval=0))

    def test_custom_without_unit(self):
        with pytest.raises(InvalidConfigError, match="custom unit"):
            generate_cycles(monthly_config(frequency=Frequency.CUSTOM))

    def test_due_day_out_of_range(self):
        with pytest.raises(InvalidConfigError, match="due day"):
            generate_cycles(monthly_config(due_day=32))

    def test_every_issue_is_reported(self):
        """Validation collects all problems instead of stopping at the first."""
        with pytest.raises(InvalidConfigError) as exc_info:
            validate_recurrence(monthly_config(interval=0, due_day=0, max_cycles=0))

        assert len(exc_info.value.issues) == 3

    def test_end_before_start(self):
        with pytest.raises(InvalidConfigError, match="end date"):
            generate_cycles(monthly_config(end_date=date(2023, 12, 31)))

    def test_invalid_config_is_a_value_error(self):
        """Callers catching ValueError also catch config problems."""
        with pytest.raises(ValueError):
            generate_cycles(monthly_config(expected_amount=Decimal("-1")))


class TestAmortizedSchedule:
    """Tests for cycles generated with interest parameters."""

    def test_first_cycles_split_interest_and_principal(self):
        """12% on 10,000 over January's 31 days is 101.92."""
        cycles = generate_cycles(monthly_config(
            interest_rate=Decimal("12"),
            starting_balance=Decimal("10000"),
        ))

        first, second = cycles[0], cycles[1]
        assert first.interest_component == Decimal("101.92")
        assert first.principal_component == Decimal("898.08")
        assert first.projected_remaining_balance == Decimal("9101.92")
        assert first.expected_amount == Decimal("1000")

        # February 2024 has 29 days and accrues on the reduced balance
        assert second.interest_component == Decimal("86.78")
        assert second.principal_component == Decimal("913.22")
        assert second.projected_remaining_balance == Decimal("8188.70")

    def test_components_add_up(self):
        """principal + interest == expected, and balances chain exactly."""
        cycles = generate_cycles(monthly_config(
            interest_rate=Decimal("9.5"),
            starting_balance=Decimal("25000"),
            max_cycles=12,
        ))

        balance = Decimal("25000")
        for cycle in cycles:
            assert cycle.principal_component + cycle.interest_component == cycle.expected_amount
            assert cycle.projected_remaining_balance == balance - cycle.principal_component
            balance = cycle.projected_remaining_balance

    def test_stops_once_paid_off(self):
        """The final payment is capped and generation ends at zero balance."""
        cycles = generate_cycles(monthly_config(
            interest_rate=Decimal("12"),
            starting_balance=Decimal("1500"),
            max_cycles=12,
        ))

        assert len(cycles) == 2
        assert cycles[1].principal_component == Decimal("515.29")
        assert cycles[1].interest_component == Decimal("4.91")
        assert cycles[1].expected_amount == Decimal("520.20")
        assert cycles[1].projected_remaining_balance == Decimal("0")

    def test_interest_on_top_of_principal(self):
        """With interest excluded, the expected amount adds the accrued interest."""
        cycles = generate_cycles(monthly_config(
            interest_rate=Decimal("12"),
            starting_balance=Decimal("10000"),
            interest_included=False,
            max_cycles=1,
        ))

        assert cycles[0].expected_amount == Decimal("1101.92")
        assert cycles[0].principal_component == Decimal("1000")
        assert cycles[0].projected_remaining_balance == Decimal("9000")

    def test_negative_amortization_is_flagged_not_raised(self):
        """A payment below the interest keeps the balance and flags the cycle."""
        cycles = generate_cycles(monthly_config(
            expected_amount=Decimal("500"),
            interest_rate=Decimal("12"),
            starting_balance=Decimal("100000"),
        ))

        assert len(cycles) == 3
        first = cycles[0]
        assert first.principal_component == Decimal("0")
        assert first.interest_component == Decimal("1019.18")
        assert first.expected_amount == Decimal("500")
        assert first.projected_remaining_balance == Decimal("100000")
        assert isinstance(first.metadata, AmortizationSummary)
        assert first.metadata.negative_amortization is True
        assert first.metadata.unpaid_interest == Decimal("519.18")

    def test_zero_rate_means_no_breakdown(self):
        cycles = generate_cycles(monthly_config(
            interest_rate=Decimal("0"),
            starting_balance=Decimal("10000"),
        ))
        assert all(c.interest_component is None for c in cycles)
        assert all(c.metadata is None for c in cycles)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
