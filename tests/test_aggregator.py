"""
Tests for the Cycle Aggregator.
"""

import pytest
from datetime import date
from decimal import Decimal

from cycletrack.engine.aggregator import (
    current_cycle,
    cycle_statistics,
    get_cycle_by_number,
    past_cycles,
    summarize,
    upcoming_cycles,
)
from cycletrack.engine.generator import generate_cycles
from cycletrack.engine.matcher import match_events
from cycletrack.models.cycle import (
    BudgetUsage,
    CycleStatus,
    Event,
    Frequency,
    RecurrenceConfig,
    UnmatchedEvent,
)


def schedule(count: int = 3):
    return generate_cycles(RecurrenceConfig(
        start_date=date(2024, 1, 1),
        frequency=Frequency.MONTHLY,
        due_day=1,
        expected_amount=Decimal("1000"),
        max_cycles=count,
    ))


def with_statuses(statuses):
    cycles = schedule(len(statuses))
    return [
        cycle.model_copy(update={"status": status})
        for cycle, status in zip(cycles, statuses)
    ]


class TestPartitions:
    """Tests for current, upcoming and past cycles."""

    def test_mid_schedule(self):
        cycles = schedule()
        today = date(2024, 2, 10)

        assert current_cycle(cycles, today).cycle_number == 2
        assert [c.cycle_number for c in upcoming_cycles(cycles, today)] == [3]
        assert [c.cycle_number for c in past_cycles(cycles, today)] == [1]

    def test_on_a_boundary(self):
        """The day a cycle ends belongs to the next cycle."""
        cycles = schedule()
        today = date(2024, 2, 1)

        assert current_cycle(cycles, today).cycle_number == 2
        assert [c.cycle_number for c in past_cycles(cycles, today)] == [1]

    def test_before_schedule(self):
        cycles = schedule()
        today = date(2023, 12, 1)

        assert current_cycle(cycles, today) is None
        assert [c.cycle_number for c in upcoming_cycles(cycles, today)] == [1, 2, 3]
        assert past_cycles(cycles, today) == []

    def test_after_schedule(self):
        """Past cycles are listed most recent first."""
        cycles = schedule()
        today = date(2024, 6, 1)

        assert current_cycle(cycles, today) is None
        assert [c.cycle_number for c in past_cycles(cycles, today)] == [3, 2, 1]

    def test_get_cycle_by_number(self):
        cycles = schedule()
        assert get_cycle_by_number(cycles, 2).start_date == date(2024, 2, 1)
        assert get_cycle_by_number(cycles, 4) is None


class TestStatistics:
    """Tests for counts, rates and streaks."""

    def test_rates_exclude_cycles_not_due(self):
        cycles = with_statuses([
            CycleStatus.PAID_ON_TIME,
            CycleStatus.OVERDUE,
            CycleStatus.PAID_ON_TIME,
            CycleStatus.OVERPAID,
            CycleStatus.UPCOMING,
            CycleStatus.SKIPPED,
        ])
        stats = cycle_statistics(cycles)

        assert stats.total_cycles == 6
        assert stats.on_time_count == 2
        assert stats.paid_count == 3
        assert stats.on_time_rate == 50.0
        assert stats.completion_rate == 75.0
        assert stats.total_expected == Decimal("6000")

    def test_streak_counts_back_from_latest(self):
        """Upcoming and skipped cycles neither add to nor break the streak."""
        cycles = with_statuses([
            CycleStatus.PAID_ON_TIME,
            CycleStatus.OVERDUE,
            CycleStatus.PAID_ON_TIME,
            CycleStatus.OVERPAID,
            CycleStatus.UPCOMING,
            CycleStatus.SKIPPED,
        ])
        assert cycle_statistics(cycles).current_streak == 2

    def test_partial_breaks_streak(self):
        cycles = with_statuses([CycleStatus.PAID_ON_TIME, CycleStatus.PARTIAL])
        assert cycle_statistics(cycles).current_streak == 0

    def test_rates_round_to_one_decimal(self):
        cycles = with_statuses([
            CycleStatus.PAID_ON_TIME,
            CycleStatus.OVERDUE,
            CycleStatus.OVERDUE,
        ])
        assert cycle_statistics(cycles).on_time_rate == 33.3

    def test_empty_list(self):
        stats = cycle_statistics([])
        assert stats.total_cycles == 0
        assert stats.on_time_rate == 0.0
        assert stats.average_usage is None

    def test_average_usage(self):
        cycles = schedule(2)
        cycles = [
            cycles[0].model_copy(update={"metadata": BudgetUsage(
                budget_amount=Decimal("1000"),
                spent=Decimal("500"),
                remaining=Decimal("500"),
                percent_used=50.0,
            )}),
            cycles[1].model_copy(update={"metadata": BudgetUsage(
                budget_amount=Decimal("1000"),
                spent=Decimal("1000"),
                remaining=Decimal("0"),
                percent_used=100.0,
            )}),
        ]
        assert cycle_statistics(cycles).average_usage == 75.0

    def test_payment_average_and_window_compliance(self):
        """A payment linked to its cycle from outside the window counts against compliance."""
        result = match_events(
            schedule(),
            [
                Event(event_date=date(2024, 1, 3), amount=Decimal("1000")),
                Event(event_date=date(2024, 2, 20), amount=Decimal("1100"), cycle_number=2),
            ],
            today=date(2024, 3, 15),
        )
        stats = cycle_statistics(result.cycles)

        assert result.cycles[1].is_within_window is False
        assert result.cycles[2].is_within_window is None
        assert stats.paid_count == 2
        assert stats.average_payment == Decimal("1050.00")
        assert stats.window_compliance_rate == 50.0

    def test_no_payments_is_fully_compliant(self):
        stats = cycle_statistics(schedule())
        assert stats.window_compliance_rate == 100.0
        assert stats.average_payment == Decimal("0")


class TestSummarize:
    """Tests for the bundled overview."""

    def test_summarize(self):
        cycles = schedule()
        stray = UnmatchedEvent(
            event=Event(event_date=date(2024, 5, 1), amount=Decimal("10")),
            reason="Outside every cycle's tolerance window",
        )

        overview = summarize(cycles, date(2024, 2, 10), [stray])

        assert overview.cycles == cycles
        assert overview.current_cycle.cycle_number == 2
        assert len(overview.upcoming_cycles) == 1
        assert len(overview.past_cycles) == 1
        assert overview.statistics.upcoming_count == 3
        assert overview.unmatched_events == [stray]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
