"""
Tests for Cycletrack models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from cycletrack.engine.errors import InvalidConfigError
from cycletrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from cycletrack.models.cycle import (
    AmortizationSummary,
    Cycle,
    CycleOverride,
    Event,
    GoalProgress,
    PaymentBreakdown,
    RecurrenceConfig,
)
from cycletrack.models.records import (
    BudgetRecord,
    CycleAnnotations,
    LiabilityRecord,
    ScheduledBill,
)


class TestCycleModels:
    """Tests for cycle-related Pydantic models."""

    def test_cycle_creation(self):
        """Test Cycle model creation and defaults."""
        cycle = Cycle(
            cycle_number=1,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 2, 1),
            expected_date=date(2024, 1, 1),
            expected_amount=Decimal("1000"),
        )
        assert cycle.days_in_period == 31
        assert cycle.actual_amount == Decimal("0")
        assert cycle.payment_count == 0
        assert cycle.contains(date(2024, 1, 31))
        assert not cycle.contains(date(2024, 2, 1))

    def test_cycle_rejects_empty_period(self):
        """Test that a cycle must cover at least one day."""
        with pytest.raises(ValueError, match="after cycle start"):
            Cycle(
                cycle_number=1,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 1),
                expected_date=date(2024, 1, 1),
                expected_amount=Decimal("1000"),
            )

    def test_cycle_numbers_start_at_one(self):
        with pytest.raises(ValueError):
            Cycle(
                cycle_number=0,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 2, 1),
                expected_date=date(2024, 1, 1),
                expected_amount=Decimal("1000"),
            )

    def test_metadata_is_parsed_by_kind(self):
        """Test that tagged metadata round-trips to the right model."""
        cycle = Cycle.model_validate({
            "cycle_number": 2,
            "start_date": "2024-02-01",
            "end_date": "2024-03-01",
            "expected_date": "2024-02-01",
            "expected_amount": "100",
            "metadata": {"kind": "goal", "contributions": "100", "withdrawals": "30", "net": "70"},
        })
        assert isinstance(cycle.metadata, GoalProgress)
        assert cycle.metadata.net == Decimal("70")

    def test_recurrence_config_is_frozen(self):
        config = RecurrenceConfig(start_date=date(2024, 1, 1))
        with pytest.raises(ValueError):
            config.max_cycles = 5

    def test_has_interest(self):
        """Interest needs both a positive rate and a positive balance."""
        base = {"start_date": date(2024, 1, 1)}
        assert RecurrenceConfig(**base, interest_rate=Decimal("5"), starting_balance=Decimal("100")).has_interest
        assert not RecurrenceConfig(**base, interest_rate=Decimal("5"), starting_balance=Decimal("0")).has_interest
        assert not RecurrenceConfig(**base, interest_rate=Decimal("0"), starting_balance=Decimal("100")).has_interest

    def test_event_absolute_amount(self):
        event = Event(event_date=date(2024, 1, 1), amount=Decimal("-250.50"))
        assert event.absolute_amount == Decimal("250.50")

    def test_override_is_empty(self):
        assert CycleOverride().is_empty
        assert not CycleOverride(minimum_amount=Decimal("0")).is_empty

    def test_override_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            CycleOverride(expected_amount=Decimal("-1"))

    def test_payment_breakdown_negative_amortization(self):
        split = PaymentBreakdown(
            principal=Decimal("0"),
            interest=Decimal("100"),
            total_amount=Decimal("100"),
            remaining_balance=Decimal("5000"),
            unpaid_interest=Decimal("20"),
            elapsed_days=30,
        )
        assert split.is_negative_amortization
        assert AmortizationSummary().negative_amortization is False


class TestRecordModels:
    """Tests for stored record models."""

    def test_bill_status_is_normalised(self):
        bill = ScheduledBill(due_date=date(2024, 1, 5), status="  Due_Today ")
        assert bill.status == "due_today"
        assert bill.is_open
        assert not bill.is_waived

    def test_bill_total_wins_over_amount(self):
        bill = ScheduledBill(due_date=date(2024, 1, 5), amount=Decimal("100"), total_amount=Decimal("120"))
        assert bill.billed_amount == Decimal("120")

    def test_annotations_default_empty(self):
        annotations = CycleAnnotations()
        assert annotations.cycle_notes == {}
        assert annotations.cycle_overrides == {}

    def test_liability_requires_title(self):
        with pytest.raises(ValueError):
            LiabilityRecord(title="", start_date=date(2024, 1, 1))

    def test_budget_rejects_negative_target(self):
        with pytest.raises(ValueError):
            BudgetRecord(name="Food", target_amount=Decimal("-5"), start_date=date(2024, 1, 1))

    def test_invalid_config_error_lists_issues(self):
        error = InvalidConfigError(["interval must be at least 1 (got 0)", "due day must be between 1 and 31 (got 40)"])
        assert len(error.issues) == 2
        assert "interval" in str(error)
        assert isinstance(error, ValueError)


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.CYCLES_COMPUTED,
            description="Computed 12 cycles",
        )
        assert event.event_type == AuditEventType.CYCLES_COMPUTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.CYCLE_NOTE_UPDATED,
            description="Note updated",
            cycle_number=3,
            details={"note_length": 12},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "cycle_note_updated"
        assert log_dict["cycle_number"] == 3
        assert log_dict["details"]["note_length"] == 12

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.CYCLE_OVERRIDE_UPDATED,
            description="Target overridden",
            cycle_number=2,
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "cycle_override_updated"  # event_type
        assert row[6] == "2"  # cycle_number
        assert row[11] == "True"  # is_user_action

    def test_audit_event_builder_cycles_computed(self):
        """Test AuditEventBuilder.cycles_computed."""
        correlation_id = uuid4()
        record_id = uuid4()

        event = AuditEventBuilder.cycles_computed(
            entity_type="liability",
            entity_id=record_id,
            cycle_count=12,
            unmatched_count=1,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.CYCLES_COMPUTED
        assert event.entity_id == record_id
        assert event.correlation_id == correlation_id
        assert event.details == {"cycle_count": 12, "unmatched_count": 1}

    def test_audit_event_builder_override_updated(self):
        """Test AuditEventBuilder.cycle_override_updated."""
        record_id = uuid4()

        event = AuditEventBuilder.cycle_override_updated(
            entity_type="liability",
            entity_id=record_id,
            cycle_number=4,
            fields={"expected_amount": "1500"},
        )

        assert event.event_type == AuditEventType.CYCLE_OVERRIDE_UPDATED
        assert event.cycle_number == 4
        assert event.is_user_action is True

    def test_storage_error_is_error_severity(self):
        event = AuditEventBuilder.storage_error("get_budget", "timeout", entity_type="budget")
        assert event.severity == AuditSeverity.ERROR
        assert event.details["operation"] == "get_budget"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
