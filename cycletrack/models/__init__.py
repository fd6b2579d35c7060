"""
Data Models Package

This package contains all Pydantic models used in the Cycletrack system.
All data flowing through the engine must conform to these schemas.
"""

from cycletrack.models.cycle import (
    AmortizationEntry,
    AmortizationSummary,
    AmountStatus,
    BudgetUsage,
    CustomUnit,
    Cycle,
    CycleBill,
    CycleOverride,
    CycleOverview,
    CycleStatistics,
    CycleStatus,
    Event,
    ExtraPaymentKind,
    ExtraPaymentOption,
    Frequency,
    GoalProgress,
    MatchedEvent,
    MatchResult,
    PaymentBreakdown,
    RecurrenceConfig,
    TimingStatus,
    UnmatchedEvent,
)
from cycletrack.models.records import (
    BudgetRecord,
    BudgetTransaction,
    GoalRecord,
    GoalTransfer,
    LiabilityPayment,
    LiabilityRecord,
    ScheduledBill,
)
from cycletrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Cycle models
    "AmortizationEntry",
    "AmortizationSummary",
    "AmountStatus",
    "BudgetUsage",
    "CustomUnit",
    "Cycle",
    "CycleBill",
    "CycleOverride",
    "CycleOverview",
    "CycleStatistics",
    "CycleStatus",
    "Event",
    "ExtraPaymentKind",
    "ExtraPaymentOption",
    "Frequency",
    "GoalProgress",
    "MatchedEvent",
    "MatchResult",
    "PaymentBreakdown",
    "RecurrenceConfig",
    "TimingStatus",
    "UnmatchedEvent",
    # Stored records
    "BudgetRecord",
    "BudgetTransaction",
    "GoalRecord",
    "GoalTransfer",
    "LiabilityPayment",
    "LiabilityRecord",
    "ScheduledBill",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
