"""
In-Memory Storage Implementation

Dict-backed storage for tests and local experimentation. Records are
stored as pydantic models and copied on write so callers cannot mutate
stored state by accident.
"""

from collections import defaultdict
from datetime import date
from typing import Optional
from uuid import UUID

from cycletrack.models.audit import AuditEvent
from cycletrack.models.cycle import CycleOverride
from cycletrack.models.records import (
    BudgetRecord,
    BudgetTransaction,
    CycleAnnotations,
    GoalRecord,
    GoalTransfer,
    LiabilityPayment,
    LiabilityRecord,
    ScheduledBill,
)
from cycletrack.services.storage.interface import (
    ANNOTATED_ENTITY_TYPES,
    AuditStorageInterface,
    CycleStorageInterface,
    RecordNotFoundError,
    StorageError,
    merge_override,
)


class InMemoryCycleStorage(CycleStorageInterface):
    """Cycle storage held in process memory."""

    def __init__(self):
        self._liabilities: dict[UUID, LiabilityRecord] = {}
        self._payments: dict[UUID, list[LiabilityPayment]] = defaultdict(list)
        self._bills: dict[UUID, list[ScheduledBill]] = defaultdict(list)
        self._budgets: dict[UUID, BudgetRecord] = {}
        self._transactions: list[BudgetTransaction] = []
        self._goals: dict[UUID, GoalRecord] = {}
        self._transfers: dict[UUID, list[GoalTransfer]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_liability(self, liability: LiabilityRecord) -> LiabilityRecord:
        self._liabilities[liability.id] = liability.model_copy(deep=True)
        return liability

    def add_payment(self, payment: LiabilityPayment) -> LiabilityPayment:
        self._payments[payment.liability_id].append(payment)
        return payment

    def add_bill(self, bill: ScheduledBill) -> ScheduledBill:
        if bill.liability_id is None:
            raise StorageError("Bill must be linked to a liability")
        self._bills[bill.liability_id].append(bill)
        return bill

    def add_budget(self, budget: BudgetRecord) -> BudgetRecord:
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return budget

    def add_transaction(self, transaction: BudgetTransaction) -> BudgetTransaction:
        self._transactions.append(transaction)
        return transaction

    def add_goal(self, goal: GoalRecord) -> GoalRecord:
        self._goals[goal.id] = goal.model_copy(deep=True)
        return goal

    def add_transfer(self, transfer: GoalTransfer) -> GoalTransfer:
        self._transfers[transfer.goal_id].append(transfer)
        return transfer

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_liability(self, liability_id: UUID) -> Optional[LiabilityRecord]:
        liability = self._liabilities.get(liability_id)
        return liability.model_copy(deep=True) if liability else None

    async def list_liability_payments(
        self,
        liability_id: UUID,
    ) -> list[LiabilityPayment]:
        return sorted(self._payments[liability_id], key=lambda p: p.payment_date)

    async def list_liability_bills(self, liability_id: UUID) -> list[ScheduledBill]:
        return sorted(self._bills[liability_id], key=lambda b: b.due_date)

    async def get_budget(self, budget_id: UUID) -> Optional[BudgetRecord]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy(deep=True) if budget else None

    async def list_budget_transactions(
        self,
        category_id: Optional[UUID],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[BudgetTransaction]:
        transactions = [
            t for t in self._transactions
            if (category_id is None or t.category_id == category_id)
            and (date_from is None or t.transaction_date >= date_from)
            and (date_to is None or t.transaction_date < date_to)
        ]
        return sorted(transactions, key=lambda t: t.transaction_date)

    async def get_goal(self, goal_id: UUID) -> Optional[GoalRecord]:
        goal = self._goals.get(goal_id)
        return goal.model_copy(deep=True) if goal else None

    async def list_goal_transfers(self, goal_id: UUID) -> list[GoalTransfer]:
        return sorted(self._transfers[goal_id], key=lambda t: t.transfer_date)

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    async def update_cycle_note(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        note: Optional[str],
    ) -> bool:
        record = self._annotated(entity_type, record_id)
        if note:
            record.cycle_notes[cycle_number] = note
        else:
            record.cycle_notes.pop(cycle_number, None)
        return True

    async def update_cycle_override(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        override: CycleOverride,
    ) -> bool:
        record = self._annotated(entity_type, record_id)
        merged = merge_override(record.cycle_overrides.get(cycle_number), override)
        if merged.is_empty:
            record.cycle_overrides.pop(cycle_number, None)
        else:
            record.cycle_overrides[cycle_number] = merged
        return True

    def _annotated(self, entity_type: str, record_id: UUID) -> CycleAnnotations:
        if entity_type not in ANNOTATED_ENTITY_TYPES:
            raise StorageError(f"Unknown record type: {entity_type}")

        tables = {
            "liability": self._liabilities,
            "budget": self._budgets,
            "goal": self._goals,
        }
        record = tables[entity_type].get(record_id)
        if record is None:
            raise RecordNotFoundError(entity_type, record_id)
        return record


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit trail held in process memory."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
