"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the cycle flows decoupled from storage implementation

The interface is intentionally narrow. The engine reads records and
event history; the only writes are per-cycle notes and overrides.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from cycletrack.models.audit import AuditEvent
from cycletrack.models.cycle import CycleOverride
from cycletrack.models.records import (
    BudgetRecord,
    BudgetTransaction,
    GoalRecord,
    GoalTransfer,
    LiabilityPayment,
    LiabilityRecord,
    ScheduledBill,
)


# Record kinds that carry cycle notes and overrides
ANNOTATED_ENTITY_TYPES = ("liability", "budget", "goal")


class CycleStorageInterface(ABC):
    """
    Abstract interface for the records cycles are computed from.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # ------------------------------------------------------------------
    # Liabilities
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_liability(self, liability_id: UUID) -> Optional[LiabilityRecord]:
        """
        Retrieve a liability by its ID.

        Returns:
            The liability if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_liability_payments(
        self,
        liability_id: UUID,
    ) -> list[LiabilityPayment]:
        """
        List payments recorded against a liability.

        Returns:
            Payments in ascending date order
        """
        pass

    @abstractmethod
    async def list_liability_bills(self, liability_id: UUID) -> list[ScheduledBill]:
        """
        List scheduled bills linked to a liability, in due date order.
        """
        pass

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_budget(self, budget_id: UUID) -> Optional[BudgetRecord]:
        """
        Retrieve a budget by its ID.

        Returns:
            The budget if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_budget_transactions(
        self,
        category_id: Optional[UUID],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[BudgetTransaction]:
        """
        List spending transactions for a category.

        Args:
            category_id: Category to filter by (None = every category)
            date_from: Include transactions on or after this date
            date_to: Include transactions before this date

        Returns:
            Transactions in ascending date order
        """
        pass

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_goal(self, goal_id: UUID) -> Optional[GoalRecord]:
        """
        Retrieve a goal by its ID.

        Returns:
            The goal if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_goal_transfers(self, goal_id: UUID) -> list[GoalTransfer]:
        """
        List contributions and withdrawals for a goal, in date order.
        """
        pass

    # ------------------------------------------------------------------
    # Cycle annotations
    # ------------------------------------------------------------------

    @abstractmethod
    async def update_cycle_note(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        note: Optional[str],
    ) -> bool:
        """
        Persist the note for one cycle of a record.

        An empty or None note removes the stored note.

        Args:
            entity_type: 'liability', 'budget' or 'goal'
            record_id: ID of the record
            cycle_number: Cycle the note belongs to

        Returns:
            True if saved successfully

        Raises:
            RecordNotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_cycle_override(
        self,
        entity_type: str,
        record_id: UUID,
        cycle_number: int,
        override: CycleOverride,
    ) -> bool:
        """
        Merge an override into the stored override for one cycle.

        Fields left unset on ``override`` keep their stored values.

        Returns:
            True if saved successfully

        Raises:
            RecordNotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one flow call).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific record.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


def merge_override(
    existing: Optional[CycleOverride],
    update: CycleOverride,
) -> CycleOverride:
    """Fields set on ``update`` win; the rest keep their stored values."""
    if existing is None:
        return update
    return existing.model_copy(update=update.model_dump(exclude_none=True))


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class RecordNotFoundError(NotFoundError):
    """A liability, budget or goal does not exist."""

    def __init__(self, entity_type: str, record_id: UUID):
        self.entity_type = entity_type
        self.record_id = record_id
        super().__init__(f"{entity_type.capitalize()} {record_id} not found")


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
