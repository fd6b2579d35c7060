"""
Audit Logger

DESIGN DECISION: Every cycle recomputation and user correction is logged.
This provides:
1. Traceability of notes and overrides
2. Visibility into data problems the engine reports as data

The audit logger:
- Is async so flows can await it alongside storage calls
- Gracefully handles failures (doesn't crash a flow if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from cycletrack.config import get_settings
from cycletrack.models.audit import AuditEvent, AuditEventBuilder
from cycletrack.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Set the minimum level for cycletrack's structured logs.

    Defaults to AppSettings.log_level (LOG_LEVEL).
    """
    level = level or get_settings().app.log_level
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger("cycletrack").setLevel(level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_cycles_computed(
        self,
        entity_type: str,
        entity_id: UUID,
        cycle_count: int,
        unmatched_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.cycles_computed(
            entity_type=entity_type,
            entity_id=entity_id,
            cycle_count=cycle_count,
            unmatched_count=unmatched_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_events_unmatched(
        self,
        entity_type: str,
        entity_id: UUID,
        event_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log events no cycle accepted."""
        event = AuditEventBuilder.events_unmatched(
            entity_type=entity_type,
            entity_id=entity_id,
            event_ids=event_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_negative_amortization(
        self,
        entity_id: UUID,
        cycle_numbers: list[int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.negative_amortization_detected(
            entity_id=entity_id,
            cycle_numbers=cycle_numbers,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_note_updated(
        self,
        entity_type: str,
        entity_id: UUID,
        cycle_number: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a persisted cycle note."""
        event = AuditEventBuilder.cycle_note_updated(
            entity_type=entity_type,
            entity_id=entity_id,
            cycle_number=cycle_number,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_override_updated(
        self,
        entity_type: str,
        entity_id: UUID,
        cycle_number: int,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a persisted cycle override."""
        event = AuditEventBuilder.cycle_override_updated(
            entity_type=entity_type,
            entity_id=entity_id,
            cycle_number=cycle_number,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_not_found(
        self,
        entity_type: str,
        entity_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.record_not_found(
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage call."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a flow call and pass it through all
    subsequent operations.
    """
    return uuid4()
