"""
Audit Models for Cycletrack

Every cycle recomputation and every persisted note or override is
logged for audit purposes. This provides:
1. Traceability of user corrections to a schedule
2. Debugging information when a schedule looks wrong
3. A record of data problems (unmatched events, negative amortization)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Computation
    CYCLES_COMPUTED = "cycles_computed"
    EVENTS_UNMATCHED = "events_unmatched"
    NEGATIVE_AMORTIZATION_DETECTED = "negative_amortization_detected"

    # User corrections
    CYCLE_NOTE_UPDATED = "cycle_note_updated"
    CYCLE_OVERRIDE_UPDATED = "cycle_override_updated"

    # Failures
    RECORD_NOT_FOUND = "record_not_found"
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Record kind ('liability', 'budget', 'goal')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the record this event relates to"
    )
    cycle_number: Optional[int] = Field(
        default=None,
        description="Cycle the event concerns, when it concerns one"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one load call)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "cycle_number": self.cycle_number,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         cycle_number, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.cycle_number) if self.cycle_number is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.cycles_computed("liability", record_id, 12, 1)
        event = AuditEventBuilder.cycle_note_updated("goal", record_id, 3)
    """

    @staticmethod
    def cycles_computed(
        entity_type: str,
        entity_id: UUID,
        cycle_count: int,
        unmatched_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CYCLES_COMPUTED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Computed {cycle_count} cycles for {entity_type}",
            details={
                "cycle_count": cycle_count,
                "unmatched_count": unmatched_count,
            },
        )

    @staticmethod
    def events_unmatched(
        entity_type: str,
        entity_id: UUID,
        event_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EVENTS_UNMATCHED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{len(event_ids)} events fell outside every cycle window",
            details={"event_ids": event_ids},
        )

    @staticmethod
    def negative_amortization_detected(
        entity_id: UUID,
        cycle_numbers: list[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NEGATIVE_AMORTIZATION_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="liability",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description="Scheduled payment does not cover accrued interest",
            details={"cycle_numbers": cycle_numbers},
        )

    @staticmethod
    def cycle_note_updated(
        entity_type: str,
        entity_id: UUID,
        cycle_number: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CYCLE_NOTE_UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            cycle_number=cycle_number,
            correlation_id=correlation_id,
            description=f"Note updated on cycle {cycle_number}",
            is_user_action=True,
        )

    @staticmethod
    def cycle_override_updated(
        entity_type: str,
        entity_id: UUID,
        cycle_number: int,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CYCLE_OVERRIDE_UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            cycle_number=cycle_number,
            correlation_id=correlation_id,
            description=f"Target overridden on cycle {cycle_number}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def record_not_found(
        entity_type: str,
        entity_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} not found",
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
