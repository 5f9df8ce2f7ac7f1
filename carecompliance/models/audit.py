"""
Audit Models for Care Compliance

Every allocation decision is logged for audit purposes.
This provides:
1. Traceability of who was allowed or blocked, and why
2. Evidence for compliance review
3. Debugging information when things go wrong

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Allocation decisions
    ALLOCATION_VALIDATED = "allocation_validated"
    ALLOCATION_BLOCKED = "allocation_blocked"
    ALLOCATION_SOFT_BLOCKED = "allocation_soft_blocked"
    ELIGIBILITY_SCANNED = "eligibility_scanned"
    BATCH_VALIDATED = "batch_validated"

    # Appointment scheduling
    SCHEDULING_CONFLICTS_DETECTED = "scheduling_conflicts_detected"
    SCHEDULING_CONFLICT_RECORDED = "scheduling_conflict_recorded"
    APPOINTMENTS_REVALIDATED = "appointments_revalidated"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


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
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'staff', 'client', 'appointment')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one scheduling request)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

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
            "entity_id": self.entity_id,
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
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _pair_id(staff_id: str, client_id: str) -> str:
    return f"{staff_id}-{client_id}"


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.allocation_validated("S1", "C1", 0, 1, cid)
        event = AuditEventBuilder.storage_error("get_client", "timeout", cid)
    """

    @staticmethod
    def allocation_validated(
        staff_id: str,
        client_id: str,
        violation_count: int,
        warning_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_VALIDATED,
            entity_type="allocation",
            entity_id=_pair_id(staff_id, client_id),
            correlation_id=correlation_id,
            description=f"Staff {staff_id} may be allocated to client {client_id}",
            details={
                "staff_id": staff_id,
                "client_id": client_id,
                "violation_count": violation_count,
                "warning_count": warning_count,
            },
        )

    @staticmethod
    def allocation_blocked(
        staff_id: str,
        client_id: str,
        reasons: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_BLOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="allocation",
            entity_id=_pair_id(staff_id, client_id),
            correlation_id=correlation_id,
            description=(
                f"Staff {staff_id} blocked from client {client_id} "
                f"({len(reasons)} hard blocks)"
            ),
            details={
                "staff_id": staff_id,
                "client_id": client_id,
                "reasons": reasons,
            },
        )

    @staticmethod
    def allocation_soft_blocked(
        staff_id: str,
        client_id: str,
        reasons: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_SOFT_BLOCKED,
            entity_type="allocation",
            entity_id=_pair_id(staff_id, client_id),
            correlation_id=correlation_id,
            description=(
                f"Staff {staff_id} allowed for client {client_id} "
                f"with {len(reasons)} soft blocks"
            ),
            details={
                "staff_id": staff_id,
                "client_id": client_id,
                "reasons": reasons,
            },
        )

    @staticmethod
    def eligibility_scanned(
        client_id: str,
        eligible_count: int,
        flagged_count: int,
        service_type: Optional[str] = None,
        service_category: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ELIGIBILITY_SCANNED,
            entity_type="client",
            entity_id=client_id,
            correlation_id=correlation_id,
            description=f"Eligibility scan found {eligible_count} staff for client {client_id}",
            details={
                "eligible_count": eligible_count,
                "flagged_count": flagged_count,
                "service_type": service_type,
                "service_category": service_category,
            },
            is_user_action=True,
        )

    @staticmethod
    def batch_validated(
        assignment_count: int,
        invalid_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_VALIDATED,
            severity=AuditSeverity.WARNING if invalid_keys else AuditSeverity.INFO,
            entity_type="batch",
            correlation_id=correlation_id,
            description=(
                f"Batch of {assignment_count} assignments validated, "
                f"{len(invalid_keys)} invalid"
            ),
            details={
                "assignment_count": assignment_count,
                "invalid_keys": invalid_keys,
            },
            is_user_action=True,
        )

    @staticmethod
    def scheduling_conflicts_detected(
        appointment_id: str,
        staff_id: str,
        critical_count: int,
        warning_count: int,
        info_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULING_CONFLICTS_DETECTED,
            severity=AuditSeverity.WARNING if critical_count else AuditSeverity.INFO,
            entity_type="appointment",
            entity_id=appointment_id,
            correlation_id=correlation_id,
            description=(
                f"Staff {staff_id} on appointment {appointment_id}: "
                f"{critical_count} critical, {warning_count} warnings"
            ),
            details={
                "staff_id": staff_id,
                "critical_count": critical_count,
                "warning_count": warning_count,
                "info_count": info_count,
            },
        )

    @staticmethod
    def scheduling_conflict_recorded(
        appointment_id: str,
        conflict_type: str,
        severity: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULING_CONFLICT_RECORDED,
            entity_type="appointment",
            entity_id=appointment_id,
            correlation_id=correlation_id,
            description=f"Recorded {severity} {conflict_type} conflict",
            details={
                "conflict_type": conflict_type,
                "severity": severity,
            },
        )

    @staticmethod
    def appointments_revalidated(
        entity_type: str,
        entity_id: str,
        appointments_checked: int,
        conflicts_found: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.APPOINTMENTS_REVALIDATED,
            severity=AuditSeverity.WARNING if conflicts_found else AuditSeverity.INFO,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=(
                f"Re-checked {appointments_checked} upcoming bookings for "
                f"{entity_type} {entity_id}: {conflicts_found} conflicts"
            ),
            details={
                "appointments_checked": appointments_checked,
                "conflicts_found": conflicts_found,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
