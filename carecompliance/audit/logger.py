"""
Audit Logger

DESIGN DECISION: Every allocation decision is logged.
This provides:
1. Evidence for compliance review (who was blocked, and why)
2. Debugging capability
3. A history administrators can query per client or staff pair

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from carecompliance.models.audit import AuditEvent, AuditEventBuilder
from carecompliance.services.storage import AuditStorageInterface


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and review), when configured
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
        self._logger = structlog.get_logger(__name__)

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

    async def log_allocation_validated(
        self,
        staff_id: str,
        client_id: str,
        violation_count: int,
        warning_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocation_validated(
            staff_id=staff_id,
            client_id=client_id,
            violation_count=violation_count,
            warning_count=warning_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_blocked(
        self,
        staff_id: str,
        client_id: str,
        reasons: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an allocation rejected by at least one hard block."""
        event = AuditEventBuilder.allocation_blocked(
            staff_id=staff_id,
            client_id=client_id,
            reasons=reasons,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_soft_blocked(
        self,
        staff_id: str,
        client_id: str,
        reasons: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocation_soft_blocked(
            staff_id=staff_id,
            client_id=client_id,
            reasons=reasons,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_eligibility_scanned(
        self,
        client_id: str,
        eligible_count: int,
        flagged_count: int,
        service_type: Optional[str] = None,
        service_category: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.eligibility_scanned(
            client_id=client_id,
            eligible_count=eligible_count,
            flagged_count=flagged_count,
            service_type=service_type,
            service_category=service_category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_batch_validated(
        self,
        assignment_count: int,
        invalid_keys: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.batch_validated(
            assignment_count=assignment_count,
            invalid_keys=invalid_keys,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_scheduling_conflicts(
        self,
        appointment_id: str,
        staff_id: str,
        critical_count: int,
        warning_count: int,
        info_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.scheduling_conflicts_detected(
            appointment_id=appointment_id,
            staff_id=staff_id,
            critical_count=critical_count,
            warning_count=warning_count,
            info_count=info_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_scheduling_conflict_recorded(
        self,
        appointment_id: str,
        conflict_type: str,
        severity: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.scheduling_conflict_recorded(
            appointment_id=appointment_id,
            conflict_type=conflict_type,
            severity=severity,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_appointments_revalidated(
        self,
        entity_type: str,
        entity_id: str,
        appointments_checked: int,
        conflicts_found: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.appointments_revalidated(
            entity_type=entity_type,
            entity_id=entity_id,
            appointments_checked=appointments_checked,
            conflicts_found=conflicts_found,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
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

    Use this at the start of a request (e.g., one rostering action).
    Pass it through all subsequent operations.
    """
    return uuid4()
