"""
Main Orchestrator for Care Compliance

This module ties together all the components and defines the flows the
request layer calls:
1. Validate one allocation (staff + client + service)
2. Find eligible staff for a client
3. Validate a batch of allocations
4. Check and record conflicts for a scheduled appointment
5. Re-check upcoming bookings after a staff member or client changes

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every decision is audited
- Failures are audited and then re-raised, never turned into a pass
- The validators themselves stay free of audit concerns
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from carecompliance.audit import AuditLogger, create_correlation_id
from carecompliance.config import get_settings
from carecompliance.config.settings import AllocationSettings
from carecompliance.models.allocation import (
    EligibleStaff,
    StaffAssignment,
    ValidationResult,
)
from carecompliance.models.scheduling import (
    AssignmentContext,
    ConflictCheckResult,
    RevalidationSummary,
)
from carecompliance.services.storage import (
    AllocationRepositoryInterface,
    GoogleSheetsAllocationRepository,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    StorageError,
)
from carecompliance.validation import AllocationValidator, AppointmentConflictChecker

logger = structlog.get_logger(__name__)


class AllocationComplianceService:
    """
    Audited entry point for allocation decisions.

    Flow for a single validation:
    1. Validate → AllocationValidator collects every finding
    2. Audit → blocked / soft-blocked / validated event
    3. Return → the full ValidationResult for the caller to display
    """

    def __init__(
        self,
        repository: AllocationRepositoryInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AllocationSettings] = None,
        validator: Optional[AllocationValidator] = None,
        conflict_checker: Optional[AppointmentConflictChecker] = None,
    ):
        self._repository = repository
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or AllocationValidator(repository, settings=settings)
        self._conflict_checker = conflict_checker or AppointmentConflictChecker(repository)

    @property
    def validator(self) -> AllocationValidator:
        return self._validator

    async def _audit_failure(
        self,
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Audit an exception before it propagates to the caller."""
        if isinstance(error, StorageError):
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
            )
        else:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"operation": operation},
                correlation_id=correlation_id,
            )

    async def _audit_result(
        self,
        staff_id: str,
        client_id: str,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> None:
        if not result.is_valid:
            await self._audit_logger.log_allocation_blocked(
                staff_id=staff_id,
                client_id=client_id,
                reasons=[v.reason for v in result.hard_blocks],
                correlation_id=correlation_id,
            )
        elif result.soft_blocks:
            await self._audit_logger.log_allocation_soft_blocked(
                staff_id=staff_id,
                client_id=client_id,
                reasons=[v.reason for v in result.soft_blocks],
                correlation_id=correlation_id,
            )
        else:
            await self._audit_logger.log_allocation_validated(
                staff_id=staff_id,
                client_id=client_id,
                violation_count=len(result.violations),
                warning_count=len(result.warnings),
                correlation_id=correlation_id,
            )

    async def validate_allocation(
        self,
        staff_id: str,
        client_id: str,
        service_type: Optional[str] = None,
        service_category: Optional[str] = None,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ValidationResult:
        """
        Validate and audit one allocation.

        Raises:
            StorageError: If the rules could not be read (after auditing it)
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            result = await self._validator.validate(
                staff_id, client_id, service_type, service_category, now=now
            )
        except Exception as e:
            await self._audit_failure("validate_allocation", e, correlation_id)
            raise

        await self._audit_result(staff_id, client_id, result, correlation_id)
        return result

    async def find_eligible_staff(
        self,
        client_id: str,
        service_type: Optional[str] = None,
        service_category: Optional[str] = None,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[EligibleStaff]:
        """Scan active staff for a client and audit the outcome."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            eligible = await self._validator.get_eligible_staff(
                client_id, service_type, service_category, now=now
            )
        except Exception as e:
            await self._audit_failure("find_eligible_staff", e, correlation_id)
            raise

        await self._audit_logger.log_eligibility_scanned(
            client_id=client_id,
            eligible_count=len(eligible),
            flagged_count=sum(1 for e in eligible if e.has_warnings),
            service_type=service_type,
            service_category=service_category,
            correlation_id=correlation_id,
        )
        return eligible

    async def validate_assignments(
        self,
        assignments: list[StaffAssignment],
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, ValidationResult]:
        """Validate a batch and audit which keys came back invalid."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            results = await self._validator.validate_batch(assignments, now=now)
        except Exception as e:
            await self._audit_failure("validate_assignments", e, correlation_id)
            raise

        await self._audit_logger.log_batch_validated(
            assignment_count=len(assignments),
            invalid_keys=[key for key, result in results.items() if not result.is_valid],
            correlation_id=correlation_id,
        )
        return results

    async def check_appointment(
        self,
        context: AssignmentContext,
        record: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> ConflictCheckResult:
        """
        Check a staff member against a scheduled appointment.

        Args:
            context: The appointment slot and people involved
            record: Also persist every finding as a scheduling conflict
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            if record:
                result = await self._conflict_checker.detect_and_record_conflicts(context)
            else:
                result = await self._conflict_checker.validate_assignment(context)
        except Exception as e:
            await self._audit_failure("check_appointment", e, correlation_id)
            raise

        await self._audit_logger.log_scheduling_conflicts(
            appointment_id=context.appointment_id,
            staff_id=context.staff_id,
            critical_count=len(result.conflicts),
            warning_count=len(result.warnings),
            info_count=len(result.info),
            correlation_id=correlation_id,
        )

        if record:
            for finding in result.all_findings:
                await self._audit_logger.log_scheduling_conflict_recorded(
                    appointment_id=context.appointment_id,
                    conflict_type=finding.type.value,
                    severity=finding.severity.value,
                    correlation_id=correlation_id,
                )
        return result

    async def revalidate_appointment(
        self,
        appointment_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, ConflictCheckResult]:
        """
        Re-check and record conflicts for everyone booked on an appointment.

        Raises:
            NotFoundError: If the appointment or its client does not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            results = await self._conflict_checker.validate_and_record_for_appointment(
                appointment_id
            )
        except Exception as e:
            await self._audit_failure("revalidate_appointment", e, correlation_id)
            raise

        for staff_id, result in results.items():
            await self._audit_logger.log_scheduling_conflicts(
                appointment_id=appointment_id,
                staff_id=staff_id,
                critical_count=len(result.conflicts),
                warning_count=len(result.warnings),
                info_count=len(result.info),
                correlation_id=correlation_id,
            )
        return results

    async def revalidate_staff_appointments(
        self,
        staff_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> RevalidationSummary:
        """Re-check a staff member's upcoming bookings after their rules change."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            summary = await self._conflict_checker.revalidate_staff_future_appointments(
                staff_id
            )
        except Exception as e:
            await self._audit_failure("revalidate_staff_appointments", e, correlation_id)
            raise

        await self._audit_logger.log_appointments_revalidated(
            entity_type="staff",
            entity_id=staff_id,
            appointments_checked=summary.appointments_checked,
            conflicts_found=summary.conflicts_found,
            correlation_id=correlation_id,
        )
        return summary

    async def revalidate_client_appointments(
        self,
        client_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> RevalidationSummary:
        """Re-check a client's upcoming bookings after their restrictions change."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            summary = await self._conflict_checker.revalidate_client_future_appointments(
                client_id
            )
        except Exception as e:
            await self._audit_failure("revalidate_client_appointments", e, correlation_id)
            raise

        await self._audit_logger.log_appointments_revalidated(
            entity_type="client",
            entity_id=client_id,
            appointments_checked=summary.appointments_checked,
            conflicts_found=summary.conflicts_found,
            correlation_id=correlation_id,
        )
        return summary


def create_app_components(
    repository: Optional[AllocationRepositoryInterface] = None,
) -> tuple[AllocationComplianceService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create the compliance service.

    Args:
        repository: Use this repository instead of Google Sheets
                    (e.g. an in-memory one in tests). Audit events are
                    then only logged locally.

    Returns:
        (service, sheets_client) - sheets_client is None when a repository
        was supplied

    Raises:
        ConnectionError: If Google Sheets is required but not configured
    """
    settings = get_settings().allocation

    if repository is not None:
        service = AllocationComplianceService(
            repository=repository,
            audit_logger=AuditLogger(),
            settings=settings,
        )
        return service, None

    sheets_client = GoogleSheetsClient()
    sheets_client.connect()
    logger.info("google_sheets_connected", spreadsheet_id=sheets_client.settings.spreadsheet_id)

    service = AllocationComplianceService(
        repository=GoogleSheetsAllocationRepository(sheets_client),
        audit_logger=AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
        settings=settings,
    )
    return service, sheets_client
