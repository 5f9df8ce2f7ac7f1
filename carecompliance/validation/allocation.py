"""
Staff Allocation Validation

Decides whether a staff member may be assigned to a client for a service.
Three independent rule sources are evaluated:

1. CLIENT RESTRICTIONS - explicit client/staff pairing rules
2. STAFF BLACKLIST - staff-level exclusions by service type, client
   category, service category, or in general
3. QUALIFICATIONS - credentials a service category requires

DESIGN DECISION: Findings are collected from every source rather than
stopping at the first block. Administrators reviewing an allocation need
the complete set of reasons, not just "denied". The one exception is a
missing client: without a client there is nothing meaningful to check.

Hard blocks invalidate an allocation. Soft blocks and warnings are
reported but leave it valid.

IMPORTANT: Storage failures are not caught here. A validation that could
not read its rules must fail, never pass by default.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

import structlog

from carecompliance.config import get_settings
from carecompliance.config.settings import AllocationSettings
from carecompliance.models.allocation import (
    BlacklistSeverity,
    BlacklistType,
    Client,
    ClientStaffRestriction,
    EligibleStaff,
    RestrictionSeverity,
    StaffAssignment,
    StaffBlacklistEntry,
    StaffQualification,
    ValidationResult,
    ValidationViolation,
    ValidationWarning,
    ViolationSeverity,
    ViolationSource,
    ViolationType,
    WarningType,
    as_utc,
)
from carecompliance.services.storage import AllocationRepositoryInterface
from carecompliance.validation.qualifications import get_required_qualifications

logger = structlog.get_logger(__name__)


class ValidationTimeoutError(Exception):
    """A validation did not finish within the configured deadline."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _blacklist_violation(entry: StaffBlacklistEntry, reason: str) -> ValidationViolation:
    is_hard = entry.severity == BlacklistSeverity.HARD_BLOCK
    return ValidationViolation(
        type=ViolationType.HARD_BLOCK if is_hard else ViolationType.SOFT_BLOCK,
        reason=reason,
        source=ViolationSource.BLACKLIST,
        severity=ViolationSeverity.CRITICAL if is_hard else ViolationSeverity.HIGH,
    )


class AllocationValidator:
    """
    Validates staff allocations against restrictions, blacklists and
    qualification requirements.

    All reads go through the repository; the validator keeps no state
    between calls, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        repository: AllocationRepositoryInterface,
        settings: Optional[AllocationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize validator.

        Args:
            repository: Source of clients, staff and rule rows.
            settings: Allocation tunables. Loaded from the environment if None.
            clock: Returns the current time. Defaults to UTC wall-clock.
        """
        self._repository = repository
        self._settings = settings or get_settings().allocation
        self._clock = clock or _utcnow

    # -------------------------------------------------------------------------
    # Rule sources
    # -------------------------------------------------------------------------

    def _check_restrictions(
        self,
        restrictions: Iterable[ClientStaffRestriction],
        now: datetime,
    ) -> tuple[list[ValidationViolation], list[ValidationWarning]]:
        """
        Client-specific restrictions effective at `now`.

        hard_block -> critical hard block
        soft_block -> medium soft block
        preference -> warning only
        """
        violations = []
        warnings = []

        for restriction in restrictions:
            if not restriction.is_effective_at(now):
                continue

            if restriction.severity == RestrictionSeverity.HARD_BLOCK:
                violations.append(ValidationViolation(
                    type=ViolationType.HARD_BLOCK,
                    reason=(
                        "Staff member is blocked from working with this client: "
                        f"{restriction.reason}"
                    ),
                    source=ViolationSource.CLIENT_RESTRICTION,
                    severity=ViolationSeverity.CRITICAL,
                ))
            elif restriction.severity == RestrictionSeverity.SOFT_BLOCK:
                violations.append(ValidationViolation(
                    type=ViolationType.SOFT_BLOCK,
                    reason=f"Staff assignment not recommended: {restriction.reason}",
                    source=ViolationSource.CLIENT_RESTRICTION,
                    severity=ViolationSeverity.MEDIUM,
                ))
            else:
                warnings.append(ValidationWarning(
                    type=WarningType.PREFERENCE,
                    message=f"Warning: {restriction.reason}",
                ))

        return violations, warnings

    def _check_blacklist(
        self,
        entries: Iterable[StaffBlacklistEntry],
        client: Client,
        service_type: Optional[str],
        service_category: Optional[str],
        now: datetime,
    ) -> list[ValidationViolation]:
        """
        Staff blacklist entries effective at `now`.

        Each blacklist type is its own branch, guarded by equality of the
        entry's field with the requested value. Only the field matching the
        entry's type is set, so an entry matches at most its own branch.
        """
        violations = []
        client_category = client.category

        for entry in entries:
            if not entry.is_effective_at(now):
                continue

            if (
                entry.blacklist_type == BlacklistType.SERVICE_TYPE
                and service_type is not None
                and entry.service_type == service_type
            ):
                violations.append(_blacklist_violation(
                    entry,
                    f"Staff member is blocked from {service_type} services: {entry.reason}",
                ))

            if (
                entry.blacklist_type == BlacklistType.CLIENT_CATEGORY
                and entry.client_category == client_category
            ):
                violations.append(_blacklist_violation(
                    entry,
                    f"Staff member is blocked from {client_category.value} clients: "
                    f"{entry.reason}",
                ))

            if (
                entry.blacklist_type == BlacklistType.SERVICE_CATEGORY
                and service_category is not None
                and entry.service_category == service_category
            ):
                violations.append(_blacklist_violation(
                    entry,
                    f"Staff member is blocked from {service_category} category: "
                    f"{entry.reason}",
                ))

            if entry.blacklist_type == BlacklistType.GENERAL:
                violations.append(_blacklist_violation(
                    entry,
                    f"Staff member has general restriction: {entry.reason}",
                ))

        return violations

    def _check_qualifications(
        self,
        qualifications: list[StaffQualification],
        required_types: list[str],
        now: datetime,
    ) -> tuple[list[ValidationViolation], list[ValidationWarning]]:
        """
        Required qualification types, plus expiry warnings.

        A requirement is met only by a qualification of that type whose
        status is 'current'. Expiry warnings cover every qualification the
        staff member holds with an expiry date 1..N days away (N from
        settings, default 30).
        """
        violations = []
        warnings = []

        for required_type in required_types:
            has_qualification = any(
                q.qualification_type == required_type and q.is_current
                for q in qualifications
            )
            if not has_qualification:
                violations.append(ValidationViolation(
                    type=ViolationType.HARD_BLOCK,
                    reason=f"Staff member lacks required qualification: {required_type}",
                    source=ViolationSource.QUALIFICATION,
                    severity=ViolationSeverity.CRITICAL,
                ))

        today = now.date()
        window = self._settings.qualification_expiry_warning_days
        for qualification in qualifications:
            if qualification.expiry_date is None:
                continue
            days_until_expiry = (qualification.expiry_date - today).days
            if 0 < days_until_expiry <= window:
                warnings.append(ValidationWarning(
                    type=WarningType.QUALIFICATION_EXPIRY,
                    message=(
                        f"{qualification.qualification_name} expires soon "
                        f"({qualification.expiry_date.isoformat()})"
                    ),
                ))

        return violations, warnings

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def _evaluate(
        self,
        staff_id: str,
        client_id: str,
        service_type: Optional[str],
        service_category: Optional[str],
        now: datetime,
    ) -> ValidationResult:
        violations: list[ValidationViolation] = []
        warnings: list[ValidationWarning] = []

        # 1. Client-specific restrictions
        restrictions = await self._repository.get_active_restrictions(client_id, staff_id)
        restriction_violations, restriction_warnings = self._check_restrictions(
            restrictions, now
        )
        violations.extend(restriction_violations)
        warnings.extend(restriction_warnings)

        # 2. Client must exist
        client = await self._repository.get_client(client_id)
        if client is None:
            logger.warning(
                "allocation_client_not_found",
                staff_id=staff_id,
                client_id=client_id,
            )
            violations.append(ValidationViolation(
                type=ViolationType.HARD_BLOCK,
                reason="Client not found",
                source=ViolationSource.CLIENT_RESTRICTION,
                severity=ViolationSeverity.CRITICAL,
            ))
            return ValidationResult.from_findings(violations, warnings)

        # 3. Staff blacklist
        entries = await self._repository.get_active_blacklist_entries(staff_id)
        violations.extend(self._check_blacklist(
            entries, client, service_type, service_category, now
        ))

        # 4. Qualifications, only for categories with requirements
        required_types = (
            get_required_qualifications(service_category) if service_category else []
        )
        if required_types:
            qualifications = await self._repository.get_qualifications(staff_id)
            qualification_violations, qualification_warnings = self._check_qualifications(
                qualifications, required_types, now
            )
            violations.extend(qualification_violations)
            warnings.extend(qualification_warnings)

        # 5. Overall validity
        return ValidationResult.from_findings(violations, warnings)

    async def validate(
        self,
        staff_id: str,
        client_id: str,
        service_type: Optional[str] = None,
        service_category: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate one staff member for one client and service.

        Args:
            staff_id: Staff member to allocate
            client_id: Client receiving the service
            service_type: Requested service type, if known
            service_category: Requested service category, if known.
                Drives qualification requirements.
            now: Evaluation time. Defaults to the validator's clock.

        Returns:
            ValidationResult with every violation and warning found

        Raises:
            StorageError: If the repository cannot be read
            ValidationTimeoutError: If the configured deadline elapses
        """
        now = as_utc(now or self._clock())
        evaluation = self._evaluate(
            staff_id, client_id, service_type, service_category, now
        )

        timeout = self._settings.validation_timeout_seconds
        if timeout is None:
            return await evaluation

        try:
            return await asyncio.wait_for(evaluation, timeout=timeout)
        except asyncio.TimeoutError:
            raise ValidationTimeoutError(
                f"Validation of staff {staff_id} for client {client_id} "
                f"exceeded {timeout}s"
            ) from None

    async def _gather_bounded(self, calls: list) -> list[ValidationResult]:
        """
        Run validations concurrently, at most N at a time, in input order.

        The first failure cancels every validation still pending or running
        before it propagates.
        """
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_validations)

        async def run(call):
            async with semaphore:
                return await call()

        tasks = [asyncio.ensure_future(run(call)) for call in calls]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def get_eligible_staff(
        self,
        client_id: str,
        service_type: Optional[str] = None,
        service_category: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[EligibleStaff]:
        """
        List active staff who may be allocated to the client.

        Staff with a hard block are left out. Soft blocks and warnings keep
        the staff member in the list but set has_warnings.

        Order follows the repository's staff order. With
        rank_warning_free_first enabled, unflagged staff come first
        (stable within each group).
        """
        now = as_utc(now or self._clock())
        all_staff = await self._repository.list_active_staff()

        results = await self._gather_bounded([
            lambda member=member: self.validate(
                member.id, client_id, service_type, service_category, now=now
            )
            for member in all_staff
        ])

        eligible = [
            EligibleStaff(
                staff_id=member.id,
                staff_name=member.name,
                has_warnings=result.has_warnings,
            )
            for member, result in zip(all_staff, results)
            if result.is_valid
        ]

        if self._settings.rank_warning_free_first:
            eligible.sort(key=lambda e: e.has_warnings)

        return eligible

    async def validate_batch(
        self,
        assignments: list[StaffAssignment],
        now: Optional[datetime] = None,
    ) -> dict[str, ValidationResult]:
        """
        Validate many assignments independently.

        Results are keyed by "staff_id-client_id". When the same pair appears
        more than once, the later assignment's result replaces the earlier.
        """
        now = as_utc(now or self._clock())

        results = await self._gather_bounded([
            lambda a=assignment: self.validate(
                a.staff_id, a.client_id, a.service_type, a.service_category, now=now
            )
            for assignment in assignments
        ])

        by_key: dict[str, ValidationResult] = {}
        for assignment, result in zip(assignments, results):
            by_key[assignment.key] = result
        return by_key

    def get_summary(self, result: ValidationResult) -> str:
        """
        Plain-text summary of a result for administrators.

        Reasons are shown verbatim so they can be quoted in audit notes.
        """
        if result.is_valid and not result.violations and not result.warnings:
            return "Allocation permitted. No restrictions apply."

        lines = []

        if result.is_valid:
            lines.append("Allocation permitted with notes.")
        else:
            lines.append("Allocation NOT permitted:")
            for violation in result.hard_blocks:
                lines.append(f"  - [{violation.source.value}] {violation.reason}")

        if result.soft_blocks:
            lines.append("")
            lines.append("Not recommended:")
            for violation in result.soft_blocks:
                lines.append(f"  - [{violation.source.value}] {violation.reason}")

        if result.warnings:
            lines.append("")
            lines.append("Please note:")
            for warning in result.warnings:
                lines.append(f"  - {warning.message}")

        return "\n".join(lines)
