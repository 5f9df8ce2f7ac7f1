"""
Appointment Conflict Checks

Where AllocationValidator answers "may this person ever work with this
client?", the checks here answer "can this person take this particular
appointment?". They look at a concrete time slot:

- client restrictions in force
- the staff member's weekly availability
- approved leave overlapping the slot
- other bookings overlapping the slot
- the client's preferred staff list

Findings are sorted into critical (cannot proceed), warning (needs review)
and info (advisory).
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from carecompliance.models.allocation import (
    Client,
    RestrictionSeverity,
    StaffMember,
    as_utc,
)
from carecompliance.models.scheduling import (
    DAY_NAMES,
    Appointment,
    AssignmentContext,
    ConflictCheckResult,
    ConflictInfo,
    ConflictSeverity,
    ConflictType,
    RevalidationSummary,
    SchedulingConflictRecord,
    day_of_week,
)
from carecompliance.services.storage import AllocationRepositoryInterface, NotFoundError

logger = structlog.get_logger(__name__)

_RESTRICTION_SEVERITY = {
    RestrictionSeverity.HARD_BLOCK: ConflictSeverity.CRITICAL,
    RestrictionSeverity.SOFT_BLOCK: ConflictSeverity.WARNING,
    RestrictionSeverity.PREFERENCE: ConflictSeverity.INFO,
}

_RESTRICTION_TITLES = {
    ConflictSeverity.CRITICAL: "Staff Restriction Block",
    ConflictSeverity.WARNING: "Staff Restriction Warning",
    ConflictSeverity.INFO: "Staff Restriction Note",
}


def _hhmm(moment: datetime) -> str:
    return moment.strftime("%H:%M")


def _format_time(moment: datetime) -> str:
    return moment.strftime("%I:%M %p")


def _format_date(moment: datetime) -> str:
    return moment.strftime("%d %b %Y")


class AppointmentConflictChecker:
    """Checks one or more staff members against a scheduled appointment."""

    def __init__(
        self,
        repository: AllocationRepositoryInterface,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def check_restrictions(self, context: AssignmentContext) -> list[ConflictInfo]:
        conflicts = []
        now = self._clock()

        restrictions = await self._repository.get_active_restrictions(
            context.client_id, context.staff_id
        )

        for restriction in restrictions:
            if not restriction.is_effective_at(now):
                continue

            severity = _RESTRICTION_SEVERITY[restriction.severity]
            label = restriction.severity.value.replace("_", " ")
            conflicts.append(ConflictInfo(
                type=ConflictType.RESTRICTION_VIOLATION,
                severity=severity,
                title=_RESTRICTION_TITLES[severity],
                description=(
                    f"{context.staff_name} has a {label} restriction for "
                    f"{context.client_name}: {restriction.reason}"
                ),
                details={
                    "restriction_id": restriction.id,
                    "restriction_reason": restriction.reason,
                    "restriction_severity": restriction.severity.value,
                    "effective_from": restriction.effective_from.isoformat(),
                    "effective_to": (
                        restriction.effective_to.isoformat()
                        if restriction.effective_to else None
                    ),
                },
                related_entity_type="restriction",
                related_entity_id=restriction.id,
            ))

        return conflicts

    async def check_availability_windows(
        self,
        context: AssignmentContext,
    ) -> list[ConflictInfo]:
        """
        Is the appointment inside one of the staff member's weekly windows?

        Times are compared as zero-padded HH:MM strings.
        """
        start = context.scheduled_start
        weekday = day_of_week(start)
        day_name = DAY_NAMES[weekday]
        start_time = _hhmm(start)
        end_time = _hhmm(context.scheduled_end)

        windows = await self._repository.get_availability_windows(context.staff_id, weekday)
        active_windows = [w for w in windows if w.applies_on(start.date())]

        if not active_windows:
            return [ConflictInfo(
                type=ConflictType.AVAILABILITY_CONFLICT,
                severity=ConflictSeverity.WARNING,
                title="No Availability Window",
                description=(
                    f"{context.staff_name} has no availability window set for {day_name}"
                ),
                details={
                    "day_of_week": weekday,
                    "day_name": day_name,
                    "appointment_start": start_time,
                    "appointment_end": end_time,
                },
            )]

        within_any = any(
            start_time >= w.start_time and end_time <= w.end_time
            for w in active_windows
        )
        if within_any:
            return []

        windows_description = ", ".join(
            f"{w.start_time} - {w.end_time}" for w in active_windows
        )
        return [ConflictInfo(
            type=ConflictType.AVAILABILITY_CONFLICT,
            severity=ConflictSeverity.WARNING,
            title="Outside Availability Window",
            description=(
                f"{context.staff_name}'s appointment ({start_time} - {end_time}) falls "
                f"outside their availability on {day_name}: {windows_description}"
            ),
            details={
                "day_of_week": weekday,
                "day_name": day_name,
                "appointment_start": start_time,
                "appointment_end": end_time,
                "available_windows": [
                    {"start_time": w.start_time, "end_time": w.end_time}
                    for w in active_windows
                ],
            },
        )]

    async def check_unavailability_periods(
        self,
        context: AssignmentContext,
    ) -> list[ConflictInfo]:
        periods = await self._repository.get_unavailability_periods(
            context.staff_id, context.scheduled_start, context.scheduled_end
        )

        conflicts = []
        for period in periods:
            suffix = f": {period.reason}" if period.reason else ""
            conflicts.append(ConflictInfo(
                type=ConflictType.AVAILABILITY_CONFLICT,
                severity=ConflictSeverity.CRITICAL,
                title="Staff Unavailable",
                description=(
                    f"{context.staff_name} is unavailable ({period.type_label}) from "
                    f"{_format_date(period.start_date)} to {_format_date(period.end_date)}"
                    f"{suffix}"
                ),
                details={
                    "unavailability_id": period.id,
                    "unavailability_type": period.unavailability_type,
                    "start_date": period.start_date.isoformat(),
                    "end_date": period.end_date.isoformat(),
                    "reason": period.reason,
                    "is_all_day": period.is_all_day,
                },
                related_entity_type="unavailability",
                related_entity_id=period.id,
            ))
        return conflicts

    async def check_double_booking(self, context: AssignmentContext) -> list[ConflictInfo]:
        booked = await self._repository.get_overlapping_assignments(
            context.staff_id,
            context.appointment_id,
            context.scheduled_start,
            context.scheduled_end,
        )

        conflicts = []
        for item in booked:
            appointment = item.appointment
            conflicts.append(ConflictInfo(
                type=ConflictType.DOUBLE_BOOKING,
                severity=ConflictSeverity.CRITICAL,
                title="Double Booking Detected",
                description=(
                    f'{context.staff_name} is already assigned to "{appointment.title}" '
                    f"({_format_time(appointment.scheduled_start)} - "
                    f"{_format_time(appointment.scheduled_end)}) which overlaps with "
                    "this appointment"
                ),
                details={
                    "conflicting_appointment_id": appointment.id,
                    "conflicting_appointment_title": appointment.title,
                    "conflicting_start": appointment.scheduled_start.isoformat(),
                    "conflicting_end": appointment.scheduled_end.isoformat(),
                    "assignment_id": item.assignment.id,
                    "assignment_status": item.assignment.status.value,
                },
                related_entity_type="appointment",
                related_entity_id=appointment.id,
            ))
        return conflicts

    async def check_preferences(self, context: AssignmentContext) -> list[ConflictInfo]:
        """Info finding when the client prefers other staff."""
        preferences = await self._repository.get_client_preferences(context.client_id)
        if not preferences:
            return []

        if any(p.staff_id == context.staff_id for p in preferences):
            return []

        preferred_ids = [p.staff_id for p in preferences]
        preferred_staff = await self._repository.get_staff_by_ids(preferred_ids)
        preferred_names = ", ".join(s.name for s in preferred_staff)

        return [ConflictInfo(
            type=ConflictType.PREFERENCE_OVERRIDE,
            severity=ConflictSeverity.INFO,
            title="Non-Preferred Staff Assignment",
            description=(
                f"{context.staff_name} is not on {context.client_name}'s preferred "
                f"staff list. Preferred staff: {preferred_names or 'None specified'}"
            ),
            details={
                "preferred_staff_ids": preferred_ids,
                "preferred_staff_names": [
                    {"id": s.id, "name": s.name} for s in preferred_staff
                ],
                "client_preferences": [
                    {"staff_id": p.staff_id, "level": p.preference_level, "notes": p.notes}
                    for p in preferences
                ],
            },
        )]

    async def validate_assignment(self, context: AssignmentContext) -> ConflictCheckResult:
        """
        Run every check and partition the findings by severity.

        Returns:
            ConflictCheckResult where is_valid means no critical or warning
            findings and can_proceed means no critical findings
        """
        checks = await asyncio.gather(
            self.check_restrictions(context),
            self.check_availability_windows(context),
            self.check_unavailability_periods(context),
            self.check_double_booking(context),
            self.check_preferences(context),
        )

        conflicts = []
        warnings = []
        info = []
        for findings in checks:
            for finding in findings:
                if finding.severity == ConflictSeverity.CRITICAL:
                    conflicts.append(finding)
                elif finding.severity == ConflictSeverity.WARNING:
                    warnings.append(finding)
                else:
                    info.append(finding)

        return ConflictCheckResult(
            is_valid=not conflicts and not warnings,
            can_proceed=not conflicts,
            conflicts=conflicts,
            warnings=warnings,
            info=info,
        )

    async def validate_multiple_staff(
        self,
        appointment_id: str,
        client_id: str,
        client_name: str,
        scheduled_start: datetime,
        scheduled_end: datetime,
        staff: list[tuple[str, str]],
        checking_user_id: Optional[str] = None,
        checking_user_name: Optional[str] = None,
    ) -> dict[str, ConflictCheckResult]:
        """
        Check several candidates for the same appointment.

        Args:
            staff: (staff_id, staff_name) pairs

        Returns:
            Results keyed by staff_id
        """
        contexts = [
            AssignmentContext(
                appointment_id=appointment_id,
                client_id=client_id,
                client_name=client_name,
                staff_id=staff_id,
                staff_name=staff_name,
                scheduled_start=scheduled_start,
                scheduled_end=scheduled_end,
                checking_user_id=checking_user_id,
                checking_user_name=checking_user_name,
            )
            for staff_id, staff_name in staff
        ]
        results = await asyncio.gather(*(self.validate_assignment(c) for c in contexts))
        return {c.staff_id: r for c, r in zip(contexts, results)}

    async def record_conflicts(
        self,
        context: AssignmentContext,
        findings: list[ConflictInfo],
    ) -> list[SchedulingConflictRecord]:
        """Persist findings as open conflict records."""
        records = [
            SchedulingConflictRecord(
                appointment_id=context.appointment_id,
                client_id=context.client_id,
                client_name=context.client_name,
                staff_id=context.staff_id,
                staff_name=context.staff_name,
                conflict_type=finding.type,
                severity=finding.severity,
                title=finding.title,
                description=finding.description,
                conflict_details={
                    **finding.details,
                    "related_entity_type": finding.related_entity_type,
                    "related_entity_id": finding.related_entity_id,
                },
                conflict_date=context.scheduled_start,
                detected_by_id=context.checking_user_id,
                detected_by_name=context.checking_user_name,
                detected_by_system=context.checking_user_id is None,
            )
            for finding in findings
        ]
        await asyncio.gather(
            *(self._repository.save_scheduling_conflict(r) for r in records)
        )
        return records

    async def detect_and_record_conflicts(
        self,
        context: AssignmentContext,
    ) -> ConflictCheckResult:
        """Validate and persist every finding (critical, warning and info)."""
        result = await self.validate_assignment(context)

        findings = result.all_findings
        if findings:
            await self.record_conflicts(context, findings)
            logger.info(
                "scheduling_conflicts_recorded",
                appointment_id=context.appointment_id,
                staff_id=context.staff_id,
                count=len(findings),
            )

        return result

    # -------------------------------------------------------------------------
    # Re-checking existing bookings
    # -------------------------------------------------------------------------

    @staticmethod
    def _context_for(
        appointment: Appointment,
        client: Client,
        member: StaffMember,
    ) -> AssignmentContext:
        return AssignmentContext(
            appointment_id=appointment.id,
            client_id=client.id,
            client_name=client.participant_name or client.id,
            staff_id=member.id,
            staff_name=member.name or "Unknown Staff",
            scheduled_start=appointment.scheduled_start,
            scheduled_end=appointment.scheduled_end,
        )

    async def validate_and_record_for_appointment(
        self,
        appointment_id: str,
    ) -> dict[str, ConflictCheckResult]:
        """
        Re-check every staff member currently booked on an appointment.

        Findings are recorded as with detect_and_record_conflicts.

        Returns:
            Results keyed by staff_id

        Raises:
            NotFoundError: If the appointment or its client does not exist
        """
        appointment = await self._repository.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        client = await self._repository.get_client(appointment.client_id)
        if client is None:
            raise NotFoundError(f"Client {appointment.client_id} not found")

        assignments = await self._repository.get_live_assignments(appointment_id)
        members = {
            member.id: member
            for member in await self._repository.get_staff_by_ids(
                [a.staff_id for a in assignments]
            )
        }

        results = {}
        for assignment in assignments:
            member = members.get(assignment.staff_id)
            if member is None:
                continue
            context = self._context_for(appointment, client, member)
            results[member.id] = await self.detect_and_record_conflicts(context)
        return results

    async def revalidate_staff_future_appointments(
        self,
        staff_id: str,
    ) -> RevalidationSummary:
        """
        Re-check a staff member's upcoming bookings, e.g. after their leave,
        availability or restrictions change.
        """
        now = as_utc(self._clock())
        bookings = await self._repository.get_future_staff_bookings(staff_id, now)

        members = await self._repository.get_staff_by_ids([staff_id])
        member = members[0] if members else StaffMember(id=staff_id, name="Unknown Staff")

        summary = RevalidationSummary()
        for booking in bookings:
            client = await self._repository.get_client(booking.appointment.client_id)
            if client is None:
                continue
            context = self._context_for(booking.appointment, client, member)
            result = await self.detect_and_record_conflicts(context)
            summary.appointments_checked += 1
            summary.conflicts_found += len(result.conflicts) + len(result.warnings)

        logger.info(
            "staff_appointments_revalidated",
            staff_id=staff_id,
            appointments_checked=summary.appointments_checked,
            conflicts_found=summary.conflicts_found,
        )
        return summary

    async def revalidate_client_future_appointments(
        self,
        client_id: str,
    ) -> RevalidationSummary:
        """
        Re-check every upcoming booking on a client's appointments.

        Raises:
            NotFoundError: If the client does not exist
        """
        client = await self._repository.get_client(client_id)
        if client is None:
            raise NotFoundError(f"Client {client_id} not found")

        now = as_utc(self._clock())
        bookings = await self._repository.get_future_client_bookings(client_id, now)
        members = {
            member.id: member
            for member in await self._repository.get_staff_by_ids(
                list({b.assignment.staff_id for b in bookings})
            )
        }

        summary = RevalidationSummary()
        for booking in bookings:
            member = members.get(booking.assignment.staff_id)
            if member is None:
                continue
            context = self._context_for(booking.appointment, client, member)
            result = await self.detect_and_record_conflicts(context)
            summary.appointments_checked += 1
            summary.conflicts_found += len(result.conflicts) + len(result.warnings)

        logger.info(
            "client_appointments_revalidated",
            client_id=client_id,
            appointments_checked=summary.appointments_checked,
            conflicts_found=summary.conflicts_found,
        )
        return summary
