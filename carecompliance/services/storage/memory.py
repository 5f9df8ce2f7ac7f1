"""
In-Memory Storage Implementation

Holds rule rows in plain lists. Used by the test-suite and by callers that
already have the rows loaded (e.g. a nightly compliance report).

Filtering mirrors what the database queries of a real backend would do,
so tests exercise the same contract as production.
"""

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from carecompliance.models.allocation import (
    Client,
    ClientStaffRestriction,
    StaffBlacklistEntry,
    StaffMember,
    StaffQualification,
    as_utc,
)
from carecompliance.models.audit import AuditEvent
from carecompliance.models.scheduling import (
    BOOKED_ASSIGNMENT_STATUSES,
    CLOSED_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentAssignment,
    AvailabilityWindow,
    BookedAppointment,
    ClientStaffPreference,
    SchedulingConflictRecord,
    UnavailabilityPeriod,
)
from carecompliance.services.storage.interface import (
    AllocationRepositoryInterface,
    AuditStorageInterface,
)


class InMemoryAllocationRepository(AllocationRepositoryInterface):
    """Allocation repository backed by Python lists."""

    def __init__(
        self,
        clients: Iterable[Client] = (),
        staff: Iterable[StaffMember] = (),
        restrictions: Iterable[ClientStaffRestriction] = (),
        blacklist: Iterable[StaffBlacklistEntry] = (),
        qualifications: Iterable[StaffQualification] = (),
        availability_windows: Iterable[AvailabilityWindow] = (),
        unavailability_periods: Iterable[UnavailabilityPeriod] = (),
        appointments: Iterable[Appointment] = (),
        assignments: Iterable[AppointmentAssignment] = (),
        preferences: Iterable[ClientStaffPreference] = (),
    ):
        self.clients = {client.id: client for client in clients}
        self.staff = list(staff)
        self.restrictions = list(restrictions)
        self.blacklist = list(blacklist)
        self.qualifications = list(qualifications)
        self.availability_windows = list(availability_windows)
        self.unavailability_periods = list(unavailability_periods)
        self.appointments = {appt.id: appt for appt in appointments}
        self.assignments = list(assignments)
        self.preferences = list(preferences)
        self.saved_conflicts: list[SchedulingConflictRecord] = []

    async def get_active_restrictions(
        self,
        client_id: str,
        staff_id: str,
    ) -> list[ClientStaffRestriction]:
        return [
            r for r in self.restrictions
            if r.client_id == client_id and r.staff_id == staff_id and r.is_active
        ]

    async def get_client(self, client_id: str) -> Optional[Client]:
        return self.clients.get(client_id)

    async def get_active_blacklist_entries(
        self,
        staff_id: str,
    ) -> list[StaffBlacklistEntry]:
        return [e for e in self.blacklist if e.staff_id == staff_id and e.is_active]

    async def get_qualifications(
        self,
        staff_id: str,
    ) -> list[StaffQualification]:
        return [q for q in self.qualifications if q.staff_id == staff_id]

    async def list_active_staff(self) -> list[StaffMember]:
        return [s for s in self.staff if s.is_active]

    async def get_staff_by_ids(self, staff_ids: list[str]) -> list[StaffMember]:
        wanted = set(staff_ids)
        return [s for s in self.staff if s.id in wanted]

    async def get_availability_windows(
        self,
        staff_id: str,
        day_of_week: int,
    ) -> list[AvailabilityWindow]:
        return [
            w for w in self.availability_windows
            if w.staff_id == staff_id and w.day_of_week == day_of_week and w.is_active
        ]

    async def get_unavailability_periods(
        self,
        staff_id: str,
        start: datetime,
        end: datetime,
    ) -> list[UnavailabilityPeriod]:
        start, end = as_utc(start), as_utc(end)
        return [
            p for p in self.unavailability_periods
            if p.staff_id == staff_id
            and p.status == "approved"
            and p.start_date <= end
            and p.end_date >= start
        ]

    def _live_bookings(self) -> list[BookedAppointment]:
        """Pending/accepted assignments joined with their open appointments."""
        booked = []
        for assignment in self.assignments:
            if assignment.status not in BOOKED_ASSIGNMENT_STATUSES:
                continue
            appointment = self.appointments.get(assignment.appointment_id)
            if appointment is None or appointment.status in CLOSED_APPOINTMENT_STATUSES:
                continue
            booked.append(BookedAppointment(assignment=assignment, appointment=appointment))
        return booked

    async def get_overlapping_assignments(
        self,
        staff_id: str,
        exclude_appointment_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BookedAppointment]:
        start, end = as_utc(start), as_utc(end)
        return [
            b for b in self._live_bookings()
            if b.assignment.staff_id == staff_id
            and b.appointment.id != exclude_appointment_id
            and b.appointment.scheduled_start <= end
            and b.appointment.scheduled_end >= start
        ]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        return self.appointments.get(appointment_id)

    async def get_live_assignments(
        self,
        appointment_id: str,
    ) -> list[AppointmentAssignment]:
        return [
            a for a in self.assignments
            if a.appointment_id == appointment_id and a.status in BOOKED_ASSIGNMENT_STATUSES
        ]

    async def get_future_staff_bookings(
        self,
        staff_id: str,
        after: datetime,
    ) -> list[BookedAppointment]:
        after = as_utc(after)
        return [
            b for b in self._live_bookings()
            if b.assignment.staff_id == staff_id and b.appointment.scheduled_start >= after
        ]

    async def get_future_client_bookings(
        self,
        client_id: str,
        after: datetime,
    ) -> list[BookedAppointment]:
        after = as_utc(after)
        return [
            b for b in self._live_bookings()
            if b.appointment.client_id == client_id and b.appointment.scheduled_start >= after
        ]

    async def get_client_preferences(
        self,
        client_id: str,
    ) -> list[ClientStaffPreference]:
        return [p for p in self.preferences if p.client_id == client_id and p.is_active]

    async def save_scheduling_conflict(
        self,
        record: SchedulingConflictRecord,
    ) -> bool:
        self.saved_conflicts.append(record)
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

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
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
