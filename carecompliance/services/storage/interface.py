"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the rule engine decoupled from storage implementation

The interface is intentionally read-mostly. Restrictions, blacklist entries
and qualifications are maintained by administrative screens elsewhere; the
allocation validator only reads them. The one write is recording scheduling
conflicts for review.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from carecompliance.models.allocation import (
    Client,
    ClientStaffRestriction,
    StaffBlacklistEntry,
    StaffMember,
    StaffQualification,
)
from carecompliance.models.audit import AuditEvent
from carecompliance.models.scheduling import (
    Appointment,
    AppointmentAssignment,
    AvailabilityWindow,
    BookedAppointment,
    ClientStaffPreference,
    SchedulingConflictRecord,
    UnavailabilityPeriod,
)


class AllocationRepositoryInterface(ABC):
    """
    Abstract interface for the rule data the allocation validator reads.

    Implementations return empty lists (never None) when nothing matches.
    Backend failures must surface as StorageError.
    """

    @abstractmethod
    async def get_active_restrictions(
        self,
        client_id: str,
        staff_id: str,
    ) -> list[ClientStaffRestriction]:
        """
        Get active restrictions for one client/staff pair.

        Only is_active rows are returned. Effective-date filtering is left
        to the caller, which evaluates against its own clock.
        """
        pass

    @abstractmethod
    async def get_client(self, client_id: str) -> Optional[Client]:
        """
        Retrieve a client by ID.

        Returns:
            The client if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_active_blacklist_entries(
        self,
        staff_id: str,
    ) -> list[StaffBlacklistEntry]:
        """Get active blacklist entries for a staff member."""
        pass

    @abstractmethod
    async def get_qualifications(
        self,
        staff_id: str,
    ) -> list[StaffQualification]:
        """Get every qualification recorded for a staff member, any status."""
        pass

    @abstractmethod
    async def list_active_staff(self) -> list[StaffMember]:
        """
        List all active staff in the backend's natural order.

        The eligibility scanner preserves this order.
        """
        pass

    @abstractmethod
    async def get_staff_by_ids(self, staff_ids: list[str]) -> list[StaffMember]:
        """Get staff records for the given IDs. Unknown IDs are skipped."""
        pass

    @abstractmethod
    async def get_availability_windows(
        self,
        staff_id: str,
        day_of_week: int,
    ) -> list[AvailabilityWindow]:
        """
        Get active weekly availability windows for one weekday.

        Args:
            staff_id: The staff member
            day_of_week: 0 = Sunday ... 6 = Saturday
        """
        pass

    @abstractmethod
    async def get_unavailability_periods(
        self,
        staff_id: str,
        start: datetime,
        end: datetime,
    ) -> list[UnavailabilityPeriod]:
        """Get approved unavailability periods overlapping [start, end]."""
        pass

    @abstractmethod
    async def get_overlapping_assignments(
        self,
        staff_id: str,
        exclude_appointment_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BookedAppointment]:
        """
        Get the staff member's other live bookings overlapping [start, end].

        Live means the assignment is pending/accepted and the appointment is
        neither cancelled nor completed.
        """
        pass

    @abstractmethod
    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        """Get an appointment by ID, or None."""
        pass

    @abstractmethod
    async def get_live_assignments(
        self,
        appointment_id: str,
    ) -> list[AppointmentAssignment]:
        """Get the pending/accepted assignments of one appointment."""
        pass

    @abstractmethod
    async def get_future_staff_bookings(
        self,
        staff_id: str,
        after: datetime,
    ) -> list[BookedAppointment]:
        """Get the staff member's live bookings starting at or after `after`."""
        pass

    @abstractmethod
    async def get_future_client_bookings(
        self,
        client_id: str,
        after: datetime,
    ) -> list[BookedAppointment]:
        """Get live bookings (any staff) on the client's future appointments."""
        pass

    @abstractmethod
    async def get_client_preferences(
        self,
        client_id: str,
    ) -> list[ClientStaffPreference]:
        """Get a client's active preferred-staff entries."""
        pass

    @abstractmethod
    async def save_scheduling_conflict(
        self,
        record: SchedulingConflictRecord,
    ) -> bool:
        """
        Persist a scheduling conflict for review.

        Raises:
            StorageError: If save fails
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
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity or worksheet not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
