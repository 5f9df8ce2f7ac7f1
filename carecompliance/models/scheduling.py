"""
Scheduling Models

Rows and results for checking a concrete appointment assignment:
availability windows, approved leave, overlapping bookings and client
preferences. Findings are classified by severity rather than by hard/soft
block, because an appointment can also be rejected for reasons that have
nothing to do with compliance rules (a staff member on leave, for example).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from carecompliance.models.allocation import as_utc


class ConflictType(str, Enum):
    """Kinds of scheduling conflicts."""
    RESTRICTION_VIOLATION = "restriction_violation"
    AVAILABILITY_CONFLICT = "availability_conflict"
    DOUBLE_BOOKING = "double_booking"
    PREFERENCE_OVERRIDE = "preference_override"


class ConflictSeverity(str, Enum):
    """
    Conflict severity.

    CRITICAL prevents proceeding. WARNING makes the assignment invalid
    but it may still proceed after review. INFO is advisory only.
    """
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that still hold a staff member's time
BOOKED_ASSIGNMENT_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACCEPTED,
})
CLOSED_APPOINTMENT_STATUSES = frozenset({
    AppointmentStatus.CANCELLED,
    AppointmentStatus.COMPLETED,
})

UNAVAILABILITY_TYPE_LABELS = {
    "annual_leave": "Annual Leave",
    "sick_leave": "Sick Leave",
    "personal_leave": "Personal Leave",
    "training": "Training",
    "unavailable": "Unavailable",
    "other": "Other",
}

DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]


def day_of_week(moment: datetime) -> int:
    """Weekday with Sunday as 0 and Saturday as 6."""
    return moment.isoweekday() % 7


# =============================================================================
# ROWS
# =============================================================================

class AvailabilityWindow(BaseModel):
    """A recurring weekly window in which a staff member can work."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    staff_id: str
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday")
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_active: bool = True

    def applies_on(self, day: date) -> bool:
        if self.effective_from and self.effective_from > day:
            return False
        if self.effective_to and self.effective_to < day:
            return False
        return True


class UnavailabilityPeriod(BaseModel):
    """Leave or other time off for a staff member."""

    id: str
    staff_id: str
    unavailability_type: str = "unavailable"
    start_date: datetime
    end_date: datetime
    reason: Optional[str] = None
    is_all_day: bool = True
    status: str = "approved"

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def type_label(self) -> str:
        return UNAVAILABILITY_TYPE_LABELS.get(
            self.unavailability_type, self.unavailability_type
        )


class Appointment(BaseModel):
    id: str
    client_id: str
    title: str = ""
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED

    @field_validator('scheduled_start', 'scheduled_end')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)


class AppointmentAssignment(BaseModel):
    id: str
    appointment_id: str
    staff_id: str
    status: AssignmentStatus = AssignmentStatus.PENDING


class BookedAppointment(BaseModel):
    """An assignment joined with its appointment."""

    assignment: AppointmentAssignment
    appointment: Appointment


class ClientStaffPreference(BaseModel):
    """A client's preferred staff member."""

    id: str
    client_id: str
    staff_id: str
    preference_level: str = "preferred"
    notes: Optional[str] = None
    is_active: bool = True


# =============================================================================
# CHECK INPUT / OUTPUT
# =============================================================================

class AssignmentContext(BaseModel):
    """Everything needed to check one staff member on one appointment."""

    appointment_id: str
    client_id: str
    client_name: str
    staff_id: str
    staff_name: str
    scheduled_start: datetime
    scheduled_end: datetime
    checking_user_id: Optional[str] = None
    checking_user_name: Optional[str] = None

    @field_validator('scheduled_start', 'scheduled_end')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        """Naive times are read as UTC."""
        return as_utc(v)

    @model_validator(mode='after')
    def validate_times(self) -> 'AssignmentContext':
        if self.scheduled_end < self.scheduled_start:
            raise ValueError("Appointment end cannot be before start")
        return self


class ConflictInfo(BaseModel):
    """A single scheduling finding."""

    type: ConflictType
    severity: ConflictSeverity
    title: str
    description: str
    details: dict[str, Any] = Field(default_factory=dict)
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None


class ConflictCheckResult(BaseModel):
    """
    Outcome of checking one staff member for one appointment.

    is_valid requires no critical and no warning findings.
    can_proceed only requires no critical findings.
    """

    is_valid: bool
    can_proceed: bool
    conflicts: list[ConflictInfo] = Field(default_factory=list)
    warnings: list[ConflictInfo] = Field(default_factory=list)
    info: list[ConflictInfo] = Field(default_factory=list)

    @property
    def all_findings(self) -> list[ConflictInfo]:
        return [*self.conflicts, *self.warnings, *self.info]


class RevalidationSummary(BaseModel):
    """Totals from re-checking a batch of future appointments."""

    appointments_checked: int = 0
    conflicts_found: int = Field(
        default=0,
        description="Critical and warning findings; info findings are not counted"
    )


class SchedulingConflictRecord(BaseModel):
    """A persisted scheduling conflict awaiting review."""

    appointment_id: str
    client_id: str
    client_name: str
    staff_id: str
    staff_name: str
    conflict_type: ConflictType
    severity: ConflictSeverity
    title: str
    description: str
    conflict_details: dict[str, Any] = Field(default_factory=dict)
    conflict_date: datetime
    detected_by_id: Optional[str] = None
    detected_by_name: Optional[str] = None
    detected_by_system: bool = True
    status: str = "open"

    @field_validator('conflict_date')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_validator('status')
    @classmethod
    def validate_status(cls, v: str) -> str:
        allowed = {'open', 'acknowledged', 'resolved', 'dismissed'}
        if v not in allowed:
            raise ValueError(f"Unsupported conflict status: {v}. Allowed: {allowed}")
        return v
