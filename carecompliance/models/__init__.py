"""
Data Models Package

This package contains all Pydantic models used in the Care Compliance system.
All data flowing through the system must conform to these schemas.
"""

from carecompliance.models.allocation import (
    BlacklistSeverity,
    BlacklistType,
    Client,
    ClientCategory,
    ClientStaffRestriction,
    EligibleStaff,
    QualificationStatus,
    RestrictionSeverity,
    StaffAssignment,
    StaffBlacklistEntry,
    StaffMember,
    StaffQualification,
    ValidationResult,
    ValidationViolation,
    ValidationWarning,
    ViolationSeverity,
    ViolationSource,
    ViolationType,
    WarningType,
)
from carecompliance.models.scheduling import (
    Appointment,
    AppointmentAssignment,
    AppointmentStatus,
    AssignmentContext,
    AssignmentStatus,
    AvailabilityWindow,
    BookedAppointment,
    ClientStaffPreference,
    ConflictCheckResult,
    ConflictInfo,
    ConflictSeverity,
    ConflictType,
    RevalidationSummary,
    SchedulingConflictRecord,
    UnavailabilityPeriod,
)
from carecompliance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Allocation models
    "BlacklistSeverity",
    "BlacklistType",
    "Client",
    "ClientCategory",
    "ClientStaffRestriction",
    "EligibleStaff",
    "QualificationStatus",
    "RestrictionSeverity",
    "StaffAssignment",
    "StaffBlacklistEntry",
    "StaffMember",
    "StaffQualification",
    "ValidationResult",
    "ValidationViolation",
    "ValidationWarning",
    "ViolationSeverity",
    "ViolationSource",
    "ViolationType",
    "WarningType",
    # Scheduling models
    "Appointment",
    "AppointmentAssignment",
    "AppointmentStatus",
    "AssignmentContext",
    "AssignmentStatus",
    "AvailabilityWindow",
    "BookedAppointment",
    "ClientStaffPreference",
    "ConflictCheckResult",
    "ConflictInfo",
    "ConflictSeverity",
    "ConflictType",
    "RevalidationSummary",
    "SchedulingConflictRecord",
    "UnavailabilityPeriod",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
