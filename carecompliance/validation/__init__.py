"""Allocation and scheduling validation package."""

from carecompliance.validation.allocation import (
    AllocationValidator,
    ValidationTimeoutError,
)
from carecompliance.validation.appointments import AppointmentConflictChecker
from carecompliance.validation.qualifications import (
    REQUIRED_QUALIFICATIONS,
    get_required_qualifications,
    normalize_service_category,
)

__all__ = [
    "AllocationValidator",
    "AppointmentConflictChecker",
    "REQUIRED_QUALIFICATIONS",
    "ValidationTimeoutError",
    "get_required_qualifications",
    "normalize_service_category",
]
