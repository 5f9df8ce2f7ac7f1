"""
Core Data Models for Staff Allocation

These models define the strict schemas for the rule rows the allocation
validator reads and the verdict it produces. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Rule rows (restrictions, blacklist entries, qualifications)
are read-only inputs for one evaluation. Only ValidationResult is produced
here, and it is never persisted by the validator.
"""

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ClientCategory(str, Enum):
    """Funding category of a client. Used for blacklist matching."""
    NDIS = "NDIS"
    SUPPORT_AT_HOME = "Support at Home"
    PRIVATE = "Private"


class RestrictionSeverity(str, Enum):
    """
    Severity of a client-staff restriction.

    PREFERENCE never blocks; it only produces a warning.
    """
    HARD_BLOCK = "hard_block"
    SOFT_BLOCK = "soft_block"
    PREFERENCE = "preference"


class BlacklistSeverity(str, Enum):
    """Severity of a staff blacklist entry."""
    HARD_BLOCK = "hard_block"
    SOFT_BLOCK = "soft_block"


class BlacklistType(str, Enum):
    """
    Dimension a blacklist entry is scoped to.

    Each type is matched against its own field on the entry
    (service_type, client_category, service_category). GENERAL has no field
    and always matches.
    """
    SERVICE_TYPE = "service_type"
    CLIENT_CATEGORY = "client_category"
    SERVICE_CATEGORY = "service_category"
    GENERAL = "general"


class QualificationStatus(str, Enum):
    """Known qualification statuses. Only CURRENT satisfies a requirement."""
    CURRENT = "current"
    EXPIRED = "expired"
    PENDING = "pending"
    SUSPENDED = "suspended"


class ViolationType(str, Enum):
    """Whether a violation invalidates the assignment."""
    HARD_BLOCK = "hard_block"
    SOFT_BLOCK = "soft_block"


class ViolationSource(str, Enum):
    """Which rule source produced a violation."""
    CLIENT_RESTRICTION = "client_restriction"
    BLACKLIST = "blacklist"
    QUALIFICATION = "qualification"


class ViolationSeverity(str, Enum):
    """Severity tier shown to administrators."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class WarningType(str, Enum):
    """Kinds of non-blocking warnings."""
    PREFERENCE = "preference"
    CAPABILITY = "capability"
    QUALIFICATION_EXPIRY = "qualification_expiry"


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so rule bounds and clocks compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# RULE ROWS
# =============================================================================

class EffectiveRangeModel(BaseModel):
    """
    Base for rules that apply only within [effective_from, effective_to].

    effective_to is optional: an open-ended rule applies from its start
    onwards. Plain dates are accepted and mean midnight of that day.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    effective_from: datetime = Field(
        ...,
        description="When the rule starts to apply"
    )
    effective_to: Optional[datetime] = Field(
        default=None,
        description="When the rule stops applying (None = no end)"
    )
    is_active: bool = Field(
        default=True,
        description="Administrative on/off switch"
    )

    @field_validator('effective_from', 'effective_to', mode='before')
    @classmethod
    def date_to_midnight(cls, v):
        """Promote a plain date (or 'YYYY-MM-DD' text) to a datetime at midnight."""
        if isinstance(v, str) and len(v) == 10:
            v = date.fromisoformat(v)
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime.combine(v, time.min)
        return v

    def is_effective_at(self, now: datetime) -> bool:
        """True when effective_from <= now <= effective_to (or no end)."""
        now = as_utc(now)
        if now < as_utc(self.effective_from):
            return False
        if self.effective_to is not None and now > as_utc(self.effective_to):
            return False
        return True


class ClientStaffRestriction(EffectiveRangeModel):
    """
    An explicit pairing rule between one client and one staff member.

    Created and deactivated by administrators; read-only here.
    """

    id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    staff_id: str = Field(..., min_length=1)
    severity: RestrictionSeverity
    reason: str = Field(
        default="",
        max_length=1000,
        description="Why the restriction exists (shown to administrators)"
    )


class StaffBlacklistEntry(EffectiveRangeModel):
    """
    A staff-level exclusion scoped by one dimension.

    Only the field matching blacklist_type is expected to be set; the
    others stay None so their branches can never match.
    """

    id: str = Field(..., min_length=1)
    staff_id: str = Field(..., min_length=1)
    blacklist_type: BlacklistType
    service_type: Optional[str] = None
    client_category: Optional[ClientCategory] = None
    service_category: Optional[str] = None
    severity: BlacklistSeverity
    reason: str = Field(default="", max_length=1000)


class StaffQualification(BaseModel):
    """A credential held by a staff member."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    staff_id: str = Field(..., min_length=1)
    qualification_type: str = Field(
        ...,
        min_length=1,
        description="Machine type, e.g. 'first_aid'"
    )
    qualification_name: str = Field(
        ...,
        min_length=1,
        description="Display name, e.g. 'Provide First Aid (HLTAID011)'"
    )
    status: str = Field(
        default=QualificationStatus.CURRENT.value,
        description="'current', 'expired', ... Only 'current' counts"
    )
    expiry_date: Optional[date] = None

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, Enum):
            v = v.value
        return v

    @field_validator('expiry_date', mode='before')
    @classmethod
    def datetime_to_date(cls, v):
        """Keep only the calendar day of an expiry timestamp."""
        if isinstance(v, datetime):
            return v.date()
        return v

    @property
    def is_current(self) -> bool:
        return self.status == QualificationStatus.CURRENT.value


class Client(BaseModel):
    """The slice of a client record the validator needs."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    category: ClientCategory
    participant_name: str = Field(default="")


class StaffMember(BaseModel):
    """The slice of a staff record the scanner needs."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    is_active: bool = True


# =============================================================================
# VALIDATION RESULT
# =============================================================================

class ValidationViolation(BaseModel):
    """A single rule that the proposed allocation breaks."""

    type: ViolationType
    reason: str = Field(
        ...,
        description="Human-readable reason, surfaced to administrators"
    )
    source: ViolationSource
    severity: ViolationSeverity


class ValidationWarning(BaseModel):
    """A non-blocking finding."""

    type: WarningType
    message: str


class ValidationResult(BaseModel):
    """
    Verdict for one (staff, client, service) combination.

    INVARIANT: is_valid is True if and only if no violation is a hard block.
    Soft blocks are reported but do not invalidate.
    """

    is_valid: bool
    violations: list[ValidationViolation] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_validity_invariant(self) -> 'ValidationResult':
        has_hard_block = any(
            v.type == ViolationType.HARD_BLOCK for v in self.violations
        )
        if self.is_valid == has_hard_block:
            raise ValueError(
                "is_valid must be True exactly when there are no hard_block violations"
            )
        return self

    @classmethod
    def from_findings(
        cls,
        violations: list[ValidationViolation],
        warnings: list[ValidationWarning],
    ) -> 'ValidationResult':
        """Build a result, deriving is_valid from the violations."""
        is_valid = not any(v.type == ViolationType.HARD_BLOCK for v in violations)
        return cls(is_valid=is_valid, violations=violations, warnings=warnings)

    @property
    def hard_blocks(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.type == ViolationType.HARD_BLOCK]

    @property
    def soft_blocks(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.type == ViolationType.SOFT_BLOCK]

    @property
    def has_warnings(self) -> bool:
        """True when there is anything to flag (warnings or soft blocks)."""
        return bool(self.warnings) or bool(self.soft_blocks)


# =============================================================================
# SCANNER / BATCH MODELS
# =============================================================================

class StaffAssignment(BaseModel):
    """One proposed (staff, client, service) pairing in a batch."""

    staff_id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    service_type: Optional[str] = None
    service_category: Optional[str] = None

    @property
    def key(self) -> str:
        """Batch result key. Service parameters are not part of it."""
        return f"{self.staff_id}-{self.client_id}"


class EligibleStaff(BaseModel):
    """A staff member who may be allocated, with a flag for review."""

    staff_id: str
    staff_name: str
    has_warnings: bool = Field(
        default=False,
        description="Warnings or soft blocks were found"
    )
