"""
Tests for AllocationValidator: single validation, eligibility scan, batch.
"""

import asyncio
from datetime import date, datetime, timezone

import pytest

from carecompliance.config.settings import AllocationSettings
from carecompliance.models.allocation import (
    BlacklistType,
    ClientCategory,
    ClientStaffRestriction,
    RestrictionSeverity,
    StaffAssignment,
    StaffBlacklistEntry,
    StaffQualification,
    ViolationSeverity,
    ViolationSource,
    ViolationType,
    WarningType,
)
from carecompliance.services.storage import InMemoryAllocationRepository, StorageError
from carecompliance.validation import AllocationValidator, ValidationTimeoutError


def restriction(severity, reason="Reason", staff_id="S1", client_id="C1",
                effective_from=date(2024, 1, 1), effective_to=None, is_active=True,
                id="R1"):
    return ClientStaffRestriction(
        id=id,
        client_id=client_id,
        staff_id=staff_id,
        severity=severity,
        reason=reason,
        effective_from=effective_from,
        effective_to=effective_to,
        is_active=is_active,
    )


def blacklist(blacklist_type, severity="hard_block", staff_id="S1", reason="Reason",
              effective_from=date(2024, 1, 1), effective_to=None, id="B1", **fields):
    return StaffBlacklistEntry(
        id=id,
        staff_id=staff_id,
        blacklist_type=blacklist_type,
        severity=severity,
        reason=reason,
        effective_from=effective_from,
        effective_to=effective_to,
        **fields,
    )


def qualification(qualification_type, status="current", staff_id="S1", expiry_date=None,
                  name=None, id=None):
    return StaffQualification(
        id=id or f"Q-{staff_id}-{qualification_type}",
        staff_id=staff_id,
        qualification_type=qualification_type,
        qualification_name=name or qualification_type.replace("_", " ").title(),
        status=status,
        expiry_date=expiry_date,
    )


@pytest.fixture
def make_validator(clients, staff, allocation_settings):
    def _make(settings=None, **rows):
        repository = InMemoryAllocationRepository(clients=clients, staff=staff, **rows)
        return AllocationValidator(repository, settings=settings or allocation_settings)
    return _make


class TestClientRestrictions:
    """Step 1: client-specific restrictions."""

    @pytest.mark.asyncio
    async def test_personal_conflict_scenario(self, make_validator):
        """Hard block from 2024-01-01, no end, checked on 2025-01-01."""
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.HARD_BLOCK, reason="Personal conflict"),
        ])
        result = await validator.validate(
            "S1", "C1", now=datetime(2025, 1, 1, tzinfo=timezone.utc)
        )

        assert result.is_valid is False
        assert len(result.violations) == 1
        violation = result.violations[0]
        assert "Personal conflict" in violation.reason
        assert violation.type == ViolationType.HARD_BLOCK
        assert violation.source == ViolationSource.CLIENT_RESTRICTION
        assert violation.severity == ViolationSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_soft_block_restriction_is_medium(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.SOFT_BLOCK, reason="Client complaint"),
        ])
        result = await validator.validate("S1", "C1", now=now)

        assert result.is_valid is True
        assert len(result.violations) == 1
        assert result.violations[0].type == ViolationType.SOFT_BLOCK
        assert result.violations[0].severity == ViolationSeverity.MEDIUM
        assert result.violations[0].reason == "Staff assignment not recommended: Client complaint"

    @pytest.mark.asyncio
    async def test_preference_becomes_warning(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.PREFERENCE, reason="Prefers female staff"),
        ])
        result = await validator.validate("S1", "C1", now=now)

        assert result.is_valid is True
        assert result.violations == []
        assert len(result.warnings) == 1
        assert result.warnings[0].type == WarningType.PREFERENCE
        assert result.warnings[0].message == "Warning: Prefers female staff"

    @pytest.mark.asyncio
    async def test_expired_restriction_is_ignored(self, make_validator, now):
        """effective_to in the past produces nothing."""
        validator = make_validator(restrictions=[
            restriction(
                RestrictionSeverity.HARD_BLOCK,
                effective_from=date(2023, 1, 1),
                effective_to=date(2024, 6, 30),
            ),
            restriction(
                RestrictionSeverity.PREFERENCE,
                effective_from=date(2023, 1, 1),
                effective_to=date(2024, 6, 30),
                id="R2",
            ),
        ])
        result = await validator.validate("S1", "C1", now=now)

        assert result.is_valid is True
        assert result.violations == []
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_future_restriction_is_ignored(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.HARD_BLOCK, effective_from=date(2025, 2, 1)),
        ])
        result = await validator.validate("S1", "C1", now=now)
        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_inactive_restriction_is_ignored(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.HARD_BLOCK, is_active=False),
        ])
        result = await validator.validate("S1", "C1", now=now)
        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_restriction_for_other_pair_is_ignored(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.HARD_BLOCK, staff_id="S2"),
        ])
        result = await validator.validate("S1", "C1", now=now)
        assert result.is_valid is True


class TestMissingClient:
    """Step 2: the only short-circuit."""

    @pytest.mark.asyncio
    async def test_unknown_client_is_critical_hard_block(self, make_validator, now):
        validator = make_validator(blacklist=[blacklist(BlacklistType.GENERAL)])
        result = await validator.validate("S1", "NOPE", service_category="nursing", now=now)

        assert result.is_valid is False
        assert len(result.violations) == 1
        assert result.violations[0].reason == "Client not found"
        assert result.violations[0].severity == ViolationSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_restriction_findings_are_kept(self, make_validator, now):
        """Restrictions checked before the lookup stay in the result."""
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.SOFT_BLOCK, client_id="GONE"),
        ])
        result = await validator.validate("S1", "GONE", now=now)

        assert [v.type for v in result.violations] == [
            ViolationType.SOFT_BLOCK,
            ViolationType.HARD_BLOCK,
        ]


class TestBlacklist:
    """Step 3: staff blacklist."""

    @pytest.mark.asyncio
    async def test_soft_block_service_type_scenario(self, make_validator, now):
        """Soft-blocked nursing service type keeps the allocation valid."""
        validator = make_validator(blacklist=[
            blacklist(
                BlacklistType.SERVICE_TYPE,
                severity="soft_block",
                staff_id="S2",
                service_type="nursing",
            ),
        ])
        result = await validator.validate("S2", "C2", service_type="nursing", now=now)

        assert result.is_valid is True
        soft = [v for v in result.violations if v.type == ViolationType.SOFT_BLOCK]
        assert len(soft) == 1
        assert soft[0].source == ViolationSource.BLACKLIST
        assert soft[0].severity == ViolationSeverity.HIGH

    @pytest.mark.asyncio
    async def test_service_type_mismatch(self, make_validator, now):
        validator = make_validator(blacklist=[
            blacklist(BlacklistType.SERVICE_TYPE, service_type="nursing"),
        ])
        result = await validator.validate("S1", "C1", service_type="cleaning", now=now)
        assert result.violations == []

    @pytest.mark.asyncio
    async def test_service_type_not_requested(self, make_validator, now):
        """An entry without a requested service type never matches."""
        validator = make_validator(blacklist=[
            blacklist(BlacklistType.SERVICE_TYPE),
        ])
        result = await validator.validate("S1", "C1", now=now)
        assert result.violations == []

    @pytest.mark.asyncio
    async def test_client_category_match(self, make_validator, now):
        validator = make_validator(blacklist=[
            blacklist(BlacklistType.CLIENT_CATEGORY, client_category=ClientCategory.NDIS,
                      reason="No NDIS screening"),
        ])
        ndis = await validator.validate("S1", "C1", now=now)
        private = await validator.validate("S1", "C3", now=now)

        assert ndis.is_valid is False
        assert ndis.violations[0].reason == (
            "Staff member is blocked from NDIS clients: No NDIS screening"
        )
        assert private.is_valid is True

    @pytest.mark.asyncio
    async def test_service_category_match(self, make_validator, now):
        validator = make_validator(blacklist=[
            blacklist(BlacklistType.SERVICE_CATEGORY, service_category="community_access"),
        ])
        result = await validator.validate(
            "S1", "C1", service_category="community_access", now=now
        )
        assert result.is_valid is False
        assert result.violations[0].source == ViolationSource.BLACKLIST

    @pytest.mark.parametrize("service_type,service_category", [
        (None, None),
        ("nursing", None),
        (None, "high_risk"),
        ("domestic", "community_access"),
    ])
    @pytest.mark.asyncio
    async def test_general_always_matches(self, make_validator, now,
                                          service_type, service_category):
        validator = make_validator(
            blacklist=[blacklist(BlacklistType.GENERAL, severity="soft_block",
                                 reason="Under investigation")],
            qualifications=[
                qualification("first_aid"),
                qualification("manual_handling"),
            ],
        )
        result = await validator.validate(
            "S1", "C1", service_type=service_type, service_category=service_category, now=now
        )
        blacklist_violations = [
            v for v in result.violations if v.source == ViolationSource.BLACKLIST
        ]
        assert len(blacklist_violations) == 1
        assert blacklist_violations[0].reason == (
            "Staff member has general restriction: Under investigation"
        )

    @pytest.mark.asyncio
    async def test_expired_blacklist_entry_is_ignored(self, make_validator, now):
        validator = make_validator(blacklist=[
            blacklist(BlacklistType.GENERAL, effective_to=date(2024, 12, 31)),
        ])
        result = await validator.validate("S1", "C1", now=now)
        assert result.violations == []

    @pytest.mark.asyncio
    async def test_every_entry_is_evaluated(self, make_validator, now):
        """Violations accumulate across entries and sources."""
        validator = make_validator(
            restrictions=[restriction(RestrictionSeverity.SOFT_BLOCK)],
            blacklist=[
                blacklist(BlacklistType.GENERAL, id="B1"),
                blacklist(BlacklistType.SERVICE_TYPE, service_type="nursing",
                          severity="soft_block", id="B2"),
            ],
        )
        result = await validator.validate("S1", "C1", service_type="nursing", now=now)

        assert result.is_valid is False
        assert [v.source for v in result.violations] == [
            ViolationSource.CLIENT_RESTRICTION,
            ViolationSource.BLACKLIST,
            ViolationSource.BLACKLIST,
        ]


class TestQualifications:
    """Step 4: qualification requirements and expiry warnings."""

    @pytest.mark.asyncio
    async def test_all_requirements_met(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("nursing"),
            qualification("complex_care"),
        ])
        result = await validator.validate("S1", "C1", service_category="complex_nursing", now=now)

        assert result.is_valid is True
        assert result.hard_blocks == []

    @pytest.mark.asyncio
    async def test_missing_requirement_blocks(self, make_validator, now):
        validator = make_validator(qualifications=[qualification("nursing")])
        result = await validator.validate("S1", "C1", service_category="Complex Nursing", now=now)

        assert result.is_valid is False
        assert len(result.violations) == 1
        assert result.violations[0].source == ViolationSource.QUALIFICATION
        assert result.violations[0].reason == (
            "Staff member lacks required qualification: complex_care"
        )

    @pytest.mark.asyncio
    async def test_non_current_status_does_not_count(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("medication_admin", status="expired"),
        ])
        result = await validator.validate(
            "S1", "C1", service_category="medication_administration", now=now
        )
        assert result.is_valid is False

    @pytest.mark.asyncio
    async def test_other_staff_qualification_does_not_count(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("nursing", staff_id="S2"),
        ])
        result = await validator.validate("S1", "C1", service_category="nursing", now=now)
        assert result.is_valid is False

    @pytest.mark.asyncio
    async def test_unknown_category_has_no_requirements(self, make_validator, now):
        validator = make_validator()
        result = await validator.validate("S1", "C1", service_category="gardening", now=now)
        assert result.is_valid is True
        assert result.violations == []

    @pytest.mark.parametrize("expiry,warns", [
        (date(2025, 1, 31), True),   # 30 days
        (date(2025, 1, 2), True),    # 1 day
        (date(2025, 2, 1), False),   # 31 days
        (date(2025, 1, 1), False),   # 0 days
        (date(2024, 12, 1), False),  # already expired
    ])
    @pytest.mark.asyncio
    async def test_expiry_warning_window(self, make_validator, now, expiry, warns):
        validator = make_validator(qualifications=[
            qualification("nursing", expiry_date=expiry, name="Registered Nurse"),
        ])
        result = await validator.validate("S1", "C1", service_category="nursing", now=now)

        expiry_warnings = [
            w for w in result.warnings if w.type == WarningType.QUALIFICATION_EXPIRY
        ]
        assert bool(expiry_warnings) is warns
        if warns:
            assert expiry_warnings[0].message == (
                f"Registered Nurse expires soon ({expiry.isoformat()})"
            )

    @pytest.mark.asyncio
    async def test_expiry_warning_covers_unrequired_qualifications(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("nursing"),
            qualification("first_aid", expiry_date=date(2025, 1, 15)),
        ])
        result = await validator.validate("S1", "C1", service_category="nursing", now=now)
        assert result.is_valid is True
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_no_category_skips_qualifications(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("nursing", expiry_date=date(2025, 1, 15)),
        ])
        result = await validator.validate("S1", "C1", now=now)
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_category_without_requirements_skips_expiry(self, clients, staff,
                                                              allocation_settings, now):
        """An unmapped category neither reads nor warns about qualifications."""
        class TrackingRepository(InMemoryAllocationRepository):
            qualification_reads = 0

            async def get_qualifications(self, staff_id):
                TrackingRepository.qualification_reads += 1
                return await super().get_qualifications(staff_id)

        repository = TrackingRepository(
            clients=clients,
            staff=staff,
            qualifications=[qualification("first_aid", expiry_date=date(2025, 1, 15),
                                          name="First Aid")],
        )
        validator = AllocationValidator(repository, settings=allocation_settings)

        result = await validator.validate("S1", "C1", service_category="gardening", now=now)
        eligible = await validator.get_eligible_staff(
            "C1", service_category="gardening", now=now
        )

        assert result.warnings == []
        assert TrackingRepository.qualification_reads == 0
        assert {e.staff_id: e.has_warnings for e in eligible}["S1"] is False

    @pytest.mark.asyncio
    async def test_warning_window_is_configurable(self, make_validator, now):
        validator = make_validator(
            settings=AllocationSettings(qualification_expiry_warning_days=7),
            qualifications=[qualification("nursing", expiry_date=date(2025, 1, 15))],
        )
        result = await validator.validate("S1", "C1", service_category="nursing", now=now)
        assert result.warnings == []


class TestValidateGeneral:
    """Cross-cutting behaviour of validate()."""

    @pytest.mark.asyncio
    async def test_clean_staff_member_is_valid(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("first_aid"),
            qualification("manual_handling"),
        ])
        result = await validator.validate(
            "S1", "C1", service_type="personal_care", service_category="High Risk", now=now
        )
        assert result.is_valid is True
        assert result.violations == []
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_uses_clock_when_now_omitted(self, clients, staff, allocation_settings):
        repository = InMemoryAllocationRepository(
            clients=clients,
            staff=staff,
            restrictions=[restriction(RestrictionSeverity.HARD_BLOCK,
                                      effective_to=date(2024, 6, 30))],
        )
        past = AllocationValidator(
            repository, settings=allocation_settings,
            clock=lambda: datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        later = AllocationValidator(
            repository, settings=allocation_settings,
            clock=lambda: datetime(2024, 9, 1, tzinfo=timezone.utc),
        )
        assert (await past.validate("S1", "C1")).is_valid is False
        assert (await later.validate("S1", "C1")).is_valid is True

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, clients, staff, allocation_settings, now):
        class BrokenRepository(InMemoryAllocationRepository):
            async def get_active_blacklist_entries(self, staff_id):
                raise StorageError("database unavailable")

        validator = AllocationValidator(
            BrokenRepository(clients=clients, staff=staff), settings=allocation_settings
        )
        with pytest.raises(StorageError, match="database unavailable"):
            await validator.validate("S1", "C1", now=now)

    @pytest.mark.asyncio
    async def test_timeout(self, clients, staff, now):
        class SlowRepository(InMemoryAllocationRepository):
            async def get_client(self, client_id):
                await asyncio.sleep(1)
                return await super().get_client(client_id)

        validator = AllocationValidator(
            SlowRepository(clients=clients, staff=staff),
            settings=AllocationSettings(validation_timeout_seconds=0.05),
        )
        with pytest.raises(ValidationTimeoutError):
            await validator.validate("S1", "C1", now=now)


class TestEligibleStaff:
    """Eligibility scanner."""

    @pytest.mark.asyncio
    async def test_excludes_hard_blocked_and_inactive_staff(self, make_validator, now):
        validator = make_validator(
            restrictions=[restriction(RestrictionSeverity.HARD_BLOCK, staff_id="S1")],
            blacklist=[blacklist(BlacklistType.GENERAL, severity="soft_block", staff_id="S2")],
        )
        eligible = await validator.get_eligible_staff("C1", now=now)

        assert [e.staff_id for e in eligible] == ["S2", "S3"]
        assert eligible[0].staff_name == "Jo Patel"
        assert eligible[0].has_warnings is True
        assert eligible[1].has_warnings is False

    @pytest.mark.asyncio
    async def test_warning_flags_staff(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.PREFERENCE, staff_id="S1"),
        ])
        eligible = await validator.get_eligible_staff("C1", now=now)
        flags = {e.staff_id: e.has_warnings for e in eligible}
        assert flags == {"S1": True, "S2": False, "S3": False}

    @pytest.mark.asyncio
    async def test_qualification_requirements_filter(self, make_validator, now):
        validator = make_validator(qualifications=[
            qualification("nursing", staff_id="S3"),
        ])
        eligible = await validator.get_eligible_staff("C1", service_category="nursing", now=now)
        assert [e.staff_id for e in eligible] == ["S3"]

    @pytest.mark.asyncio
    async def test_unknown_client_has_no_eligible_staff(self, make_validator, now):
        validator = make_validator()
        assert await validator.get_eligible_staff("NOPE", now=now) == []

    @pytest.mark.asyncio
    async def test_rank_warning_free_first(self, make_validator, now):
        validator = make_validator(
            settings=AllocationSettings(rank_warning_free_first=True),
            restrictions=[restriction(RestrictionSeverity.PREFERENCE, staff_id="S1")],
        )
        eligible = await validator.get_eligible_staff("C1", now=now)
        assert [e.staff_id for e in eligible] == ["S2", "S3", "S1"]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, clients, now):
        from carecompliance.models.allocation import StaffMember

        class CountingRepository(InMemoryAllocationRepository):
            in_flight = 0
            peak = 0

            async def get_active_restrictions(self, client_id, staff_id):
                CountingRepository.in_flight += 1
                CountingRepository.peak = max(CountingRepository.peak,
                                              CountingRepository.in_flight)
                await asyncio.sleep(0.01)
                CountingRepository.in_flight -= 1
                return []

        many_staff = [StaffMember(id=f"S{i}", name=f"Staff {i}") for i in range(12)]
        validator = AllocationValidator(
            CountingRepository(clients=clients, staff=many_staff),
            settings=AllocationSettings(max_concurrent_validations=3),
        )
        eligible = await validator.get_eligible_staff("C1", now=now)

        assert len(eligible) == 12
        assert [e.staff_id for e in eligible] == [s.id for s in many_staff]
        assert CountingRepository.peak <= 3

    @pytest.mark.asyncio
    async def test_failure_cancels_running_validations(self, clients, staff,
                                                       allocation_settings, now):
        cancelled = []

        class FailingRepository(InMemoryAllocationRepository):
            async def get_active_restrictions(self, client_id, staff_id):
                if staff_id == "S1":
                    await asyncio.sleep(0.01)
                    raise StorageError("sheet unavailable")
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    cancelled.append(staff_id)
                    raise
                return []

        validator = AllocationValidator(
            FailingRepository(clients=clients, staff=staff), settings=allocation_settings
        )
        with pytest.raises(StorageError, match="sheet unavailable"):
            await asyncio.wait_for(validator.get_eligible_staff("C1", now=now), timeout=5)

        assert sorted(cancelled) == ["S2", "S3"]


class TestValidateBatch:
    """Batch validator."""

    @pytest.mark.asyncio
    async def test_batch_with_one_invalid_pair(self, make_validator, now):
        validator = make_validator(restrictions=[
            restriction(RestrictionSeverity.HARD_BLOCK, staff_id="S2", client_id="C2"),
        ])
        results = await validator.validate_batch([
            StaffAssignment(staff_id="S1", client_id="C1"),
            StaffAssignment(staff_id="S2", client_id="C2"),
            StaffAssignment(staff_id="S3", client_id="C3", service_type="domestic"),
        ], now=now)

        assert set(results) == {"S1-C1", "S2-C2", "S3-C3"}
        assert sum(1 for r in results.values() if not r.is_valid) == 1
        assert results["S2-C2"].is_valid is False

    @pytest.mark.asyncio
    async def test_duplicate_pair_last_write_wins(self, make_validator, now):
        validator = make_validator()
        results = await validator.validate_batch([
            StaffAssignment(staff_id="S1", client_id="C1", service_category="nursing"),
            StaffAssignment(staff_id="S1", client_id="C1"),
        ], now=now)

        assert len(results) == 1
        assert results["S1-C1"].is_valid is True

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_validator, now):
        validator = make_validator()
        assert await validator.validate_batch([], now=now) == {}


class TestSummary:
    """Administrator-facing summary text."""

    @pytest.mark.asyncio
    async def test_clean_summary(self, make_validator, now):
        validator = make_validator()
        result = await validator.validate("S1", "C1", now=now)
        assert validator.get_summary(result) == "Allocation permitted. No restrictions apply."

    @pytest.mark.asyncio
    async def test_blocked_summary_lists_reasons(self, make_validator, now):
        validator = make_validator(
            restrictions=[restriction(RestrictionSeverity.HARD_BLOCK, reason="Personal conflict")],
            blacklist=[blacklist(BlacklistType.GENERAL, severity="soft_block", reason="Probation")],
        )
        result = await validator.validate("S1", "C1", now=now)
        summary = validator.get_summary(result)

        assert summary.startswith("Allocation NOT permitted:")
        assert "[client_restriction] Staff member is blocked from working with this client: " \
               "Personal conflict" in summary
        assert "Not recommended:" in summary
        assert "Probation" in summary
