"""
Shared fixtures for Care Compliance tests.

Test strategy:
1. Unit tests for individual components (models, rule checks)
2. Flow tests through the orchestrator with in-memory storage
3. No real API calls in tests (Google Sheets is faked)
"""

from datetime import datetime, timezone

import pytest

from carecompliance.config.settings import AllocationSettings
from carecompliance.models.allocation import Client, ClientCategory, StaffMember

# Evaluation time shared by the scenario tests
NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def allocation_settings() -> AllocationSettings:
    return AllocationSettings(
        qualification_expiry_warning_days=30,
        max_concurrent_validations=10,
        validation_timeout_seconds=None,
        rank_warning_free_first=False,
    )


@pytest.fixture
def clients() -> list[Client]:
    return [
        Client(id="C1", category=ClientCategory.NDIS, participant_name="Alex Nguyen"),
        Client(id="C2", category=ClientCategory.SUPPORT_AT_HOME, participant_name="Beth Lee"),
        Client(id="C3", category=ClientCategory.PRIVATE, participant_name="Cam Ortiz"),
    ]


@pytest.fixture
def staff() -> list[StaffMember]:
    return [
        StaffMember(id="S1", name="Sam Carter"),
        StaffMember(id="S2", name="Jo Patel"),
        StaffMember(id="S3", name="Riley Chen"),
        StaffMember(id="S4", name="Former Worker", is_active=False),
    ]
