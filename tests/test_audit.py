"""
Tests for the audit logger and in-memory audit storage.
"""

import pytest

from carecompliance.audit import AuditLogger, create_correlation_id
from carecompliance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from carecompliance.services.storage import AuditStorageInterface, InMemoryAuditStorage


class FailingAuditStorage(InMemoryAuditStorage):
    """Audit storage whose writes always fail."""

    async def append_event(self, event: AuditEvent) -> bool:
        raise RuntimeError("sheet quota exceeded")


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_log_without_storage_succeeds(self):
        logger = AuditLogger()
        event = AuditEvent(
            event_type=AuditEventType.ALLOCATION_VALIDATED,
            description="Allocation validated",
        )
        assert await logger.log(event) is True

    @pytest.mark.asyncio
    async def test_log_persists_to_storage(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        await logger.log_allocation_blocked("S1", "C1", ["Personal conflict"])

        assert len(storage.events) == 1
        assert storage.events[0].event_type == AuditEventType.ALLOCATION_BLOCKED
        assert storage.events[0].entity_id == "S1-C1"

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        """A failed audit write is reported, not raised."""
        logger = AuditLogger(FailingAuditStorage())
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description="boom",
        )
        assert await logger.log(event) is False

    @pytest.mark.asyncio
    async def test_helpers_share_correlation_id(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_eligibility_scanned("C1", 3, 1, correlation_id=correlation_id)
        await logger.log_batch_validated(2, ["S1-C1"], correlation_id=correlation_id)
        await logger.log_storage_error("get_client", "timeout", correlation_id=correlation_id)
        await logger.log_error("unexpected", "bad state")

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in related] == [
            AuditEventType.ELIGIBILITY_SCANNED,
            AuditEventType.BATCH_VALIDATED,
            AuditEventType.STORAGE_ERROR,
        ]
        assert len(storage.events) == 4


class TestInMemoryAuditStorage:
    """Tests for the in-memory audit backend."""

    def test_implements_interface(self):
        assert isinstance(InMemoryAuditStorage(), AuditStorageInterface)

    @pytest.mark.asyncio
    async def test_events_by_entity(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        await logger.log_allocation_validated("S1", "C1", 0, 0)
        await logger.log_allocation_soft_blocked("S2", "C1", ["Probation"])

        events = await storage.get_events_by_entity("allocation", "S2-C1")
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.ALLOCATION_SOFT_BLOCKED

    @pytest.mark.asyncio
    async def test_recent_events_are_newest_first(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        for count in range(3):
            await logger.log_allocation_validated("S1", f"C{count}", 0, 0)

        recent = await storage.get_recent_events(limit=2)
        assert len(recent) == 2
        assert recent[0].timestamp >= recent[1].timestamp
