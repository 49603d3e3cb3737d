"""Tests for AuditService."""

import uuid

import pytest

from entryflow.audit_generator.service import AuditService


class TestAuditService:
    """Tests for AuditService static methods."""

    @pytest.mark.asyncio
    async def test_record(self, db_session):
        entry_id = uuid.uuid4()
        event = await AuditService.record(
            db_session,
            action="ENTRY_SUBMITTED",
            actor="broker-1",
            actor_role="BROKER",
            reference_type="entry",
            reference_id=entry_id,
            event_data={"documents": ["GD:gd.pdf"]},
        )

        assert event.id is not None
        assert event.action == "ENTRY_SUBMITTED"
        assert event.reference_id == entry_id
        assert event.event_data == {"documents": ["GD:gd.pdf"]}

    @pytest.mark.asyncio
    async def test_record_minimal(self, db_session):
        event = await AuditService.record(db_session, action="VALIDATION_RUN")

        assert event.actor is None
        assert event.actor_role == "SYSTEM"

    @pytest.mark.asyncio
    async def test_record_without_role_is_system(self, db_session):
        event = await AuditService.record(db_session, action="VALIDATION_RUN", actor_role=None)
        assert event.actor_role == "SYSTEM"

    @pytest.mark.asyncio
    async def test_get_events_empty(self, db_session):
        events, total = await AuditService.get_events(db_session)
        assert total == 0
        assert events == []

    @pytest.mark.asyncio
    async def test_get_events_filtered(self, db_session):
        entry_id = uuid.uuid4()
        await AuditService.record(db_session, action="PROCEED", reference_type="entry", reference_id=entry_id)
        await AuditService.record(db_session, action="FIELD_OVERRIDE", reference_type="document")
        await AuditService.record(
            db_session, action="SEND_BACK", actor_role="CUSTOMS_OFFICER", reference_type="entry", reference_id=entry_id
        )

        events, total = await AuditService.get_events(db_session, reference_type="entry", reference_id=entry_id)
        assert total == 2
        assert {e.action for e in events} == {"PROCEED", "SEND_BACK"}

        events, total = await AuditService.get_events(db_session, actor_role="CUSTOMS_OFFICER")
        assert total == 1
        assert events[0].action == "SEND_BACK"

        _, total = await AuditService.get_events(db_session, action="FIELD_OVERRIDE")
        assert total == 1

    @pytest.mark.asyncio
    async def test_get_events_pagination(self, db_session):
        for i in range(5):
            await AuditService.record(db_session, action=f"EVT_{i}")

        page1, total = await AuditService.get_events(db_session, page=1, per_page=2)
        assert total == 5
        assert len(page1) == 2

        page3, _ = await AuditService.get_events(db_session, page=3, per_page=2)
        assert len(page3) == 1

    @pytest.mark.asyncio
    async def test_get_stats(self, db_session):
        await AuditService.record(db_session, action="PROCEED", actor_role="CUSTOMS_OFFICER")
        await AuditService.record(db_session, action="FIELD_OVERRIDE", actor_role="BROKER")
        await AuditService.record(db_session, action="FIELD_OVERRIDE", actor_role="BROKER")
        await AuditService.record(db_session, action="VALIDATION_RUN", actor_role=None)

        stats = await AuditService.get_stats(db_session)
        assert stats["total_events"] == 4
        assert stats["events_by_action"]["FIELD_OVERRIDE"] == 2
        assert stats["events_by_actor_role"]["BROKER"] == 2
        assert stats["events_by_actor_role"]["SYSTEM"] == 1
        assert "UNKNOWN" not in stats["events_by_actor_role"]
        assert len(stats["recent_events"]) == 4
